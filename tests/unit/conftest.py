"""
In-memory collaborators for the scheduler unit tests.

The fakes implement the real ports so that registry and scheduler logic can
be exercised without git, subprocesses or HTTP.
"""

from dataclasses import dataclass

import pytest

from fleet_common.errors import BuildStartError, ConfigurationError, VCSError
from fleet_common.models import BuildOptions, BuildPayload, Target
from fleet_common.ports import BuildExecutor, BuildHandle, Notifier, VCSPort


class FakeExecutor(BuildExecutor):
    """Executor whose builds only finish when the test says so."""

    def __init__(self):
        self.calls: list[tuple[str, BuildOptions]] = []
        self.handles: dict[str, BuildHandle] = {}
        self.fail_for: set[str] = set()

    def run(self, target_id: str, options: BuildOptions) -> BuildHandle:
        self.calls.append((target_id, options))
        if target_id in self.fail_for:
            raise BuildStartError(f"cannot start {target_id}")
        handle = BuildHandle(target_id)
        self.handles[target_id] = handle
        return handle

    @property
    def started(self) -> list[str]:
        return [target_id for target_id, _ in self.calls]

    def finish(self, target_id: str, cancelled: bool = False, error=None) -> None:
        self.handles[target_id].complete(cancelled=cancelled, error=error)


class FakeNotifier(Notifier):
    def __init__(self):
        self.payloads: list[BuildPayload] = []

    async def send_build_complete(self, payload: BuildPayload) -> None:
        self.payloads.append(payload)


@dataclass
class FakeTree:
    branch: str = "master"
    local: str = "aaaaaaaa"
    remote: str = "aaaaaaaa"
    fetch_error: bool = False


class FakeVCS(VCSPort):
    """Working trees kept in a dict; unknown targets have no working tree."""

    def __init__(self, trees: dict[str, FakeTree] | None = None):
        self.trees = trees or {}
        self.fetched: list[str] = []
        self.updated: list[str] = []

    def _tree(self, target_id: str) -> FakeTree:
        if target_id not in self.trees:
            raise ConfigurationError(f"Target {target_id} has no working tree")
        return self.trees[target_id]

    def has_working_tree(self, target_id: str) -> bool:
        return target_id in self.trees

    async def fetch(self, target_id: str) -> None:
        tree = self._tree(target_id)
        if tree.fetch_error:
            raise VCSError(f"fetch failed for {target_id}")
        self.fetched.append(target_id)

    async def get_branch(self, target_id: str) -> str:
        return self._tree(target_id).branch

    async def get_current_local_hash(self, target_id: str) -> str:
        return self._tree(target_id).local

    async def get_latest_origin_hash(self, target_id: str) -> str:
        return self._tree(target_id).remote

    async def get_author(self, target_id: str, commit: str) -> str:
        self._tree(target_id)
        return "Alice"

    async def get_message(self, target_id: str, commit: str) -> str:
        self._tree(target_id)
        return "Fix the thing"

    async def update(self, target_id: str) -> None:
        tree = self._tree(target_id)
        tree.local = tree.remote
        self.updated.append(target_id)


class FakeConfigLoader:
    """Targets configuration held in memory, returned fresh on each load."""

    def __init__(self, targets: dict[str, bool] | None = None):
        self.targets = dict(targets or {})
        self.loads = 0
        self.error: Exception | None = None

    def load(self) -> dict[str, Target]:
        self.loads += 1
        if self.error:
            raise self.error
        return {
            target_id: Target(id=target_id, active=active)
            for target_id, active in self.targets.items()
        }

    def get(self, target_id: str) -> Target:
        targets = self.load()
        if target_id not in targets:
            raise ConfigurationError(f"Unknown target: {target_id}")
        return targets[target_id]


def fixed_order(*order: str):
    """Return a shuffle function arranging targets in the given id order."""

    def shuffle(targets: list[Target]) -> None:
        targets.sort(key=lambda target: order.index(target.id))

    return shuffle


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def notifier():
    return FakeNotifier()
