"""
Interfaces for the collaborators of the build scheduler.

This module defines the contracts that the version-control adapter, the
build executor and the notifier must follow, allowing the scheduler core to
be exercised with in-memory fakes and real implementations to be swapped.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable

from .models import BuildCompletion, BuildOptions, BuildPayload


class BuildHandle:
    """
    Handle to a running build.

    The handle resolves exactly once to a BuildCompletion. Further calls to
    complete() are ignored, so a build can never release its slot twice.
    """

    def __init__(self, target_id: str):
        self.target_id = target_id
        self.cancel_event = asyncio.Event()
        self._completion: asyncio.Future[BuildCompletion] = (
            asyncio.get_running_loop().create_future()
        )

    def complete(self, cancelled: bool = False, error: str | bool | None = None) -> bool:
        """
        Deliver the completion signal.

        Returns:
            True if this call resolved the handle, False if it was already done
        """
        if self._completion.done():
            return False
        self._completion.set_result(
            BuildCompletion(target_id=self.target_id, cancelled=cancelled, error=error)
        )
        return True

    def cancel(self) -> None:
        """Request cancellation; the build still reports through complete()."""
        self.cancel_event.set()

    @property
    def cancel_requested(self) -> bool:
        return self.cancel_event.is_set()

    def done(self) -> bool:
        return self._completion.done()

    def add_done_callback(self, callback: Callable[[BuildCompletion], None]) -> None:
        """Register a callback invoked on the event loop with the completion."""
        self._completion.add_done_callback(lambda fut: callback(fut.result()))

    async def wait(self) -> BuildCompletion:
        """Wait for the build to complete."""
        return await asyncio.shield(self._completion)


class VCSPort(ABC):
    """
    Abstract base class for version-control queries on target working trees.

    All queries are point-in-time. Implementations raise ConfigurationError
    when the target has no working tree and VCSError when an operation fails.
    """

    @abstractmethod
    async def fetch(self, target_id: str) -> None:
        """Fetch the remote for the target's working tree."""
        pass

    @abstractmethod
    async def get_branch(self, target_id: str) -> str:
        """Return the name of the checked-out branch."""
        pass

    @abstractmethod
    async def get_current_local_hash(self, target_id: str) -> str:
        """Return the commit hash of the local HEAD."""
        pass

    @abstractmethod
    async def get_latest_origin_hash(self, target_id: str) -> str:
        """Return the commit hash of the tracked remote branch."""
        pass

    @abstractmethod
    async def get_author(self, target_id: str, commit: str) -> str:
        """Return the author name of a commit."""
        pass

    @abstractmethod
    async def get_message(self, target_id: str, commit: str) -> str:
        """Return the subject line of a commit."""
        pass

    @abstractmethod
    async def update(self, target_id: str) -> None:
        """Move the working tree to the tip of the tracked remote branch."""
        pass

    def has_working_tree(self, target_id: str) -> bool:
        """Return whether the target has a working tree at all."""
        return True


class BuildExecutor(ABC):
    """
    Abstract base class for running one compile job.

    run() must not block: it starts the build and returns a handle that
    resolves exactly once. Raising from run() means the build never started.
    """

    @abstractmethod
    def run(self, target_id: str, options: BuildOptions) -> BuildHandle:
        """
        Start a build.

        Args:
            target_id: Target to build
            options: Build options

        Returns:
            Handle resolving to the build's completion

        Raises:
            BuildStartError: If the build cannot be started
        """
        pass


class Notifier(ABC):
    """
    Abstract base class for outward build notifications.

    Notification is fire-and-forget: implementations must never raise.
    """

    @abstractmethod
    async def send_build_complete(self, payload: BuildPayload) -> None:
        """Report a finished build."""
        pass

