"""
Polling scheduler that rebuilds targets whose upstream moved.

Each polling cycle reads the targets configuration afresh, visits the
targets in a random order, and submits a build for every active target
whose local commit differs from the tracked remote commit. The cycle stops
as soon as the job registry is at capacity; targets not visited are simply
reconsidered on the next cycle.
"""

import asyncio
import logging
import random
from collections.abc import Callable

from fleet_common.errors import ConfigurationError, VCSError
from fleet_common.models import AdmissionOutcome, BuildOptions, Target
from fleet_common.ports import VCSPort

from .registry import JobRegistry
from .target_config import TargetConfigLoader

logger = logging.getLogger(__name__)


class Scheduler:
    """
    Drives polling cycles over the targets configuration.

    The scheduler runs a background loop that:
    1. Checks whether the job registry has a free slot
    2. Loads the targets configuration
    3. Fetches each eligible target and compares local and remote hashes
    4. Submits stale targets to the job registry until it is full
    """

    def __init__(
        self,
        registry: JobRegistry,
        vcs: VCSPort,
        config_loader: TargetConfigLoader,
        poll_interval: float = 60.0,
        branch_prefix: str = "testmerge-",
        shuffle: Callable[[list[Target]], None] = random.shuffle,
    ):
        """
        Initialize the scheduler.

        Args:
            registry: Job registry receiving build requests
            vcs: Version-control adapter for the target working trees
            config_loader: Loader for the targets configuration
            poll_interval: Seconds between polling cycles
            branch_prefix: Targets on a branch with this prefix are not rebuilt
            shuffle: In-place shuffle deciding the visiting order of a cycle
        """
        self.registry = registry
        self.vcs = vcs
        self.config_loader = config_loader
        self.poll_interval = poll_interval
        self.branch_prefix = branch_prefix
        self._shuffle = shuffle

        self._running = False
        self._cycle_in_progress = False
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the polling loop."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Scheduler started (polling every {self.poll_interval}s)")

    async def stop(self) -> None:
        """Stop the polling loop. Running builds are left to finish."""
        if not self._running:
            return

        logger.info("Stopping scheduler...")
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Scheduler stopped")

    async def _run_loop(self) -> None:
        """Main polling loop."""
        while self._running:
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in polling cycle: {e}", exc_info=True)
            await asyncio.sleep(self.poll_interval)

    async def run_cycle(self) -> list[str]:
        """
        Perform one polling cycle.

        Returns:
            Ids of the targets submitted to the registry, in visiting order
        """
        if self._cycle_in_progress:
            logger.info("Polling cycle already in progress, skipping.")
            return []

        if self.registry.at_capacity:
            logger.info("Already running max jobs, aborting.")
            return []

        try:
            targets = list(self.config_loader.load().values())
        except ConfigurationError as e:
            logger.error(f"Cannot load targets configuration: {e}")
            return []

        self._cycle_in_progress = True
        try:
            return await self._visit(targets)
        finally:
            self._cycle_in_progress = False

    async def _visit(self, targets: list[Target]) -> list[str]:
        self._shuffle(targets)
        submitted: list[str] = []

        for target in targets:
            if not target.active:
                continue
            if self.registry.is_held(target.id):
                logger.info(f"Skipping {target.id}: working tree is held")
                continue

            try:
                stale = await self._is_stale(target.id)
            except (ConfigurationError, VCSError) as e:
                logger.warning(f"Skipping {target.id}: {e}")
                continue
            except Exception as e:
                logger.error(f"Error checking {target.id}: {e}", exc_info=True)
                continue

            if stale:
                # Already fetched, the build does not need to fetch again
                outcome = self.registry.build(target.id, BuildOptions())
                if outcome is not AdmissionOutcome.REJECTED:
                    submitted.append(target.id)

            if self.registry.at_capacity:
                logger.info("Reached max compile jobs.")
                break

        return submitted

    async def _is_stale(self, target_id: str) -> bool:
        branch = await self.vcs.get_branch(target_id)
        if branch.startswith(self.branch_prefix):
            logger.debug(f"Skipping {target_id}: on reserved branch {branch}")
            return False

        await self.vcs.fetch(target_id)
        current_hash = await self.vcs.get_current_local_hash(target_id)
        latest_hash = await self.vcs.get_latest_origin_hash(target_id)
        if current_hash != latest_hash:
            logger.info(
                f"{target_id} has updates ({current_hash[:8]} -> {latest_hash[:8]})"
            )
            return True
        return False
