"""
Job registry enforcing single-flight builds per target.

The registry holds the active builds keyed by target id, plus at most one
queued request per target waiting behind its active build. It is mutated
only from the event loop that owns it: build(), on_complete() and cancel()
are synchronous and run to completion, and executors report back by
resolving their build handle, whose done callback lands on that same loop.
"""

import asyncio
import logging
from collections.abc import Coroutine, Iterator
from contextlib import contextmanager
from typing import Any

from fleet_common.models import (
    ActiveJob,
    AdmissionOutcome,
    BuildCompletion,
    BuildOptions,
    BuildPayload,
    QueuedRequest,
)
from fleet_common.ports import BuildExecutor, Notifier

logger = logging.getLogger(__name__)


class JobRegistry:
    """
    Bounded set of active builds with a one-deep queue per target.

    Admission rules:
    - A target already building gets its request queued, unless a request
      is already queued for it, in which case the new one is dropped.
    - A target not building is dispatched immediately if a slot is free.
    - Each completion promotes at most one queued request.
    """

    def __init__(
        self,
        executor: BuildExecutor,
        notifier: Notifier,
        max_jobs: int = 2,
    ):
        """
        Initialize the registry.

        Args:
            executor: Executor that runs builds
            notifier: Notifier used to report builds that failed to start
            max_jobs: Maximum number of concurrently active builds
        """
        if max_jobs < 1:
            raise ValueError(f"max_jobs must be at least 1, got {max_jobs}")

        self.executor = executor
        self.notifier = notifier
        self.max_jobs = max_jobs

        self._active: dict[str, ActiveJob] = {}
        # Insertion order is the promotion order
        self._queued: dict[str, QueuedRequest] = {}
        # Targets whose working tree is in use outside of a build
        self._held: set[str] = set()
        self._background: set[asyncio.Task] = set()

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def at_capacity(self) -> bool:
        return len(self._active) >= self.max_jobs

    def is_active(self, target_id: str) -> bool:
        return target_id in self._active

    def is_queued(self, target_id: str) -> bool:
        return target_id in self._queued

    def is_held(self, target_id: str) -> bool:
        return target_id in self._held

    def active_jobs(self) -> list[ActiveJob]:
        return list(self._active.values())

    def queued_requests(self) -> list[QueuedRequest]:
        return list(self._queued.values())

    def snapshot(self) -> dict[str, Any]:
        """Return the registry state in a JSON-friendly form."""
        return {
            "max_jobs": self.max_jobs,
            "active": [job.to_dict() for job in self._active.values()],
            "queued": [request.to_dict() for request in self._queued.values()],
        }

    def build(
        self, target_id: str, options: BuildOptions | None = None
    ) -> AdmissionOutcome:
        """
        Submit a build request for a target.

        Args:
            target_id: Target to build
            options: Build options (defaults to BuildOptions())

        Returns:
            How the request was admitted
        """
        options = options or BuildOptions()
        logger.info(f"Building {target_id} with {options.to_dict()}")

        if target_id in self._active:
            if target_id not in self._queued:
                self._queued[target_id] = QueuedRequest(target_id, options)
                logger.info(
                    f"Queueing {target_id} for a build as it's already being built. "
                    f"Queue: {list(self._queued)}"
                )
                return AdmissionOutcome.QUEUED

            logger.info(
                f"Already building {target_id} and it's already queued, "
                f"dropping request. Queue: {list(self._queued)}"
            )
            return AdmissionOutcome.DROPPED

        if target_id in self._held:
            logger.warning(f"Refusing build for {target_id}: working tree is held")
            return AdmissionOutcome.REJECTED

        if self.at_capacity:
            logger.warning(
                f"Refusing build for {target_id}: "
                f"{self.active_count}/{self.max_jobs} jobs running"
            )
            return AdmissionOutcome.REJECTED

        return self._dispatch(target_id, options)

    def _dispatch(self, target_id: str, options: BuildOptions) -> AdmissionOutcome:
        job = ActiveJob(target_id=target_id, options=options)
        self._active[target_id] = job

        try:
            handle = self.executor.run(target_id, options)
        except Exception as e:
            # Roll back so the slot is not leaked by a build that never started
            del self._active[target_id]
            logger.error(f"Failed to start build for {target_id}: {e}", exc_info=True)
            self._spawn(
                self.notifier.send_build_complete(
                    BuildPayload(server=target_id, error=str(e) or True)
                )
            )
            return AdmissionOutcome.FAILED

        job.handle = handle
        handle.add_done_callback(
            lambda completion: self._handle_completion(job, completion)
        )
        logger.info(
            f"Started build for {target_id} "
            f"({self.active_count}/{self.max_jobs} jobs running)"
        )
        return AdmissionOutcome.STARTED

    def _handle_completion(self, job: ActiveJob, completion: BuildCompletion) -> None:
        if self._active.get(job.target_id) is not job:
            logger.warning(
                f"Ignoring completion for {job.target_id}: job is no longer active"
            )
            return

        if completion.error:
            logger.info(f"Build for {job.target_id} failed: {completion.error}")
        self.on_complete(job.target_id, completion.cancelled)

    def on_complete(self, target_id: str, cancelled: bool = False) -> str | None:
        """
        Release the slot of a finished build and promote one queued request.

        Args:
            target_id: Target whose build finished
            cancelled: Whether the build was cancelled

        Returns:
            Target id of the promoted request, or None
        """
        self._active.pop(target_id, None)
        logger.info(
            f"Build for {target_id} {'cancelled' if cancelled else 'completed'} "
            f"({self.active_count}/{self.max_jobs} jobs running)"
        )

        if cancelled and self._queued.pop(target_id, None) is not None:
            logger.info(f"Discarding queued build for cancelled target {target_id}")

        return self._promote_next()

    def _promote_next(self) -> str | None:
        if self.at_capacity:
            return None

        for request in list(self._queued.values()):
            if request.target_id in self._active:
                continue
            del self._queued[request.target_id]
            logger.info(
                f"Triggering queued job for {request.target_id}. "
                f"Queue: {list(self._queued)}"
            )
            self.build(request.target_id, request.options)
            return request.target_id

        return None

    def cancel(self, target_id: str) -> bool:
        """
        Ask the active build of a target to cancel.

        The slot is released when the build reports its cancelled completion.

        Returns:
            True if a build was active for the target
        """
        job = self._active.get(target_id)
        if job is None or job.handle is None:
            return False

        logger.info(f"Cancelling build for {target_id}")
        job.handle.cancel()
        return True

    @contextmanager
    def hold(self, target_id: str) -> Iterator[None]:
        """
        Keep builds away from a target's working tree for the duration.

        Used for operator actions such as switching branches. Builds
        requested meanwhile are refused, not queued.

        Raises:
            RuntimeError: If the target is building or already held
        """
        if target_id in self._active or target_id in self._held:
            raise RuntimeError(f"Working tree of {target_id} is busy")

        self._held.add(target_id)
        try:
            yield
        finally:
            self._held.discard(target_id)

    async def wait_idle(self) -> None:
        """Wait until no build is active, including promoted ones."""
        while self._active:
            handles = [job.handle for job in self._active.values() if job.handle]
            await asyncio.gather(*(handle.wait() for handle in handles))
            # Let the completion callbacks run before re-checking
            await asyncio.sleep(0)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
