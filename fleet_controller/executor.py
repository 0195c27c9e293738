"""
Build executor running the external compile command.

A build updates the target's working tree, runs the compile command with a
transient compile log, reports the outcome through the notifier and then
resolves its build handle, exactly once, whatever happened on the way.
"""

import asyncio
import logging
import os
import signal
import uuid
from pathlib import Path

from fleet_common.errors import BuildStartError, VCSError
from fleet_common.models import BuildOptions, BuildPayload
from fleet_common.ports import BuildExecutor, BuildHandle, Notifier, VCSPort

logger = logging.getLogger(__name__)

# Trailing part of the compile log kept in the notification
MAX_COMPILE_LOG_CHARS = 4000

# Seconds a terminated build gets to exit before it is killed
DEFAULT_TERMINATE_GRACE = 5.0


class ShellBuildExecutor(BuildExecutor):
    """
    Runs builds as subprocesses of the configured compile command.

    The command is invoked as::

        <build_command> -s <target_id> -b <compile_log> -c <api_key> [-r]

    where -r asks the compile script to skip the CDN publish.
    """

    def __init__(
        self,
        vcs: VCSPort,
        notifier: Notifier,
        build_command: list[str],
        build_log_dir: str | Path = "logs/builds",
        api_key: str = "",
        timeout: float | None = None,
        cwd: str | Path | None = None,
        terminate_grace: float = DEFAULT_TERMINATE_GRACE,
    ):
        """
        Initialize the executor.

        Args:
            vcs: Version-control adapter for the target working trees
            notifier: Notifier receiving build outcomes
            build_command: Compile command and its leading arguments
            build_log_dir: Directory for the transient compile logs
            api_key: Key handed to the compile command
            timeout: Seconds after which a build is cancelled (None: no limit)
            cwd: Working directory for the compile command
            terminate_grace: Seconds between SIGTERM and SIGKILL when stopping a build
        """
        if not build_command:
            raise ValueError("build_command must not be empty")

        self.vcs = vcs
        self.notifier = notifier
        self.build_command = list(build_command)
        self.build_log_dir = Path(build_log_dir)
        self.api_key = api_key
        self.timeout = timeout
        self.cwd = cwd
        self.terminate_grace = terminate_grace
        self._tasks: set[asyncio.Task] = set()

    def run(self, target_id: str, options: BuildOptions) -> BuildHandle:
        if not self.vcs.has_working_tree(target_id):
            raise BuildStartError(f"Target {target_id} has no working tree")

        handle = BuildHandle(target_id)
        task = asyncio.get_running_loop().create_task(self._execute(handle, options))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return handle

    def compile_command(
        self, target_id: str, compile_log: Path, options: BuildOptions
    ) -> list[str]:
        """Return the full compile command line for a build."""
        command = [
            *self.build_command,
            "-s",
            target_id,
            "-b",
            str(compile_log),
            "-c",
            self.api_key,
        ]
        if options.skip_cdn:
            command.append("-r")
        return command

    def _compile_log_path(self, target_id: str) -> Path:
        return self.build_log_dir / f"{target_id}-{uuid.uuid4().hex[:9]}.log"

    async def _execute(self, handle: BuildHandle, options: BuildOptions) -> None:
        target_id = handle.target_id
        compile_log = self._compile_log_path(target_id)
        cancelled = False
        error: str | bool | None = None

        try:
            if options.fetch_repo:
                await self.vcs.fetch(target_id)
            await self.vcs.update(target_id)
            cancelled, error = await self._compile(handle, compile_log, options)
        except asyncio.CancelledError:
            handle.complete(cancelled=True)
            raise
        except Exception as e:
            logger.error(f"Building {target_id} failed: {e}", exc_info=True)
            error = str(e) or True
        finally:
            last_compile = self._consume_compile_log(compile_log)

        try:
            if cancelled:
                logger.info(f"Build for {target_id} was cancelled")
            elif not options.skip_notifier:
                payload = await self._build_payload(
                    target_id, last_compile, error, options
                )
                await self.notifier.send_build_complete(payload)
        except Exception as e:
            logger.error(f"Error reporting build of {target_id}: {e}", exc_info=True)
        finally:
            handle.complete(cancelled=cancelled, error=error)

    async def _compile(
        self, handle: BuildHandle, compile_log: Path, options: BuildOptions
    ) -> tuple[bool, str | bool | None]:
        """
        Run the compile command until it exits, is cancelled or times out.

        Returns:
            Tuple of (cancelled, error)
        """
        target_id = handle.target_id
        compile_log.parent.mkdir(parents=True, exist_ok=True)
        command = self.compile_command(target_id, compile_log, options)

        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.cwd,
            # Own process group, signalled as a whole on cancel and timeout
            start_new_session=True,
        )

        communicate = asyncio.ensure_future(process.communicate())
        cancel_requested = asyncio.ensure_future(handle.cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {communicate, cancel_requested},
                timeout=self.timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            # Shutdown: do not leave the compiler running
            cancel_requested.cancel()
            self._signal_group(process, signal.SIGKILL)
            communicate.cancel()
            raise
        finally:
            cancel_requested.cancel()

        if communicate not in done:
            if handle.cancel_requested:
                logger.warning(f"Build for {target_id} cancelled, terminating")
            else:
                logger.warning(
                    f"Build for {target_id} exceeded {self.timeout}s, terminating"
                )
            await self._stop(target_id, process, communicate)
            return True, None

        stdout, stderr = communicate.result()
        stderr_text = stderr.decode(errors="replace").strip() if stderr else ""

        if process.returncode != 0 or stderr_text:
            logger.error(
                f"Building {target_id} failed. Exit code: {process.returncode}. "
                f"Stderr: {stderr_text}"
            )
            return False, stderr_text or True

        output = stdout.decode(errors="replace") if stdout else ""
        logger.info(f"Building {target_id} succeeded! Output:\n{output}")
        return False, None

    async def _stop(
        self,
        target_id: str,
        process: asyncio.subprocess.Process,
        communicate: asyncio.Future,
    ) -> None:
        """
        Stop the process group of a build and wait for its output pipes to close.

        SIGTERM first, SIGKILL if the group is still holding the pipes after
        the grace period.
        """
        self._signal_group(process, signal.SIGTERM)
        done, _ = await asyncio.wait({communicate}, timeout=self.terminate_grace)
        if not done:
            logger.warning(
                f"Build for {target_id} ignored SIGTERM for {self.terminate_grace}s, killing"
            )
            self._signal_group(process, signal.SIGKILL)
            await communicate

    @staticmethod
    def _signal_group(process: asyncio.subprocess.Process, sig: int) -> None:
        try:
            os.killpg(process.pid, sig)
        except ProcessLookupError:
            pass

    @staticmethod
    def _consume_compile_log(compile_log: Path) -> str:
        """Read and delete the transient compile log."""
        try:
            content = compile_log.read_text(errors="replace").strip()
        except OSError:
            return ""
        try:
            compile_log.unlink()
        except OSError as e:
            logger.warning(f"Cannot remove compile log {compile_log}: {e}")
        return content[-MAX_COMPILE_LOG_CHARS:]

    async def _build_payload(
        self,
        target_id: str,
        last_compile: str,
        error: str | bool | None,
        options: BuildOptions,
    ) -> BuildPayload:
        payload = BuildPayload(
            server=target_id,
            last_compile=last_compile,
            error=error,
            map_switch=options.map_switch,
        )
        try:
            commit = await self.vcs.get_current_local_hash(target_id)
            payload.commit = commit
            payload.branch = await self.vcs.get_branch(target_id)
            payload.author = await self.vcs.get_author(target_id, commit)
            payload.message = await self.vcs.get_message(target_id, commit)
        except VCSError as e:
            logger.warning(f"Incomplete build payload for {target_id}: {e}")
        return payload
