"""
Git adapter for target working trees.

This module implements the VCS port on top of the git command line. Every
target owns a folder below the servers directory; its working tree lives in
"{servers_dir}/{target_id}/repo".
"""

import asyncio
import logging
import re
from pathlib import Path

from fleet_common.errors import ConfigurationError, VCSError
from fleet_common.ports import VCSPort

logger = logging.getLogger(__name__)

TARGET_ID_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]*$")


class GitRepository(VCSPort):
    """
    Runs git operations against the working trees of the targets.

    Queries return stripped command output. Any non-zero git exit is turned
    into a VCSError carrying git's stderr.
    """

    def __init__(self, servers_dir: str | Path, git_binary: str = "git"):
        """
        Initialize the adapter.

        Args:
            servers_dir: Directory holding one folder per target
            git_binary: Git executable to invoke
        """
        self.servers_dir = Path(servers_dir)
        self.git_binary = git_binary

    def target_folder(self, target_id: str) -> Path:
        """Return the folder of a target, rejecting ids that escape servers_dir."""
        if not TARGET_ID_PATTERN.match(target_id) or ".." in target_id:
            raise ConfigurationError(f"Invalid target id: {target_id!r}")
        return self.servers_dir / target_id

    def repo_folder(self, target_id: str) -> Path:
        return self.target_folder(target_id) / "repo"

    def has_working_tree(self, target_id: str) -> bool:
        try:
            return self.repo_folder(target_id).is_dir()
        except ConfigurationError:
            return False

    def _require_working_tree(self, target_id: str) -> Path:
        folder = self.repo_folder(target_id)
        if not folder.is_dir():
            raise ConfigurationError(f"Target {target_id} has no working tree at {folder}")
        return folder

    async def _git(self, target_id: str, *args: str) -> str:
        folder = self._require_working_tree(target_id)

        try:
            process = await asyncio.create_subprocess_exec(
                self.git_binary,
                *args,
                cwd=folder,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise VCSError(f"Cannot run {self.git_binary}: {e}") from e

        stdout, stderr = await process.communicate()

        if process.returncode != 0:
            raise VCSError(
                f"git {args[0]} failed for {target_id}: {stderr.decode().strip()}"
            )

        return stdout.decode().strip()

    async def fetch(self, target_id: str) -> None:
        await self._git(target_id, "fetch", "origin")

    async def get_branch(self, target_id: str) -> str:
        return await self._git(target_id, "rev-parse", "--abbrev-ref", "HEAD")

    async def get_current_local_hash(self, target_id: str) -> str:
        return await self._git(target_id, "rev-parse", "HEAD")

    async def get_latest_origin_hash(self, target_id: str) -> str:
        branch = await self.get_branch(target_id)
        return await self._git(target_id, "rev-parse", f"origin/{branch}")

    async def get_author(self, target_id: str, commit: str) -> str:
        return await self._git(target_id, "log", "-1", "--format=%an", commit)

    async def get_message(self, target_id: str, commit: str) -> str:
        return await self._git(target_id, "log", "-1", "--format=%s", commit)

    async def update(self, target_id: str) -> None:
        branch = await self.get_branch(target_id)
        await self._git(target_id, "reset", "--hard", f"origin/{branch}")

    async def clean(self, target_id: str) -> None:
        await self._git(target_id, "clean", "-fdx")

    async def branch_exists(self, target_id: str, branch: str) -> bool:
        """Return whether the remote has a branch with this name."""
        output = await self._git(target_id, "ls-remote", "--heads", "origin", branch)
        return bool(output)

    async def switch_branch(self, target_id: str, branch: str) -> None:
        """
        Check out a remote branch in the target's working tree.

        The working tree is cleaned and moved to the tip of the new branch.

        Raises:
            ConfigurationError: If the branch name is invalid or does not exist
        """
        if not branch or branch.startswith("-"):
            raise ConfigurationError(f"Invalid branch name: {branch!r}")

        await self.fetch(target_id)
        if not await self.branch_exists(target_id, branch):
            raise ConfigurationError(f"Branch {branch} does not exist")

        logger.info(f"Switching {target_id} to branch {branch}")
        await self._git(target_id, "checkout", branch)
        await self.clean(target_id)
        await self.update(target_id)

    def set_map_override(self, target_id: str, map_name: str) -> Path:
        """
        Write the map override file picked up by the next round of a target.

        Returns:
            Path of the written file
        """
        folder = self.target_folder(target_id)
        if not folder.is_dir():
            raise ConfigurationError(f"Unknown target: {target_id}")

        path = folder / "mapoverride"
        path.write_text(map_name.upper())
        logger.info(f"Set map override for {target_id} to {map_name.upper()}")
        return path
