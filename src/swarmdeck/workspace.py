"""
Isolated workspaces for agents (git worktrees by default).

The engine only records the path a workspace ends up at. Creating and
removing it is delegated either to git directly or to an operator-supplied
script configured as workspace_script:

    <script> provision <repo> <name> <branch>   # prints the workspace path
    <script> cleanup <path>
"""

import logging
from pathlib import Path
from typing import List, Optional

from .config import EngineConfig
from .exceptions import WorkspaceError
from .implementations import RealSubprocess
from .protocols import SubprocessInterface

logger = logging.getLogger(__name__)

FETCH_TIMEOUT = 60
WORKTREE_TIMEOUT = 120
SCRIPT_TIMEOUT = 300


class WorkspaceProvisioner:
    """Creates and removes per-agent isolated checkouts."""

    def __init__(self, config: EngineConfig, subprocess: Optional[SubprocessInterface] = None):
        self.config = config
        self.subprocess = subprocess or RealSubprocess()

    def _run(self, cmd: List[str], timeout: int, action: str) -> str:
        result = self.subprocess.run(cmd, timeout=timeout)
        if result is None:
            raise WorkspaceError(f"{action}: '{cmd[0]}' failed to run or timed out")
        if result["returncode"] != 0:
            detail = (result.get("stderr") or result.get("stdout") or "").strip()
            raise WorkspaceError(f"{action}: {detail or 'exit code ' + str(result['returncode'])}")
        return result.get("stdout") or ""

    def provision(self, repo: Path, name: str) -> Path:
        """Create an isolated workspace for an agent called name.

        Returns:
            Path of the new workspace

        Raises:
            WorkspaceError: the workspace could not be created
        """
        branch = f"{self.config.resolved_branch_prefix()}{name}"
        if self.config.workspace_script:
            stdout = self._run(
                [self.config.workspace_script, "provision", str(repo), name, branch],
                SCRIPT_TIMEOUT, "workspace script",
            )
            lines = [line.strip() for line in stdout.splitlines() if line.strip()]
            if not lines:
                raise WorkspaceError("workspace script printed no path")
            return Path(lines[-1]).expanduser()

        base = self.config.worktree_dir
        base.mkdir(parents=True, exist_ok=True)
        path = base / name
        if path.exists():
            raise WorkspaceError(f"{path} already exists")

        # Best effort: offline repos still get a worktree off the last fetch
        fetched = self.subprocess.run(
            ["git", "-C", str(repo), "fetch", "origin", "main"], timeout=FETCH_TIMEOUT
        )
        if fetched is None or fetched["returncode"] != 0:
            logger.warning("git fetch origin main failed in %s; using local origin/main", repo)

        self._run(
            ["git", "-C", str(repo), "worktree", "add", str(path), "-b", branch, "origin/main"],
            WORKTREE_TIMEOUT, "git worktree add",
        )
        logger.info("Created worktree %s on branch %s", path, branch)
        return path

    def cleanup(self, path: str) -> None:
        """Remove a workspace created by provision().

        Raises:
            WorkspaceError: removal failed
        """
        if self.config.workspace_script:
            self._run(
                [self.config.workspace_script, "cleanup", path],
                SCRIPT_TIMEOUT, "workspace script",
            )
            return

        main_repo = self._main_repo(path)
        self._run(
            ["git", "-C", str(main_repo), "worktree", "remove", "--force", path],
            WORKTREE_TIMEOUT, "git worktree remove",
        )
        logger.info("Removed worktree %s", path)

    def _main_repo(self, path: str) -> Path:
        """The repository a worktree belongs to (parent of the shared .git dir)."""
        stdout = self._run(
            ["git", "-C", path, "rev-parse", "--git-common-dir"],
            FETCH_TIMEOUT, "git rev-parse",
        )
        common = Path(stdout.strip())
        if not common.is_absolute():
            common = Path(path) / common
        return common.parent
