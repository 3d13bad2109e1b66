"""
Per-session metadata kept on disk.

Each session gets a directory under ~/.swarm/sessions/<session-id>/ holding
one small plain-text file per field:

    task      path of the linked task document
    agent     agent kind ("claude", "codex", ...)
    yolo      present when the agent runs with permission prompts disabled
    worktree  path of the isolated workspace, if one was provisioned

Plain files keep the store trivially inspectable and editable by hand.
Metadata outlives the tmux session and is removed only on explicit end
or prune.
"""

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from .exceptions import MetadataCorruptError
from .settings import get_sessions_dir

logger = logging.getLogger(__name__)

DEFAULT_AGENT = "claude"

TASK_FILE = "task"
AGENT_FILE = "agent"
PRIVILEGED_FILE = "yolo"
WORKTREE_FILE = "worktree"


@dataclass
class SessionMetadata:
    """What we remember about a session beyond what tmux knows."""

    session_id: str
    linked_task_path: Optional[str] = None
    agent_kind: str = DEFAULT_AGENT
    privileged: bool = False
    isolation_path: Optional[str] = None


class SessionStore:
    """Reads and writes session metadata directories."""

    def __init__(self, base_dir: Optional[Path] = None):
        self._base_dir = base_dir

    @property
    def base_dir(self) -> Path:
        # Resolved lazily so SWARM_STATE_DIR changes (tests) are honored
        return self._base_dir or get_sessions_dir()

    def session_dir(self, session_id: str) -> Path:
        return self.base_dir / session_id

    def _read_field(self, session_id: str, directory: Path, name: str) -> Optional[str]:
        path = directory / name
        if not path.exists():
            return None
        if not path.is_file():
            raise MetadataCorruptError(session_id, f"'{name}' is not a file")
        try:
            value = path.read_text(encoding="utf-8").strip()
        except UnicodeDecodeError:
            raise MetadataCorruptError(session_id, f"'{name}' is not valid UTF-8")
        except OSError as e:
            raise MetadataCorruptError(session_id, f"'{name}' unreadable ({e})")
        return value or None

    def read(self, session_id: str) -> Optional[SessionMetadata]:
        """Strict read.

        Returns:
            SessionMetadata, or None if no metadata exists

        Raises:
            MetadataCorruptError: metadata exists but cannot be read
        """
        directory = self.session_dir(session_id)
        if not directory.exists():
            return None
        if not directory.is_dir():
            raise MetadataCorruptError(session_id, "metadata entry is not a directory")

        task = self._read_field(session_id, directory, TASK_FILE)
        agent = self._read_field(session_id, directory, AGENT_FILE)
        worktree = self._read_field(session_id, directory, WORKTREE_FILE)
        privileged_path = directory / PRIVILEGED_FILE

        return SessionMetadata(
            session_id=session_id,
            linked_task_path=task,
            agent_kind=agent or DEFAULT_AGENT,
            privileged=privileged_path.exists(),
            isolation_path=worktree,
        )

    def load(self, session_id: str) -> Optional[SessionMetadata]:
        """Tolerant read: corrupt metadata is logged and treated as absent."""
        try:
            return self.read(session_id)
        except MetadataCorruptError as e:
            logger.warning("%s; treating session as unlinked", e)
            return None

    def save(self, metadata: SessionMetadata) -> None:
        """Write all fields (best effort, not transactional)."""
        directory = self.session_dir(metadata.session_id)
        directory.mkdir(parents=True, exist_ok=True)

        self._write_or_remove(directory / TASK_FILE, metadata.linked_task_path)
        self._write_or_remove(directory / AGENT_FILE, metadata.agent_kind)
        self._write_or_remove(directory / PRIVILEGED_FILE, "1" if metadata.privileged else None)
        self._write_or_remove(directory / WORKTREE_FILE, metadata.isolation_path)

    @staticmethod
    def _write_or_remove(path: Path, value: Optional[str]) -> None:
        if value:
            path.write_text(f"{value}\n", encoding="utf-8")
        elif path.is_file():
            path.unlink()

    def delete(self, session_id: str) -> bool:
        """Remove a session's metadata. Returns False if there was none."""
        directory = self.session_dir(session_id)
        if directory.is_dir():
            shutil.rmtree(directory)
            return True
        if directory.exists():
            directory.unlink()
            return True
        return False

    def list_ids(self) -> List[str]:
        """Session ids with a metadata entry, sorted."""
        if not self.base_dir.is_dir():
            return []
        return sorted(p.name for p in self.base_dir.iterdir())

    def find_by_task(self, task_path: str, among: Optional[Iterable[str]] = None) -> List[str]:
        """Session ids whose metadata links to task_path.

        Args:
            task_path: Task document path to match
            among: Restrict the search to these ids (e.g. live sessions)
        """
        target = normalize_task_path(task_path)
        candidates = sorted(among) if among is not None else self.list_ids()
        matches = []
        for session_id in candidates:
            metadata = self.load(session_id)
            if metadata and metadata.linked_task_path and normalize_task_path(metadata.linked_task_path) == target:
                matches.append(session_id)
        return matches

    def prune(self, live_ids: Iterable[str]) -> List[str]:
        """Delete metadata for sessions that are no longer alive.

        Returns:
            The ids whose metadata was removed
        """
        live = set(live_ids)
        removed = []
        for session_id in self.list_ids():
            if session_id not in live:
                self.delete(session_id)
                removed.append(session_id)
        if removed:
            logger.info("Pruned metadata for %d dead session(s)", len(removed))
        return removed


def normalize_task_path(path: str) -> str:
    """Absolute form of a task document path, used to compare links."""
    return str(Path(path).expanduser().resolve())
