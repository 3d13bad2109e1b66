"""
Process session adapter: the engine's only view of tmux.

Wraps a TmuxInterface with the prefix filter, bounded timeouts, the
last-known-good capture cache and typed errors. Everything above this
layer deals in session ids and Capture objects, never in libtmux.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional, Set, Tuple, TypeVar

from .exceptions import (
    CaptureTimeoutError,
    CommandFailedError,
    CreateConflictError,
    ManagerUnavailableError,
    SessionVanishedError,
)
from .implementations import RealTmux
from .protocols import TmuxInterface
from .settings import SESSION_PREFIX

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Capture:
    """Output captured from one session.

    stale is True when the lines are a previously captured copy because
    the latest capture timed out or failed.
    """

    lines: Tuple[str, ...]
    stale: bool = False
    captured_at: Optional[datetime] = None


class SessionAdapter:
    """Bounded, prefix-aware operations on agent sessions."""

    def __init__(
        self,
        tmux: Optional[TmuxInterface] = None,
        prefix: str = SESSION_PREFIX,
        capture_timeout: float = 2.0,
        max_workers: int = 8,
    ):
        self.tmux = tmux or RealTmux()
        self.prefix = prefix
        self.capture_timeout = capture_timeout
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="swarm-tmux"
        )
        self._last_good: Dict[str, Capture] = {}
        self._lock = threading.Lock()

    def close(self) -> None:
        """Release worker threads (pending hung calls are abandoned)."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _bounded(self, session_id: str, fn: Callable[..., T], *args) -> T:
        """Run a tmux call with the capture timeout.

        Raises:
            CaptureTimeoutError: the call did not finish in time
        """
        future = self._executor.submit(fn, *args)
        try:
            return future.result(timeout=self.capture_timeout)
        except FutureTimeout:
            future.cancel()
            raise CaptureTimeoutError(session_id, self.capture_timeout)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_sessions(self) -> Set[str]:
        """Live session ids carrying the reserved prefix.

        Raises:
            ManagerUnavailableError: tmux could not be queried (or hung).
                Callers must treat this as "no change", not "no sessions".
        """
        try:
            names = self._bounded("*", self.tmux.list_sessions)
        except CaptureTimeoutError:
            raise ManagerUnavailableError("tmux did not answer list-sessions in time")
        if names is None:
            raise ManagerUnavailableError("tmux server could not be queried")
        return {name for name in names if name.startswith(self.prefix)}

    def capture_output(self, session_id: str, max_lines: int) -> Capture:
        """Capture the session's most recent lines.

        On timeout or a transient failure the last known-good capture is
        returned with stale=True (empty if there never was one).

        Raises:
            SessionVanishedError: the session no longer exists
        """
        try:
            content = self._bounded(session_id, self.tmux.capture_pane, session_id, max_lines)
        except CaptureTimeoutError as e:
            logger.warning("%s; using last known output", e)
            return self._stale(session_id)

        if content is None:
            try:
                alive = self._bounded(session_id, self.tmux.has_session, session_id)
            except CaptureTimeoutError as e:
                logger.warning("%s; using last known output", e)
                return self._stale(session_id)
            if not alive:
                self.forget(session_id)
                raise SessionVanishedError(session_id)
            logger.debug("Capture of %s failed; using last known output", session_id)
            return self._stale(session_id)

        lines = content.split("\n")
        capture = Capture(lines=tuple(lines[-max_lines:]), captured_at=datetime.now())
        with self._lock:
            self._last_good[session_id] = capture
        return capture

    def _stale(self, session_id: str) -> Capture:
        with self._lock:
            previous = self._last_good.get(session_id)
        if previous is None:
            return Capture(lines=(), stale=True)
        return Capture(lines=previous.lines, stale=True, captured_at=previous.captured_at)

    def last_activity(self, session_id: str) -> Optional[datetime]:
        """Time of the session's last output, or None if unknown."""
        try:
            ts = self._bounded(session_id, self.tmux.pane_activity, session_id)
        except CaptureTimeoutError:
            return None
        if ts is None:
            return None
        return datetime.fromtimestamp(ts)

    def current_path(self, session_id: str) -> Optional[str]:
        """Working directory of the session's pane, if tmux reports one."""
        try:
            return self._bounded(session_id, self.tmux.current_path, session_id)
        except CaptureTimeoutError:
            return None

    def forget(self, session_id: str) -> None:
        """Drop the cached last-known-good capture for a session."""
        with self._lock:
            self._last_good.pop(session_id, None)

    # ------------------------------------------------------------------
    # Commands (never retried)
    # ------------------------------------------------------------------

    def send_text(self, session_id: str, text: str, submit: bool = True) -> None:
        if not self.tmux.send_keys(session_id, text, enter=submit):
            raise CommandFailedError(session_id, "send text to")

    def send_raw_key(self, session_id: str, key: str) -> None:
        if not self.tmux.send_key(session_id, key):
            raise CommandFailedError(session_id, f"send key {key} to")

    def create_session(self, session_id: str, working_directory: str,
                       initial_command: Optional[str] = None) -> None:
        """Create a detached session.

        Raises:
            CreateConflictError: a session with this id already exists
            CommandFailedError: tmux refused to create it
        """
        if self.tmux.has_session(session_id):
            raise CreateConflictError(session_id)
        if not self.tmux.new_session(session_id, cwd=working_directory, command=initial_command):
            raise CommandFailedError(session_id, "create session", working_directory)
        self.forget(session_id)

    def kill_session(self, session_id: str) -> None:
        """Kill a session. Killing one that is already gone is not an error."""
        if self.tmux.has_session(session_id) and not self.tmux.kill_session(session_id):
            if self.tmux.has_session(session_id):
                raise CommandFailedError(session_id, "kill session")
        self.forget(session_id)
