"""
Real implementations of protocol interfaces.

These are production implementations that use libtmux for tmux operations
and subprocess for everything else.
"""

import shutil
import subprocess
import time
from typing import Any, Dict, List, Optional

import libtmux
from libtmux.exc import LibTmuxException
from libtmux._internal.query_list import ObjectDoesNotExist

from .exceptions import TmuxNotFoundError
from .settings import get_tmux_socket


# stderr fragments tmux prints when there is simply no server yet
_NO_SERVER_MARKERS = ("no server running", "error connecting to", "no such file or directory")


class RealTmux:
    """Production implementation of TmuxInterface using libtmux.

    Session objects are cached briefly to reduce subprocess overhead:
    libtmux spawns a new tmux process for every command, which adds up when
    polling dozens of sessions every second.
    """

    # Cache TTL in seconds - session/pane objects rarely change
    _CACHE_TTL = 30.0

    def __init__(self, socket_name: Optional[str] = None):
        """Initialize with optional socket name for test isolation.

        If no socket_name is provided, checks SWARM_TMUX_SOCKET env var.
        """
        if shutil.which("tmux") is None:
            raise TmuxNotFoundError("tmux is not installed or not on PATH")
        self._socket_name = socket_name or get_tmux_socket()
        self._server: Optional[libtmux.Server] = None
        # Cache: session_name -> (pane, timestamp)
        self._pane_cache: Dict[str, tuple] = {}

    @property
    def server(self) -> libtmux.Server:
        """Lazy-load the tmux server connection."""
        if self._server is None:
            if self._socket_name:
                self._server = libtmux.Server(socket_name=self._socket_name)
            else:
                self._server = libtmux.Server()
        return self._server

    def _get_pane(self, session: str) -> Optional[libtmux.Pane]:
        """Get the first pane of the session's first window, with caching."""
        now = time.time()
        if session in self._pane_cache:
            cached_pane, cached_time = self._pane_cache[session]
            if now - cached_time < self._CACHE_TTL:
                return cached_pane

        try:
            sess = self.server.sessions.get(session_name=session)
            if not sess.windows or not sess.windows[0].panes:
                return None
            pane = sess.windows[0].panes[0]
        except (LibTmuxException, ObjectDoesNotExist):
            return None
        self._pane_cache[session] = (pane, now)
        return pane

    def invalidate_cache(self, session: Optional[str] = None) -> None:
        """Drop cached pane objects (all of them, or one session's)."""
        if session is None:
            self._pane_cache.clear()
        else:
            self._pane_cache.pop(session, None)

    def _display(self, session: str, fmt: str) -> Optional[str]:
        """Evaluate a tmux format string against a session's active pane."""
        try:
            result = self.server.cmd("display-message", "-p", "-t", session, fmt)
        except LibTmuxException:
            return None
        if result.returncode != 0 or not result.stdout:
            return None
        return result.stdout[0].strip() or None

    def list_sessions(self) -> Optional[List[str]]:
        try:
            result = self.server.cmd("list-sessions", "-F", "#{session_name}")
        except LibTmuxException:
            return None
        if result.returncode != 0:
            stderr = " ".join(result.stderr).lower()
            if any(marker in stderr for marker in _NO_SERVER_MARKERS):
                return []
            return None
        return [line.strip() for line in result.stdout if line.strip()]

    def capture_pane(self, session: str, lines: int = 100) -> Optional[str]:
        try:
            pane = self._get_pane(session)
            if pane is None:
                return None
            captured = pane.capture_pane(start=-lines)
            if isinstance(captured, list):
                return '\n'.join(captured)
            return captured
        except LibTmuxException:
            # Pane may have been killed - next call refetches it
            self.invalidate_cache(session)
            return None

    def pane_activity(self, session: str) -> Optional[float]:
        value = self._display(session, "#{window_activity}")
        if value is None:
            return None
        try:
            return float(value)
        except ValueError:
            return None

    def send_keys(self, session: str, keys: str, enter: bool = True) -> bool:
        try:
            pane = self._get_pane(session)
            if pane is None:
                return False

            # Agent TUIs drop an Enter that arrives in the same write as the
            # text, so they go out as separate commands with a short gap.
            if keys:
                pane.send_keys(keys, enter=False, suppress_history=False, literal=True)
                time.sleep(0.1)

            if enter:
                pane.send_keys('', enter=True, suppress_history=False)

            return True
        except LibTmuxException:
            self.invalidate_cache(session)
            return False

    def send_key(self, session: str, key: str) -> bool:
        try:
            pane = self._get_pane(session)
            if pane is None:
                return False
            pane.send_keys(key, enter=False, suppress_history=False)
            return True
        except LibTmuxException:
            self.invalidate_cache(session)
            return False

    def has_session(self, session: str) -> bool:
        try:
            return self.server.has_session(session)
        except LibTmuxException:
            return False

    def new_session(self, session: str, cwd: Optional[str] = None,
                    command: Optional[str] = None) -> bool:
        kwargs: Dict[str, Any] = {'session_name': session, 'attach': False}
        if cwd:
            kwargs['start_directory'] = cwd
        if command:
            kwargs['window_command'] = command
        try:
            self.server.new_session(**kwargs)
            return True
        except LibTmuxException:
            return False

    def kill_session(self, session: str) -> bool:
        self.invalidate_cache(session)
        try:
            sess = self.server.sessions.get(session_name=session)
            sess.kill()
            return True
        except (LibTmuxException, ObjectDoesNotExist):
            return False

    def current_path(self, session: str) -> Optional[str]:
        return self._display(session, "#{pane_current_path}")


class RealSubprocess:
    """Production implementation of SubprocessInterface"""

    def run(self, cmd: List[str], timeout: Optional[int] = None,
            capture_output: bool = True) -> Optional[Dict[str, Any]]:
        try:
            result = subprocess.run(
                cmd, timeout=timeout, capture_output=capture_output, text=True
            )
            return {
                'returncode': result.returncode,
                'stdout': result.stdout if capture_output else '',
                'stderr': result.stderr if capture_output else ''
            }
        except (subprocess.TimeoutExpired, subprocess.SubprocessError, OSError):
            return None
