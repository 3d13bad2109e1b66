"""
Protocol definitions for external dependencies.

These interfaces allow dependency injection for testing, enabling us to
swap real implementations (libtmux, subprocess) with mock implementations
in tests. The engine never talks to tmux or git except through them.
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class TmuxInterface(Protocol):
    """Interface for tmux operations.

    Every session is addressed by name and has a single pane of interest
    (window 0, pane 0). Methods report failure through their return value
    and never raise.
    """

    def list_sessions(self) -> Optional[List[str]]:
        """List all session names on the server.

        Returns:
            Session names ([] when no server is running), or None when the
            server could not be queried
        """
        ...

    def capture_pane(self, session: str, lines: int = 100) -> Optional[str]:
        """Capture content from a session's pane.

        Args:
            session: tmux session name
            lines: number of lines to capture from scrollback

        Returns:
            Pane content as string, or None on failure
        """
        ...

    def pane_activity(self, session: str) -> Optional[float]:
        """Epoch seconds of the pane's last output, or None if unknown."""
        ...

    def send_keys(self, session: str, keys: str, enter: bool = True) -> bool:
        """Send literal text to a session, optionally followed by Enter.

        Returns:
            True if successful, False otherwise
        """
        ...

    def send_key(self, session: str, key: str) -> bool:
        """Send a single tmux key name (e.g. "BTab", "C-c")."""
        ...

    def has_session(self, session: str) -> bool:
        """Check if a tmux session exists."""
        ...

    def new_session(self, session: str, cwd: Optional[str] = None,
                    command: Optional[str] = None) -> bool:
        """Create a detached session running command in cwd."""
        ...

    def kill_session(self, session: str) -> bool:
        """Kill an entire tmux session."""
        ...

    def current_path(self, session: str) -> Optional[str]:
        """Working directory of the session's pane."""
        ...


@runtime_checkable
class SubprocessInterface(Protocol):
    """Interface for subprocess operations (non-tmux)"""

    def run(self, cmd: List[str], timeout: Optional[int] = None,
            capture_output: bool = True) -> Optional[Dict[str, Any]]:
        """Run a subprocess command.

        Args:
            cmd: command and arguments
            timeout: timeout in seconds
            capture_output: whether to capture stdout/stderr

        Returns:
            Dict with 'returncode', 'stdout', 'stderr', or None on failure
        """
        ...


@runtime_checkable
class NotificationSink(Protocol):
    """Receives edge-triggered status events from the reconciler."""

    def notify(self, events: List[Any]) -> None:
        ...

    def flush(self) -> None:
        """Deliver anything held back from earlier cycles."""
        ...
