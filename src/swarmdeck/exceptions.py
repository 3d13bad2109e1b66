"""
Exception types raised by the reconciliation engine and lifecycle commands.

Per-session failures (vanished session, corrupt metadata, slow capture) are
caught inside the engine and folded into the affected record. Only
ManagerUnavailableError describes the whole engine, and lifecycle errors
are raised once to the interactive caller.
"""


class SwarmError(Exception):
    """Base class for all swarmdeck errors."""


class TmuxNotFoundError(SwarmError):
    """tmux is not installed or not on PATH."""


class ManagerUnavailableError(SwarmError):
    """The tmux server could not be queried at all."""


class SessionVanishedError(SwarmError):
    """A session disappeared between enumeration and a later operation."""

    def __init__(self, session_id: str):
        super().__init__(f"Session '{session_id}' no longer exists")
        self.session_id = session_id


class CaptureTimeoutError(SwarmError):
    """Capturing a pane's output took longer than the configured bound."""

    def __init__(self, session_id: str, timeout: float):
        super().__init__(f"Capture of '{session_id}' exceeded {timeout:.1f}s")
        self.session_id = session_id
        self.timeout = timeout


class MetadataCorruptError(SwarmError):
    """A session metadata directory exists but cannot be read."""

    def __init__(self, session_id: str, reason: str):
        super().__init__(f"Metadata for '{session_id}' is unreadable: {reason}")
        self.session_id = session_id
        self.reason = reason


class CreateConflictError(SwarmError):
    """A session with the requested name already exists."""

    def __init__(self, session_id: str):
        super().__init__(f"Session '{session_id}' already exists")
        self.session_id = session_id


class CommandFailedError(SwarmError):
    """tmux refused or failed to run a command against a session."""

    def __init__(self, session_id: str, action: str, detail: str = ""):
        message = f"Failed to {action} '{session_id}'"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.session_id = session_id
        self.action = action
        self.detail = detail


class InvalidSessionNameError(SwarmError):
    """Session name contains characters tmux or the filesystem cannot take."""

    def __init__(self, name: str, reason: str = ""):
        message = f"Invalid session name '{name}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.name = name


class ConfirmationRequiredError(SwarmError):
    """A destructive operation was requested without explicit confirmation."""


class WorkspaceError(SwarmError):
    """Provisioning or cleaning up an isolated workspace failed."""
