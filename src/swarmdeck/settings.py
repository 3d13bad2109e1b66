"""
Paths and environment settings.

All on-disk state lives under ~/.swarm unless SWARM_STATE_DIR points
somewhere else (tests use this for isolation).
"""

import os
import re
from pathlib import Path
from typing import Optional


# Every session the engine manages carries this prefix; anything else in
# the tmux server belongs to the user and is never touched.
SESSION_PREFIX = "swarm-"

# Name of the marker file an agent's working directory may hold to link a
# session to a task document when no metadata records one.
TASK_MARKER_FILE = ".swarm-task"

SESSION_NAME_PATTERN = re.compile(r'^[a-zA-Z0-9_-]{1,64}$')


def get_state_dir() -> Path:
    """Root directory for all persistent state."""
    env_dir = os.environ.get("SWARM_STATE_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.home() / ".swarm"


def get_sessions_dir() -> Path:
    return get_state_dir() / "sessions"


def get_session_dir(session_id: str) -> Path:
    """Metadata directory for one session."""
    return get_sessions_dir() / session_id


def get_logs_dir() -> Path:
    return get_state_dir() / "logs"


def get_default_tasks_dir() -> Path:
    return get_state_dir() / "tasks"


def get_config_path() -> Path:
    return get_state_dir() / "config.yaml"


def get_tmux_socket() -> Optional[str]:
    """Optional tmux socket name (SWARM_TMUX_SOCKET), used to isolate tests."""
    return os.environ.get("SWARM_TMUX_SOCKET") or None


def to_session_id(name: str) -> str:
    """Add the reserved prefix to a display name (idempotent)."""
    if name.startswith(SESSION_PREFIX):
        return name
    return f"{SESSION_PREFIX}{name}"


def to_display_name(session_id: str) -> str:
    """Strip the reserved prefix from a session id."""
    if session_id.startswith(SESSION_PREFIX):
        return session_id[len(SESSION_PREFIX):]
    return session_id
