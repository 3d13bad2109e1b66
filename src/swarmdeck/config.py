"""
Configuration loading for swarmdeck.

Config is read from ~/.swarm/config.yaml (or $SWARM_STATE_DIR/config.yaml).
Every key is optional; missing or malformed values fall back to defaults.

Example:

    poll_interval: 1.0
    idle_threshold: 30
    default_agent: claude
    worktree_dir: ~/worktrees
    tasks_dir: ~/notes/tasks
    notifications:
      mode: both            # off | sound | banner | both
      sound_needs_input: Ping
      sound_done: Glass
    allowed_tools:
      - "Bash(git status:*)"
"""

import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .settings import get_config_path, get_default_tasks_dir
from .status_constants import STATUS_STYLES


CONFIG_PATH = get_config_path()

MAX_POLL_INTERVAL = 5.0

DEFAULT_ALLOWED_TOOLS = [
    # Navigation and filesystem (read-only)
    "Bash(cd:*)",
    "Bash(ls:*)",
    "Bash(pwd:*)",
    "Bash(cat:*)",
    "Bash(head:*)",
    "Bash(tail:*)",
    "Bash(less:*)",
    "Bash(file:*)",
    "Bash(find:*)",
    "Bash(which:*)",
    "Bash(type:*)",
    "Bash(wc:*)",
    "Bash(du:*)",
    "Bash(df:*)",
    "Bash(tree:*)",
    # Git (read-only)
    "Bash(git status:*)",
    "Bash(git log:*)",
    "Bash(git diff:*)",
    "Bash(git show:*)",
    "Bash(git branch:*)",
    "Bash(git remote:*)",
    "Bash(git stash list:*)",
    "Bash(git rev-parse:*)",
    "Bash(git describe:*)",
    "Bash(git config --get:*)",
    "Bash(git ls-files:*)",
    "Bash(git blame:*)",
    "Bash(git worktree list:*)",
    "Bash(git merge-base:*)",
    # GitHub CLI (read-only)
    "Bash(gh pr view:*)",
    "Bash(gh pr list:*)",
    "Bash(gh pr diff:*)",
    "Bash(gh pr checks:*)",
    "Bash(gh issue view:*)",
    "Bash(gh issue list:*)",
]


def load_config() -> dict:
    """Load configuration from config file.

    Returns an empty dict when the file is missing, unreadable, or not a
    YAML mapping.
    """
    if not CONFIG_PATH.exists():
        return {}

    try:
        with open(CONFIG_PATH) as f:
            data = yaml.safe_load(f)
    except (yaml.YAMLError, IOError):
        return {}

    if not isinstance(data, dict):
        return {}
    return data


def save_config(data: dict) -> None:
    """Write configuration to the config file, creating parent dirs."""
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    with open(CONFIG_PATH, "w") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)


def default_branch_prefix() -> str:
    """Branch prefix derived from git user.name ("Jane Doe" -> "jane-doe/")."""
    try:
        result = subprocess.run(
            ["git", "config", "--get", "user.name"],
            capture_output=True, text=True, timeout=5,
        )
    except (OSError, subprocess.SubprocessError):
        return ""
    name = result.stdout.strip() if result.returncode == 0 else ""
    if not name:
        return ""
    return name.lower().replace(" ", "-") + "/"


@dataclass
class NotificationConfig:
    mode: str = "both"
    sound_needs_input: str = "Ping"
    sound_done: str = "Glass"


@dataclass
class EngineConfig:
    """Tunables for the reconciliation engine and lifecycle commands."""

    poll_interval: float = 1.0
    idle_threshold: float = 30.0
    capture_lines: int = 80
    tail_lines: int = 40
    preview_lines: int = 12
    capture_timeout: float = 2.0
    max_workers: int = 8
    default_agent: str = "claude"
    worktree_dir: Path = field(default_factory=lambda: Path.home() / "worktrees")
    tasks_dir: Path = field(default_factory=get_default_tasks_dir)
    branch_prefix: Optional[str] = None
    mode_cycle_key: str = "BTab"
    workspace_script: Optional[str] = None
    status_style: str = "text"
    allowed_tools: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_TOOLS))
    notifications: NotificationConfig = field(default_factory=NotificationConfig)

    def resolved_branch_prefix(self) -> str:
        """Branch prefix, asking git for user.name the first time it is needed."""
        if self.branch_prefix is None:
            self.branch_prefix = default_branch_prefix()
        return self.branch_prefix


def _number(raw: Dict[str, Any], key: str, default, minimum=0):
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if value < minimum:
        return default
    return type(default)(value)


def _path(raw: Dict[str, Any], key: str, default: Path) -> Path:
    value = raw.get(key)
    if not isinstance(value, str) or not value:
        return default
    return Path(value).expanduser()


def _notification_config(raw: Any) -> NotificationConfig:
    if not isinstance(raw, dict):
        return NotificationConfig()
    result = NotificationConfig()
    if raw.get("enabled") is False:
        result.mode = "off"
    mode = raw.get("mode")
    if mode in ("off", "sound", "banner", "both"):
        result.mode = mode
    for key in ("sound_needs_input", "sound_done"):
        if isinstance(raw.get(key), str):
            setattr(result, key, raw[key])
    return result


def get_engine_config(raw: Optional[dict] = None) -> EngineConfig:
    """Build an EngineConfig from the config file (or a given dict)."""
    raw = load_config() if raw is None else raw
    defaults = EngineConfig()

    poll_interval = _number(raw, "poll_interval", defaults.poll_interval, minimum=0.05)
    if "poll_interval_ms" in raw and "poll_interval" not in raw:
        poll_interval = _number(raw, "poll_interval_ms", 1000, minimum=50) / 1000.0

    cfg = EngineConfig(
        poll_interval=min(float(poll_interval), MAX_POLL_INTERVAL),
        idle_threshold=_number(raw, "idle_threshold", defaults.idle_threshold),
        capture_lines=_number(raw, "capture_lines", defaults.capture_lines, minimum=1),
        tail_lines=_number(raw, "tail_lines", defaults.tail_lines, minimum=1),
        preview_lines=_number(raw, "preview_lines", defaults.preview_lines, minimum=1),
        capture_timeout=_number(raw, "capture_timeout", defaults.capture_timeout, minimum=0.1),
        max_workers=_number(raw, "max_workers", defaults.max_workers, minimum=1),
        worktree_dir=_path(raw, "worktree_dir", defaults.worktree_dir),
        tasks_dir=_path(raw, "tasks_dir", defaults.tasks_dir),
        notifications=_notification_config(raw.get("notifications")),
    )

    for key in ("default_agent", "mode_cycle_key", "workspace_script", "branch_prefix"):
        if isinstance(raw.get(key), str) and raw[key]:
            setattr(cfg, key, raw[key])
    if raw.get("branch_prefix") == "":
        cfg.branch_prefix = ""

    if raw.get("status_style") in STATUS_STYLES:
        cfg.status_style = raw["status_style"]

    tools = raw.get("allowed_tools")
    if isinstance(tools, list):
        cfg.allowed_tools = [t for t in tools if isinstance(t, str)]

    return cfg
