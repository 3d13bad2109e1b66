"""
Status constants and display mappings.

Centralizes the agent status values and the indicator/color tables the
presentation layer uses for each status style.
"""

from typing import Tuple


# =============================================================================
# Agent Status Values
# =============================================================================

STATUS_STARTING = "starting"  # Created by us, not yet seen by a poll
STATUS_RUNNING = "running"
STATUS_NEEDS_INPUT = "needs_input"  # Prompt or question waiting on the operator
STATUS_IDLE = "idle"  # No recognizable state and no recent output
STATUS_DONE = "done"  # Agent reported completion
STATUS_KILLED = "killed"  # Ended by the operator, removed next cycle

# Statuses that trigger a notification when entered
NOTIFY_STATUSES = (STATUS_NEEDS_INPUT, STATUS_DONE)


# =============================================================================
# Indicator Styles
# =============================================================================

STATUS_STYLES = ("emoji", "unicode", "text")

STATUS_EMOJIS = {
    STATUS_STARTING: "🟡",
    STATUS_RUNNING: "🟢",
    STATUS_NEEDS_INPUT: "🔴",
    STATUS_IDLE: "⚪",
    STATUS_DONE: "✅",
    STATUS_KILLED: "⚫",
}

STATUS_UNICODE = {
    STATUS_STARTING: "◌",
    STATUS_RUNNING: "●",
    STATUS_NEEDS_INPUT: "◆",
    STATUS_IDLE: "○",
    STATUS_DONE: "✓",
    STATUS_KILLED: "×",
}

STATUS_TEXT = {
    STATUS_STARTING: "START",
    STATUS_RUNNING: "RUN",
    STATUS_NEEDS_INPUT: "INPUT",
    STATUS_IDLE: "IDLE",
    STATUS_DONE: "DONE",
    STATUS_KILLED: "KILL",
}


# =============================================================================
# Status to Color Mappings (rich styles)
# =============================================================================

STATUS_COLORS = {
    STATUS_STARTING: "yellow",
    STATUS_RUNNING: "green",
    STATUS_NEEDS_INPUT: "bold red",
    STATUS_IDLE: "dim",
    STATUS_DONE: "cyan",
    STATUS_KILLED: "dim",
}


def get_status_color(status: str) -> str:
    """Get color name for an agent status."""
    return STATUS_COLORS.get(status, "dim")


def get_status_symbol(status: str, style: str = "emoji") -> Tuple[str, str]:
    """Get (indicator, color) for a status in the given indicator style."""
    table = {
        "emoji": STATUS_EMOJIS,
        "unicode": STATUS_UNICODE,
        "text": STATUS_TEXT,
    }.get(style, STATUS_TEXT)
    return table.get(status, "?"), get_status_color(status)


# =============================================================================
# Status Categorization
# =============================================================================


def needs_attention(status: str) -> bool:
    """Statuses the operator should look at first."""
    return status in (STATUS_NEEDS_INPUT, STATUS_DONE)
