"""
Pure formatting functions for display.

These convert snapshot values (timestamps, due dates, captured output)
into short human-readable strings for the dashboard and the CLI.
"""

from datetime import date, datetime
from typing import List, Optional, Sequence

from rich.markup import escape

from .status_constants import get_status_symbol

EMPTY_PREVIEW = "(no recent output; attach to see more)"
SEPARATOR_CHARS = set("─-━═")


def format_human_duration(seconds: float) -> str:
    """Format an elapsed time as "<n><unit> ago".

    Examples: 42 -> "42s ago", 600 -> "10m ago", 7200 -> "2h ago"
    """
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds}s ago"
    elif seconds < 3600:
        return f"{seconds // 60}m ago"
    elif seconds < 86_400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86_400}d ago"


def format_ago(dt: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Format a timestamp relative to now, or "never"."""
    if dt is None:
        return "never"
    now = now or datetime.now()
    return format_human_duration((now - dt).total_seconds())


def format_due(due: date, today: Optional[date] = None) -> str:
    """Describe a due date relative to today.

    Examples: "due today", "due tomorrow", "due in 3d", "due 2d ago",
    "due Mar 14" (more than a week away either way)
    """
    today = today or date.today()
    days = (due - today).days
    if days == 0:
        return "due today"
    if days == 1:
        return "due tomorrow"
    if 1 < days <= 7:
        return f"due in {days}d"
    if days == -1:
        return "due yesterday"
    if -7 <= days < -1:
        return f"due {-days}d ago"
    return f"due {due.strftime('%b')} {due.day}"


def _is_separator(line: str) -> bool:
    stripped = line.strip()
    return bool(stripped) and set(stripped) <= SEPARATOR_CHARS


def clean_preview(lines: Sequence[str]) -> List[str]:
    """Collapse runs of identical separator lines in captured output."""
    out: List[str] = []
    for line in lines:
        if _is_separator(line) and out and out[-1].strip() == line.strip():
            continue
        out.append(line)
    return out or [EMPTY_PREVIEW]


def mini_log_preview(lines: Sequence[str], max_chars: int = 80) -> Optional[str]:
    """Last non-blank line of output, truncated with an ellipsis."""
    for line in reversed(clean_preview(lines)):
        if line.strip():
            if len(line) > max_chars:
                return line[:max_chars] + "…"
            return line
    return None


def status_indicator(status: str, style: str = "text") -> str:
    """Rich markup for a status in the configured indicator style."""
    symbol, color = get_status_symbol(status, style)
    if style == "text":
        symbol = escape(f"[{symbol}]")
    return f"[{color}]{symbol}[/{color}]"


def truncate(text: str, max_len: int = 40) -> str:
    if len(text) <= max_len:
        return text
    return text[:max_len - 1] + "…"
