"""
Pure status classification from captured terminal output.

No I/O happens here: the reconciler hands in the captured lines, the
previous status, and how long the pane has been quiet, and gets back a
verdict. The same inputs always produce the same status.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from .status_constants import (
    STATUS_IDLE,
    STATUS_RUNNING,
    STATUS_STARTING,
)
from .status_patterns import ClassificationRule, find_first_rule, strip_ansi

DEFAULT_TAIL_LINES = 40
DEFAULT_IDLE_THRESHOLD = 30.0

# Previous statuses that become "running" when nothing matches but the pane
# changed recently. Any other previous status is kept until the pane has
# been quiet for idle_threshold.
_WAKES_TO_RUNNING = (None, STATUS_STARTING, STATUS_IDLE)


@dataclass(frozen=True)
class Classification:
    """Result of classifying one capture."""

    status: str
    rule: Optional[ClassificationRule] = None
    line: Optional[str] = None

    @property
    def reason(self) -> str:
        if self.rule is None:
            return "no matching output"
        return self.rule.description


def output_tail(lines: Sequence[str], tail_lines: int = DEFAULT_TAIL_LINES) -> List[str]:
    """Return the last tail_lines lines with ANSI removed.

    Trailing blank rows (unused pane height) are dropped before the tail
    is taken so a mostly empty pane still shows its real content.

    Pure function - no side effects, fully testable.
    """
    cleaned = [strip_ansi(line).rstrip() for line in lines]
    while cleaned and not cleaned[-1].strip():
        cleaned.pop()
    if tail_lines <= 0:
        return []
    return cleaned[-tail_lines:]


def classify_output(
    lines: Sequence[str],
    previous_status: Optional[str],
    idle_seconds: Optional[float] = None,
    idle_threshold: float = DEFAULT_IDLE_THRESHOLD,
    tail_lines: int = DEFAULT_TAIL_LINES,
    rules: Optional[List[ClassificationRule]] = None,
) -> Classification:
    """Classify a session's captured output.

    Args:
        lines: Captured pane lines, oldest first
        previous_status: Status from the previous cycle (None if new)
        idle_seconds: Seconds since the pane last changed (None if unknown)
        idle_threshold: Quiet time after which an unmatched pane is idle
        tail_lines: How many trailing lines to inspect
        rules: Rule table override (defaults to status_patterns.DEFAULT_RULES)

    Returns:
        Classification with the status and the rule/line that decided it

    Pure function - no side effects, fully testable.
    """
    tail = output_tail(lines, tail_lines)

    match = find_first_rule(tail, rules)
    if match is not None:
        rule, line = match
        return Classification(status=rule.status, rule=rule, line=line)

    if idle_seconds is None or idle_seconds >= idle_threshold:
        return Classification(status=STATUS_IDLE)

    if previous_status in _WAKES_TO_RUNNING:
        return Classification(status=STATUS_RUNNING)
    return Classification(status=previous_status)


def classify(
    lines: Sequence[str],
    previous_status: Optional[str],
    idle_seconds: Optional[float] = None,
    idle_threshold: float = DEFAULT_IDLE_THRESHOLD,
    tail_lines: int = DEFAULT_TAIL_LINES,
) -> str:
    """Shorthand for classify_output(...).status."""
    return classify_output(
        lines, previous_status,
        idle_seconds=idle_seconds,
        idle_threshold=idle_threshold,
        tail_lines=tail_lines,
    ).status
