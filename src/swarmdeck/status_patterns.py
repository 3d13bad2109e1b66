"""
Centralized status classification rules.

The classifier walks an ordered rule table: every needs-input rule is
tried before any done rule, and every done rule before any active rule.
Within a category the first rule in table order wins. Keeping the table
here means new agent prompts can be supported by adding a line, and each
rule is testable in isolation.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Tuple

from .status_constants import STATUS_DONE, STATUS_NEEDS_INPUT, STATUS_RUNNING

# Regex to match ANSI escape sequences (colors, cursor movement, OSC titles)
ANSI_ESCAPE_PATTERN = re.compile(r'\x1b\[[0-9;?]*[a-zA-Z]|\x1b\][^\x07]*\x07')

CATEGORY_NEEDS_INPUT = "needs_input"
CATEGORY_DONE = "done"
CATEGORY_ACTIVE = "active"

# Category precedence, highest first
CATEGORY_ORDER = (CATEGORY_NEEDS_INPUT, CATEGORY_DONE, CATEGORY_ACTIVE)

CATEGORY_STATUS = {
    CATEGORY_NEEDS_INPUT: STATUS_NEEDS_INPUT,
    CATEGORY_DONE: STATUS_DONE,
    CATEGORY_ACTIVE: STATUS_RUNNING,
}

# Explicit markers an agent can print (see the bundled slash commands)
NEEDS_INPUT_MARKER = "/swarm:needs_input"
DONE_MARKER = "/swarm:done"


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from text.

    Args:
        text: Text potentially containing ANSI escape sequences

    Returns:
        Text with all ANSI escape sequences removed
    """
    return ANSI_ESCAPE_PATTERN.sub('', text)


@dataclass(frozen=True)
class ClassificationRule:
    """One row of the rule table."""

    category: str
    pattern: Pattern
    description: str

    @property
    def status(self) -> str:
        return CATEGORY_STATUS[self.category]

    def matches(self, line: str) -> bool:
        return self.pattern.search(line) is not None


def _rx(pattern: str, flags: int = re.IGNORECASE) -> Pattern:
    return re.compile(pattern, flags)


@dataclass
class StatusPatterns:
    """All patterns used for status classification.

    Each entry is (compiled regex, short description). Patterns are
    matched line by line against ANSI-stripped output.
    """

    # Agent is blocked on the operator - HIGHEST priority
    needs_input_patterns: List[Tuple[Pattern, str]] = field(default_factory=lambda: [
        (_rx(re.escape(NEEDS_INPUT_MARKER), 0), "explicit needs-input marker"),
        # Permission prompts
        (_rx(r"\[y/n\]"), "[y/n] prompt"),
        (_rx(r"\(y/n\)"), "(y/n) prompt"),
        (_rx(r"\[yes/no\]"), "[yes/no] prompt"),
        # Questions
        (_rx(r"do you want to proceed"), "asks to proceed"),
        (_rx(r"should i proceed"), "asks to proceed"),
        (_rx(r"would you like me to"), "asks for direction"),
        (_rx(r"press enter to continue"), "waiting for enter"),
        (_rx(r"waiting for.*input"), "waiting for input"),
        (_rx(r"enter to confirm"), "confirmation dialog"),
        # fzf-style prompt (case matters: "? " at column 0)
        (_rx(r"^\? ", 0), "selection prompt"),
        # Multi-select and free-text question prompts
        (_rx(r"enter to select.*tab/arrow"), "multi-select question"),
        (_rx(r"type your answer"), "free-text question"),
    ])

    # Agent reported it has finished its task
    done_patterns: List[Tuple[Pattern, str]] = field(default_factory=lambda: [
        (_rx(re.escape(DONE_MARKER), 0), "explicit done marker"),
        (_rx(r"\btask completed\b"), "task completed"),
        (_rx(r"^\W*task complete\.?\s*$"), "task complete"),
        (_rx(r"\ball tasks (are )?(completed|complete|done)\b"), "all tasks completed"),
        (_rx(r"\bsession complete\b"), "session complete"),
    ])

    # Agent is busy. Tool/verb indicators are CASE SENSITIVE so prose like
    # "we should be running tests" does not count.
    active_patterns: List[Tuple[Pattern, str]] = field(default_factory=lambda: [
        (_rx(r"esc to interrupt"), "interruptible operation"),
        (_rx(
            r"^[\s⏺●•·>*-]*(Running|Thinking|Generating|Reading|Writing|Editing|"
            r"Searching|Fetching|Analyzing|Processing|Installing|Building|"
            r"Compiling|Testing|Executing|Deploying)\b",
            0,
        ), "tool or command in progress"),
        # Spinner line, e.g. "✻ Compacting… (12s)". The welcome banner uses the
        # same glyph without an ellipsis.
        (_rx(r"^\s*[✽✻✶✳✢]\s+\S.*(…|\.\.\.)"), "spinner"),
        (_rx(r"^\s*[⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏]\s"), "spinner"),
        (_rx(r"\b(thinking|pondering|cogitating|working)…"), "thinking"),
    ])

    def rules(self) -> List[ClassificationRule]:
        """Flatten into the ordered rule table (category precedence first)."""
        by_category = {
            CATEGORY_NEEDS_INPUT: self.needs_input_patterns,
            CATEGORY_DONE: self.done_patterns,
            CATEGORY_ACTIVE: self.active_patterns,
        }
        return [
            ClassificationRule(category, pattern, description)
            for category in CATEGORY_ORDER
            for pattern, description in by_category[category]
        ]


# Default patterns instance
DEFAULT_PATTERNS = StatusPatterns()
DEFAULT_RULES = DEFAULT_PATTERNS.rules()


def get_patterns() -> StatusPatterns:
    """Get the status classification patterns."""
    return DEFAULT_PATTERNS


def find_first_rule(
    lines: List[str],
    rules: Optional[List[ClassificationRule]] = None,
) -> Optional[Tuple[ClassificationRule, str]]:
    """Find the highest-precedence rule matching any line.

    Rules are tried in table order; for each rule the lines are scanned
    newest first, so the matched line is the most recent evidence.

    Returns:
        (rule, matched_line) or None if nothing matches
    """
    rules = DEFAULT_RULES if rules is None else rules
    for rule in rules:
        for line in reversed(lines):
            if rule.matches(line):
                return rule, line
    return None


def clean_line(line: str, max_length: int = 80) -> str:
    """Clean a line for display: strip ANSI, box glyphs, whitespace; truncate."""
    cleaned = strip_ansi(line).strip()
    cleaned = cleaned.strip("│┃|").strip()
    for prefix in ("⏺ ", "● ", "› ", "> ", "❯ ", "- "):
        if cleaned.startswith(prefix):
            cleaned = cleaned[len(prefix):]
            break
    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length - 3] + "..."
    return cleaned
