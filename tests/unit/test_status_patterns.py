"""
Tests for the classification rule table.
"""

import re

import pytest

from swarmdeck.status_constants import STATUS_DONE, STATUS_NEEDS_INPUT, STATUS_RUNNING
from swarmdeck.status_patterns import (
    CATEGORY_ACTIVE,
    CATEGORY_DONE,
    CATEGORY_NEEDS_INPUT,
    CATEGORY_ORDER,
    DEFAULT_RULES,
    ClassificationRule,
    StatusPatterns,
    clean_line,
    find_first_rule,
    get_patterns,
    strip_ansi,
)


def first_status(*lines):
    match = find_first_rule(list(lines))
    return match[0].status if match else None


class TestStripAnsi:
    """Tests for ANSI escape removal."""

    def test_removes_color_codes(self):
        assert strip_ansi("\x1b[32mRunning\x1b[0m tests") == "Running tests"

    def test_removes_osc_title(self):
        assert strip_ansi("\x1b]0;title\x07hello") == "hello"

    def test_plain_text_unchanged(self):
        assert strip_ansi("nothing to strip") == "nothing to strip"


class TestRuleTable:
    """Tests for the ordered rule table."""

    def test_categories_in_precedence_order(self):
        categories = [rule.category for rule in DEFAULT_RULES]
        last_index = [max(i for i, c in enumerate(categories) if c == cat) for cat in CATEGORY_ORDER]
        first_index = [categories.index(cat) for cat in CATEGORY_ORDER]
        assert last_index[0] < first_index[1]
        assert last_index[1] < first_index[2]

    def test_rule_status_follows_category(self):
        rx = re.compile("x")
        assert ClassificationRule(CATEGORY_NEEDS_INPUT, rx, "").status == STATUS_NEEDS_INPUT
        assert ClassificationRule(CATEGORY_DONE, rx, "").status == STATUS_DONE
        assert ClassificationRule(CATEGORY_ACTIVE, rx, "").status == STATUS_RUNNING

    def test_get_patterns_returns_shared_instance(self):
        assert get_patterns() is get_patterns()

    def test_custom_patterns_build_their_own_table(self):
        patterns = StatusPatterns(
            needs_input_patterns=[(re.compile("HALT"), "custom")],
            done_patterns=[],
            active_patterns=[],
        )
        rules = patterns.rules()
        assert len(rules) == 1
        assert find_first_rule(["HALT now"], rules)[0].description == "custom"


class TestNeedsInputRules:
    """Prompts that block on the operator."""

    @pytest.mark.parametrize("line", [
        "Should I proceed? [y/N]",
        "Overwrite file? [Y/n]",
        "Continue (y/N)",
        "Really delete? [yes/no]",
        "Do you want to proceed?",
        "Would you like me to run the migrations?",
        "Press Enter to continue",
        "Waiting for your input...",
        "Enter to confirm · Esc to exit",
        "? Pick a branch",
        "Enter to select · Tab/Arrow keys to navigate",
        "Type your answer below",
        "/swarm:needs_input",
    ])
    def test_matches(self, line):
        assert first_status(line) == STATUS_NEEDS_INPUT

    def test_question_mark_prompt_needs_column_zero(self):
        assert first_status("  what? no") is None


class TestDoneRules:
    """Completion reports."""

    @pytest.mark.parametrize("line", [
        "Task completed.",
        "Task complete.",
        "✓ Task complete",
        "All tasks completed",
        "All tasks are done",
        "Session complete",
        "/swarm:done",
    ])
    def test_matches(self, line):
        assert first_status(line) == STATUS_DONE

    def test_incomplete_is_not_done(self):
        assert first_status("the task completes once tests pass") is None


class TestActiveRules:
    """Evidence of work in progress."""

    @pytest.mark.parametrize("line", [
        "Running tests...",
        "⏺ Reading src/app.py",
        "  Compiling swarmdeck v0.3.0",
        "✻ Compacting… (12s · esc to interrupt)",
        "✶ Thinking…",
        "⠋ Installing dependencies",
        "still pondering… hmm",
    ])
    def test_matches(self, line):
        assert first_status(line) == STATUS_RUNNING

    def test_verbs_are_case_sensitive(self):
        assert first_status("we should be running tests later") is None

    def test_welcome_banner_is_not_a_spinner(self):
        assert first_status("✻ Welcome to Claude Code!") is None


class TestFindFirstRule:
    """Precedence and line selection."""

    def test_needs_input_beats_active(self):
        rule, line = find_first_rule([
            "Should I proceed? [y/N]",
            "Running tests...",
        ])
        assert rule.status == STATUS_NEEDS_INPUT
        assert line == "Should I proceed? [y/N]"

    def test_done_beats_active(self):
        rule, _ = find_first_rule(["Running tests...", "Task completed."])
        assert rule.status == STATUS_DONE

    def test_newest_matching_line_is_reported(self):
        _, line = find_first_rule(["Running a", "Running b"])
        assert line == "Running b"

    def test_no_match(self):
        assert find_first_rule(["", "hello"]) is None
        assert find_first_rule([]) is None


class TestCleanLine:
    """Tests for display cleanup of a matched line."""

    def test_strips_prefix_and_ansi(self):
        assert clean_line("\x1b[1m⏺ Running tests\x1b[0m") == "Running tests"

    def test_strips_box_characters(self):
        assert clean_line("│ > hello │") == "hello"

    def test_truncates(self):
        assert clean_line("x" * 100, max_length=10) == "xxxxxxx..."
