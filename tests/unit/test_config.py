"""
Tests for configuration loading.
"""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from swarmdeck import config
from swarmdeck.config import (
    DEFAULT_ALLOWED_TOOLS,
    MAX_POLL_INTERVAL,
    EngineConfig,
    default_branch_prefix,
    get_engine_config,
    load_config,
    save_config,
)


class TestLoadConfig:
    """Test load_config function."""

    def test_missing_file(self):
        assert load_config() == {}

    def test_round_trip(self):
        save_config({"poll_interval": 2.0, "notifications": {"mode": "sound"}})
        assert config.CONFIG_PATH.exists()
        assert load_config() == {"poll_interval": 2.0, "notifications": {"mode": "sound"}}

    def test_invalid_yaml(self):
        config.CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
        config.CONFIG_PATH.write_text("poll_interval: [unclosed\n")
        assert load_config() == {}

    def test_not_a_mapping(self):
        config.CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
        config.CONFIG_PATH.write_text("- just\n- a list\n")
        assert load_config() == {}


class TestEngineConfig:
    """Test get_engine_config defaults and validation."""

    def test_defaults(self, isolated_state):
        cfg = get_engine_config({})
        assert cfg.poll_interval == 1.0
        assert cfg.idle_threshold == 30.0
        assert cfg.capture_lines == 80
        assert cfg.tail_lines == 40
        assert cfg.max_workers == 8
        assert cfg.default_agent == "claude"
        assert cfg.mode_cycle_key == "BTab"
        assert cfg.status_style == "text"
        assert cfg.tasks_dir == isolated_state / "tasks"
        assert cfg.allowed_tools == DEFAULT_ALLOWED_TOOLS
        assert cfg.notifications.mode == "both"

    def test_reads_config_file(self):
        save_config({"idle_threshold": 45, "default_agent": "codex"})
        cfg = get_engine_config()
        assert cfg.idle_threshold == 45.0
        assert cfg.default_agent == "codex"

    def test_poll_interval_capped(self):
        assert get_engine_config({"poll_interval": 60}).poll_interval == MAX_POLL_INTERVAL

    def test_poll_interval_ms(self):
        assert get_engine_config({"poll_interval_ms": 250}).poll_interval == 0.25

    @pytest.mark.parametrize("raw", [
        {"capture_lines": "lots"},
        {"capture_lines": 0},
        {"capture_lines": True},
    ])
    def test_bad_numbers_fall_back(self, raw):
        assert get_engine_config(raw).capture_lines == 80

    def test_paths_expanded(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        cfg = get_engine_config({"tasks_dir": "~/notes/tasks", "worktree_dir": "~/wt"})
        assert cfg.tasks_dir == tmp_path / "notes" / "tasks"
        assert cfg.worktree_dir == tmp_path / "wt"

    def test_status_style_validated(self):
        assert get_engine_config({"status_style": "emoji"}).status_style == "emoji"
        assert get_engine_config({"status_style": "sparkles"}).status_style == "text"

    def test_allowed_tools(self):
        cfg = get_engine_config({"allowed_tools": ["Bash(ls:*)", 3]})
        assert cfg.allowed_tools == ["Bash(ls:*)"]

    def test_notifications(self):
        cfg = get_engine_config({"notifications": {"mode": "banner", "sound_done": "Hero"}})
        assert cfg.notifications.mode == "banner"
        assert cfg.notifications.sound_done == "Hero"

    def test_notifications_disabled(self):
        assert get_engine_config({"notifications": {"enabled": False}}).notifications.mode == "off"

    def test_empty_branch_prefix_kept(self):
        assert get_engine_config({"branch_prefix": ""}).resolved_branch_prefix() == ""


class TestBranchPrefix:
    """Test default_branch_prefix."""

    @patch("swarmdeck.config.subprocess.run")
    def test_from_git_user(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout="Jane Doe\n")
        assert default_branch_prefix() == "jane-doe/"

    @patch("swarmdeck.config.subprocess.run")
    def test_no_user(self, mock_run):
        mock_run.return_value = MagicMock(returncode=1, stdout="")
        assert default_branch_prefix() == ""

    @patch("swarmdeck.config.subprocess.run", side_effect=FileNotFoundError)
    def test_no_git(self, mock_run):
        assert default_branch_prefix() == ""

    @patch("swarmdeck.config.default_branch_prefix", return_value="me/")
    def test_resolved_lazily_once(self, mock_prefix):
        cfg = EngineConfig()
        assert cfg.resolved_branch_prefix() == "me/"
        assert cfg.resolved_branch_prefix() == "me/"
        mock_prefix.assert_called_once()
