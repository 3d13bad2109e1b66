"""
Unit test configuration for swarmdeck.

Every unit test gets its own state directory so nothing touches ~/.swarm.
"""

import pytest


@pytest.fixture(autouse=True)
def isolated_state(tmp_path, monkeypatch):
    """Point SWARM_STATE_DIR and the config file at a temp directory."""
    state_dir = tmp_path / "state"
    monkeypatch.setenv("SWARM_STATE_DIR", str(state_dir))
    monkeypatch.delenv("SWARM_TMUX_SOCKET", raising=False)
    monkeypatch.setattr("swarmdeck.config.CONFIG_PATH", state_dir / "config.yaml")
    return state_dir
