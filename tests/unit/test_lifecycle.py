"""
Tests for lifecycle commands against MockTmux and MockSubprocess.
"""

import shlex
from pathlib import Path

import pytest

from swarmdeck.exceptions import (
    CommandFailedError,
    ConfirmationRequiredError,
    CreateConflictError,
    InvalidSessionNameError,
    WorkspaceError,
)
from swarmdeck.lifecycle import build_agent_command, validate_name
from swarmdeck.mocks import MockSubprocess, MockTmux
from swarmdeck.session_store import SessionMetadata
from swarmdeck.status_constants import (
    STATUS_KILLED,
    STATUS_NEEDS_INPUT,
    STATUS_RUNNING,
    STATUS_STARTING,
)
from tests.fixtures import FakeClock, make_engine, write_task


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tmux():
    return MockTmux()


@pytest.fixture
def subprocess():
    return MockSubprocess()


@pytest.fixture
def repo(tmp_path):
    path = tmp_path / "repo"
    path.mkdir()
    return path


@pytest.fixture
def engine(tmp_path, tmux, subprocess, clock):
    engine = make_engine(tmp_path, tmux=tmux, subprocess=subprocess, clock=clock)
    yield engine
    engine.close()


@pytest.fixture
def lifecycle(engine):
    return engine.lifecycle


class TestValidateName:
    """Tests for session name validation."""

    def test_valid(self):
        assert validate_name("auth-bug_2") == "auth-bug_2"

    def test_prefix_stripped(self):
        assert validate_name("swarm-auth-bug") == "auth-bug"

    @pytest.mark.parametrize("name", ["", "has space", "semi;colon", "dot.name", "x" * 65])
    def test_invalid(self, name):
        with pytest.raises(InvalidSessionNameError):
            validate_name(name)


class TestBuildAgentCommand:
    """Tests for the launch command line."""

    def test_claude_accept_edits_with_tools(self):
        cmd = build_agent_command("claude", "do it", allowed_tools=["Bash(ls:*)", "Bash(pwd:*)"])
        assert shlex.split(cmd) == [
            "claude", "--permission-mode", "acceptEdits",
            "--allowedTools", "Bash(ls:*)", "--allowedTools", "Bash(pwd:*)", "do it",
        ]

    def test_claude_privileged(self):
        cmd = build_agent_command("claude", "go", privileged=True, allowed_tools=["Bash(ls:*)"])
        assert shlex.split(cmd) == ["claude", "--dangerously-skip-permissions", "go"]

    def test_other_agents_bare(self):
        assert build_agent_command("codex", "fix it", privileged=True) == "codex 'fix it'"

    def test_no_prompt(self):
        assert build_agent_command("codex") == "codex"


class TestStartAgent:
    """Tests for creating sessions."""

    def test_creates_session_and_starting_record(self, engine, lifecycle, tmux, repo):
        session_id = lifecycle.start_agent("auth-bug", repo=repo, prompt="Fix it")
        assert session_id == "swarm-auth-bug"
        assert tmux.sessions[session_id]["cwd"] == str(repo.resolve())
        assert shlex.split(tmux.sessions[session_id]["command"])[-1] == "Fix it"

        record = engine.reconciler.snapshot.get(session_id)
        assert record.status == STATUS_STARTING
        assert engine.store.read(session_id).agent_kind == "claude"

    def test_privileged_recorded(self, engine, lifecycle, tmux, repo):
        session_id = lifecycle.start_agent("yolo", repo=repo, privileged=True)
        assert "--dangerously-skip-permissions" in tmux.sessions[session_id]["command"]
        assert engine.store.read(session_id).privileged is True
        assert engine.reconciler.snapshot.get(session_id).is_privileged_mode is True

    def test_task_prompt(self, lifecycle, tmux, repo):
        session_id = lifecycle.start_agent("t", repo=repo, task_path="/tasks/t.md")
        assert "/tasks/t.md" in tmux.sessions[session_id]["command"]

    def test_conflict(self, lifecycle, tmux, repo):
        tmux.new_session("swarm-taken")
        with pytest.raises(CreateConflictError):
            lifecycle.start_agent("taken", repo=repo)

    def test_missing_repo(self, lifecycle, tmp_path):
        with pytest.raises(WorkspaceError):
            lifecycle.start_agent("a", repo=tmp_path / "nope")

    def test_invalid_name_creates_nothing(self, lifecycle, tmux, repo):
        with pytest.raises(InvalidSessionNameError):
            lifecycle.start_agent("bad name", repo=repo)
        assert tmux.sessions == {}

    def test_unique_name(self, lifecycle, tmux):
        tmux.new_session("swarm-fix")
        tmux.new_session("swarm-fix-2")
        assert lifecycle.unique_name("fix") == "fix-3"
        assert lifecycle.unique_name("other") == "other"

    def test_isolated_workspace(self, engine, lifecycle, tmux, subprocess, repo, tmp_path):
        session_id = lifecycle.start_agent("iso", repo=repo, isolated=True)
        worktree = tmp_path / "worktrees" / "iso"
        assert tmux.sessions[session_id]["cwd"] == str(worktree)
        assert engine.store.read(session_id).isolation_path == str(worktree)
        assert [
            "git", "-C", str(repo.resolve()), "worktree", "add", str(worktree),
            "-b", "tester/iso", "origin/main",
        ] in subprocess.commands

    def test_workspace_cleaned_when_create_fails(self, lifecycle, tmux, subprocess, repo, tmp_path):
        tmux.new_session = lambda *args, **kwargs: False
        subprocess.set_response("git -C", stdout=str(repo / ".git") + "\n")
        with pytest.raises(CommandFailedError):
            lifecycle.start_agent("iso", repo=repo, isolated=True)
        assert any(cmd[3:5] == ["worktree", "remove"] for cmd in subprocess.commands)


class TestAuthBugScenario:
    """create-agent, then poll: never absent while the process lives."""

    def test_create_then_poll(self, engine, lifecycle, tmux, repo, clock):
        session_id = lifecycle.create_agent("auth bug", repo=repo)
        assert session_id == "swarm-auth-bug"

        # Visible before any poll
        snapshot = engine.reconciler.snapshot
        assert snapshot.get(session_id).status == STATUS_STARTING
        assert snapshot.get(session_id).task_title == "auth bug"

        tmux.set_pane_content(session_id, "Should I proceed? [y/N]", activity=clock.ago(1))
        snapshot = engine.reconciler.refresh()
        assert snapshot.get(session_id).status == STATUS_NEEDS_INPUT
        assert [e.session_id for e in snapshot.events] == [session_id]
        assert snapshot.pending_tasks == ()

    def test_create_then_poll_running(self, engine, lifecycle, tmux, repo, clock):
        session_id = lifecycle.create_agent("auth bug", repo=repo)
        tmux.set_pane_content(session_id, "⏺ Reading auth.py", activity=clock.ago(1))
        assert engine.reconciler.refresh().get(session_id).status == STATUS_RUNNING


class TestStartFromTask:
    """Resume versus force-new."""

    def test_resumes_existing(self, engine, lifecycle, tmux, repo, tmp_path):
        task = engine.registry.read_task(write_task(tmp_path / "tasks", "login", summary="Fix login"))
        first = lifecycle.start_from_task(task, repo=repo)
        assert first == "swarm-fix-login"

        again = lifecycle.start_from_task(task, repo=repo)
        assert again == first
        assert list(tmux.sessions) == [first]

    def test_force_new_starts_second(self, engine, lifecycle, tmux, repo, tmp_path):
        task = engine.registry.read_task(write_task(tmp_path / "tasks", "login", summary="Fix login"))
        first = lifecycle.start_from_task(task, repo=repo)
        second = lifecycle.start_from_task(task, force_new=True, repo=repo)
        assert second == "swarm-fix-login-2"
        assert set(tmux.sessions) == {first, second}

    def test_dead_session_not_resumed(self, engine, lifecycle, tmux, repo, tmp_path):
        task = engine.registry.read_task(write_task(tmp_path / "tasks", "login", summary="Fix login"))
        first = lifecycle.start_from_task(task, repo=repo)
        tmux.kill_session(first)
        engine.reconciler.refresh()
        assert lifecycle.start_from_task(task, repo=repo) == first
        assert first in tmux.sessions

    def test_relative_task_path_links_task(self, engine, lifecycle, tmux, repo, tmp_path, monkeypatch):
        path = write_task(tmp_path / "tasks", "auth-bug", summary="Fix auth")
        absolute = str(path.resolve())
        monkeypatch.chdir(tmp_path)

        session_id = lifecycle.start_agent("auth", repo=repo, task_path="tasks/auth-bug.md")
        assert engine.store.read(session_id).linked_task_path == absolute
        assert absolute in tmux.sessions[session_id]["command"]

        snapshot = engine.reconciler.refresh()
        assert snapshot.pending_tasks == ()
        assert [t.has_active_session for t in snapshot.tasks] == [True]
        assert lifecycle.find_sessions_for_task(engine.registry.read_task(path)) == [session_id]


class TestInteraction:
    """quick_reply and cycle_mode."""

    def test_quick_reply(self, lifecycle, tmux):
        tmux.new_session("swarm-a")
        lifecycle.quick_reply("swarm-a", "yes")
        assert tmux.sent_keys == [("swarm-a", "yes", True)]

    def test_quick_reply_failure_raised_once(self, lifecycle, tmux):
        tmux.new_session("swarm-a")
        tmux.fail_send.add("swarm-a")
        with pytest.raises(CommandFailedError):
            lifecycle.quick_reply("swarm-a", "yes")
        assert tmux.sent_keys == []

    def test_cycle_mode(self, lifecycle, tmux):
        tmux.new_session("swarm-a")
        lifecycle.cycle_mode("swarm-a")
        assert tmux.raw_keys == [("swarm-a", "BTab")]


class TestEndSession:
    """Kill, cleanup and metadata removal."""

    def test_requires_confirmation(self, lifecycle, tmux):
        tmux.new_session("swarm-a")
        with pytest.raises(ConfirmationRequiredError):
            lifecycle.end_session("swarm-a")
        with pytest.raises(ConfirmationRequiredError):
            lifecycle.end_session("swarm-a", confirmed="yes")
        assert "swarm-a" in tmux.sessions

    def test_kill_and_forget(self, engine, lifecycle, tmux, repo):
        session_id = lifecycle.start_agent("a", repo=repo)
        lifecycle.end_session(session_id, confirmed=True)
        assert session_id not in tmux.sessions
        assert engine.store.read(session_id) is None
        assert engine.reconciler.snapshot.get(session_id).status == STATUS_KILLED

    def test_idempotent(self, lifecycle, tmux):
        lifecycle.end_session("swarm-never-existed", confirmed=True)

    def test_failed_kill_keeps_metadata(self, engine, lifecycle, tmux, repo):
        session_id = lifecycle.start_agent("a", repo=repo)
        tmux.fail_kill.add(session_id)
        with pytest.raises(CommandFailedError):
            lifecycle.end_session(session_id, confirmed=True)
        assert engine.store.read(session_id) is not None

    def test_cleans_worktree(self, engine, lifecycle, subprocess, tmp_path):
        engine.store.save(SessionMetadata("swarm-a", isolation_path="/wt/a"))
        subprocess.set_response("git -C /wt/a rev-parse", stdout="/src/repo/.git\n")
        lifecycle.end_session("swarm-a", confirmed=True)
        assert ["git", "-C", "/src/repo", "worktree", "remove", "--force", "/wt/a"] in subprocess.commands
        assert engine.store.read("swarm-a") is None

    def test_cleanup_failure_not_raised(self, engine, lifecycle, subprocess):
        engine.store.save(SessionMetadata("swarm-a", isolation_path="/wt/a"))
        subprocess.set_failure("git -C /wt/a rev-parse")
        lifecycle.end_session("swarm-a", confirmed=True)
        assert engine.store.read("swarm-a") is None


class TestMaintenance:
    """prune and task completion."""

    def test_prune(self, engine, lifecycle, tmux):
        tmux.new_session("swarm-alive")
        engine.store.save(SessionMetadata("swarm-alive"))
        engine.store.save(SessionMetadata("swarm-dead"))
        assert lifecycle.prune() == ["swarm-dead"]

    def test_complete_and_delete_task(self, engine, lifecycle, tmp_path):
        done = engine.registry.read_task(write_task(tmp_path / "tasks", "done-me"))
        gone = engine.registry.read_task(write_task(tmp_path / "tasks", "drop-me"))
        dest = lifecycle.complete_task(done)
        lifecycle.delete_task(gone)
        assert dest == Path(tmp_path / "tasks" / "archive" / "done-me.md")
        assert engine.registry.load() == []
