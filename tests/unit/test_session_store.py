"""
Tests for per-session metadata directories.
"""

import pytest

from swarmdeck.exceptions import MetadataCorruptError
from swarmdeck.session_store import SessionMetadata, SessionStore


@pytest.fixture
def store(tmp_path):
    return SessionStore(tmp_path / "sessions")


class TestSaveAndRead:
    """Tests for the plain-file layout."""

    def test_save_writes_one_file_per_field(self, store):
        store.save(SessionMetadata(
            "swarm-a", linked_task_path="/tasks/a.md", agent_kind="codex",
            privileged=True, isolation_path="/wt/a",
        ))
        directory = store.session_dir("swarm-a")
        assert (directory / "task").read_text() == "/tasks/a.md\n"
        assert (directory / "agent").read_text() == "codex\n"
        assert (directory / "yolo").exists()
        assert (directory / "worktree").read_text() == "/wt/a\n"

    def test_read_back(self, store):
        metadata = SessionMetadata("swarm-a", linked_task_path="/tasks/a.md", privileged=True)
        store.save(metadata)
        assert store.read("swarm-a") == metadata

    def test_missing_is_none(self, store):
        assert store.read("swarm-nope") is None

    def test_defaults_when_fields_absent(self, store):
        store.session_dir("swarm-a").mkdir(parents=True)
        metadata = store.read("swarm-a")
        assert metadata.agent_kind == "claude"
        assert metadata.linked_task_path is None
        assert metadata.privileged is False

    def test_save_removes_cleared_fields(self, store):
        store.save(SessionMetadata("swarm-a", privileged=True, isolation_path="/wt/a"))
        store.save(SessionMetadata("swarm-a"))
        directory = store.session_dir("swarm-a")
        assert not (directory / "yolo").exists()
        assert not (directory / "worktree").exists()

    def test_uses_state_dir_by_default(self, isolated_state):
        store = SessionStore()
        store.save(SessionMetadata("swarm-a"))
        assert (isolated_state / "sessions" / "swarm-a" / "agent").exists()


class TestCorruption:
    """Strict read raises; tolerant load logs and returns None."""

    def test_entry_is_a_file(self, store):
        store.base_dir.mkdir(parents=True)
        (store.base_dir / "swarm-a").write_text("junk")
        with pytest.raises(MetadataCorruptError):
            store.read("swarm-a")
        assert store.load("swarm-a") is None

    def test_field_is_a_directory(self, store):
        (store.session_dir("swarm-a") / "task").mkdir(parents=True)
        with pytest.raises(MetadataCorruptError) as exc_info:
            store.read("swarm-a")
        assert exc_info.value.session_id == "swarm-a"

    def test_field_not_utf8(self, store):
        directory = store.session_dir("swarm-a")
        directory.mkdir(parents=True)
        (directory / "task").write_bytes(b"\xff\xfe\x00bad")
        with pytest.raises(MetadataCorruptError):
            store.read("swarm-a")


class TestQueries:
    """Tests for delete, list, find and prune."""

    def test_delete(self, store):
        store.save(SessionMetadata("swarm-a"))
        assert store.delete("swarm-a") is True
        assert store.delete("swarm-a") is False
        assert store.list_ids() == []

    def test_list_ids_sorted(self, store):
        for sid in ("swarm-b", "swarm-a"):
            store.save(SessionMetadata(sid))
        assert store.list_ids() == ["swarm-a", "swarm-b"]

    def test_find_by_task(self, store):
        store.save(SessionMetadata("swarm-a", linked_task_path="/tasks/a.md"))
        store.save(SessionMetadata("swarm-b", linked_task_path="/tasks/b.md"))
        store.save(SessionMetadata("swarm-c", linked_task_path="/tasks/a.md"))
        assert store.find_by_task("/tasks/a.md") == ["swarm-a", "swarm-c"]
        assert store.find_by_task("/tasks/a.md", among={"swarm-c"}) == ["swarm-c"]

    def test_find_by_task_expands_home(self, store, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        store.save(SessionMetadata("swarm-a", linked_task_path="~/tasks/a.md"))
        assert store.find_by_task(str(tmp_path / "tasks" / "a.md")) == ["swarm-a"]

    def test_find_by_task_resolves_relative_paths(self, store, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        store.save(SessionMetadata("swarm-a", linked_task_path="tasks/a.md"))
        assert store.find_by_task(str(tmp_path / "tasks" / "a.md")) == ["swarm-a"]

    def test_prune(self, store):
        store.save(SessionMetadata("swarm-alive"))
        store.save(SessionMetadata("swarm-dead"))
        assert store.prune({"swarm-alive"}) == ["swarm-dead"]
        assert store.list_ids() == ["swarm-alive"]
