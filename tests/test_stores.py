"""Tests for the chat log, project registry and agent directory."""

import json
import threading

import pytest

from parley.exceptions import NotFoundError, StorageError
from parley.models import Message, MessageStatus
from parley.store import AgentDirectory, ChatLog, MessageIds, ProjectRegistry


@pytest.fixture
def log(tmp_path):
    return ChatLog(tmp_path / "projects")


def fill(log, project_id, count):
    for n in range(1, count + 1):
        log.append(project_id, Message(id=n, agent="user", content=f"m{n}"))


class TestMessageIds:
    """Test MessageIds."""

    def test_strictly_increasing(self):
        ids = MessageIds()
        values = [ids.next() for _ in range(1000)]
        assert values == sorted(values)
        assert len(set(values)) == 1000

    def test_unique_across_threads(self):
        ids = MessageIds()
        values = []
        lock = threading.Lock()

        def worker():
            for _ in range(200):
                value = ids.next()
                with lock:
                    values.append(value)

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(set(values)) == 1000

    def test_observe_moves_past_existing(self):
        ids = MessageIds()
        far_future = ids.next() + 10_000_000
        ids.observe(far_future)
        assert ids.next() == far_future + 1


class TestChatLog:
    """Test ChatLog."""

    def test_empty_project_reads_empty(self, log):
        assert log.read_all("p1") == []

    def test_append_and_read(self, log, tmp_path):
        log.append("p1", Message(id=1, agent="user", content="hi", recipient="developer",
                                 status=MessageStatus.WAITING, extra={"projectId": "p1"}))
        stored = json.loads((tmp_path / "projects" / "p1" / "chat.json").read_text())
        assert stored["messages"][0]["for"] == "developer"
        assert stored["messages"][0]["status"] == "waiting"
        assert log.read_all("p1")[0].content == "hi"

    def test_unknown_keys_survive_update(self, log, tmp_path):
        path = tmp_path / "projects" / "p1" / "chat.json"
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"messages": [
            {"id": 5, "agent": "user", "content": "x", "for": "developer", "reaction": "thumbs-up"},
        ]}))

        log.update("p1", 5, lambda m: setattr(m, "status", MessageStatus.PROCESSING))

        stored = json.loads(path.read_text())["messages"][0]
        assert stored["reaction"] == "thumbs-up"
        assert stored["status"] == "processing"

    def test_loading_observes_ids(self, log, tmp_path):
        path = tmp_path / "projects" / "p1" / "chat.json"
        path.parent.mkdir(parents=True)
        big = 99_999_999_999_999
        path.write_text(json.dumps({"messages": [{"id": big, "agent": "user", "content": "x"}]}))

        log.read_all("p1")
        assert log.ids.next() > big

    def test_update_missing_returns_none(self, log):
        fill(log, "p1", 1)
        assert log.update("p1", 42, lambda m: None) is None

    def test_edit(self, log):
        fill(log, "p1", 2)
        edited = log.edit("p1", Message(id=2, agent="user", content="changed"))
        assert edited is not None
        assert log.find_by_id("p1", 2).content == "changed"
        assert log.edit("p1", Message(id=9, agent="user")) is None

    def test_truncate_after(self, log):
        fill(log, "p1", 5)
        assert log.truncate_after("p1", 3) == 2
        assert [m.id for m in log.read_all("p1")] == [1, 2, 3]
        assert log.truncate_after("p1", 3) == 0

    def test_truncate_after_unknown(self, log):
        fill(log, "p1", 1)
        with pytest.raises(NotFoundError):
            log.truncate_after("p1", 7)

    def test_clear(self, log):
        fill(log, "p1", 3)
        log.clear("p1")
        assert log.read_all("p1") == []

    def test_corrupt_file_raises_storage_error(self, log, tmp_path):
        path = tmp_path / "projects" / "p1" / "chat.json"
        path.parent.mkdir(parents=True)
        path.write_text("{oops")
        with pytest.raises(StorageError):
            log.read_all("p1")

    @pytest.mark.parametrize("contents", ['{"messages": "x"}', '[1, 2]'])
    def test_wrong_document_shape_raises_storage_error(self, log, tmp_path, contents):
        path = tmp_path / "projects" / "p1" / "chat.json"
        path.parent.mkdir(parents=True)
        path.write_text(contents)
        with pytest.raises(StorageError):
            log.read_all("p1")

    def test_non_object_entries_are_skipped(self, log, tmp_path):
        path = tmp_path / "projects" / "p1" / "chat.json"
        path.parent.mkdir(parents=True)
        path.write_text('{"messages": [1, "x", {"id": 4, "agent": "user", "content": "ok"}]}')
        assert [m.id for m in log.read_all("p1")] == [4]

    def test_empty_project_id(self, log):
        with pytest.raises(NotFoundError):
            log.read_all("")

    def test_concurrent_updates_are_not_lost(self, log):
        fill(log, "p1", 20)

        def touch(message_id):
            log.update("p1", message_id, lambda m: setattr(m, "thinking", f"t{message_id}"))

        threads = [threading.Thread(target=touch, args=(n,)) for n in range(1, 21)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert all(m.thinking == f"t{m.id}" for m in log.read_all("p1"))


class TestProjectRegistry:
    """Test ProjectRegistry."""

    @pytest.fixture
    def registry(self, tmp_path):
        return ProjectRegistry(tmp_path / "projects.json", tmp_path / "projects")

    def test_create_and_get(self, registry, tmp_path):
        project = registry.create("Shop")
        assert project.working_dir == tmp_path / "projects" / project.id
        assert project.working_dir.is_dir()
        assert registry.get(project.id).title == "Shop"

    def test_explicit_folder(self, registry, tmp_path):
        project = registry.create("Repo", folder=tmp_path / "repo")
        assert registry.working_dir(project.id) == tmp_path / "repo"

    def test_list_active_excludes_paused(self, registry):
        first = registry.create("One")
        second = registry.create("Two")
        registry.set_paused(first.id, True)

        assert [p.id for p in registry.list_active()] == [second.id]
        assert len(registry.list_all()) == 2

        registry.set_paused(first.id, False)
        assert len(registry.list_active()) == 2

    def test_unknown_project(self, registry):
        with pytest.raises(NotFoundError):
            registry.get("missing")
        with pytest.raises(NotFoundError):
            registry.set_paused("missing", True)

    def test_missing_file_is_empty(self, registry):
        assert registry.list_all() == []


class TestAgentDirectory:
    """Test AgentDirectory."""

    def test_lists_markdown_stems(self, agents_dir):
        (agents_dir / "notes.txt").write_text("ignored")
        assert AgentDirectory(agents_dir).list_agent_names() == ["developer", "project-manager"]

    def test_missing_folder_uses_fallback(self, tmp_path):
        names = AgentDirectory(tmp_path / "nope").list_agent_names()
        assert names == ["project-manager", "lead-developer", "developer", "tester"]

    def test_empty_folder_uses_fallback(self, tmp_path):
        names = AgentDirectory(tmp_path, fallback=["solo"]).list_agent_names()
        assert names == ["solo"]
