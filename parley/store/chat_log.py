"""
Per-project chat log stored as JSON.

Layout:
    <projects_dir>/<project_id>/chat.json  ->  {"messages": [...]}

Every read-modify-write runs under a per-project lock, so the scheduler's
dispatch threads and the HTTP handlers never lose each other's updates.
Files are replaced atomically (temp file + os.replace).
"""

import json
import logging
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..exceptions import NotFoundError, StorageError
from ..models import Message

logger = logging.getLogger(__name__)


class MessageIds:
    """Process-wide source of unique, increasing message ids.

    Ids stay close to epoch milliseconds (compatible with logs written by
    older versions) but never repeat, even when several messages are
    produced within the same millisecond.
    """

    def __init__(self):
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            self._last = max(int(time.time() * 1000), self._last + 1)
            return self._last

    def observe(self, message_id: Any) -> None:
        """Make sure future ids sort after an id already on disk."""
        if isinstance(message_id, int):
            with self._lock:
                self._last = max(self._last, message_id)


class ChatLog:
    """File-backed message log, one JSON document per project."""

    def __init__(self, projects_dir: Path, ids: Optional[MessageIds] = None):
        self.projects_dir = projects_dir
        self.ids = ids or MessageIds()
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def lock(self, project_id: str) -> threading.RLock:
        """The write lock for one project's log."""
        with self._locks_guard:
            if project_id not in self._locks:
                self._locks[project_id] = threading.RLock()
            return self._locks[project_id]

    def chat_file(self, project_id: str) -> Path:
        if not project_id:
            raise NotFoundError("Project id required")
        return self.projects_dir / project_id / "chat.json"

    # --- raw document access (callers hold the lock) ---

    def _load(self, project_id: str) -> List[Dict[str, Any]]:
        path = self.chat_file(project_id)
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Could not read chat log {path}: {e}")
        if not isinstance(data, dict):
            raise StorageError(f"Chat log {path} is not a JSON object")
        messages = data.get("messages", [])
        if not isinstance(messages, list):
            raise StorageError(f"Chat log {path} has no message list")

        kept = []
        for raw in messages:
            if not isinstance(raw, dict):
                logger.warning(f"Dropping non-object entry in chat log {path}: {raw!r:.80}")
                continue
            self.ids.observe(raw.get("id"))
            kept.append(raw)
        return kept

    def _save(self, project_id: str, messages: List[Dict[str, Any]]) -> None:
        path = self.chat_file(project_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".chat-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"messages": messages}, f, indent=2, ensure_ascii=False)
            os.replace(tmp, path)
        except OSError as e:
            raise StorageError(f"Could not write chat log {path}: {e}")

    # --- public operations ---

    def read_all(self, project_id: str) -> List[Message]:
        """All messages of a project, in log order."""
        with self.lock(project_id):
            raw = self._load(project_id)
        messages = []
        for item in raw:
            try:
                messages.append(Message.from_dict(item))
            except (KeyError, TypeError) as e:
                logger.warning(f"Skipping malformed message in {project_id}: {e}")
        return messages

    def find_by_id(self, project_id: str, message_id: int) -> Optional[Message]:
        for message in self.read_all(project_id):
            if message.id == message_id:
                return message
        return None

    def append(self, project_id: str, message: Message) -> Message:
        with self.lock(project_id):
            raw = self._load(project_id)
            raw.append(message.to_dict())
            self._save(project_id, raw)
        return message

    def edit(self, project_id: str, message: Message) -> Optional[Message]:
        """Replace the stored message with the same id. None if absent."""
        with self.lock(project_id):
            raw = self._load(project_id)
            for index, item in enumerate(raw):
                if item.get("id") == message.id:
                    raw[index] = message.to_dict()
                    self._save(project_id, raw)
                    return message
        return None

    def update(
        self,
        project_id: str,
        message_id: int,
        mutate: Callable[[Message], None],
    ) -> Optional[Message]:
        """Atomically read, mutate and write back one message."""
        with self.lock(project_id):
            raw = self._load(project_id)
            for index, item in enumerate(raw):
                if item.get("id") == message_id:
                    message = Message.from_dict(item)
                    mutate(message)
                    raw[index] = message.to_dict()
                    self._save(project_id, raw)
                    return message
        return None

    def truncate_after(self, project_id: str, message_id: int) -> int:
        """Drop every message after `message_id`. Returns how many went."""
        with self.lock(project_id):
            raw = self._load(project_id)
            for index, item in enumerate(raw):
                if item.get("id") == message_id:
                    deleted = len(raw) - index - 1
                    if deleted:
                        self._save(project_id, raw[: index + 1])
                    return deleted
        raise NotFoundError(f"Message {message_id} not found in project {project_id}")

    def clear(self, project_id: str) -> None:
        with self.lock(project_id):
            self._save(project_id, [])

