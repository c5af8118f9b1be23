"""
In-memory record of messages the scheduler has already looked at.

The ledger only prevents double dispatch within one process. It starts
empty on every restart; the chat log (no reply yet, status not
processing/completed) stays the source of truth for what still needs
handling.
"""

import threading
from typing import Dict, Set, Tuple

Key = Tuple[str, int]


class SeenLedger:
    """Thread-safe set of (project_id, message_id) pairs.

    `claim` is the atomic check-and-mark the tick loop relies on: only
    the first caller for a key gets True.
    """

    def __init__(self):
        self._seen: Set[Key] = set()
        self._attempts: Dict[Key, int] = {}
        self._lock = threading.Lock()

    def claim(self, project_id: str, message_id: int) -> bool:
        key = (project_id, message_id)
        with self._lock:
            if key in self._seen:
                return False
            self._seen.add(key)
            return True

    def contains(self, project_id: str, message_id: int) -> bool:
        with self._lock:
            return (project_id, message_id) in self._seen

    def release(self, project_id: str, message_id: int) -> None:
        """Forget a message so the next tick evaluates it again."""
        with self._lock:
            self._seen.discard((project_id, message_id))

    def record_attempt(self, project_id: str, message_id: int) -> int:
        """Count one dispatch attempt. Returns the attempt number."""
        key = (project_id, message_id)
        with self._lock:
            self._attempts[key] = self._attempts.get(key, 0) + 1
            return self._attempts[key]

    def reset_attempts(self, project_id: str, message_id: int) -> None:
        with self._lock:
            self._attempts.pop((project_id, message_id), None)

    def clear(self) -> None:
        with self._lock:
            self._seen.clear()
            self._attempts.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)
