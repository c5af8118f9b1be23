"""Structured JSONL log of dispatch lifecycle events.

One line per event, one file per day:
    <data_dir>/logs/YYYY-MM-DD.jsonl
"""

import json
import logging
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Run ID for this process
RUN_ID: str = str(uuid.uuid4())[:8]


class EventLog:
    """Append-only JSONL event log. Safe to share between threads."""

    def __init__(self, log_dir: Optional[Path]):
        self.log_dir = log_dir
        self._lock = threading.Lock()

    def get_log_file(self) -> Path:
        """Get today's log file path."""
        return self.log_dir / f"{datetime.now().strftime('%Y-%m-%d')}.jsonl"

    def log_event(
        self,
        event: str,
        project_id: Optional[str] = None,
        message_id: Optional[int] = None,
        result: str = "ok",
        error: Optional[str] = None,
        extra: Optional[dict] = None,
    ) -> None:
        """Log an event to the JSONL log file."""
        if self.log_dir is None:
            return

        entry: dict[str, Any] = {
            "ts": datetime.now().isoformat(),
            "run_id": RUN_ID,
            "event": event,
            "project_id": project_id,
            "message_id": message_id,
            "result": result,
            "error": error,
        }
        if extra:
            entry.update(extra)

        with self._lock:
            try:
                self.log_dir.mkdir(parents=True, exist_ok=True)
                with open(self.get_log_file(), "a") as f:
                    f.write(json.dumps(entry, default=str) + "\n")
            except OSError as e:
                logger.warning(f"Could not write event log: {e}")


NULL_EVENT_LOG = EventLog(None)
