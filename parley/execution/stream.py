"""
Line-delimited event stream emitted by the agent CLI (stream-json).

Two event kinds matter:
- incremental text: `assistant` messages (text / thinking blocks) and
  `stream_event` content-block deltas
- final result: `{"type": "result", "result": "..."}`

Everything else (init, tool use, usage) is ignored.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class EventKind(Enum):
    TEXT = "text"
    RESULT = "result"
    OTHER = "other"


@dataclass
class StreamEvent:
    kind: EventKind
    text: str = ""
    is_delta: bool = False


def _assistant_text(message: dict) -> str:
    parts: List[str] = []
    content = message.get("content") or []
    if not isinstance(content, list):
        raise ValueError("assistant content is not a list")
    for block in content:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type not in ("text", "thinking"):
            continue
        text = block.get(block_type)
        if isinstance(text, str) and text:
            parts.append(text)
    return "\n".join(parts)


def _object(value, what: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{what} is not a JSON object")
    return value


def parse_event(line: str) -> StreamEvent:
    """Classify one stream line.

    Raises:
        ValueError: If the line is not a JSON object, or a known event
            type has an unexpected shape
    """
    event = _object(json.loads(line), "stream event")

    event_type = event.get("type")

    if event_type == "result":
        result = event.get("result")
        return StreamEvent(EventKind.RESULT, result if isinstance(result, str) else "")

    if event_type == "assistant":
        text = _assistant_text(_object(event.get("message"), "assistant message"))
        return StreamEvent(EventKind.TEXT, text) if text else StreamEvent(EventKind.OTHER)

    if event_type == "stream_event":
        inner = _object(event.get("event"), "stream_event payload")
        delta = _object(inner.get("delta"), "content block delta")
        if inner.get("type") == "content_block_delta":
            text = delta.get("text") or delta.get("thinking") or ""
            if isinstance(text, str) and text:
                return StreamEvent(EventKind.TEXT, text, is_delta=True)

    return StreamEvent(EventKind.OTHER)


class StreamCollector:
    """Accumulates thinking text and the final result from stream lines.

    `on_thinking` is called with the accumulated text after each
    incremental event, and with None once the final result arrives.
    """

    def __init__(self, on_thinking: Optional[Callable[[Optional[str]], None]] = None):
        self.on_thinking = on_thinking
        self.thinking = ""
        self.final_result: Optional[str] = None
        self.skipped_lines = 0

    def feed(self, line: str) -> None:
        line = line.strip()
        if not line:
            return

        try:
            event = parse_event(line)
        except Exception as e:
            self.skipped_lines += 1
            logger.debug(f"Ignoring unparseable stream line ({e}): {line[:120]}")
            return

        if event.kind is EventKind.TEXT:
            if event.is_delta or not self.thinking:
                self.thinking += event.text
            else:
                self.thinking += "\n" + event.text
            self._notify(self.thinking)
        elif event.kind is EventKind.RESULT:
            self.final_result = event.text
            self._notify(None)

    def _notify(self, value: Optional[str]) -> None:
        if self.on_thinking is None:
            return
        try:
            self.on_thinking(value)
        except Exception as e:
            logger.warning(f"Thinking update failed: {e}")
