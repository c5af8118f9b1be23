"""Tests for stream-json event parsing."""

import json

import pytest

from parley.execution import EventKind, StreamCollector, parse_event


def line(event: dict) -> str:
    return json.dumps(event)


class TestParseEvent:
    """Test parse_event."""

    def test_result(self):
        event = parse_event(line({"type": "result", "subtype": "success", "result": "done"}))
        assert event.kind is EventKind.RESULT
        assert event.text == "done"

    def test_assistant_text_and_thinking(self):
        event = parse_event(line({"type": "assistant", "message": {"content": [
            {"type": "thinking", "thinking": "hmm"},
            {"type": "text", "text": "answer"},
            {"type": "tool_use", "name": "Bash"},
        ]}}))
        assert event.kind is EventKind.TEXT
        assert event.text == "hmm\nanswer"
        assert not event.is_delta

    def test_assistant_tool_use_only_is_other(self):
        event = parse_event(line({"type": "assistant", "message": {"content": [{"type": "tool_use"}]}}))
        assert event.kind is EventKind.OTHER

    def test_content_block_delta(self):
        event = parse_event(line({"type": "stream_event", "event": {
            "type": "content_block_delta", "delta": {"type": "text_delta", "text": "ab"}}}))
        assert event.kind is EventKind.TEXT
        assert event.is_delta

    def test_other_events(self):
        assert parse_event(line({"type": "system", "subtype": "init"})).kind is EventKind.OTHER
        assert parse_event(line({"type": "user"})).kind is EventKind.OTHER

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", "{broken"])
    def test_invalid_lines_raise_value_error(self, raw):
        with pytest.raises(ValueError):
            parse_event(raw)

    @pytest.mark.parametrize("event", [
        {"type": "stream_event", "event": ["x"]},
        {"type": "stream_event", "event": {"type": "content_block_delta", "delta": "ab"}},
        {"type": "assistant", "message": "hi"},
        {"type": "assistant", "message": {"content": "hi"}},
    ])
    def test_mis_shaped_events_raise_value_error(self, event):
        with pytest.raises(ValueError):
            parse_event(line(event))

    def test_non_string_text_is_ignored(self):
        event = parse_event(line({"type": "stream_event", "event": {
            "type": "content_block_delta", "delta": {"text": 5}}}))
        assert event.kind is EventKind.OTHER
        event = parse_event(line({"type": "assistant", "message": {"content": [{"type": "text", "text": 5}]}}))
        assert event.kind is EventKind.OTHER


class TestStreamCollector:
    """Test StreamCollector."""

    def test_accumulates_and_clears(self):
        updates = []
        collector = StreamCollector(updates.append)

        collector.feed(line({"type": "assistant", "message": {"content": [{"type": "text", "text": "one"}]}}))
        collector.feed(line({"type": "assistant", "message": {"content": [{"type": "text", "text": "two"}]}}))
        collector.feed(line({"type": "result", "result": "final"}))

        assert updates == ["one", "one\ntwo", None]
        assert collector.final_result == "final"

    def test_deltas_concatenate(self):
        collector = StreamCollector()
        for chunk in ("Hel", "lo"):
            collector.feed(line({"type": "stream_event", "event": {
                "type": "content_block_delta", "delta": {"text": chunk}}}))
        assert collector.thinking == "Hello"

    def test_garbage_lines_are_skipped(self):
        collector = StreamCollector()
        collector.feed("warning: something\n")
        collector.feed("   \n")
        collector.feed(line({"type": "result", "result": "ok"}))

        assert collector.skipped_lines == 1
        assert collector.final_result == "ok"

    def test_callback_errors_do_not_propagate(self):
        def failing(_):
            raise RuntimeError("store down")

        collector = StreamCollector(failing)
        collector.feed(line({"type": "result", "result": "ok"}))
        assert collector.final_result == "ok"

    def test_mis_shaped_line_then_result(self):
        collector = StreamCollector()
        collector.feed(line({"type": "stream_event", "event": ["x"]}))
        collector.feed(line({"type": "assistant", "message": "hi"}))
        collector.feed(line({"type": "result", "result": "FINAL"}))

        assert collector.skipped_lines == 2
        assert collector.final_result == "FINAL"
