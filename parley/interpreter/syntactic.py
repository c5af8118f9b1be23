"""
In-process JSON extraction.

Finds the span from the first `{` (or `[`) to the last `}` (or `]`),
parses it strictly, then through the repair pass, and falls back to the
whole raw text when neither works.
"""

import json
import logging
from typing import Any, List, Optional, Tuple

from ..models import Reply
from .base import OutputInterpreter, replies_from_value
from .repair import repair_json

logger = logging.getLogger(__name__)

_PAIRS = (("{", "}"), ("[", "]"))


def find_json_candidates(text: str) -> List[Tuple[int, int]]:
    """Greedy (start, end) spans, ordered by where they start."""
    spans = []
    for opener, closer in _PAIRS:
        start = text.find(opener)
        if start == -1:
            continue
        end = text.rfind(closer)
        if end > start:
            spans.append((start, end + 1))
    return sorted(spans)


def _strict(candidate: str) -> Optional[Any]:
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        return None


def _leading(candidate: str) -> Optional[Any]:
    # Trailing noise that itself contains a closer: take the first complete value
    try:
        value, _ = json.JSONDecoder().raw_decode(candidate)
        return value
    except json.JSONDecodeError:
        return None


def _repaired(candidate: str) -> Optional[Any]:
    try:
        return json.loads(repair_json(candidate))
    except json.JSONDecodeError:
        return None


def is_reply_shaped(value: Any) -> bool:
    """An object, or a non-empty array of objects and strings.

    Used for JSON found inside prose, where arrays of other scalars are
    rejected: "see [1]" is not a reply.
    """
    if isinstance(value, dict):
        return True
    return isinstance(value, list) and bool(value) and all(isinstance(v, (dict, str)) for v in value)


def extract_json(text: str) -> Optional[Any]:
    """The embedded JSON object or array in `text`, or None.

    Output that is one JSON object or array as a whole is taken as is,
    even when empty. Otherwise strict parsing is tried on every
    candidate before any repair, so that a well-formed object is never
    shadowed by a repaired fragment of earlier noise.
    """
    whole = _strict(text.strip())
    if isinstance(whole, (dict, list)):
        return whole

    spans = find_json_candidates(text)
    for parse in (_strict, _leading, _repaired):
        for start, end in spans:
            value = parse(text[start:end])
            if is_reply_shaped(value):
                return value
    return None


class SyntacticInterpreter(OutputInterpreter):
    """Strategy A: syntactic extraction with repair."""

    name = "syntactic"

    def interpret(self, raw_text: str) -> List[Reply]:
        value = extract_json(raw_text)
        if value is None:
            logger.debug("No JSON found in agent output, using raw text")
            return [Reply.plain(raw_text)]

        replies = replies_from_value(value)
        if replies is None:
            return [Reply.plain(raw_text)]

        logger.debug(f"Extracted {len(replies)} reply item(s) from agent output")
        return replies
