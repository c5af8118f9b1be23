"""
Syntax repair for informal JSON written by language models.

Rewrites text into strict JSON, tolerating:
- Unquoted keys and bare-word values ({response: ok})
- Single-quoted strings
- Trailing commas ({"a": 1,})
- Missing commas between values
- // and /* */ comments
- Python literals (True, False, None)
- Raw newlines inside strings
- Unclosed objects, arrays and strings at end of input

The output is only guaranteed to be closer to JSON; callers still parse
it with json.loads and treat failure as "no structured reply".
"""

import json
from typing import List

_LITERALS = {
    "true": "true",
    "false": "false",
    "null": "null",
    "True": "true",
    "False": "false",
    "None": "null",
    "undefined": "null",
    "NaN": "null",
}

_CLOSERS = {"{": "}", "[": "]"}
_WORD_STOP = set(" \t\r\n,:{}[]\"'/")
_NUMBER_CHARS = set("0123456789+-.eE")


def _needs_comma(out: List[str], stack: List[str]) -> bool:
    """True when the last emitted token ended a value inside a container."""
    if not stack:
        return False
    for chunk in reversed(out):
        stripped = chunk.rstrip()
        if stripped:
            return stripped[-1] not in "{[,:"
    return False


def _strip_trailing_comma(out: List[str]) -> None:
    while out and not out[-1].strip():
        out.pop()
    if out and out[-1].rstrip().endswith(","):
        out[-1] = out[-1].rstrip()[:-1]


def _read_string(text: str, i: int, quote: str) -> tuple[str, int]:
    """Read a quoted string starting at text[i] (the quote). Returns (json, next_i)."""
    chars: List[str] = []
    i += 1
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text):
            nxt = text[i + 1]
            if nxt == "'":
                chars.append("'")
            else:
                chars.append(ch + nxt)
            i += 2
            continue
        if ch == quote:
            return '"' + "".join(chars) + '"', i + 1
        if ch == '"':
            chars.append('\\"')
        elif ch == "\n":
            chars.append("\\n")
        elif ch == "\r":
            chars.append("\\r")
        elif ch == "\t":
            chars.append("\\t")
        else:
            chars.append(ch)
        i += 1
    # Unterminated string: close it
    return '"' + "".join(chars) + '"', i


def _read_word(text: str, i: int) -> tuple[str, int]:
    start = i
    while i < len(text) and text[i] not in _WORD_STOP:
        i += 1
    return text[start:i], i


def _is_number(word: str) -> bool:
    if not word or not set(word) <= _NUMBER_CHARS:
        return False
    try:
        float(word)
        return True
    except ValueError:
        return False


def _word_to_json(word: str) -> str:
    if word in _LITERALS:
        return _LITERALS[word]
    if _is_number(word):
        number = word.lstrip("+")
        if number.startswith("."):
            number = "0" + number
        if number.endswith("."):
            number += "0"
        return number
    return json.dumps(word)


def repair_json(text: str) -> str:
    """Rewrite informal JSON text into (hopefully) strict JSON."""
    out: List[str] = []
    stack: List[str] = []
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]

        if ch in " \t\r\n":
            out.append(ch)
            i += 1
            continue

        # Comments
        if ch == "/" and i + 1 < n and text[i + 1] == "/":
            end = text.find("\n", i)
            i = n if end == -1 else end
            continue
        if ch == "/" and i + 1 < n and text[i + 1] == "*":
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
            continue

        if ch in "{[":
            if _needs_comma(out, stack):
                out.append(",")
            stack.append(ch)
            out.append(ch)
            i += 1
            continue

        if ch in "}]":
            if stack:
                _strip_trailing_comma(out)
                out.append(_CLOSERS[stack.pop()])
            i += 1
            continue

        if ch == ",":
            if stack:
                _strip_trailing_comma(out)
                out.append(",")
            i += 1
            continue

        if ch == ":":
            out.append(":")
            i += 1
            continue

        if ch in "\"'":
            if _needs_comma(out, stack):
                out.append(",")
            token, i = _read_string(text, i, ch)
            out.append(token)
            continue

        word, next_i = _read_word(text, i)
        if not word:
            # Stray character that cannot start a token (e.g. a lone '/')
            i += 1
            continue
        if _needs_comma(out, stack):
            out.append(",")
        out.append(_word_to_json(word))
        i = next_i

    while stack:
        _strip_trailing_comma(out)
        out.append(_CLOSERS[stack.pop()])

    return "".join(out).strip()

