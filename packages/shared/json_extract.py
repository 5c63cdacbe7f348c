"""Best-effort JSON extraction from free-text model output. Never raises."""

import json
from dataclasses import dataclass
from typing import Any, Optional

_CLOSERS = {"[": "]", "{": "}"}
MAX_INPUT_CHARS = 100_000
MAX_SPAN_ATTEMPTS = 32


@dataclass(frozen=True)
class ParseResult:
    ok: bool
    value: Any = None
    error: Optional[str] = None


def _balanced_span_end(text: str, start: int) -> int:
    """Index one past the bracket closing text[start], or -1. Brackets inside strings are ignored."""
    stack = [_CLOSERS[text[start]]]
    in_string = False
    escaped = False
    for i in range(start + 1, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in ("]", "}"):
            if ch != stack[-1]:
                return -1
            stack.pop()
            if not stack:
                return i + 1
    return -1


def extract_json(text: Optional[str], expect: Optional[type] = None) -> ParseResult:
    """
    Parse the first balanced ``[...]`` or ``{...}`` span in ``text``.

    Markdown fences and surrounding narrative are tolerated. When ``expect`` is
    ``list`` or ``dict`` only spans opening with the matching bracket are tried.
    Input past ``MAX_INPUT_CHARS`` is ignored and at most ``MAX_SPAN_ATTEMPTS``
    candidate spans are scanned, so the cost stays linear in the input.
    """
    if not text or not isinstance(text, str):
        return ParseResult(ok=False, error="empty input")
    text = text[:MAX_INPUT_CHARS]

    openers = "[{"
    if expect is list:
        openers = "["
    elif expect is dict:
        openers = "{"

    last_error = "no JSON span found"
    attempts = 0
    for start, ch in enumerate(text):
        if ch not in openers:
            continue
        if attempts >= MAX_SPAN_ATTEMPTS:
            return ParseResult(ok=False, error=f"gave up after {attempts} candidate spans: {last_error}")
        attempts += 1
        end = _balanced_span_end(text, start)
        if end < 0:
            last_error = f"unbalanced span at offset {start}"
            continue
        try:
            value = json.loads(text[start:end])
        except json.JSONDecodeError as e:
            last_error = f"invalid JSON at offset {start}: {e.msg}"
            continue
        if expect is not None and not isinstance(value, expect):
            last_error = f"expected {expect.__name__}, got {type(value).__name__}"
            continue
        return ParseResult(ok=True, value=value)
    return ParseResult(ok=False, error=last_error)
