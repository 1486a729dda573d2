"""Structured-output extractor: one JSON value out of free-form model text.

Every phase that reads structured data from a completion goes through
``extract_json``. Model output may be wrapped in prose or code fences, and may
be cut off before the closing brackets; both cases are handled here.
"""

import json
import logging
import re
from typing import Any, Literal

from src.domain.errors import SNIPPET_LENGTH, MalformedOutput

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*")
_CLOSERS = {"{": "}", "[": "]"}
_DANGLING_RE = re.compile(r'(?:,\s*|,?\s*"(?:[^"\\]|\\.)*"\s*:\s*)$')


def strip_fences(text: str) -> str:
    """Remove markdown code-fence markers, keeping their contents."""
    return _FENCE_RE.sub("", text)


def _find_start(text: str, expect: Literal["object", "array"] | None) -> int:
    if expect == "object":
        return text.find("{")
    if expect == "array":
        return text.find("[")
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    return min(starts) if starts else -1


def _balanced_span(text: str, start: int) -> str | None:
    """Span from ``start`` to the bracket closing it, or None when never closed."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
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
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def _unclosed_stack(text: str) -> tuple[list[str], bool]:
    """Openers still unclosed at the end of ``text`` and whether a string is open."""
    stack: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
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
        elif ch in "{[":
            stack.append(ch)
        elif ch in "}]" and stack:
            stack.pop()
    return stack, in_string


def _recover_truncated(text: str, start: int) -> str:
    """Close a cut-off structure: keep up to the last closing bracket, then close the rest."""
    last_close = max(text.rfind("}"), text.rfind("]"))
    span = text[start : last_close + 1] if last_close > start else text[start:]
    span = span.rstrip()
    _, in_string = _unclosed_stack(span)
    if in_string:
        span += '"'
    span = _DANGLING_RE.sub("", span.rstrip())
    stack, _ = _unclosed_stack(span)
    return span + "".join(_CLOSERS[opener] for opener in reversed(stack))


def extract_json(text: str, *, expect: Literal["object", "array"] | None = None) -> Any:
    """Return the first JSON object/array embedded in ``text``.

    Raises MalformedOutput (with the first 500 characters of the candidate)
    when nothing parseable is found, including after truncation recovery.
    """
    if not text or not text.strip():
        raise MalformedOutput("Empty model output")

    cleaned = strip_fences(text)
    start = _find_start(cleaned, expect)
    if start == -1:
        raise MalformedOutput("No JSON structure found in model output", cleaned)

    candidate = _balanced_span(cleaned, start)
    recovered = candidate is None
    if recovered:
        candidate = _recover_truncated(cleaned, start)
        logger.warning("Model output looked truncated, recovered %d chars", len(candidate))

    try:
        value = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.error("Failed to parse model JSON: %s; snippet: %s", e, candidate[:SNIPPET_LENGTH])
        reason = "Recovered JSON is still invalid" if recovered else "Invalid JSON in model output"
        raise MalformedOutput(f"{reason}: {e.msg}", candidate) from e

    if expect == "object" and not isinstance(value, dict):
        raise MalformedOutput("Expected a JSON object", candidate)
    if expect == "array" and not isinstance(value, list):
        raise MalformedOutput("Expected a JSON array", candidate)
    return value
