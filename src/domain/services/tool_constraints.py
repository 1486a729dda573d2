"""Extract explicit tool count / tool name limits from a user request."""

import re

from src.domain.entities.tools import ToolConstraints

COUNT_RE = re.compile(r"(?:with\s+)?(\d+)\s+tools?\b", re.IGNORECASE)
COLON_LIST_RE = re.compile(r"tools?:\s*([^.]+?)(?:\.|$)", re.IGNORECASE)
ONLY_RE = re.compile(r"\b(?:only|just)\s+([^.]+?)(?:\.|$)", re.IGNORECASE)
TRAILING_ONLY_RE = re.compile(
    r"\b([a-z_]+(?:(?:\s*,\s*|\s+and\s+)[a-z_]+)+)(?:\s+tools?)?\s+only\s*(?:\.|$)",
    re.IGNORECASE,
)
BEFORE_TOOLS_RE = re.compile(
    r"(?:with\s+)?([a-z_]+(?:\s*,\s*[a-z_]+)*(?:\s+and\s+[a-z_]+)+)\s+tools?\b",
    re.IGNORECASE,
)
SPLIT_RE = re.compile(r",|\s+and\s+", re.IGNORECASE)

STOP_WORDS = frozenset({"only", "just", "with", "the", "a", "an"})
MAX_WORDS_PER_NAME = 3
HEADROOM = 2


def _to_names(text: str) -> list[str]:
    names = []
    for part in SPLIT_RE.split(text):
        words = [w for w in part.strip().lower().split() if w not in STOP_WORDS]
        if not words or len(words) > MAX_WORDS_PER_NAME:
            continue
        name = "_".join(words)
        if name not in names:
            names.append(name)
    return names


def extract_tool_constraints(text: str) -> ToolConstraints:
    """Parse "N tools", "tools: a, b", "only/just X and Y", "X and Y only" and "X and Y tools".

    ``max_tool_count`` allows two tools of headroom over the requested count.
    """
    count: int | None = None
    names: list[str] = []

    if match := COUNT_RE.search(text):
        count = int(match.group(1))

    if match := COLON_LIST_RE.search(text):
        names = _to_names(match.group(1))

    if not names and (match := ONLY_RE.search(text) or TRAILING_ONLY_RE.search(text)):
        body = re.sub(r"^with\s+", "", match.group(1), flags=re.IGNORECASE)
        body = re.sub(r"\s*\btools?\b\s*", " ", body, flags=re.IGNORECASE)
        names = _to_names(body)

    if not names and (match := BEFORE_TOOLS_RE.search(text)):
        names = _to_names(match.group(1))

    if names and count is None:
        count = len(names)

    return ToolConstraints(
        requested_count=count,
        requested_names=names,
        max_tool_count=count + HEADROOM if count else None,
    )
