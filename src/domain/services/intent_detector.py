"""Intent detector - heuristic with LRU cache."""

import re
from dataclasses import dataclass
from functools import lru_cache

HELP_PATTERNS = ("help", "what can you do", "how does this work", "how do i use", "usage")
GENERATE_PATTERNS = (
    "create",
    "generate",
    "build",
    "make",
    "write",
    "implement",
    "mcp server",
    "server for",
    "wrap",
    "integrate",
)
RESEARCH_PATTERNS = ("research", "find out", "look up", "investigate", "what is")

_HELP_RE = re.compile(
    r"(?:^|\s)(" + "|".join(re.escape(p) for p in HELP_PATTERNS) + r")(?:\s|$|[!.,?])",
)
_GENERATE_RE = re.compile(
    r"(?:^|\s)(" + "|".join(re.escape(p) for p in GENERATE_PATTERNS) + r")(?:\s|$|[!.,?])",
)
_RESEARCH_RE = re.compile(
    r"(?:^|\s)(" + "|".join(re.escape(p) for p in RESEARCH_PATTERNS) + r")(?:\s|$|[!.,?])",
)
_URL_RE = re.compile(r"https?://\S+")

HELP_RESPONSE = (
    "I generate Model Context Protocol (MCP) servers. Send me a GitHub repository URL, "
    "an API documentation link, a service name (for example \"Stripe\"), or describe the "
    "tools you need. I research the target, agree on a tool list, ask only what I cannot "
    "infer, then generate and test the server until its tools work."
)


@dataclass(frozen=True)  # hashable for caching
class Intent:
    """Detected intent with optional template response."""

    kind: str  # "help" | "generate" | "research" | "unknown"
    response: str | None = None


@lru_cache(maxsize=128)
def _detect_impl(text: str) -> Intent:
    """Run detection logic (cached at module level)."""
    if not text:
        return Intent(kind="unknown")

    # A URL is always something to build from
    if _URL_RE.search(text):
        return Intent(kind="generate")

    if text == "?" or (_HELP_RE.search(text) and not _GENERATE_RE.search(text)):
        return Intent(kind="help", response=HELP_RESPONSE)

    if _GENERATE_RE.search(text):
        return Intent(kind="generate")

    if _RESEARCH_RE.search(text):
        return Intent(kind="research")

    return Intent(kind="unknown")


class IntentDetector:
    """Fast heuristic intent detection; ``unknown`` defers to the model."""

    def detect(self, message: str) -> Intent:
        return _detect_impl(message.strip().lower())

    def clear_cache(self) -> None:
        _detect_impl.cache_clear()
