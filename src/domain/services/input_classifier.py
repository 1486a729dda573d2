"""Input classifier - pattern matching for research input.

Returns None when the patterns are inconclusive; the research coordinator then
asks the model to decide between a service name and a free-text request.
"""

import re

from src.domain.entities.research import InputClassification, InputKind

GITHUB_RE = re.compile(r"github\.com/([^/\s]+)/([^/\s#?]+)", re.IGNORECASE)
DOCS_URL_RE = re.compile(r"^https?://(docs\.|api\.|developer\.)", re.IGNORECASE)
URL_RE = re.compile(r"https?://[^\s<>\"']+", re.IGNORECASE)
WORD_RE = re.compile(r"[A-Za-z0-9][\w.+-]*")

SOURCE_CONFIDENCE = 1.0
DOCS_CONFIDENCE = 0.95
WEBSITE_CONFIDENCE = 0.9
FALLBACK_CONFIDENCE = 0.5


def extract_keywords(text: str) -> list[str]:
    """Words longer than 3 characters, lowercased, order preserved, no duplicates."""
    seen: dict[str, None] = {}
    for word in WORD_RE.findall(text.lower()):
        if len(word) > 3:
            seen.setdefault(word, None)
    return list(seen)


def find_github_reference(text: str) -> tuple[str, str] | None:
    """Return (owner, repository) for the first GitHub repository link in text."""
    match = GITHUB_RE.search(text)
    if not match:
        return None
    repository = match.group(2)
    if repository.endswith(".git"):
        repository = repository[:-4]
    return match.group(1), repository


def classify_by_pattern(text: str) -> InputClassification | None:
    """Classify input by URL shape. None means the patterns are inconclusive."""
    text = text.strip()
    github = find_github_reference(text)
    if github:
        owner, repository = github
        return InputClassification(
            kind=InputKind.SOURCE_REFERENCE,
            confidence=SOURCE_CONFIDENCE,
            url=f"https://github.com/{owner}/{repository}",
            owner=owner,
            repository=repository,
        )

    url_match = URL_RE.search(text)
    if url_match:
        url = url_match.group(0).rstrip(".,;)")
        if DOCS_URL_RE.match(url):
            return InputClassification(
                kind=InputKind.DOCUMENTATION_URL,
                confidence=DOCS_CONFIDENCE,
                url=url,
            )
        return InputClassification(
            kind=InputKind.WEBSITE_URL,
            confidence=WEBSITE_CONFIDENCE,
            url=url,
        )
    return None


def fallback_classification(text: str) -> InputClassification:
    """Conservative classification used when the model call fails."""
    return InputClassification(
        kind=InputKind.NATURAL_LANGUAGE,
        confidence=FALLBACK_CONFIDENCE,
        keywords=extract_keywords(text),
    )
