"""API documentation scraper: HTML page -> endpoints, auth, rate limit."""

import html
import logging
import re
from urllib.parse import urlparse

from src.domain.entities.research import AuthenticationInfo, DocumentationAnalysis
from src.infrastructure.services.http_pool import get_http_client

logger = logging.getLogger(__name__)

MAX_ENDPOINTS = 50
MAX_CODE_EXAMPLES = 5

_SCRIPT_RE = re.compile(r"<(script|style)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_CODE_RE = re.compile(r"<pre[^>]*>(.*?)</pre>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_TITLE_RE = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)
_ENDPOINT_RE = re.compile(r"\b(GET|POST|PUT|PATCH|DELETE)\s+(/[\w/{}:.\-]*)")
_BASE_URL_RE = re.compile(r"https?://api\.[\w.\-]+(?:/v\d+(?:\.\d+)?)?", re.IGNORECASE)
_RATE_LIMIT_RE = re.compile(
    r"(\d[\d,]*\s*(?:requests?|calls?)\s*(?:per|/)\s*(?:second|minute|hour|day|sec|min))",
    re.IGNORECASE,
)

# Order matters: first match wins.
AUTH_HINTS = (
    ("oauth2", re.compile(r"\boauth\s*2(?:\.0)?\b|\boauth\b", re.IGNORECASE)),
    ("bearer", re.compile(r"\bbearer\b", re.IGNORECASE)),
    ("api_key", re.compile(r"\bapi[\s_-]?key\b|x-api-key", re.IGNORECASE)),
    ("basic", re.compile(r"\bbasic auth", re.IGNORECASE)),
)


def html_to_text(page: str) -> str:
    page = _SCRIPT_RE.sub(" ", page)
    text = _TAG_RE.sub(" ", page)
    return re.sub(r"[ \t]+", " ", html.unescape(text))


def detect_authentication(text: str) -> AuthenticationInfo:
    for kind, pattern in AUTH_HINTS:
        match = pattern.search(text)
        if match:
            start = max(0, match.start() - 80)
            return AuthenticationInfo(type=kind, details=text[start : match.end() + 120].strip())
    return AuthenticationInfo()


def analyze_page(url: str, page: str) -> DocumentationAnalysis:
    """Extract what the docs page says about the API."""
    title_match = _TITLE_RE.search(page)
    code_blocks = [html_to_text(block).strip() for block in _CODE_RE.findall(page)]
    text = html_to_text(page)

    endpoints: dict[str, None] = {}
    for method, path in _ENDPOINT_RE.findall(text):
        endpoints.setdefault(f"{method} {path}", None)
        if len(endpoints) >= MAX_ENDPOINTS:
            break

    base_match = _BASE_URL_RE.search(text)
    if base_match:
        base_url = base_match.group(0).rstrip("/.")
    else:
        parsed = urlparse(url)
        base_url = f"{parsed.scheme}://{parsed.netloc}" if parsed.netloc.startswith("api.") else None

    rate_match = _RATE_LIMIT_RE.search(text)
    return DocumentationAnalysis(
        url=url,
        title=html.unescape(title_match.group(1)).strip() if title_match else "",
        base_url=base_url,
        endpoints=list(endpoints),
        authentication=detect_authentication(text),
        rate_limit=rate_match.group(1) if rate_match else None,
        code_examples=[c for c in code_blocks if c][:MAX_CODE_EXAMPLES],
    )


class HttpDocsScraper:
    """DocumentationPort that fetches a page over HTTP and scans it."""

    def __init__(self, timeout: float = 15.0) -> None:
        self._timeout = timeout

    async def scrape(self, url: str) -> DocumentationAnalysis:
        async with get_http_client() as client:
            response = await client.get(url, timeout=self._timeout, follow_redirects=True)
        response.raise_for_status()
        analysis = analyze_page(str(response.url), response.text)
        logger.info(
            "Scraped %s: %d endpoints, auth=%s",
            url,
            len(analysis.endpoints),
            analysis.authentication.type,
        )
        return analysis
