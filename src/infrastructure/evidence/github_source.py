"""GitHub source analysis via the REST API."""

import asyncio
import base64
import json
import logging
import re

import httpx

from src.domain.entities.research import RepositoryInfo, SourceAnalysis
from src.domain.errors import EvidenceUnavailable
from src.infrastructure.services.http_pool import get_http_client

logger = logging.getLogger(__name__)

API_URL = "https://api.github.com"
MAX_SAMPLE_FILES = 4
MAX_EXAMPLE_CHARS = 1500

SOURCE_SUFFIXES = (".ts", ".js", ".py", ".go", ".rb", ".java")
MANIFESTS = ("package.json", "requirements.txt", "pyproject.toml", "go.mod")
TEST_FRAMEWORK_HINTS = {
    "jest": "jest",
    "vitest": "vitest",
    "mocha": "mocha",
    "pytest": "pytest",
    "unittest": "unittest",
}

_ENDPOINT_PATTERNS = (
    # app.get('/users/:id') / router.post("/items")
    re.compile(r"\b(?:app|router|server)\.(get|post|put|patch|delete)\(\s*['\"`](/[^'\"`]*)"),
    # @app.get("/users/{id}") / @router.post(...)
    re.compile(r"@\w+\.(get|post|put|patch|delete)\(\s*['\"](/[^'\"]*)"),
    # fetch(`${BASE}/v1/charges`, { method: "POST" }) style client calls
    re.compile(r"\b(GET|POST|PUT|PATCH|DELETE)\s+(/[\w/{}:.\-]+)"),
)


def extract_endpoints(code: str) -> list[str]:
    """``METHOD /path`` strings found in source code, de-duplicated."""
    found: dict[str, None] = {}
    for pattern in _ENDPOINT_PATTERNS:
        for method, path in pattern.findall(code):
            found.setdefault(f"{method.upper()} {path}", None)
    return list(found)


def _dependencies_from_manifest(name: str, text: str) -> list[str]:
    if name == "package.json":
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return []
        deps = {**(data.get("dependencies") or {}), **(data.get("devDependencies") or {})}
        return list(deps)
    if name == "requirements.txt":
        return [re.split(r"[<>=!~\[; ]", line.strip(), maxsplit=1)[0] for line in text.splitlines()
                if line.strip() and not line.startswith("#")]
    return []


class GitHubSourceAnalyzer:
    """SourceAnalysisPort backed by the GitHub REST API. Requires a token."""

    def __init__(self, token: str | None = None, timeout: float = 15.0) -> None:
        self._token = (token or "").strip() or None
        self._timeout = timeout

    def _headers(self) -> dict:
        if not self._token:
            raise EvidenceUnavailable("Source analysis requires GITHUB_TOKEN to be configured")
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self._token}",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    async def _get_json(self, path: str, params: dict | None = None) -> dict | list:
        headers = self._headers()
        async with get_http_client() as client:
            response = await client.get(
                f"{API_URL}{path}", params=params, headers=headers, timeout=self._timeout
            )
        if response.status_code == 401:
            raise EvidenceUnavailable("GitHub rejected the configured token")
        response.raise_for_status()
        return response.json()

    async def search_repositories(self, query: str, limit: int = 3) -> list[RepositoryInfo]:
        data = await self._get_json(
            "/search/repositories",
            params={"q": query, "sort": "stars", "order": "desc", "per_page": limit},
        )
        return [_repository_info(item) for item in data.get("items", [])[:limit]]

    async def analyze_repository(self, owner: str, repository: str) -> SourceAnalysis:
        info = _repository_info(await self._get_json(f"/repos/{owner}/{repository}"))
        tree = await self._get_json(
            f"/repos/{owner}/{repository}/git/trees/{info.default_branch}",
            params={"recursive": "1"},
        )
        paths = [item["path"] for item in tree.get("tree", []) if item.get("type") == "blob"]

        manifests = [p for p in paths if p.rsplit("/", 1)[-1] in MANIFESTS and p.count("/") == 0]
        samples = [
            p for p in paths
            if p.endswith(SOURCE_SUFFIXES) and "test" not in p.lower() and "/node_modules/" not in p
        ][:MAX_SAMPLE_FILES]
        contents = await asyncio.gather(
            *(self._file_text(owner, repository, p) for p in manifests + samples),
            return_exceptions=True,
        )
        texts = {
            path: text
            for path, text in zip(manifests + samples, contents)
            if isinstance(text, str)
        }

        dependencies: list[str] = []
        for path in manifests:
            dependencies.extend(_dependencies_from_manifest(path, texts.get(path, "")))
        endpoints: dict[str, None] = {}
        for path in samples:
            for endpoint in extract_endpoints(texts.get(path, "")):
                endpoints.setdefault(endpoint, None)
        lowered = " ".join(paths).lower() + " " + " ".join(dependencies).lower()
        frameworks = [name for hint, name in TEST_FRAMEWORK_HINTS.items() if hint in lowered]

        return SourceAnalysis(
            repository=info,
            files=paths[:200],
            code_examples=[texts[p][:MAX_EXAMPLE_CHARS] for p in samples if p in texts],
            test_frameworks=frameworks,
            api_endpoints=list(endpoints),
            dependencies=dependencies,
        )

    async def _file_text(self, owner: str, repository: str, path: str) -> str:
        try:
            data = await self._get_json(f"/repos/{owner}/{repository}/contents/{path}")
        except httpx.HTTPError as e:
            logger.debug("Could not fetch %s/%s:%s: %s", owner, repository, path, e)
            raise
        if data.get("encoding") == "base64":
            return base64.b64decode(data.get("content", "")).decode("utf-8", errors="replace")
        return data.get("content", "")


def _repository_info(data: dict) -> RepositoryInfo:
    return RepositoryInfo(
        name=data.get("name", ""),
        full_name=data.get("full_name", ""),
        description=data.get("description") or "",
        language=data.get("language"),
        stars=data.get("stargazers_count", 0),
        url=data.get("html_url", ""),
        default_branch=data.get("default_branch") or "main",
    )
