"""Keyed web search - Tavily first, Brave as the alternative key."""

import logging

import httpx

from src.domain.entities.research import SearchHit
from src.domain.errors import EvidenceUnavailable
from src.infrastructure.services.http_pool import get_http_client

logger = logging.getLogger(__name__)

TAVILY_URL = "https://api.tavily.com/search"
BRAVE_URL = "https://api.search.brave.com/res/v1/web/search"
SNIPPET_LIMIT = 500


def build_tavily_payload(query: str, max_results: int) -> dict:
    return {
        "query": query,
        "max_results": min(max_results, 20),
        "search_depth": "basic",
    }


def build_tavily_headers(api_key: str) -> dict:
    return {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {api_key}",
    }


def build_brave_headers(api_key: str) -> dict:
    return {
        "Accept": "application/json",
        "X-Subscription-Token": api_key,
    }


class KeyedWebSearch:
    """WebSearchPort backed by a paid search API.

    Without any key every search raises EvidenceUnavailable; the research
    coordinator lets that surface as a pipeline error.
    """

    def __init__(
        self,
        tavily_api_key: str | None = None,
        brave_api_key: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._tavily_key = (tavily_api_key or "").strip() or None
        self._brave_key = (brave_api_key or "").strip() or None
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self._tavily_key or self._brave_key)

    async def search(self, query: str, max_results: int = 5) -> list[SearchHit]:
        if not self.configured:
            raise EvidenceUnavailable(
                "Web search requires TAVILY_API_KEY or BRAVE_API_KEY to be configured"
            )
        if not query.strip():
            return []
        if self._tavily_key:
            return await self._search_tavily(query, max_results)
        return await self._search_brave(query, max_results)

    async def _search_tavily(self, query: str, max_results: int) -> list[SearchHit]:
        async with get_http_client() as client:
            response = await client.post(
                TAVILY_URL,
                json=build_tavily_payload(query, max_results),
                headers=build_tavily_headers(self._tavily_key),
                timeout=self._timeout,
            )
        _raise_for_auth(response, "Tavily")
        response.raise_for_status()
        data = response.json()
        return [
            SearchHit(
                title=item.get("title", ""),
                url=item.get("url", ""),
                snippet=(item.get("content") or "")[:SNIPPET_LIMIT],
                source="tavily",
            )
            for item in data.get("results", [])[:max_results]
        ]

    async def _search_brave(self, query: str, max_results: int) -> list[SearchHit]:
        async with get_http_client() as client:
            response = await client.get(
                BRAVE_URL,
                params={"q": query, "count": max_results},
                headers=build_brave_headers(self._brave_key),
                timeout=self._timeout,
            )
        _raise_for_auth(response, "Brave")
        response.raise_for_status()
        data = response.json()
        return [
            SearchHit(
                title=item.get("title", ""),
                url=item.get("url", ""),
                snippet=(item.get("description") or "")[:SNIPPET_LIMIT],
                source="brave",
            )
            for item in (data.get("web") or {}).get("results", [])[:max_results]
        ]


def _raise_for_auth(response: httpx.Response, provider: str) -> None:
    if response.status_code in (401, 403):
        logger.error("%s rejected the configured API key (%s)", provider, response.status_code)
        raise EvidenceUnavailable(f"{provider} rejected the configured API key")
