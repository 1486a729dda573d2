"""Evidence ports - web search, source analysis and documentation scraping."""

from typing import Protocol

from src.domain.entities.research import (
    DocumentationAnalysis,
    RepositoryInfo,
    SearchHit,
    SourceAnalysis,
)


class WebSearchPort(Protocol):
    """Keyed web search. Raises EvidenceUnavailable when no key is configured."""

    async def search(self, query: str, max_results: int = 5) -> list[SearchHit]:
        ...


class SourceAnalysisPort(Protocol):
    """Structural analysis of source repositories."""

    async def analyze_repository(self, owner: str, repository: str) -> SourceAnalysis:
        ...

    async def search_repositories(self, query: str, limit: int = 3) -> list[RepositoryInfo]:
        ...


class DocumentationPort(Protocol):
    """Fetch and analyze an API documentation page."""

    async def scrape(self, url: str) -> DocumentationAnalysis:
        ...
