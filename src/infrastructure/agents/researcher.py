"""Research coordinator - classify the input, gather evidence, synthesize a plan."""

import asyncio
import logging
import re
from collections.abc import Awaitable
from typing import Any

from src.domain.entities.research import (
    DocumentationAnalysis,
    InputClassification,
    InputKind,
    ResearchResult,
    SourceAnalysis,
    SynthesizedPlan,
    WebFindings,
)
from src.domain.entities.session_state import SessionState
from src.domain.errors import EvidenceUnavailable, PipelineError
from src.domain.ports.evidence import DocumentationPort, SourceAnalysisPort, WebSearchPort
from src.domain.ports.llm import LLMPort
from src.domain.services.input_classifier import (
    DOCS_URL_RE,
    classify_by_pattern,
    extract_keywords,
    fallback_classification,
)
from src.domain.services.model_router import ModelRouter
from src.infrastructure.agents.llm_helpers import complete_json, complete_model
from src.infrastructure.agents.prompts import (
    build_classification_prompt,
    build_service_identification_prompt,
    build_synthesis_prompt,
)
from src.infrastructure.agents.research_cache import ResearchCache

logger = logging.getLogger(__name__)

NO_SERVICE_CONFIDENCE_CAP = 0.3
FALLBACK_CONFIDENCE = 0.4
DEFAULT_INSIGHTS = [
    "Standard MCP tool patterns",
    "Error handling best practices",
    "Typed tool input schemas",
]
FALLBACK_CHALLENGES = ["Limited research data", "May need user clarification"]

_SERVICE_FROM_URL_RE = re.compile(r"https?://(?:www\.|docs\.|api\.|developer\.)?([^./]+)", re.IGNORECASE)
_DOCS_PATH_HINTS = ("/docs", "/api", "/reference", "/developers")


def service_name_from_url(url: str) -> str:
    """stripe.com -> "stripe"; docs.github.com -> "github"."""
    match = _SERVICE_FROM_URL_RE.match(url)
    return match.group(1) if match else "service"


def web_queries(subject: str, language: str = "TypeScript") -> list[str]:
    return [
        f"{subject} API documentation",
        f"{subject} integration guide",
        f"MCP Model Context Protocol server examples {language}",
        f"{subject} API best practices",
    ]


async def _settle(*awaitables: Awaitable[Any]) -> list[Any]:
    """Run concurrently; a failed branch becomes None. Missing credentials propagate."""
    results = await asyncio.gather(*awaitables, return_exceptions=True)
    settled = []
    for result in results:
        if isinstance(result, EvidenceUnavailable):
            raise result
        if isinstance(result, BaseException):
            logger.warning("Research branch failed: %s: %s", type(result).__name__, result)
            settled.append(None)
        else:
            settled.append(result)
    return settled


def _clarification_context(state: SessionState) -> str:
    lines = []
    for round_ in state.get("clarification_history") or []:
        if round_.user_response is None:
            continue
        asked = "; ".join(q.question for q in round_.questions)
        lines.append(f"Q: {asked}\nA: {round_.user_response}")
    return "\n".join(lines)


def _evidence_text(
    classification: InputClassification,
    web: WebFindings | None,
    source: SourceAnalysis | None,
    docs: DocumentationAnalysis | None,
) -> str:
    parts = [f"Input type: {classification.kind.value}"]
    if web:
        parts.append(
            "Web findings:\n"
            + "\n".join(f"- {h.title}: {h.snippet[:200]} ({h.url})" for h in web.hits[:10])
        )
    if source:
        repo = source.repository
        parts.append(
            f"Repository {repo.full_name or repo.name} ({repo.language}, {repo.stars} stars): "
            f"{repo.description}\nEndpoints: {', '.join(source.api_endpoints[:30]) or 'none found'}\n"
            f"Dependencies: {', '.join(source.dependencies[:20])}\n"
            f"Test frameworks: {', '.join(source.test_frameworks) or 'none'}"
        )
        if source.code_examples:
            parts.append("Code example:\n" + source.code_examples[0][:1200])
    if docs:
        parts.append(
            f"Documentation {docs.title} ({docs.url}): base URL {docs.base_url or 'unknown'}, "
            f"auth {docs.authentication.type}, rate limit {docs.rate_limit or 'unknown'}\n"
            f"Endpoints: {', '.join(docs.endpoints[:30]) or 'none found'}"
        )
    return "\n\n".join(parts)


def fallback_plan(
    classification: InputClassification,
    subject: str,
    web: WebFindings | None,
    source: SourceAnalysis | None,
) -> SynthesizedPlan:
    """Deterministic synthesis when the model call fails."""
    label = classification.kind.value.replace("_", " ")
    if source:
        repo = source.repository
        summary = f'{label} "{repo.name}" - {repo.language or "unknown language"} project with {repo.stars} stars.'
    else:
        summary = f"{label}: {subject}"
    insights = web.patterns[:3] if web and web.patterns else list(DEFAULT_INSIGHTS)
    return SynthesizedPlan(
        summary=summary,
        key_insights=insights,
        recommended_approach="Generate an MCP server with standard tool patterns based on available research.",
        potential_challenges=list(FALLBACK_CHALLENGES),
        confidence=FALLBACK_CONFIDENCE,
        reasoning="Fallback synthesis after the model call failed",
    )


class ResearchCoordinator:
    """Runs one research pass for the current request.

    Strategy is chosen from the input classification; evidence sources run
    concurrently and any single failed source is dropped from synthesis.
    """

    def __init__(
        self,
        llm: LLMPort,
        router: ModelRouter,
        web_search: WebSearchPort,
        source_analyzer: SourceAnalysisPort,
        docs_scraper: DocumentationPort,
        cache: ResearchCache | None = None,
        max_search_results: int = 5,
    ) -> None:
        self._llm = llm
        self._router = router
        self._web = web_search
        self._source = source_analyzer
        self._docs = docs_scraper
        self._cache = cache
        self._max_results = max_search_results

    async def conduct_research(self, state: SessionState) -> ResearchResult:
        extracted = state.get("extracted")
        text = (extracted.request_text if extracted else "") or state.get("user_input", "")
        language = extracted.target_language.value if extracted else "typescript"
        previous = state.get("research")
        iterations = (previous.iterations if previous else 0) + 1
        clarifications = _clarification_context(state)

        classification = await self.classify_input(text)
        logger.info(
            "Input classified as %s (confidence %.2f)",
            classification.kind.value,
            classification.confidence,
        )

        # Answers change the synthesis, so only first passes use the cache.
        use_cache = self._cache is not None and not clarifications
        if use_cache:
            cached = self._cache.get(classification.cache_key)
            if cached is not None:
                logger.info("Research cache hit for %s", classification.cache_key)
                return cached.model_copy(update={"iterations": iterations, "from_cache": True})

        web, source, docs, cap = await self._gather(classification, text, language)
        subject = classification.service_name or classification.url or text
        plan = await self._synthesize(text, classification, subject, web, source, docs, clarifications)
        confidence = plan.confidence if cap is None else min(plan.confidence, cap)

        result = ResearchResult(
            classification=classification,
            web_findings=web,
            source_analysis=source,
            documentation=docs,
            synthesized_plan=plan,
            confidence=confidence,
            iterations=iterations,
        )
        if use_cache:
            self._cache.set(classification.cache_key, result)
        logger.info("Research pass %d finished with confidence %.2f", iterations, confidence)
        return result

    async def classify_input(self, text: str) -> InputClassification:
        by_pattern = classify_by_pattern(text)
        if by_pattern is not None:
            return by_pattern
        try:
            data = await complete_json(
                self._llm, build_classification_prompt(text), self._router.select("classification")
            )
            kind = InputKind(data.get("type", "natural_language"))
            if kind not in (InputKind.SERVICE_NAME, InputKind.NATURAL_LANGUAGE):
                raise ValueError(f"unexpected kind {kind.value}")
            service = data.get("service_name") or None
            if kind == InputKind.SERVICE_NAME and not service:
                service = text.strip()
            return InputClassification(
                kind=kind,
                confidence=max(0.0, min(1.0, float(data.get("confidence", 0.7)))),
                service_name=service if kind == InputKind.SERVICE_NAME else None,
                keywords=[str(k) for k in data.get("keywords") or []] or extract_keywords(text),
            )
        except (
            PipelineError, TimeoutError, ConnectionError, OSError, ValueError, TypeError, AttributeError
        ) as e:
            logger.warning("Input classification failed, using fallback: %s", e)
            return fallback_classification(text)

    async def _gather(
        self, classification: InputClassification, text: str, language: str
    ) -> tuple[WebFindings | None, SourceAnalysis | None, DocumentationAnalysis | None, float | None]:
        kind = classification.kind
        if kind == InputKind.SOURCE_REFERENCE:
            web, source = await _settle(
                self._search_web(classification.repository or "API", language),
                self._source.analyze_repository(classification.owner, classification.repository),
            )
            return web, source, None, None

        if kind in (InputKind.WEBSITE_URL, InputKind.DOCUMENTATION_URL):
            service = service_name_from_url(classification.url)
            web, docs, repos = await _settle(
                self._search_web(service, language),
                self._docs.scrape(classification.url),
                self._source.search_repositories(f"{service} api", limit=3),
            )
            source = await self._analyze_top_repository(repos)
            return web, source, docs, None

        if kind == InputKind.SERVICE_NAME:
            web, source, docs = await self._research_service(classification.service_name, language)
            return web, source, docs, None

        services = await self._identify_services(text)
        if not services:
            logger.info("No service identified for request, web search only")
            (web,) = await _settle(
                self._search_web(" ".join(classification.keywords[:5]) or text, language)
            )
            return web, None, None, NO_SERVICE_CONFIDENCE_CAP
        logger.info("Identified service %s for request", services[0])
        web, source, docs = await self._research_service(services[0], language)
        return web, source, docs, None

    async def _research_service(
        self, service: str, language: str
    ) -> tuple[WebFindings | None, SourceAnalysis | None, DocumentationAnalysis | None]:
        web, docs_url, repos = await _settle(
            self._search_web(service, language),
            self._find_official_docs(service),
            self._source.search_repositories(f"{service} api", limit=3),
        )
        docs_task = self._docs.scrape(docs_url) if docs_url else _none()
        source, docs = await _settle(self._analyze_top_repository(repos), docs_task)
        return web, source, docs

    async def _search_web(self, subject: str, language: str) -> WebFindings:
        queries = web_queries(subject, language)
        batches = await _settle(*(self._web.search(q, self._max_results) for q in queries))
        hits = []
        seen_urls: set[str] = set()
        for batch in batches:
            for hit in batch or []:
                if hit.url not in seen_urls:
                    seen_urls.add(hit.url)
                    hits.append(hit)
        return WebFindings(
            queries=queries,
            hits=hits,
            patterns=[h.title for h in hits if h.title][:5],
            best_practices=[h.snippet for h in hits if h.snippet][:5],
        )

    async def _find_official_docs(self, service: str) -> str | None:
        hits = await self._web.search(f"{service} official API reference", self._max_results)
        for hit in hits:
            if DOCS_URL_RE.match(hit.url) or any(p in hit.url for p in _DOCS_PATH_HINTS):
                return hit.url
        return None

    async def _analyze_top_repository(self, repos: list | None) -> SourceAnalysis | None:
        if not repos:
            return None
        top = repos[0]
        owner, _, name = top.full_name.partition("/")
        if not name:
            return None
        (source,) = await _settle(self._source.analyze_repository(owner, name))
        return source

    async def _identify_services(self, text: str) -> list[str]:
        try:
            data = await complete_json(
                self._llm,
                build_service_identification_prompt(text),
                self._router.select("service_identification"),
                expect="array",
            )
        except (PipelineError, TimeoutError, ConnectionError, OSError) as e:
            logger.warning("Service identification failed: %s", e)
            return []
        names = []
        for item in data:
            name = item.get("name") if isinstance(item, dict) else item
            if isinstance(name, str) and name.strip():
                names.append(name.strip())
        return names

    async def _synthesize(
        self,
        text: str,
        classification: InputClassification,
        subject: str,
        web: WebFindings | None,
        source: SourceAnalysis | None,
        docs: DocumentationAnalysis | None,
        clarifications: str,
    ) -> SynthesizedPlan:
        prompt = build_synthesis_prompt(
            text, _evidence_text(classification, web, source, docs), clarifications
        )
        try:
            return await complete_model(
                self._llm, prompt, self._router.select("synthesis"), SynthesizedPlan
            )
        except (PipelineError, TimeoutError, ConnectionError, OSError) as e:
            logger.warning("Research synthesis failed, using fallback: %s", e)
            return fallback_plan(classification, subject, web, source)


async def _none() -> None:
    return None
