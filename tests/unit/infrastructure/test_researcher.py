"""Research coordinator tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.domain.entities.clarification import ClarificationQuestion, ClarificationRound
from src.domain.entities.research import (
    DocumentationAnalysis,
    InputKind,
    RepositoryInfo,
    SearchHit,
    SourceAnalysis,
)
from src.domain.errors import EvidenceUnavailable
from src.infrastructure.agents.research_cache import ResearchCache
from src.infrastructure.agents.researcher import (
    FALLBACK_CHALLENGES,
    ResearchCoordinator,
    service_name_from_url,
    web_queries,
)
from src.infrastructure.workflow.nodes import extract_parameters

SYNTHESIS = "Synthesize the research"
CLASSIFY = "Is this input the name"
IDENTIFY = "Which existing services"

HITS = [
    SearchHit(title="Stripe API Reference", url="https://docs.stripe.com/api", snippet="REST API"),
    SearchHit(title="Stripe guide", url="https://example.com/stripe-guide", snippet="How to integrate"),
]


def _state(text: str, **extra) -> dict:
    return {"user_input": text, "extracted": extract_parameters(text), **extra}


@pytest.fixture
def web_search():
    web = MagicMock()
    web.search = AsyncMock(return_value=list(HITS))
    return web


@pytest.fixture
def source_analyzer():
    source = MagicMock()
    source.analyze_repository = AsyncMock(
        return_value=SourceAnalysis(
            repository=RepositoryInfo(name="widgets", full_name="acme/widgets", language="Go", stars=42),
            api_endpoints=["GET /widgets", "POST /widgets"],
        )
    )
    source.search_repositories = AsyncMock(
        return_value=[RepositoryInfo(name="stripe-node", full_name="stripe/stripe-node")]
    )
    return source


@pytest.fixture
def docs_scraper():
    docs = MagicMock()
    docs.scrape = AsyncMock(
        return_value=DocumentationAnalysis(url="https://docs.stripe.com/api", title="Stripe API")
    )
    return docs


@pytest.fixture
def coordinator(scripted_llm, model_router, web_search, source_analyzer, docs_scraper):
    return ResearchCoordinator(
        llm=scripted_llm,
        router=model_router,
        web_search=web_search,
        source_analyzer=source_analyzer,
        docs_scraper=docs_scraper,
        cache=ResearchCache(),
    )


class TestHelpers:
    def test_service_name_from_url(self):
        assert service_name_from_url("https://stripe.com/docs") == "stripe"
        assert service_name_from_url("https://docs.github.com/rest") == "github"

    def test_four_web_queries(self):
        queries = web_queries("Stripe", "python")
        assert len(queries) == 4
        assert queries[0] == "Stripe API documentation"
        assert "python" in queries[2]


class TestSourceReference:
    """GitHub links: web search plus repository analysis."""

    @pytest.mark.asyncio
    async def test_gathers_source_and_web(self, coordinator, scripted_llm, web_search, source_analyzer):
        scripted_llm.on(SYNTHESIS, {"summary": "Widgets API", "confidence": 0.8})
        result = await coordinator.conduct_research(_state("https://github.com/acme/widgets"))

        assert result.classification.kind == InputKind.SOURCE_REFERENCE
        assert result.source_analysis.repository.full_name == "acme/widgets"
        assert result.documentation is None
        assert result.confidence == 0.8
        assert result.iterations == 1
        source_analyzer.analyze_repository.assert_awaited_once_with("acme", "widgets")
        assert web_search.search.await_count == 4

    @pytest.mark.asyncio
    async def test_web_hits_deduplicated(self, coordinator, scripted_llm):
        scripted_llm.on(SYNTHESIS, {"summary": "Widgets API", "confidence": 0.8})
        result = await coordinator.conduct_research(_state("https://github.com/acme/widgets"))

        assert len(result.web_findings.hits) == 2
        assert result.web_findings.patterns == ["Stripe API Reference", "Stripe guide"]

    @pytest.mark.asyncio
    async def test_failed_source_branch_dropped(self, coordinator, scripted_llm, source_analyzer):
        scripted_llm.on(SYNTHESIS, {"summary": "Widgets API", "confidence": 0.7})
        source_analyzer.analyze_repository.side_effect = RuntimeError("rate limited")
        result = await coordinator.conduct_research(_state("https://github.com/acme/widgets"))

        assert result.source_analysis is None
        assert result.web_findings is not None

    @pytest.mark.asyncio
    async def test_missing_credential_propagates(self, coordinator, web_search):
        web_search.search.side_effect = EvidenceUnavailable("no search key")
        with pytest.raises(EvidenceUnavailable):
            await coordinator.conduct_research(_state("https://github.com/acme/widgets"))


class TestSynthesisFallback:
    @pytest.mark.asyncio
    async def test_unparseable_synthesis(self, coordinator, scripted_llm):
        scripted_llm.on(SYNTHESIS, "I could not decide.")
        result = await coordinator.conduct_research(_state("https://github.com/acme/widgets"))

        plan = result.synthesized_plan
        assert result.confidence == 0.4
        assert plan.potential_challenges == FALLBACK_CHALLENGES
        assert '"widgets"' in plan.summary
        assert "Go" in plan.summary
        assert plan.key_insights == ["Stripe API Reference", "Stripe guide"]


class TestServiceName:
    """Service names: official docs, repositories and the web."""

    @pytest.mark.asyncio
    async def test_service_strategy(self, coordinator, scripted_llm, docs_scraper, source_analyzer):
        scripted_llm.on(CLASSIFY, {"type": "service_name", "service_name": "Stripe", "confidence": 0.9})
        scripted_llm.on(SYNTHESIS, {"summary": "Stripe payments", "confidence": 0.85})
        result = await coordinator.conduct_research(_state("Stripe"))

        assert result.classification.kind == InputKind.SERVICE_NAME
        assert result.classification.service_name == "Stripe"
        docs_scraper.scrape.assert_awaited_once_with("https://docs.stripe.com/api")
        source_analyzer.search_repositories.assert_awaited_once_with("Stripe api", limit=3)
        source_analyzer.analyze_repository.assert_awaited_once_with("stripe", "stripe-node")
        assert result.documentation.title == "Stripe API"
        assert result.confidence == 0.85

    @pytest.mark.asyncio
    async def test_classification_failure_falls_back(self, coordinator, scripted_llm):
        scripted_llm.on(CLASSIFY, "not json at all")
        classification = await coordinator.classify_input("manage calendar events")
        assert classification.kind == InputKind.NATURAL_LANGUAGE
        assert classification.confidence == 0.5


class TestNaturalLanguage:
    """Free text: identify a service first."""

    @pytest.mark.asyncio
    async def test_no_service_caps_confidence(self, coordinator, scripted_llm, source_analyzer, docs_scraper):
        scripted_llm.on(CLASSIFY, {"type": "natural_language", "keywords": ["habits", "tracker"]})
        scripted_llm.on(IDENTIFY, [])
        scripted_llm.on(SYNTHESIS, {"summary": "Habit tracker", "confidence": 0.9})
        result = await coordinator.conduct_research(_state("something that tracks my habits"))

        assert result.confidence == 0.3
        assert result.source_analysis is None
        assert result.documentation is None
        source_analyzer.search_repositories.assert_not_awaited()
        docs_scraper.scrape.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_identified_service_researched(self, coordinator, scripted_llm, source_analyzer):
        scripted_llm.on(CLASSIFY, {"type": "natural_language", "keywords": ["payments"]})
        scripted_llm.on(IDENTIFY, [{"name": "Stripe"}, "PayPal"])
        scripted_llm.on(SYNTHESIS, {"summary": "Payments", "confidence": 0.75})
        result = await coordinator.conduct_research(_state("take card payments on my site"))

        source_analyzer.search_repositories.assert_awaited_once_with("Stripe api", limit=3)
        assert result.confidence == 0.75


class TestResearchCache:
    @pytest.mark.asyncio
    async def test_second_pass_served_from_cache(self, coordinator, scripted_llm, web_search):
        scripted_llm.on(SYNTHESIS, {"summary": "Widgets API", "confidence": 0.8})
        first = await coordinator.conduct_research(_state("https://github.com/acme/widgets"))
        second = await coordinator.conduct_research(
            _state("https://github.com/acme/widgets", research=first)
        )

        assert second.from_cache
        assert second.iterations == 2
        assert len(scripted_llm.prompts_containing(SYNTHESIS)) == 1
        assert web_search.search.await_count == 4

    @pytest.mark.asyncio
    async def test_clarification_answers_bypass_cache(self, coordinator, scripted_llm):
        scripted_llm.on(SYNTHESIS, {"summary": "Widgets API", "confidence": 0.8})
        first = await coordinator.conduct_research(_state("https://github.com/acme/widgets"))
        answered = ClarificationRound(
            questions=[ClarificationQuestion(question="Which region?")],
            user_response="EU only",
        )
        second = await coordinator.conduct_research(
            _state("https://github.com/acme/widgets", research=first, clarification_history=[answered])
        )

        assert not second.from_cache
        prompts = scripted_llm.prompts_containing(SYNTHESIS)
        assert len(prompts) == 2
        assert "EU only" in prompts[1]


class TestProviderErrors:
    """A provider that rejects every request degrades research instead of aborting it."""

    @pytest.fixture
    def coordinator(self, rejecting_llm, model_router, web_search, source_analyzer, docs_scraper):
        return ResearchCoordinator(
            llm=rejecting_llm,
            router=model_router,
            web_search=web_search,
            source_analyzer=source_analyzer,
            docs_scraper=docs_scraper,
            cache=ResearchCache(),
        )

    @pytest.mark.asyncio
    async def test_synthesis_falls_back(self, coordinator):
        result = await coordinator.conduct_research(_state("https://github.com/acme/widgets"))

        assert result.confidence == 0.4
        assert result.synthesized_plan.potential_challenges == FALLBACK_CHALLENGES

    @pytest.mark.asyncio
    async def test_free_text_falls_back_to_web_only(self, coordinator, source_analyzer):
        result = await coordinator.conduct_research(_state("something that tracks my habits"))

        assert result.classification.kind == InputKind.NATURAL_LANGUAGE
        assert result.confidence == 0.3
        source_analyzer.search_repositories.assert_not_awaited()
