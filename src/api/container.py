"""Dependency Injection Container - centralized service management."""

from functools import cached_property
from typing import TYPE_CHECKING

from src.domain.ports.config import AppConfig
from src.domain.ports.llm import LLMPort
from src.domain.services.model_router import ModelRouter
from src.infrastructure.config import load_config

if TYPE_CHECKING:
    from src.application.pipeline.use_case import PipelineUseCase
    from src.infrastructure.agents.clarifier import ClarificationOrchestrator
    from src.infrastructure.agents.ensemble import EnsembleCoordinator
    from src.infrastructure.agents.refiner import RefinementLoop
    from src.infrastructure.agents.research_cache import ResearchCache
    from src.infrastructure.agents.researcher import ResearchCoordinator
    from src.infrastructure.sandbox.executor import SandboxExecutor
    from src.infrastructure.workflow.nodes import PipelineNodes


class Container:
    """Dependency Injection Container with lazy initialization.

    All dependencies are created on first access and cached.

    Usage:
        container = Container()
        use_case = container.pipeline_use_case
    """

    def __init__(self, config: AppConfig | None = None):
        """Initialize container with optional config override."""
        self._config_override = config

    @cached_property
    def config(self) -> AppConfig:
        """Application configuration."""
        if self._config_override:
            return self._config_override
        return load_config()

    @cached_property
    def llm(self) -> LLMPort:
        """Text-generation adapter (any OpenAI-compatible server)."""
        from src.infrastructure.llm.openai_compatible import OpenAICompatibleAdapter

        return OpenAICompatibleAdapter(self.config.openai_compatible)

    @cached_property
    def model_router(self) -> ModelRouter:
        """Model router for phase-based tier selection."""
        return ModelRouter(
            self.config.models,
            provider=self.config.llm.provider,
        )

    @cached_property
    def research_cache(self) -> "ResearchCache":
        from src.infrastructure.agents.research_cache import ResearchCache

        evidence = self.config.evidence
        return ResearchCache(
            ttl=evidence.research_cache_ttl,
            max_entries=evidence.research_cache_max_entries,
        )

    @cached_property
    def researcher(self) -> "ResearchCoordinator":
        """Research coordinator wired to the configured evidence sources."""
        from src.infrastructure.agents.researcher import ResearchCoordinator
        from src.infrastructure.evidence.docs_scraper import HttpDocsScraper
        from src.infrastructure.evidence.github_source import GitHubSourceAnalyzer
        from src.infrastructure.evidence.web_search import KeyedWebSearch

        evidence = self.config.evidence
        return ResearchCoordinator(
            llm=self.llm,
            router=self.model_router,
            web_search=KeyedWebSearch(
                tavily_api_key=evidence.tavily_api_key,
                brave_api_key=evidence.brave_api_key,
            ),
            source_analyzer=GitHubSourceAnalyzer(token=evidence.github_token),
            docs_scraper=HttpDocsScraper(),
            cache=self.research_cache,
            max_search_results=evidence.max_search_results,
        )

    @cached_property
    def ensemble(self) -> "EnsembleCoordinator":
        from src.infrastructure.agents.ensemble import EnsembleCoordinator

        return EnsembleCoordinator(self.llm, self.model_router)

    @cached_property
    def clarifier(self) -> "ClarificationOrchestrator":
        from src.infrastructure.agents.clarifier import ClarificationOrchestrator

        return ClarificationOrchestrator(self.llm, self.model_router)

    @cached_property
    def refiner(self) -> "RefinementLoop":
        """Refinement loop against the external container harness."""
        from src.infrastructure.agents.refiner import RefinementLoop
        from src.infrastructure.harness.http_harness import HttpTestHarness

        harness = self.config.harness
        return RefinementLoop(
            llm=self.llm,
            router=self.model_router,
            harness=HttpTestHarness(harness.base_url),
            envelope=harness.envelope(),
        )

    @cached_property
    def sandbox(self) -> "SandboxExecutor":
        """Isolated interpreter for short check scripts."""
        from src.infrastructure.sandbox.executor import SandboxExecutor

        return SandboxExecutor(
            default_timeout=self.config.sandbox.timeout_seconds,
            default_memory_mb=self.config.sandbox.memory_limit_mb,
        )

    @cached_property
    def pipeline_nodes(self) -> "PipelineNodes":
        from src.infrastructure.workflow.nodes import PipelineNodes

        return PipelineNodes(
            llm=self.llm,
            router=self.model_router,
            researcher=self.researcher,
            ensemble=self.ensemble,
            clarifier=self.clarifier,
            refiner=self.refiner,
        )

    @cached_property
    def pipeline_use_case(self) -> "PipelineUseCase":
        """Pipeline use case; sessions live in its in-memory checkpointer."""
        from src.application.pipeline.use_case import PipelineUseCase

        return PipelineUseCase(self.pipeline_nodes)

    def reset(self) -> None:
        """Reset all cached instances (useful for testing)."""
        for attr in list(self.__dict__.keys()):
            if not attr.startswith("_"):
                delattr(self, attr)


# Global container instance
_container: Container | None = None


def get_container() -> Container:
    """Get or create global container instance."""
    global _container
    if _container is None:
        _container = Container()
    return _container


def reset_container() -> None:
    """Reset global container (for testing)."""
    global _container
    if _container:
        _container.reset()
    _container = None
