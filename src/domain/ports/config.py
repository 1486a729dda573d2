"""Config Port - interface for configuration access."""

from typing import Protocol

from pydantic import BaseModel, ConfigDict

from src.domain.ports.harness import HarnessEnvelope


class ProviderModelSet(BaseModel):
    """Model IDs per tier for a specific provider. All optional; merged with defaults."""

    fast: str | None = None
    reasoning: str | None = None
    coding: str | None = None


class ResolvedModelSet(BaseModel):
    """Resolved model IDs for a provider."""

    model_config = ConfigDict(frozen=True)

    fast: str
    reasoning: str
    coding: str


class ModelConfig(BaseModel):
    """Model selection by pipeline tier. Provider-agnostic defaults + per-provider overrides."""

    fast: str = "qwen2.5-coder:7b"  # classification, intent, gap detection
    reasoning: str = "qwen2.5-coder:14b"  # synthesis, specialists, mediation, failure analysis
    coding: str = "qwen2.5-coder:14b"  # generation and repair
    # Per-provider overrides. Keys: provider name (lm_studio, openai_compatible, ...).
    overrides: dict[str, ProviderModelSet] = {}

    model_config = ConfigDict(extra="ignore")

    def get_models_for_provider(self, provider: str) -> ResolvedModelSet:
        """Resolve model IDs for provider. Uses overrides when present, else defaults."""
        o = self.overrides.get(provider) or ProviderModelSet()
        return ResolvedModelSet(
            fast=o.fast or self.fast,
            reasoning=o.reasoning or self.reasoning,
            coding=o.coding or self.coding,
        )


class LLMConfig(BaseModel):
    """LLM provider selection."""

    provider: str = "openai_compatible"  # "openai_compatible" | "lm_studio"


class OpenAICompatibleConfig(BaseModel):
    """LM Studio, vLLM, LocalAI, hosted OpenAI-compatible APIs."""

    base_url: str = "http://localhost:1234/v1"
    api_key: str = ""
    timeout: int = 120
    # Optional: max tokens to generate. None = server/model default.
    max_tokens: int | None = None


class EvidenceConfig(BaseModel):
    """Credentials and limits for evidence gathering."""

    tavily_api_key: str | None = None
    brave_api_key: str | None = None
    github_token: str | None = None
    max_search_results: int = 5
    research_cache_ttl: int = 7 * 24 * 3600
    research_cache_max_entries: int = 100


class SandboxConfig(BaseModel):
    """Defaults for short snippet execution."""

    timeout_seconds: float = 5.0
    memory_limit_mb: int = 128


class HarnessConfig(HarnessEnvelope):
    """Container test harness location plus its fixed resource envelope."""

    base_url: str = "http://localhost:8100"

    def envelope(self) -> HarnessEnvelope:
        return HarnessEnvelope(**self.model_dump(exclude={"base_url"}))


class SecurityConfig(BaseModel):
    """Security settings."""

    rate_limit_requests_per_minute: int = 100
    cors_origins: list[str] = ["http://localhost:5173"]


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False


class AppConfig(BaseModel):
    """Root application configuration."""

    server: ServerConfig = ServerConfig()
    llm: LLMConfig = LLMConfig()
    openai_compatible: OpenAICompatibleConfig = OpenAICompatibleConfig()
    models: ModelConfig = ModelConfig()
    evidence: EvidenceConfig = EvidenceConfig()
    sandbox: SandboxConfig = SandboxConfig()
    harness: HarnessConfig = HarnessConfig()
    security: SecurityConfig = SecurityConfig()
    log_level: str = "INFO"
    log_file: str = ""
    log_rotation_max_mb: int = 5
    log_rotation_backups: int = 3


class ConfigPort(Protocol):
    """Interface for configuration providers."""

    def get_config(self) -> AppConfig:
        """Get the full application configuration."""
        ...
