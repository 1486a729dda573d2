"""TOML configuration loader with env overrides."""

import logging
import os
import tomllib
from pathlib import Path

from src.domain.ports.config import (
    AppConfig,
    EvidenceConfig,
    HarnessConfig,
    LLMConfig,
    ModelConfig,
    OpenAICompatibleConfig,
    ProviderModelSet,
    SandboxConfig,
    SecurityConfig,
    ServerConfig,
)

logger = logging.getLogger(__name__)


def _load_toml(path: Path) -> dict:
    """Load TOML file."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def _load_models_config(raw: dict) -> ModelConfig:
    """Load ModelConfig with per-provider overrides from nested TOML."""
    overrides_raw = {k: v for k, v in raw.items() if isinstance(v, dict)}
    defaults_raw = {k: v for k, v in raw.items() if k not in overrides_raw and isinstance(v, str)}
    overrides = {k: ProviderModelSet(**(v or {})) for k, v in overrides_raw.items()}
    return ModelConfig(overrides=overrides, **defaults_raw)


def _set_int(config: dict, section: str, key: str, env_name: str) -> None:
    value = os.getenv(env_name)
    if not value:
        return
    try:
        config.setdefault(section, {})[key] = int(value)
    except ValueError:
        logger.warning("Invalid %s env value: %r, ignoring", env_name, value)


def _apply_env_overrides(config: dict) -> dict:
    """Apply environment variable overrides."""
    if provider := os.getenv("LLM_PROVIDER"):
        config.setdefault("llm", {})["provider"] = provider
    if base_url := os.getenv("OPENAI_BASE_URL"):
        config.setdefault("openai_compatible", {})["base_url"] = base_url
    if api_key := os.getenv("OPENAI_API_KEY"):
        config.setdefault("openai_compatible", {})["api_key"] = api_key.strip()
    _set_int(config, "server", "port", "PORT")
    if level := os.getenv("LOG_LEVEL"):
        config.setdefault("logging", {})["level"] = level.upper()
    if path := os.getenv("LOG_FILE"):
        config.setdefault("logging", {})["file"] = path.strip()
    if origins := os.getenv("CORS_ORIGINS"):
        config.setdefault("security", {})["cors_origins"] = [o.strip() for o in origins.split(",")]
    _set_int(config, "security", "rate_limit_requests_per_minute", "RATE_LIMIT_PER_MINUTE")
    if key := os.getenv("TAVILY_API_KEY"):
        config.setdefault("evidence", {})["tavily_api_key"] = key.strip() or None
    if key := os.getenv("BRAVE_API_KEY"):
        config.setdefault("evidence", {})["brave_api_key"] = key.strip() or None
    if token := os.getenv("GITHUB_TOKEN"):
        config.setdefault("evidence", {})["github_token"] = token.strip() or None
    if url := os.getenv("HARNESS_URL"):
        config.setdefault("harness", {})["base_url"] = url.strip()
    if timeout := os.getenv("SANDBOX_TIMEOUT"):
        try:
            config.setdefault("sandbox", {})["timeout_seconds"] = float(timeout)
        except ValueError:
            logger.warning("Invalid SANDBOX_TIMEOUT env value: %r, ignoring", timeout)
    return config


def load_config(config_dir: Path | None = None) -> AppConfig:
    """Load configuration from TOML files with env overrides.

    Loads default.toml, then development.toml if exists.
    """
    if config_dir is None:
        config_dir = Path(__file__).resolve().parent.parent.parent.parent / "config"

    config: dict = {}

    default_path = config_dir / "default.toml"
    if default_path.exists():
        config = _load_toml(default_path)

    dev_path = config_dir / "development.toml"
    if dev_path.exists():
        dev_config = _load_toml(dev_path)
        for key, value in dev_config.items():
            if isinstance(value, dict) and key in config and isinstance(config[key], dict):
                config[key] = {**config[key], **value}
            else:
                config[key] = value

    config = _apply_env_overrides(config)

    logging_raw = config.get("logging") or {}
    return AppConfig(
        server=ServerConfig(**(config.get("server") or {})),
        llm=LLMConfig(**(config.get("llm") or {})),
        openai_compatible=OpenAICompatibleConfig(**(config.get("openai_compatible") or {})),
        models=_load_models_config(config.get("models") or {}),
        evidence=EvidenceConfig(**(config.get("evidence") or {})),
        sandbox=SandboxConfig(**(config.get("sandbox") or {})),
        harness=HarnessConfig(**(config.get("harness") or {})),
        security=SecurityConfig(**(config.get("security") or {})),
        log_level=logging_raw.get("level", "INFO"),
        log_file=(logging_raw.get("file") or "").strip(),
        log_rotation_max_mb=int(logging_raw.get("log_rotation_max_mb", 5)),
        log_rotation_backups=int(logging_raw.get("log_rotation_backups", 3)),
    )
