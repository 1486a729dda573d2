"""Tests for TOML config loader."""

from pathlib import Path

import pytest

from src.infrastructure.config.toml_loader import _apply_env_overrides, load_config

OVERRIDE_VARS = (
    "LLM_PROVIDER",
    "OPENAI_BASE_URL",
    "OPENAI_API_KEY",
    "PORT",
    "LOG_LEVEL",
    "LOG_FILE",
    "CORS_ORIGINS",
    "RATE_LIMIT_PER_MINUTE",
    "TAVILY_API_KEY",
    "BRAVE_API_KEY",
    "GITHUB_TOKEN",
    "HARNESS_URL",
    "SANDBOX_TIMEOUT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in OVERRIDE_VARS:
        monkeypatch.delenv(name, raising=False)


class TestLoadConfig:
    """Tests for load_config function."""

    def test_loads_default_config(self):
        """Shipped default.toml fills every section."""
        config = load_config()

        assert config.llm.provider == "openai_compatible"
        assert config.harness.network_mode == "none"
        assert config.harness.timeout == 30
        assert config.sandbox.memory_limit_mb == 128
        assert config.evidence.research_cache_ttl == 7 * 24 * 3600

    def test_loads_from_custom_dir(self, tmp_path: Path):
        (tmp_path / "default.toml").write_text("""
[llm]
provider = "lm_studio"

[server]
port = 9999
""")
        config = load_config(tmp_path)

        assert config.llm.provider == "lm_studio"
        assert config.server.port == 9999
        # Missing sections fall back to model defaults
        assert config.harness.base_url == "http://localhost:8100"

    def test_merges_development_config(self, tmp_path: Path):
        """development.toml overrides keys, keeps the rest of a section."""
        (tmp_path / "default.toml").write_text("""
[harness]
base_url = "http://harness:8100"
timeout = 30
""")
        (tmp_path / "development.toml").write_text("""
[harness]
timeout = 90
""")
        config = load_config(tmp_path)

        assert config.harness.timeout == 90
        assert config.harness.base_url == "http://harness:8100"

    def test_reload_off_unless_development_enables_it(self, tmp_path: Path):
        (tmp_path / "default.toml").write_text("[server]\nreload = false\n")
        assert load_config(tmp_path).server.reload is False

        (tmp_path / "development.toml").write_text("[server]\nreload = true\n")
        config = load_config(tmp_path)
        assert config.server.reload is True
        assert config.server.port == 8000

    def test_empty_dir_uses_defaults(self, tmp_path: Path):
        config = load_config(tmp_path)
        assert config.server.port == 8000
        assert config.log_level == "INFO"

    def test_model_overrides_per_provider(self, tmp_path: Path):
        (tmp_path / "default.toml").write_text("""
[models]
fast = "small"
reasoning = "large"
coding = "large"

[models.lm_studio]
coding = "coder"
""")
        config = load_config(tmp_path)
        resolved = config.models.get_models_for_provider("lm_studio")

        assert resolved.fast == "small"
        assert resolved.coding == "coder"
        assert config.models.get_models_for_provider("openai_compatible").coding == "large"

    def test_harness_envelope(self):
        envelope = load_config().harness.envelope()
        assert envelope.memory_limit == "512m"
        assert not hasattr(envelope, "base_url")


class TestEnvOverrides:
    """Environment variables win over TOML."""

    def test_evidence_keys(self, monkeypatch):
        monkeypatch.setenv("TAVILY_API_KEY", " tvly-123 ")
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_abc")
        config = _apply_env_overrides({})

        assert config["evidence"]["tavily_api_key"] == "tvly-123"
        assert config["evidence"]["github_token"] == "ghp_abc"
        assert "brave_api_key" not in config["evidence"]

    def test_provider_and_endpoint(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("LLM_PROVIDER", "lm_studio")
        monkeypatch.setenv("OPENAI_BASE_URL", "http://gpu-box:1234/v1")
        monkeypatch.setenv("HARNESS_URL", "http://harness:9000 ")
        config = load_config(tmp_path)

        assert config.llm.provider == "lm_studio"
        assert config.openai_compatible.base_url == "http://gpu-box:1234/v1"
        assert config.harness.base_url == "http://harness:9000"

    def test_cors_origins_split(self, monkeypatch):
        monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test")
        config = _apply_env_overrides({})
        assert config["security"]["cors_origins"] == ["http://a.test", "http://b.test"]

    def test_log_level_uppercased(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert _apply_env_overrides({})["logging"]["level"] == "DEBUG"

    def test_invalid_numbers_ignored(self, monkeypatch):
        monkeypatch.setenv("PORT", "eighty")
        monkeypatch.setenv("SANDBOX_TIMEOUT", "soon")
        config = _apply_env_overrides({"server": {"port": 8000}})

        assert config["server"]["port"] == 8000
        assert "sandbox" not in config

    def test_numeric_overrides(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("PORT", "9000")
        monkeypatch.setenv("SANDBOX_TIMEOUT", "2.5")
        monkeypatch.setenv("RATE_LIMIT_PER_MINUTE", "10")
        config = load_config(tmp_path)

        assert config.server.port == 9000
        assert config.sandbox.timeout_seconds == 2.5
        assert config.security.rate_limit_requests_per_minute == 10
