"""FastAPI dependencies - DI container."""

from functools import lru_cache
from typing import TYPE_CHECKING

from slowapi import Limiter
from slowapi.util import get_remote_address

from src.api.container import get_container
from src.domain.ports.config import AppConfig
from src.infrastructure.config import load_config

if TYPE_CHECKING:
    from src.application.pipeline.use_case import PipelineUseCase

limiter = Limiter(key_func=get_remote_address)


@lru_cache
def get_config() -> AppConfig:
    """Load config once at startup."""
    return load_config()


def get_pipeline_use_case() -> "PipelineUseCase":
    """Shared PipelineUseCase; sessions must survive between requests."""
    return get_container().pipeline_use_case
