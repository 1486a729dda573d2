"""Application entry point."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.container import get_container
from src.api.dependencies import limiter
from src.api.routes.pipeline import router as pipeline_router
from src.infrastructure.services.http_pool import HTTPPool
from src.shared.logging import setup_logging

log = structlog.get_logger()


def _apply_logging_config(container):
    """Apply logging from container config (stdout + optional file)."""
    c = container.config
    setup_logging(
        level=c.log_level,
        file_path=c.log_file or "",
        rotation_max_mb=c.log_rotation_max_mb,
        rotation_backups=c.log_rotation_backups,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: load config and set up logging. Shutdown: close shared clients."""
    container = get_container()
    _apply_logging_config(container)
    log.info(
        "startup_complete",
        llm_provider=container.config.llm.provider,
        harness_url=container.config.harness.base_url,
    )
    yield
    log.info("shutdown_begin")
    await HTTPPool.reset()
    try:
        await container.llm.close()
    except Exception:  # noqa: BLE001
        log.debug("llm_close_error", exc_info=True)
    log.info("shutdown_complete")


# Create app
app = FastAPI(
    title="mcpsmith",
    version="0.1.0",
    description="Generates tested MCP servers from repositories, services and docs",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS
container = get_container()
app.add_middleware(
    CORSMiddleware,
    allow_origins=container.config.security.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(pipeline_router)


@app.get("/health")
@limiter.limit("100/minute")
async def health(request: Request) -> dict:
    """Health check with LLM availability."""
    container = get_container()
    llm_available = await container.llm.is_available()
    return {
        "status": "ok",
        "service": "mcpsmith",
        "llm_provider": container.config.llm.provider,
        "llm_available": llm_available,
    }
