"""HTTP Connection Pool - shared async HTTP client for evidence gathering."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx

logger = logging.getLogger(__name__)

USER_AGENT = "mcpsmith/0.1 (+https://modelcontextprotocol.io)"


class HTTPPool:
    """Shared HTTP connection pool for async requests.

    One client per process; closed from the application lifespan.
    """

    _instance: "HTTPPool | None" = None
    _lock: asyncio.Lock | None = None

    def __init__(self) -> None:
        self._client: httpx.AsyncClient | None = None
        self._timeout = httpx.Timeout(20.0, connect=10.0)
        self._limits = httpx.Limits(
            max_keepalive_connections=20,
            max_connections=50,
            keepalive_expiry=30.0,
        )

    @classmethod
    async def get_instance(cls) -> "HTTPPool":
        """Get singleton instance (async-safe)."""
        if cls._lock is None:
            cls._lock = asyncio.Lock()

        async with cls._lock:
            if cls._instance is None:
                cls._instance = HTTPPool()
            return cls._instance

    async def get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                limits=self._limits,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    @classmethod
    async def reset(cls) -> None:
        """Close and drop the singleton (shutdown and tests)."""
        if cls._instance:
            await cls._instance.close()
            cls._instance = None


@asynccontextmanager
async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    """Context manager for getting HTTP client from pool.

    Usage:
        async with get_http_client() as client:
            response = await client.get(url)
    """
    pool = await HTTPPool.get_instance()
    client = await pool.get_client()
    yield client
