"""OpenAI-compatible adapter - LM Studio, vLLM, LocalAI, hosted APIs."""

import logging

import httpx

from src.domain.errors import ProviderError
from src.domain.ports.config import OpenAICompatibleConfig
from src.domain.ports.llm import LLMMessage, LLMResponse

logger = logging.getLogger(__name__)


class OpenAICompatibleAdapter:
    """Implements LLMPort via /v1/chat/completions."""

    def __init__(self, config: OpenAICompatibleConfig) -> None:
        self._config = config
        self._base_url = config.base_url.rstrip("/")
        self._headers = {"Content-Type": "application/json"}
        if config.api_key:
            self._headers["Authorization"] = f"Bearer {config.api_key}"
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create persistent async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._config.timeout,
                headers=self._headers,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client (call during app shutdown)."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _chat_body(self, model: str, messages: list[LLMMessage], temperature: float) -> dict:
        body: dict = {
            "model": model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": temperature,
            "stream": False,
        }
        if self._config.max_tokens is not None:
            body["max_tokens"] = self._config.max_tokens
        return body

    async def generate(
        self,
        messages: list[LLMMessage],
        model: str | None = None,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """Generate a single completion.

        Transport errors, 429 and 5xx are re-raised as ConnectionError/TimeoutError
        so the retry helper can treat every provider the same way. Other error
        statuses and unreadable bodies raise ProviderError, which the phases turn
        into their fallbacks.
        """
        model = model or "default"
        body = self._chat_body(model, messages, temperature)
        client = self._get_client()
        try:
            resp = await client.post(f"{self._base_url}/chat/completions", json=body)
        except httpx.TimeoutException as e:
            raise TimeoutError(f"LLM request timed out: {e}") from e
        except httpx.TransportError as e:
            raise ConnectionError(f"LLM transport error: {e}") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"LLM request failed: {e}") from e
        if resp.status_code >= 400:
            logger.error("LLM API error %s: %s", resp.status_code, resp.text[:500])
        if resp.status_code == 429 or resp.status_code >= 500:
            raise ConnectionError(f"LLM API error {resp.status_code}")
        if resp.status_code >= 400:
            raise ProviderError(f"LLM API error {resp.status_code}", status_code=resp.status_code)
        try:
            data = resp.json()
            choice = (data.get("choices") or [{}])[0]
            content = (choice.get("message") or {}).get("content") or ""
        except (ValueError, AttributeError, IndexError, TypeError) as e:
            raise ProviderError(f"Unreadable LLM response: {e}") from e
        return LLMResponse(content=content, model=model, done=True)

    async def is_available(self) -> bool:
        """Check if the provider answers /models."""
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(f"{self._base_url}/models", headers=self._headers)
                return resp.status_code == 200
        except (httpx.ConnectTimeout, httpx.ConnectError, httpx.ReadTimeout, OSError) as e:
            logger.debug("OpenAI-compatible availability check failed (connection): %s", e)
            return False
        except httpx.HTTPError as e:
            logger.debug("OpenAI-compatible availability check failed (HTTP): %s", e)
            return False
