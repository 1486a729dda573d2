"""Pytest configuration and shared fixtures."""

import json
from contextlib import asynccontextmanager

import httpx
import pytest

from src.domain.ports.config import ModelConfig, OpenAICompatibleConfig
from src.domain.ports.llm import LLMMessage, LLMResponse
from src.domain.services.model_router import ModelRouter
from src.infrastructure.llm.openai_compatible import OpenAICompatibleAdapter


class ScriptedLLM:
    """LLMPort double with scripted replies.

    Prompt rules are checked first (substring of the user prompt), then a FIFO
    queue. A reply is a string, a JSON-serialisable value or an exception to
    raise. With nothing scripted the reply is empty text.
    """

    def __init__(self) -> None:
        self._queue: list = []
        self._rules: list[tuple[str, list]] = []
        self.calls: list[dict] = []

    def queue(self, *replies) -> "ScriptedLLM":
        self._queue.extend(replies)
        return self

    def on(self, marker: str, *replies) -> "ScriptedLLM":
        """Answer prompts containing ``marker``; the last reply repeats."""
        self._rules.append((marker, list(replies)))
        return self

    def _next(self, prompt: str):
        for marker, replies in self._rules:
            if marker in prompt:
                return replies.pop(0) if len(replies) > 1 else replies[0]
        if self._queue:
            return self._queue.pop(0)
        return ""

    def prompts_containing(self, marker: str) -> list[str]:
        return [c["prompt"] for c in self.calls if marker in c["prompt"]]

    async def generate(
        self,
        messages: list[LLMMessage],
        model: str | None = None,
        temperature: float = 0.7,
    ) -> LLMResponse:
        prompt = messages[-1].content if messages else ""
        self.calls.append({"model": model, "prompt": prompt, "temperature": temperature})
        reply = self._next(prompt)
        if isinstance(reply, BaseException):
            raise reply
        if not isinstance(reply, str):
            reply = json.dumps(reply)
        return LLMResponse(content=reply, model=model or "scripted")

    async def is_available(self) -> bool:
        return True


@pytest.fixture
def scripted_llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def model_router() -> ModelRouter:
    """Router with one distinct model id per tier."""
    config = ModelConfig(fast="fast-model", reasoning="reasoning-model", coding="coding-model")
    return ModelRouter(config, provider="openai_compatible")


@pytest.fixture
def rejecting_llm() -> OpenAICompatibleAdapter:
    """Real adapter whose provider answers every completion with 400."""
    adapter = OpenAICompatibleAdapter(OpenAICompatibleConfig(base_url="http://llm/v1"))
    adapter._client = httpx.AsyncClient(
        transport=httpx.MockTransport(
            lambda request: httpx.Response(400, json={"error": "context length exceeded"})
        )
    )
    return adapter


@pytest.fixture
def patch_http(monkeypatch):
    """Route ``get_http_client`` in a module through an httpx.MockTransport.

    Usage:
        patch_http("src.infrastructure.evidence.web_search", handler)
    """

    def install(module: str, handler) -> None:
        @asynccontextmanager
        async def client_factory():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                yield client

        monkeypatch.setattr(f"{module}.get_http_client", client_factory)

    return install
