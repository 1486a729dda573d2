"""LLM Port - interface for text-generation providers."""

from typing import Protocol

from pydantic import BaseModel


class LLMMessage(BaseModel):
    """Single message in a conversation."""

    role: str  # "system" | "user" | "assistant"
    content: str


class LLMResponse(BaseModel):
    """Completion returned by the provider."""

    content: str
    model: str
    done: bool = True


class LLMPort(Protocol):
    """Interface for text-generation providers (LM Studio, vLLM, OpenAI-compatible APIs)."""

    async def generate(
        self,
        messages: list[LLMMessage],
        model: str | None = None,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """Generate a single completion."""
        ...

    async def is_available(self) -> bool:
        """Check if the provider is reachable."""
        ...
