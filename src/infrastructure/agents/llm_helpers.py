"""LLM helpers: retry wrapper, prompt shaping and structured completions."""

from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.domain.errors import MalformedOutput
from src.domain.ports.llm import LLMMessage, LLMPort, LLMResponse
from src.infrastructure.llm.structured_output import extract_json, strip_fences

ModelT = TypeVar("ModelT", bound=BaseModel)

PLATFORM_CONTEXT = (
    "You are part of a platform that generates Model Context Protocol (MCP) servers: "
    "programs exposing callable tools to language models. MCP never means anything else. "
    "Prefer reasonable defaults over questions and infer what research already shows."
)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((TimeoutError, ConnectionError, OSError)),
    reraise=True,
)
async def _generate_impl(
    llm: LLMPort,
    messages: list[LLMMessage],
    model: str,
    temperature: float,
) -> LLMResponse:
    """Internal: generate with retry."""
    return await llm.generate(
        messages=messages,
        model=model,
        temperature=temperature,
    )


async def generate_with_retry(
    llm: LLMPort,
    messages: list[LLMMessage],
    model: str,
    temperature: float = 0.7,
) -> LLMResponse:
    """Generate with retry on timeout/connection errors."""
    return await _generate_impl(llm, messages, model, temperature)


def build_messages(prompt: str, system: str | None = None) -> list[LLMMessage]:
    """System message (platform context + role) followed by the user prompt."""
    system_text = PLATFORM_CONTEXT if system is None else f"{PLATFORM_CONTEXT}\n\n{system}"
    return [
        LLMMessage(role="system", content=system_text),
        LLMMessage(role="user", content=prompt),
    ]


async def complete_text(
    llm: LLMPort,
    prompt: str,
    model: str,
    *,
    system: str | None = None,
    temperature: float = 0.7,
) -> str:
    """Plain completion with fences stripped."""
    response = await generate_with_retry(llm, build_messages(prompt, system), model, temperature)
    return strip_fences(response.content).strip()


async def complete_json(
    llm: LLMPort,
    prompt: str,
    model: str,
    *,
    system: str | None = None,
    expect: Literal["object", "array"] | None = "object",
    temperature: float = 0.3,
) -> Any:
    """Completion parsed by the structured-output extractor. Raises MalformedOutput."""
    response = await generate_with_retry(llm, build_messages(prompt, system), model, temperature)
    return extract_json(response.content, expect=expect)


async def complete_model(
    llm: LLMPort,
    prompt: str,
    model: str,
    schema: type[ModelT],
    *,
    system: str | None = None,
    temperature: float = 0.3,
) -> ModelT:
    """Completion validated into ``schema``; validation errors become MalformedOutput."""
    value = await complete_json(llm, prompt, model, system=system, temperature=temperature)
    return validate_as(schema, value)


def validate_as(schema: type[ModelT], value: Any) -> ModelT:
    try:
        return schema.model_validate(value)
    except ValidationError as e:
        raise MalformedOutput(f"{schema.__name__} validation failed: {e.error_count()} error(s)", str(value)) from e
