"""Clarification entities: knowledge gaps, questions and credential collection."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class GapPriority(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


GAP_PRIORITY_RANK = {GapPriority.HIGH: 0, GapPriority.MEDIUM: 1, GapPriority.LOW: 2}


class KnowledgeGap(BaseModel):
    """Missing information that would block or degrade generation. Recomputed each round."""

    issue: str
    priority: GapPriority
    suggested_question: str = ""
    context: str = ""

    @field_validator("priority", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class ClarificationQuestion(BaseModel):
    """Question shown to the user. Free text is always accepted; options are hints."""

    question: str
    context: str = ""
    options: list[str] | None = None
    required: bool = False
    env_var_name: str | None = None


class ClarificationRound(BaseModel):
    """One round of questions and, once the user replies, the answer."""

    gaps: list[KnowledgeGap] = []
    questions: list[ClarificationQuestion] = []
    user_response: str | None = None
    asked_at: datetime = Field(default_factory=datetime.now)


class ClarificationOutcome(BaseModel):
    """Result of one clarification pass."""

    complete: bool
    gaps: list[KnowledgeGap] = []
    questions: list[ClarificationQuestion] = []
    needs_user_input: bool = False


class RequiredEnvVar(BaseModel):
    """Credential or setting the generated server needs at runtime."""

    name: str
    description: str
    required: bool = True
    category: str = "general"
    format: str | None = None
    documentation_url: str | None = None
    sensitive: bool = True


class CollectedEnvVar(BaseModel):
    """User answer for a required variable, keyed by name."""

    name: str
    value: str = Field("", repr=False)
    validated: bool = False
    skipped: bool = False


class EnvVarValidation(BaseModel):
    is_valid: bool
    error_message: str | None = None
    suggestions: list[str] = []
    is_test_key: bool = False
