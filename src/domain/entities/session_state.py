"""Session state schema for the LangGraph pipeline."""

import operator
from datetime import datetime
from typing import Annotated, TypedDict

from pydantic import BaseModel, Field

from src.domain.entities.artifact import (
    GeneratedArtifact,
    RefinementResult,
    TargetLanguage,
    TestOutcome,
)
from src.domain.entities.clarification import (
    ClarificationQuestion,
    ClarificationRound,
    CollectedEnvVar,
    RequiredEnvVar,
)
from src.domain.entities.research import ResearchResult
from src.domain.entities.tools import EnsembleResult, GenerationPlan, ToolConstraints


class ChatMessage(BaseModel):
    role: str  # "user" | "assistant"
    content: str


class ProgressEvent(BaseModel):
    """One entry in the ordered progress log."""

    node: str
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)


class IntentAnalysis(BaseModel):
    kind: str  # "generate" | "research" | "help" | "clarify_response" | "env_response" | "unclear"
    confidence: float = 1.0
    reasoning: str = ""


class ExtractedParameters(BaseModel):
    """Parameters pulled from the request that started the current pass."""

    request_text: str = ""
    source_url: str | None = None
    target_language: TargetLanguage = TargetLanguage.TYPESCRIPT
    constraints: ToolConstraints = ToolConstraints()


class SessionState(TypedDict, total=False):
    """State threaded through every pipeline node. Nodes return partial updates."""

    # Identity and transcript
    session_id: str
    conversation_id: str
    user_input: str
    messages: Annotated[list[ChatMessage], operator.add]

    # Intent
    intent: IntentAnalysis
    extracted: ExtractedParameters

    # Phase results
    research: ResearchResult | None
    ensemble: EnsembleResult | None
    generation_plan: GenerationPlan | None
    artifact: GeneratedArtifact | None
    test_outcome: TestOutcome | None

    # Clarification
    clarification_history: list[ClarificationRound]
    clarification_needed: str | None
    pending_questions: list[ClarificationQuestion]

    # Credentials
    detected_env_vars: list[RequiredEnvVar]
    collected_env_vars: list[CollectedEnvVar]
    pending_env_vars: list[str]
    env_rounds: int

    # Refinement
    refinement_iteration: int
    refinement_history: list[RefinementResult]

    # Control
    needs_user_input: bool
    is_complete: bool
    error: str | None
    response: str | None
    current_node: str
    progress: Annotated[list[ProgressEvent], operator.add]
