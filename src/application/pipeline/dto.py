"""Pipeline DTOs."""

from typing import Any

from pydantic import BaseModel, Field

from src.domain.entities.pipeline_events import PipelineEventType


class PipelineRequest(BaseModel):
    """One user turn for a generation session."""

    message: str = Field(..., min_length=1, max_length=50_000)
    session_id: str | None = Field(None, max_length=100)  # Resumes a session; auto-generated if omitted


class PipelineUpdate(BaseModel):
    """Partial state produced by one node during a pass."""

    session_id: str
    node: str
    update: dict[str, Any] = {}
    needs_user_input: bool = False
    is_complete: bool = False

    @property
    def event_type(self) -> PipelineEventType:
        if self.node == "handle_error":
            return PipelineEventType.ERROR
        if self.needs_user_input:
            return PipelineEventType.QUESTION
        return PipelineEventType.UPDATE


class PipelineResponse(BaseModel):
    """State of the session when a pass stops."""

    session_id: str
    response: str
    intent_kind: str | None = None
    needs_user_input: bool = False
    is_complete: bool = False
    pending_questions: list[dict[str, Any]] = []
    server_name: str | None = None
    files: dict[str, str] | None = None
    tools_found: int | None = None
    tools_passed: int | None = None
    refinement_iteration: int = 0
    error: str | None = None
