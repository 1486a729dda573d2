"""Pipeline event types for SSE streaming."""

from enum import Enum


class PipelineEventType(str, Enum):
    """Event types streamed to client."""

    UPDATE = "update"  # one node finished, payload is its partial state
    QUESTION = "question"  # pass stopped to wait for the user
    ERROR = "error"
    DONE = "done"
