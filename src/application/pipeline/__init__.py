"""Pipeline application layer."""

from src.application.pipeline.dto import (
    PipelineRequest,
    PipelineResponse,
    PipelineUpdate,
)
from src.application.pipeline.use_case import PipelineUseCase

__all__ = [
    "PipelineRequest",
    "PipelineResponse",
    "PipelineUpdate",
    "PipelineUseCase",
]
