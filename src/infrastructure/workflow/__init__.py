"""Workflow graph - LangGraph."""

from src.infrastructure.workflow.graph import (
    RECURSION_LIMIT,
    build_pipeline_graph,
    compile_pipeline_graph,
)
from src.infrastructure.workflow.nodes import PipelineNodes
from src.infrastructure.workflow.transitions import TRANSITIONS, PipelineNode, next_node

__all__ = [
    "RECURSION_LIMIT",
    "TRANSITIONS",
    "PipelineNode",
    "PipelineNodes",
    "build_pipeline_graph",
    "compile_pipeline_graph",
    "next_node",
]
