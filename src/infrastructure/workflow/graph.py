"""LangGraph pipeline - intent → research → ensemble → clarification → credentials → refinement."""

import logging
from collections.abc import Awaitable, Callable

from langgraph.checkpoint.memory import MemorySaver
from langgraph.graph import END, START, StateGraph

from src.domain.entities.session_state import ProgressEvent, SessionState
from src.domain.errors import PipelineAborted
from src.infrastructure.workflow.nodes import PipelineNodes
from src.infrastructure.workflow.transitions import PipelineNode, next_node, targets_of

logger = logging.getLogger(__name__)

RECURSION_LIMIT = 50

NodeHandler = Callable[[SessionState], Awaitable[dict]]


def guarded(node: PipelineNode, handler: NodeHandler) -> NodeHandler:
    """Wrap a handler so any fault becomes ``error`` and routes to the error node."""

    async def run(state: SessionState) -> dict:
        try:
            update = await handler(state)
        except Exception as e:
            aborted = PipelineAborted(node.value, e)
            logger.exception("Node %s failed: %s", node.value, aborted)
            return {
                "error": str(aborted),
                "current_node": node.value,
                "progress": [ProgressEvent(node=node.value, message=f"Failed: {aborted}")],
            }
        update.setdefault("current_node", node.value)
        return update

    run.__name__ = f"{node.value}_guarded"
    return run


def _router(source: PipelineNode) -> Callable[[SessionState], str]:
    def route(state: SessionState) -> str:
        return next_node(source, state).value

    route.__name__ = f"route_after_{source.value}"
    return route


def _path_map(source: PipelineNode) -> dict[str, str]:
    return {
        target.value: END if target == PipelineNode.END else target.value
        for target in targets_of(source)
    }


def build_pipeline_graph(nodes: PipelineNodes) -> StateGraph:
    """Build the pipeline graph; every handler is wrapped once by the guard."""
    handlers: dict[PipelineNode, NodeHandler] = {
        PipelineNode.ANALYZE_INTENT: nodes.analyze_intent,
        PipelineNode.PROVIDE_HELP: nodes.provide_help,
        PipelineNode.RESEARCH: nodes.research,
        PipelineNode.ENSEMBLE: nodes.ensemble,
        PipelineNode.CLARIFICATION: nodes.clarification,
        PipelineNode.ENV_COLLECTION: nodes.env_collection,
        PipelineNode.REFINEMENT: nodes.refinement,
        PipelineNode.AWAIT_USER: nodes.await_user,
        PipelineNode.HANDLE_ERROR: nodes.handle_error,
    }

    builder = StateGraph(SessionState)
    for node, handler in handlers.items():
        builder.add_node(node.value, guarded(node, handler))

    builder.add_edge(START, PipelineNode.ANALYZE_INTENT.value)
    for node in handlers:
        targets = targets_of(node)
        if targets == [PipelineNode.END]:
            builder.add_edge(node.value, END)
            continue
        builder.add_conditional_edges(node.value, _router(node), path_map=_path_map(node))
    return builder


def compile_pipeline_graph(
    builder: StateGraph,
    *,
    checkpointer: MemorySaver | None = None,
):
    """Compile with a checkpointer; sessions resume by thread id."""
    return builder.compile(checkpointer=checkpointer or MemorySaver())
