"""Pipeline use case - runs one pass of the LangGraph generation pipeline."""

import uuid
from collections.abc import AsyncIterator

import structlog
from langgraph.checkpoint.memory import MemorySaver
from pydantic_core import to_jsonable_python

from src.application.pipeline.dto import (
    PipelineRequest,
    PipelineResponse,
    PipelineUpdate,
)
from src.domain.entities.session_state import SessionState
from src.infrastructure.workflow import (
    RECURSION_LIMIT,
    PipelineNodes,
    build_pipeline_graph,
    compile_pipeline_graph,
)
from src.shared.logging import bind_session

log = structlog.get_logger()


def _state_to_response(session_id: str, state: SessionState) -> PipelineResponse:
    """Map the checkpointed session state to a response."""
    intent = state.get("intent")
    artifact = state.get("artifact")
    outcome = state.get("test_outcome")
    complete = bool(state.get("is_complete"))
    return PipelineResponse(
        session_id=session_id,
        response=state.get("response") or "",
        intent_kind=intent.kind if intent else None,
        needs_user_input=bool(state.get("needs_user_input")) and not complete,
        is_complete=complete,
        pending_questions=[q.model_dump() for q in state.get("pending_questions") or []],
        server_name=artifact.metadata.server_name if artifact else None,
        files=artifact.all_files() if artifact and outcome and outcome.overall_success else None,
        tools_found=outcome.tools_found if outcome else None,
        tools_passed=outcome.tools_passed if outcome else None,
        refinement_iteration=state.get("refinement_iteration") or 0,
        error=state.get("error"),
    )


class PipelineUseCase:
    """Drives a session: each user message runs the graph until it completes or asks."""

    def __init__(
        self,
        nodes: PipelineNodes,
        checkpointer: MemorySaver | None = None,
    ) -> None:
        self._checkpointer = checkpointer or MemorySaver()
        self._graph = compile_pipeline_graph(
            build_pipeline_graph(nodes),
            checkpointer=self._checkpointer,
        )

    @staticmethod
    def _config(session_id: str) -> dict:
        return {"configurable": {"thread_id": session_id}, "recursion_limit": RECURSION_LIMIT}

    @staticmethod
    def _input(session_id: str, request: PipelineRequest) -> SessionState:
        return {"session_id": session_id, "user_input": request.message}

    async def execute(self, request: PipelineRequest) -> PipelineResponse:
        """Run one pass to its stopping point and return the resulting session view."""
        session_id = request.session_id or str(uuid.uuid4())
        with bind_session(session_id):
            log.info("pipeline_pass_start")
            final = await self._graph.ainvoke(
                self._input(session_id, request), config=self._config(session_id)
            )
            response = _state_to_response(session_id, final)
            log.info(
                "pipeline_pass_stop",
                needs_user_input=response.needs_user_input,
                is_complete=response.is_complete,
            )
        return response

    async def stream(self, request: PipelineRequest) -> AsyncIterator[PipelineUpdate]:
        """Run one pass, yielding each node's partial update as it finishes.

        The consumer may stop iterating between nodes; the pass is then
        abandoned and the last checkpoint stays resumable.
        """
        session_id = request.session_id or str(uuid.uuid4())
        needs_input = False
        complete = False
        with bind_session(session_id):
            log.info("pipeline_stream_start")
            async for chunk in self._graph.astream(
                self._input(session_id, request),
                config=self._config(session_id),
                stream_mode="updates",
            ):
                for node, update in chunk.items():
                    update = update or {}
                    needs_input = update.get("needs_user_input", needs_input)
                    complete = update.get("is_complete", complete)
                    yield PipelineUpdate(
                        session_id=session_id,
                        node=node,
                        update=to_jsonable_python(update),
                        needs_user_input=bool(needs_input) and not complete,
                        is_complete=bool(complete),
                    )
            log.info("pipeline_stream_stop", needs_user_input=needs_input, is_complete=complete)

    async def get_state(self, session_id: str) -> PipelineResponse | None:
        """Current view of a session, or None when it has never run."""
        snapshot = await self._graph.aget_state(self._config(session_id))
        if not snapshot.values:
            return None
        return _state_to_response(session_id, snapshot.values)
