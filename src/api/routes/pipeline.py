"""Generation pipeline API routes."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sse_starlette.sse import EventSourceResponse

from src.api.dependencies import get_pipeline_use_case, limiter
from src.application.pipeline.dto import PipelineRequest, PipelineResponse
from src.application.pipeline.use_case import PipelineUseCase
from src.domain.entities.pipeline_events import PipelineEventType

logger = logging.getLogger(__name__)

router = APIRouter(tags=["pipeline"])


@router.post("/generate", response_model=None)
@limiter.limit("30/minute")
async def generate(
    request: Request,
    pipeline_request: PipelineRequest,
    use_case: PipelineUseCase = Depends(get_pipeline_use_case),
    stream: bool = False,
) -> PipelineResponse | EventSourceResponse:
    """Run one pipeline pass for a session. Use stream=true for SSE node updates."""
    if stream:
        return _stream_response(pipeline_request, use_case)
    try:
        return await use_case.execute(pipeline_request)
    except Exception:
        logger.exception("Pipeline execution failed")
        raise HTTPException(status_code=500, detail="Pipeline execution failed")


@router.get("/sessions/{session_id}", response_model=PipelineResponse)
@limiter.limit("60/minute")
async def get_session(
    request: Request,
    session_id: str,
    use_case: PipelineUseCase = Depends(get_pipeline_use_case),
) -> PipelineResponse:
    """Latest checkpointed view of a session."""
    state = await use_case.get_state(session_id)
    if state is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return state


def _stream_response(
    pipeline_request: PipelineRequest,
    use_case: PipelineUseCase,
) -> EventSourceResponse:
    """Return SSE stream of node updates."""

    async def event_generator():
        try:
            async for update in use_case.stream(pipeline_request):
                yield {"event": update.event_type.value, "data": update.model_dump_json()}
        except Exception:
            logger.exception("Pipeline stream failed")
            yield {"event": PipelineEventType.ERROR.value, "data": "Stream failed"}
        yield {"event": PipelineEventType.DONE.value, "data": ""}

    return EventSourceResponse(event_generator())
