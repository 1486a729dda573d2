"""Pipeline API integration tests with a stubbed use case."""

import pytest
import sse_starlette.sse
from httpx import ASGITransport, AsyncClient

from src.api.dependencies import get_pipeline_use_case
from src.application.pipeline import PipelineResponse, PipelineUpdate
from src.main import app


class StubUseCase:
    """Stands in for PipelineUseCase; records requests."""

    def __init__(self, fail: bool = False) -> None:
        self.requests = []
        self.fail = fail

    async def execute(self, request):
        self.requests.append(request)
        if self.fail:
            raise RuntimeError("LLM offline")
        return PipelineResponse(
            session_id=request.session_id or "generated",
            response="Your MCP server weather-mcp is ready.",
            intent_kind="generate",
            is_complete=True,
        )

    async def stream(self, request):
        self.requests.append(request)
        yield PipelineUpdate(session_id="s1", node="analyze_intent", update={"current_node": "analyze_intent"})
        yield PipelineUpdate(session_id="s1", node="await_user", update={}, needs_user_input=True)
        if self.fail:
            raise RuntimeError("stream broke")

    async def get_state(self, session_id):
        if session_id != "known":
            return None
        return PipelineResponse(session_id="known", response="Which units?", needs_user_input=True)


@pytest.fixture(autouse=True)
def fresh_sse_exit_event():
    # Older sse-starlette releases bind a class-level exit event to the first event loop
    status = getattr(sse_starlette.sse, "AppStatus", None)
    if status is not None and hasattr(status, "should_exit_event"):
        status.should_exit_event = None
    yield


@pytest.fixture
def stub():
    use_case = StubUseCase()
    app.dependency_overrides[get_pipeline_use_case] = lambda: use_case
    yield use_case
    app.dependency_overrides.clear()


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


class TestGenerate:
    @pytest.mark.asyncio
    async def test_returns_session_view(self, stub):
        async with _client() as client:
            resp = await client.post("/generate", json={"message": "Create a weather MCP server", "session_id": "s1"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["session_id"] == "s1"
        assert data["is_complete"] is True
        assert stub.requests[0].message == "Create a weather MCP server"

    @pytest.mark.asyncio
    async def test_empty_message_rejected(self, stub):
        async with _client() as client:
            resp = await client.post("/generate", json={"message": ""})
        assert resp.status_code == 422
        assert stub.requests == []

    @pytest.mark.asyncio
    async def test_failure_is_500(self, stub):
        stub.fail = True
        async with _client() as client:
            resp = await client.post("/generate", json={"message": "Create a weather MCP server"})
        assert resp.status_code == 500
        assert resp.json()["detail"] == "Pipeline execution failed"

    @pytest.mark.asyncio
    async def test_stream_events(self, stub):
        async with _client() as client:
            resp = await client.post("/generate?stream=true", json={"message": "Create a weather MCP server"})

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/event-stream")
        body = resp.text
        assert body.index("event: update") < body.index("event: question") < body.index("event: done")
        assert '"node":"analyze_intent"' in body

    @pytest.mark.asyncio
    async def test_stream_failure_emits_error_then_done(self, stub):
        stub.fail = True
        async with _client() as client:
            resp = await client.post("/generate?stream=true", json={"message": "Create a weather MCP server"})

        body = resp.text
        assert body.index("event: question") < body.index("event: error") < body.index("event: done")


class TestSessions:
    @pytest.mark.asyncio
    async def test_known_session(self, stub):
        async with _client() as client:
            resp = await client.get("/sessions/known")
        assert resp.status_code == 200
        assert resp.json()["needs_user_input"] is True

    @pytest.mark.asyncio
    async def test_unknown_session(self, stub):
        async with _client() as client:
            resp = await client.get("/sessions/missing")
        assert resp.status_code == 404
