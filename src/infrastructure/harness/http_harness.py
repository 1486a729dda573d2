"""Client for the external container test harness service."""

import logging

import httpx

from src.domain.entities.artifact import GeneratedArtifact, TestOutcome
from src.domain.errors import MalformedOutput
from src.domain.ports.harness import HarnessEnvelope
from src.infrastructure.agents.llm_helpers import validate_as
from src.infrastructure.services.http_pool import get_http_client

logger = logging.getLogger(__name__)


def build_harness_payload(artifact: GeneratedArtifact, envelope: HarnessEnvelope) -> dict:
    meta = artifact.metadata
    return {
        "server_name": meta.server_name,
        "language": meta.language.value,
        "main_file": artifact.main_file_name,
        "files": artifact.all_files(),
        "tools": [t.name for t in meta.tools],
        "envelope": envelope.model_dump(),
    }


def failed_build(reason: str) -> TestOutcome:
    return TestOutcome(overall_success=False, build_success=False, build_error=reason)


class HttpTestHarness:
    """TestHarnessPort that POSTs the artifact to a harness service.

    The service builds the server in a container limited by the envelope,
    lists its tools and calls each one. Transport failures and unreadable
    replies are reported as a failed build so the refinement loop can keep going.
    """

    def __init__(self, base_url: str) -> None:
        self._url = base_url.rstrip("/") + "/run"

    async def run(self, artifact: GeneratedArtifact, envelope: HarnessEnvelope) -> TestOutcome:
        payload = build_harness_payload(artifact, envelope)
        # Build time on top of the per-run limit.
        timeout = httpx.Timeout(envelope.timeout + 60.0, connect=10.0)
        try:
            async with get_http_client() as client:
                response = await client.post(self._url, json=payload, timeout=timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Test harness request failed: %s", e)
            return failed_build(f"Test harness unavailable: {e}")
        try:
            outcome = validate_as(TestOutcome, response.json())
        except (ValueError, MalformedOutput) as e:
            logger.error("Unreadable test harness reply: %s", e)
            return failed_build(f"Unreadable test harness reply: {e}")
        logger.info(
            "Harness run for %s: build=%s, %d/%d tools passed",
            artifact.metadata.server_name,
            outcome.build_success,
            outcome.tools_passed,
            outcome.tools_found,
        )
        return outcome
