"""Test harness port - runs a generated server inside a container."""

from typing import Protocol

from pydantic import BaseModel

from src.domain.entities.artifact import GeneratedArtifact, TestOutcome


class HarnessEnvelope(BaseModel):
    """Resource limits applied to one harness run."""

    cpu_limit: str = "0.5"
    memory_limit: str = "512m"
    timeout: int = 30
    tool_timeout: int = 5
    network_mode: str = "none"
    cleanup: bool = True


class TestHarnessPort(Protocol):
    """Builds the artifact, lists its tools and calls each one."""

    __test__ = False

    async def run(self, artifact: GeneratedArtifact, envelope: HarnessEnvelope) -> TestOutcome:
        ...
