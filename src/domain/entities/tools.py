"""Tool recommendation, voting and ensemble entities."""

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator


class ToolPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ToolComplexity(str, Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


PRIORITY_RANK = {ToolPriority.HIGH: 0, ToolPriority.MEDIUM: 1, ToolPriority.LOW: 2}


class ToolRecommendation(BaseModel):
    """A tool the generated server should expose. Identity is the normalized name."""

    name: str = Field(min_length=1)
    description: str = ""
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        validation_alias=AliasChoices("input_schema", "inputSchema"),
    )
    output_format: str = Field(
        "text",
        validation_alias=AliasChoices("output_format", "outputFormat"),
    )
    priority: ToolPriority = ToolPriority.MEDIUM
    estimated_complexity: ToolComplexity = Field(
        ToolComplexity.MODERATE,
        validation_alias=AliasChoices("estimated_complexity", "estimatedComplexity", "complexity"),
    )

    @field_validator("priority", mode="before")
    @classmethod
    def _lower_priority(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    @field_validator("estimated_complexity", mode="before")
    @classmethod
    def _lower_complexity(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value


class AgentPerspective(BaseModel):
    """One specialist pass: its proposals and how sure it is."""

    agent_name: str
    weight: float
    recommendations: list[ToolRecommendation] = []
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    reasoning: str = ""
    failed: bool = False


class Vote(BaseModel):
    """A single specialist's vote for one tool."""

    agent_name: str
    tool_name: str
    confidence: float
    weight: float
    recommendation: ToolRecommendation


class VotingDetails(BaseModel):
    """Per-tool vote ledger."""

    total_votes: int = 0
    tool_votes: dict[str, list[Vote]] = {}
    tool_scores: dict[str, float] = {}
    consensus_reached: bool = False


class ToolConstraints(BaseModel):
    """Explicit tool count/name limits stated by the user."""

    requested_count: int | None = None
    requested_names: list[str] = []
    max_tool_count: int | None = None

    @property
    def is_empty(self) -> bool:
        return self.requested_count is None and not self.requested_names


class GenerationPlan(BaseModel):
    """Ordered build plan handed to the refinement loop."""

    steps: list[str] = []
    tools_to_generate: list[ToolRecommendation] = []
    estimated_complexity: ToolComplexity = ToolComplexity.MODERATE


class EnsembleResult(BaseModel):
    """Output of the ensemble phase."""

    perspectives: list[AgentPerspective]
    consensus_score: float
    conflicts_resolved: bool = False
    voting: VotingDetails
    tools: list[ToolRecommendation] = []
    plan: GenerationPlan = GenerationPlan()
