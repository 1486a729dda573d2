"""Generated artifact, harness outcome and failure analysis entities."""

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from src.domain.entities.tools import ToolRecommendation


class TargetLanguage(str, Enum):
    TYPESCRIPT = "typescript"
    PYTHON = "python"


MAIN_FILE_NAMES = {
    TargetLanguage.TYPESCRIPT: "src/index.ts",
    TargetLanguage.PYTHON: "server.py",
}


class ArtifactMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    server_name: str
    tools: tuple[ToolRecommendation, ...] = ()
    iteration: int = 1
    language: TargetLanguage = TargetLanguage.TYPESCRIPT


class GeneratedArtifact(BaseModel):
    """Source bundle for one refinement iteration.

    Frozen: refinement produces a new value with ``model_copy(update=...)``.
    """

    model_config = ConfigDict(frozen=True)

    main_file: str
    manifest_files: dict[str, str] = {}
    supporting_files: dict[str, str] = {}
    metadata: ArtifactMetadata

    @property
    def main_file_name(self) -> str:
        return MAIN_FILE_NAMES[self.metadata.language]

    def with_main_file(self, main_file: str) -> "GeneratedArtifact":
        """Return the next iteration of this artifact with a replaced main file."""
        metadata = self.metadata.model_copy(update={"iteration": self.metadata.iteration + 1})
        return self.model_copy(update={"main_file": main_file, "metadata": metadata})

    def all_files(self) -> dict[str, str]:
        return {
            self.main_file_name: self.main_file,
            **self.manifest_files,
            **self.supporting_files,
        }


class ToolTestResult(BaseModel):
    """Harness verdict for one tool."""

    model_config = ConfigDict(populate_by_name=True)

    tool_name: str = Field(validation_alias=AliasChoices("tool_name", "toolName", "name"))
    success: bool
    error: str | None = None
    execution_time_ms: float | None = Field(
        None, validation_alias=AliasChoices("execution_time_ms", "executionTime")
    )
    mcp_compliant: bool = Field(True, validation_alias=AliasChoices("mcp_compliant", "mcpCompliant"))


class TestOutcome(BaseModel):
    """Result reported by the external container test harness."""

    __test__ = False

    model_config = ConfigDict(populate_by_name=True)

    overall_success: bool = Field(validation_alias=AliasChoices("overall_success", "overallSuccess"))
    build_success: bool = Field(validation_alias=AliasChoices("build_success", "buildSuccess"))
    build_error: str | None = Field(None, validation_alias=AliasChoices("build_error", "buildError"))
    tools_found: int = Field(0, validation_alias=AliasChoices("tools_found", "toolsFound"))
    tools_passed: int = Field(0, validation_alias=AliasChoices("tools_passed", "toolsPassed"))
    results: list[ToolTestResult] = []

    @property
    def failed_results(self) -> list[ToolTestResult]:
        return [r for r in self.results if not r.success]


class FailureCategory(str, Enum):
    SYNTAX = "syntax"
    RUNTIME = "runtime"
    PROTOCOL = "protocol"
    LOGIC = "logic"
    TIMEOUT = "timeout"


class FixPriority(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


FIX_PRIORITY_RANK = {FixPriority.HIGH: 0, FixPriority.MEDIUM: 1, FixPriority.LOW: 2}


class FixSuggestion(BaseModel):
    tool_name: str = Field(validation_alias=AliasChoices("tool_name", "toolName", "tool"))
    issue: str
    solution: str
    priority: FixPriority = FixPriority.MEDIUM
    code_snippet: str | None = Field(
        None, validation_alias=AliasChoices("code_snippet", "codeSnippet")
    )

    @field_validator("priority", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class FailureAnalysis(BaseModel):
    """Why the last harness run failed and what to change."""

    failure_count: int = Field(0, validation_alias=AliasChoices("failure_count", "failureCount"))
    categories: dict[FailureCategory, int] = {}
    root_causes: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("root_causes", "rootCauses")
    )
    fixes: list[FixSuggestion] = Field(
        default_factory=list, validation_alias=AliasChoices("fixes", "suggestedFixes")
    )
    recommendation: str = ""

    @field_validator("categories", mode="before")
    @classmethod
    def _drop_unknown_categories(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return {}
        known = {c.value for c in FailureCategory}
        counts = {}
        for key, count in value.items():
            name = (key.value if isinstance(key, Enum) else str(key)).lower()
            if name in known and count:
                counts[name] = count
        return counts

    def sorted_fixes(self) -> list[FixSuggestion]:
        return sorted(self.fixes, key=lambda f: FIX_PRIORITY_RANK[f.priority])


class RefinementResult(BaseModel):
    """Outcome of a single refine-until-working call."""

    success: bool
    artifact: GeneratedArtifact
    test_outcome: TestOutcome
    failure_analysis: FailureAnalysis | None = None
    iterations: int
    should_continue: bool
    error: str | None = None
