"""Refinement loop - generate, test in the harness, analyze, repair."""

import logging
import re

from src.domain.entities.artifact import (
    FailureAnalysis,
    FailureCategory,
    FixPriority,
    FixSuggestion,
    GeneratedArtifact,
    RefinementResult,
    TargetLanguage,
    TestOutcome,
    ToolTestResult,
)
from src.domain.entities.session_state import SessionState
from src.domain.entities.tools import ToolComplexity, ToolPriority, ToolRecommendation
from src.domain.errors import ArtifactInvalid, PipelineError
from src.domain.ports.harness import HarnessEnvelope, TestHarnessPort
from src.domain.ports.llm import LLMPort
from src.domain.services.model_router import ModelRouter
from src.domain.services.truncation import attempt_repair, is_complete, truncation_signals
from src.domain.services.voting import DEFAULT_TOOL_CAP, normalize_tool_name
from src.infrastructure.agents.artifact_builder import build_artifact, server_name_for
from src.infrastructure.agents.llm_helpers import complete_model, complete_text
from src.infrastructure.agents.prompts import (
    build_failure_analysis_prompt,
    build_generation_prompt,
    build_repair_prompt,
)
from src.infrastructure.sandbox.executor import validate_syntax

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 5
FALLBACK_RECOMMENDATION = "Review and fix each failing tool individually"

_PATH_PARAM_RE = re.compile(r"\{[^}]*\}|:\w+")


def tools_from_endpoints(endpoints: list[str]) -> list[ToolRecommendation]:
    """One tool per ``METHOD /path`` endpoint, named ``method_path``."""
    tools: dict[str, ToolRecommendation] = {}
    for endpoint in endpoints:
        method, _, path = endpoint.partition(" ")
        params = [p.strip("{}:") for p in _PATH_PARAM_RE.findall(path)]
        bare = _PATH_PARAM_RE.sub("", path)
        name = normalize_tool_name(f"{method} {bare.replace('/', ' ')}")
        if not name or name in tools:
            continue
        tools[name] = ToolRecommendation(
            name=name,
            description=f"Call {method.upper()} {path}",
            input_schema={
                "type": "object",
                "properties": {p: {"type": "string"} for p in params},
                "required": params,
            },
            output_format="json",
            priority=ToolPriority.MEDIUM,
            estimated_complexity=ToolComplexity.SIMPLE,
        )
    return list(tools.values())[:DEFAULT_TOOL_CAP]


def is_success(outcome: TestOutcome) -> bool:
    return outcome.overall_success and outcome.tools_passed == outcome.tools_found


def syntax_failure_outcome(error: str, line: int | None) -> TestOutcome:
    location = f" (line {line})" if line else ""
    return TestOutcome(
        overall_success=False,
        build_success=False,
        build_error=f"{error}{location}",
    )


def _categorize(result: ToolTestResult, outcome: TestOutcome) -> FailureCategory:
    if not outcome.build_success:
        return FailureCategory.SYNTAX
    if result.error and "timeout" in result.error.lower():
        return FailureCategory.TIMEOUT
    if not result.mcp_compliant:
        return FailureCategory.PROTOCOL
    return FailureCategory.RUNTIME


def fallback_analysis(outcome: TestOutcome) -> FailureAnalysis:
    """Mechanical analysis used when the model call fails."""
    failures = outcome.failed_results
    if not outcome.build_success and not failures:
        failures = [ToolTestResult(tool_name="build", success=False, error=outcome.build_error)]
    categories: dict[FailureCategory, int] = {}
    fixes = []
    for result in failures:
        category = _categorize(result, outcome)
        categories[category] = categories.get(category, 0) + 1
        fixes.append(
            FixSuggestion(
                tool_name=result.tool_name,
                issue=result.error or f"{category.value} failure",
                solution=f"Fix the {category.value} error in {result.tool_name}",
                priority=FixPriority.HIGH,
            )
        )
    return FailureAnalysis(
        failure_count=len(failures),
        categories=categories,
        root_causes=[f.issue for f in fixes],
        fixes=fixes,
        recommendation=FALLBACK_RECOMMENDATION,
    )


def finalize_source(code: str) -> str:
    """Apply mechanical repair when the source looks truncated."""
    if is_complete(code):
        return code
    logger.warning("Generated source looks truncated: %s", ", ".join(truncation_signals(code)))
    return attempt_repair(code)


class RefinementLoop:
    """One refinement iteration per call; the state machine re-enters until done."""

    def __init__(
        self,
        llm: LLMPort,
        router: ModelRouter,
        harness: TestHarnessPort,
        envelope: HarnessEnvelope,
    ) -> None:
        self._llm = llm
        self._router = router
        self._harness = harness
        self._envelope = envelope

    async def refine_until_working(self, state: SessionState) -> RefinementResult:
        iteration = (state.get("refinement_iteration") or 0) + 1
        artifact = state.get("artifact") or await self.generate_artifact(state)
        logger.info(
            "Refinement iteration %d/%d for %s", iteration, MAX_ITERATIONS, artifact.metadata.server_name
        )

        outcome = await self.test_artifact(artifact)
        if is_success(outcome):
            logger.info("All %d tools passed on iteration %d", outcome.tools_found, iteration)
            return RefinementResult(
                success=True,
                artifact=artifact,
                test_outcome=outcome,
                iterations=iteration,
                should_continue=False,
            )

        if iteration >= MAX_ITERATIONS:
            error = ArtifactInvalid(outcome.tools_passed, outcome.tools_found, iteration)
            logger.warning("%s", error)
            return RefinementResult(
                success=False,
                artifact=artifact,
                test_outcome=outcome,
                iterations=iteration,
                should_continue=False,
                error=str(error),
            )

        analysis = await self.analyze_failures(artifact, outcome)
        repaired = await self.repair(artifact, analysis)
        return RefinementResult(
            success=False,
            artifact=repaired,
            test_outcome=outcome,
            failure_analysis=analysis,
            iterations=iteration,
            should_continue=True,
        )

    def _tools_for(self, state: SessionState) -> list[ToolRecommendation]:
        plan = state.get("generation_plan")
        if plan and plan.tools_to_generate:
            return plan.tools_to_generate
        ensemble = state.get("ensemble")
        if ensemble and ensemble.tools:
            return ensemble.tools
        research = state.get("research")
        source = research.source_analysis if research else None
        if source is None:
            raise PipelineError("No tools to generate and no source analysis available")
        tools = tools_from_endpoints(source.api_endpoints)
        if not tools:
            raise PipelineError("No tools to generate: source analysis found no API endpoints")
        logger.info("Derived %d tools from source endpoints", len(tools))
        return tools

    async def generate_artifact(self, state: SessionState) -> GeneratedArtifact:
        tools = self._tools_for(state)
        extracted = state.get("extracted")
        language = extracted.target_language if extracted else TargetLanguage.TYPESCRIPT
        research = state.get("research")
        subject = (extracted.request_text if extracted else "") or state.get("user_input", "")
        if research:
            classification = research.classification
            subject = classification.service_name or classification.repository or subject
        server_name = server_name_for(subject)
        env_vars = state.get("detected_env_vars") or []

        prompt = build_generation_prompt(
            server_name, tools, language, research, [v.name for v in env_vars]
        )
        code = await complete_text(
            self._llm, prompt, self._router.select("generation"), temperature=0.2
        )
        description = research.synthesized_plan.summary if research else ""
        return build_artifact(
            finalize_source(code), server_name, tools, language, env_vars, description
        )

    async def test_artifact(self, artifact: GeneratedArtifact) -> TestOutcome:
        if artifact.metadata.language == TargetLanguage.PYTHON:
            check = validate_syntax(artifact.main_file)
            if not check.valid:
                logger.info("Syntax check failed before harness run: %s", check.error)
                return syntax_failure_outcome(check.error, check.line)
        return await self._harness.run(artifact, self._envelope)

    async def analyze_failures(
        self, artifact: GeneratedArtifact, outcome: TestOutcome
    ) -> FailureAnalysis:
        try:
            return await complete_model(
                self._llm,
                build_failure_analysis_prompt(artifact, outcome),
                self._router.select("failure_analysis"),
                FailureAnalysis,
            )
        except (PipelineError, TimeoutError, ConnectionError, OSError) as e:
            logger.warning("Failure analysis failed, categorizing mechanically: %s", e)
            return fallback_analysis(outcome)

    async def repair(self, artifact: GeneratedArtifact, analysis: FailureAnalysis) -> GeneratedArtifact:
        """Next iteration of the artifact; the original when repair fails."""
        try:
            code = await complete_text(
                self._llm,
                build_repair_prompt(artifact, analysis),
                self._router.select("repair"),
                temperature=0.2,
            )
        except (PipelineError, TimeoutError, ConnectionError, OSError) as e:
            logger.warning("Repair failed, keeping current artifact: %s", e)
            return artifact
        if not code.strip():
            logger.warning("Repair returned empty source, keeping current artifact")
            return artifact
        return artifact.with_main_file(finalize_source(code))
