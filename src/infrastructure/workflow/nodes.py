"""Node handlers for the generation pipeline.

Handlers take the current session state and return a partial update. The
central guard in ``graph.py`` turns any exception into the ``error`` field.
"""

import logging
import re

from src.domain.entities.artifact import TargetLanguage
from src.domain.entities.clarification import ClarificationQuestion, ClarificationRound
from src.domain.entities.session_state import (
    ChatMessage,
    ExtractedParameters,
    IntentAnalysis,
    ProgressEvent,
    SessionState,
)
from src.domain.errors import PipelineError
from src.domain.ports.llm import LLMPort
from src.domain.services.env_vars import (
    MAX_ENV_ROUNDS,
    detect_required_env_vars,
    generate_env_var_questions,
    needs_env_var_collection,
    parse_env_var_answers,
    process_env_var_response,
    validate_env_var_format,
)
from src.domain.services.input_classifier import URL_RE, find_github_reference
from src.domain.services.intent_detector import HELP_RESPONSE, IntentDetector
from src.domain.services.model_router import ModelRouter
from src.domain.services.tool_constraints import extract_tool_constraints
from src.infrastructure.agents.clarifier import ClarificationOrchestrator
from src.infrastructure.agents.ensemble import EnsembleCoordinator
from src.infrastructure.agents.llm_helpers import complete_json
from src.infrastructure.agents.prompts import build_intent_prompt
from src.infrastructure.agents.refiner import RefinementLoop
from src.infrastructure.agents.researcher import ResearchCoordinator
from src.infrastructure.workflow.transitions import PipelineNode

logger = logging.getLogger(__name__)

MODEL_INTENTS = ("generate", "research", "help", "unclear")
UNCLEAR_RESPONSE = (
    "I couldn't tell what to build. Which service, API or repository should the "
    "MCP server wrap, and what should its tools do?"
)
_PYTHON_RE = re.compile(r"\bpython\b", re.IGNORECASE)


def progress(node: PipelineNode, message: str) -> list[ProgressEvent]:
    return [ProgressEvent(node=node.value, message=message)]


def format_questions(questions: list[ClarificationQuestion]) -> str:
    lines = ["I need a bit more information:"]
    for n, q in enumerate(questions, start=1):
        lines.append(f"{n}. {q.question}")
        if q.context:
            lines.append(f"   {q.context}")
        if q.options:
            lines.append("   Options: " + "; ".join(q.options))
    return "\n".join(lines)


def extract_parameters(text: str) -> ExtractedParameters:
    github = find_github_reference(text)
    if github:
        source_url = f"https://github.com/{github[0]}/{github[1]}"
    else:
        url = URL_RE.search(text)
        source_url = url.group(0).rstrip(".,;)") if url else None
    language = TargetLanguage.PYTHON if _PYTHON_RE.search(text) else TargetLanguage.TYPESCRIPT
    return ExtractedParameters(
        request_text=text,
        source_url=source_url,
        target_language=language,
        constraints=extract_tool_constraints(text),
    )


def _new_pass_reset() -> dict:
    """Per-request fields cleared when a fresh request arrives."""
    return {
        "research": None,
        "ensemble": None,
        "generation_plan": None,
        "artifact": None,
        "test_outcome": None,
        "refinement_iteration": 0,
        "refinement_history": [],
        "clarification_history": [],
        "clarification_needed": None,
        "pending_questions": [],
        "detected_env_vars": [],
        "pending_env_vars": [],
        "env_rounds": 0,
    }


class PipelineNodes:
    """Holds the phase coordinators; one method per graph node."""

    def __init__(
        self,
        llm: LLMPort,
        router: ModelRouter,
        researcher: ResearchCoordinator,
        ensemble: EnsembleCoordinator,
        clarifier: ClarificationOrchestrator,
        refiner: RefinementLoop,
        intent_detector: IntentDetector | None = None,
    ) -> None:
        self._llm = llm
        self._router = router
        self._researcher = researcher
        self._ensemble = ensemble
        self._clarifier = clarifier
        self._refiner = refiner
        self._detector = intent_detector or IntentDetector()

    async def analyze_intent(self, state: SessionState) -> dict:
        text = (state.get("user_input") or "").strip()
        base = {
            "messages": [ChatMessage(role="user", content=text)],
            "error": None,
            "response": None,
            "needs_user_input": False,
            "is_complete": False,
        }

        pending_env = state.get("pending_env_vars") or []
        if pending_env:
            update = self._env_answer(text, pending_env, state)
            if update is not None:
                return {**base, **update}

        history = state.get("clarification_history") or []
        if history and history[-1].user_response is None and state.get("pending_questions"):
            answered = history[-1].model_copy(update={"user_response": text})
            return {
                **base,
                "intent": IntentAnalysis(kind="clarify_response", reasoning="Answer to pending questions"),
                "clarification_history": [*history[:-1], answered],
                "pending_questions": [],
                "progress": progress(PipelineNode.ANALYZE_INTENT, "Recorded clarification answer"),
            }

        intent = await self._detect_intent(text)
        if intent.kind == "help":
            return {**base, "intent": intent, "progress": progress(PipelineNode.ANALYZE_INTENT, "Help requested")}
        if intent.kind == "unclear":
            return {
                **base,
                "intent": intent,
                "clarification_needed": UNCLEAR_RESPONSE,
                "progress": progress(PipelineNode.ANALYZE_INTENT, "Request unclear"),
            }

        extracted = extract_parameters(text)
        logger.info(
            "New request: intent=%s language=%s constraints=%s",
            intent.kind,
            extracted.target_language.value,
            extracted.constraints.model_dump(),
        )
        return {
            **base,
            **_new_pass_reset(),
            "intent": intent,
            "extracted": extracted,
            "progress": progress(PipelineNode.ANALYZE_INTENT, f"Intent: {intent.kind}"),
        }

    def _env_answer(self, text: str, pending: list[str], state: SessionState) -> dict | None:
        answers = parse_env_var_answers(text, pending)
        if not answers and self._detector.detect(text).kind == "generate":
            return None
        collected = list(state.get("collected_env_vars") or [])
        for name, value in answers.items():
            collected, validation = process_env_var_response(name, value, collected)
            if not validation.is_valid:
                logger.info("Invalid value supplied for %s", name)
        return {
            "intent": IntentAnalysis(kind="env_response", reasoning="Credential answers"),
            "collected_env_vars": collected,
            "pending_env_vars": [],
            "pending_questions": [],
            "progress": progress(
                PipelineNode.ANALYZE_INTENT, f"Received {len(answers)} credential answer(s)"
            ),
        }

    async def _detect_intent(self, text: str) -> IntentAnalysis:
        heuristic = self._detector.detect(text)
        if heuristic.kind != "unknown":
            return IntentAnalysis(kind=heuristic.kind, reasoning="Pattern match")
        try:
            data = await complete_json(
                self._llm, build_intent_prompt(text), self._router.select("intent")
            )
        except (PipelineError, TimeoutError, ConnectionError, OSError) as e:
            logger.warning("Intent call failed, defaulting to generate: %s", e)
            return IntentAnalysis(kind="generate", confidence=0.5, reasoning="Default")
        kind = data.get("intent")
        if kind not in MODEL_INTENTS:
            kind = "generate"
        try:
            confidence = float(data.get("confidence", 0.7))
        except (TypeError, ValueError):
            confidence = 0.7
        return IntentAnalysis(
            kind=kind,
            confidence=max(0.0, min(1.0, confidence)),
            reasoning=str(data.get("reasoning", "")),
        )

    async def provide_help(self, state: SessionState) -> dict:
        return {
            "response": HELP_RESPONSE,
            "is_complete": True,
            "needs_user_input": False,
            "messages": [ChatMessage(role="assistant", content=HELP_RESPONSE)],
            "progress": progress(PipelineNode.PROVIDE_HELP, "Sent usage help"),
        }

    async def research(self, state: SessionState) -> dict:
        result = await self._researcher.conduct_research(state)
        source = " (cached)" if result.from_cache else ""
        return {
            "research": result,
            "progress": progress(
                PipelineNode.RESEARCH, f"Research complete{source}, confidence {result.confidence:.2f}"
            ),
        }

    async def ensemble(self, state: SessionState) -> dict:
        result = await self._ensemble.orchestrate_ensemble(state)
        research = state.get("research")
        extracted = state.get("extracted")
        context = " ".join(
            part
            for part in (
                extracted.request_text if extracted else "",
                research.synthesized_plan.summary if research else "",
            )
            if part
        )
        detected = detect_required_env_vars(result.tools, context)
        return {
            "ensemble": result,
            "generation_plan": result.plan,
            "detected_env_vars": detected,
            "progress": progress(
                PipelineNode.ENSEMBLE,
                f"Agreed on {len(result.tools)} tools"
                + (" after conflict resolution" if result.conflicts_resolved else ""),
            ),
        }

    async def clarification(self, state: SessionState) -> dict:
        outcome = await self._clarifier.orchestrate_clarification(state)
        if not outcome.needs_user_input:
            return {
                "pending_questions": [],
                "progress": progress(PipelineNode.CLARIFICATION, "No clarification needed"),
            }
        history = state.get("clarification_history") or []
        round_ = ClarificationRound(gaps=outcome.gaps, questions=outcome.questions)
        return {
            "clarification_history": [*history, round_],
            "pending_questions": outcome.questions,
            "needs_user_input": True,
            "response": format_questions(outcome.questions),
            "progress": progress(
                PipelineNode.CLARIFICATION, f"Asking {len(outcome.questions)} question(s)"
            ),
        }

    async def env_collection(self, state: SessionState) -> dict:
        detected = state.get("detected_env_vars") or []
        collected = state.get("collected_env_vars") or []
        rounds = state.get("env_rounds") or 0
        if rounds >= MAX_ENV_ROUNDS or not needs_env_var_collection(detected, collected):
            return {
                "pending_env_vars": [],
                "progress": progress(PipelineNode.ENV_COLLECTION, "Credentials settled"),
            }

        previous = {c.name: c for c in collected}
        questions = []
        for question in generate_env_var_questions(detected, collected):
            earlier = previous.get(question.env_var_name)
            if earlier is not None and not earlier.validated:
                validation = validate_env_var_format(earlier.name, earlier.value)
                question = question.model_copy(
                    update={"context": f"The previous value was rejected: {validation.error_message}"}
                )
            questions.append(question)
        return {
            "pending_env_vars": [q.env_var_name for q in questions],
            "pending_questions": questions,
            "env_rounds": rounds + 1,
            "needs_user_input": True,
            "response": format_questions(questions),
            "progress": progress(
                PipelineNode.ENV_COLLECTION, f"Requesting {len(questions)} credential(s)"
            ),
        }

    async def refinement(self, state: SessionState) -> dict:
        result = await self._refiner.refine_until_working(state)
        update = {
            "artifact": result.artifact,
            "test_outcome": result.test_outcome,
            "refinement_iteration": result.iterations,
            "refinement_history": [*(state.get("refinement_history") or []), result],
        }
        outcome = result.test_outcome
        summary = f"Iteration {result.iterations}: {outcome.tools_passed}/{outcome.tools_found} tools passing"
        if result.success or not result.should_continue:
            response = (
                f"Your MCP server {result.artifact.metadata.server_name} is ready. "
                f"All {outcome.tools_found} tools passed testing."
                if result.success
                else result.error
            )
            update.update(
                is_complete=True,
                needs_user_input=False,
                response=response,
                messages=[ChatMessage(role="assistant", content=response)],
            )
        update["progress"] = progress(PipelineNode.REFINEMENT, summary)
        return update

    async def await_user(self, state: SessionState) -> dict:
        response = state.get("response") or state.get("clarification_needed") or UNCLEAR_RESPONSE
        return {
            "response": response,
            "needs_user_input": True,
            "is_complete": False,
            "messages": [ChatMessage(role="assistant", content=response)],
            "progress": progress(PipelineNode.AWAIT_USER, "Waiting for user input"),
        }

    async def handle_error(self, state: SessionState) -> dict:
        response = f"I encountered an error: {state.get('error') or 'unknown error'}"
        return {
            "response": response,
            "is_complete": True,
            "needs_user_input": False,
            "messages": [ChatMessage(role="assistant", content=response)],
            "progress": progress(PipelineNode.HANDLE_ERROR, "Pipeline stopped"),
        }
