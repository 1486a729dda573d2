"""Clarification orchestrator - ask only about gaps research could not fill."""

import logging

from pydantic import BaseModel

from src.domain.entities.clarification import (
    GAP_PRIORITY_RANK,
    ClarificationOutcome,
    ClarificationQuestion,
    GapPriority,
    KnowledgeGap,
)
from src.domain.entities.research import ResearchResult
from src.domain.entities.session_state import SessionState
from src.domain.errors import PipelineError
from src.domain.ports.llm import LLMPort
from src.domain.services.model_router import ModelRouter
from src.infrastructure.agents.llm_helpers import complete_model
from src.infrastructure.agents.prompts import build_gap_prompt

logger = logging.getLogger(__name__)

MAX_CLARIFICATION_ROUNDS = 3
QUESTIONS_PER_ROUND = 2

AUTH_OPTIONS = ["API Key", "OAuth 2.0", "Bearer Token", "Basic Auth", "No authentication required"]
RATE_LIMIT_OPTIONS = [
    "No rate limit",
    "Less than 10 requests/minute",
    "10-100 requests/minute",
    "More than 100 requests/minute",
]

AUTH_KEYWORDS = ("auth", "api key", "apikey", "token", "credential", "oauth")
RATE_LIMIT_KEYWORDS = ("rate limit", "rate-limit", "requests per", "throttl", "quota")
BASE_URL_KEYWORDS = ("base url", "base_url", "endpoint url", "api url", "host")


class GapReport(BaseModel):
    gaps: list[KnowledgeGap] = []


def _mentions(gap: KnowledgeGap, keywords: tuple[str, ...]) -> bool:
    text = f"{gap.issue} {gap.suggested_question}".lower()
    return any(k in text for k in keywords)


def answered_by_evidence(gap: KnowledgeGap, research: ResearchResult | None) -> bool:
    """True when gathered evidence already covers the gap."""
    if research is None or research.documentation is None:
        return False
    docs = research.documentation
    if _mentions(gap, AUTH_KEYWORDS) and docs.authentication.type != "unknown":
        return True
    if _mentions(gap, BASE_URL_KEYWORDS) and docs.base_url:
        return True
    return False


def options_for(gap: KnowledgeGap) -> list[str] | None:
    if _mentions(gap, AUTH_KEYWORDS):
        return list(AUTH_OPTIONS)
    if _mentions(gap, RATE_LIMIT_KEYWORDS):
        return list(RATE_LIMIT_OPTIONS)
    return None


def gaps_to_questions(gaps: list[KnowledgeGap]) -> list[ClarificationQuestion]:
    """Top gaps by priority as questions; HIGH gaps are required."""
    ranked = sorted(gaps, key=lambda g: GAP_PRIORITY_RANK[g.priority])[:QUESTIONS_PER_ROUND]
    return [
        ClarificationQuestion(
            question=gap.suggested_question or gap.issue,
            context=gap.context or gap.issue,
            options=options_for(gap),
            required=gap.priority == GapPriority.HIGH,
        )
        for gap in ranked
    ]


def _history_text(state: SessionState) -> str:
    lines = []
    for round_ in state.get("clarification_history") or []:
        for question in round_.questions:
            lines.append(f"- {question.question} -> {round_.user_response or 'no answer'}")
    return "\n".join(lines)


class ClarificationOrchestrator:
    """One clarification pass: detect gaps, filter them, turn the rest into questions."""

    def __init__(self, llm: LLMPort, router: ModelRouter) -> None:
        self._llm = llm
        self._router = router

    async def orchestrate_clarification(self, state: SessionState) -> ClarificationOutcome:
        history = state.get("clarification_history") or []
        if len(history) >= MAX_CLARIFICATION_ROUNDS:
            logger.info("Clarification round limit reached, proceeding")
            return ClarificationOutcome(complete=True)

        research = state.get("research")
        gaps = [
            gap
            for gap in await self.detect_gaps(state)
            if not answered_by_evidence(gap, research)
        ]
        if not gaps:
            return ClarificationOutcome(complete=True)

        questions = gaps_to_questions(gaps)
        logger.info("Asking %d clarification question(s)", len(questions))
        return ClarificationOutcome(
            complete=False,
            gaps=gaps,
            questions=questions,
            needs_user_input=True,
        )

    async def detect_gaps(self, state: SessionState) -> list[KnowledgeGap]:
        """HIGH and MEDIUM gaps only; a failed call means no gaps."""
        extracted = state.get("extracted")
        request = (extracted.request_text if extracted else "") or state.get("user_input", "")
        prompt = build_gap_prompt(request, state.get("research"), _history_text(state))
        try:
            report = await complete_model(
                self._llm, prompt, self._router.select("gap_detection"), GapReport
            )
        except (PipelineError, TimeoutError, ConnectionError, OSError) as e:
            logger.warning("Gap detection failed, assuming no gaps: %s", e)
            return []
        return [g for g in report.gaps if g.priority in (GapPriority.HIGH, GapPriority.MEDIUM)]
