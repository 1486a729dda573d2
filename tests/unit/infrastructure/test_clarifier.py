"""Clarification orchestrator tests."""

import pytest

from src.domain.entities.clarification import (
    ClarificationQuestion,
    ClarificationRound,
    GapPriority,
    KnowledgeGap,
)
from src.domain.entities.research import (
    AuthenticationInfo,
    DocumentationAnalysis,
    InputClassification,
    InputKind,
    ResearchResult,
    SynthesizedPlan,
)
from src.infrastructure.agents.clarifier import (
    AUTH_OPTIONS,
    ClarificationOrchestrator,
    answered_by_evidence,
    gaps_to_questions,
)

GAPS = "Find information that is genuinely missing"


def _research(auth: str = "unknown", base_url: str | None = None) -> ResearchResult:
    return ResearchResult(
        classification=InputClassification(kind=InputKind.SERVICE_NAME, confidence=0.9, service_name="Acme"),
        documentation=DocumentationAnalysis(
            url="https://docs.acme.io",
            base_url=base_url,
            authentication=AuthenticationInfo(type=auth),
        ),
        synthesized_plan=SynthesizedPlan(summary="Acme"),
        confidence=0.4,
    )


def _gap(issue: str, priority: str = "HIGH", question: str = "") -> dict:
    return {"issue": issue, "priority": priority, "suggested_question": question}


@pytest.fixture
def orchestrator(scripted_llm, model_router):
    return ClarificationOrchestrator(scripted_llm, model_router)


class TestOrchestrateClarification:
    @pytest.mark.asyncio
    async def test_no_gaps_completes(self, orchestrator, scripted_llm):
        scripted_llm.on(GAPS, {"gaps": []})
        outcome = await orchestrator.orchestrate_clarification({"user_input": "Acme"})
        assert outcome.complete
        assert not outcome.needs_user_input

    @pytest.mark.asyncio
    async def test_at_most_two_questions_by_priority(self, orchestrator, scripted_llm):
        scripted_llm.on(
            GAPS,
            {
                "gaps": [
                    _gap("Which workspace?", "MEDIUM"),
                    _gap("Which auth method?", "HIGH", "How do you authenticate?"),
                    _gap("Which region?", "HIGH"),
                    _gap("Preferred colours", "LOW"),
                ]
            },
        )
        outcome = await orchestrator.orchestrate_clarification({"user_input": "Acme"})

        assert outcome.needs_user_input
        assert not outcome.complete
        assert len(outcome.gaps) == 3
        assert [q.question for q in outcome.questions] == ["How do you authenticate?", "Which region?"]
        assert all(q.required for q in outcome.questions)
        assert outcome.questions[0].options == AUTH_OPTIONS

    @pytest.mark.asyncio
    async def test_gaps_covered_by_docs_are_dropped(self, orchestrator, scripted_llm):
        scripted_llm.on(
            GAPS,
            {"gaps": [_gap("Authentication method unknown"), _gap("What is the API base URL?")]},
        )
        state = {"user_input": "Acme", "research": _research(auth="bearer", base_url="https://api.acme.io")}
        outcome = await orchestrator.orchestrate_clarification(state)
        assert outcome.complete

    @pytest.mark.asyncio
    async def test_round_limit(self, orchestrator, scripted_llm):
        rounds = [
            ClarificationRound(questions=[ClarificationQuestion(question="q")], user_response="a")
            for _ in range(3)
        ]
        outcome = await orchestrator.orchestrate_clarification(
            {"user_input": "Acme", "clarification_history": rounds}
        )
        assert outcome.complete
        assert scripted_llm.calls == []

    @pytest.mark.asyncio
    async def test_failed_detection_means_no_gaps(self, orchestrator, scripted_llm):
        scripted_llm.on(GAPS, "The request is clear.")
        outcome = await orchestrator.orchestrate_clarification({"user_input": "Acme"})
        assert outcome.complete

    @pytest.mark.asyncio
    async def test_history_sent_to_model(self, orchestrator, scripted_llm):
        scripted_llm.on(GAPS, {"gaps": []})
        history = [
            ClarificationRound(
                questions=[ClarificationQuestion(question="Which region?")], user_response="EU"
            )
        ]
        await orchestrator.orchestrate_clarification({"user_input": "Acme", "clarification_history": history})
        assert "Which region? -> EU" in scripted_llm.prompts_containing(GAPS)[0]


class TestHelpers:
    def test_unknown_auth_not_answered(self):
        gap = KnowledgeGap(issue="Auth token format", priority=GapPriority.HIGH)
        assert not answered_by_evidence(gap, _research(auth="unknown"))
        assert not answered_by_evidence(gap, None)

    def test_medium_gap_not_required(self):
        questions = gaps_to_questions([KnowledgeGap(issue="Rate limits?", priority="medium")])
        assert not questions[0].required
        assert questions[0].question == "Rate limits?"
        assert questions[0].options[0] == "No rate limit"


class TestProviderErrors:
    @pytest.mark.asyncio
    async def test_rejected_gap_detection_means_no_gaps(self, rejecting_llm, model_router):
        orchestrator = ClarificationOrchestrator(rejecting_llm, model_router)
        outcome = await orchestrator.orchestrate_clarification({"user_input": "Acme"})

        assert outcome.complete
        assert outcome.questions == []
