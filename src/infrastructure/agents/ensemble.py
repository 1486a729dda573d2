"""Ensemble coordinator - four weighted specialists vote on the tool list."""

import asyncio
import logging

from pydantic import BaseModel

from src.domain.entities.session_state import SessionState
from src.domain.entities.tools import (
    AgentPerspective,
    EnsembleResult,
    GenerationPlan,
    ToolRecommendation,
    VotingDetails,
)
from src.domain.errors import ConsensusNotReached, PipelineError
from src.domain.ports.llm import LLMPort
from src.domain.services.model_router import ModelRouter
from src.domain.services.voting import (
    DEFAULT_TOOL_CAP,
    MIN_CONSENSUS_TOOLS,
    apply_tool_constraints,
    consensus_reached,
    consensus_score,
    consensus_tools,
    estimate_plan_complexity,
    pool_proposals,
    score_tools,
    tally_votes,
)
from src.infrastructure.agents.llm_helpers import complete_model
from src.infrastructure.agents.prompts import build_mediation_prompt, build_specialist_prompt

logger = logging.getLogger(__name__)

SPECIALIST_WEIGHTS = {
    "architect": 1.0,
    "security": 0.8,
    "performance": 0.8,
    "mcp_specialist": 1.2,
}
FAILED_PASS_CONFIDENCE = 0.3
MEDIATION_MAX_TOOLS = 10


class ToolProposal(BaseModel):
    """Shape of a specialist or mediator reply."""

    tools: list[ToolRecommendation] = []
    confidence: float = 0.7
    reasoning: str = ""


def require_consensus(tools: list[ToolRecommendation]) -> None:
    if not consensus_reached(tools):
        raise ConsensusNotReached(len(tools), MIN_CONSENSUS_TOOLS)


def build_plan(tools: list[ToolRecommendation]) -> GenerationPlan:
    steps = [
        "Scaffold MCP server and transport",
        *(f"Implement tool {t.name}" for t in tools),
        "Register tools with input schemas",
        "Run the container test harness",
    ]
    return GenerationPlan(
        steps=steps,
        tools_to_generate=tools,
        estimated_complexity=estimate_plan_complexity(tools),
    )


class EnsembleCoordinator:
    """Runs the specialists concurrently and turns their votes into a tool list."""

    def __init__(self, llm: LLMPort, router: ModelRouter) -> None:
        self._llm = llm
        self._router = router

    async def orchestrate_ensemble(self, state: SessionState) -> EnsembleResult:
        extracted = state.get("extracted")
        request = (extracted.request_text if extracted else "") or state.get("user_input", "")
        research = state.get("research")

        perspectives = await asyncio.gather(
            *(
                self._consult(name, weight, request, research)
                for name, weight in SPECIALIST_WEIGHTS.items()
            )
        )
        ledger = tally_votes(perspectives)
        tools = consensus_tools(ledger)
        reached = consensus_reached(tools)
        voting = VotingDetails(
            total_votes=sum(len(v) for v in ledger.values()),
            tool_votes=ledger,
            tool_scores=score_tools(ledger),
            consensus_reached=reached,
        )

        conflicts_resolved = False
        try:
            require_consensus(tools)
        except ConsensusNotReached as e:
            logger.info("Consensus not reached (%s), resolving", e)
            tools = await self._resolve_conflicts(request, list(perspectives))
            conflicts_resolved = True

        constraints = extracted.constraints if extracted else None
        final = apply_tool_constraints(tools, constraints)
        logger.info(
            "Ensemble produced %d tools (consensus=%s, resolved=%s)",
            len(final),
            reached,
            conflicts_resolved,
        )
        return EnsembleResult(
            perspectives=list(perspectives),
            consensus_score=consensus_score(reached),
            conflicts_resolved=conflicts_resolved,
            voting=voting,
            tools=final,
            plan=build_plan(final),
        )

    async def _consult(self, name: str, weight: float, request: str, research) -> AgentPerspective:
        try:
            proposal = await complete_model(
                self._llm,
                build_specialist_prompt(name, request, research),
                self._router.select("specialist"),
                ToolProposal,
            )
        except (PipelineError, TimeoutError, ConnectionError, OSError) as e:
            logger.warning("Specialist %s failed: %s", name, e)
            return AgentPerspective(
                agent_name=name,
                weight=weight,
                confidence=FAILED_PASS_CONFIDENCE,
                reasoning=f"Specialist pass failed: {e}",
                failed=True,
            )
        return AgentPerspective(
            agent_name=name,
            weight=weight,
            recommendations=proposal.tools,
            confidence=max(0.0, min(1.0, proposal.confidence)),
            reasoning=proposal.reasoning,
        )

    async def _resolve_conflicts(
        self, request: str, perspectives: list[AgentPerspective]
    ) -> list[ToolRecommendation]:
        """Mediation, then the highest-weight specialist, then pooled proposals."""
        try:
            mediated = await complete_model(
                self._llm,
                build_mediation_prompt(request, perspectives),
                self._router.select("mediation"),
                ToolProposal,
            )
            if mediated.tools:
                return mediated.tools[:MEDIATION_MAX_TOOLS]
            logger.warning("Mediation returned no tools")
        except (PipelineError, TimeoutError, ConnectionError, OSError) as e:
            logger.warning("Mediation failed: %s", e)

        if not perspectives:
            return []
        top = max(perspectives, key=lambda p: p.weight)
        if top.recommendations:
            logger.info("Using proposals from %s", top.agent_name)
            return top.recommendations[:DEFAULT_TOOL_CAP]
        logger.info("%s proposed nothing, pooling every specialist", top.agent_name)
        return pool_proposals(perspectives)
