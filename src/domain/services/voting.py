"""Weighted voting over specialist tool recommendations.

Pure functions; the ensemble coordinator owns the model calls around them.
"""

import copy
import re
from collections.abc import Iterable

from src.domain.entities.tools import (
    PRIORITY_RANK,
    AgentPerspective,
    ToolComplexity,
    ToolConstraints,
    ToolPriority,
    ToolRecommendation,
    Vote,
)

CONSENSUS_THRESHOLD = 0.7
MIN_CONSENSUS_TOOLS = 5
DEFAULT_TOOL_CAP = 10

PROTOCOL_SPECIALIST = "mcp_specialist"
LAYERED_SPECIALISTS = ("security", "performance")
PERFORMANCE_SPECIALIST = "performance"

_SEPARATORS_RE = re.compile(r"[\s\-.]+")
_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def normalize_tool_name(name: str) -> str:
    """Identity key for a tool: ``getUser``, ``get-user`` and ``Get User`` collide."""
    name = _CAMEL_RE.sub("_", name.strip())
    return _SEPARATORS_RE.sub("_", name).strip("_").lower()


def tally_votes(perspectives: Iterable[AgentPerspective]) -> dict[str, list[Vote]]:
    """Group one vote per (specialist, tool) under the normalized tool name."""
    ledger: dict[str, list[Vote]] = {}
    for perspective in perspectives:
        voted: set[str] = set()
        for rec in perspective.recommendations:
            key = normalize_tool_name(rec.name)
            if not key or key in voted:
                continue
            voted.add(key)
            ledger.setdefault(key, []).append(
                Vote(
                    agent_name=perspective.agent_name,
                    tool_name=key,
                    confidence=perspective.confidence,
                    weight=perspective.weight,
                    recommendation=rec,
                )
            )
    return ledger


def vote_score(votes: Iterable[Vote]) -> float:
    """sum(confidence * weight) / sum(weight); 0.0 for no votes."""
    votes = list(votes)
    total_weight = sum(v.weight for v in votes)
    if total_weight <= 0:
        return 0.0
    return sum(v.confidence * v.weight for v in votes) / total_weight


def score_tools(ledger: dict[str, list[Vote]]) -> dict[str, float]:
    return {name: vote_score(votes) for name, votes in ledger.items()}


def consensus_tools(
    ledger: dict[str, list[Vote]],
    threshold: float = CONSENSUS_THRESHOLD,
) -> list[ToolRecommendation]:
    """Merged recommendation for every tool whose score clears the threshold."""
    return [
        merge_recommendations(votes)
        for votes in ledger.values()
        if vote_score(votes) >= threshold
    ]


def consensus_reached(tools: list[ToolRecommendation]) -> bool:
    return len(tools) >= MIN_CONSENSUS_TOOLS


def consensus_score(reached: bool) -> float:
    """1.0 when consensus was reached, else 0.5."""
    return 1.0 if reached else 0.5


def _layer_schema(base: dict, addition: dict) -> None:
    """Add properties and constraint keys from ``addition`` that ``base`` lacks."""
    base_props = base.setdefault("properties", {})
    for prop, prop_schema in (addition.get("properties") or {}).items():
        if prop not in base_props:
            base_props[prop] = copy.deepcopy(prop_schema)
        elif isinstance(prop_schema, dict) and isinstance(base_props[prop], dict):
            for key, value in prop_schema.items():
                base_props[prop].setdefault(key, copy.deepcopy(value))


def merge_recommendations(votes: list[Vote]) -> ToolRecommendation:
    """Protocol specialist's recommendation is the base; others only add."""
    base_vote = next((v for v in votes if v.agent_name == PROTOCOL_SPECIALIST), votes[0])
    merged = base_vote.recommendation.model_copy(deep=True)
    schema = merged.input_schema
    schema.setdefault("type", "object")

    for vote in votes:
        if vote is base_vote or vote.agent_name not in LAYERED_SPECIALISTS:
            continue
        _layer_schema(schema, vote.recommendation.input_schema)

    if any(v.agent_name == PERFORMANCE_SPECIALIST for v in votes):
        schema.setdefault("properties", {}).setdefault(
            "useCache",
            {
                "type": "boolean",
                "description": "Use cached results when available",
                "default": True,
            },
        )
    return merged


def pool_proposals(
    perspectives: Iterable[AgentPerspective],
    cap: int = DEFAULT_TOOL_CAP,
) -> list[ToolRecommendation]:
    """Every specialist's raw proposals, first occurrence wins, capped."""
    pooled: dict[str, ToolRecommendation] = {}
    for perspective in perspectives:
        for rec in perspective.recommendations:
            pooled.setdefault(normalize_tool_name(rec.name), rec)
    return list(pooled.values())[:cap]


def placeholder_tool(name: str) -> ToolRecommendation:
    """Stand-in for a tool the user named but no specialist proposed."""
    return ToolRecommendation(
        name=name,
        description=f"{name.replace('_', ' ').capitalize()} (requested explicitly)",
        input_schema={"type": "object", "properties": {}},
        output_format="text",
        priority=ToolPriority.HIGH,
        estimated_complexity=ToolComplexity.SIMPLE,
    )


def apply_tool_constraints(
    tools: list[ToolRecommendation],
    constraints: ToolConstraints | None,
    default_cap: int = DEFAULT_TOOL_CAP,
) -> list[ToolRecommendation]:
    """Final deterministic gate on the tool list.

    Named tools first (placeholders for names nobody proposed), then the
    remaining slots by priority. The limit is the requested count bounded by
    ``max_tool_count``; without constraints the list is capped at ``default_cap``.
    """
    if constraints is None or constraints.is_empty:
        return tools[:default_cap]

    limit = constraints.requested_count or len(constraints.requested_names)
    if constraints.max_tool_count:
        limit = min(limit, constraints.max_tool_count)
    if not limit:
        limit = default_cap

    by_key = {normalize_tool_name(t.name): t for t in tools}
    selected: list[ToolRecommendation] = []
    chosen: set[str] = set()
    for name in constraints.requested_names:
        key = normalize_tool_name(name)
        if key in chosen:
            continue
        chosen.add(key)
        selected.append(by_key.get(key) or placeholder_tool(name))

    remaining = [t for t in tools if normalize_tool_name(t.name) not in chosen]
    remaining.sort(key=lambda t: PRIORITY_RANK[t.priority])
    selected.extend(remaining[: max(0, limit - len(selected))])
    return selected[:limit]


def estimate_plan_complexity(tools: list[ToolRecommendation]) -> ToolComplexity:
    complex_count = sum(1 for t in tools if t.estimated_complexity == ToolComplexity.COMPLEX)
    if complex_count > len(tools) / 2 or len(tools) > 15:
        return ToolComplexity.COMPLEX
    if len(tools) < 5:
        return ToolComplexity.SIMPLE
    return ToolComplexity.MODERATE
