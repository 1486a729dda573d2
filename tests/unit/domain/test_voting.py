"""Weighted voting unit tests."""

import pytest

from src.domain.entities.tools import (
    AgentPerspective,
    ToolComplexity,
    ToolConstraints,
    ToolPriority,
    ToolRecommendation,
)
from src.domain.services.voting import (
    apply_tool_constraints,
    consensus_reached,
    consensus_score,
    consensus_tools,
    estimate_plan_complexity,
    merge_recommendations,
    normalize_tool_name,
    pool_proposals,
    tally_votes,
    vote_score,
)


def _tool(name: str, priority: str = "medium", **schema_props) -> ToolRecommendation:
    return ToolRecommendation(
        name=name,
        description=f"{name} tool",
        input_schema={"type": "object", "properties": dict(schema_props)},
        priority=priority,
    )


def _perspective(agent: str, weight: float, confidence: float, *tools: ToolRecommendation) -> AgentPerspective:
    return AgentPerspective(
        agent_name=agent,
        weight=weight,
        confidence=confidence,
        recommendations=list(tools),
    )


class TestNormalizeToolName:
    """Tool identity is the normalized name."""

    def test_variants_collide(self):
        assert normalize_tool_name("getUser") == "get_user"
        assert normalize_tool_name("get-user") == "get_user"
        assert normalize_tool_name("Get User") == "get_user"
        assert normalize_tool_name("  get.user  ") == "get_user"


class TestTallyVotes:
    """Vote ledger construction."""

    def test_one_vote_per_specialist_per_tool(self):
        """A specialist listing the same tool twice votes once."""
        p = _perspective("architect", 1.0, 0.8, _tool("getUser"), _tool("get_user"))
        ledger = tally_votes([p])
        assert list(ledger) == ["get_user"]
        assert len(ledger["get_user"]) == 1

    def test_votes_grouped_across_specialists(self):
        ledger = tally_votes(
            [
                _perspective("architect", 1.0, 0.8, _tool("list_items")),
                _perspective("mcp_specialist", 1.2, 0.9, _tool("listItems")),
            ]
        )
        assert {v.agent_name for v in ledger["list_items"]} == {"architect", "mcp_specialist"}


class TestVoteScore:
    """sum(confidence * weight) / sum(weight)."""

    def test_weighted_average(self):
        ledger = tally_votes(
            [
                _perspective("architect", 1.0, 0.8, _tool("search")),
                _perspective("mcp_specialist", 1.2, 0.9, _tool("search")),
            ]
        )
        assert vote_score(ledger["search"]) == pytest.approx((0.8 + 1.08) / 2.2)

    def test_no_votes_scores_zero(self):
        assert vote_score([]) == 0.0


class TestConsensus:
    """Threshold filtering and the consensus gate."""

    def test_tools_below_threshold_dropped(self):
        ledger = tally_votes(
            [
                _perspective("architect", 1.0, 0.9, _tool("keep")),
                _perspective("security", 0.8, 0.3, _tool("drop")),
            ]
        )
        names = [t.name for t in consensus_tools(ledger)]
        assert names == ["keep"]

    def test_five_tools_reach_consensus(self):
        tools = [_tool(f"tool_{i}") for i in range(5)]
        assert consensus_reached(tools)
        assert not consensus_reached(tools[:4])

    def test_consensus_score_is_binary(self):
        assert consensus_score(True) == 1.0
        assert consensus_score(False) == 0.5


class TestMergeRecommendations:
    """Protocol specialist is the base; others only add."""

    def test_protocol_specialist_description_wins(self):
        base = ToolRecommendation(name="search", description="from mcp")
        other = ToolRecommendation(name="search", description="from architect")
        ledger = tally_votes(
            [
                _perspective("architect", 1.0, 0.9, other),
                _perspective("mcp_specialist", 1.2, 0.9, base),
            ]
        )
        merged = merge_recommendations(ledger["search"])
        assert merged.description == "from mcp"

    def test_security_layers_missing_properties(self):
        ledger = tally_votes(
            [
                _perspective("mcp_specialist", 1.2, 0.9, _tool("search", query={"type": "string"})),
                _perspective(
                    "security",
                    0.8,
                    0.9,
                    _tool("search", query={"type": "integer", "maxLength": 200}, limit={"type": "integer"}),
                ),
            ]
        )
        props = merge_recommendations(ledger["search"]).input_schema["properties"]
        assert props["query"]["type"] == "string"
        assert props["query"]["maxLength"] == 200
        assert props["limit"] == {"type": "integer"}
        assert "useCache" not in props

    def test_performance_adds_cache_flag(self):
        ledger = tally_votes(
            [
                _perspective("mcp_specialist", 1.2, 0.9, _tool("search")),
                _perspective("performance", 0.8, 0.9, _tool("search")),
            ]
        )
        props = merge_recommendations(ledger["search"]).input_schema["properties"]
        assert props["useCache"]["type"] == "boolean"
        assert props["useCache"]["default"] is True

    def test_architect_does_not_layer(self):
        ledger = tally_votes(
            [
                _perspective("mcp_specialist", 1.2, 0.9, _tool("search")),
                _perspective("architect", 1.0, 0.9, _tool("search", extra={"type": "string"})),
            ]
        )
        props = merge_recommendations(ledger["search"]).input_schema["properties"]
        assert "extra" not in props

    def test_merge_does_not_mutate_votes(self):
        base = _tool("search")
        ledger = tally_votes(
            [
                _perspective("mcp_specialist", 1.2, 0.9, base),
                _perspective("performance", 0.8, 0.9, _tool("search")),
            ]
        )
        merge_recommendations(ledger["search"])
        assert ledger["search"][0].recommendation.input_schema["properties"] == {}


class TestPoolProposals:
    def test_first_occurrence_wins_and_capped(self):
        first = ToolRecommendation(name="getUser", description="first")
        second = ToolRecommendation(name="get_user", description="second")
        extra = [_tool(f"t{i}") for i in range(12)]
        pooled = pool_proposals(
            [
                _perspective("architect", 1.0, 0.5, first, *extra),
                _perspective("security", 0.8, 0.5, second),
            ]
        )
        assert pooled[0].description == "first"
        assert len(pooled) == 10


class TestApplyToolConstraints:
    """Final deterministic gate on the tool list."""

    def test_no_constraints_caps_at_ten(self):
        tools = [_tool(f"t{i}") for i in range(14)]
        assert len(apply_tool_constraints(tools, None)) == 10
        assert len(apply_tool_constraints(tools, ToolConstraints())) == 10

    def test_requested_names_first_with_placeholders(self):
        tools = [_tool("list_issues", "low"), _tool("create_issue", "high")]
        constraints = ToolConstraints(
            requested_count=2,
            requested_names=["createIssue", "close_issue"],
            max_tool_count=4,
        )
        result = apply_tool_constraints(tools, constraints)
        assert [t.name for t in result] == ["create_issue", "close_issue"]
        assert result[1].priority == ToolPriority.HIGH
        assert "requested explicitly" in result[1].description

    def test_remaining_slots_filled_by_priority(self):
        tools = [_tool("a", "low"), _tool("b", "high"), _tool("c", "medium")]
        constraints = ToolConstraints(requested_count=2, max_tool_count=4)
        result = apply_tool_constraints(tools, constraints)
        assert [t.name for t in result] == ["b", "c"]

    def test_max_tool_count_bounds_limit(self):
        tools = [_tool(f"t{i}") for i in range(8)]
        constraints = ToolConstraints(requested_count=6, max_tool_count=3)
        assert len(apply_tool_constraints(tools, constraints)) == 3


class TestEstimatePlanComplexity:
    def test_small_plan_is_simple(self):
        assert estimate_plan_complexity([_tool("a")]) == ToolComplexity.SIMPLE

    def test_mostly_complex_tools(self):
        tools = [
            ToolRecommendation(name=f"t{i}", estimated_complexity="complex") for i in range(3)
        ]
        assert estimate_plan_complexity(tools) == ToolComplexity.COMPLEX

    def test_medium_plan_is_moderate(self):
        assert estimate_plan_complexity([_tool(f"t{i}") for i in range(6)]) == ToolComplexity.MODERATE
