"""Tests for the research result cache."""

from unittest.mock import patch

from src.domain.entities.research import (
    InputClassification,
    InputKind,
    ResearchResult,
    SynthesizedPlan,
)
from src.infrastructure.agents.research_cache import ResearchCache


def _result(summary: str) -> ResearchResult:
    return ResearchResult(
        classification=InputClassification(kind=InputKind.SERVICE_NAME, confidence=0.9, service_name=summary),
        synthesized_plan=SynthesizedPlan(summary=summary),
        confidence=0.7,
    )


class TestResearchCache:
    def test_hit_and_miss_counted(self):
        cache = ResearchCache()
        cache.set("service_name:stripe", _result("Stripe"))

        assert cache.get("service_name:stripe").synthesized_plan.summary == "Stripe"
        assert cache.get("service_name:paypal") is None
        stats = cache.stats()
        assert (stats["hits"], stats["misses"], stats["hit_rate"]) == (1, 1, 0.5)

    def test_expired_entry_dropped(self):
        cache = ResearchCache(ttl=60)
        with patch("src.infrastructure.agents.research_cache.time.time", return_value=1000.0):
            cache.set("k", _result("old"))
        with patch("src.infrastructure.agents.research_cache.time.time", return_value=1061.0):
            assert cache.get("k") is None
        assert cache.stats()["size"] == 0

    def test_least_recently_used_evicted(self):
        cache = ResearchCache(max_entries=2)
        cache.set("a", _result("a"))
        cache.set("b", _result("b"))
        cache.get("a")
        cache.set("c", _result("c"))

        assert cache.get("b") is None
        assert cache.get("a") is not None
        assert cache.get("c") is not None

    def test_classification_key_is_case_insensitive(self):
        first = InputClassification(kind=InputKind.SERVICE_NAME, confidence=0.9, service_name="Stripe")
        second = InputClassification(kind=InputKind.SERVICE_NAME, confidence=0.6, service_name="stripe")
        assert first.cache_key == second.cache_key == "service_name:stripe"

    def test_clear(self):
        cache = ResearchCache()
        cache.set("a", _result("a"))
        cache.get("a")
        cache.clear()
        assert cache.stats() == {"size": 0, "max_entries": 100, "hits": 0, "misses": 0, "hit_rate": 0.0}
