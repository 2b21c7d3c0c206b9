"""Tests for snapshot aggregation and the deterministic fallback."""
import pytest

from semanticast.core.errors import MalformedOracleResponse, OracleFailure
from semanticast.models.datatypes import (
    DISCLAIMER,
    NARRATIVE_MAX_LENGTH,
    SUGGESTION_MAX_LENGTH,
    PriceImpactDistribution,
    SentimentDistribution,
)
from semanticast.pipeline.aggregator import (
    NARRATIVE_EMPTY,
    NARRATIVE_UNAVAILABLE,
    AggregateComputer,
    compute_base_metrics,
    heuristic_suggestion,
    normalize_suggestion,
)
from semanticast.providers.base import Synthesis


@pytest.fixture
def mixed_set(enriched_factory):
    """Five kept articles with mixed labels and confidences."""
    return [
        enriched_factory(1, category="magnet", direction="up", sentiment="bullish", confidence=0.9),
        enriched_factory(2, category="magnet", direction="up", sentiment="bullish", confidence=0.7),
        enriched_factory(3, category="battery", direction="down", sentiment="bearish", confidence=0.6),
        enriched_factory(4, category="mixed", direction="uncertain", sentiment="neutral", confidence=0.5),
        enriched_factory(5, category="battery", direction="up", sentiment="neutral", confidence=0.8),
    ]


class TestBaseMetrics:
    """Tests for compute_base_metrics."""

    def test_counts_and_averages(self, mixed_set):
        base = compute_base_metrics(mixed_set, total_fetched=12)

        assert base.total_articles == 12
        assert base.total_relevant == 5
        assert base.category_counts == {"magnet": 2, "battery": 2, "mixed": 1, "other": 0}
        assert base.price_impact_distribution == PriceImpactDistribution(up=3, down=1, uncertain=1)
        assert base.sentiment_distribution == SentimentDistribution(bullish=2, bearish=1, neutral=2)
        assert base.avg_relevance_confidence == pytest.approx(0.7)
        assert base.avg_sentiment_confidence == pytest.approx(0.7)
        assert base.avg_price_impact_confidence == pytest.approx(0.7)

    def test_order_insensitive(self, mixed_set):
        forward = compute_base_metrics(mixed_set, 5)
        backward = compute_base_metrics(list(reversed(mixed_set)), 5)

        assert forward.category_counts == backward.category_counts
        assert forward.price_impact_distribution == backward.price_impact_distribution
        assert forward.sentiment_distribution == backward.sentiment_distribution
        assert forward.avg_price_impact_confidence == pytest.approx(backward.avg_price_impact_confidence)

    def test_empty_set(self):
        base = compute_base_metrics([], total_fetched=3)
        assert base.total_relevant == 0
        assert base.avg_relevance_confidence == 0.0
        assert base.price_impact_distribution.total == 0
        assert isinstance(base.category_counts["magnet"], int)


class TestFallback:
    """Tests for the deterministic synthesis path."""

    def test_oracle_disabled(self, mixed_set):
        snapshot = AggregateComputer().aggregate(mixed_set, total_fetched=9, oracle=None)

        assert snapshot.synthesis_source == "fallback"
        assert snapshot.fallback_reason == "oracle_disabled"
        assert snapshot.narrative == NARRATIVE_UNAVAILABLE
        assert snapshot.dominant_drivers == []
        assert snapshot.price_impact_distribution.total == snapshot.total_relevant == 5

    def test_no_relevant_articles(self, stub_oracle_cls):
        oracle = stub_oracle_cls(synthesis=Synthesis(narrative="should not be used"))
        snapshot = AggregateComputer().aggregate([], total_fetched=7, oracle=oracle)

        assert snapshot.narrative == NARRATIVE_EMPTY
        assert snapshot.fallback_reason == "no_relevant_articles"
        assert snapshot.suggestion.startswith("HOLD:")
        assert oracle.synthesis_items is None

    @pytest.mark.parametrize("error, reason", [
        (OracleFailure("timeout"), "oracle_failure"),
        (MalformedOracleResponse("not json"), "malformed_response"),
    ])
    def test_oracle_errors_fall_back(self, mixed_set, stub_oracle_cls, error, reason):
        snapshot = AggregateComputer().aggregate(mixed_set, 5, oracle=stub_oracle_cls(synthesis=error))

        assert snapshot.synthesis_source == "fallback"
        assert snapshot.fallback_reason == reason
        assert snapshot.narrative == NARRATIVE_UNAVAILABLE
        assert snapshot.suggestion.endswith(DISCLAIMER)

    def test_untyped_synthesis_exception_falls_back(self, mixed_set, stub_oracle_cls):
        oracle = stub_oracle_cls(synthesis=RuntimeError("client bug"))
        snapshot = AggregateComputer().aggregate(mixed_set, 5, oracle=oracle)

        assert snapshot.fallback_reason == "oracle_failure"
        assert snapshot.synthesis_source == "fallback"
        assert snapshot.total_relevant == 5
        assert snapshot.suggestion.endswith(DISCLAIMER)


class TestOracleSynthesis:
    """Tests for accepting or rejecting the oracle's synthesis."""

    def _synthesis(self, **overrides):
        values = dict(
            price_impact_distribution={"up": 4, "down": 1, "uncertain": 0},
            sentiment_distribution={"bullish": 3, "bearish": 1, "neutral": 1},
            dominant_drivers=["Export Controls", "export controls", "EV demand"],
            narrative="Magnet supply\n tightens   as export controls bite.",
            suggestion="buy - supply squeeze favours producers",
        )
        values.update(overrides)
        return Synthesis(**values)

    def test_consistent_synthesis_accepted(self, mixed_set, stub_oracle_cls):
        oracle = stub_oracle_cls(synthesis=self._synthesis())
        snapshot = AggregateComputer().aggregate(mixed_set, 5, oracle=oracle)

        assert snapshot.synthesis_source == "oracle"
        assert snapshot.fallback_reason is None
        assert snapshot.price_impact_distribution == PriceImpactDistribution(up=4, down=1, uncertain=0)
        assert snapshot.dominant_drivers == ["export controls", "ev demand"]
        assert snapshot.narrative == "Magnet supply tightens as export controls bite."
        assert snapshot.suggestion == f"BUY: supply squeeze favours producers {DISCLAIMER}"
        assert oracle.synthesis_items[0] == {"cat": "magnet", "pc": "up", "pd": ["export controls"], "sc": "bullish"}

    @pytest.mark.parametrize("bad", [
        {"up": 9, "down": 1, "uncertain": 0},       # wrong sum
        {"up": 6, "down": -1, "uncertain": 0},      # negative bucket
        {"up": 2.5, "down": 2.5, "uncertain": 0},   # non-integer
        {"up": 5, "down": 0},                       # missing bucket
    ])
    def test_inconsistent_distribution_rejected(self, mixed_set, stub_oracle_cls, bad):
        oracle = stub_oracle_cls(synthesis=self._synthesis(price_impact_distribution=bad))
        snapshot = AggregateComputer().aggregate(mixed_set, 5, oracle=oracle)

        assert snapshot.price_impact_distribution == PriceImpactDistribution(up=3, down=1, uncertain=1)
        # the other distribution is still taken from the oracle
        assert snapshot.sentiment_distribution == SentimentDistribution(bullish=3, bearish=1, neutral=1)

    def test_bounds_enforced(self, mixed_set, stub_oracle_cls):
        oracle = stub_oracle_cls(synthesis=self._synthesis(
            narrative="word " * 200,
            dominant_drivers=[f"driver {i}" for i in range(12)],
            suggestion="HOLD: " + "x" * 300,
        ))
        snapshot = AggregateComputer().aggregate(mixed_set, 5, oracle=oracle)

        assert len(snapshot.narrative) <= NARRATIVE_MAX_LENGTH
        assert len(snapshot.dominant_drivers) == 8
        assert len(snapshot.suggestion) <= SUGGESTION_MAX_LENGTH
        assert snapshot.suggestion.startswith("HOLD: ")
        assert snapshot.suggestion.endswith(DISCLAIMER)

    def test_unusable_suggestion_uses_heuristic(self, mixed_set, stub_oracle_cls):
        oracle = stub_oracle_cls(synthesis=self._synthesis(suggestion="Consider accumulating."))
        snapshot = AggregateComputer().aggregate(mixed_set, 5, oracle=oracle)

        assert snapshot.synthesis_source == "oracle"
        assert snapshot.suggestion == heuristic_suggestion(
            snapshot.price_impact_distribution, snapshot.sentiment_distribution
        )

    def test_empty_narrative_replaced(self, mixed_set, stub_oracle_cls):
        oracle = stub_oracle_cls(synthesis=self._synthesis(narrative="   "))
        snapshot = AggregateComputer().aggregate(mixed_set, 5, oracle=oracle)
        assert snapshot.narrative == NARRATIVE_UNAVAILABLE


class TestSuggestions:
    """Tests for heuristic_suggestion and normalize_suggestion."""

    @pytest.mark.parametrize("impact, sentiment, action", [
        ((6, 1, 1), (5, 1, 2), "BUY"),
        ((1, 6, 1), (1, 5, 2), "SELL"),
        ((3, 1, 3), (5, 1, 1), "HOLD"),   # up < down + uncertain
        ((4, 1, 0), (1, 3, 1), "HOLD"),   # sentiment disagrees
        ((0, 0, 0), (0, 0, 0), "HOLD"),
    ])
    def test_heuristic(self, impact, sentiment, action):
        text = heuristic_suggestion(PriceImpactDistribution(*impact), SentimentDistribution(*sentiment))
        assert text == f"{action}: heuristic summary based on current distributions {DISCLAIMER}"

    def test_normalize_keeps_single_disclaimer(self):
        text = normalize_suggestion(f"SELL: oversupply from new refineries. {DISCLAIMER}")
        assert text == f"SELL: oversupply from new refineries {DISCLAIMER}"
        assert text.count(DISCLAIMER) == 1

    @pytest.mark.parametrize("raw", [None, "", "Maybe buy later", "BUYING opportunity"])
    def test_normalize_rejects_missing_action(self, raw):
        assert normalize_suggestion(raw) is None
