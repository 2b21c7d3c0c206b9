"""Tests for the 14-day forecast derivation."""
from dataclasses import replace

import pytest

from semanticast.models.datatypes import PriceImpactDistribution, SentimentDistribution
from semanticast.pipeline.forecast import ForecastEngine, _round


class TestForecastEngine:
    """Tests for ForecastEngine.predict."""

    def test_worked_example(self, worked_example_snapshot):
        forecast = ForecastEngine().predict(worked_example_snapshot)

        assert forecast.predicted_change_percent == 4.67
        assert forecast.news_impact_multiplier == 1.46
        assert forecast.predicted_change_usd == 4.44
        assert forecast.price_target == 99.44
        assert forecast.confidence == pytest.approx(0.63)
        assert forecast.baseline_volatility == 3.2
        assert forecast.current_basket_price == 95.0

    def test_worked_example_reasoning(self, worked_example_snapshot):
        forecast = ForecastEngine().predict(worked_example_snapshot)
        assert forecast.reasoning == (
            "Strong upward pressure driven by bullish sentiment and supply risks. "
            "Based on 8 automotive-relevant articles (5 magnet, 2 battery). "
            "Key drivers: export controls, ev demand, magnet shortage."
        )

    def test_deterministic(self, worked_example_snapshot):
        engine = ForecastEngine()
        assert engine.predict(worked_example_snapshot) == engine.predict(worked_example_snapshot)

    def test_bearish_mirror(self, worked_example_snapshot):
        snapshot = replace(
            worked_example_snapshot,
            price_impact_distribution=PriceImpactDistribution(up=1, down=6, uncertain=1),
            sentiment_distribution=SentimentDistribution(bullish=1, bearish=5, neutral=2),
        )
        forecast = ForecastEngine().predict(snapshot)

        assert forecast.news_impact_multiplier == 0.54
        assert forecast.predicted_change_percent == -1.73
        assert forecast.predicted_change_usd == -1.64
        assert forecast.price_target == 93.36
        assert forecast.reasoning.startswith(
            "Strong downward pressure driven by bearish sentiment and oversupply signals."
        )

    def test_zero_relevant_yields_neutral_low_confidence(self, empty_snapshot):
        forecast = ForecastEngine().predict(empty_snapshot)

        assert forecast.predicted_change_percent == 0.0
        assert forecast.predicted_change_usd == 0.0
        assert forecast.price_target == 95.0
        assert forecast.news_impact_multiplier == 1.0
        assert forecast.confidence == 0.0
        assert forecast.reasoning.endswith("Key drivers: none identified.")

    def test_balanced_votes_predict_no_move(self, worked_example_snapshot):
        snapshot = replace(
            worked_example_snapshot,
            price_impact_distribution=PriceImpactDistribution(up=3, down=3, uncertain=2),
            sentiment_distribution=SentimentDistribution(bullish=2, bearish=2, neutral=4),
        )
        forecast = ForecastEngine().predict(snapshot)

        assert forecast.predicted_change_percent == 0.0
        assert forecast.price_target == 95.0
        assert "Weak stable pressure" in forecast.reasoning

    def test_configured_constants(self, worked_example_snapshot):
        forecast = ForecastEngine(baseline_volatility=5.0, basket_reference_price=200.0).predict(
            worked_example_snapshot
        )
        assert forecast.predicted_change_percent == 7.3
        assert forecast.predicted_change_usd == 14.6
        assert forecast.price_target == 214.6

    def test_confidence_saturates_with_article_count(self, worked_example_snapshot):
        snapshot = replace(
            worked_example_snapshot,
            total_articles=100,
            total_relevant=60,
            price_impact_distribution=PriceImpactDistribution(up=60, down=0, uncertain=0),
            sentiment_distribution=SentimentDistribution(bullish=60, bearish=0, neutral=0),
            avg_relevance_confidence=1.0,
            avg_sentiment_confidence=1.0,
            avg_price_impact_confidence=1.0,
        )
        assert ForecastEngine().predict(snapshot).confidence == 1.0


class TestRounding:
    def test_half_rounds_away_from_zero(self):
        assert _round(0.125, 2) == 0.13
        assert _round(-0.125, 2) == -0.13
