"""14-day basket price forecast derived from an aggregate snapshot.

Pipeline:
    AggregateSnapshot → ForecastEngine.predict() → Forecast

Scores:
    sentiment score    = (bullish − bearish) / total sentiment votes, in [-1, 1]
    price-impact score = (up − down) / total impact votes, in [-1, 1]
    combined score     = 0.4 × sentiment + 0.6 × price impact

The predicted move is the baseline volatility scaled by ``1 + 0.8 × combined``
and signed by the combined score. A neutral combined score predicts no move.
Pure and deterministic: no I/O, no failure modes.
"""

import math

from semanticast.models.datatypes import AggregateSnapshot, Forecast

BASELINE_VOLATILITY = 3.2       # % average 14-day fluctuation of the basket
BASKET_REFERENCE_PRICE = 95.0   # USD/kg weighted automotive basket

SENTIMENT_WEIGHT = 0.4
PRICE_IMPACT_WEIGHT = 0.6
MULTIPLIER_SLOPE = 0.8
ARTICLE_SATURATION = 30


class ForecastEngine:
    """Converts an :class:`AggregateSnapshot` into a :class:`Forecast`.

    Args:
        baseline_volatility: 14-day baseline volatility, in percent.
        basket_reference_price: Reference basket price, in USD/kg.
    """

    def __init__(
        self,
        baseline_volatility: float = BASELINE_VOLATILITY,
        basket_reference_price: float = BASKET_REFERENCE_PRICE,
    ) -> None:
        self.baseline_volatility = baseline_volatility
        self.basket_reference_price = basket_reference_price

    def predict(self, snapshot: AggregateSnapshot) -> Forecast:
        """Derive the forecast for ``snapshot``.

        A snapshot without relevant articles yields a zero move with low
        confidence rather than an error.
        """
        sentiment_score = _score(
            snapshot.sentiment_distribution.bullish - snapshot.sentiment_distribution.bearish,
            snapshot.sentiment_distribution.total,
        )
        impact_score = _score(
            snapshot.price_impact_distribution.up - snapshot.price_impact_distribution.down,
            snapshot.price_impact_distribution.total,
        )
        combined = SENTIMENT_WEIGHT * sentiment_score + PRICE_IMPACT_WEIGHT * impact_score

        multiplier = 1.0 + MULTIPLIER_SLOPE * combined
        change_percent = self.baseline_volatility * multiplier * _sign(combined)
        change_usd = self.basket_reference_price * change_percent / 100
        price_target = self.basket_reference_price + change_usd

        return Forecast(
            predicted_change_percent=_round(change_percent, 2),
            predicted_change_usd=_round(change_usd, 2),
            confidence=_round(self._confidence(snapshot), 3),
            baseline_volatility=self.baseline_volatility,
            news_impact_multiplier=_round(multiplier, 2),
            price_target=_round(price_target, 2),
            current_basket_price=self.basket_reference_price,
            reasoning=_reasoning(snapshot, sentiment_score, impact_score, combined),
        )

    @staticmethod
    def _confidence(snapshot: AggregateSnapshot) -> float:
        """0.5 × mean judgment confidence + 0.3 × coverage + 0.2 × certainty."""
        avg = (
            snapshot.avg_relevance_confidence
            + snapshot.avg_sentiment_confidence
            + snapshot.avg_price_impact_confidence
        ) / 3
        n = snapshot.total_relevant
        coverage = min(1.0, n / ARTICLE_SATURATION)
        certainty = 1 - snapshot.price_impact_distribution.uncertain / n if n > 0 else 0.0
        return max(0.0, min(1.0, 0.5 * avg + 0.3 * coverage + 0.2 * certainty))


# ── helpers ───────────────────────────────────────────────────────────────────

def _score(net: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return max(-1.0, min(1.0, net / total))


def _sign(value: float) -> int:
    return (value > 0) - (value < 0)


def _round(value: float, digits: int) -> float:
    """Round half away from zero, so 0.125 → 0.13 and -0.125 → -0.13."""
    scale = 10 ** digits
    return math.copysign(math.floor(abs(value) * scale + 0.5) / scale, value) + 0.0


def _reasoning(
    snapshot: AggregateSnapshot,
    sentiment_score: float,
    impact_score: float,
    combined: float,
) -> str:
    if combined > 0.1:
        direction = "upward"
    elif combined < -0.1:
        direction = "downward"
    else:
        direction = "stable"

    magnitude = abs(combined)
    strength = "strong" if magnitude > 0.5 else "moderate" if magnitude > 0.2 else "weak"

    if sentiment_score > 0.1:
        sentiment_desc = "bullish sentiment"
    elif sentiment_score < -0.1:
        sentiment_desc = "bearish sentiment"
    else:
        sentiment_desc = "neutral sentiment"

    if impact_score > 0.1:
        impact_desc = "supply risks"
    elif impact_score < -0.1:
        impact_desc = "oversupply signals"
    else:
        impact_desc = "balanced supply-demand"

    drivers = ", ".join(snapshot.dominant_drivers[:3]) or "none identified"
    return (
        f"{strength.capitalize()} {direction} pressure driven by {sentiment_desc} and {impact_desc}. "
        f"Based on {snapshot.total_relevant} automotive-relevant articles "
        f"({snapshot.magnet_count} magnet, {snapshot.battery_count} battery). "
        f"Key drivers: {drivers}."
    )
