"""Reduction of enriched articles into a single AggregateSnapshot.

Base metrics (category counts, distributions, confidence averages) are always
computed locally. The oracle, when available, only contributes the narrative
layer: its own distribution recount (accepted only if consistent with the
kept-relevant count), dominant drivers, narrative and suggestion. Any oracle
problem falls back to a fully deterministic synthesis, so a run always ends
with a complete snapshot.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from semanticast.core.errors import MalformedOracleResponse
from semanticast.core.logger import logger
from semanticast.core.news_utils import collapse_whitespace
from semanticast.models.datatypes import (
    CATEGORIES,
    DISCLAIMER,
    MAX_DOMINANT_DRIVERS,
    NARRATIVE_MAX_LENGTH,
    PRICE_DIRECTIONS,
    SENTIMENTS,
    SUGGESTION_MAX_LENGTH,
    AggregateSnapshot,
    EnrichedArticle,
    PriceImpactDistribution,
    SentimentDistribution,
)
from semanticast.providers.base import ClassificationOracle, Synthesis

NARRATIVE_EMPTY = "No relevant automotive rare earth articles found."
NARRATIVE_UNAVAILABLE = "Automotive rare earth activity observed; AI summary unavailable."

_ACTION_RE = re.compile(r"^\s*(BUY|HOLD|SELL)\b[\s:\-–—]*(.*)$", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class BaseMetrics:
    """Deterministic metrics that never depend on the oracle."""
    total_articles: int
    total_relevant: int
    category_counts: Dict[str, int]
    avg_relevance_confidence: float
    avg_sentiment_confidence: float
    avg_price_impact_confidence: float
    price_impact_distribution: PriceImpactDistribution
    sentiment_distribution: SentimentDistribution


def compute_base_metrics(enriched: Sequence[EnrichedArticle], total_fetched: int) -> BaseMetrics:
    """Count distributions and average confidences over the enriched set.

    Averages are arithmetic means, ``0.0`` for an empty set. Order-insensitive.
    """
    frame = pd.DataFrame(
        [
            {
                "category": item.relevance.category,
                "direction": item.price_impact.direction,
                "sentiment": item.sentiment.sentiment,
                "relevance_conf": item.relevance.confidence,
                "sentiment_conf": item.sentiment.confidence,
                "impact_conf": item.price_impact.confidence,
            }
            for item in enriched
        ],
        columns=["category", "direction", "sentiment", "relevance_conf", "sentiment_conf", "impact_conf"],
    )

    def counts(column: str, labels: Tuple[str, ...]) -> Dict[str, int]:
        series = frame[column].value_counts().reindex(list(labels), fill_value=0)
        return {label: int(series[label]) for label in labels}

    def mean(column: str) -> float:
        return float(frame[column].mean()) if len(frame) else 0.0

    directions = counts("direction", PRICE_DIRECTIONS)
    sentiments = counts("sentiment", SENTIMENTS)
    return BaseMetrics(
        total_articles=int(total_fetched),
        total_relevant=len(frame),
        category_counts=counts("category", CATEGORIES),
        avg_relevance_confidence=mean("relevance_conf"),
        avg_sentiment_confidence=mean("sentiment_conf"),
        avg_price_impact_confidence=mean("impact_conf"),
        price_impact_distribution=PriceImpactDistribution(**directions),
        sentiment_distribution=SentimentDistribution(**sentiments),
    )


def heuristic_suggestion(
    price_impact: PriceImpactDistribution,
    sentiment: SentimentDistribution,
) -> str:
    """Majority rule: BUY when up and bullish dominate, SELL for the mirror case, else HOLD."""
    action = "HOLD"
    if (
        price_impact.up > price_impact.down
        and sentiment.bullish > sentiment.bearish
        and price_impact.up >= price_impact.down + price_impact.uncertain
    ):
        action = "BUY"
    elif (
        price_impact.down > price_impact.up
        and sentiment.bearish > sentiment.bullish
        and price_impact.down >= price_impact.up + price_impact.uncertain
    ):
        action = "SELL"
    return f"{action}: heuristic summary based on current distributions {DISCLAIMER}"


def normalize_suggestion(raw: Optional[str]) -> Optional[str]:
    """Rewrite an oracle suggestion into ``ACTION: text (disclaimer)`` within the length bound.

    Returns:
        The normalized suggestion, or ``None`` when no leading BUY/HOLD/SELL is found.
    """
    if not raw:
        return None
    match = _ACTION_RE.match(collapse_whitespace(raw))
    if not match:
        return None
    action = match.group(1).upper()
    body = match.group(2).replace(DISCLAIMER, "").strip().rstrip(".;,").strip()
    body = body or "oracle synthesis"

    budget = SUGGESTION_MAX_LENGTH - len(f"{action}: ") - len(DISCLAIMER) - 1
    if len(body) > budget:
        body = body[:budget - 1].rstrip() + "…"
    return f"{action}: {body} {DISCLAIMER}"


class AggregateComputer:
    """Builds the :class:`AggregateSnapshot` for one pipeline run."""

    def aggregate(
        self,
        enriched: Sequence[EnrichedArticle],
        total_fetched: int,
        oracle: Optional[ClassificationOracle] = None,
    ) -> AggregateSnapshot:
        """Reduce the enriched set, optionally asking the oracle for the narrative layer.

        Args:
            enriched: Articles kept by the enricher.
            total_fetched: Number of de-duplicated articles fetched this run.
            oracle: Oracle used for synthesis; ``None`` forces the deterministic path.

        Returns:
            AggregateSnapshot: Schema-valid snapshot without a forecast attached.
        """
        base = compute_base_metrics(enriched, total_fetched)

        if oracle is None or not oracle.supports_synthesis:
            return self._fallback(base, "oracle_disabled")
        if not enriched:
            return self._fallback(base, "no_relevant_articles")

        try:
            synthesis = oracle.synthesize([item.compact() for item in enriched])
        except MalformedOracleResponse as exc:
            logger.warning(f"AggregateComputer: AGGREGATION_FALLBACK (malformed response): {exc}")
            return self._fallback(base, "malformed_response")
        # Any other failure, typed or not, still ends in a complete snapshot
        except Exception as exc:
            logger.warning(f"AggregateComputer: AGGREGATION_FALLBACK (oracle failure): {exc}")
            return self._fallback(base, "oracle_failure")

        return self._from_synthesis(base, synthesis)

    # ── internal ──────────────────────────────────────────────────────────────

    def _from_synthesis(self, base: BaseMetrics, synthesis: Synthesis) -> AggregateSnapshot:
        price_impact = _accept_distribution(
            synthesis.price_impact_distribution, PRICE_DIRECTIONS, base.total_relevant,
            PriceImpactDistribution, base.price_impact_distribution, "price impact",
        )
        sentiment = _accept_distribution(
            synthesis.sentiment_distribution, SENTIMENTS, base.total_relevant,
            SentimentDistribution, base.sentiment_distribution, "sentiment",
        )

        narrative = collapse_whitespace(synthesis.narrative)[:NARRATIVE_MAX_LENGTH] or NARRATIVE_UNAVAILABLE
        suggestion = normalize_suggestion(synthesis.suggestion)
        if suggestion is None:
            logger.info("AggregateComputer: oracle suggestion unusable, using heuristic")
            suggestion = heuristic_suggestion(price_impact, sentiment)

        logger.info("AggregateComputer: synthesis accepted from oracle")
        return self._snapshot(
            base, price_impact, sentiment,
            drivers=_clean_drivers(synthesis.dominant_drivers),
            narrative=narrative,
            suggestion=suggestion,
            source="oracle",
            fallback_reason=None,
        )

    def _fallback(self, base: BaseMetrics, reason: str) -> AggregateSnapshot:
        logger.info(f"AggregateComputer: deterministic synthesis (reason={reason})")
        return self._snapshot(
            base, base.price_impact_distribution, base.sentiment_distribution,
            drivers=[],
            narrative=NARRATIVE_UNAVAILABLE if base.total_relevant else NARRATIVE_EMPTY,
            suggestion=heuristic_suggestion(base.price_impact_distribution, base.sentiment_distribution),
            source="fallback",
            fallback_reason=reason,
        )

    @staticmethod
    def _snapshot(
        base: BaseMetrics,
        price_impact: PriceImpactDistribution,
        sentiment: SentimentDistribution,
        drivers: List[str],
        narrative: str,
        suggestion: str,
        source: str,
        fallback_reason: Optional[str],
    ) -> AggregateSnapshot:
        return AggregateSnapshot(
            total_articles=base.total_articles,
            total_relevant=base.total_relevant,
            magnet_count=base.category_counts["magnet"],
            battery_count=base.category_counts["battery"],
            mixed_count=base.category_counts["mixed"],
            other_count=base.category_counts["other"],
            avg_relevance_confidence=base.avg_relevance_confidence,
            avg_sentiment_confidence=base.avg_sentiment_confidence,
            avg_price_impact_confidence=base.avg_price_impact_confidence,
            price_impact_distribution=price_impact,
            sentiment_distribution=sentiment,
            dominant_drivers=drivers,
            narrative=narrative,
            suggestion=suggestion,
            synthesis_source=source,
            fallback_reason=fallback_reason,
            generated_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
        )


def _accept_distribution(
    raw: Mapping[str, Any],
    labels: Tuple[str, ...],
    total: int,
    factory,
    local,
    name: str,
):
    """Use the oracle recount only when it is a complete, non-negative partition of ``total``."""
    try:
        counts = {label: raw[label] for label in labels}
        if not all(isinstance(v, int) and not isinstance(v, bool) and v >= 0 for v in counts.values()):
            raise ValueError(f"non-integer or negative count in {counts}")
        if sum(counts.values()) != total:
            raise ValueError(f"counts sum to {sum(counts.values())}, expected {total}")
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning(f"AggregateComputer: oracle {name} distribution rejected ({exc}); keeping local counts")
        return local
    return factory(**counts)


def _clean_drivers(drivers: Sequence[str]) -> List[str]:
    cleaned: List[str] = []
    for driver in drivers:
        text = collapse_whitespace(str(driver)).lower()
        if text and text not in cleaned:
            cleaned.append(text)
    return cleaned[:MAX_DOMINANT_DRIVERS]
