"""Bounded-concurrency per-article enrichment.

Flow per group of ``concurrency_limit`` articles:
  1. Relevance — one oracle call per article, all dispatched together.
     A failing call drops its article; an irrelevant or non-automotive
     verdict filters it.
  2. Sentiment + price impact — two oracle calls per surviving article,
     all dispatched together. A failing call degrades to a conservative
     default instead of dropping the confirmed-relevant article.
  3. The group's results are appended to the output only after the whole
     group has resolved.

Groups run one after another, so wall time is bounded by
``ceil(n / concurrency_limit)`` pairs of oracle round-trips.
"""

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from semanticast.core.errors import MalformedOracleResponse
from semanticast.core.logger import logger
from semanticast.models.datatypes import (
    Article,
    EnrichedArticle,
    PriceImpactAssessment,
    RelevanceAssessment,
    SentimentClassification,
)
from semanticast.providers.base import ClassificationOracle

DEFAULT_CONCURRENCY = 10

T = TypeVar("T")


def default_sentiment() -> SentimentClassification:
    """Conservative judgment used when sentiment classification fails."""
    return SentimentClassification(sentiment="neutral", impact="flat", confidence=0.3)


def default_price_impact(reason: str = "oracle_error") -> PriceImpactAssessment:
    """Conservative judgment used when price-impact assessment fails."""
    return PriceImpactAssessment(direction="uncertain", confidence=0.2, drivers=[], reasoning=reason)


@dataclass
class EnrichmentStats:
    """Per-run accounting of what happened to each input article."""
    total: int = 0
    kept: int = 0
    dropped_failed: int = 0
    filtered_irrelevant: int = 0
    degraded_sentiment: int = 0
    degraded_price_impact: int = 0
    not_assessed: int = 0


class ArticleEnricher:
    """Drives the oracle over an article set with bounded parallelism.

    Args:
        concurrency_limit: Default group size (overridable per call).
    """

    def __init__(self, concurrency_limit: int = DEFAULT_CONCURRENCY) -> None:
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be >= 1")
        self.concurrency_limit = concurrency_limit
        self.stats = EnrichmentStats()

    # ── public ────────────────────────────────────────────────────────────────

    def enrich(
        self,
        articles: Sequence[Article],
        oracle: Optional[ClassificationOracle],
        concurrency_limit: Optional[int] = None,
    ) -> List[EnrichedArticle]:
        """Enrich every article that passes the relevance + automotive filter.

        Args:
            articles: De-duplicated fetched articles.
            oracle: Classification oracle, or ``None`` when the capability is disabled.
            concurrency_limit: Group size; defaults to the constructor value.

        Returns:
            List[EnrichedArticle]: Kept articles in group-sequential order.
        """
        limit = concurrency_limit or self.concurrency_limit
        articles = list(articles)
        self.stats = EnrichmentStats(total=len(articles))

        if oracle is None:
            # Relevance cannot be established without the oracle: nothing is kept,
            # and nothing is counted as a failure.
            self.stats.not_assessed = len(articles)
            logger.warning(
                f"ArticleEnricher: ORACLE_DISABLED — {len(articles)} articles not assessed"
            )
            return []

        results: List[EnrichedArticle] = []
        group_count = (len(articles) + limit - 1) // limit

        # Phase 2 dispatches two calls per article, hence 2 × limit workers.
        with ThreadPoolExecutor(max_workers=2 * limit, thread_name_prefix="enrich") as pool:
            for index in range(group_count):
                group = articles[index * limit:(index + 1) * limit]
                logger.info(
                    f"ArticleEnricher: group {index + 1}/{group_count} "
                    f"(articles {index * limit + 1}-{index * limit + len(group)})"
                )
                results.extend(self._enrich_group(group, oracle, pool))

        self.stats.kept = len(results)
        logger.info(
            f"ArticleEnricher: kept {self.stats.kept}/{self.stats.total} "
            f"(failed={self.stats.dropped_failed}, filtered={self.stats.filtered_irrelevant}, "
            f"degraded sentiment={self.stats.degraded_sentiment}, "
            f"degraded impact={self.stats.degraded_price_impact})"
        )
        return results

    # ── internal ──────────────────────────────────────────────────────────────

    def _enrich_group(
        self,
        group: List[Article],
        oracle: ClassificationOracle,
        pool: ThreadPoolExecutor,
    ) -> List[EnrichedArticle]:
        relevance_futures = [pool.submit(oracle.assess_relevance, article) for article in group]

        relevant: Dict[int, RelevanceAssessment] = {}
        for slot, (article, future) in enumerate(zip(group, relevance_futures)):
            assessment = self._relevance_result(article, future)
            if assessment is not None:
                relevant[slot] = assessment

        judgment_futures = {
            slot: (
                pool.submit(oracle.classify_sentiment, group[slot].text),
                pool.submit(oracle.assess_price_impact, group[slot]),
            )
            for slot in relevant
        }

        enriched: List[EnrichedArticle] = []
        for slot, (sentiment_future, impact_future) in judgment_futures.items():
            article = group[slot]
            sentiment = self._resolve(
                sentiment_future, article, "sentiment", "degraded_sentiment",
                lambda _code: default_sentiment(),
            )
            price_impact = self._resolve(
                impact_future, article, "price impact", "degraded_price_impact",
                default_price_impact,
            )
            enriched.append(EnrichedArticle(
                article=article,
                relevance=relevant[slot],
                sentiment=sentiment,
                price_impact=price_impact,
            ))
        return enriched

    def _relevance_result(
        self,
        article: Article,
        future: "Future[RelevanceAssessment]",
    ) -> Optional[RelevanceAssessment]:
        """Return the assessment when the article is kept, ``None`` when dropped or filtered."""
        try:
            assessment = future.result()
        except Exception as exc:
            self.stats.dropped_failed += 1
            logger.warning(
                f"ArticleEnricher: {_reason_code(exc)} during relevance — dropped "
                f"{article.title[:60]!r}: {exc}"
            )
            return None

        if not assessment.keeps_article:
            self.stats.filtered_irrelevant += 1
            logger.debug(f"ArticleEnricher: filtered {article.title[:60]!r}")
            return None
        return assessment

    def _resolve(
        self,
        future: "Future[T]",
        article: Article,
        label: str,
        counter: str,
        fallback: Callable[[str], T],
    ) -> T:
        """Return the judgment, or the fallback after bumping the ``counter`` field of the stats."""
        try:
            return future.result()
        except Exception as exc:
            setattr(self.stats, counter, getattr(self.stats, counter) + 1)
            code = _reason_code(exc)
            logger.warning(
                f"ArticleEnricher: {code} during {label} — default used for "
                f"{article.title[:60]!r}: {exc}"
            )
            return fallback(code.lower())


def _reason_code(exc: Exception) -> str:
    # Non-oracle exceptions (bugs in a stub, unexpected client errors) count as failures too
    if isinstance(exc, MalformedOracleResponse):
        return "MALFORMED_ORACLE_RESPONSE"
    return "ORACLE_FAILURE"
