"""Pipeline engine: orchestrates fetch → enrich → aggregate → forecast → persist.

Flow per run:
  1. Fetch    — SourceFetcher over every configured query and source
  2. Enrich   — ArticleEnricher (relevance, sentiment, price impact per article)
  3. Aggregate — AggregateComputer (deterministic metrics + optional synthesis)
  4. Forecast — ForecastEngine.predict(snapshot)
  5. Persist  — SnapshotStore.save(), atomically, as the last step

Prediction-only replay skips 1-3 and re-derives the forecast from the most
recently persisted snapshot.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from pathlib import Path
from typing import List, Optional

from semanticast.core.cache import SQLiteCache
from semanticast.core.config import PipelineSettings
from semanticast.core.errors import ConfigError
from semanticast.core.logger import logger
from semanticast.models.datatypes import AggregateSnapshot, Forecast
from semanticast.pipeline.aggregator import AggregateComputer
from semanticast.pipeline.enricher import ArticleEnricher, EnrichmentStats
from semanticast.pipeline.forecast import ForecastEngine
from semanticast.pipeline.store import SnapshotStore
from semanticast.providers.base import ClassificationOracle, NewsSource
from semanticast.providers.news import GoogleNewsSource, NewsApiSource, SourceFetcher


@dataclass
class RunResult:
    """Outcome of one pipeline invocation."""
    snapshot: AggregateSnapshot
    forecast: Forecast
    snapshot_path: Optional[Path] = None
    failed_queries: int = 0
    enrichment: EnrichmentStats = field(default_factory=EnrichmentStats)
    replayed: bool = False


class PipelineEngine:
    """Orchestrates the full ingestion-to-forecast pipeline.

    Args:
        settings: Validated :class:`PipelineSettings`.
        sources: Fetch sources; built from ``settings`` when omitted.
        oracle: Classification oracle; built from ``settings`` when omitted.
            Use ``build_oracle=False`` with no oracle to run with the
            capability disabled.
        build_oracle: Whether to construct an oracle from ``settings`` when
            ``oracle`` is not given.
    """

    def __init__(
        self,
        settings: PipelineSettings,
        sources: Optional[List[NewsSource]] = None,
        oracle: Optional[ClassificationOracle] = None,
        build_oracle: bool = True,
    ) -> None:
        self.settings = settings
        self._sources = sources
        self.oracle = oracle if oracle is not None or not build_oracle else build_oracle_from(settings)

        self.enricher = ArticleEnricher(concurrency_limit=settings.concurrency)
        self.aggregator = AggregateComputer()
        self.forecaster = ForecastEngine(
            baseline_volatility=settings.baseline_volatility,
            basket_reference_price=settings.basket_reference_price,
        )
        self.store = SnapshotStore(settings.output_dir)

    # ── public ────────────────────────────────────────────────────────────────

    def run(self, run_date: Optional[date] = None) -> RunResult:
        """Run every stage and persist the snapshot.

        Returns:
            RunResult: The persisted snapshot (forecast attached) and run accounting.
        """
        run_date = run_date or date.today()
        from_date = (
            (run_date - timedelta(days=self.settings.lookback_days)).isoformat()
            if self.settings.lookback_days else None
        )

        fetcher = SourceFetcher(self.sources, from_date=from_date)
        logger.info(
            f"PipelineEngine: {len(self.settings.queries)} queries × {len(fetcher.sources)} sources "
            f"(from={from_date or 'any'}, oracle={'on' if self.oracle else 'off'})"
        )
        articles = fetcher.fetch_all(
            self.settings.queries,
            per_query_page_limit=self.settings.per_query_page_limit,
            page_size=self.settings.page_size,
        )

        enriched = self.enricher.enrich(articles, self.oracle, self.settings.concurrency)
        snapshot = self.aggregator.aggregate(enriched, total_fetched=len(articles), oracle=self.oracle)

        forecast = self.forecaster.predict(snapshot)
        snapshot = snapshot.with_forecast(forecast)
        path = self.store.save(snapshot, run_date)

        _log_forecast(snapshot, forecast)
        return RunResult(
            snapshot=snapshot,
            forecast=forecast,
            snapshot_path=path,
            failed_queries=len(fetcher.failures),
            enrichment=self.enricher.stats,
        )

    def predict_only(self) -> RunResult:
        """Re-derive the forecast from the latest persisted snapshot. Nothing is written.

        Raises:
            NoPriorSnapshot: If no snapshot has been persisted yet.
            SnapshotFormatError: If the latest snapshot cannot be parsed.
        """
        path = self.store.latest_path()
        snapshot = self.store.load_latest()
        forecast = self.forecaster.predict(snapshot)

        if snapshot.price_prediction is not None and snapshot.price_prediction != forecast:
            logger.info("PipelineEngine: recomputed forecast differs from the persisted one (constants changed?)")

        snapshot = snapshot.with_forecast(forecast)
        _log_forecast(snapshot, forecast)
        return RunResult(snapshot=snapshot, forecast=forecast, snapshot_path=path, replayed=True)

    @property
    def sources(self) -> List[NewsSource]:
        if self._sources is None:
            self._sources = build_sources(self.settings)
        return self._sources


# ── builders ──────────────────────────────────────────────────────────────────

def build_sources(settings: PipelineSettings) -> List[NewsSource]:
    cache = SQLiteCache(settings.cache_path) if settings.cache_enabled else None
    sources: List[NewsSource] = []
    if settings.news_api_key:
        sources.append(NewsApiSource(api_key=settings.news_api_key, cache_instance=cache))
    if settings.google_news:
        sources.append(GoogleNewsSource(cache_instance=cache, lookback_days=settings.lookback_days))
    if not sources:
        raise ConfigError("no usable fetch source (set NEWS_API_KEY or enable fetch.google_news)")
    return sources


def build_oracle_from(settings: PipelineSettings) -> Optional[ClassificationOracle]:
    if not settings.oracle_enabled:
        logger.warning("PipelineEngine: OPENAI_API_KEY not set — oracle disabled")
        return None

    # Imported lazily so runs without an oracle never load the client stack
    from semanticast.providers.oracle import OpenAIOracle

    sentiment_provider = None
    if settings.sentiment_backend == "finbert":
        from semanticast.providers.sentiment import FinBERTProvider
        sentiment_provider = FinBERTProvider()

    return OpenAIOracle(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        base_url=settings.openai_base_url,
        timeout=settings.oracle_timeout_seconds,
        sentiment_provider=sentiment_provider,
    )


def _log_forecast(snapshot: AggregateSnapshot, forecast: Forecast) -> None:
    logger.info(
        f"PipelineEngine: {snapshot.total_relevant}/{snapshot.total_articles} relevant "
        f"(synthesis={snapshot.synthesis_source}"
        f"{', reason=' + snapshot.fallback_reason if snapshot.fallback_reason else ''})"
    )
    logger.info(
        f"PipelineEngine: 14d forecast {forecast.predicted_change_percent:+.2f}% "
        f"({forecast.predicted_change_usd:+.2f} USD/kg → {forecast.price_target:.2f}), "
        f"confidence {forecast.confidence:.3f}"
    )
    logger.info(f"PipelineEngine: {snapshot.suggestion}")
