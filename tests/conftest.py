"""
Pytest configuration and shared fixtures for semanticast tests.

Usage:
    @pytest.fixture functions are automatically available to all tests.
    No test touches the network: sources and the oracle are in-memory stubs.
"""
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pytest

from semanticast.core.config import PipelineSettings
from semanticast.core.errors import OracleFailure
from semanticast.models.datatypes import (
    AggregateSnapshot,
    Article,
    EnrichedArticle,
    PriceImpactAssessment,
    PriceImpactDistribution,
    RelevanceAssessment,
    SentimentClassification,
    SentimentDistribution,
)
from semanticast.providers.base import ArticlePage, ClassificationOracle, NewsSource, Synthesis

# Captured before the autouse fixture patches time.sleep for the backoff decorator
_real_sleep = time.sleep


# =============================================================================
# Builders
# =============================================================================

def make_article(n: int, title: Optional[str] = None, url: Optional[str] = None) -> Article:
    return Article(
        id=url or f"https://news.example.com/story-{n}",
        url=url or f"https://news.example.com/story-{n}",
        source="Example Wire",
        title=title or f"Story {n}: neodymium magnet supply for EV motors",
        description="Rare earth supply update.",
        published_at=f"2026-10-{(n % 28) + 1:02d}T08:00:00Z",
    )


def make_relevance(category: str = "magnet", relevant: bool = True, automotive: bool = True) -> RelevanceAssessment:
    return RelevanceAssessment(
        relevant=relevant,
        confidence=0.8,
        matched_terms=["neodymium"],
        automotive_relevant=automotive,
        automotive_context_terms=["ev"] if automotive else [],
        category=category,
        usage="traction motors" if automotive else None,
    )


def make_enriched(
    n: int,
    category: str = "magnet",
    direction: str = "up",
    sentiment: str = "bullish",
    confidence: float = 0.8,
    drivers: Sequence[str] = ("export controls",),
) -> EnrichedArticle:
    relevance = make_relevance(category)
    relevance.confidence = confidence
    return EnrichedArticle(
        article=make_article(n),
        relevance=relevance,
        sentiment=SentimentClassification(sentiment=sentiment, impact="flat", confidence=confidence),
        price_impact=PriceImpactAssessment(direction=direction, confidence=confidence, drivers=list(drivers)),
    )


# =============================================================================
# Stub oracle
# =============================================================================

Outcome = Union[Any, Exception]


class StubOracle(ClassificationOracle):
    """Scriptable in-memory oracle.

    Per-article outcomes are looked up by article id (``*_by_id``); anything not
    scripted gets the default judgment. An ``Exception`` value is raised instead
    of returned. ``delay`` sleeps inside each call so concurrency can be observed.
    """

    def __init__(
        self,
        relevance_by_id: Optional[Dict[str, Outcome]] = None,
        sentiment_by_text: Optional[Callable[[str], Outcome]] = None,
        price_impact_by_id: Optional[Dict[str, Outcome]] = None,
        synthesis: Optional[Outcome] = None,
        delay: float = 0.0,
    ) -> None:
        self.relevance_by_id = relevance_by_id or {}
        self.sentiment_by_text = sentiment_by_text
        self.price_impact_by_id = price_impact_by_id or {}
        self.synthesis = synthesis
        self.delay = delay
        self.calls: List[str] = []
        self.synthesis_items: Optional[List[Dict[str, Any]]] = None
        self._lock = threading.Lock()
        self._in_flight = 0
        self.max_in_flight = 0

    @property
    def supports_synthesis(self) -> bool:
        return self.synthesis is not None

    def _enter(self, label: str) -> None:
        with self._lock:
            self.calls.append(label)
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
        if self.delay:
            _real_sleep(self.delay)

    def _leave(self) -> None:
        with self._lock:
            self._in_flight -= 1

    @staticmethod
    def _deliver(outcome: Outcome) -> Any:
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def assess_relevance(self, article: Article) -> RelevanceAssessment:
        self._enter("relevance")
        try:
            return self._deliver(self.relevance_by_id.get(article.id, make_relevance()))
        finally:
            self._leave()

    def classify_sentiment(self, text: str) -> SentimentClassification:
        self._enter("sentiment")
        try:
            if self.sentiment_by_text is not None:
                return self._deliver(self.sentiment_by_text(text))
            return SentimentClassification(sentiment="bullish", impact="up", confidence=0.7)
        finally:
            self._leave()

    def assess_price_impact(self, article: Article) -> PriceImpactAssessment:
        self._enter("price_impact")
        try:
            default = PriceImpactAssessment(direction="up", confidence=0.75, drivers=["export controls"])
            return self._deliver(self.price_impact_by_id.get(article.id, default))
        finally:
            self._leave()

    def synthesize(self, items: Sequence[Dict[str, Any]]) -> Synthesis:
        self.synthesis_items = list(items)
        if self.synthesis is None:
            raise OracleFailure("synthesis not scripted")
        return self._deliver(self.synthesis)


# =============================================================================
# Fake news source
# =============================================================================

class FakeSource(NewsSource):
    """NewsSource serving pre-built pages per query.

    ``pages[query]`` is a list whose items are article lists or exceptions;
    page N (1-based) serves item N-1, beyond that an empty page.
    """

    def __init__(self, pages: Dict[str, List[Union[List[Article], Exception]]], name: str = "fake") -> None:
        self.pages = pages
        self.name = name
        self.requests: List[tuple] = []

    def fetch_page(self, query, page, page_size, from_date=None):
        self.requests.append((query, page, page_size, from_date))
        served = self.pages.get(query, [])
        if page > len(served):
            return ArticlePage()
        item = served[page - 1]
        if isinstance(item, Exception):
            raise item
        return ArticlePage(articles=list(item), raw_count=len(item))


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def stub_oracle_cls():
    return StubOracle


@pytest.fixture
def fake_source_cls():
    return FakeSource


@pytest.fixture
def article_factory():
    return make_article


@pytest.fixture
def enriched_factory():
    return make_enriched


@pytest.fixture
def relevance_factory():
    return make_relevance


@pytest.fixture(autouse=True)
def no_backoff_sleep(monkeypatch):
    """Rate-limit backoff never actually sleeps in tests."""
    sleeps: List[float] = []
    monkeypatch.setattr("semanticast.core.retry.time.sleep", lambda s: sleeps.append(s))
    return sleeps


@pytest.fixture
def settings(tmp_path) -> PipelineSettings:
    """Offline settings writing into a temporary output directory."""
    return PipelineSettings(
        queries=("neodymium AND EV", "lithium AND battery"),
        news_api_key="test_news_key",
        page_size=2,
        per_query_page_limit=3,
        lookback_days=7,
        concurrency=3,
        output_dir=str(tmp_path / "output"),
        cache_enabled=False,
        cache_path=str(tmp_path / "output" / ".cache.db"),
    )


@pytest.fixture
def worked_example_snapshot() -> AggregateSnapshot:
    """8 relevant articles: up=6 down=1 uncertain=1, bullish=5 bearish=1 neutral=2."""
    return AggregateSnapshot(
        total_articles=20,
        total_relevant=8,
        magnet_count=5,
        battery_count=2,
        mixed_count=1,
        other_count=0,
        avg_relevance_confidence=0.8,
        avg_sentiment_confidence=0.7,
        avg_price_impact_confidence=0.75,
        price_impact_distribution=PriceImpactDistribution(up=6, down=1, uncertain=1),
        sentiment_distribution=SentimentDistribution(bullish=5, bearish=1, neutral=2),
        dominant_drivers=["export controls", "ev demand", "magnet shortage", "stockpiling"],
        narrative="Export controls tighten magnet supply for EV makers.",
        suggestion="BUY: supply risk dominates (informational, not financial advice)",
        synthesis_source="oracle",
    )


@pytest.fixture
def empty_snapshot() -> AggregateSnapshot:
    return AggregateSnapshot(
        total_articles=12,
        total_relevant=0,
        magnet_count=0,
        battery_count=0,
        mixed_count=0,
        other_count=0,
        avg_relevance_confidence=0.0,
        avg_sentiment_confidence=0.0,
        avg_price_impact_confidence=0.0,
        price_impact_distribution=PriceImpactDistribution(),
        sentiment_distribution=SentimentDistribution(),
        dominant_drivers=[],
        narrative="No relevant automotive rare earth articles found.",
        suggestion="HOLD: heuristic summary based on current distributions (informational, not financial advice)",
        fallback_reason="no_relevant_articles",
    )
