"""Abstract base classes for fetch sources and classification capabilities."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from semanticast.core.errors import OracleFailure
from semanticast.models.datatypes import (
    Article,
    PriceImpactAssessment,
    RelevanceAssessment,
    SentimentClassification,
)


@dataclass
class ArticlePage:
    """One provider page.

    Attributes:
        articles: Normalized articles kept from the page.
        raw_count: Records the provider returned, before takedowns and
            unusable items were dropped. Pagination decisions use this count.
    """
    articles: List[Article] = field(default_factory=list)
    raw_count: int = 0


class NewsSource(ABC):
    """Keyword-query search returning paginated article lists."""

    name: str = "source"

    @abstractmethod
    def fetch_page(
        self,
        query: str,
        page: int,
        page_size: int,
        from_date: Optional[str] = None,
    ) -> ArticlePage:
        """
        Fetch one page of articles for a query.

        Args:
            query (str): Free-text provider query.
            page (int): 1-based page index.
            page_size (int): Maximum articles per page.
            from_date (str | None): ISO date lower bound on publish time.

        Returns:
            ArticlePage: Normalized articles plus the provider's raw record count;
            a ``raw_count`` below ``page_size`` marks the last page.

        Raises:
            RateLimitExceeded: Rate-limit retries exhausted.
            UpstreamError: Any other non-success response or transport failure.
        """
        pass


class SentimentProvider(ABC):
    """Text-only sentiment classifier."""

    @abstractmethod
    def classify(self, text: str) -> SentimentClassification:
        """
        Classify the market sentiment of a piece of text.

        Raises:
            OracleError: If no classification can be produced.
        """
        pass


@dataclass
class Synthesis:
    """Narrative synthesis returned by an oracle over a batch of compact judgments.

    Distributions are raw mappings; the aggregator decides whether to trust them.
    """
    price_impact_distribution: Dict[str, Any] = field(default_factory=dict)
    sentiment_distribution: Dict[str, Any] = field(default_factory=dict)
    dominant_drivers: List[str] = field(default_factory=list)
    narrative: str = ""
    suggestion: Optional[str] = None


class ClassificationOracle(ABC):
    """Opaque judgment capability consulted once per article (and once per batch).

    Every operation either returns a structured judgment or raises an
    ``OracleError``; implementations never retry.
    """

    @abstractmethod
    def assess_relevance(self, article: Article) -> RelevanceAssessment:
        pass

    @abstractmethod
    def classify_sentiment(self, text: str) -> SentimentClassification:
        pass

    @abstractmethod
    def assess_price_impact(self, article: Article) -> PriceImpactAssessment:
        pass

    @property
    def supports_synthesis(self) -> bool:
        """Whether :meth:`synthesize` is implemented."""
        return False

    def synthesize(self, items: Sequence[Dict[str, Any]]) -> Synthesis:
        """Summarize compact per-article judgments into distributions, drivers and narrative."""
        raise OracleFailure(f"{type(self).__name__} does not support synthesis")
