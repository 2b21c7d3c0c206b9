"""Data structures for the rare-earth news ingestion and forecast pipeline."""

from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, List, Optional

SENTIMENTS = ("bullish", "bearish", "neutral")
SENTIMENT_IMPACTS = ("up", "down", "flat")
PRICE_DIRECTIONS = ("up", "down", "uncertain")
CATEGORIES = ("magnet", "battery", "mixed", "other")

DISCLAIMER = "(informational, not financial advice)"
SUGGESTION_ACTIONS = ("BUY", "HOLD", "SELL")

NARRATIVE_MAX_LENGTH = 420
SUGGESTION_MAX_LENGTH = 140
MAX_DOMINANT_DRIVERS = 8
MAX_ARTICLE_DRIVERS = 5


def clamp01(value: Any, default: float = 0.5) -> float:
    """Coerce ``value`` to a float in ``[0, 1]``; ``default`` when it is not numeric."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(0.0, min(1.0, number))


@dataclass
class Article:
    """
    A normalized news article fetched from any source.

    ``id`` is derived from the canonical URL and is the de-duplication key.
    """
    id: str
    url: str
    source: str
    title: str
    description: Optional[str] = None
    content: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[str] = None  # ISO 8601
    language: str = "en"

    @property
    def text(self) -> str:
        """Title, description and body joined for classification."""
        return "\n\n".join(p for p in (self.title, self.description, self.content) if p)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RelevanceAssessment:
    """
    Whether an article materially concerns rare-earth / critical minerals, and
    whether it links them to the automotive (EV) industry.

    Invariant: an irrelevant article is never automotive-relevant and carries no usage.
    """
    relevant: bool
    confidence: float
    matched_terms: List[str] = field(default_factory=list)
    rationale: Optional[str] = None
    automotive_relevant: bool = False
    automotive_context_terms: List[str] = field(default_factory=list)
    category: str = "other"
    usage: Optional[str] = None

    def __post_init__(self) -> None:
        self.confidence = clamp01(self.confidence)
        if self.category not in CATEGORIES:
            self.category = "other"
        if not self.relevant:
            self.automotive_relevant = False
        if not self.automotive_relevant:
            self.automotive_context_terms = []
            self.usage = None

    @property
    def keeps_article(self) -> bool:
        return self.relevant and self.automotive_relevant


@dataclass
class SentimentClassification:
    """Market sentiment of one article and the move it implies."""
    sentiment: str
    impact: str
    confidence: float

    def __post_init__(self) -> None:
        if self.sentiment not in SENTIMENTS:
            self.sentiment = "neutral"
        if self.impact not in SENTIMENT_IMPACTS:
            self.impact = "flat"
        self.confidence = clamp01(self.confidence)


@dataclass
class PriceImpactAssessment:
    """Expected short-term direction of the rare-earth basket implied by one article."""
    direction: str
    confidence: float
    drivers: List[str] = field(default_factory=list)
    reasoning: Optional[str] = None

    def __post_init__(self) -> None:
        if self.direction not in PRICE_DIRECTIONS:
            self.direction = "uncertain"
        self.confidence = clamp01(self.confidence)
        self.drivers = list(self.drivers)[:MAX_ARTICLE_DRIVERS]


@dataclass
class EnrichedArticle:
    """An article that passed the relevance filter, with all three judgments attached."""
    article: Article
    relevance: RelevanceAssessment
    sentiment: SentimentClassification
    price_impact: PriceImpactAssessment

    def compact(self) -> Dict[str, Any]:
        """Short-key summary handed to the oracle for narrative synthesis."""
        return {
            "cat": self.relevance.category,
            "pc": self.price_impact.direction,
            "pd": list(self.price_impact.drivers),
            "sc": self.sentiment.sentiment,
        }


@dataclass(frozen=True)
class PriceImpactDistribution:
    up: int = 0
    down: int = 0
    uncertain: int = 0

    @property
    def total(self) -> int:
        return self.up + self.down + self.uncertain


@dataclass(frozen=True)
class SentimentDistribution:
    bullish: int = 0
    bearish: int = 0
    neutral: int = 0

    @property
    def total(self) -> int:
        return self.bullish + self.bearish + self.neutral


@dataclass(frozen=True)
class Forecast:
    """
    14-day basket price forecast derived from an :class:`AggregateSnapshot`.

    Attributes:
        predicted_change_percent: Expected % move over 14 days (2 dp).
        predicted_change_usd: Expected move in USD/kg (2 dp).
        confidence: Forecast confidence in ``[0, 1]`` (3 dp).
        baseline_volatility: 14-day baseline volatility constant, in %.
        news_impact_multiplier: ``1 + 0.8 × combined score`` (2 dp).
        price_target: Reference price plus predicted move (2 dp).
        current_basket_price: Reference basket price in USD/kg.
        reasoning: Deterministic human-readable explanation.
    """
    predicted_change_percent: float
    predicted_change_usd: float
    confidence: float
    baseline_volatility: float
    news_impact_multiplier: float
    price_target: float
    current_basket_price: float
    reasoning: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Forecast":
        return cls(
            predicted_change_percent=float(data["predicted_change_percent"]),
            predicted_change_usd=float(data["predicted_change_usd"]),
            confidence=float(data["confidence"]),
            baseline_volatility=float(data["baseline_volatility"]),
            news_impact_multiplier=float(data["news_impact_multiplier"]),
            price_target=float(data["price_target"]),
            current_basket_price=float(data["current_basket_price"]),
            reasoning=str(data.get("reasoning", "")),
        )


@dataclass(frozen=True)
class AggregateSnapshot:
    """
    Market snapshot reduced from one run's enriched articles.

    Immutable once produced; :meth:`with_forecast` returns a copy with the
    forecast attached.
    """
    total_articles: int
    total_relevant: int
    magnet_count: int
    battery_count: int
    mixed_count: int
    other_count: int
    avg_relevance_confidence: float
    avg_sentiment_confidence: float
    avg_price_impact_confidence: float
    price_impact_distribution: PriceImpactDistribution
    sentiment_distribution: SentimentDistribution
    dominant_drivers: List[str]
    narrative: str
    suggestion: str
    synthesis_source: str = "fallback"  # "oracle" | "fallback"
    fallback_reason: Optional[str] = None
    generated_at: Optional[str] = None
    price_prediction: Optional[Forecast] = None

    def with_forecast(self, forecast: Forecast) -> "AggregateSnapshot":
        return replace(self, price_prediction=forecast)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AggregateSnapshot":
        """Rebuild a snapshot from its persisted form.

        Raises:
            KeyError, TypeError, ValueError: When a required field is missing or mistyped.
        """
        pid = data["price_impact_distribution"]
        sd = data["sentiment_distribution"]
        prediction = data.get("price_prediction")
        return cls(
            total_articles=int(data["total_articles"]),
            total_relevant=int(data["total_relevant"]),
            magnet_count=int(data.get("magnet_count", 0)),
            battery_count=int(data.get("battery_count", 0)),
            mixed_count=int(data.get("mixed_count", 0)),
            other_count=int(data.get("other_count", 0)),
            avg_relevance_confidence=float(data["avg_relevance_confidence"]),
            avg_sentiment_confidence=float(data["avg_sentiment_confidence"]),
            avg_price_impact_confidence=float(data["avg_price_impact_confidence"]),
            price_impact_distribution=PriceImpactDistribution(
                up=int(pid["up"]), down=int(pid["down"]), uncertain=int(pid["uncertain"]),
            ),
            sentiment_distribution=SentimentDistribution(
                bullish=int(sd["bullish"]), bearish=int(sd["bearish"]), neutral=int(sd["neutral"]),
            ),
            dominant_drivers=[str(d) for d in data.get("dominant_drivers", [])],
            narrative=str(data.get("narrative", "")),
            suggestion=str(data.get("suggestion", "")),
            synthesis_source=str(data.get("synthesis_source", "fallback")),
            fallback_reason=data.get("fallback_reason"),
            generated_at=data.get("generated_at"),
            price_prediction=Forecast.from_dict(prediction) if prediction else None,
        )
