"""LLM classification oracle backed by the OpenAI chat completions API.

Each operation sends one prompt, extracts the first JSON object from the
answer and normalizes it into a typed judgment. Client errors surface as
``OracleFailure`` and unparseable answers as ``MalformedOracleResponse``; the
oracle itself never retries and never invents a default — fallback policy
belongs to the enricher and the aggregator.
"""

import json
from typing import Any, Dict, List, Optional, Sequence

from openai import OpenAI, OpenAIError

from semanticast.core.errors import MalformedOracleResponse, OracleFailure
from semanticast.core.json_utils import extract_json_payload
from semanticast.core.logger import logger
from semanticast.core.news_utils import truncate
from semanticast.models.datatypes import (
    CATEGORIES,
    MAX_ARTICLE_DRIVERS,
    MAX_DOMINANT_DRIVERS,
    Article,
    PriceImpactAssessment,
    RelevanceAssessment,
    SentimentClassification,
    clamp01,
)
from semanticast.providers.base import ClassificationOracle, SentimentProvider, Synthesis

ARTICLE_TEXT_LIMIT = 1800
SYNTHESIS_ITEM_LIMIT = 60

_RELEVANCE_SYSTEM = """You are an expert classifier for rare earth and critical minerals with an AUTOMOTIVE (EV) industry focus.
Tasks:
1. Decide if the article is MATERIALLY about rare earth metals or critical battery/magnet minerals (mining, refining, supply chain, regulation, pricing, export controls, geopolitics).
2. Decide if the context links these minerals to the automotive / EV industry (EV production, batteries, motors, magnets, drivetrain, OEMs, suppliers).
3. Infer the dominant usage category: magnet (NdFeB / SmCo permanent magnets, traction motors), battery (lithium, cobalt, nickel, manganese, graphite in cells), mixed (both), other.
4. Give a short usage phrase when automotive-relevant.

Output ONLY JSON with keys:
relevant (boolean), confidence (0..1), matchedTerms (string[]), rationale (<=200 chars), automotiveRelevant (boolean), automotiveContextTerms (string[]), category (magnet|battery|mixed|other), usage (string or null).
Rules:
- automotiveRelevant is true ONLY with explicit automotive / EV linkage, not generic mining.
- If relevant=false set automotiveRelevant=false.
- If automotiveRelevant=false set usage=null.
Return NOTHING besides JSON."""

_SENTIMENT_SYSTEM = """You are a market analysis assistant.
Classify the given news text for short-term market impact on rare earth and critical mineral prices.
Return ONLY a JSON object with keys: sentiment (bullish|bearish|neutral), impact (up|down|flat), confidence (0..1).
No extra text."""

_PRICE_IMPACT_SYSTEM = """You are a financial impact analyst for rare earth metals.
Decide the expected SHORT-TERM (14 days) price direction of the rare earth basket based on the article.
Only return JSON: { "direction": "up|down|uncertain", "confidence": 0..1, "drivers": string[], "reasoning": string }.
Rules:
- 'up' for supply risk, export restrictions, demand surge, strategic stockpiling, bullish policy.
- 'down' for oversupply, production expansion, demand contraction, price caps, bearish policy.
- 'uncertain' for mixed signals or insufficient detail.
- drivers: at most 5 concise lowercase phrases.
- reasoning: <= 240 chars.
No extra text."""

_SYNTHESIS_SYSTEM = """You aggregate structured rare earth automotive article analytics.
You receive an array of compact objects with keys: cat (category), pc (price direction), pd (drivers[]), sc (sentiment).
Return ONLY JSON with keys:
priceImpactDistribution { up, down, uncertain }, sentimentDistribution { bullish, bearish, neutral }, dominantDrivers (string[] <=8 lowercase), narrative (<=420 chars, concise, no hype), suggestion (string <=140 chars).
Suggestion rules:
- Start with BUY, HOLD or SELL (uppercase), then a colon and a brief rationale.
- BUY only if up > down AND bullish > bearish AND up >= down + uncertain.
- SELL only if down > up AND bearish > bullish AND down >= up + uncertain.
- Otherwise HOLD.
- Always end with: "(informational, not financial advice)".
Focus on synthesized themes for the automotive industry (EV motors, batteries), not on individual articles."""


class OpenAIOracle(ClassificationOracle):
    """:class:`ClassificationOracle` implemented with OpenAI chat completions.

    Args:
        api_key: OpenAI API key.
        model: Chat model name.
        base_url: Optional OpenAI-compatible endpoint.
        timeout: Per-request timeout in seconds.
        sentiment_provider: Optional local backend that serves
            :meth:`classify_sentiment` instead of the LLM (e.g. FinBERT).
        client: Pre-built client (injected in tests).
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        sentiment_provider: Optional[SentimentProvider] = None,
        client: Optional[Any] = None,
    ) -> None:
        if client is None:
            if not api_key:
                raise ValueError("OpenAIOracle requires an API key or a client")
            client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout)
        self.client = client
        self.model = model
        self.sentiment_provider = sentiment_provider

    @property
    def supports_synthesis(self) -> bool:
        return True

    # ── per-article judgments ─────────────────────────────────────────────────

    def assess_relevance(self, article: Article) -> RelevanceAssessment:
        parsed = self._complete(_RELEVANCE_SYSTEM, _article_prompt(article), temperature=0.1)

        relevant = bool(parsed.get("relevant"))
        automotive = relevant and bool(parsed.get("automotiveRelevant"))
        category = parsed.get("category")
        return RelevanceAssessment(
            relevant=relevant,
            confidence=clamp01(parsed.get("confidence")),
            matched_terms=_string_list(parsed.get("matchedTerms"), 20, lower=True),
            rationale=_bounded_str(parsed.get("rationale"), 200),
            automotive_relevant=automotive,
            automotive_context_terms=_string_list(parsed.get("automotiveContextTerms"), 15, lower=True),
            category=category if automotive and category in CATEGORIES else "other",
            usage=_bounded_str(parsed.get("usage"), 120),
        )

    def classify_sentiment(self, text: str) -> SentimentClassification:
        if self.sentiment_provider is not None:
            return self.sentiment_provider.classify(text)

        user = f'Text:\n"""\n{truncate(text, ARTICLE_TEXT_LIMIT)}\n"""'
        parsed = self._complete(_SENTIMENT_SYSTEM, user, temperature=0.2)
        return SentimentClassification(
            sentiment=str(parsed.get("sentiment", "neutral")).lower(),
            impact=str(parsed.get("impact", "flat")).lower(),
            confidence=clamp01(parsed.get("confidence")),
        )

    def assess_price_impact(self, article: Article) -> PriceImpactAssessment:
        parsed = self._complete(_PRICE_IMPACT_SYSTEM, _article_prompt(article), temperature=0.15)
        return PriceImpactAssessment(
            direction=str(parsed.get("direction", "uncertain")).lower(),
            confidence=clamp01(parsed.get("confidence")),
            drivers=_string_list(parsed.get("drivers"), MAX_ARTICLE_DRIVERS, lower=True),
            reasoning=_bounded_str(parsed.get("reasoning"), 240),
        )

    # ── batch synthesis ───────────────────────────────────────────────────────

    def synthesize(self, items: Sequence[Dict[str, Any]]) -> Synthesis:
        compact = list(items)[:SYNTHESIS_ITEM_LIMIT]
        parsed = self._complete(_SYNTHESIS_SYSTEM, f"Data: {json.dumps(compact)}", temperature=0.25)

        pid = parsed.get("priceImpactDistribution")
        sd = parsed.get("sentimentDistribution")
        narrative = parsed.get("narrative")
        suggestion = parsed.get("suggestion")
        return Synthesis(
            price_impact_distribution=pid if isinstance(pid, dict) else {},
            sentiment_distribution=sd if isinstance(sd, dict) else {},
            dominant_drivers=_string_list(parsed.get("dominantDrivers"), MAX_DOMINANT_DRIVERS, lower=True),
            narrative=narrative if isinstance(narrative, str) else "",
            suggestion=suggestion if isinstance(suggestion, str) else None,
        )

    # ── internal ──────────────────────────────────────────────────────────────

    def _complete(self, system: str, user: str, temperature: float) -> Dict[str, Any]:
        """Run one chat completion and return its first JSON object."""
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                temperature=temperature,
            )
        except OpenAIError as exc:
            raise OracleFailure(f"OpenAI request failed: {exc}") from exc

        try:
            content = resp.choices[0].message.content or ""
        except (AttributeError, IndexError) as exc:
            raise MalformedOracleResponse(f"completion without message content: {exc}") from exc

        parsed = extract_json_payload(content)
        logger.debug(f"OpenAIOracle: parsed keys {sorted(parsed)}")
        return parsed


# ── helpers ───────────────────────────────────────────────────────────────────

def _article_prompt(article: Article) -> str:
    return (
        f"Article:\nTitle: {article.title}\nSource: {article.source}\n"
        f"Published: {article.published_at or 'unknown'}\n"
        f'Text:\n"""\n{truncate(article.text, ARTICLE_TEXT_LIMIT)}\n"""'
    )


def _string_list(value: Any, limit: int, lower: bool = False) -> List[str]:
    """Keep the string items of ``value``, de-duplicated, at most ``limit``."""
    if not isinstance(value, list):
        return []
    result: List[str] = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            continue
        cleaned = item.strip().lower() if lower else item.strip()
        if cleaned not in result:
            result.append(cleaned)
        if len(result) == limit:
            break
    return result


def _bounded_str(value: Any, limit: int) -> Optional[str]:
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip()[:limit]
