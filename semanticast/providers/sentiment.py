"""Local CPU financial sentiment inference using ProsusAI/finbert.

Pipeline:
    article text (str) → FinBERTProvider.classify() → SentimentClassification

Label mapping:
    finbert "positive" → bullish / up
    finbert "negative" → bearish / down
    finbert "neutral"  → neutral / flat

Confidence is the raw softmax score of the winning label. Used as the
``classify_sentiment`` backend when ``oracle.sentiment_backend: finbert``;
relevance and price impact still go through the LLM oracle.
"""

import threading

from semanticast.core.errors import MalformedOracleResponse, OracleFailure
from semanticast.core.logger import logger
from semanticast.models.datatypes import SentimentClassification
from semanticast.providers.base import SentimentProvider

_MODEL_NAME = "ProsusAI/finbert"

# FinBERT raw label → (sentiment, impact)
_LABEL_MAP = {
    "positive": ("bullish", "up"),
    "negative": ("bearish", "down"),
    "neutral": ("neutral", "flat"),
}


class FinBERTProvider(SentimentProvider):
    """Local CPU financial sentiment using ``ProsusAI/finbert``.

    The underlying HuggingFace pipeline is loaded lazily on the first call to
    :meth:`classify` so that importing this module has zero cost.

    Args:
        model_name: HuggingFace model identifier (default ``ProsusAI/finbert``).
        pipeline: Pre-built text-classification callable (injected in tests).
    """

    def __init__(self, model_name: str = _MODEL_NAME, pipeline=None) -> None:
        self.model_name = model_name
        self._pipeline = pipeline  # lazy-loaded when None
        self._load_lock = threading.Lock()

    # ── public API ──────────────────────────────────────────────────────────

    def classify(self, text: str) -> SentimentClassification:
        """Return the sentiment classification for a piece of article text.

        Args:
            text: Headline plus optional body.

        Returns:
            :class:`SentimentClassification`.

        Raises:
            OracleFailure: Empty input or inference error.
            MalformedOracleResponse: The model returned an unexpected shape.
        """
        text = (text or "").strip()
        if not text:
            raise OracleFailure("FinBERTProvider: empty text")

        pipe = self._get_pipeline()
        try:
            raw = pipe(text, truncation=True, max_length=512)
        except Exception as exc:
            raise OracleFailure(f"FinBERTProvider: inference failed: {exc}") from exc

        try:
            # transformers returns list[dict] or list[list[dict]] depending on top_k;
            # unwrap one level if needed.
            result = raw[0]
            if isinstance(result, list):
                result = result[0]
            raw_label = str(result["label"]).lower()
            raw_score = float(result["score"])
        except (IndexError, KeyError, TypeError, ValueError) as exc:
            raise MalformedOracleResponse(f"FinBERTProvider: unexpected output {raw!r}") from exc

        sentiment, impact = _LABEL_MAP.get(raw_label, ("neutral", "flat"))
        logger.debug(
            f"FinBERTProvider: [{sentiment} / {raw_score:.3f}] (raw={raw_label}) — {text[:60]!r}"
        )
        return SentimentClassification(sentiment=sentiment, impact=impact, confidence=raw_score)

    # ── internal ─────────────────────────────────────────────────────────────

    def _get_pipeline(self):
        """Lazy-load the HuggingFace pipeline on first call (one load across worker threads)."""
        with self._load_lock:
            if self._pipeline is None:
                from transformers import pipeline as hf_pipeline
                logger.info(
                    f"FinBERTProvider: loading model '{self.model_name}' on CPU "
                    f"(first call only — subsequent calls reuse cached pipeline)"
                )
                self._pipeline = hf_pipeline(
                    task="text-classification",
                    model=self.model_name,
                    device=-1,          # CPU only
                )
                logger.info("FinBERTProvider: model loaded ✓")
        return self._pipeline
