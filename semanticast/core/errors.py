"""Error taxonomy for the ingestion-to-forecast pipeline.

Fetch errors abort a single query, oracle errors affect a single article, and
snapshot / config errors end a run cleanly. Nothing here is meant to escape a
per-item boundary inside the pipeline.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for every error raised by semanticast."""


class ConfigError(PipelineError):
    """Missing or invalid configuration detected at startup."""


# ── fetch ─────────────────────────────────────────────────────────────────────

class FetchError(PipelineError):
    """A fetch source could not serve a query."""


class RateLimited(FetchError):
    """A single HTTP 429 response. Retried by ``with_rate_limit_backoff``."""


class RateLimitExceeded(FetchError):
    """Rate-limit retries were exhausted for a query."""


class UpstreamError(FetchError):
    """Non-success, non-rate-limit response (or transport failure) from a source.

    Args:
        status: HTTP status code, or ``None`` when no response was received.
        body: Response body or transport error text, kept for diagnostics.
    """

    def __init__(self, status: Optional[int], body: str = "") -> None:
        self.status = status
        self.body = body
        label = f"HTTP {status}" if status is not None else "transport failure"
        super().__init__(f"{label}: {body[:200]}")


# ── oracle ────────────────────────────────────────────────────────────────────

class OracleError(PipelineError):
    """The classification oracle could not produce a judgment."""


class OracleFailure(OracleError):
    """The oracle call itself failed (client error, network fault, disabled capability)."""


class MalformedOracleResponse(OracleError):
    """The oracle answered, but no well-formed structured payload could be extracted."""


# ── snapshot ──────────────────────────────────────────────────────────────────

class NoPriorSnapshot(PipelineError):
    """Prediction-only replay found no persisted snapshot."""


class SnapshotFormatError(PipelineError):
    """A persisted snapshot exists but cannot be parsed."""
