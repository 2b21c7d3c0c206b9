"""Configuration module for loading project settings and environment variables.

``config.yaml`` carries the non-secret knobs; secrets and run-mode toggles come
from the environment (optionally via ``.env``). Both are folded into a single
immutable :class:`PipelineSettings` that callers hand to each component, so no
pipeline module reads ``os.environ`` on its own.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml
from dotenv import load_dotenv

from semanticast.core.errors import ConfigError
from semanticast.core.news_utils import AUTOMOTIVE_TERMS, RARE_EARTH_TERMS, build_query

# Load environment variables from .env file
load_dotenv()

SENTIMENT_BACKENDS = ("llm", "finbert")


def load_config(config_path: str | Path = "config.yaml") -> Dict[str, Any]:
    """
    Load configuration from the specified YAML file.

    Args:
        config_path (str | Path): Path to the configuration file. Defaults to "config.yaml".

    Returns:
        Dict[str, Any]: A dictionary containing the configuration settings.
    """
    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found at {config_path}")

    with open(config_file, "r", encoding="utf-8") as file:
        config_data = yaml.safe_load(file)

    if not config_data:
        raise ValueError(f"Configuration file {config_path} is empty or invalid.")

    return config_data


@dataclass(frozen=True)
class PipelineSettings:
    """Explicit configuration value passed into every pipeline component."""

    queries: Tuple[str, ...]
    news_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_base_url: Optional[str] = None
    oracle_timeout_seconds: float = 30.0
    sentiment_backend: str = "llm"
    google_news: bool = False
    page_size: int = 100
    per_query_page_limit: int = 1
    lookback_days: Optional[int] = 7
    concurrency: int = 10
    baseline_volatility: float = 3.2
    basket_reference_price: float = 95.0
    output_dir: str = "output"
    cache_enabled: bool = True
    cache_path: str = "output/.cache.db"
    skip_fetch: bool = False
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def oracle_enabled(self) -> bool:
        return bool(self.openai_api_key)

    def validate(self) -> "PipelineSettings":
        """Check startup preconditions.

        Returns:
            PipelineSettings: ``self``, for chaining.

        Raises:
            ConfigError: On any fatal misconfiguration.
        """
        problems: List[str] = []
        if not self.skip_fetch:
            if not self.queries:
                problems.append("no queries configured")
            if not self.news_api_key and not self.google_news:
                problems.append("no usable fetch source (set NEWS_API_KEY or enable fetch.google_news)")
        if self.page_size < 1:
            problems.append(f"fetch.page_size must be >= 1 (got {self.page_size})")
        if self.per_query_page_limit < 1:
            problems.append(f"fetch.per_query_page_limit must be >= 1 (got {self.per_query_page_limit})")
        if self.concurrency < 1:
            problems.append(f"enrichment.concurrency must be >= 1 (got {self.concurrency})")
        if self.baseline_volatility < 0:
            problems.append(f"forecast.baseline_volatility must be >= 0 (got {self.baseline_volatility})")
        if self.basket_reference_price <= 0:
            problems.append(f"forecast.basket_reference_price must be > 0 (got {self.basket_reference_price})")
        if self.sentiment_backend not in SENTIMENT_BACKENDS:
            problems.append(f"oracle.sentiment_backend must be one of {SENTIMENT_BACKENDS}")
        if problems:
            raise ConfigError("; ".join(problems))
        return self


def build_settings(
    config: Dict[str, Any],
    env: Optional[Mapping[str, str]] = None,
) -> PipelineSettings:
    """
    Fold the parsed YAML config and the environment into :class:`PipelineSettings`.

    Environment values win over YAML for the forecast constants so a run can be
    re-priced without editing the config file.

    Args:
        config (Dict[str, Any]): Parsed ``config.yaml``.
        env (Mapping[str, str] | None): Environment mapping; ``os.environ`` when omitted.

    Returns:
        PipelineSettings: Unvalidated settings; call :meth:`PipelineSettings.validate`.

    Raises:
        ConfigError: If a value cannot be converted to its expected type.
    """
    env = os.environ if env is None else env
    fetch = config.get("fetch") or {}
    enrichment = config.get("enrichment") or {}
    oracle = config.get("oracle") or {}
    forecast = config.get("forecast") or {}
    cache = config.get("cache") or {}
    output_dir = config.get("output_dir", "output")

    try:
        return PipelineSettings(
            queries=tuple(_resolve_queries(config)),
            news_api_key=env.get("NEWS_API_KEY") or None,
            openai_api_key=env.get("OPENAI_API_KEY") or None,
            openai_model=env.get("OPENAI_MODEL") or oracle.get("model", "gpt-4o-mini"),
            openai_base_url=env.get("OPENAI_BASE_URL") or oracle.get("base_url"),
            oracle_timeout_seconds=float(oracle.get("timeout_seconds", 30.0)),
            sentiment_backend=str(oracle.get("sentiment_backend", "llm")).lower(),
            google_news=bool(fetch.get("google_news", False)),
            page_size=int(fetch.get("page_size", 100)),
            per_query_page_limit=int(fetch.get("per_query_page_limit", 1)),
            lookback_days=_optional_int(fetch.get("lookback_days", 7)),
            concurrency=int(enrichment.get("concurrency", 10)),
            baseline_volatility=float(
                env.get("FORECAST_BASELINE_VOLATILITY") or forecast.get("baseline_volatility", 3.2)
            ),
            basket_reference_price=float(
                env.get("FORECAST_BASKET_REFERENCE_PRICE") or forecast.get("basket_reference_price", 95.0)
            ),
            output_dir=output_dir,
            cache_enabled=bool(cache.get("enabled", True)),
            cache_path=cache.get("path", os.path.join(output_dir, ".cache.db")),
            skip_fetch=_truthy(env.get("SKIP_FETCH", config.get("skip_fetch", False))),
            extra={k: v for k, v in config.items() if k not in _KNOWN_KEYS},
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid configuration value: {exc}") from exc


_KNOWN_KEYS = {
    "queries", "query_terms", "fetch", "enrichment", "oracle",
    "forecast", "cache", "output_dir", "skip_fetch",
}


def _resolve_queries(config: Dict[str, Any]) -> List[str]:
    """Raw ``queries`` first, then ``query_terms`` groups compiled with ``build_query``."""
    queries = [str(q).strip() for q in (config.get("queries") or []) if str(q).strip()]
    for group in config.get("query_terms") or []:
        terms = group.get("terms") or RARE_EARTH_TERMS
        context = group.get("context")
        if context == "automotive":
            context = AUTOMOTIVE_TERMS
        queries.append(build_query(terms, context))
    return queries


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")
