"""News sources and the multi-query SourceFetcher.

Flow per run:
  1. For every (source, query): page through results until the provider returns
     fewer raw records than the page size, or the per-query page limit.
  2. A query that fails (rate limit exhausted, upstream error) is recorded and
     skipped — other queries continue untouched.
  3. All pages are merged and de-duplicated by canonical article id.
"""

import urllib.parse
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import feedparser
import requests

from semanticast.core.cache import SQLiteCache, make_cache_key
from semanticast.core.errors import FetchError, RateLimited, RateLimitExceeded, UpstreamError
from semanticast.core.logger import logger
from semanticast.core.news_utils import article_id
from semanticast.core.retry import with_rate_limit_backoff
from semanticast.models.datatypes import Article
from semanticast.providers.base import ArticlePage, NewsSource

_NEWSAPI_URL = "https://newsapi.org/v2/everything"
_GOOGLE_RSS_BASE = "https://news.google.com/rss/search"


# ── NewsApiSource ─────────────────────────────────────────────────────────────

class NewsApiSource(NewsSource):
    """NewsAPI ``/v2/everything`` keyword search.

    HTTP 429 responses are retried with linear backoff (5s, 10s, 15s by
    default). Free tier: 100 requests/day, so pages are cached per run date.
    """

    name = "newsapi"

    def __init__(
        self,
        api_key: str,
        cache_instance: Optional[SQLiteCache] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 15.0,
        max_retries: int = 3,
        backoff_unit_seconds: float = 5.0,
    ) -> None:
        """Args:
            api_key: NewsAPI key, sent as ``X-Api-Key``.
            cache_instance: Optional page cache; no caching when omitted.
            session: Optional ``requests.Session`` (injected in tests).
            timeout: Per-request timeout in seconds.
            max_retries: Rate-limit retries after the first attempt.
            backoff_unit_seconds: Linear backoff unit.
        """
        if not api_key:
            raise ValueError("NewsApiSource requires an API key")
        self.api_key = api_key
        self.cache = cache_instance
        self.session = session or requests.Session()
        self.timeout = timeout
        self._get = with_rate_limit_backoff(max_retries, backoff_unit_seconds)(self._get_once)

    def fetch_page(
        self,
        query: str,
        page: int,
        page_size: int,
        from_date: Optional[str] = None,
    ) -> ArticlePage:
        cache_key = make_cache_key(self.name, date.today().isoformat(), f"{query}|{from_date}", page, page_size)
        raw: Optional[List[Dict[str, Any]]] = self.cache.get(cache_key) if self.cache else None

        if raw is None:
            params = {
                "q": query,
                "language": "en",
                "sortBy": "publishedAt",
                "pageSize": page_size,
                "page": page,
            }
            if from_date:
                params["from"] = from_date
            payload = self._get(params)
            raw = payload.get("articles") or []
            if self.cache:
                self.cache.set(cache_key, raw)

        # NewsAPI blanks takedowns to "[Removed]" instead of dropping them
        articles = [
            normalize_newsapi_article(item) for item in raw
            if (item.get("url") or item.get("title")) and item.get("title") != "[Removed]"
        ]
        return ArticlePage(articles=articles, raw_count=len(raw))

    def _get_once(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Issue one request. Raises ``RateLimited`` on 429 for the backoff wrapper."""
        logger.info(f"NewsApiSource: page {params['page']} q={params['q'][:80]!r}")
        try:
            resp = self.session.get(
                _NEWSAPI_URL,
                params=params,
                headers={"X-Api-Key": self.api_key},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamError(None, str(exc)) from exc

        if resp.status_code == 429:
            raise RateLimited(f"HTTP 429 for page {params['page']}")
        if resp.status_code != 200:
            raise UpstreamError(resp.status_code, resp.text)

        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamError(resp.status_code, f"invalid JSON body: {exc}") from exc


def normalize_newsapi_article(item: Dict[str, Any]) -> Article:
    """Map a raw NewsAPI record onto :class:`Article`."""
    url = item.get("url") or ""
    source = (item.get("source") or {}).get("name") or "unknown"
    title = (item.get("title") or "").strip()
    return Article(
        id=article_id(url, source, title),
        url=url,
        source=source,
        title=title,
        description=item.get("description") or None,
        content=item.get("content") or None,
        author=item.get("author") or None,
        published_at=item.get("publishedAt") or None,
        language="en",
    )


# ── GoogleNewsSource ──────────────────────────────────────────────────────────

class GoogleNewsSource(NewsSource):
    """Google News RSS search.

    Keyless and unpaginated: page 1 carries the whole feed, later pages are empty.
    ``when:<N>d`` handles the date filter server-side.
    """

    name = "google_news"

    def __init__(
        self,
        cache_instance: Optional[SQLiteCache] = None,
        lookback_days: Optional[int] = 7,
        max_retries: int = 3,
        backoff_unit_seconds: float = 5.0,
    ) -> None:
        self.cache = cache_instance
        self.lookback_days = lookback_days
        self._fetch = with_rate_limit_backoff(max_retries, backoff_unit_seconds)(self._fetch_rss)

    def fetch_page(
        self,
        query: str,
        page: int,
        page_size: int,
        from_date: Optional[str] = None,
    ) -> ArticlePage:
        if page > 1:
            return ArticlePage()

        cache_key = make_cache_key(self.name, date.today().isoformat(), query, page, page_size)
        entries = self.cache.get(cache_key) if self.cache else None
        if entries is None:
            entries = self._fetch(query)
            if self.cache:
                self.cache.set(cache_key, entries)

        entries = entries[:page_size]
        return ArticlePage(articles=[self._to_article(entry) for entry in entries], raw_count=len(entries))

    def _fetch_rss(self, query: str) -> List[Dict[str, str]]:
        """Fetch and parse the RSS feed into plain entry dicts (cacheable)."""
        q = f"{query} when:{self.lookback_days}d" if self.lookback_days else query
        url = f"{_GOOGLE_RSS_BASE}?q={urllib.parse.quote(q)}&hl=en-US&gl=US&ceid=US:en"
        logger.info(f"GoogleNewsSource: fetching q={query[:80]!r}")

        try:
            feed = feedparser.parse(url)
        except Exception as exc:
            raise UpstreamError(None, str(exc)) from exc

        # feedparser reports transport failures as a bozo feed with no HTTP status
        status = getattr(feed, "status", None)
        if status is None and getattr(feed, "bozo_exception", None) is not None:
            raise UpstreamError(None, str(feed.bozo_exception))
        status = status or 200
        if status == 429:
            raise RateLimited("Google News RSS returned 429")
        if status >= 400:
            raise UpstreamError(status, f"Google News RSS error for {url}")
        if feed.bozo and hasattr(feed, "bozo_exception"):
            logger.warning(f"GoogleNewsSource: RSS parse warning: {feed.bozo_exception}")

        entries = []
        for entry in feed.entries:
            title = getattr(entry, "title", "").strip()
            if not title:
                continue
            pub_parsed = getattr(entry, "published_parsed", None)
            source_raw = getattr(entry, "source", {})
            entries.append({
                "title": title,
                "url": getattr(entry, "link", ""),
                "source": (
                    source_raw.get("title", "Google News")
                    if isinstance(source_raw, dict) else str(source_raw) or "Google News"
                ),
                "published_at": datetime(*pub_parsed[:6]).isoformat() if pub_parsed else "",
                "summary": getattr(entry, "summary", ""),
            })
        logger.info(f"GoogleNewsSource: {len(entries)} entries")
        return entries

    @staticmethod
    def _to_article(entry: Dict[str, str]) -> Article:
        return Article(
            id=article_id(entry.get("url", ""), entry.get("source", ""), entry["title"]),
            url=entry.get("url", ""),
            source=entry.get("source") or "Google News",
            title=entry["title"],
            description=entry.get("summary") or None,
            published_at=entry.get("published_at") or None,
        )


# ── SourceFetcher ─────────────────────────────────────────────────────────────

class SourceFetcher:
    """Runs every query against every source and merges the de-duplicated result.

    Args:
        sources: Configured news sources (at least one).
        from_date: Optional ISO date lower bound passed to every source.
    """

    def __init__(self, sources: Sequence[NewsSource], from_date: Optional[str] = None) -> None:
        if not sources:
            raise ValueError("SourceFetcher requires at least one source")
        self.sources = list(sources)
        self.from_date = from_date
        self.failures: List[Tuple[str, str, FetchError]] = []

    def fetch_all(
        self,
        queries: Sequence[str],
        per_query_page_limit: int = 3,
        page_size: int = 50,
    ) -> List[Article]:
        """Fetch all queries and return the de-duplicated article set.

        Args:
            queries: Provider query strings.
            per_query_page_limit: Maximum pages requested per query.
            page_size: Articles per page; a shorter page ends pagination.

        Returns:
            List[Article]: One article per canonical id (later sightings win);
            order is not significant.
        """
        self.failures = []
        merged: Dict[str, Article] = {}
        fetched = 0

        for source in self.sources:
            for index, query in enumerate(queries, start=1):
                batch = self._fetch_query(source, query, per_query_page_limit, page_size)
                logger.info(
                    f"SourceFetcher: [{source.name}] query {index}/{len(queries)} → {len(batch)} articles"
                )
                fetched += len(batch)
                for article in batch:
                    merged[article.id] = article

        logger.info(
            f"SourceFetcher: {fetched} fetched, {len(merged)} unique, "
            f"{len(self.failures)} failed queries"
        )
        return list(merged.values())

    def _fetch_query(
        self,
        source: NewsSource,
        query: str,
        per_query_page_limit: int,
        page_size: int,
    ) -> List[Article]:
        """Paginate one query. Pages fetched before a failure are kept."""
        collected: List[Article] = []
        for page in range(1, per_query_page_limit + 1):
            try:
                result = source.fetch_page(query, page, page_size, self.from_date)
            except FetchError as exc:
                reason = "RATE_LIMIT_EXCEEDED" if isinstance(exc, RateLimitExceeded) else "UPSTREAM_ERROR"
                logger.error(
                    f"SourceFetcher: [{source.name}] {reason} on page {page} "
                    f"for q={query[:80]!r}: {exc}"
                )
                self.failures.append((source.name, query, exc))
                break
            collected.extend(result.articles)
            if result.raw_count < page_size:
                break
        return collected
