"""Utility helpers for the news pipeline — query construction and article identity."""

import hashlib
import re
from typing import List, Optional, Sequence
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

# NewsAPI rejects queries above 500 characters; keep a safety margin.
QUERY_MAX_LENGTH = 480

# Element and critical-mineral terms searched by default.
RARE_EARTH_TERMS = [
    '"rare earth"', "neodymium", "dysprosium", "terbium", "yttrium", "scandium",
    "lanthanum", "cerium", "praseodymium", "samarium", "europium", "gadolinium",
    "holmium", "erbium", "thulium", "ytterbium", "lutetium", "lithium", "cobalt",
]

AUTOMOTIVE_TERMS = [
    "EV", '"electric vehicle"', "battery", "magnet", "motor", "automotive",
]

# Query parameters that never change the article a URL points to.
_TRACKING_PARAMS = re.compile(r"^(utm_.*|fbclid|gclid|mc_cid|mc_eid|ocid)$", re.IGNORECASE)


def build_query(
    terms: Sequence[str],
    context_terms: Optional[Sequence[str]] = None,
    max_length: int = QUERY_MAX_LENGTH,
) -> str:
    """Join search terms with OR, optionally AND-ed with a context group.

    Examples:
        ``build_query(["lithium", "cobalt"])`` → ``"lithium OR cobalt"``
        ``build_query(["lithium"], ["EV"])`` → ``"(lithium) AND (EV)"``

    Terms are de-duplicated in order. When the result would exceed
    ``max_length``, trailing terms of the primary group are dropped whole so
    that no quoted phrase is ever cut in half.

    Args:
        terms: Primary terms (space in NewsAPI means AND, so phrases need quotes).
        context_terms: Optional terms that must co-occur with the primary group.
        max_length: Provider query-length limit.

    Returns:
        str: The query string.

    Raises:
        ValueError: If no usable primary term is given, or the context group
            alone does not fit within ``max_length``.
    """
    primary = _dedupe(terms)
    if not primary:
        raise ValueError("build_query requires at least one non-empty term")
    context = _dedupe(context_terms or [])

    def render(group: List[str]) -> str:
        joined = " OR ".join(group)
        if not context:
            return joined
        return f"({joined}) AND ({' OR '.join(context)})"

    kept = list(primary)
    while kept and len(render(kept)) > max_length:
        kept.pop()
    if not kept:
        raise ValueError(f"query cannot fit within {max_length} characters")
    return render(kept)


def _dedupe(terms: Sequence[str]) -> List[str]:
    seen = set()
    result = []
    for term in terms:
        cleaned = (term or "").strip()
        if cleaned and cleaned.lower() not in seen:
            seen.add(cleaned.lower())
            result.append(cleaned)
    return result


def canonical_url(url: str) -> str:
    """Normalise a URL so the same article reached through different links compares equal.

    Lower-cases scheme and host, drops the fragment, ``www.`` prefix, tracking
    parameters and any trailing slash on the path.

    Args:
        url (str): Raw article URL.

    Returns:
        str: Canonical form, or ``""`` for a blank URL.
    """
    url = (url or "").strip()
    if not url:
        return ""
    parts = urlsplit(url)
    host = parts.netloc.lower()
    if host.startswith("www."):
        host = host[4:]
    query = urlencode(
        [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True)
         if not _TRACKING_PARAMS.match(k)]
    )
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), host, path, query, ""))


def article_id(url: str, source: str = "", title: str = "") -> str:
    """Return the stable identifier of an article.

    The canonical URL when available; otherwise a SHA-1 of ``source|title``
    so URL-less feed items still de-duplicate deterministically.
    """
    canonical = canonical_url(url)
    if canonical:
        return canonical
    digest = hashlib.sha1(f"{source}|{title}".encode("utf-8")).hexdigest()
    return f"sha1:{digest}"


def truncate(text: str, limit: int) -> str:
    """Cut ``text`` to ``limit`` characters, marking the cut with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[:limit] + "…"


def collapse_whitespace(text: str) -> str:
    """Flatten newlines and runs of spaces into single spaces."""
    text = re.sub(r"\s+", " ", text or "")
    # Re-join words the model broke across lines ("supply-\nchain")
    text = re.sub(r"(?<=\w)-\s+(?=\w)", "-", text)
    return text.strip()
