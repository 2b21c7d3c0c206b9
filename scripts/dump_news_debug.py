"""
Debug dump — runs only the fetch stage (every configured query × source) and
writes the de-duplicated article set to output/articles_debug.json, together
with the compiled queries and any per-query failures.

No oracle calls are made, so this is safe to run without OPENAI_API_KEY.

Run with:
    PYTHONPATH=. python scripts/dump_news_debug.py
"""

import json
import os
from collections import Counter
from datetime import date, timedelta

from dotenv import load_dotenv

load_dotenv()

from semanticast.core.config import build_settings, load_config  # noqa: E402
from semanticast.pipeline.engine import build_sources  # noqa: E402
from semanticast.providers.news import SourceFetcher  # noqa: E402


def main() -> int:
    settings = build_settings(load_config()).validate()
    os.makedirs(settings.output_dir, exist_ok=True)

    from_date = (
        (date.today() - timedelta(days=settings.lookback_days)).isoformat()
        if settings.lookback_days else None
    )
    sources = build_sources(settings)
    fetcher = SourceFetcher(sources, from_date=from_date)

    print(f"Sources: {[s.name for s in sources]}  from={from_date or 'any'}")
    for i, query in enumerate(settings.queries, start=1):
        print(f"  Query {i}: {query}")

    articles = fetcher.fetch_all(
        settings.queries,
        per_query_page_limit=settings.per_query_page_limit,
        page_size=settings.page_size,
    )
    articles.sort(key=lambda a: a.published_at or "", reverse=True)

    out = {
        "generated_for": date.today().isoformat(),
        "from_date": from_date,
        "queries": list(settings.queries),
        "failures": [
            {"source": name, "query": query, "error": str(exc)}
            for name, query, exc in fetcher.failures
        ],
        "total_unique": len(articles),
        "articles": [a.to_dict() for a in articles],
    }
    path = os.path.join(settings.output_dir, "articles_debug.json")
    with open(path, "w", encoding="utf-8") as f:
        json.dump(out, f, indent=2, ensure_ascii=False)

    print(f"\n{'═'*60}")
    print(f"Wrote {path}: {len(articles)} unique articles, {len(fetcher.failures)} failed queries")
    print(f"{'═'*60}")
    print(f"\n{'Source':30}  Articles")
    print("-" * 42)
    for source, count in Counter(a.source for a in articles).most_common(15):
        print(f"{source[:30]:30}  {count}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
