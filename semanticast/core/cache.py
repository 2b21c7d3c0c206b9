"""Local SQLite cache for raw fetch-source responses."""

import hashlib
import json
import sqlite3
from pathlib import Path
from typing import Any, List, Optional

from semanticast.core.logger import logger


def make_cache_key(source: str, run_date: str, query: str, page: int, page_size: int) -> str:
    """Build a deterministic cache key for one paginated source request.

    The query text is hashed because NewsAPI boolean queries can run to several
    hundred characters.
    """
    digest = hashlib.sha1(query.encode("utf-8")).hexdigest()[:16]
    return f"{source}_{run_date}_{digest}_p{page}_s{page_size}"


class SQLiteCache:
    """A minimal SQLite-backed store for JSON-serialisable page payloads.

    Keys embed the run date, so a cache hit only ever replays a response
    fetched earlier on the same day.
    """

    def __init__(self, db_path: str = "output/.cache.db") -> None:
        """
        Args:
            db_path (str): Path to the SQLite database file.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, check_same_thread=False)

    def _init_db(self) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS fetch_cache (
                    cache_key TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
                """
            )

    def get(self, key: str) -> Optional[List[Any]]:
        """
        Return the cached page payload for ``key``, or ``None`` on a miss.

        Read or decode errors are logged and treated as a miss so the caller
        simply re-fetches.
        """
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT payload FROM fetch_cache WHERE cache_key = ?",
                    (key,)
                ).fetchone()
        except sqlite3.Error as e:
            logger.error(f"SQLiteCache: read failed for {key}: {e}")
            return None

        if row is None:
            logger.debug(f"SQLiteCache: miss for {key}")
            return None

        try:
            payload = json.loads(row[0])
        except json.JSONDecodeError as e:
            logger.error(f"SQLiteCache: corrupt payload for {key}: {e}")
            return None
        logger.debug(f"SQLiteCache: hit for {key}")
        return payload

    def set(self, key: str, value: List[Any]) -> None:
        """
        Store a page payload under ``key``, replacing any earlier entry.

        Args:
            key (str): Cache key from :func:`make_cache_key`.
            value (List[Any]): JSON-serialisable list of raw article records.
        """
        try:
            payload = json.dumps(value)
            with self._get_connection() as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO fetch_cache (cache_key, payload) VALUES (?, ?)",
                    (key, payload)
                )
        except (sqlite3.Error, TypeError) as e:
            logger.error(f"SQLiteCache: write failed for {key}: {e}")
