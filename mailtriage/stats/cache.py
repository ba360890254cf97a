"""SQLite-backed TTL cache for serialized statistics bundles.

Large bundles are split across several rows (parts) so a single entry never
exceeds ``max_part_chars``. An entry is only returned when every part is
present and unexpired.
"""

import logging
import sqlite3
import time
from collections.abc import Callable
from pathlib import Path

from pydantic import ValidationError

from mailtriage.schemas.triage import HistoricalStatistics

logger = logging.getLogger(__name__)

DEFAULT_CACHE_KEY = "historical_statistics_v4"
DEFAULT_MAX_PART_CHARS = 95_000


class StatisticsCache:
    """Persistent multi-part cache keyed by name.

    Usage::

        with StatisticsCache("/path/to/cache.db") as cache:
            cache.put("stats", bundle, ttl_seconds=6 * 3600)
            bundle = cache.get("stats")
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        max_part_chars: int = DEFAULT_MAX_PART_CHARS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_part_chars <= 0:
            raise ValueError("max_part_chars must be positive")
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._max_part_chars = max_part_chars
        self._clock = clock
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS stats_cache (
                cache_key   TEXT NOT NULL,
                part        INTEGER NOT NULL,
                part_count  INTEGER NOT NULL,
                payload     TEXT NOT NULL,
                expires_at  REAL NOT NULL,
                PRIMARY KEY (cache_key, part)
            )
            """
        )
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "StatisticsCache":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def get(self, key: str = DEFAULT_CACHE_KEY) -> HistoricalStatistics | None:
        """Return the cached bundle, or None if missing, partial or expired."""
        rows = self._conn.execute(
            "SELECT part, part_count, payload FROM stats_cache "
            "WHERE cache_key = ? AND expires_at > ? ORDER BY part",
            (key, self._clock()),
        ).fetchall()
        if not rows:
            return None

        part_count = rows[0][1]
        if len(rows) != part_count or [r[0] for r in rows] != list(range(part_count)):
            logger.warning("Statistics cache entry %s is incomplete, ignoring", key)
            return None

        payload = "".join(r[2] for r in rows)
        try:
            return HistoricalStatistics.model_validate_json(payload)
        except ValidationError:
            logger.warning("Statistics cache entry %s is corrupt, ignoring", key, exc_info=True)
            return None

    def put(
        self,
        key: str,
        stats: HistoricalStatistics,
        *,
        ttl_seconds: float,
    ) -> int:
        """Store a bundle, replacing any previous entry. Returns the part count."""
        payload = stats.model_dump_json()
        size = self._max_part_chars
        parts = [payload[i : i + size] for i in range(0, len(payload), size)] or [""]
        expires_at = self._clock() + ttl_seconds

        with self._conn:
            self._conn.execute("DELETE FROM stats_cache WHERE cache_key = ?", (key,))
            self._conn.executemany(
                "INSERT INTO stats_cache (cache_key, part, part_count, payload, expires_at) "
                "VALUES (?, ?, ?, ?, ?)",
                [(key, i, len(parts), chunk, expires_at) for i, chunk in enumerate(parts)],
            )
        logger.debug("Cached statistics under %s in %d part(s)", key, len(parts))
        return len(parts)

    def clear(self, key: str | None = None) -> int:
        """Remove one entry (or all entries). Returns the number of rows deleted."""
        with self._conn:
            if key is None:
                cur = self._conn.execute("DELETE FROM stats_cache")
            else:
                cur = self._conn.execute("DELETE FROM stats_cache WHERE cache_key = ?", (key,))
        return cur.rowcount
