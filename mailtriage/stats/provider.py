"""Statistics sources and the caching provider handed to the classifier.

The provider serves a read-only HistoricalStatistics bundle, rebuilding it
from its source when the TTL runs out. At most one rebuild runs at a time;
other callers get the stale bundle meanwhile instead of blocking.
"""

import csv
import logging
import os
import tempfile
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from mailtriage.schemas.triage import HistoricalStatistics
from mailtriage.stats.builder import build_statistics
from mailtriage.stats.cache import DEFAULT_CACHE_KEY, StatisticsCache

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 6 * 60 * 60


class StatisticsSource(Protocol):
    def load(self) -> HistoricalStatistics | None: ...


class JsonStatisticsSource:
    """Reads a statistics snapshot written with ``model_dump_json()``."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def load(self) -> HistoricalStatistics | None:
        if not self._path.exists():
            logger.info("Statistics snapshot not found at %s", self._path)
            return None
        return HistoricalStatistics.model_validate_json(self._path.read_text())


def write_snapshot(path: str | Path, stats: HistoricalStatistics) -> None:
    """Atomic write of a JSON snapshot readable by JsonStatisticsSource."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(stats.model_dump_json(indent=2))
        os.replace(tmp_path, str(path))
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
    logger.info("Wrote statistics snapshot to %s", path)


class CsvStatisticsSource:
    """Builds statistics from ``senders.csv``, ``keywords.csv`` and ``labels.csv``.

    Any of the three files may be missing; the directory itself must exist.
    """

    SENDERS_FILE = "senders.csv"
    KEYWORDS_FILE = "keywords.csv"
    LABELS_FILE = "labels.csv"

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)

    def _rows(self, name: str) -> list[dict[str, str]]:
        path = self._dir / name
        if not path.exists():
            return []
        with path.open(newline="") as f:
            return list(csv.DictReader(f))

    def load(self) -> HistoricalStatistics | None:
        if not self._dir.is_dir():
            logger.info("Statistics directory not found at %s", self._dir)
            return None
        return build_statistics(
            self._rows(self.SENDERS_FILE),
            self._rows(self.KEYWORDS_FILE),
            self._rows(self.LABELS_FILE),
        )


def source_for_path(path: str | Path) -> StatisticsSource:
    """Pick a source by path shape: directory -> CSV exports, file -> JSON snapshot."""
    path = Path(path)
    if path.is_dir() or not path.suffix:
        return CsvStatisticsSource(path)
    return JsonStatisticsSource(path)


class CachedStatisticsProvider:
    """TTL-cached statistics with single-flight rebuilds.

    Usage::

        provider = CachedStatisticsProvider(JsonStatisticsSource("stats.json"))
        classifier = TriageClassifier(config, provider=provider)
    """

    def __init__(
        self,
        source: StatisticsSource,
        *,
        cache: StatisticsCache | None = None,
        cache_key: str = DEFAULT_CACHE_KEY,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._cache = cache
        self._cache_key = cache_key
        self._ttl = ttl_seconds
        self._clock = clock
        self._stats: HistoricalStatistics | None = None
        self._loaded_at: float | None = None
        self._rebuild_lock = threading.Lock()

    def _is_fresh(self) -> bool:
        return self._loaded_at is not None and self._clock() - self._loaded_at < self._ttl

    def get(self) -> HistoricalStatistics | None:
        """Return the current bundle, rebuilding it if the TTL has expired."""
        if self._is_fresh():
            return self._stats

        if not self._rebuild_lock.acquire(blocking=False):
            if self._loaded_at is not None:
                logger.debug("Statistics rebuild in progress, serving stale bundle")
                return self._stats
            # Nothing to serve yet: wait for the first build to finish.
            with self._rebuild_lock:
                return self._stats

        try:
            if not self._is_fresh():
                self._refresh()
            return self._stats
        finally:
            self._rebuild_lock.release()

    def _refresh(self) -> None:
        if self._cache is not None:
            cached = self._cache.get(self._cache_key)
            if cached is not None:
                logger.info("Loaded historical statistics from cache")
                self._set(cached)
                return

        try:
            stats = self._source.load()
        except Exception:
            logger.exception("Error loading historical statistics")
            return

        if stats is None:
            if self._stats is not None:
                logger.warning("Statistics source returned nothing, keeping stale bundle")
                return
            logger.warning("No historical statistics available, using rules only")
            self._set(None)
            return

        self._set(stats)
        if self._cache is not None:
            self._cache.put(self._cache_key, stats, ttl_seconds=self._ttl)

    def _set(self, stats: HistoricalStatistics | None) -> None:
        self._stats = stats
        self._loaded_at = self._clock()

    def invalidate(self) -> None:
        """Drop the in-memory bundle and the persistent cache entry."""
        with self._rebuild_lock:
            self._stats = None
            self._loaded_at = None
            if self._cache is not None:
                self._cache.clear(self._cache_key)
        logger.info("Historical statistics cache cleared")
