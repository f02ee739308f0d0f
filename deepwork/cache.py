"""Async access to the persisted insight cache.

Cache identity is the window: one row per (insight type, window start,
window end). Cache validity is the fingerprint stored with the row,
compared by the orchestrator. The blocking SQLite calls run in a worker
thread so concurrent insight requests are not blocked.
"""

import asyncio
import logging
import sqlite3
import time
from typing import Optional

from .errors import CacheUnavailable
from .models import CacheEntry
from .storage import InsightStorage

logger = logging.getLogger(__name__)

ONE_DAY = 24 * 60 * 60
ONE_WEEK = 7 * ONE_DAY
ONE_MONTH = 30 * ONE_DAY

_REFRESH_AGE = {
    "daily": ONE_DAY,
    "weekly": ONE_WEEK,
    "monthly": ONE_MONTH,
}

# Fraction of the nominal lifetime after which a refresh is suggested
REFRESH_FRACTION = 0.8


class InsightCache:
    """Reads and upserts cached insights through an InsightStorage.

    Attributes:
        storage: Backing store; passed in so tests can use a temporary file.
    """

    def __init__(self, storage: InsightStorage):
        self.storage = storage

    async def get(
        self,
        insight_type: str,
        window_start: int,
        window_end: int,
    ) -> Optional[CacheEntry]:
        """Look up the entry for a key.

        Raises:
            CacheUnavailable: If the store cannot be read.
        """
        try:
            row = await asyncio.to_thread(
                self.storage.get_cached_insight, insight_type, window_start, window_end
            )
        except (RuntimeError, sqlite3.Error) as e:
            raise CacheUnavailable(f"Cache read failed for {insight_type}: {e}") from e
        return CacheEntry.from_row(row) if row else None

    async def put(self, entry: CacheEntry) -> bool:
        """Upsert an entry on its (type, start, end) key.

        Raises:
            CacheUnavailable: If the store cannot be written.
        """
        try:
            entry.id = await asyncio.to_thread(
                self.storage.save_cached_insight,
                entry.insight_type,
                entry.time_period_start,
                entry.time_period_end,
                entry.data_hash,
                entry.insight_text,
                entry.generated_at,
            )
        except (RuntimeError, sqlite3.Error) as e:
            raise CacheUnavailable(f"Cache write failed for {entry.insight_type}: {e}") from e
        return True

    async def purge(self, before: int) -> int:
        """Delete entries whose window ended before a timestamp."""
        try:
            return await asyncio.to_thread(self.storage.delete_insights_older_than, before)
        except (RuntimeError, sqlite3.Error) as e:
            raise CacheUnavailable(f"Cache purge failed: {e}") from e


def is_refresh_due(entry: Optional[CacheEntry], kind: str, now: float = None) -> bool:
    """Suggest a background refresh for an aging entry.

    Advisory only: the host app may use it to pre-warm insights. It never
    affects whether an entry is valid, which depends on the fingerprint.

    Args:
        entry: Cached entry, or None.
        kind: Insight kind ("daily", "weekly", "monthly", "activity").
        now: Current Unix time (defaults to time.time()).

    Returns:
        True if there is no entry or it is older than 80% of its kind's
        nominal lifetime (one week for activity insights).
    """
    if entry is None:
        return True
    if now is None:
        now = time.time()
    lifetime = _REFRESH_AGE.get(kind, ONE_WEEK)
    return now - entry.generated_at > lifetime * REFRESH_FRACTION
