"""Typed read/write access to persisted historical prices.

CRITICAL: Prices are stored as TEXT and restored as Decimal. Rows are only
ever inserted (INSERT OR IGNORE): a persisted minute never changes.
"""

import time
from collections.abc import Iterable
from decimal import Decimal

from ledger.logging import get_logger
from ledger.prices.cache import NO_DATA, CachedPrice, PriceCache, PriceKey
from ledger.prices.database import PriceCacheDatabase

logger = get_logger(__name__)


class PriceCacheStore:
    """Persists PriceCache entries between runs.

    Usage:
        async with PriceCacheDatabase(settings.cache.db_path) as database:
            store = PriceCacheStore(database)
            await store.load_into(cache)
            ...
            await store.save(cache.items())
    """

    def __init__(self, database: PriceCacheDatabase) -> None:
        self._database = database

    async def save(self, entries: Iterable[tuple[PriceKey, CachedPrice]]) -> int:
        """Persist entries, skipping keys already stored.

        Returns the number of newly inserted rows.
        """
        now_s = int(time.time())
        data = [
            (key.mint, key.bucket, None if value is NO_DATA else str(value), now_s)
            for key, value in entries
        ]
        if not data:
            return 0

        cursor = await self._database.db.executemany(
            "INSERT OR IGNORE INTO historical_prices (mint, bucket, price, fetched_at) "
            "VALUES (?, ?, ?, ?)",
            data,
        )
        await self._database.db.commit()

        inserted = cursor.rowcount
        logger.debug("saved_prices", total=len(data), inserted=inserted)
        return inserted

    async def load_into(self, cache: PriceCache) -> int:
        """Copy every persisted entry into `cache`. Returns the row count."""
        cursor = await self._database.db.execute(
            "SELECT mint, bucket, price FROM historical_prices"
        )
        rows = await cursor.fetchall()
        for mint, minute, price in rows:
            cache.set(PriceKey(mint, minute), NO_DATA if price is None else Decimal(price))

        logger.info("loaded_cached_prices", count=len(rows))
        return len(rows)

    async def get_price(self, key: PriceKey) -> CachedPrice | None:
        """Read a single entry; None when the minute was never stored."""
        cursor = await self._database.db.execute(
            "SELECT price FROM historical_prices WHERE mint = ? AND bucket = ?",
            (key.mint, key.bucket),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return NO_DATA if row[0] is None else Decimal(row[0])
