"""Tests for the in-memory price cache and its SQLite persistence."""

from decimal import Decimal

import pytest

from ledger.prices.cache import NO_DATA, InMemoryPriceCache, PriceKey
from ledger.prices.database import PriceCacheDatabase
from ledger.prices.store import PriceCacheStore

MINT = "So11111111111111111111111111111111111111112"


class TestInMemoryPriceCache:
    """Entries are write-once; NO_DATA is a resolved but empty minute."""

    def test_get_missing_returns_none(self, cache: InMemoryPriceCache) -> None:
        assert cache.get(PriceKey(MINT, 0)) is None
        assert not cache.has(PriceKey(MINT, 0))

    def test_set_then_get(self, cache: InMemoryPriceCache) -> None:
        cache.set(PriceKey(MINT, 60), Decimal("142.17"))
        assert cache.get(PriceKey(MINT, 60)) == Decimal("142.17")
        assert cache.has(PriceKey(MINT, 60))

    def test_existing_entry_is_not_overwritten(self, cache: InMemoryPriceCache) -> None:
        cache.set(PriceKey(MINT, 60), Decimal("142.17"))
        cache.set(PriceKey(MINT, 60), Decimal("1"))
        assert cache.get(PriceKey(MINT, 60)) == Decimal("142.17")

    def test_no_data_marker(self, cache: InMemoryPriceCache) -> None:
        cache.set(PriceKey(MINT, 120), NO_DATA)
        assert cache.has(PriceKey(MINT, 120))
        assert cache.get(PriceKey(MINT, 120)) is NO_DATA
        assert not NO_DATA


class TestPriceCacheStore:
    """PriceCacheStore round-trips entries through aiosqlite."""

    @pytest.mark.asyncio
    async def test_save_and_load(self, tmp_path) -> None:
        db_path = str(tmp_path / "prices.db")
        source = InMemoryPriceCache()
        source.set(PriceKey(MINT, 0), Decimal("142.170000001"))
        source.set(PriceKey(MINT, 60), NO_DATA)

        async with PriceCacheDatabase(db_path) as database:
            store = PriceCacheStore(database)
            assert await store.save(source.items()) == 2

        restored = InMemoryPriceCache()
        async with PriceCacheDatabase(db_path) as database:
            store = PriceCacheStore(database)
            assert await store.load_into(restored) == 2

        assert restored.get(PriceKey(MINT, 0)) == Decimal("142.170000001")
        assert restored.get(PriceKey(MINT, 60)) is NO_DATA

    @pytest.mark.asyncio
    async def test_persisted_entry_is_never_replaced(self, tmp_path) -> None:
        async with PriceCacheDatabase(str(tmp_path / "prices.db")) as database:
            store = PriceCacheStore(database)
            await store.save([(PriceKey(MINT, 0), Decimal("1.5"))])

            inserted = await store.save([(PriceKey(MINT, 0), Decimal("2.5"))])

            assert inserted == 0
            assert await store.get_price(PriceKey(MINT, 0)) == Decimal("1.5")

    @pytest.mark.asyncio
    async def test_get_price_unknown_minute(self, tmp_path) -> None:
        async with PriceCacheDatabase(str(tmp_path / "prices.db")) as database:
            store = PriceCacheStore(database)
            assert await store.get_price(PriceKey(MINT, 0)) is None
            assert await store.save([]) == 0

    @pytest.mark.asyncio
    async def test_creates_parent_directory(self, tmp_path) -> None:
        db_path = tmp_path / "nested" / "dir" / "prices.db"
        async with PriceCacheDatabase(str(db_path)):
            pass
        assert db_path.exists()

    def test_db_property_requires_connection(self) -> None:
        with pytest.raises(RuntimeError):
            PriceCacheDatabase(":memory:").db
