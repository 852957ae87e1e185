"""Async SQLite database manager for the persistent price cache.

Uses aiosqlite for non-blocking database operations with WAL mode so a
running batch can persist while another process reads.
"""

import os
from typing import Self

import aiosqlite

from ledger.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

# price is NULL for a minute the provider had no data for
_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS historical_prices (
    mint TEXT NOT NULL,
    bucket INTEGER NOT NULL,
    price TEXT,
    fetched_at INTEGER NOT NULL,
    PRIMARY KEY (mint, bucket)
);
"""


class PriceCacheDatabase:
    """Async SQLite connection manager for cached historical prices.

    Usage:
        async with PriceCacheDatabase("data/prices.db") as database:
            store = PriceCacheStore(database)
            await store.load_into(cache)
    """

    def __init__(self, db_path: str = "data/prices.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        """Open the connection, configure pragmas, and create the schema.

        Creates the parent directory if it does not exist.
        """
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)

        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA synchronous=NORMAL")

        await self._connection.executescript(_CREATE_TABLES_SQL)
        await self._connection.commit()
        await self._ensure_schema_version()

        logger.info("price_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection if open."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("price_db_closed", db_path=self._db_path)

    async def _ensure_schema_version(self) -> None:
        assert self._connection is not None
        cursor = await self._connection.execute("SELECT version FROM schema_version LIMIT 1")
        row = await cursor.fetchone()
        if row is None:
            await self._connection.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            await self._connection.commit()
            logger.info("schema_version_set", version=SCHEMA_VERSION)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
