"""Price cache boundary keyed by (mint, minute bucket).

Past-minute prices never change, so entries live forever: the cache is only
ever extended, never invalidated, and an entry is immutable once written.
A minute the provider has no data for is stored as the NO_DATA marker so it
is not re-requested on every batch.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from decimal import Decimal
from typing import NamedTuple


class PriceKey(NamedTuple):
    """Cache and fetch key: token mint plus minute-aligned unix timestamp."""

    mint: str
    bucket: int


class _NoData:
    """Marker for a minute the provider reported no price for."""

    _instance: "_NoData | None" = None

    def __new__(cls) -> "_NoData":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_DATA"

    def __bool__(self) -> bool:
        return False


NO_DATA = _NoData()

CachedPrice = Decimal | _NoData


class PriceCache(ABC):
    """Abstract key-value store injected into the fetcher and key helpers."""

    @abstractmethod
    def get(self, key: PriceKey) -> CachedPrice | None:
        """Return the cached price, NO_DATA, or None if never resolved."""
        ...

    @abstractmethod
    def set(self, key: PriceKey, value: CachedPrice) -> None:
        """Record a resolved price. Existing entries are left untouched."""
        ...

    @abstractmethod
    def has(self, key: PriceKey) -> bool:
        """Return True if the key has a price or NO_DATA entry."""
        ...


class InMemoryPriceCache(PriceCache):
    """Dict-backed cache; the default for one process lifetime.

    Persisted across runs by PriceCacheStore (load_into / save).
    """

    def __init__(self) -> None:
        self._entries: dict[PriceKey, CachedPrice] = {}

    def get(self, key: PriceKey) -> CachedPrice | None:
        return self._entries.get(key)

    def set(self, key: PriceKey, value: CachedPrice) -> None:
        self._entries.setdefault(key, value)

    def has(self, key: PriceKey) -> bool:
        return key in self._entries

    def items(self) -> Iterator[tuple[PriceKey, CachedPrice]]:
        return iter(list(self._entries.items()))

    def __len__(self) -> int:
        return len(self._entries)
