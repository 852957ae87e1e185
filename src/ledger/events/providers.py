"""Contracts for the external order-data and token-metadata providers.

Pagination, HTTP details and metadata caching live behind these interfaces;
the aggregator only sees complete record lists. The static implementations
serve records that were fetched earlier (e.g. loaded from a JSON export).
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable

from ledger.events.normalize import ProviderRecord, RecordSchema
from ledger.models import MintData


class OrderDataProvider(ABC):
    """Abstract source of strategy/fill records for one product schema."""

    @property
    @abstractmethod
    def schema(self) -> RecordSchema:
        """Schema of every record this provider returns."""
        ...

    @abstractmethod
    async def fetch_records(self, address: str) -> list[ProviderRecord]:
        """Return all records owned by `address`, every page included."""
        ...


class MintDataProvider(ABC):
    """Abstract token-metadata lookup; decimals interpret raw amounts."""

    @abstractmethod
    async def get_mint_data(self, addresses: Iterable[str]) -> list[MintData]:
        """Return metadata for the known subset of `addresses`."""
        ...


class StaticOrderDataProvider(OrderDataProvider):
    """Serves a fixed list of payloads for one schema, filtered by owner.

    Payloads without a user field are treated as belonging to every address.
    """

    _OWNER_FIELDS = ("userKey", "userPubkey", "user")

    def __init__(self, schema: RecordSchema, payloads: Iterable[dict]) -> None:
        self._schema = schema
        self._payloads = list(payloads)

    @property
    def schema(self) -> RecordSchema:
        return self._schema

    async def fetch_records(self, address: str) -> list[ProviderRecord]:
        return [
            ProviderRecord(self._schema, payload)
            for payload in self._payloads
            if self._owner(payload) in (None, address)
        ]

    def _owner(self, payload: dict) -> str | None:
        for field_name in self._OWNER_FIELDS:
            if payload.get(field_name):
                return payload[field_name]
        return None


class StaticMintDataProvider(MintDataProvider):
    """Serves token metadata from a preloaded list."""

    def __init__(self, mints: Iterable[MintData]) -> None:
        self._mints = {mint.address: mint for mint in mints}

    async def get_mint_data(self, addresses: Iterable[str]) -> list[MintData]:
        return [self._mints[address] for address in dict.fromkeys(addresses) if address in self._mints]
