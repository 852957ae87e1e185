"""Strategy event layer -- provider contracts, record normalization, aggregation."""

from ledger.events.aggregator import EventAggregator, event_sort_key
from ledger.events.models import Deposit, Event, Trade
from ledger.events.normalize import ProviderRecord, RecordSchema, parse_timestamp
from ledger.events.providers import (
    MintDataProvider,
    OrderDataProvider,
    StaticMintDataProvider,
    StaticOrderDataProvider,
)

__all__ = [
    "Deposit",
    "Event",
    "EventAggregator",
    "MintDataProvider",
    "OrderDataProvider",
    "ProviderRecord",
    "RecordSchema",
    "StaticMintDataProvider",
    "StaticOrderDataProvider",
    "Trade",
    "event_sort_key",
    "parse_timestamp",
]
