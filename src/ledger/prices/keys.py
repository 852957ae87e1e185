"""Derivation of price lookups from an event stream.

Both helpers are pure: they read events and the cache, and never fetch.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

from ledger.events.models import Event, Trade
from ledger.prices.buckets import bucket
from ledger.prices.cache import CachedPrice, PriceCache, PriceKey


@dataclass
class PartitionedKeys:
    """Lookups split into those the cache answers and those still to fetch."""

    already_resolved: dict[PriceKey, CachedPrice] = field(default_factory=dict)
    still_needed: list[PriceKey] = field(default_factory=list)


def get_required_price_keys(events: Iterable[Event]) -> list[PriceKey]:
    """Return every (mint, bucket) lookup needed to value `events`.

    Trades need both input and output mint at the trade's minute; deposits
    need the input mint only. Keys are unique, in first-seen order.
    """
    keys: dict[PriceKey, None] = {}
    for event in events:
        minute = bucket(event.timestamp)
        keys.setdefault(PriceKey(event.input_mint, minute))
        if isinstance(event, Trade):
            keys.setdefault(PriceKey(event.output_mint, minute))
    return list(keys)


def partition_cached(
    keys: Iterable[tuple[str, int]],
    cache: PriceCache,
) -> PartitionedKeys:
    """Split lookups into cached entries and keys that still need a fetch.

    Accepts (mint, timestamp) pairs; timestamps are bucketed first, so
    several lookups in the same minute collapse into one key. Cached
    NO_DATA entries count as resolved.
    """
    result = PartitionedKeys()
    seen: set[PriceKey] = set()
    for mint, timestamp in keys:
        key = PriceKey(mint, bucket(timestamp))
        if key in seen:
            continue
        seen.add(key)
        cached = cache.get(key)
        if cached is None:
            result.still_needed.append(key)
        else:
            result.already_resolved[key] = cached
    return result
