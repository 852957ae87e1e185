"""Event aggregation across strategy products.

Turns provider records from every product schema into one chronologically
sorted stream of Deposit and Trade events. Each pass is a pure transform;
no state survives between calls.

Ordering: ascending timestamp. Equal timestamps are broken by transaction
signature, then deposits before trades, then strategy key, so the output
does not depend on provider response order.
"""

import asyncio
from collections.abc import Collection, Iterable, Mapping, Sequence

from ledger.events.models import Deposit, Event
from ledger.events.normalize import NORMALIZERS, Normalizer, ProviderRecord, RecordSchema
from ledger.events.providers import OrderDataProvider
from ledger.exceptions import UnknownProductError
from ledger.logging import get_logger

logger = get_logger(__name__)


def event_sort_key(event: Event) -> tuple[int, str, int, str]:
    """Deterministic chronological ordering key for events."""
    kind_rank = 0 if isinstance(event, Deposit) else 1
    return (event.timestamp, event.transaction_signature, kind_rank, event.strategy_key)


class EventAggregator:
    """Normalizes and merges provider records into a sorted event list.

    Usage:
        aggregator = EventAggregator()
        events = await aggregator.collect(providers, address, selected_keys)
    """

    def __init__(self, normalizers: Mapping[RecordSchema, Normalizer] | None = None) -> None:
        self._normalizers = dict(NORMALIZERS if normalizers is None else normalizers)

    def aggregate(
        self,
        records: Iterable[ProviderRecord],
        selected_keys: Collection[str] | None = None,
    ) -> list[Event]:
        """Normalize records and return all events in chronological order.

        Args:
            records: Records from any mix of provider schemas.
            selected_keys: Strategy keys to keep; None keeps every strategy.

        Raises:
            UnknownProductError: If a record's schema has no normalizer.
            ProviderError: If a record is missing a required field.
        """
        events: list[Event] = []
        record_count = 0
        for record in records:
            record_count += 1
            normalizer = self._normalizers.get(record.schema)
            if normalizer is None:
                raise UnknownProductError(f"No normalizer for schema {record.schema!r}")
            if selected_keys is not None and record.strategy_key not in selected_keys:
                continue
            events.extend(normalizer(record.payload))

        events.sort(key=event_sort_key)
        logger.debug("events_aggregated", records=record_count, events=len(events))
        return events

    async def collect(
        self,
        providers: Sequence[OrderDataProvider],
        address: str,
        selected_keys: Collection[str] | None = None,
    ) -> list[Event]:
        """Fetch from every provider concurrently, then aggregate.

        The order-data endpoints are independent of the price provider's
        rate limit, so they are fanned out with asyncio.gather. A provider
        failure propagates to the caller.
        """
        batches = await asyncio.gather(
            *(provider.fetch_records(address) for provider in providers)
        )
        logger.info(
            "provider_records_collected",
            address=address,
            providers=len(providers),
            records=sum(len(batch) for batch in batches),
        )
        return self.aggregate(
            (record for batch in batches for record in batch),
            selected_keys,
        )
