"""Rate-limited, retrying, cancellable historical price fetcher.

Resolves (mint, timestamp) lookups against the price history provider one
request at a time, because the provider's quota (about 100 requests per
minute per key) is shared by everything using that key.

Per-key lifecycle:
    unfetched -> in_flight -> fetched | fetched_missing | failed
All three end states are terminal and never block sibling keys.

Guarantees:
- Keys are bucketed to the minute and deduplicated; cached keys are skipped.
- Requests are spaced by min_request_interval across every batch on this
  fetcher, and a 429 pushes the next slot out by the cooldown for all of them.
- A 429 is retried exactly once after the cooldown; a second failure marks
  the key failed and the batch moves on.
- Overlapping batches never double-request a key: a key already in flight
  is awaited through the in-flight registry instead.
- The cancellation event is honoured before each key and interrupts any
  pending delay or request; the batch returns what resolved so far.
- Only a missing API key raises. Failures surface as absent keys.
"""

import asyncio
import time
import uuid
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from decimal import Decimal
from enum import Enum

import structlog

from ledger.cancellation import await_unless_cancelled, cancellable_delay
from ledger.config import PriceHistorySettings
from ledger.exceptions import BatchCancelled, MissingCredentialError
from ledger.logging import get_logger
from ledger.prices.buckets import bucket
from ledger.prices.cache import NO_DATA, CachedPrice, PriceCache, PriceKey
from ledger.prices.client import PriceHistoryClient, PriceResponse

logger = get_logger(__name__)

MAX_RATE_LIMIT_RETRIES = 1


class KeyStatus(str, Enum):
    """Fetch state of a single (mint, bucket) key."""

    UNFETCHED = "unfetched"
    IN_FLIGHT = "in_flight"
    FETCHED = "fetched"
    FETCHED_MISSING = "fetched_missing"
    FAILED = "failed"


@dataclass(frozen=True)
class _Outcome:
    status: KeyStatus
    price: Decimal | None = None


# Published to waiters when the owning batch was cancelled mid-request
_ABANDONED = _Outcome(KeyStatus.UNFETCHED)


@dataclass
class BatchReport:
    """Counters for one fetch_prices call, logged when the batch ends."""

    batch_id: str
    requested: int = 0
    from_cache: int = 0
    resolved: int = 0
    missing: int = 0
    failed: int = 0
    coalesced: int = 0
    network_calls: int = 0
    cancelled: bool = False


class RateLimitedPriceFetcher:
    """Serialized price fetcher writing through an injected PriceCache.

    Usage:
        fetcher = RateLimitedPriceFetcher(client, cache, settings.price_history)
        prices = await fetcher.fetch_prices(still_needed, api_key, cancel_event)
    """

    def __init__(
        self,
        client: PriceHistoryClient,
        cache: PriceCache,
        settings: PriceHistorySettings,
    ) -> None:
        self._client = client
        self._cache = cache
        self._settings = settings
        self._in_flight: dict[PriceKey, asyncio.Future[_Outcome]] = {}
        self._statuses: dict[PriceKey, KeyStatus] = {}
        self._next_slot = 0.0
        self.last_report: BatchReport | None = None

    # ──────────────────────────────────────────────
    # Public methods
    # ──────────────────────────────────────────────

    async def fetch_prices(
        self,
        keys: Iterable[tuple[str, int]],
        api_key: str,
        cancel_event: asyncio.Event | None = None,
    ) -> dict[PriceKey, Decimal]:
        """Resolve USD prices for (mint, timestamp) lookups.

        Args:
            keys: Lookups in processing order; timestamps need not be bucketed.
            api_key: Provider credential, sent per request and never stored.
            cancel_event: Setting it stops the batch at the next suspension point.

        Returns:
            Price per bucketed key for every key that resolved, including keys
            already in the cache. Failed, missing and unreached keys are absent.

        Raises:
            MissingCredentialError: If api_key is empty (before any request).
        """
        if not api_key:
            raise MissingCredentialError("A price API key is required to fetch historical prices")
        if cancel_event is None:
            cancel_event = asyncio.Event()

        report = BatchReport(batch_id=uuid.uuid4().hex[:8])
        prices: dict[PriceKey, Decimal] = {}
        pending: list[PriceKey] = []

        for key in _unique_bucketed(keys):
            report.requested += 1
            cached = self._cache.get(key)
            if cached is None:
                pending.append(key)
                continue
            report.from_cache += 1
            if isinstance(cached, Decimal):
                prices[key] = cached

        with structlog.contextvars.bound_contextvars(batch_id=report.batch_id):
            logger.info(
                "price_batch_started",
                requested=report.requested,
                to_fetch=len(pending),
            )

            for key in pending:
                if cancel_event.is_set():
                    report.cancelled = True
                    break
                try:
                    outcome = await self._resolve(key, api_key, cancel_event, report)
                except BatchCancelled:
                    report.cancelled = True
                    break
                self._record(key, outcome, prices, report)

            self.last_report = report
            summary = asdict(report)
            summary.pop("batch_id")
            logger.info("price_batch_complete", **summary)

        return prices

    def status(self, key: PriceKey) -> KeyStatus:
        """Return the fetch state of a bucketed key."""
        status = self._statuses.get(key)
        if status is not None:
            return status
        return _status_from_cached(self._cache.get(key))

    # ──────────────────────────────────────────────
    # Per-key resolution
    # ──────────────────────────────────────────────

    async def _resolve(
        self,
        key: PriceKey,
        api_key: str,
        cancel_event: asyncio.Event,
        report: BatchReport,
    ) -> _Outcome:
        """Fetch one key, or join the request another batch already has in flight."""
        shared = self._in_flight.get(key)
        if shared is not None:
            report.coalesced += 1
        while shared is not None:
            outcome = await await_unless_cancelled(asyncio.shield(shared), cancel_event)
            if outcome is not _ABANDONED:
                return outcome
            # The owner was cancelled; another waiter may have taken over
            shared = self._in_flight.get(key)

        cached = self._cache.get(key)
        if cached is not None:
            return _Outcome(_status_from_cached(cached), cached if isinstance(cached, Decimal) else None)

        future: asyncio.Future[_Outcome] = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        self._statuses[key] = KeyStatus.IN_FLIGHT
        outcome = _ABANDONED
        try:
            outcome = await self._request_with_retry(key, api_key, cancel_event, report)
        finally:
            del self._in_flight[key]
            self._statuses[key] = outcome.status
            future.set_result(outcome)
        return outcome

    async def _request_with_retry(
        self,
        key: PriceKey,
        api_key: str,
        cancel_event: asyncio.Event,
        report: BatchReport,
    ) -> _Outcome:
        """Issue the request, retrying once after a cooldown on a 429."""
        attempts = 0
        while True:
            await self._wait_for_slot(cancel_event)
            attempts += 1
            report.network_calls += 1
            response = await await_unless_cancelled(
                self._client.fetch_minute(key.mint, key.bucket, api_key),
                cancel_event,
            )
            if not response.is_rate_limited:
                break
            if attempts > MAX_RATE_LIMIT_RETRIES:
                logger.error(
                    "price_rate_limit_retry_failed",
                    mint=key.mint,
                    bucket=key.bucket,
                    attempts=attempts,
                )
                return _Outcome(KeyStatus.FAILED)

            logger.warning(
                "price_rate_limited",
                mint=key.mint,
                bucket=key.bucket,
                cooldown_seconds=self._settings.rate_limit_cooldown,
            )
            self._start_cooldown()

        return self._interpret(key, response)

    def _interpret(self, key: PriceKey, response: PriceResponse) -> _Outcome:
        """Turn a non-429 response into an outcome, writing the cache."""
        if not response.ok:
            logger.error(
                "price_fetch_failed",
                mint=key.mint,
                bucket=key.bucket,
                status=response.status_code,
                error=response.error,
            )
            return _Outcome(KeyStatus.FAILED)

        price = response.items[0].value if response.items else None
        if price is not None and price > 0:
            self._cache.set(key, price)
            return _Outcome(KeyStatus.FETCHED, price)

        if price is not None:
            logger.warning("price_not_positive", mint=key.mint, bucket=key.bucket, price=str(price))
        if self._settings.cache_empty_results:
            self._cache.set(key, NO_DATA)
        logger.info("price_not_available", mint=key.mint, bucket=key.bucket)
        return _Outcome(KeyStatus.FETCHED_MISSING)

    # ──────────────────────────────────────────────
    # Request spacing
    # ──────────────────────────────────────────────

    async def _wait_for_slot(self, cancel_event: asyncio.Event) -> None:
        """Reserve the next request slot and sleep until it opens.

        Reservation happens before the first await, so concurrent batches
        on the same event loop always get distinct, spaced slots.
        """
        now = time.monotonic()
        start = max(now, self._next_slot)
        self._next_slot = start + self._settings.min_request_interval
        if not await cancellable_delay(start - now, cancel_event):
            raise BatchCancelled()

    def _start_cooldown(self) -> None:
        cooldown_end = time.monotonic() + self._settings.rate_limit_cooldown
        self._next_slot = max(self._next_slot, cooldown_end)

    @staticmethod
    def _record(
        key: PriceKey,
        outcome: _Outcome,
        prices: dict[PriceKey, Decimal],
        report: BatchReport,
    ) -> None:
        if outcome.status is KeyStatus.FETCHED and outcome.price is not None:
            prices[key] = outcome.price
            report.resolved += 1
        elif outcome.status is KeyStatus.FETCHED_MISSING:
            report.missing += 1
        else:
            report.failed += 1


def _unique_bucketed(keys: Iterable[tuple[str, int]]) -> list[PriceKey]:
    """Bucket timestamps and drop repeats, keeping first-seen order."""
    unique: dict[PriceKey, None] = {}
    for mint, timestamp in keys:
        unique.setdefault(PriceKey(mint, bucket(timestamp)))
    return list(unique)


def _status_from_cached(cached: CachedPrice | None) -> KeyStatus:
    if cached is None:
        return KeyStatus.UNFETCHED
    if cached is NO_DATA:
        return KeyStatus.FETCHED_MISSING
    return KeyStatus.FETCHED
