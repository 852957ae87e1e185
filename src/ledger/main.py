"""Entry point: rebuild a strategy timeline from saved provider records and price it.

Reads a JSON document of already-fetched order-data provider records,
aggregates them into events, resolves the missing historical USD prices
through the rate-limited fetcher, and prints one export row per event as
JSON on stdout (logs go to stderr).

Input document:
    {
        "address": "<owner wallet>",
        "mints": [{"address", "symbol", "decimals", "name", "logoURI"}],
        "records": {"<record schema>": [<provider payload>, ...]},
        "selected_keys": ["<strategy key>", ...]      # optional
    }

SIGINT/SIGTERM cancel the running price batch; rows are still printed with
whatever prices resolved before the signal.
"""

import argparse
import asyncio
import json
import signal
import sys
from contextlib import AsyncExitStack
from decimal import Decimal

from ledger.config import AppSettings
from ledger.events import (
    EventAggregator,
    RecordSchema,
    StaticMintDataProvider,
    StaticOrderDataProvider,
)
from ledger.exceptions import MissingCredentialError
from ledger.logging import get_logger, setup_logging
from ledger.models import MintData
from ledger.prices import (
    BirdeyeClient,
    InMemoryPriceCache,
    PriceCacheDatabase,
    PriceCacheStore,
    RateLimitedPriceFetcher,
    get_required_price_keys,
    partition_cached,
)
from ledger.valuation import build_export_rows


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ledger-prices",
        description="Price a strategy timeline from saved order records.",
    )
    parser.add_argument("records", help="Path to the JSON records document")
    parser.add_argument("--address", help="Owner wallet (overrides the document)")
    return parser.parse_args(argv)


def _setup_signal_handlers(cancel_event: asyncio.Event) -> None:
    """Route SIGINT/SIGTERM to the batch cancellation event.

    Must be called after the asyncio event loop is running.
    """
    logger = get_logger("ledger.main")
    loop = asyncio.get_running_loop()

    def _cancel_handler() -> None:
        logger.info("cancel_signal_received")
        cancel_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _cancel_handler)


def _load_mints(document: dict) -> list[MintData]:
    return [
        MintData(
            address=item["address"],
            symbol=item.get("symbol", ""),
            decimals=int(item["decimals"]),
            name=item.get("name", ""),
            logo_uri=item.get("logoURI", ""),
        )
        for item in document.get("mints", [])
    ]


async def run(argv: list[str] | None = None) -> list[dict[str, str]]:
    """Run one aggregation and pricing pass. Returns the export rows."""
    # 1. Load settings and logging
    settings = AppSettings()
    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("ledger.main")
    args = _parse_args(argv)

    with open(args.records, encoding="utf-8") as f:
        document = json.load(f, parse_float=Decimal)
    address = args.address or document.get("address", "")

    # 2. Aggregate events across every provider schema
    providers = [
        StaticOrderDataProvider(RecordSchema(schema), payloads)
        for schema, payloads in document.get("records", {}).items()
    ]
    selected = document.get("selected_keys")
    events = await EventAggregator().collect(
        providers, address, set(selected) if selected is not None else None
    )

    mint_provider = StaticMintDataProvider(_load_mints(document))
    required = get_required_price_keys(events)
    mints = {
        mint.address: mint
        for mint in await mint_provider.get_mint_data(key.mint for key in required)
    }

    cancel_event = asyncio.Event()
    _setup_signal_handlers(cancel_event)

    cache = InMemoryPriceCache()
    client = BirdeyeClient(settings.price_history)

    async with AsyncExitStack() as stack:
        store: PriceCacheStore | None = None
        if settings.cache.enabled:
            database = await stack.enter_async_context(PriceCacheDatabase(settings.cache.db_path))
            store = PriceCacheStore(database)
            await store.load_into(cache)
        stack.push_async_callback(client.close)

        # 3. Fetch only the gaps
        partition = partition_cached(required, cache)
        prices = dict(partition.already_resolved)
        logger.info(
            "price_lookups_partitioned",
            events=len(events),
            cached=len(partition.already_resolved),
            to_fetch=len(partition.still_needed),
        )

        if partition.still_needed:
            fetcher = RateLimitedPriceFetcher(client, cache, settings.price_history)
            try:
                prices.update(
                    await fetcher.fetch_prices(
                        partition.still_needed,
                        settings.price_history.api_key.get_secret_value(),
                        cancel_event,
                    )
                )
            except MissingCredentialError as e:
                logger.warning("prices_skipped", reason=str(e))

        # 4. Persist everything resolved so far, including "no data" minutes
        if store is not None:
            await store.save(cache.items())

    return build_export_rows(
        events,
        mints,
        prices,
        settings.display.usd_precision,
        settings.display.min_rate_precision,
    )


def main() -> None:
    """Synchronous entry point."""
    rows = asyncio.run(run())
    json.dump(rows, sys.stdout, indent=2)
    sys.stdout.write("\n")


if __name__ == "__main__":
    main()
