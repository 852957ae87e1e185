"""Historical price layer -- minute buckets, cache boundary, provider client, fetcher."""

from ledger.prices.buckets import BUCKET_SECONDS, bucket
from ledger.prices.cache import NO_DATA, CachedPrice, InMemoryPriceCache, PriceCache, PriceKey
from ledger.prices.client import BirdeyeClient, PriceHistoryClient, PricePoint, PriceResponse
from ledger.prices.database import PriceCacheDatabase
from ledger.prices.fetcher import BatchReport, KeyStatus, RateLimitedPriceFetcher
from ledger.prices.keys import PartitionedKeys, get_required_price_keys, partition_cached
from ledger.prices.store import PriceCacheStore

__all__ = [
    "BUCKET_SECONDS",
    "NO_DATA",
    "BatchReport",
    "BirdeyeClient",
    "CachedPrice",
    "InMemoryPriceCache",
    "KeyStatus",
    "PartitionedKeys",
    "PriceCache",
    "PriceCacheDatabase",
    "PriceCacheStore",
    "PriceHistoryClient",
    "PriceKey",
    "PricePoint",
    "PriceResponse",
    "RateLimitedPriceFetcher",
    "bucket",
    "get_required_price_keys",
    "partition_cached",
]
