"""Shared test fixtures for the strategy ledger."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from ledger.config import PriceHistorySettings
from ledger.models import MintData
from ledger.prices.cache import InMemoryPriceCache
from ledger.prices.client import PriceHistoryClient, PricePoint, PriceResponse

SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


@pytest.fixture
def price_settings() -> PriceHistorySettings:
    """Provider settings with no spacing or cooldown so tests run instantly."""
    return PriceHistorySettings(
        api_key="test-api-key",
        min_request_interval=0.0,
        rate_limit_cooldown=0.0,
    )


@pytest.fixture
def cache() -> InMemoryPriceCache:
    return InMemoryPriceCache()


@pytest.fixture
def mock_client() -> AsyncMock:
    """Price client that prices every minute at 1.5 unless a test overrides it."""
    client = AsyncMock(spec=PriceHistoryClient)

    async def _fetch(mint: str, bucket: int, api_key: str) -> PriceResponse:
        return PriceResponse(
            status_code=200,
            success=True,
            items=[PricePoint(address=mint, unix_time=bucket, value=Decimal("1.5"))],
        )

    client.fetch_minute.side_effect = _fetch
    return client


@pytest.fixture
def mints() -> dict[str, MintData]:
    """SOL (9 decimals) and USDC (6 decimals) metadata keyed by address."""
    return {
        SOL_MINT: MintData(address=SOL_MINT, symbol="SOL", decimals=9, name="Wrapped SOL"),
        USDC_MINT: MintData(address=USDC_MINT, symbol="USDC", decimals=6, name="USD Coin"),
    }
