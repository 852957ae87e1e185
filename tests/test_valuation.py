"""Tests for USD valuation and export rows, including the full pipeline.

Pipeline: events -> required keys -> cache partition -> fetcher -> valuation.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from ledger.config import PriceHistorySettings
from ledger.events.models import Deposit, Trade
from ledger.models import AdjustedAmount, MintData, RawAmount, StrategyType
from ledger.prices.cache import NO_DATA, InMemoryPriceCache, PriceKey
from ledger.prices.client import PricePoint, PriceResponse
from ledger.prices.fetcher import RateLimitedPriceFetcher
from ledger.prices.keys import get_required_price_keys, partition_cached
from ledger.valuation import EXPORT_HEADERS, build_export_rows, value_deposit, value_trade

SOL = "So11111111111111111111111111111111111111112"
USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
UNLISTED = "Unlisted11111111111111111111111111111111111"


def _raw_trade(timestamp: int, signature: str) -> Trade:
    """10 USDC -> 0.066 SOL with a 0.000066 SOL fee, in raw units."""
    return Trade(
        timestamp=timestamp,
        input_mint=USDC,
        output_mint=SOL,
        input_amount=RawAmount("10000000"),
        output_amount=RawAmount("66000000"),
        fee_amount=RawAmount("66000"),
        strategy_type=StrategyType.DCA,
        strategy_key="dca-1",
        transaction_signature=signature,
    )


class TestEndToEnd:
    """Three trades at 10, 70 and 130 seconds resolve and value fully."""

    @pytest.mark.asyncio
    async def test_three_trades_all_valued(
        self,
        mock_client: AsyncMock,
        price_settings: PriceHistorySettings,
        mints: dict[str, MintData],
    ) -> None:
        events = [_raw_trade(10, "tx1"), _raw_trade(70, "tx2"), _raw_trade(130, "tx3")]
        cache = InMemoryPriceCache()

        required = get_required_price_keys(events)
        partition = partition_cached(required, cache)
        fetcher = RateLimitedPriceFetcher(mock_client, cache, price_settings)
        prices = await fetcher.fetch_prices(partition.still_needed, "test-api-key")

        assert len(required) == 6
        assert mock_client.fetch_minute.call_count == 6
        assert len(prices) == 6
        for trade in events:
            valuation = value_trade(trade, prices, mints)
            assert valuation.output_net_usd is not None
            # 0.065934 SOL at 1.5
            assert valuation.output_net_usd == Decimal("0.098901")
            assert valuation.input_usd == Decimal("15.000000")

    @pytest.mark.asyncio
    async def test_second_pass_fetches_nothing(
        self,
        mock_client: AsyncMock,
        price_settings: PriceHistorySettings,
    ) -> None:
        events = [_raw_trade(10, "tx1")]
        cache = InMemoryPriceCache()
        fetcher = RateLimitedPriceFetcher(mock_client, cache, price_settings)

        await fetcher.fetch_prices(get_required_price_keys(events), "test-api-key")
        partition = partition_cached(get_required_price_keys(events), cache)

        assert partition.still_needed == []
        assert len(partition.already_resolved) == 2


class TestValueTrade:
    """Unknown inputs produce None rather than errors."""

    def test_missing_price_is_unknown(self, mints: dict[str, MintData]) -> None:
        trade = _raw_trade(10, "tx")
        prices = {PriceKey(USDC, 0): Decimal("1")}

        valuation = value_trade(trade, prices, mints)

        assert valuation.input_usd == Decimal("10.000000")
        assert valuation.output_net_usd is None
        assert valuation.fee_usd is None

    def test_no_data_price_is_unknown(self, mints: dict[str, MintData]) -> None:
        trade = _raw_trade(10, "tx")
        prices = {PriceKey(USDC, 0): NO_DATA, PriceKey(SOL, 0): Decimal("150")}

        valuation = value_trade(trade, prices, mints)

        assert valuation.input_usd is None
        assert valuation.output_gross_usd == Decimal("9.900000")
        assert valuation.fee_usd == Decimal("0.009900")
        assert valuation.output_net_usd == Decimal("9.890100")

    def test_raw_without_decimals_is_unknown(self) -> None:
        trade = _raw_trade(10, "tx")
        prices = {PriceKey(USDC, 0): Decimal("1"), PriceKey(SOL, 0): Decimal("150")}

        valuation = value_trade(trade, prices, {})

        assert valuation.input_usd is None
        assert valuation.output_net_usd is None
        assert valuation.rates is None

    def test_rates(self, mints: dict[str, MintData]) -> None:
        valuation = value_trade(_raw_trade(10, "tx"), {}, mints)

        assert valuation.rates is not None
        # 10 USDC / 0.066 SOL, USDC has 6 decimals
        assert valuation.rates.input_per_output == Decimal("151.515152")
        assert valuation.rates.output_per_input == Decimal("0.006600000")

    def test_adjusted_deposit(self) -> None:
        deposit = Deposit(
            timestamp=125,
            input_mint=UNLISTED,
            input_amount=AdjustedAmount("2.5"),
            strategy_type=StrategyType.TRIGGER,
            strategy_key="order-1",
            transaction_signature="open",
        )
        prices = {PriceKey(UNLISTED, 120): Decimal("0.4")}

        assert value_deposit(deposit, prices, {}) == Decimal("1.000000")


class TestBuildExportRows:
    def test_trade_row(self, mints: dict[str, MintData]) -> None:
        prices = {PriceKey(USDC, 0): Decimal("1"), PriceKey(SOL, 0): Decimal("150")}

        (row,) = build_export_rows([_raw_trade(10, "tx")], mints, prices)

        assert list(row) == EXPORT_HEADERS
        assert row["Kind"] == "trade"
        assert row["In Token Symbol"] == "USDC"
        assert row["In Amount"] == "10"
        assert row["In Amount (USD)"] == "10.000000"
        assert row["Out Amount (gross)"] == "0.066"
        assert row["Out Amount (fee)"] == "0.000066"
        assert row["Out Amount (net)"] == "0.065934"
        assert row["Out Amount (net, USD)"] == "9.890100"
        assert row["Rate (out per in)"] == "0.006600000"
        assert row["Strategy Type"] == "DCA"

    def test_unknown_values_are_blank(self) -> None:
        deposit = Deposit(
            timestamp=0,
            input_mint=UNLISTED,
            input_amount=RawAmount("5"),
            strategy_type=StrategyType.VALUE_AVERAGE,
            strategy_key="va-1",
            transaction_signature="open",
        )

        (row,) = build_export_rows([deposit], {}, {})

        assert row["Kind"] == "deposit"
        assert row["In Amount"] == ""
        assert row["In Amount (USD)"] == ""
        assert row["In Token Symbol"] == ""
        assert row["Out Token Address"] == ""
        assert row["Strategy Type"] == "VA"
