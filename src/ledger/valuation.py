"""USD valuation of events and export row building.

Consumers of the amount model and the resolved price map. Anything that
cannot be valued (no price for the minute, no decimals for a raw amount)
comes back as None and is exported as an empty cell; one unknown value never
fails the whole export.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal

from ledger.amounts import (
    DEFAULT_DISPLAY_PRECISION,
    Rates,
    divide_for_rate,
    format_amount,
    multiply_by_price,
)
from ledger.events.models import Deposit, Event, Trade
from ledger.models import Amount, MintData
from ledger.prices.buckets import bucket
from ledger.prices.cache import CachedPrice, PriceKey

PriceLookup = Mapping[PriceKey, CachedPrice]

EXPORT_HEADERS = [
    "Kind",
    "Timestamp",
    "In Token Address",
    "In Token Name",
    "In Token Symbol",
    "In Amount",
    "In Amount (USD)",
    "Out Token Address",
    "Out Token Name",
    "Out Token Symbol",
    "Out Amount (gross)",
    "Out Amount (fee)",
    "Out Amount (net)",
    "Out Amount (net, USD)",
    "Rate (out per in)",
    "Transaction Signature",
    "Strategy Type",
    "Strategy Key",
]


@dataclass(frozen=True)
class TradeValuation:
    """USD values and rates of one trade; None where unknown."""

    input_usd: Decimal | None
    output_gross_usd: Decimal | None
    fee_usd: Decimal | None
    output_net_usd: Decimal | None
    rates: Rates | None


def price_at(prices: PriceLookup, mint: str, timestamp: int) -> Decimal | None:
    """Resolved USD price of `mint` in the minute containing `timestamp`."""
    price = prices.get(PriceKey(mint, bucket(timestamp)))
    return price if isinstance(price, Decimal) else None


def usd_value(
    amount: Amount,
    mint: str,
    timestamp: int,
    prices: PriceLookup,
    mints: Mapping[str, MintData],
    precision: int = DEFAULT_DISPLAY_PRECISION,
) -> Decimal | None:
    price = price_at(prices, mint, timestamp)
    if price is None:
        return None
    return multiply_by_price(amount, price, _decimals(mints, mint), precision)


def value_deposit(
    deposit: Deposit,
    prices: PriceLookup,
    mints: Mapping[str, MintData],
    precision: int = DEFAULT_DISPLAY_PRECISION,
) -> Decimal | None:
    return usd_value(
        deposit.input_amount, deposit.input_mint, deposit.timestamp, prices, mints, precision
    )


def value_trade(
    trade: Trade,
    prices: PriceLookup,
    mints: Mapping[str, MintData],
    precision: int = DEFAULT_DISPLAY_PRECISION,
    min_rate_precision: int = DEFAULT_DISPLAY_PRECISION,
) -> TradeValuation:
    """Value a trade's input, gross output, fee and net output in USD.

    The fee and net output are priced at the output mint's price, since
    the fee is taken in the output token.
    """

    def output_usd(amount: Amount) -> Decimal | None:
        return usd_value(amount, trade.output_mint, trade.timestamp, prices, mints, precision)

    return TradeValuation(
        input_usd=usd_value(
            trade.input_amount, trade.input_mint, trade.timestamp, prices, mints, precision
        ),
        output_gross_usd=output_usd(trade.output_amount),
        fee_usd=output_usd(trade.fee_amount),
        output_net_usd=output_usd(trade.net_output_amount),
        rates=divide_for_rate(
            trade.input_amount,
            trade.output_amount,
            _decimals(mints, trade.input_mint),
            _decimals(mints, trade.output_mint),
            min_rate_precision,
        ),
    )


def build_export_rows(
    events: Iterable[Event],
    mints: Mapping[str, MintData],
    prices: PriceLookup,
    precision: int = DEFAULT_DISPLAY_PRECISION,
    min_rate_precision: int = DEFAULT_DISPLAY_PRECISION,
) -> list[dict[str, str]]:
    """One row per event keyed by EXPORT_HEADERS; unknown values are ""."""
    rows = []
    for event in events:
        row = dict.fromkeys(EXPORT_HEADERS, "")
        input_mint = mints.get(event.input_mint)
        row.update(
            {
                "Kind": event.kind,
                "Timestamp": str(event.timestamp),
                "In Token Address": event.input_mint,
                "In Token Name": input_mint.name if input_mint else "",
                "In Token Symbol": input_mint.symbol if input_mint else "",
                "In Amount": _cell(
                    format_amount(event.input_amount, _decimals(mints, event.input_mint))
                ),
                "Transaction Signature": event.transaction_signature,
                "Strategy Type": event.strategy_type.short_code,
                "Strategy Key": event.strategy_key,
            }
        )

        if isinstance(event, Deposit):
            row["In Amount (USD)"] = _cell(value_deposit(event, prices, mints, precision))
        else:
            output_mint = mints.get(event.output_mint)
            output_decimals = _decimals(mints, event.output_mint)
            valuation = value_trade(event, prices, mints, precision, min_rate_precision)
            row.update(
                {
                    "In Amount (USD)": _cell(valuation.input_usd),
                    "Out Token Address": event.output_mint,
                    "Out Token Name": output_mint.name if output_mint else "",
                    "Out Token Symbol": output_mint.symbol if output_mint else "",
                    "Out Amount (gross)": _cell(format_amount(event.output_amount, output_decimals)),
                    "Out Amount (fee)": _cell(format_amount(event.fee_amount, output_decimals)),
                    "Out Amount (net)": _cell(
                        format_amount(event.net_output_amount, output_decimals)
                    ),
                    "Out Amount (net, USD)": _cell(valuation.output_net_usd),
                    "Rate (out per in)": _cell(
                        valuation.rates.output_per_input if valuation.rates else None
                    ),
                }
            )
        rows.append(row)
    return rows


def _decimals(mints: Mapping[str, MintData], mint: str) -> int | None:
    mint_data = mints.get(mint)
    return mint_data.decimals if mint_data else None


def _cell(value: Decimal | str | None) -> str:
    if value is None:
        return ""
    if isinstance(value, Decimal):
        return format(value, "f")
    return value
