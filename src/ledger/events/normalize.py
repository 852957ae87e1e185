"""Normalizers turning provider records into Deposit and Trade events.

Each provider schema has one normalizer, and this is the only place that
knows which schemas report raw (smallest-unit) amounts and which report
decimal-adjusted ones:

  Schema            Encoding   Produces
  dca_account       raw        Deposit (inDeposited at createdAt, openTxHash)
  dca_fill          raw        Trade (inAmount/outAmount/fee, txId)
  va_account        raw        Deposit (inDeposited at createdAt, openTxHash)
  va_fill           raw        Trade (inputAmount/outputAmount/fee, txSignature)
  recurring_order   adjusted   Deposit (inDeposited, openTx) + Trade per trades[]
  trigger_order     adjusted   Deposit (makingAmount, openTx) + Trade per trades[]
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from ledger.events.models import Deposit, Event, Trade
from ledger.exceptions import ProviderError, UnknownProductError
from ledger.models import AdjustedAmount, RawAmount, StrategyType


class RecordSchema(str, Enum):
    """Source schema a provider record was fetched with."""

    DCA_ACCOUNT = "dca_account"
    DCA_FILL = "dca_fill"
    VA_ACCOUNT = "va_account"
    VA_FILL = "va_fill"
    RECURRING_ORDER = "recurring_order"
    TRIGGER_ORDER = "trigger_order"


@dataclass(frozen=True)
class ProviderRecord:
    """One raw record from an order-data provider, tagged with its schema."""

    schema: RecordSchema
    payload: Mapping[str, Any]

    @property
    def strategy_key(self) -> str:
        return _strategy_key(self.schema, self.payload)


Normalizer = Callable[[Mapping[str, Any]], list[Event]]


def parse_timestamp(value: Any) -> int:
    """Unix seconds from an int/float/Decimal/numeric string or an ISO-8601 string.

    Fractional seconds are truncated. Naive ISO strings are taken as UTC.
    """
    if isinstance(value, bool):
        raise ProviderError(f"Invalid timestamp: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        try:
            return int(value)
        except (ValueError, OverflowError) as e:
            raise ProviderError(f"Invalid timestamp: {value!r}") from e
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return int(text)
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as e:
            raise ProviderError(f"Invalid timestamp: {value!r}") from e
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp())
    raise ProviderError(f"Invalid timestamp: {value!r}")


# ──────────────────────────────────────────────
# Legacy schemas (raw amounts)
# ──────────────────────────────────────────────


def normalize_dca_account(payload: Mapping[str, Any]) -> list[Event]:
    return [
        Deposit(
            timestamp=parse_timestamp(_field(payload, "createdAt")),
            input_mint=_field(payload, "inputMint"),
            input_amount=RawAmount(str(_field(payload, "inDeposited"))),
            strategy_type=StrategyType.DCA,
            strategy_key=_field(payload, "dcaKey"),
            transaction_signature=_field(payload, "openTxHash"),
        )
    ]


def normalize_dca_fill(payload: Mapping[str, Any]) -> list[Event]:
    return [
        Trade(
            timestamp=parse_timestamp(_field(payload, "confirmedAt")),
            input_mint=_field(payload, "inputMint"),
            output_mint=_field(payload, "outputMint"),
            input_amount=RawAmount(str(_field(payload, "inAmount"))),
            output_amount=RawAmount(str(_field(payload, "outAmount"))),
            fee_amount=RawAmount(str(_field(payload, "fee"))),
            strategy_type=StrategyType.DCA,
            strategy_key=_field(payload, "dcaKey"),
            transaction_signature=_field(payload, "txId"),
        )
    ]


def normalize_va_account(payload: Mapping[str, Any]) -> list[Event]:
    return [
        Deposit(
            timestamp=parse_timestamp(_field(payload, "createdAt")),
            input_mint=_field(payload, "inputMint"),
            input_amount=RawAmount(str(_field(payload, "inDeposited"))),
            strategy_type=StrategyType.VALUE_AVERAGE,
            strategy_key=_field(payload, "valueAverageKey"),
            transaction_signature=_field(payload, "openTxHash"),
        )
    ]


def normalize_va_fill(payload: Mapping[str, Any]) -> list[Event]:
    return [
        Trade(
            timestamp=parse_timestamp(_field(payload, "confirmedAt")),
            input_mint=_field(payload, "inputMint"),
            output_mint=_field(payload, "outputMint"),
            input_amount=RawAmount(str(_field(payload, "inputAmount"))),
            output_amount=RawAmount(str(_field(payload, "outputAmount"))),
            fee_amount=RawAmount(str(_field(payload, "fee"))),
            strategy_type=StrategyType.VALUE_AVERAGE,
            strategy_key=_field(payload, "valueAverageKey"),
            transaction_signature=_field(payload, "txSignature"),
        )
    ]


# ──────────────────────────────────────────────
# Order schemas (adjusted amounts, trades embedded)
# ──────────────────────────────────────────────


def normalize_recurring_order(payload: Mapping[str, Any]) -> list[Event]:
    return _order_events(payload, StrategyType.RECURRING, deposit_field="inDeposited")


def normalize_trigger_order(payload: Mapping[str, Any]) -> list[Event]:
    # Trigger orders without trades still funded the order: deposit only
    return _order_events(payload, StrategyType.TRIGGER, deposit_field="makingAmount")


def _order_events(
    payload: Mapping[str, Any],
    strategy_type: StrategyType,
    deposit_field: str,
) -> list[Event]:
    order_key = _field(payload, "orderKey")
    input_mint = _field(payload, "inputMint")
    output_mint = _field(payload, "outputMint")

    events: list[Event] = [
        Deposit(
            timestamp=parse_timestamp(_field(payload, "createdAt")),
            input_mint=input_mint,
            input_amount=AdjustedAmount(str(_field(payload, deposit_field))),
            strategy_type=strategy_type,
            strategy_key=order_key,
            transaction_signature=_field(payload, "openTx"),
        )
    ]
    for trade in payload.get("trades") or []:
        events.append(
            Trade(
                timestamp=parse_timestamp(_field(trade, "confirmedAt")),
                input_mint=trade.get("inputMint") or input_mint,
                output_mint=trade.get("outputMint") or output_mint,
                input_amount=AdjustedAmount(str(_field(trade, "inputAmount"))),
                output_amount=AdjustedAmount(str(_field(trade, "outputAmount"))),
                fee_amount=AdjustedAmount(str(trade.get("feeAmount") or "0")),
                strategy_type=strategy_type,
                strategy_key=order_key,
                transaction_signature=_field(trade, "txId"),
            )
        )
    return events


NORMALIZERS: dict[RecordSchema, Normalizer] = {
    RecordSchema.DCA_ACCOUNT: normalize_dca_account,
    RecordSchema.DCA_FILL: normalize_dca_fill,
    RecordSchema.VA_ACCOUNT: normalize_va_account,
    RecordSchema.VA_FILL: normalize_va_fill,
    RecordSchema.RECURRING_ORDER: normalize_recurring_order,
    RecordSchema.TRIGGER_ORDER: normalize_trigger_order,
}

_STRATEGY_KEY_FIELDS: dict[RecordSchema, str] = {
    RecordSchema.DCA_ACCOUNT: "dcaKey",
    RecordSchema.DCA_FILL: "dcaKey",
    RecordSchema.VA_ACCOUNT: "valueAverageKey",
    RecordSchema.VA_FILL: "valueAverageKey",
    RecordSchema.RECURRING_ORDER: "orderKey",
    RecordSchema.TRIGGER_ORDER: "orderKey",
}


def _strategy_key(schema: RecordSchema, payload: Mapping[str, Any]) -> str:
    field_name = _STRATEGY_KEY_FIELDS.get(schema)
    if field_name is None:
        raise UnknownProductError(f"No strategy key field for schema {schema!r}")
    return _field(payload, field_name)


def _field(payload: Mapping[str, Any], name: str) -> Any:
    try:
        value = payload[name]
    except KeyError as e:
        raise ProviderError(f"Provider record is missing {name!r}") from e
    if value is None:
        raise ProviderError(f"Provider record has null {name!r}")
    return value
