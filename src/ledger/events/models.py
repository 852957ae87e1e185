"""Normalized deposit and trade events.

Events are built once per aggregation pass from provider records and never
mutated. Amounts carry their encoding (RawAmount or AdjustedAmount), fixed at
ingestion, so no downstream code has to ask which form it holds.
"""

from dataclasses import dataclass
from typing import ClassVar, Literal

from ledger import amounts
from ledger.models import Amount, StrategyType


@dataclass(frozen=True)
class Deposit:
    """Funds moved into a strategy when it was opened."""

    kind: ClassVar[Literal["deposit"]] = "deposit"

    timestamp: int  # unix seconds
    input_mint: str
    input_amount: Amount
    strategy_type: StrategyType
    strategy_key: str
    transaction_signature: str


@dataclass(frozen=True)
class Trade:
    """A single fill. The fee is denominated in the output mint.

    output_amount is gross; the net received amount is computed on demand.
    """

    kind: ClassVar[Literal["trade"]] = "trade"

    timestamp: int  # unix seconds
    input_mint: str
    output_mint: str
    input_amount: Amount
    output_amount: Amount
    fee_amount: Amount
    strategy_type: StrategyType
    strategy_key: str
    transaction_signature: str

    @property
    def net_output_amount(self) -> Amount:
        """Gross output minus fee, in the output amount's encoding."""
        return amounts.subtract(self.output_amount, self.fee_amount)


Event = Deposit | Trade
