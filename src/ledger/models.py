"""Shared data models for the strategy ledger.

CRITICAL: Token quantities and prices use Decimal or decimal strings. Never use
float: values flow verbatim into accounting exports.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum

_RAW_PATTERN = re.compile(r"^-?\d+$")


@dataclass(frozen=True, eq=False)
class RawAmount:
    """Token quantity in the smallest on-chain unit (needs a decimals shift).

    Equality is by integer value: RawAmount("007") == RawAmount("7").
    """

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not _RAW_PATTERN.match(self.value):
            raise ValueError(f"Raw amount must be an integer string, got {self.value!r}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RawAmount):
            return NotImplemented
        return int(self.value) == int(other.value)

    def __hash__(self) -> int:
        return hash((RawAmount, int(self.value)))


@dataclass(frozen=True, eq=False)
class AdjustedAmount:
    """Token quantity already expressed in human-scale decimal form.

    Equality is by decimal value, so trailing zeros do not matter:
    AdjustedAmount("1.50") == AdjustedAmount("1.5"). The string is kept
    verbatim for display.
    """

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str):
            raise ValueError(f"Adjusted amount must be a string, got {self.value!r}")
        try:
            parsed = Decimal(self.value)
        except InvalidOperation as e:
            raise ValueError(f"Adjusted amount is not a decimal: {self.value!r}") from e
        if not parsed.is_finite():
            raise ValueError(f"Adjusted amount must be finite, got {self.value!r}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AdjustedAmount):
            return NotImplemented
        return Decimal(self.value) == Decimal(other.value)

    def __hash__(self) -> int:
        return hash((AdjustedAmount, Decimal(self.value)))


Amount = RawAmount | AdjustedAmount


class StrategyType(str, Enum):
    """Product that owns a deposit or trade."""

    DCA = "dca"
    VALUE_AVERAGE = "value_average"
    RECURRING = "recurring"
    TRIGGER = "trigger"

    @property
    def short_code(self) -> str:
        return _SHORT_CODES[self]


_SHORT_CODES = {
    StrategyType.DCA: "DCA",
    StrategyType.VALUE_AVERAGE: "VA",
    StrategyType.RECURRING: "REC",
    StrategyType.TRIGGER: "TRG",
}


@dataclass(frozen=True)
class MintData:
    """Token metadata from the token-metadata provider.

    Only `decimals` matters to the core; it is needed to interpret RawAmount.
    """

    address: str
    symbol: str
    decimals: int
    name: str = ""
    logo_uri: str = ""
