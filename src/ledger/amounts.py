"""Decimal-exact arithmetic over raw and adjusted token amounts.

All calculations use Decimal under a wide local context so no intermediate
result is rounded; the only rounding is the explicit ROUND_HALF_UP quantize
at the end of multiply_by_price and divide_for_rate. No float anywhere.

Encoding rules:
  - RawAmount values are integer strings in the token's smallest unit and
    need 10^decimals from token metadata before use.
  - AdjustedAmount values are already scaled.
  - add/subtract never mix the two; that raises EncodingMismatchError.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Context, Decimal, localcontext

from ledger.exceptions import EncodingMismatchError, MissingDecimalsError
from ledger.models import AdjustedAmount, Amount, RawAmount

# 100 significant digits covers u128 raw amounts times any realistic price
_EXACT = Context(prec=100, rounding=ROUND_HALF_UP)

DEFAULT_DISPLAY_PRECISION = 6


@dataclass(frozen=True)
class Rates:
    """Directional exchange rates of a single fill."""

    input_per_output: Decimal
    output_per_input: Decimal


def to_decimal(amount: Amount, decimals: int | None = None) -> Decimal:
    """Convert an amount to a Decimal in human units.

    Raw amounts are shifted by `decimals` (an exponent change, never a
    division that could round). Adjusted amounts are returned verbatim.

    Raises:
        MissingDecimalsError: If a raw amount is given without decimals.
    """
    if isinstance(amount, AdjustedAmount):
        return Decimal(amount.value)
    if decimals is None:
        raise MissingDecimalsError(f"Decimals required to interpret raw amount {amount.value}")
    with localcontext(_EXACT):
        return Decimal(amount.value).scaleb(-decimals)


def add(a: Amount, b: Amount) -> Amount:
    """Sum two amounts of the same encoding."""
    _require_same_encoding(a, b, "add")
    if isinstance(a, RawAmount):
        return RawAmount(str(int(a.value) + int(b.value)))
    with localcontext(_EXACT):
        return AdjustedAmount(plain_string(Decimal(a.value) + Decimal(b.value)))


def subtract(a: Amount, b: Amount) -> Amount:
    """Return a - b for two amounts of the same encoding."""
    _require_same_encoding(a, b, "subtract")
    if isinstance(a, RawAmount):
        return RawAmount(str(int(a.value) - int(b.value)))
    with localcontext(_EXACT):
        return AdjustedAmount(plain_string(Decimal(a.value) - Decimal(b.value)))


def multiply_by_price(
    amount: Amount,
    price: Decimal,
    decimals: int | None = None,
    precision: int = DEFAULT_DISPLAY_PRECISION,
) -> Decimal | None:
    """Value an amount at a unit price, rounded half-up to `precision` places.

    Returns None ("unknown") when a raw amount has no decimals metadata.
    """
    if isinstance(amount, RawAmount) and decimals is None:
        return None
    with localcontext(_EXACT):
        value = to_decimal(amount, decimals) * Decimal(str(price))
        return round_half_up(value, precision)


def divide_for_rate(
    input_amount: Amount,
    output_amount: Amount,
    input_decimals: int | None = None,
    output_decimals: int | None = None,
    min_precision: int = DEFAULT_DISPLAY_PRECISION,
) -> Rates | None:
    """Compute input-per-output and output-per-input rates of a fill.

    Each rate is rounded to its numerator token's natural precision: the
    token decimals when known, otherwise the fractional digits of the
    adjusted string (never fewer than `min_precision`).

    Returns None ("unknown") when a raw side lacks decimals or either side
    is zero.
    """
    if isinstance(input_amount, RawAmount) and input_decimals is None:
        return None
    if isinstance(output_amount, RawAmount) and output_decimals is None:
        return None

    with localcontext(_EXACT):
        input_value = to_decimal(input_amount, input_decimals)
        output_value = to_decimal(output_amount, output_decimals)
        if input_value.is_zero() or output_value.is_zero():
            return None

        input_places = _natural_precision(input_amount, input_decimals, min_precision)
        output_places = _natural_precision(output_amount, output_decimals, min_precision)
        return Rates(
            input_per_output=round_half_up(input_value / output_value, input_places),
            output_per_input=round_half_up(output_value / input_value, output_places),
        )


def round_half_up(value: Decimal, places: int) -> Decimal:
    """Quantize to `places` fractional digits, ties away from zero."""
    with localcontext(_EXACT):
        return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def plain_string(value: Decimal) -> str:
    """Render a Decimal without exponent or trailing fractional zeros.

    Decimal("1.500000") -> "1.5", Decimal("1E+2") -> "100".
    """
    with localcontext(_EXACT):
        if value.is_zero():
            return "0"
        text = format(value.normalize(), "f")
    return text


def format_amount(amount: Amount, decimals: int | None = None) -> str | None:
    """Human-unit string for export, or None when a raw amount lacks decimals."""
    if isinstance(amount, RawAmount) and decimals is None:
        return None
    return plain_string(to_decimal(amount, decimals))


def _natural_precision(amount: Amount, decimals: int | None, min_precision: int) -> int:
    if decimals is not None:
        return decimals
    exponent = Decimal(amount.value).as_tuple().exponent
    fractional = -exponent if isinstance(exponent, int) and exponent < 0 else 0
    return max(fractional, min_precision)


def _require_same_encoding(a: Amount, b: Amount, operation: str) -> None:
    if type(a) is not type(b):
        raise EncodingMismatchError(
            f"Cannot {operation} {type(a).__name__} and {type(b).__name__}"
        )
