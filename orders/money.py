"""Fixed-point currency arithmetic.

The shop's currency has a 1/1000 subunit (KWD fils), so every amount is a
Decimal with exactly 3 fractional digits. Arithmetic stays in Decimal to
avoid binary float drift across repeated edits. 25 KWD = Decimal("25.000").
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Annotated, Any

from pydantic import AfterValidator, BeforeValidator, PlainSerializer

from orders.errors import InvalidAmount

QUANTUM = Decimal("0.001")
ZERO = Decimal("0.000")


def to_amount(value: Any) -> Decimal:
    """
    Convert a number to a 3-digit fixed-point amount.

    Floats go through str() so 0.1 becomes 0.100 rather than the binary
    expansion. Extra precision is rounded half-up.

    Raises:
        InvalidAmount: If value is not a finite number
    """
    if isinstance(value, bool):
        raise InvalidAmount(f"Not an amount: {value!r}")
    if isinstance(value, Decimal):
        candidate = value
    elif isinstance(value, (int, float, str)):
        try:
            candidate = Decimal(str(value).strip())
        except InvalidOperation:
            raise InvalidAmount(f"Not an amount: {value!r}")
    else:
        raise InvalidAmount(f"Not an amount: {value!r}")

    if not candidate.is_finite():
        raise InvalidAmount(f"Not a finite amount: {value!r}")

    return candidate.quantize(QUANTUM, rounding=ROUND_HALF_UP)


def add(*amounts: Any) -> Decimal:
    """Sum any number of amounts. Empty sum is 0.000."""
    total = ZERO
    for amount in amounts:
        total += to_amount(amount)
    return total.quantize(QUANTUM)


def subtract(a: Any, b: Any) -> Decimal:
    """a - b, may be negative."""
    return (to_amount(a) - to_amount(b)).quantize(QUANTUM)


def multiply(amount: Any, quantity: int) -> Decimal:
    """Unit price times an integer quantity."""
    return (to_amount(amount) * quantity).quantize(QUANTUM, rounding=ROUND_HALF_UP)


def clamp_zero(amount: Any) -> Decimal:
    """Floor at zero."""
    value = to_amount(amount)
    return value if value > ZERO else ZERO


def is_zero(amount: Any) -> bool:
    """Exact zero test after rounding. No epsilon."""
    return to_amount(amount) == ZERO


def is_positive(amount: Any) -> bool:
    return to_amount(amount) > ZERO


def format_amount(amount: Any) -> str:
    """Boundary format: plain string with exactly 3 fractional digits."""
    return format(to_amount(amount), "f")


# Pydantic field type: validated through to_amount, serialized as "12.500".
# Models use mode="json" dumps for audit and storage so this is the wire form.
Amount = Annotated[
    Decimal,
    BeforeValidator(to_amount),
    PlainSerializer(format_amount, return_type=str, when_used="json"),
]


def _non_negative(value: Decimal) -> Decimal:
    if value < ZERO:
        raise InvalidAmount(f"Amount cannot be negative: {format_amount(value)}")
    return value


# Prices and discounts: zero allowed, negative rejected with InvalidAmount.
NonNegativeAmount = Annotated[
    Decimal,
    BeforeValidator(to_amount),
    AfterValidator(_non_negative),
    PlainSerializer(format_amount, return_type=str, when_used="json"),
]
