"""Exact money arithmetic and Argentine currency notation.

All amounts are ``Decimal`` values quantized to cents with ROUND_HALF_UP, so
sums like ``0.1 + 0.2`` come out as ``0.30`` and never drift the way binary
floats do. Inputs may be ``str``, ``int``, ``float`` or ``Decimal``; floats
are converted through their shortest ``repr`` rather than their binary value.

Argentine notation uses ``.`` to group thousands and ``,`` for decimals
(``$ 54.755,35``). ``parse_ars_amount`` and ``format_ars`` are the only places
where that notation is read or written.
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Union

Amount = Union[Decimal, int, float, str]

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")

_ARS_CLEAN_RE = re.compile(r"[\s$]")


def to_decimal(value: Amount) -> Decimal:
    """Convert a plain numeric value to an unrounded ``Decimal``.

    Args:
        value: Number or plain decimal string (``"1234.56"``)

    Returns:
        Decimal value

    Raises:
        ValueError: If the value is not numeric
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValueError(f"Not a monetary amount: {value!r}") from e

    if not result.is_finite():
        raise ValueError(f"Not a finite amount: {value!r}")
    return result


def round_amount(value: Amount) -> Decimal:
    """Round an amount to cents (half up)."""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def add_amounts(values: Iterable[Amount]) -> Decimal:
    """Sum amounts exactly.

    Example:
        add_amounts([53916.71, 838.64]) == Decimal("54755.35")
    """
    total = ZERO
    for value in values:
        total += round_amount(value)
    return total


def subtract_amounts(a: Amount, b: Amount) -> Decimal:
    return round_amount(a) - round_amount(b)


def multiply_amount(amount: Amount, factor: Amount) -> Decimal:
    return round_amount(round_amount(amount) * to_decimal(factor))


def divide_amount(amount: Amount, divisor: Amount) -> Decimal:
    """Divide an amount and round the quotient to cents.

    Raises:
        ZeroDivisionError: If divisor is zero
    """
    divisor = to_decimal(divisor)
    if divisor == 0:
        raise ZeroDivisionError("Cannot divide an amount by zero")
    return round_amount(round_amount(amount) / divisor)


def amount_difference(a: Amount, b: Amount) -> Decimal:
    """Absolute difference between two amounts."""
    return abs(subtract_amounts(a, b))


def within_tolerance(a: Amount, b: Amount, tolerance: Amount = CENTS) -> bool:
    """Check whether two amounts differ by at most ``tolerance``."""
    return amount_difference(a, b) <= to_decimal(tolerance)


def scaled_tolerance(amount: Amount, pct: Amount = "0.001", floor: Amount = 1) -> Decimal:
    """Tolerance proportional to the amount, never below ``floor``.

    Example:
        scaled_tolerance(100000) == Decimal("100.00")
        scaled_tolerance(100) == Decimal("1.00")
    """
    proportional = multiply_amount(amount, pct)
    return max(round_amount(floor), proportional)


def percentage(part: Amount, total: Amount) -> Decimal:
    """Percentage of ``part`` over ``total``; zero when there is no total yet."""
    total = to_decimal(total)
    if total == 0:
        return ZERO
    return round_amount(to_decimal(part) / total * 100)


def amount_in_range(value: Amount, low: Amount, high: Amount) -> bool:
    value = to_decimal(value)
    return to_decimal(low) <= value <= to_decimal(high)


def parse_ars_amount(text: str) -> Decimal:
    """Parse an Argentine-formatted amount (``"$ 54.755,35"``).

    Dots are thousands separators and the comma is the decimal mark. A
    string without a comma is read as an integer amount with grouped
    thousands (``"1.234"`` is one thousand two hundred thirty-four).

    Raises:
        ValueError: If the text is not an amount
    """
    cleaned = _ARS_CLEAN_RE.sub("", text or "")
    if not cleaned:
        raise ValueError(f"Not an Argentine amount: {text!r}")

    negative = cleaned.startswith("-")
    cleaned = cleaned.lstrip("-")
    normalized = cleaned.replace(".", "").replace(",", ".")
    if not re.fullmatch(r"\d+(\.\d+)?", normalized):
        raise ValueError(f"Not an Argentine amount: {text!r}")

    value = round_amount(normalized)
    return -value if negative else value


def parse_thousands_comma_amount(text: str) -> Decimal:
    """Parse bank notation where the comma groups thousands (``"74,067.44"``)."""
    cleaned = _ARS_CLEAN_RE.sub("", text or "").replace(",", "")
    if not re.fullmatch(r"\d+(\.\d+)?", cleaned):
        raise ValueError(f"Not an amount: {text!r}")
    return round_amount(cleaned)


def format_amount(value: Amount) -> str:
    """Format as ``54.755,35`` (no currency symbol)."""
    amount = round_amount(value)
    sign = "-" if amount < 0 else ""
    integer, _, fraction = f"{abs(amount):.2f}".partition(".")

    groups = []
    while len(integer) > 3:
        groups.insert(0, integer[-3:])
        integer = integer[:-3]
    groups.insert(0, integer)

    return f"{sign}{'.'.join(groups)},{fraction}"


def format_ars(value: Amount) -> str:
    """Format as ``$ 54.755,35``."""
    return f"$ {format_amount(value)}"
