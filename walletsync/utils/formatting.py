import os
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

Amount = Union[Decimal, int, float, str]


def to_decimal(value: Optional[Amount], default: Decimal = Decimal(0)) -> Decimal:
    """Convert backend amounts (strings, ints, floats) without float rounding."""
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def from_base_units(value: Optional[Amount], decimals: int) -> Decimal:
    """Divide an amount in indivisible units (satoshis, droplets) by 10^decimals."""
    return to_decimal(value) / (Decimal(10) ** decimals)


def _format_number(value: Decimal, decimals: int) -> str:
    fmt = f"{value:.{decimals}f}"
    if "." in fmt:
        fmt = fmt.rstrip("0").rstrip(".")
    if fmt == "-0":
        fmt = "0"
    return fmt


def format_amount(amount: Optional[Amount], unit: Optional[str] = None, decimals: Optional[int] = None) -> str:
    """
    Format amount for display with thousands separators on large values.

    Without an explicit unit or precision the WALLETSYNC_CURRENCY_UNIT and
    WALLETSYNC_AMOUNT_DECIMALS environment variables are used.
    """
    value = to_decimal(amount)

    base_unit = unit or os.getenv("WALLETSYNC_CURRENCY_UNIT", "BTC")
    if decimals is None:
        decimals = int(os.getenv("WALLETSYNC_AMOUNT_DECIMALS", "8"))
    if decimals < 0:
        decimals = 0

    text = _format_number(value, decimals)
    if abs(value) >= 1000:
        whole, _, fraction = text.partition(".")
        sign = "-" if whole.startswith("-") else ""
        whole = f"{int(whole.lstrip('-')):,}"
        text = f"{sign}{whole}.{fraction}" if fraction else f"{sign}{whole}"
    return f"{text} {base_unit}"
