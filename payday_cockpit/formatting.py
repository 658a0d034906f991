"""Formatting utilities for currency amounts and minor-unit rounding."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from .config import CURRENCY_DECIMALS


def round_money(amount: Union[float, int], decimals: int = CURRENCY_DECIMALS) -> float:
    """Round an amount to the currency's minor unit using half-up rounding.

    Floats are converted through ``str`` so that values such as ``2.675``
    round the way a person reading them would expect.

    Example:
        >>> round_money(2.675)
        2.68
        >>> round_money(-0.005)
        -0.01
    """
    quantum = Decimal(1).scaleb(-decimals)
    return float(Decimal(str(amount)).quantize(quantum, rounding=ROUND_HALF_UP))


def format_currency(amount: Union[float, int], include_sign: bool = True, symbol: str = "$") -> str:
    """Format a currency amount with proper formatting.

    Args:
        amount: The amount to format
        include_sign: Whether to include the currency symbol
        symbol: Currency symbol to prefix

    Returns:
        Formatted currency string (e.g., "$1,234.56" or "1,234.56")

    Example:
        >>> format_currency(1234.56)
        '$1,234.56'
        >>> format_currency(-5, symbol='£')
        '-£5.00'
    """
    formatted = f"{abs(amount):,.2f}"
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{formatted}" if include_sign else f"{sign}{formatted}"


def format_percent(value: Optional[float], decimals: int = 1) -> str:
    if value is None:
        return ""
    return f"{value:.{decimals}f}%"
