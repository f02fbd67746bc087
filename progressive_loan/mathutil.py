"""
Decimal arithmetic helpers

All intermediate interest arithmetic runs under an explicit decimal Context
so results do not depend on the thread-local default context. Final rounding
to currency precision happens when a value becomes Money.
"""

import decimal
from decimal import Decimal, Context
from typing import Iterable, Optional

from .config import get_config

ZERO = Decimal('0')
ONE = Decimal('1')
HUNDRED = Decimal('100')


def default_context(precision: Optional[int] = None, rounding: Optional[str] = None) -> Context:
    """Build the calculation context from configuration"""
    settings = get_config()
    return Context(
        prec=precision or settings.rate_factor_precision,
        rounding=getattr(decimal, rounding or settings.rounding_mode),
    )


def negative_to_zero(value: Decimal) -> Decimal:
    return value if value > ZERO else ZERO


def divide(dividend: Decimal, divisor: Decimal, context: Context) -> Decimal:
    """Divide under context; a zero divisor is a programming error"""
    if divisor == ZERO:
        raise ZeroDivisionError("Decimal division by zero")
    return context.divide(dividend, divisor)


def total(values: Iterable[Decimal], context: Context) -> Decimal:
    result = ZERO
    for value in values:
        result = context.add(result, value)
    return result
