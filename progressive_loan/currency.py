"""
Currency and Money Module

Handles ISO 4217 currency codes and proper Decimal precision for loan
calculations. NEVER uses float for monetary values.
"""

import decimal
from decimal import Decimal, Context
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .config import get_config


class Currency(Enum):
    """ISO 4217 Currency Codes with precision info"""
    USD = ("USD", 2)  # US Dollar, 2 decimal places
    EUR = ("EUR", 2)  # Euro, 2 decimal places
    GBP = ("GBP", 2)  # British Pound, 2 decimal places
    JPY = ("JPY", 0)  # Japanese Yen, 0 decimal places
    CAD = ("CAD", 2)  # Canadian Dollar, 2 decimal places
    CHF = ("CHF", 2)  # Swiss Franc, 2 decimal places
    INR = ("INR", 2)  # Indian Rupee, 2 decimal places
    KES = ("KES", 2)  # Kenyan Shilling, 2 decimal places

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision

    @property
    def minor_unit(self) -> Decimal:
        """Smallest representable amount, e.g. 0.01 for USD"""
        return Decimal(1).scaleb(-self.precision)

    @classmethod
    def from_code(cls, code: str) -> 'Currency':
        for currency in cls:
            if currency.code == code:
                return currency
        raise ValueError(f"Unsupported currency code: {code}")


def resolve_rounding(rounding: Optional[str] = None) -> str:
    """Validate a decimal rounding mode name, defaulting to the configured one"""
    rounding = rounding or get_config().rounding_mode
    if getattr(decimal, rounding, None) != rounding or not rounding.startswith("ROUND_"):
        raise ValueError(f"Unknown rounding mode: {rounding}")
    return rounding


@dataclass(frozen=True)
class Money:
    """
    Immutable money representation with currency, precision and rounding mode.

    The amount is always quantized to the currency precision using the
    rounding mode. Arithmetic between different currencies raises ValueError.
    """
    amount: Decimal
    currency: Currency
    rounding: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))

        rounding = resolve_rounding(self.rounding)
        object.__setattr__(self, 'rounding', rounding)

        # Round to currency precision
        rounded = self.amount.quantize(self.currency.minor_unit, rounding=rounding)
        object.__setattr__(self, 'amount', rounded)

    @classmethod
    def zero(cls, currency: Currency, rounding: Optional[str] = None) -> 'Money':
        return cls(Decimal('0'), currency, rounding)

    def with_amount(self, amount: Decimal) -> 'Money':
        """New Money in the same currency and rounding mode"""
        return Money(amount, self.currency, self.rounding)

    def zero_like(self) -> 'Money':
        return self.with_amount(Decimal('0'))

    def _check_currency(self, other: 'Money', operation: str) -> None:
        if self.currency != other.currency:
            raise ValueError(f"Cannot {operation} {self.currency.code} and {other.currency.code}")

    def plus(self, other: Optional['Money'], context: Optional[Context] = None) -> 'Money':
        """Add under an explicit decimal context; None counts as zero"""
        if other is None:
            return self
        self._check_currency(other, "add")
        context = context or decimal.getcontext()
        return self.with_amount(context.add(self.amount, other.amount))

    def minus(self, other: Optional['Money'], context: Optional[Context] = None) -> 'Money':
        """Subtract under an explicit decimal context; None counts as zero"""
        if other is None:
            return self
        self._check_currency(other, "subtract")
        context = context or decimal.getcontext()
        return self.with_amount(context.subtract(self.amount, other.amount))

    def multiplied_by(self, multiplier: Decimal, context: Optional[Context] = None) -> 'Money':
        context = context or decimal.getcontext()
        return self.with_amount(context.multiply(self.amount, Decimal(multiplier)))

    def divided_by(self, divisor: Decimal, context: Optional[Context] = None) -> 'Money':
        context = context or decimal.getcontext()
        return self.with_amount(context.divide(self.amount, Decimal(divisor)))

    def negative_to_zero(self) -> 'Money':
        """Clamp negative amounts to zero"""
        if self.amount < Decimal('0'):
            return self.zero_like()
        return self

    def __add__(self, other: 'Money') -> 'Money':
        return self.plus(other)

    def __sub__(self, other: 'Money') -> 'Money':
        return self.minus(other)

    def __mul__(self, multiplier: Decimal) -> 'Money':
        if not isinstance(multiplier, Decimal):
            multiplier = Decimal(str(multiplier))
        return self.with_amount(self.amount * multiplier)

    def __truediv__(self, divisor: Decimal) -> 'Money':
        if not isinstance(divisor, Decimal):
            divisor = Decimal(str(divisor))
        return self.with_amount(self.amount / divisor)

    def __neg__(self) -> 'Money':
        return self.with_amount(-self.amount)

    def __abs__(self) -> 'Money':
        return self.with_amount(abs(self.amount))

    def __eq__(self, other) -> bool:
        if not isinstance(other, Money):
            return False
        return self.amount == other.amount and self.currency == other.currency

    def __lt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        """Check if amount is exactly zero"""
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        """Check if amount is positive"""
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        """Check if amount is negative"""
        return self.amount < Decimal('0')

    def to_string(self) -> str:
        """Format for display"""
        if self.currency.precision == 0:
            return f"{self.currency.code} {self.amount:,.0f}"
        else:
            return f"{self.currency.code} {self.amount:,.{self.currency.precision}f}"


def validate_decimal_precision(value: Decimal, currency: Currency, rounding: Optional[str] = None) -> Decimal:
    """
    Validate and round decimal to currency precision

    Args:
        value: Decimal to validate
        currency: Currency defining precision
        rounding: Rounding mode name, defaults to the configured one

    Returns:
        Properly rounded Decimal
    """
    return value.quantize(currency.minor_unit, rounding=resolve_rounding(rounding))
