"""
Rate Factor Module

Converts an annual nominal interest rate and a day-count convention into a
dimensionless multiplier for a date range, so that balance * rate factor is
the interest accrued over [from_date, to_date).
"""

import calendar
from datetime import date
from decimal import Decimal, Context
from enum import Enum
from typing import Optional

from .mathutil import ZERO, HUNDRED, default_context


class DaysInYearType(Enum):
    """Day-count conventions: denominator of the year fraction"""
    DAYS_360 = ("days_360", 360)
    DAYS_364 = ("days_364", 364)
    DAYS_365 = ("days_365", 365)
    ACTUAL = ("actual", None)  # 365 or 366 depending on the calendar year

    def __init__(self, code: str, days: Optional[int]):
        self.code = code
        self.days = days

    @classmethod
    def from_code(cls, code: str) -> 'DaysInYearType':
        for days_in_year_type in cls:
            if days_in_year_type.code == code:
                return days_in_year_type
        raise ValueError(f"Unsupported days in year type: {code}")


def days_between(from_date: date, to_date: date) -> int:
    """Actual elapsed days, zero for empty or inverted ranges"""
    return max((to_date - from_date).days, 0)


def calculate_rate_factor(
    from_date: date,
    to_date: date,
    annual_rate_percent: Decimal,
    days_in_year_type: DaysInYearType,
    context: Optional[Context] = None
) -> Decimal:
    """
    Calculate the rate factor for a date range

    Args:
        from_date: Start of the range (inclusive)
        to_date: End of the range (exclusive)
        annual_rate_percent: Annual nominal rate, e.g. 12 for 12%
        days_in_year_type: Day-count convention
        context: Decimal context, defaults to the configured calculation context

    Returns:
        rate / 100 * days / days_in_year, zero for an empty range
    """
    context = context or default_context()
    days = days_between(from_date, to_date)
    if days == 0:
        return ZERO

    annual_rate = context.divide(Decimal(annual_rate_percent), HUNDRED)

    if days_in_year_type is not DaysInYearType.ACTUAL:
        year_fraction = context.divide(Decimal(days), Decimal(days_in_year_type.days))
        return context.multiply(annual_rate, year_fraction)

    # Actual/actual: each calendar-year slice uses its own year length
    year_fraction = ZERO
    slice_start = from_date
    while slice_start < to_date:
        next_year = date(slice_start.year + 1, 1, 1)
        slice_end = min(next_year, to_date)
        days_in_year = 366 if calendar.isleap(slice_start.year) else 365
        year_fraction = context.add(
            year_fraction,
            context.divide(Decimal(days_between(slice_start, slice_end)), Decimal(days_in_year))
        )
        slice_start = slice_end
    return context.multiply(annual_rate, year_fraction)
