"""
Schedule Model Module

The schedule model is the arena that owns every repayment period of one
recalculation pass. Periods refer to each other by index only; navigation
(previous, next, parent) always goes through the model.
"""

from datetime import date
from decimal import Decimal, Context
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .currency import Money, Currency
from .interest_period import InterestPeriod
from .mathutil import default_context
from .rate_factor import DaysInYearType
from .repayment_period import RepaymentPeriod


@dataclass(frozen=True)
class InterestRateChange:
    """Annual nominal rate (percent) effective from a date"""
    effective_date: date
    annual_rate: Decimal


@dataclass(eq=False)
class ProgressiveLoanScheduleModel:
    """Ordered, contiguous repayment periods plus the rate history they use"""
    repayment_periods: List[RepaymentPeriod]
    interest_rate_changes: List[InterestRateChange]
    days_in_year_type: DaysInYearType
    currency: Currency
    rounding: Optional[str] = None
    first_mutable_index: int = 0  # Periods before this index are frozen history
    overpaid_amount: Optional[Money] = None
    context: Context = field(default_factory=default_context, repr=False)

    def __post_init__(self):
        if self.overpaid_amount is None:
            self.overpaid_amount = Money.zero(self.currency, self.rounding)
        self.interest_rate_changes = sorted(self.interest_rate_changes, key=lambda c: c.effective_date)
        self.validate_contiguity()

    @classmethod
    def create(
        cls,
        period_dates: List[Tuple[date, date]],
        annual_rate: Decimal,
        days_in_year_type: DaysInYearType,
        currency: Currency,
        rounding: Optional[str] = None,
        context: Optional[Context] = None,
        frozen_periods: Optional[List[RepaymentPeriod]] = None,
        interest_rate_changes: Optional[List[InterestRateChange]] = None
    ) -> 'ProgressiveLoanScheduleModel':
        """
        Build a model from (from_date, due_date) pairs.

        Frozen periods, when given, are placed in front unchanged and the
        new periods are indexed after them.
        """
        context = context or default_context()
        frozen_periods = frozen_periods or []
        periods = list(frozen_periods)
        for offset, (from_date, due_date) in enumerate(period_dates):
            periods.append(RepaymentPeriod.create(
                len(frozen_periods) + offset, from_date, due_date, currency, rounding, context
            ))

        if interest_rate_changes is None:
            start = periods[0].from_date if periods else date.min
            interest_rate_changes = [InterestRateChange(start, Decimal(annual_rate))]

        return cls(
            repayment_periods=periods,
            interest_rate_changes=interest_rate_changes,
            days_in_year_type=days_in_year_type,
            currency=currency,
            rounding=rounding,
            first_mutable_index=len(frozen_periods),
            context=context
        )

    def validate_contiguity(self) -> None:
        for index, period in enumerate(self.repayment_periods):
            if period.index != index:
                raise ValueError(f"Repayment period at position {index} has index {period.index}")
            if index > 0 and self.repayment_periods[index - 1].due_date != period.from_date:
                raise ValueError(
                    f"Repayment periods are not contiguous at {self.repayment_periods[index - 1].due_date}"
                )

    # Navigation

    def previous(self, period: RepaymentPeriod) -> Optional[RepaymentPeriod]:
        if period.index == 0:
            return None
        return self.repayment_periods[period.index - 1]

    def next(self, period: RepaymentPeriod) -> Optional[RepaymentPeriod]:
        if period.index + 1 >= len(self.repayment_periods):
            return None
        return self.repayment_periods[period.index + 1]

    def parent_of(self, interest_period: InterestPeriod) -> RepaymentPeriod:
        return self.repayment_periods[interest_period.repayment_period_index]

    @property
    def first_period(self) -> RepaymentPeriod:
        return self.repayment_periods[0]

    @property
    def last_period(self) -> RepaymentPeriod:
        return self.repayment_periods[-1]

    @property
    def start_date(self) -> date:
        return self.first_period.from_date

    @property
    def maturity_date(self) -> date:
        return self.last_period.due_date

    @property
    def mutable_periods(self) -> List[RepaymentPeriod]:
        return self.repayment_periods[self.first_mutable_index:]

    def find_repayment_period(self, on_date: date) -> RepaymentPeriod:
        """Period whose [from_date, due_date) holds on_date; dates past maturity map to the last one"""
        for period in self.repayment_periods:
            if period.contains(on_date):
                return period
        if on_date < self.start_date:
            return self.first_period
        return self.last_period

    def is_frozen(self, period: RepaymentPeriod) -> bool:
        return period.index < self.first_mutable_index

    def is_frozen_date(self, on_date: date) -> bool:
        """
        True when an amount booked on on_date would land in frozen history.
        The cut-off itself is not frozen: an amount booked there only moves
        the closing balance carried into the first mutable period.
        """
        if self.first_mutable_index == 0:
            return False
        if self.first_mutable_index >= len(self.repayment_periods):
            return True
        return on_date < self.repayment_periods[self.first_mutable_index].from_date

    def interest_period_ending_at(self, on_date: date) -> InterestPeriod:
        """
        Interest period whose due date is on_date, splitting one if needed.
        Amounts booked on it take effect from on_date onward.
        """
        if not self.start_date < on_date <= self.maturity_date:
            raise ValueError(f"{on_date} is outside the schedule {self.start_date} - {self.maturity_date}")
        for period in self.repayment_periods:
            if period.from_date < on_date <= period.due_date:
                if on_date < period.due_date:
                    period.split_interest_period(on_date)
                for interest_period in period.interest_periods:
                    if interest_period.due_date == on_date:
                        return interest_period
        raise ValueError(f"No interest period ends on {on_date}")

    def interest_period_starting_at(self, on_date: date) -> InterestPeriod:
        """Interest period whose from date is on_date, splitting one if needed"""
        period = self.find_repayment_period(on_date)
        if not period.contains(on_date):
            raise ValueError(f"{on_date} is outside the schedule {self.start_date} - {self.maturity_date}")
        return period.split_interest_period(on_date)

    def split_at(self, on_date: date) -> None:
        """Make on_date an interest period boundary unless it falls in frozen history"""
        if not self.start_date < on_date < self.maturity_date:
            return
        period = self.find_repayment_period(on_date)
        if self.is_frozen(period):
            return
        period.split_interest_period(on_date)

    # Rates

    def annual_rate_at(self, on_date: date) -> Decimal:
        rate = self.interest_rate_changes[0].annual_rate
        for change in self.interest_rate_changes:
            if change.effective_date <= on_date:
                rate = change.annual_rate
            else:
                break
        return rate

    def add_interest_rate_change(self, effective_date: date, annual_rate: Decimal) -> None:
        changes = [c for c in self.interest_rate_changes if c.effective_date != effective_date]
        changes.append(InterestRateChange(effective_date, Decimal(annual_rate)))
        self.interest_rate_changes = sorted(changes, key=lambda c: c.effective_date)

    # Balances and totals

    def update_outstanding_balances(self, from_index: int = 0) -> None:
        """Forward-only propagation; each period is finalized before the next one"""
        for period in self.repayment_periods[max(from_index, self.first_mutable_index):]:
            period.update_outstanding_loan_balances(self)

    def _sum(self, values) -> Money:
        result = Money.zero(self.currency, self.rounding)
        for value in values:
            result = result.plus(value, self.context)
        return result

    @property
    def total_due_principal(self) -> Money:
        return self._sum(p.due_principal for p in self.repayment_periods)

    @property
    def total_due_interest(self) -> Money:
        return self._sum(p.due_interest for p in self.repayment_periods)

    @property
    def total_paid_principal(self) -> Money:
        return self._sum(p.paid_principal for p in self.repayment_periods)

    @property
    def total_paid_interest(self) -> Money:
        return self._sum(p.paid_interest for p in self.repayment_periods)

    @property
    def total_outstanding(self) -> Money:
        return self._sum(
            p.outstanding_principal.plus(p.outstanding_interest, self.context)
            for p in self.repayment_periods
        )

    def period_values(self) -> List[Dict[str, Any]]:
        """Full serializable state of every period, used for comparisons"""
        return [period.to_dict() for period in self.repayment_periods]

    def to_rows(self) -> List[Dict[str, Any]]:
        """Compact schedule summary for reporting layers"""
        rows = []
        for period in self.repayment_periods:
            rows.append({
                "installment": period.index + 1,
                "from_date": period.from_date,
                "due_date": period.due_date,
                "emi": period.emi,
                "opening_balance": period.opening_loan_balance,
                "due_principal": period.due_principal,
                "due_interest": period.due_interest,
                "paid_principal": period.paid_principal,
                "paid_interest": period.paid_interest,
                "closing_balance": period.closing_loan_balance,
            })
        return rows
