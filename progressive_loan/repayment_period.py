"""
Repayment Period Module

A repayment period is one billing cycle. It aggregates its interest periods
into due and paid principal and interest, and carries the equal installment
amount (EMI) the calculator assigned to it.
"""

from datetime import date
from decimal import Decimal, Context
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from .currency import Money, Currency
from .interest_period import InterestPeriod
from .mathutil import default_context, total

if TYPE_CHECKING:
    from .schedule import ProgressiveLoanScheduleModel


@dataclass(eq=False)
class RepaymentPeriod:
    """Billing cycle [from_date, due_date] owning an ordered list of interest periods"""
    index: int
    from_date: date
    due_date: date
    emi: Money
    calculated_due_principal: Money
    paid_principal: Money
    paid_interest: Money
    interest_periods: List[InterestPeriod] = field(default_factory=list)
    principal_paused: bool = False
    context: Context = field(default_factory=default_context, repr=False)

    def __post_init__(self):
        if self.from_date >= self.due_date:
            raise ValueError(
                f"Repayment period must end after it starts: {self.from_date} - {self.due_date}"
            )

    @classmethod
    def create(
        cls,
        index: int,
        from_date: date,
        due_date: date,
        currency: Currency,
        rounding: Optional[str] = None,
        context: Optional[Context] = None
    ) -> 'RepaymentPeriod':
        """New period with zero amounts and a single interest period covering it"""
        context = context or default_context()
        zero = Money.zero(currency, rounding)
        period = cls(
            index=index,
            from_date=from_date,
            due_date=due_date,
            emi=zero,
            calculated_due_principal=zero,
            paid_principal=zero,
            paid_interest=zero,
            context=context
        )
        period.interest_periods.append(
            InterestPeriod.with_empty_amounts(index, from_date, due_date, zero, context=context)
        )
        return period

    def copy(self, index: Optional[int] = None) -> 'RepaymentPeriod':
        index = self.index if index is None else index
        return RepaymentPeriod(
            index=index,
            from_date=self.from_date,
            due_date=self.due_date,
            emi=self.emi,
            calculated_due_principal=self.calculated_due_principal,
            paid_principal=self.paid_principal,
            paid_interest=self.paid_interest,
            interest_periods=[ip.copy(index) for ip in self.interest_periods],
            principal_paused=self.principal_paused,
            context=self.context
        )

    @property
    def zero(self) -> Money:
        return self.emi.zero_like()

    # Navigation

    def previous(self, model: 'ProgressiveLoanScheduleModel') -> Optional['RepaymentPeriod']:
        return model.previous(self)

    def next(self, model: 'ProgressiveLoanScheduleModel') -> Optional['RepaymentPeriod']:
        return model.next(self)

    @property
    def first_interest_period(self) -> InterestPeriod:
        return self.interest_periods[0]

    @property
    def last_interest_period(self) -> InterestPeriod:
        return self.interest_periods[-1]

    def position_of(self, interest_period: InterestPeriod) -> int:
        for position, candidate in enumerate(self.interest_periods):
            if candidate is interest_period:
                return position
        raise ValueError(f"Interest period {interest_period.from_date} does not belong to period {self.index}")

    def contains(self, on_date: date) -> bool:
        """True when on_date falls in [from_date, due_date)"""
        return self.from_date <= on_date < self.due_date

    def find_interest_period(self, on_date: date) -> InterestPeriod:
        """Interest period covering on_date; the due date maps to the last one"""
        for interest_period in self.interest_periods:
            if interest_period.from_date <= on_date < interest_period.due_date:
                return interest_period
        return self.last_interest_period

    def split_interest_period(self, split_date: date) -> InterestPeriod:
        """
        Split the interest period containing split_date so that a period
        starts on it. Returns the period starting on split_date; no split
        happens when one already does.
        """
        if not self.from_date <= split_date < self.due_date:
            raise ValueError(f"{split_date} is outside repayment period {self.from_date} - {self.due_date}")

        current = self.find_interest_period(split_date)
        if current.from_date == split_date:
            return current

        tail = InterestPeriod.with_empty_amounts(
            self.index, split_date, current.due_date, self.zero,
            paused=current.paused, context=self.context
        )
        current.due_date = split_date
        self.interest_periods.insert(self.position_of(current) + 1, tail)
        return tail

    # Balances

    def update_outstanding_loan_balances(self, model: 'ProgressiveLoanScheduleModel') -> None:
        """Single forward pass over the interest periods, in due date order"""
        for interest_period in self.interest_periods:
            interest_period.update_outstanding_loan_balance(model)

    @property
    def opening_loan_balance(self) -> Money:
        return self.first_interest_period.outstanding_loan_balance

    @property
    def principal_before_due(self) -> Money:
        """Balance at the due date before the period's principal is settled"""
        return self.last_interest_period.closing_balance

    @property
    def closing_loan_balance(self) -> Money:
        """Balance carried into the next repayment period"""
        return self.principal_before_due \
            .minus(self.due_principal, self.context) \
            .plus(self.paid_principal, self.context) \
            .negative_to_zero()

    # Due and paid amounts

    @property
    def credited_principal(self) -> Money:
        result = self.zero
        for interest_period in self.interest_periods:
            result = result.plus(interest_period.credited_principal, self.context)
        return result

    @property
    def credited_interest(self) -> Money:
        result = self.zero
        for interest_period in self.interest_periods:
            result = result.plus(interest_period.credited_interest, self.context)
        return result

    @property
    def due_principal(self) -> Money:
        """Calculated principal plus chargebacks; never less than what was already paid"""
        due = self.calculated_due_principal.plus(self.credited_principal, self.context)
        return due if due >= self.paid_principal else self.paid_principal

    @property
    def calculated_due_interest(self) -> Decimal:
        return total(
            (ip.calculated_due_interest(self) for ip in self.interest_periods),
            self.context
        )

    @property
    def due_interest(self) -> Money:
        return self.zero.with_amount(self.calculated_due_interest)

    @property
    def total_due(self) -> Money:
        return self.due_principal.plus(self.due_interest, self.context)

    @property
    def outstanding_principal(self) -> Money:
        return self.due_principal.minus(self.paid_principal, self.context).negative_to_zero()

    @property
    def outstanding_interest(self) -> Money:
        return self.due_interest.minus(self.paid_interest, self.context).negative_to_zero()

    @property
    def is_fully_paid(self) -> bool:
        return self.outstanding_principal.is_zero() and self.outstanding_interest.is_zero()

    def add_paid_principal(self, amount: Money) -> None:
        self.paid_principal = self.paid_principal.plus(amount, self.context)

    def add_paid_interest(self, amount: Money) -> None:
        self.paid_interest = self.paid_interest.plus(amount, self.context)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "from_date": self.from_date.isoformat(),
            "due_date": self.due_date.isoformat(),
            "emi": str(self.emi.amount),
            "due_principal": str(self.due_principal.amount),
            "due_interest": str(self.due_interest.amount),
            "paid_principal": str(self.paid_principal.amount),
            "paid_interest": str(self.paid_interest.amount),
            "principal_paused": self.principal_paused,
            "interest_periods": [ip.to_dict() for ip in self.interest_periods],
        }
