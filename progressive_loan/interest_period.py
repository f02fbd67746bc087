"""
Interest Period Module

An interest period is a sub-range of a repayment period with a constant
rate basis. Periods split when a disbursement, rate change, payment or pause
boundary lands inside a billing cycle.
"""

from datetime import date
from decimal import Decimal, Context
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, TYPE_CHECKING

from .currency import Money
from .mathutil import ZERO, default_context, negative_to_zero
from .rate_factor import days_between

if TYPE_CHECKING:
    from .repayment_period import RepaymentPeriod
    from .schedule import ProgressiveLoanScheduleModel


@dataclass(eq=False)
class InterestPeriod:
    """
    Smallest time slice of the schedule.

    The parent repayment period is referenced by index only; the schedule
    model resolves it. Amount fields accumulate, they are never replaced.
    """
    repayment_period_index: int
    from_date: date
    due_date: date
    outstanding_loan_balance: Money
    disbursement_amount: Money
    credited_principal: Money  # Chargeback or credit balance refund
    credited_interest: Money  # Chargeback
    balance_correction_amount: Money
    capitalized_income_principal: Money
    rate_factor: Decimal = ZERO
    rate_factor_till_period_due_date: Decimal = ZERO
    paused: bool = False
    context: Context = field(default_factory=default_context, repr=False)

    def __post_init__(self):
        if self.from_date >= self.due_date:
            raise ValueError(
                f"Interest period must end after it starts: {self.from_date} - {self.due_date}"
            )

    @classmethod
    def with_empty_amounts(
        cls,
        repayment_period_index: int,
        from_date: date,
        due_date: date,
        zero: Money,
        paused: bool = False,
        context: Optional[Context] = None
    ) -> 'InterestPeriod':
        zero = zero.zero_like()
        return cls(
            repayment_period_index=repayment_period_index,
            from_date=from_date,
            due_date=due_date,
            outstanding_loan_balance=zero,
            disbursement_amount=zero,
            credited_principal=zero,
            credited_interest=zero,
            balance_correction_amount=zero,
            capitalized_income_principal=zero,
            paused=paused,
            context=context or default_context()
        )

    def copy(self, repayment_period_index: Optional[int] = None) -> 'InterestPeriod':
        return InterestPeriod(
            repayment_period_index=self.repayment_period_index if repayment_period_index is None
            else repayment_period_index,
            from_date=self.from_date,
            due_date=self.due_date,
            outstanding_loan_balance=self.outstanding_loan_balance,
            disbursement_amount=self.disbursement_amount,
            credited_principal=self.credited_principal,
            credited_interest=self.credited_interest,
            balance_correction_amount=self.balance_correction_amount,
            capitalized_income_principal=self.capitalized_income_principal,
            rate_factor=self.rate_factor,
            rate_factor_till_period_due_date=self.rate_factor_till_period_due_date,
            paused=self.paused,
            context=self.context
        )

    def __lt__(self, other: 'InterestPeriod') -> bool:
        return self.due_date < other.due_date

    # Accumulating mutators

    def add_disbursement_amount(self, amount: Money) -> None:
        self.disbursement_amount = self.disbursement_amount.plus(amount, self.context)

    def add_credited_principal_amount(self, amount: Money) -> None:
        self.credited_principal = self.credited_principal.plus(amount, self.context)

    def add_credited_interest_amount(self, amount: Money) -> None:
        self.credited_interest = self.credited_interest.plus(amount, self.context)

    def add_capitalized_income_principal_amount(self, amount: Money) -> None:
        self.capitalized_income_principal = self.capitalized_income_principal.plus(amount, self.context)

    def add_balance_correction_amount(self, amount: Money) -> None:
        self.balance_correction_amount = self.balance_correction_amount.plus(amount, self.context)

    def add_opening_balance(self, amount: Money) -> None:
        """Only used on the first interest period of the loan, which has no predecessor"""
        self.outstanding_loan_balance = self.outstanding_loan_balance.plus(amount, self.context)

    # Derived values

    @property
    def length(self) -> int:
        return days_between(self.from_date, self.due_date)

    def length_till_period_due_date(self, repayment_period: 'RepaymentPeriod') -> int:
        return days_between(self.from_date, repayment_period.due_date)

    @property
    def credited_amounts(self) -> Money:
        """Principal-like amounts: disbursement, credited principal and capitalized income"""
        return self.disbursement_amount \
            .plus(self.credited_principal, self.context) \
            .plus(self.capitalized_income_principal, self.context)

    @property
    def closing_balance(self) -> Money:
        """Balance carried into the next interest period of the same repayment period"""
        return self.outstanding_loan_balance \
            .plus(self.balance_correction_amount, self.context) \
            .plus(self.capitalized_income_principal, self.context) \
            .plus(self.disbursement_amount, self.context)

    def calculated_due_interest(self, repayment_period: 'RepaymentPeriod') -> Decimal:
        """
        Interest due for this slice, unrounded.

        The rate factor projected to the parent's due date is pro-rated to
        this slice's length, so a mid-cycle rate change is split correctly.
        Paused slices only carry interest that was credited back to them.
        """
        if self.paused:
            return self.credited_interest.amount

        ctx = self.context
        length_till_due = self.length_till_period_due_date(repayment_period)
        if length_till_due == 0:
            interest_till_due = ZERO
        else:
            interest_till_due = ctx.multiply(
                ctx.divide(
                    ctx.multiply(self.outstanding_loan_balance.amount, self.rate_factor_till_period_due_date),
                    Decimal(length_till_due)
                ),
                Decimal(self.length)
            )
        return negative_to_zero(ctx.add(self.credited_interest.amount, interest_till_due))

    def is_first_interest_period(self, model: 'ProgressiveLoanScheduleModel') -> bool:
        return model.parent_of(self).first_interest_period is self

    def update_outstanding_loan_balance(self, model: 'ProgressiveLoanScheduleModel') -> None:
        """
        Recompute the opening balance from the predecessor.

        The first slice of a repayment period chains from the previous
        repayment period's last slice and also settles that period's due
        principal (paid principal was already taken out through balance
        corrections). Later slices chain from the slice before them without
        any principal settlement, since principal is only collected at the
        billing-cycle boundary. The first slice of the loan keeps its
        opening balance.
        """
        parent = model.parent_of(self)
        ctx = self.context

        if self.is_first_interest_period(model):
            previous_period = model.previous(parent)
            if previous_period is None:
                return
            previous_interest_period = previous_period.last_interest_period
            balance = previous_interest_period.outstanding_loan_balance \
                .plus(previous_interest_period.disbursement_amount, ctx) \
                .plus(previous_interest_period.capitalized_income_principal, ctx) \
                .plus(previous_interest_period.balance_correction_amount, ctx) \
                .minus(previous_period.due_principal, ctx) \
                .plus(previous_period.paid_principal, ctx)
        else:
            position = parent.position_of(self)
            balance = parent.interest_periods[position - 1].closing_balance

        self.outstanding_loan_balance = balance.negative_to_zero()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_date": self.from_date.isoformat(),
            "due_date": self.due_date.isoformat(),
            "rate_factor": str(self.rate_factor),
            "rate_factor_till_period_due_date": str(self.rate_factor_till_period_due_date),
            "outstanding_loan_balance": str(self.outstanding_loan_balance.amount),
            "disbursement_amount": str(self.disbursement_amount.amount),
            "credited_principal": str(self.credited_principal.amount),
            "credited_interest": str(self.credited_interest.amount),
            "balance_correction_amount": str(self.balance_correction_amount.amount),
            "capitalized_income_principal": str(self.capitalized_income_principal.amount),
            "paused": self.paused,
        }
