"""
Loan Terms Module

Immutable inputs of a recalculation pass: loan terms, term variations,
transaction history and the loan snapshot that bundles them. Everything is
validated up front so that generation never starts on contradictory input.
"""

import calendar
from decimal import Decimal
from datetime import date, timedelta
from dataclasses import dataclass, field
from typing import List, Optional
from enum import Enum
import uuid

from .config import get_config
from .currency import Money, Currency
from .exceptions import InvalidLoanTermsError
from .rate_factor import DaysInYearType


class PaymentFrequency(Enum):
    """Payment frequency options, multiplied by the terms' repayment_every"""
    DAILY = "daily"
    WEEKLY = "weekly"          # 52 payments per year
    BI_WEEKLY = "bi_weekly"    # 26 payments per year
    MONTHLY = "monthly"        # 12 payments per year
    QUARTERLY = "quarterly"    # 4 payments per year
    SEMI_ANNUALLY = "semi_annually"  # 2 payments per year
    ANNUALLY = "annually"      # 1 payment per year


_DAYS_PER_STEP = {
    PaymentFrequency.DAILY: 1,
    PaymentFrequency.WEEKLY: 7,
    PaymentFrequency.BI_WEEKLY: 14,
}

_MONTHS_PER_STEP = {
    PaymentFrequency.MONTHLY: 1,
    PaymentFrequency.QUARTERLY: 3,
    PaymentFrequency.SEMI_ANNUALLY: 6,
    PaymentFrequency.ANNUALLY: 12,
}


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, handling month-end edge cases"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def advance_date(anchor: date, frequency: PaymentFrequency, steps: int, every: int = 1) -> date:
    """
    Date that lies `steps` repayment intervals after anchor.

    Always computed from the anchor rather than chained, so month-end dates
    do not drift (Jan 31 -> Feb 29 -> Mar 31).
    """
    if frequency in _DAYS_PER_STEP:
        return anchor + timedelta(days=_DAYS_PER_STEP[frequency] * every * steps)
    elif frequency in _MONTHS_PER_STEP:
        return add_months(anchor, _MONTHS_PER_STEP[frequency] * every * steps)
    else:
        raise ValueError(f"Unsupported payment frequency: {frequency}")


class AmortizationMethod(Enum):
    """EMI policy"""
    EQUAL_INSTALLMENT = "equal_installment"  # French method - equal payments
    EQUAL_PRINCIPAL = "equal_principal"      # Equal principal + declining interest


class CapitalizedIncomeStrategy(Enum):
    """How unrecognized capitalized income is spread over the remaining tenor"""
    EQUAL_AMORTIZATION = "equal_amortization"


class TermVariationType(Enum):
    """Mid-life changes to the loan terms"""
    DUE_DATE = "due_date"                  # date_value: new due date of the installment on applicable_from
    INTEREST_RATE = "interest_rate"        # decimal_value: new annual rate in percent
    INTEREST_PAUSE = "interest_pause"      # date_value: last paused day (inclusive)
    PRINCIPAL_PAUSE = "principal_pause"    # date_value: last paused day (inclusive)
    EXTEND_REPAYMENT_PERIOD = "extend_repayment_period"  # decimal_value: extra installments


class LoanTransactionType(Enum):
    DISBURSEMENT = "disbursement"
    REPAYMENT = "repayment"
    CHARGEBACK = "chargeback"
    CAPITALIZED_INCOME = "capitalized_income"
    BALANCE_CORRECTION = "balance_correction"


class LoanStatus(Enum):
    """Loan lifecycle states relevant to the engine"""
    SUBMITTED_AND_PENDING_APPROVAL = "submitted_and_pending_approval"
    APPROVED = "approved"
    ACTIVE = "active"
    CLOSED_OBLIGATIONS_MET = "closed_obligations_met"
    CLOSED_WRITTEN_OFF = "closed_written_off"
    OVERPAID = "overpaid"

    @property
    def is_submitted_and_pending_approval(self) -> bool:
        return self is LoanStatus.SUBMITTED_AND_PENDING_APPROVAL

    @property
    def is_closed(self) -> bool:
        return self in (LoanStatus.CLOSED_OBLIGATIONS_MET, LoanStatus.CLOSED_WRITTEN_OFF, LoanStatus.OVERPAID)


@dataclass
class TermVariation:
    """A change to the terms that applies from a given date"""
    variation_type: TermVariationType
    applicable_from: date
    date_value: Optional[date] = None
    decimal_value: Optional[Decimal] = None

    def __post_init__(self):
        if self.decimal_value is not None and not isinstance(self.decimal_value, Decimal):
            self.decimal_value = Decimal(str(self.decimal_value))

    def validate(self) -> None:
        kind = self.variation_type
        if kind in (TermVariationType.DUE_DATE, TermVariationType.INTEREST_PAUSE,
                    TermVariationType.PRINCIPAL_PAUSE) and self.date_value is None:
            raise InvalidLoanTermsError(f"{kind.value} variation on {self.applicable_from} requires a date value")
        if kind in (TermVariationType.INTEREST_PAUSE, TermVariationType.PRINCIPAL_PAUSE) \
                and self.date_value < self.applicable_from:
            raise InvalidLoanTermsError(
                f"{kind.value} variation ends {self.date_value} before it starts {self.applicable_from}"
            )
        if kind is TermVariationType.INTEREST_RATE:
            if self.decimal_value is None or self.decimal_value < Decimal('0'):
                raise InvalidLoanTermsError(
                    f"Interest rate variation on {self.applicable_from} requires a non-negative rate"
                )
        if kind is TermVariationType.EXTEND_REPAYMENT_PERIOD:
            if self.decimal_value is None or self.decimal_value != self.decimal_value.to_integral_value() \
                    or self.decimal_value < 1:
                raise InvalidLoanTermsError("Repayment period extension requires a positive whole number")

    def same_as(self, other: 'TermVariation') -> bool:
        return (self.variation_type == other.variation_type
                and self.applicable_from == other.applicable_from
                and self.date_value == other.date_value
                and self.decimal_value == other.decimal_value)


@dataclass
class LoanTransaction:
    """A transaction from the loan's history, consumed in date order"""
    transaction_type: LoanTransactionType
    transaction_date: date
    amount: Money
    principal_portion: Optional[Money] = None   # Repayment allocation override / chargeback principal
    interest_portion: Optional[Money] = None    # Repayment allocation override / chargeback interest
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def validate(self, currency: Currency) -> None:
        for money in (self.amount, self.principal_portion, self.interest_portion):
            if money is None:
                continue
            if money.currency != currency:
                raise InvalidLoanTermsError(
                    f"Transaction {self.id} currency {money.currency.code} does not match loan currency {currency.code}"
                )
        if self.transaction_type is not LoanTransactionType.BALANCE_CORRECTION and self.amount.is_negative():
            raise InvalidLoanTermsError(f"Transaction {self.id} has a negative amount")
        if self.principal_portion is not None and self.interest_portion is not None:
            if self.principal_portion.plus(self.interest_portion) != self.amount:
                raise InvalidLoanTermsError(
                    f"Transaction {self.id} portions do not add up to {self.amount.to_string()}"
                )


@dataclass
class LoanTerms:
    """Loan terms and conditions"""
    principal_amount: Money
    annual_nominal_rate: Decimal        # Percent, e.g. 12 for 12%
    number_of_installments: int
    payment_frequency: PaymentFrequency
    disbursement_date: date
    first_payment_date: Optional[date] = None
    repayment_every: int = 1
    days_in_year_type: Optional[DaysInYearType] = None
    amortization_method: AmortizationMethod = AmortizationMethod.EQUAL_INSTALLMENT
    capitalized_income_strategy: Optional[CapitalizedIncomeStrategy] = None
    term_variations: List[TermVariation] = field(default_factory=list)

    def __post_init__(self):
        if not isinstance(self.annual_nominal_rate, Decimal):
            self.annual_nominal_rate = Decimal(str(self.annual_nominal_rate))

        settings = get_config()
        if self.days_in_year_type is None:
            self.days_in_year_type = DaysInYearType.from_code(settings.default_days_in_year_type)
        if self.capitalized_income_strategy is None:
            self.capitalized_income_strategy = CapitalizedIncomeStrategy(settings.default_capitalized_income_strategy)

        self.validate()

    @property
    def currency(self) -> Currency:
        return self.principal_amount.currency

    @property
    def rounding(self) -> str:
        return self.principal_amount.rounding

    def zero(self) -> Money:
        return self.principal_amount.zero_like()

    def variations(self, variation_type: TermVariationType) -> List[TermVariation]:
        return sorted(
            (v for v in self.term_variations if v.variation_type is variation_type),
            key=lambda v: v.applicable_from
        )

    @property
    def extra_installments(self) -> int:
        return sum(int(v.decimal_value) for v in self.variations(TermVariationType.EXTEND_REPAYMENT_PERIOD))

    @property
    def total_installments(self) -> int:
        return self.number_of_installments + self.extra_installments

    def advance(self, anchor: date, steps: int = 1) -> date:
        return advance_date(anchor, self.payment_frequency, steps, self.repayment_every)

    @property
    def repayment_anchor(self) -> date:
        """First natural due date; later natural dates are whole intervals after it"""
        return self.first_payment_date or self.advance(self.disbursement_date)

    def validate(self) -> None:
        """Reject malformed or contradictory terms before any generation"""
        if not self.principal_amount.is_positive():
            raise InvalidLoanTermsError("Principal amount must be positive")
        if self.annual_nominal_rate < Decimal('0'):
            raise InvalidLoanTermsError("Annual nominal rate cannot be negative")
        if self.number_of_installments < 1:
            raise InvalidLoanTermsError("Number of installments must be at least 1")
        if self.repayment_every < 1:
            raise InvalidLoanTermsError("Repayment frequency multiplier must be at least 1")
        if self.first_payment_date is not None and self.first_payment_date <= self.disbursement_date:
            raise InvalidLoanTermsError("First payment date must be after the disbursement date")

        seen = set()
        for variation in self.term_variations:
            variation.validate()
            key = (variation.variation_type, variation.applicable_from)
            if key in seen:
                raise InvalidLoanTermsError(
                    f"Duplicate {variation.variation_type.value} variation applicable from {variation.applicable_from}"
                )
            seen.add(key)


@dataclass
class LoanSnapshot:
    """Everything a recalculation pass needs, fully materialized"""
    loan_id: str
    terms: LoanTerms
    transactions: List[LoanTransaction] = field(default_factory=list)
    business_date: Optional[date] = None
    status: LoanStatus = LoanStatus.ACTIVE
    maturity_date: Optional[date] = None
    closed_on_date: Optional[date] = None
    overpaid_on_date: Optional[date] = None
    written_off_on_date: Optional[date] = None
    charged_off_on_date: Optional[date] = None

    def __post_init__(self):
        self.validate()

    @property
    def currency(self) -> Currency:
        return self.terms.currency

    @property
    def is_charged_off(self) -> bool:
        return self.charged_off_on_date is not None

    def transactions_of(self, transaction_type: LoanTransactionType) -> List[LoanTransaction]:
        return [t for t in self.transactions if t.transaction_type is transaction_type]

    def validate(self) -> None:
        previous_date = None
        disbursed = self.terms.zero()
        for transaction in self.transactions:
            transaction.validate(self.currency)
            if previous_date is not None and transaction.transaction_date < previous_date:
                raise InvalidLoanTermsError("Transactions must be in chronological order")
            previous_date = transaction.transaction_date
            if transaction.transaction_type is LoanTransactionType.DISBURSEMENT:
                if transaction.transaction_date < self.terms.disbursement_date:
                    raise InvalidLoanTermsError(
                        f"Disbursement on {transaction.transaction_date} precedes the loan start "
                        f"{self.terms.disbursement_date}"
                    )
                disbursed = disbursed.plus(transaction.amount)
        if disbursed > self.terms.principal_amount:
            raise InvalidLoanTermsError(
                f"Disbursed {disbursed.to_string()} exceeds approved principal {self.terms.principal_amount.to_string()}"
            )
