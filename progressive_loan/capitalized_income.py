"""
Capitalized Income Module

Capitalized income (fees added to the loan principal) is recognized as
income gradually. Each close of business amortizes a share of the
unrecognized amount; closing, writing off or charging off the loan
recognizes whatever is left in one final transaction.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional
import threading
import uuid

from .currency import Money, Currency
from .exceptions import InconsistentLoanStateError
from .logging_config import get_logger, log_action
from .rate_factor import days_between
from .terms import CapitalizedIncomeStrategy, LoanSnapshot, LoanStatus


CAPITALIZED_INCOME_AMORTIZATION = "capitalized_income_amortization"


@dataclass
class CapitalizedIncomeBalance:
    """Recognition state of one capitalized income transaction"""
    loan_id: str
    amount: Money
    unrecognized_amount: Money
    charged_off_amount: Optional[Money] = None
    amount_adjustment: Optional[Money] = None
    capitalized_income_transaction_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if self.charged_off_amount is None:
            self.charged_off_amount = self.amount.zero_like()
        if self.amount_adjustment is None:
            self.amount_adjustment = self.amount.zero_like()


@dataclass
class AmortizationTransaction:
    """Income recognized on one date, posted for downstream accounting"""
    loan_id: str
    transaction_date: date
    amount: Money
    transaction_type: str = CAPITALIZED_INCOME_AMORTIZATION
    reversed: bool = False
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def reverse(self) -> None:
        self.reversed = True


class AmortizationTransactionSink(ABC):
    """Where amortization transactions are posted"""

    @abstractmethod
    def post(self, transaction: AmortizationTransaction) -> None:
        """Record a transaction"""
        pass

    @abstractmethod
    def find(self, loan_id: str, transaction_date: Optional[date] = None) -> List[AmortizationTransaction]:
        """Active (not reversed) transactions of a loan, optionally on one date"""
        pass


class InMemoryTransactionSink(AmortizationTransactionSink):
    """In-memory sink for testing and batch previews"""

    def __init__(self):
        self._transactions: List[AmortizationTransaction] = []
        self._lock = threading.RLock()

    def post(self, transaction: AmortizationTransaction) -> None:
        with self._lock:
            self._transactions.append(transaction)

    def find(self, loan_id: str, transaction_date: Optional[date] = None) -> List[AmortizationTransaction]:
        with self._lock:
            return [
                t for t in self._transactions
                if t.loan_id == loan_id and not t.reversed
                and (transaction_date is None or t.transaction_date == transaction_date)
            ]

    @property
    def transactions(self) -> List[AmortizationTransaction]:
        with self._lock:
            return list(self._transactions)


def calculate_daily_amortization(
    strategy: CapitalizedIncomeStrategy,
    days_until_maturity: int,
    unrecognized_amount: Money
) -> Money:
    """
    Amount of unrecognized income to recognize today.

    Args:
        strategy: Amortization strategy
        days_until_maturity: Days from the business date to maturity
        unrecognized_amount: Income not recognized yet

    Returns:
        Today's share rounded to currency precision, never more than what is left
    """
    if strategy is CapitalizedIncomeStrategy.EQUAL_AMORTIZATION:
        if days_until_maturity <= 0:
            return unrecognized_amount
        daily = unrecognized_amount / Decimal(days_until_maturity)
        return min(daily, unrecognized_amount)
    raise ValueError(f"Unsupported capitalized income strategy: {strategy}")


def _total(amounts: List[Money], currency: Currency) -> Money:
    result = Money.zero(currency)
    for amount in amounts:
        result = result + amount
    return result


class CapitalizedIncomeAmortizer:
    """Close-of-business recognition of capitalized income"""

    def __init__(self, sink: AmortizationTransactionSink):
        self.sink = sink
        self.logger = get_logger("progressive_loan.capitalized_income")

    def _post(self, loan: LoanSnapshot, transaction_date: date, amount: Money, action: str) -> AmortizationTransaction:
        transaction = AmortizationTransaction(loan.loan_id, transaction_date, amount)
        self.sink.post(transaction)
        log_action(
            self.logger, "info", f"Posted capitalized income amortization of {amount.to_string()}",
            loan_id=loan.loan_id, action=action,
            extra={"transaction_id": transaction.id, "transaction_date": transaction_date}
        )
        return transaction

    def amortize_daily(
        self,
        loan: LoanSnapshot,
        balances: List[CapitalizedIncomeBalance],
        business_date: date,
        maturity_date: Optional[date] = None
    ) -> Money:
        """Recognize today's share of every balance and post the total"""
        maturity_date = maturity_date or loan.maturity_date
        if maturity_date is None:
            raise InconsistentLoanStateError(f"Loan {loan.loan_id} has no maturity date")

        strategy = loan.terms.capitalized_income_strategy
        days_until_maturity = days_between(business_date, maturity_date)
        total = loan.terms.zero()

        for balance in balances:
            if not balance.unrecognized_amount.is_positive():
                continue
            amortized = calculate_daily_amortization(strategy, days_until_maturity, balance.unrecognized_amount)
            balance.unrecognized_amount = balance.unrecognized_amount - amortized
            total = total + amortized

        if total.is_positive():
            self._post(loan, business_date, total, "amortize_daily")
        return total

    def _closure_date(self, loan: LoanSnapshot) -> date:
        if loan.status is LoanStatus.CLOSED_OBLIGATIONS_MET:
            closure_date = loan.closed_on_date
        elif loan.status is LoanStatus.OVERPAID:
            closure_date = loan.overpaid_on_date
        elif loan.status is LoanStatus.CLOSED_WRITTEN_OFF:
            closure_date = loan.written_off_on_date
        else:
            raise InconsistentLoanStateError(
                f"Loan {loan.loan_id} in status {loan.status.value} is not closed"
            )
        if closure_date is None:
            raise InconsistentLoanStateError(
                f"Loan {loan.loan_id} in status {loan.status.value} has no closure date"
            )
        return closure_date

    def amortize_on_closure(self, loan: LoanSnapshot, balances: List[CapitalizedIncomeBalance]) -> Money:
        """Recognize everything left, dated at the closure event"""
        closure_date = self._closure_date(loan)
        total = loan.terms.zero()
        for balance in balances:
            total = total + balance.unrecognized_amount
            balance.unrecognized_amount = balance.unrecognized_amount.zero_like()

        self._post(loan, closure_date, total, "amortize_on_closure")
        return total

    def amortize_on_charge_off(
        self,
        loan: LoanSnapshot,
        balances: List[CapitalizedIncomeBalance],
        business_date: date
    ) -> Money:
        """Move unrecognized income into the charged-off bucket"""
        transaction_date = loan.charged_off_on_date or business_date
        total = loan.terms.zero()
        for balance in balances:
            if not balance.unrecognized_amount.is_positive():
                continue
            balance.charged_off_amount = balance.charged_off_amount + balance.unrecognized_amount
            total = total + balance.unrecognized_amount
            balance.unrecognized_amount = balance.unrecognized_amount.zero_like()

        if total.is_positive():
            self._post(loan, transaction_date, total, "amortize_on_charge_off")
        return total

    def undo_charge_off(self, loan: LoanSnapshot, balances: List[CapitalizedIncomeBalance]) -> Money:
        """Reverse the charge-off postings and make the charged-off income unrecognized again"""
        if loan.charged_off_on_date is None:
            raise InconsistentLoanStateError(f"Loan {loan.loan_id} is not charged off")

        for transaction in self.sink.find(loan.loan_id, loan.charged_off_on_date):
            transaction.reverse()

        restored = loan.terms.zero()
        for balance in balances:
            restored = restored + balance.charged_off_amount
            balance.unrecognized_amount = balance.unrecognized_amount + balance.charged_off_amount
            balance.charged_off_amount = balance.charged_off_amount.zero_like()

        log_action(
            self.logger, "info", f"Undid capitalized income charge-off of {restored.to_string()}",
            loan_id=loan.loan_id, action="undo_charge_off"
        )
        return restored

    def calculate_capitalized_income(self, balances: List[CapitalizedIncomeBalance], currency: Currency) -> Money:
        return _total([b.amount for b in balances], currency)

    def calculate_capitalized_income_adjustment(
        self,
        balances: List[CapitalizedIncomeBalance],
        currency: Currency
    ) -> Money:
        return _total([b.amount_adjustment for b in balances], currency)

    def on_loan_status_changed(
        self,
        old_status: LoanStatus,
        loan: LoanSnapshot,
        balances: List[CapitalizedIncomeBalance]
    ) -> bool:
        """
        Post-processing for loan status changes.

        A loan that falls back to approved from any state other than pending
        approval (an undone disbursement) loses its capitalized income
        balances. Returns True when the balances were reset.
        """
        if old_status.is_submitted_and_pending_approval or loan.status is not LoanStatus.APPROVED:
            return False
        balances.clear()
        log_action(
            self.logger, "info", "Reset capitalized income balances",
            loan_id=loan.loan_id, action="status_change",
            extra={"old_status": old_status.value, "new_status": loan.status.value}
        )
        return True
