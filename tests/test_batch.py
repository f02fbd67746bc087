"""
Test suite for batch processing
"""

from decimal import Decimal
from datetime import date

from progressive_loan.batch import recalculate_loans, run_capitalized_income_amortization
from progressive_loan.capitalized_income import CapitalizedIncomeBalance, InMemoryTransactionSink
from progressive_loan.currency import Money, Currency
from progressive_loan.exceptions import InvalidLoanTermsError
from progressive_loan.rate_factor import DaysInYearType
from progressive_loan.terms import (
    LoanSnapshot, LoanStatus, LoanTerms, LoanTransaction, LoanTransactionType, PaymentFrequency
)


def usd(amount) -> Money:
    return Money(Decimal(str(amount)), Currency.USD)


def make_loan(loan_id: str, **overrides) -> LoanSnapshot:
    terms = LoanTerms(
        principal_amount=usd(12000),
        annual_nominal_rate=Decimal('12'),
        number_of_installments=12,
        payment_frequency=PaymentFrequency.MONTHLY,
        disbursement_date=date(2024, 1, 1),
        days_in_year_type=DaysInYearType.DAYS_365,
    )
    return LoanSnapshot(loan_id, terms, **overrides)


class TestRecalculateLoans:
    """Test per-loan schedule generation on a thread pool"""

    def test_all_loans_generated(self):
        snapshots = [make_loan(f"loan-{i}") for i in range(5)]
        result = recalculate_loans(snapshots, max_workers=3)

        assert result.succeeded == [f"loan-{i}" for i in range(5)]
        assert result.failed == []
        assert result.results["loan-2"].total_due_principal == usd(12000)

    def test_failures_are_isolated(self):
        """Test a failing loan is recorded and the others still run"""
        broken = make_loan("loan-bad", transactions=[
            LoanTransaction(LoanTransactionType.DISBURSEMENT, date(2025, 1, 1), usd(12000))
        ])
        result = recalculate_loans([make_loan("loan-ok"), broken])

        assert result.succeeded == ["loan-ok"]
        assert result.failed == ["loan-bad"]
        assert isinstance(result.errors["loan-bad"], InvalidLoanTermsError)


class TestCapitalizedIncomeBatch:
    """Test the close-of-business capitalized income step"""

    def test_open_and_closed_loans(self):
        sink = InMemoryTransactionSink()
        open_loan = make_loan("loan-open")
        closed_loan = make_loan("loan-closed", status=LoanStatus.CLOSED_OBLIGATIONS_MET,
                                closed_on_date=date(2024, 6, 1))
        loans = [
            (open_loan, [CapitalizedIncomeBalance("loan-open", usd(300), usd(300))]),
            (closed_loan, [CapitalizedIncomeBalance("loan-closed", usd(300), usd(100))]),
        ]

        # Maturity of the open loan comes from its generated schedule: 2025-01-01
        result = run_capitalized_income_amortization(loans, date(2024, 12, 2), sink)

        assert result.failed == []
        assert result.results["loan-open"] == usd(10)
        assert result.results["loan-closed"] == usd(100)
        assert len(sink.transactions) == 2

    def test_inconsistent_loan_is_reported(self):
        sink = InMemoryTransactionSink()
        loan = make_loan("loan-x", status=LoanStatus.OVERPAID)
        result = run_capitalized_income_amortization(
            [(loan, [CapitalizedIncomeBalance("loan-x", usd(300), usd(300))])], date(2024, 12, 2), sink
        )
        assert result.failed == ["loan-x"]
        assert sink.transactions == []
