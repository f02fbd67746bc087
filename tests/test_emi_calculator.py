"""
Test suite for progressive EMI calculator

Covers disbursements, repayment allocation, prepayment, overpayment,
chargebacks, rate changes, pauses and both amortization methods on a
100,000 USD loan at 12% over 12 monthly installments.
"""

import pytest
from decimal import Decimal
from datetime import date

from progressive_loan.currency import Money, Currency
from progressive_loan.emi_calculator import ProgressiveEMICalculator
from progressive_loan.exceptions import InvalidLoanTermsError
from progressive_loan.rate_factor import DaysInYearType
from progressive_loan.terms import AmortizationMethod, add_months


START = date(2024, 4, 1)


def usd(amount) -> Money:
    return Money(Decimal(str(amount)), Currency.USD)


def monthly_dates(count: int, start: date = START):
    return [(add_months(start, i), add_months(start, i + 1)) for i in range(count)]


def build_loan(calculator: ProgressiveEMICalculator, principal='100000', count: int = 12):
    model = calculator.create_model(monthly_dates(count), Decimal('12'), DaysInYearType.DAYS_365, Currency.USD)
    calculator.add_disbursement(model, START, usd(principal))
    return model


class TestEqualInstallment:
    """Test EMI calculation on a single disbursement"""

    def setup_method(self):
        self.calculator = ProgressiveEMICalculator()
        self.model = build_loan(self.calculator)

    def test_first_period_interest(self):
        """Test 100,000 at 12% over 30 days on a 365-day year"""
        first = self.model.first_period
        assert first.opening_loan_balance == usd(100000)
        assert first.due_interest == usd('986.30')

    def test_emi_is_level(self):
        """Test every installment but the last carries the same EMI"""
        emis = [p.emi for p in self.model.repayment_periods]
        assert len(set(e.amount for e in emis[:-1])) == 1
        assert usd(8800) < emis[0] < usd(8950)
        assert abs(emis[-1].amount - emis[0].amount) <= Decimal('1.00')

    def test_principal_fully_amortized(self):
        """Test the due principal adds up to the disbursed amount exactly"""
        assert self.model.total_due_principal == usd(100000)
        assert self.model.last_period.closing_loan_balance.is_zero()

        # Balances chain from one period to the next
        for period in self.model.repayment_periods[1:]:
            previous = self.model.previous(period)
            assert period.opening_loan_balance == previous.closing_loan_balance

    def test_balances_never_negative(self):
        for period in self.model.repayment_periods:
            assert not period.opening_loan_balance.is_negative()
            assert not period.calculated_due_principal.is_negative()
            assert not period.due_interest.is_negative()

    def test_single_installment(self):
        model = build_loan(self.calculator, count=1)
        period = model.first_period
        assert period.due_principal == usd(100000)
        assert period.emi == usd('100986.30')


class TestDisbursements:
    """Test balance changes inside a billing cycle"""

    def setup_method(self):
        self.calculator = ProgressiveEMICalculator()

    def test_mid_period_disbursement_splits_interest(self):
        """80,000 for 10 days then 100,000 for 20 days"""
        model = build_loan(self.calculator, principal='80000')
        self.calculator.add_disbursement(model, date(2024, 4, 11), usd(20000))

        first = model.first_period
        assert len(first.interest_periods) == 2
        assert first.interest_periods[0].outstanding_loan_balance == usd(80000)
        assert first.interest_periods[1].from_date == date(2024, 4, 11)
        assert first.interest_periods[1].outstanding_loan_balance == usd(100000)
        assert first.due_interest == usd('920.55')
        assert model.total_due_principal == usd(100000)

    def test_same_day_disbursements_accumulate(self):
        model = build_loan(self.calculator, principal='40000')
        self.calculator.add_disbursement(model, START, usd(60000))
        assert model.first_period.opening_loan_balance == usd(100000)
        assert model.first_period.due_interest == usd('986.30')

    def test_capitalized_income_raises_balance(self):
        model = build_loan(self.calculator)
        emi_before = model.repayment_periods[2].emi
        self.calculator.add_capitalized_income(model, date(2024, 5, 1), usd(1200))

        assert model.total_due_principal == usd(101200)
        assert model.repayment_periods[2].emi > emi_before

    def test_balance_correction(self):
        model = build_loan(self.calculator)
        self.calculator.add_balance_correction(model, date(2024, 6, 1), usd(-1000))
        assert model.total_due_principal == usd(99000)


class TestRepaymentAllocation:
    """Test repayment allocation, prepayment and overpayment"""

    def setup_method(self):
        self.calculator = ProgressiveEMICalculator()
        self.model = build_loan(self.calculator)

    def test_on_time_payments_settle_every_installment(self):
        """Paying each installment's total due on its due date leaves nothing outstanding"""
        for period in self.model.repayment_periods:
            unallocated = self.calculator.apply_repayment(self.model, period.due_date, period.total_due)
            assert unallocated.is_zero()

        assert all(p.is_fully_paid for p in self.model.repayment_periods)
        assert self.model.total_outstanding.is_zero()
        assert self.model.total_paid_principal == usd(100000)
        assert self.model.overpaid_amount.is_zero()

    def test_interest_is_paid_before_principal(self):
        first = self.model.first_period
        self.calculator.apply_repayment(self.model, first.due_date, usd(1000))
        assert first.paid_interest == usd('986.30')
        assert first.paid_principal == usd('13.70')

    def test_late_payment_settles_oldest_first(self):
        first, second = self.model.repayment_periods[:2]
        first_due = first.total_due
        self.calculator.apply_repayment(self.model, date(2024, 6, 10), first_due)

        assert first.is_fully_paid
        assert second.paid_interest.is_zero()
        assert second.paid_principal.is_zero()

    def test_prepayment_lowers_later_installments(self):
        """Test money beyond what is due prepays principal without collecting interest early"""
        first, second = self.model.repayment_periods[:2]
        original_emi = self.model.repayment_periods[2].emi

        self.calculator.apply_repayment(self.model, first.due_date, first.total_due.plus(usd(10000)))

        assert first.is_fully_paid
        assert second.paid_principal == usd(10000)
        assert second.paid_interest.is_zero()
        assert self.model.repayment_periods[2].emi < original_emi
        assert self.model.total_due_principal == usd(100000)

    def test_overpayment_is_returned(self):
        first = self.model.first_period
        unallocated = self.calculator.apply_repayment(self.model, first.due_date, usd(200000))

        assert unallocated == usd('99013.70')
        assert self.model.overpaid_amount == usd('99013.70')
        assert self.model.total_outstanding.is_zero()

    def test_explicit_portions(self):
        """Test principal and interest portions are allocated separately"""
        first = self.model.first_period
        self.calculator.apply_repayment(
            self.model, first.due_date, usd(1500),
            principal_portion=usd(1000), interest_portion=usd(500)
        )
        assert first.paid_interest == usd(500)
        assert first.paid_principal == usd(1000)


class TestChargeback:
    """Test chargebacks credit principal back to the running period"""

    def test_chargeback_becomes_due(self):
        calculator = ProgressiveEMICalculator()
        model = build_loan(calculator)
        first = model.first_period
        calculator.apply_repayment(model, first.due_date, first.total_due)

        calculator.apply_chargeback(model, date(2024, 5, 10), usd(500), usd(20))

        second = model.repayment_periods[1]
        assert second.credited_principal == usd(500)
        assert second.credited_interest == usd(20)
        assert second.due_principal == second.calculated_due_principal.plus(usd(500))
        assert model.total_due_principal == usd(100500)

    def test_chargeback_after_maturity_uses_last_period(self):
        calculator = ProgressiveEMICalculator()
        model = build_loan(calculator, count=2)
        calculator.apply_chargeback(model, date(2024, 7, 15), usd(100))
        assert model.last_period.credited_principal == usd(100)


class TestTermChanges:
    """Test rate changes and pauses"""

    def setup_method(self):
        self.calculator = ProgressiveEMICalculator()
        self.model = build_loan(self.calculator)

    def test_rate_change_splits_period(self):
        original_emi = self.model.repayment_periods[4].emi
        self.calculator.change_interest_rate(self.model, date(2024, 6, 15), Decimal('6'))

        third = self.model.repayment_periods[2]
        assert [ip.from_date for ip in third.interest_periods] == [date(2024, 6, 1), date(2024, 6, 15)]
        assert self.model.annual_rate_at(date(2024, 6, 20)) == Decimal('6')
        assert self.model.first_period.due_interest == usd('986.30')
        assert self.model.repayment_periods[4].emi < original_emi
        assert self.model.total_due_principal == usd(100000)

    def test_interest_pause(self):
        """Test no interest accrues inside the pause window"""
        self.calculator.apply_interest_pause(self.model, date(2024, 5, 1), date(2024, 5, 31))
        second = self.model.repayment_periods[1]
        assert all(ip.paused for ip in second.interest_periods)
        assert second.due_interest.is_zero()
        assert self.model.first_period.due_interest == usd('986.30')
        assert self.model.total_due_principal == usd(100000)

    def test_partial_interest_pause(self):
        self.calculator.apply_interest_pause(self.model, date(2024, 5, 11), date(2024, 5, 20))
        second = self.model.repayment_periods[1]
        assert [ip.paused for ip in second.interest_periods] == [False, True, False]

    def test_principal_pause(self):
        """Test paused installments collect interest only"""
        self.calculator.apply_principal_pause(self.model, date(2024, 5, 1), date(2024, 6, 30))
        first, second = self.model.repayment_periods[:2]

        assert first.principal_paused and second.principal_paused
        assert first.calculated_due_principal.is_zero()
        assert first.emi == first.due_interest
        assert second.calculated_due_principal.is_zero()
        assert self.model.total_due_principal == usd(100000)

    def test_principal_pause_never_covers_last_installment(self):
        self.calculator.apply_principal_pause(self.model, date(2024, 1, 1), date(2026, 1, 1))
        assert not self.model.last_period.principal_paused
        assert self.model.last_period.due_principal == usd(100000)


class TestEqualPrincipal:
    """Test the equal principal amortization method"""

    def test_equal_principal(self):
        calculator = ProgressiveEMICalculator(AmortizationMethod.EQUAL_PRINCIPAL)
        model = build_loan(calculator, principal='12000')

        assert all(p.due_principal == usd(1000) for p in model.repayment_periods)
        interests = [p.due_interest for p in model.repayment_periods]
        assert interests[0] > interests[-1]


class TestFrozenHistory:
    """Test frozen periods keep their due amounts"""

    def setup_method(self):
        self.calculator = ProgressiveEMICalculator()
        self.loan = build_loan(self.calculator, count=3)
        self.model = self.calculator.create_model(
            monthly_dates(2, date(2024, 5, 1)), Decimal('12'), DaysInYearType.DAYS_365,
            Currency.USD, frozen_periods=[self.loan.first_period.copy()]
        )

    def test_balance_change_in_frozen_period(self):
        with pytest.raises(InvalidLoanTermsError, match="frozen schedule history"):
            self.calculator.add_disbursement(self.model, date(2024, 4, 15), usd(100))
        with pytest.raises(InvalidLoanTermsError, match="frozen schedule history"):
            self.calculator.apply_chargeback(self.model, date(2024, 4, 15), usd(100))

        # The frozen period keeps its values after recalculation
        self.calculator.calculate(self.model)
        assert self.model.first_period.to_dict() == self.loan.first_period.to_dict()

    def test_late_payment_settles_frozen_installment(self):
        frozen = self.model.first_period
        opening = self.model.repayment_periods[1].opening_loan_balance

        unallocated = self.calculator.apply_repayment(self.model, date(2024, 5, 10), frozen.total_due)

        assert unallocated.is_zero()
        assert frozen.is_fully_paid
        assert frozen.due_principal == self.loan.first_period.due_principal
        assert frozen.due_interest == usd('986.30')
        assert self.model.repayment_periods[1].opening_loan_balance == opening
        assert self.model.repayment_periods[1].paid_principal.is_zero()

    def test_balance_change_on_cutoff_moves_closing_balance(self):
        """Test an amount booked on the cut-off reaches the first mutable period only"""
        opening = self.model.repayment_periods[1].opening_loan_balance

        self.calculator.add_balance_correction(self.model, date(2024, 5, 1), usd(-1000))

        assert self.model.repayment_periods[1].opening_loan_balance == opening.minus(usd(1000))
        assert self.model.first_period.due_principal == self.loan.first_period.due_principal
        assert self.model.first_period.emi == self.loan.first_period.emi
