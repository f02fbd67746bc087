"""
Test suite for interest period module

Pins both branches of the balance chaining rule: the first interest period
of a repayment period settles the previous period's principal, later ones
chain without any principal settlement.
"""

import pytest
from decimal import Decimal
from datetime import date

from progressive_loan.currency import Money, Currency
from progressive_loan.interest_period import InterestPeriod
from progressive_loan.rate_factor import DaysInYearType, calculate_rate_factor
from progressive_loan.schedule import ProgressiveLoanScheduleModel


def usd(amount) -> Money:
    return Money(Decimal(str(amount)), Currency.USD)


def two_period_model() -> ProgressiveLoanScheduleModel:
    return ProgressiveLoanScheduleModel.create(
        [(date(2024, 4, 1), date(2024, 5, 1)), (date(2024, 5, 1), date(2024, 6, 1))],
        Decimal('12'), DaysInYearType.DAYS_365, Currency.USD
    )


class TestInterestPeriodBasics:
    """Test construction, mutators and derived values"""

    def test_from_date_must_precede_due_date(self):
        with pytest.raises(ValueError, match="must end after it starts"):
            InterestPeriod.with_empty_amounts(0, date(2024, 5, 1), date(2024, 5, 1), usd(0))

    def test_mutators_accumulate(self):
        """Test two same-day amounts add up instead of replacing each other"""
        period = InterestPeriod.with_empty_amounts(0, date(2024, 4, 1), date(2024, 5, 1), usd(0))
        period.add_disbursement_amount(usd('100.10'))
        period.add_disbursement_amount(usd('200.20'))
        period.add_credited_principal_amount(usd(5))
        period.add_credited_interest_amount(usd(1))
        period.add_capitalized_income_principal_amount(usd(7))
        period.add_balance_correction_amount(usd(-3))

        assert period.disbursement_amount == usd('300.30')
        assert period.credited_principal == usd(5)
        assert period.credited_interest == usd(1)
        assert period.capitalized_income_principal == usd(7)
        assert period.balance_correction_amount == usd(-3)
        assert period.credited_amounts == usd('312.30')

    def test_length_and_ordering(self):
        early = InterestPeriod.with_empty_amounts(0, date(2024, 4, 1), date(2024, 4, 11), usd(0))
        late = InterestPeriod.with_empty_amounts(0, date(2024, 4, 11), date(2024, 5, 1), usd(0))
        assert early.length == 10
        assert late.length == 20
        assert sorted([late, early]) == [early, late]

    def test_copy_is_independent(self):
        period = InterestPeriod.with_empty_amounts(0, date(2024, 4, 1), date(2024, 5, 1), usd(0))
        period.add_disbursement_amount(usd(50))
        duplicate = period.copy()
        duplicate.add_disbursement_amount(usd(50))

        assert period.disbursement_amount == usd(50)
        assert duplicate.disbursement_amount == usd(100)
        assert duplicate.to_dict()["from_date"] == "2024-04-01"


class TestBalanceChaining:
    """Test the two-tier outstanding balance rule"""

    def test_first_interest_period_settles_previous_principal(self):
        """balance + disbursement + capitalized income + correction - due principal + paid principal"""
        model = two_period_model()
        previous = model.repayment_periods[0]
        last = previous.last_interest_period
        last.outstanding_loan_balance = usd(1000)
        last.add_disbursement_amount(usd(200))
        last.add_capitalized_income_principal_amount(usd(50))
        last.add_balance_correction_amount(usd(-30))
        previous.calculated_due_principal = usd(300)
        previous.paid_principal = usd(100)

        first = model.repayment_periods[1].first_interest_period
        first.update_outstanding_loan_balance(model)

        assert first.outstanding_loan_balance == usd(1020)

    def test_later_interest_period_chains_without_principal(self):
        """Mid-cycle slices never settle principal"""
        model = two_period_model()
        period = model.repayment_periods[1]
        period.calculated_due_principal = usd(400)
        period.paid_principal = usd(100)
        tail = period.split_interest_period(date(2024, 5, 15))

        head = period.first_interest_period
        head.outstanding_loan_balance = usd(1000)
        head.add_disbursement_amount(usd(200))
        head.add_capitalized_income_principal_amount(usd(50))
        head.add_balance_correction_amount(usd(-30))

        tail.update_outstanding_loan_balance(model)

        assert tail.outstanding_loan_balance == usd(1220)

    def test_balance_never_negative(self):
        model = two_period_model()
        previous = model.repayment_periods[0]
        previous.last_interest_period.outstanding_loan_balance = usd(100)
        previous.calculated_due_principal = usd(500)

        first = model.repayment_periods[1].first_interest_period
        first.update_outstanding_loan_balance(model)

        assert first.outstanding_loan_balance.is_zero()

    def test_first_interest_period_of_loan_keeps_opening_balance(self):
        model = two_period_model()
        first = model.first_period.first_interest_period
        first.add_opening_balance(usd(5000))
        first.update_outstanding_loan_balance(model)

        assert first.is_first_interest_period(model)
        assert first.outstanding_loan_balance == usd(5000)

    def test_credited_principal_raises_settled_principal(self):
        """Chargeback principal is due in its repayment period"""
        model = two_period_model()
        previous = model.repayment_periods[0]
        previous.last_interest_period.outstanding_loan_balance = usd(1000)
        previous.last_interest_period.add_credited_principal_amount(usd(50))
        previous.calculated_due_principal = usd(300)

        first = model.repayment_periods[1].first_interest_period
        first.update_outstanding_loan_balance(model)

        assert previous.due_principal == usd(350)
        assert first.outstanding_loan_balance == usd(650)


class TestDueInterest:
    """Test calculated due interest"""

    def _rated_period(self, balance: Money, from_date: date, due_date: date,
                      parent_due_date: date) -> InterestPeriod:
        period = InterestPeriod.with_empty_amounts(0, from_date, due_date, usd(0))
        period.outstanding_loan_balance = balance
        period.rate_factor = calculate_rate_factor(from_date, due_date, Decimal('12'), DaysInYearType.DAYS_365)
        period.rate_factor_till_period_due_date = calculate_rate_factor(
            from_date, parent_due_date, Decimal('12'), DaysInYearType.DAYS_365
        )
        return period

    def test_full_period_interest(self):
        """100,000 at 12% over 30 days on a 365-day year is 986.30"""
        model = two_period_model()
        parent = model.first_period
        period = self._rated_period(usd(100000), date(2024, 4, 1), date(2024, 5, 1), date(2024, 5, 1))

        interest = period.calculated_due_interest(parent)
        assert usd(interest) == usd('986.30')

    def test_partial_period_is_prorated(self):
        model = two_period_model()
        parent = model.first_period
        period = self._rated_period(usd(80000), date(2024, 4, 1), date(2024, 4, 11), date(2024, 5, 1))

        interest = period.calculated_due_interest(parent)
        assert usd(interest) == usd('263.01')

    def test_paused_period_only_carries_credited_interest(self):
        model = two_period_model()
        period = self._rated_period(usd(100000), date(2024, 4, 1), date(2024, 5, 1), date(2024, 5, 1))
        period.paused = True
        period.add_credited_interest_amount(usd('12.34'))

        assert period.calculated_due_interest(model.first_period) == Decimal('12.34')

    def test_due_interest_floored_at_zero(self):
        model = two_period_model()
        period = self._rated_period(usd(0), date(2024, 4, 1), date(2024, 5, 1), date(2024, 5, 1))
        period.add_credited_interest_amount(usd(-10))

        assert period.calculated_due_interest(model.first_period) == Decimal('0')
