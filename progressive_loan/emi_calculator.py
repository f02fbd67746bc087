"""
Progressive EMI Calculator Module

Applies loan events (disbursements, rate changes, pauses, payments,
chargebacks, capitalized income, balance corrections) to a schedule model
and recomputes the equal installment and the due amounts of every mutable
repayment period.

Every balance-changing event is booked on the interest period that ends on
the event date, so the new balance applies from that date onward.
Chargebacks credit the interest period that starts on the event date.
"""

from datetime import date, timedelta
from decimal import Decimal, Context
from typing import List, Optional, Tuple

from .config import get_config
from .currency import Money, Currency
from .exceptions import InvalidLoanTermsError
from .interest_period import InterestPeriod
from .logging_config import get_logger
from .mathutil import ZERO, ONE, default_context, divide
from .rate_factor import DaysInYearType, calculate_rate_factor
from .repayment_period import RepaymentPeriod
from .schedule import InterestRateChange, ProgressiveLoanScheduleModel
from .terms import AmortizationMethod


class ProgressiveEMICalculator:
    """
    Equal installment calculator for progressive loans.

    The calculator holds no loan state; every method works on the model it
    is given. Periods before the model's first mutable index are never
    touched.
    """

    def __init__(
        self,
        amortization_method: AmortizationMethod = AmortizationMethod.EQUAL_INSTALLMENT,
        max_iterations: Optional[int] = None
    ):
        self.amortization_method = amortization_method
        self.max_iterations = max_iterations or get_config().emi_max_iterations
        self.logger = get_logger("progressive_loan.emi_calculator")

    def create_model(
        self,
        period_dates: List[Tuple[date, date]],
        annual_rate: Decimal,
        days_in_year_type: DaysInYearType,
        currency: Currency,
        rounding: Optional[str] = None,
        context: Optional[Context] = None,
        frozen_periods: Optional[List[RepaymentPeriod]] = None,
        interest_rate_changes: Optional[List[InterestRateChange]] = None
    ) -> ProgressiveLoanScheduleModel:
        """Build an empty model (no balance yet) for the given period boundaries"""
        model = ProgressiveLoanScheduleModel.create(
            period_dates, annual_rate, days_in_year_type, currency, rounding,
            context or default_context(), frozen_periods, interest_rate_changes
        )
        for change in model.interest_rate_changes:
            model.split_at(change.effective_date)
        self.calculate(model)
        return model

    # Balance-changing events

    def add_disbursement(self, model: ProgressiveLoanScheduleModel, on_date: date, amount: Money) -> None:
        if on_date <= model.start_date and model.first_mutable_index == 0:
            model.first_period.first_interest_period.add_opening_balance(amount)
            index = 0
        else:
            interest_period = self._balance_change_period(model, on_date)
            interest_period.add_disbursement_amount(amount)
            index = self._recalculation_start(model, interest_period.repayment_period_index, on_date)
        self.logger.debug(f"Disbursement of {amount.to_string()} on {on_date}")
        self.calculate(model, index)

    def add_capitalized_income(self, model: ProgressiveLoanScheduleModel, on_date: date, amount: Money) -> None:
        if on_date <= model.start_date and model.first_mutable_index == 0:
            model.first_period.first_interest_period.add_opening_balance(amount)
            index = 0
        else:
            interest_period = self._balance_change_period(model, on_date)
            interest_period.add_capitalized_income_principal_amount(amount)
            index = self._recalculation_start(model, interest_period.repayment_period_index, on_date)
        self.logger.debug(f"Capitalized income of {amount.to_string()} on {on_date}")
        self.calculate(model, index)

    def add_balance_correction(self, model: ProgressiveLoanScheduleModel, on_date: date, amount: Money) -> None:
        index = self._book_balance_correction(model, on_date, amount)
        self.logger.debug(f"Balance correction of {amount.to_string()} on {on_date}")
        self.calculate(model, self._recalculation_start(model, index, on_date))

    def _balance_change_period(self, model: ProgressiveLoanScheduleModel, on_date: date) -> InterestPeriod:
        """
        Interest period ending on on_date. Frozen history is never written
        to, except for the closing balance of the last frozen period when
        on_date is the cut-off itself.
        """
        if model.is_frozen_date(on_date):
            raise InvalidLoanTermsError(f"Balance change on {on_date} falls in frozen schedule history")
        return model.interest_period_ending_at(on_date)

    def _recalculation_start(self, model: ProgressiveLoanScheduleModel, index: int, on_date: date) -> int:
        """A change booked on a due date only moves the closing balance of that period"""
        if on_date == model.repayment_periods[index].due_date and index + 1 < len(model.repayment_periods):
            return index + 1
        return index

    def _book_balance_correction(self, model: ProgressiveLoanScheduleModel, on_date: date, amount: Money) -> int:
        if on_date <= model.start_date and model.first_mutable_index == 0:
            model.first_period.first_interest_period.add_opening_balance(amount)
            return 0
        on_date = min(on_date, model.maturity_date)
        interest_period = self._balance_change_period(model, on_date)
        interest_period.add_balance_correction_amount(amount)
        return interest_period.repayment_period_index

    # Term changes

    def change_interest_rate(self, model: ProgressiveLoanScheduleModel, effective_date: date,
                             annual_rate: Decimal) -> None:
        model.add_interest_rate_change(effective_date, annual_rate)
        model.split_at(effective_date)
        self.logger.debug(f"Interest rate changed to {annual_rate}% from {effective_date}")
        self.calculate(model, model.find_repayment_period(effective_date).index)

    def apply_interest_pause(self, model: ProgressiveLoanScheduleModel, start_date: date, end_date: date) -> None:
        """No interest accrues on [start_date, end_date], both inclusive"""
        resume_date = end_date + timedelta(days=1)
        model.split_at(start_date)
        model.split_at(resume_date)
        for period in model.mutable_periods:
            for interest_period in period.interest_periods:
                if interest_period.from_date >= start_date and interest_period.due_date <= resume_date:
                    interest_period.paused = True
        self.logger.debug(f"Interest paused {start_date} - {end_date}")
        self.calculate(model, model.find_repayment_period(start_date).index)

    def apply_principal_pause(self, model: ProgressiveLoanScheduleModel, start_date: date, end_date: date) -> None:
        """Installments due in [start_date, end_date] collect interest only"""
        paused = [
            p for p in model.mutable_periods
            if start_date <= p.due_date <= end_date and model.next(p) is not None
        ]
        for period in paused:
            period.principal_paused = True
        self.logger.debug(f"Principal paused {start_date} - {end_date} for {len(paused)} installments")
        if paused:
            self.calculate(model, paused[0].index)

    # Payments

    def pay_interest(self, model: ProgressiveLoanScheduleModel, period: RepaymentPeriod, amount: Money) -> None:
        period.add_paid_interest(amount)

    def pay_principal(self, model: ProgressiveLoanScheduleModel, period: RepaymentPeriod,
                      payment_date: date, amount: Money) -> None:
        """
        Paid principal leaves the balance on the payment date, or on the
        period's due date when the payment is late.

        Settling an installment that is already due only moves its closing
        balance, so installments in frozen history can still be settled.
        """
        period.add_paid_principal(amount)
        if payment_date >= period.due_date:
            period.last_interest_period.add_balance_correction_amount(-amount)
            self.calculate(model, period.index + 1)
            return
        index = self._book_balance_correction(model, payment_date, -amount)
        self.calculate(model, self._recalculation_start(model, index, payment_date))

    def apply_repayment(
        self,
        model: ProgressiveLoanScheduleModel,
        payment_date: date,
        amount: Money,
        principal_portion: Optional[Money] = None,
        interest_portion: Optional[Money] = None
    ) -> Money:
        """
        Allocate a repayment and return the part that could not be allocated.

        Installments due on or before the payment date are settled first,
        oldest first, interest before principal. What is left prepays
        principal of the installment running on the payment date, lowering
        the balance from the payment date and the installments after it.
        Interest is only collected once it is due. Anything beyond the
        outstanding principal is overpayment.
        """
        if principal_portion is not None and interest_portion is not None:
            interest_left = self._allocate_interest(model, payment_date, interest_portion)
            principal_left = self._allocate_principal(model, payment_date, principal_portion)
            unallocated = interest_left.plus(principal_left, model.context)
        else:
            unallocated = self._allocate_in_order(model, payment_date, amount)

        if unallocated.is_positive():
            model.overpaid_amount = model.overpaid_amount.plus(unallocated, model.context)
            self.logger.debug(f"Overpayment of {unallocated.to_string()} on {payment_date}")
        return unallocated

    def _due_periods(self, model: ProgressiveLoanScheduleModel, payment_date: date) -> List[RepaymentPeriod]:
        return [p for p in model.repayment_periods if p.due_date <= payment_date]

    def _current_period(self, model: ProgressiveLoanScheduleModel,
                        payment_date: date) -> Optional[RepaymentPeriod]:
        for period in model.mutable_periods:
            if period.contains(payment_date):
                return period
        return None

    def _allocate_in_order(self, model: ProgressiveLoanScheduleModel, payment_date: date, amount: Money) -> Money:
        remaining = amount
        for period in self._due_periods(model, payment_date):
            if not remaining.is_positive():
                break
            interest = min(period.outstanding_interest, remaining)
            if interest.is_positive():
                self.pay_interest(model, period, interest)
                remaining = remaining.minus(interest, model.context)
            principal = min(period.outstanding_principal, remaining)
            if principal.is_positive():
                self.pay_principal(model, period, payment_date, principal)
                remaining = remaining.minus(principal, model.context)
        return self._prepay_principal(model, payment_date, remaining)

    def _allocate_interest(self, model: ProgressiveLoanScheduleModel, payment_date: date, amount: Money) -> Money:
        remaining = amount
        for period in self._due_periods(model, payment_date):
            interest = min(period.outstanding_interest, remaining)
            if interest.is_positive():
                self.pay_interest(model, period, interest)
                remaining = remaining.minus(interest, model.context)
        return remaining

    def _allocate_principal(self, model: ProgressiveLoanScheduleModel, payment_date: date, amount: Money) -> Money:
        remaining = amount
        for period in self._due_periods(model, payment_date):
            principal = min(period.outstanding_principal, remaining)
            if principal.is_positive():
                self.pay_principal(model, period, payment_date, principal)
                remaining = remaining.minus(principal, model.context)
        return self._prepay_principal(model, payment_date, remaining)

    def _prepay_principal(self, model: ProgressiveLoanScheduleModel, payment_date: date, amount: Money) -> Money:
        current = self._current_period(model, payment_date)
        if current is None or not amount.is_positive():
            return amount
        outstanding = current.zero
        for period in model.repayment_periods[current.index:]:
            outstanding = outstanding.plus(period.outstanding_principal, model.context)
        prepayment = min(outstanding, amount)
        if prepayment.is_positive():
            self.pay_principal(model, current, payment_date, prepayment)
        return amount.minus(prepayment, model.context)

    def apply_chargeback(
        self,
        model: ProgressiveLoanScheduleModel,
        on_date: date,
        principal: Money,
        interest: Optional[Money] = None
    ) -> None:
        """Credit principal and interest back to the loan; both become due in the running period"""
        if model.is_frozen_date(on_date):
            raise InvalidLoanTermsError(f"Chargeback on {on_date} falls in frozen schedule history")
        if on_date >= model.maturity_date:
            credited = model.last_period.last_interest_period
        else:
            credited = model.interest_period_starting_at(on_date)
        credited.add_credited_principal_amount(principal)
        if interest is not None:
            credited.add_credited_interest_amount(interest)
        index = self._recalculation_start(model, self._book_balance_correction(model, on_date, principal), on_date)
        self.logger.debug(f"Chargeback of {principal.to_string()} on {on_date}")
        self.calculate(model, min(index, credited.repayment_period_index))

    # EMI calculation

    def calculate(self, model: ProgressiveLoanScheduleModel, from_index: int = 0) -> None:
        """Recompute rate factors, balances, EMI and due amounts from a period onward"""
        start = max(from_index, model.first_mutable_index)
        if start >= len(model.repayment_periods):
            return

        self._update_rate_factors(model, start)

        if self.amortization_method is AmortizationMethod.EQUAL_PRINCIPAL:
            self._amortize(model, start, None, finalize=True)
        else:
            emi = self._solve_emi(model, start)
            self._amortize(model, start, emi, finalize=True)

        self.logger.debug(
            f"Recalculated periods {start + 1}-{len(model.repayment_periods)}, "
            f"EMI {model.repayment_periods[start].emi.to_string()}"
        )

    def _update_rate_factors(self, model: ProgressiveLoanScheduleModel, start: int) -> None:
        for period in model.repayment_periods[start:]:
            for interest_period in period.interest_periods:
                rate = model.annual_rate_at(interest_period.from_date)
                interest_period.rate_factor = calculate_rate_factor(
                    interest_period.from_date, interest_period.due_date,
                    rate, model.days_in_year_type, model.context
                )
                interest_period.rate_factor_till_period_due_date = calculate_rate_factor(
                    interest_period.from_date, period.due_date,
                    rate, model.days_in_year_type, model.context
                )

    def _available_principal(self, period: RepaymentPeriod) -> Money:
        """Largest calculated principal the period can take without overshooting the balance"""
        return period.principal_before_due \
            .plus(period.paid_principal, period.context) \
            .minus(period.credited_principal, period.context) \
            .negative_to_zero()

    def _is_amortizing(self, model: ProgressiveLoanScheduleModel, period: RepaymentPeriod) -> bool:
        return not period.principal_paused or model.next(period) is None

    def _amortize(self, model: ProgressiveLoanScheduleModel, start: int, emi: Optional[Money],
                  finalize: bool) -> Decimal:
        """
        Forward pass assigning principal to every period from start.

        With finalize=False the last period is left alone and the residual
        balance it would still have to absorb beyond one EMI is returned.
        """
        ctx = model.context
        periods = model.repayment_periods[start:]
        amortizing_left = sum(1 for p in periods if self._is_amortizing(model, p))

        for period in periods:
            period.update_outstanding_loan_balances(model)
            interest = period.due_interest
            available = self._available_principal(period)
            is_last = model.next(period) is None

            if is_last:
                if not finalize:
                    return ctx.subtract(available.amount, ctx.subtract(emi.amount, interest.amount))
                principal = available
            elif period.principal_paused:
                principal = period.zero
            elif emi is None:
                principal = min(available.divided_by(Decimal(amortizing_left), ctx), available)
            else:
                principal = min(emi.minus(interest, ctx).negative_to_zero(), available)

            period.calculated_due_principal = principal
            if emi is not None and principal.plus(interest, ctx) == emi:
                period.emi = emi
            else:
                period.emi = principal.plus(interest, ctx)

            if self._is_amortizing(model, period):
                amortizing_left -= 1
        return ZERO

    def _estimate_emi(self, model: ProgressiveLoanScheduleModel, start: int) -> Decimal:
        """Annuity estimate over the remaining periods, treating paused interest as zero rate"""
        ctx = model.context
        periods = model.repayment_periods[start:]
        periods[0].update_outstanding_loan_balances(model)

        balance = periods[0].opening_loan_balance.amount
        for period in periods:
            for interest_period in period.interest_periods:
                balance = ctx.add(balance, interest_period.disbursement_amount.amount)
                balance = ctx.add(balance, interest_period.capitalized_income_principal.amount)
                balance = ctx.add(balance, interest_period.balance_correction_amount.amount)
            balance = ctx.add(balance, period.paid_principal.amount)
            balance = ctx.subtract(balance, period.credited_principal.amount)

        discount = ONE
        annuity_factor = ZERO
        for period in periods:
            if not self._is_amortizing(model, period):
                continue
            period_rate = ZERO
            for interest_period in period.interest_periods:
                if not interest_period.paused:
                    period_rate = ctx.add(period_rate, interest_period.rate_factor)
            discount = ctx.divide(discount, ctx.add(ONE, period_rate))
            annuity_factor = ctx.add(annuity_factor, discount)

        if annuity_factor == ZERO:
            return balance
        return ctx.divide(balance, annuity_factor)

    def _solve_emi(self, model: ProgressiveLoanScheduleModel, start: int) -> Money:
        """
        Secant iteration on the residual balance left for the last period.

        The residual is strictly decreasing in the EMI, so the iteration
        converges quickly from the annuity estimate. The last period absorbs
        whatever rounding difference remains.
        """
        ctx = model.context
        zero = model.repayment_periods[start].zero
        tolerance = model.currency.minor_unit

        def residual(candidate: Decimal) -> Decimal:
            return self._amortize(model, start, zero.with_amount(candidate), finalize=False)

        emi_0 = self._estimate_emi(model, start)
        if len(model.repayment_periods) - start == 1:
            return zero.with_amount(emi_0)

        residual_0 = residual(emi_0)
        if abs(residual_0) <= tolerance:
            return zero.with_amount(emi_0)

        emi_1 = ctx.add(emi_0, max(ctx.multiply(emi_0, Decimal('0.01')), tolerance))
        residual_1 = residual(emi_1)

        for _ in range(self.max_iterations):
            if abs(residual_1) <= tolerance or residual_1 == residual_0:
                break
            slope = divide(ctx.subtract(emi_1, emi_0), ctx.subtract(residual_1, residual_0), ctx)
            emi_next = ctx.subtract(emi_1, ctx.multiply(residual_1, slope))
            if emi_next < ZERO:
                emi_next = ZERO
            emi_0, residual_0 = emi_1, residual_1
            emi_1, residual_1 = emi_next, residual(emi_next)

        return zero.with_amount(emi_1)
