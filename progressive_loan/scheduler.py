"""
Schedule Generator Module

Builds a loan's progressive repayment schedule from a snapshot and
regenerates its tail when the loan is rescheduled. Periods that are due on
or before the reschedule-from date keep their due amounts; later payments
can still settle them.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, List, Optional, Tuple

from .emi_calculator import ProgressiveEMICalculator
from .exceptions import InvalidLoanTermsError, InvalidScheduleStateError
from .logging_config import get_logger, log_action
from .repayment_period import RepaymentPeriod
from .reschedule import RescheduleRequest, resolve_reschedule_terms
from .schedule import InterestRateChange, ProgressiveLoanScheduleModel
from .terms import (
    LoanSnapshot, LoanTerms, LoanTransaction, LoanTransactionType,
    TermVariation, TermVariationType
)


class ScheduleState(Enum):
    """Schedule generator lifecycle"""
    INITIAL = "initial"
    GENERATED = "generated"
    PARTIALLY_RESCHEDULED = "partially_rescheduled"


# Same-day ordering: the rate in force first, then pauses, then money movements
_RATE_CHANGE = 0
_PAUSE = 1
_TRANSACTION = 2


@dataclass
class RescheduleResult:
    """Regenerated schedule plus the variations that could not be applied"""
    model: ProgressiveLoanScheduleModel
    reschedule_from_date: date
    dropped_variations: List[TermVariation] = field(default_factory=list)


def generate_repayment_dates(terms: LoanTerms) -> Tuple[List[Tuple[date, date]], List[TermVariation]]:
    """
    Generate (from_date, due_date) pairs for every installment.

    Natural due dates are whole repayment intervals after an anchor. A due-date
    variation whose applicable-from is a natural date replaces it and becomes
    the new anchor. Variations that never match a natural date are returned
    as unmatched.

    Returns:
        Tuple of the period boundaries and the unmatched due-date variations
    """
    pending = {v.applicable_from: v for v in terms.variations(TermVariationType.DUE_DATE)}
    anchor = terms.repayment_anchor
    steps = 0
    from_date = terms.disbursement_date
    periods = []

    for _ in range(terms.total_installments):
        natural = terms.advance(anchor, steps)
        steps += 1
        due_date = natural
        variation = pending.pop(natural, None)
        if variation is not None:
            due_date = variation.date_value
            anchor = due_date
            steps = 1
        if due_date <= from_date:
            raise InvalidLoanTermsError(
                f"Installment due {due_date} does not fall after the previous due date {from_date}"
            )
        periods.append((from_date, due_date))
        from_date = due_date

    return periods, list(pending.values())


class ScheduleGenerator:
    """
    Generates and reschedules one loan's progressive schedule.

    INITIAL -> GENERATED via generate(), then GENERATED or
    PARTIALLY_RESCHEDULED -> PARTIALLY_RESCHEDULED via reschedule().
    """

    def __init__(self, snapshot: LoanSnapshot, calculator: Optional[ProgressiveEMICalculator] = None):
        self.snapshot = snapshot
        self.terms = snapshot.terms
        self.calculator = calculator or ProgressiveEMICalculator(snapshot.terms.amortization_method)
        self.state = ScheduleState.INITIAL
        self.model: Optional[ProgressiveLoanScheduleModel] = None
        self.dropped_variations: List[TermVariation] = []
        # Frozen periods and cut-off the current model was built from, before any replay
        self._frozen: List[RepaymentPeriod] = []
        self._cutoff: Optional[date] = None
        self.logger = get_logger("progressive_loan.scheduler")

    def generate(self) -> ProgressiveLoanScheduleModel:
        """Build the full schedule from disbursement to maturity"""
        if self.state is not ScheduleState.INITIAL:
            raise InvalidScheduleStateError(f"Cannot generate a schedule in state {self.state.value}")

        model, dropped = self._build(self.terms)
        self._log_unmatched(dropped)
        self.model = model
        self.dropped_variations = dropped
        self.state = ScheduleState.GENERATED

        log_action(
            self.logger, "info", "Schedule generated",
            loan_id=self.snapshot.loan_id, action="generate",
            extra={
                "installments": len(model.repayment_periods),
                "maturity_date": model.maturity_date,
                "emi": model.first_period.emi.amount,
            }
        )
        return model

    def reschedule(self, request: RescheduleRequest) -> RescheduleResult:
        """
        Regenerate every period due after the reschedule-from date.

        The frozen periods come from a pass over the current terms that
        holds only the transactions dated before the cut-off. Everything
        from the cut-off onward is replayed on the new model, so a late
        payment still settles a frozen installment and a prepayment on the
        cut-off lands on the first regenerated period.
        """
        if self.state not in (ScheduleState.GENERATED, ScheduleState.PARTIALLY_RESCHEDULED):
            raise InvalidScheduleStateError(f"Cannot reschedule a schedule in state {self.state.value}")
        if request.loan_id != self.snapshot.loan_id:
            raise InvalidLoanTermsError(
                f"Reschedule request {request.id} belongs to loan {request.loan_id}, not {self.snapshot.loan_id}"
            )

        resolved = resolve_reschedule_terms(self.terms, request, self.model)
        reschedule_from_date = resolved.reschedule_from_date
        freeze_date = resolved.freeze_date
        # History frozen by an earlier reschedule stays frozen
        if self._cutoff is not None and freeze_date < self._cutoff:
            freeze_date = self._cutoff

        frozen_count = sum(1 for p in self.model.repayment_periods if p.due_date <= freeze_date)
        if frozen_count == len(self.model.repayment_periods):
            raise InvalidLoanTermsError(
                f"Nothing to reschedule: every installment is due on or before {freeze_date}"
            )

        frozen: List[RepaymentPeriod] = []
        cutoff = None
        if frozen_count:
            cutoff = self.model.repayment_periods[frozen_count - 1].due_date
            history, _ = self._build(self.terms, self._copy_frozen(), self._cutoff, until=cutoff)
            frozen = [p.copy() for p in history.repayment_periods[:frozen_count]]

        base = [p.copy() for p in frozen]
        model, dropped = self._build(resolved.terms, frozen, cutoff)
        self._log_unmatched(dropped)
        self.terms = resolved.terms
        self.model = model
        self._frozen = base
        self._cutoff = cutoff
        self.state = ScheduleState.PARTIALLY_RESCHEDULED

        dropped = resolved.dropped_variations + dropped
        self.dropped_variations = dropped
        log_action(
            self.logger, "info", "Schedule partially rescheduled",
            loan_id=self.snapshot.loan_id, action="reschedule",
            extra={
                "request_id": request.id,
                "reschedule_from_date": reschedule_from_date,
                "frozen_periods": len(frozen),
                "regenerated_periods": len(model.repayment_periods) - len(frozen),
                "dropped_variations": len(dropped),
            }
        )
        return RescheduleResult(model, reschedule_from_date, dropped)

    def _copy_frozen(self) -> List[RepaymentPeriod]:
        return [p.copy() for p in self._frozen]

    def _log_unmatched(self, unmatched: List[TermVariation]) -> None:
        for variation in unmatched:
            log_action(
                self.logger, "warning",
                f"Dropped due date variation applicable from {variation.applicable_from}: "
                f"no installment falls on that date",
                loan_id=self.snapshot.loan_id, action="generate",
                extra={"applicable_from": variation.applicable_from, "date_value": variation.date_value}
            )

    def _build(
        self,
        terms: LoanTerms,
        frozen: Optional[List[RepaymentPeriod]] = None,
        cutoff: Optional[date] = None,
        until: Optional[date] = None
    ) -> Tuple[ProgressiveLoanScheduleModel, List[TermVariation]]:
        """Model for the terms with transactions in [cutoff, until) replayed after the frozen periods"""
        period_dates, unmatched = generate_repayment_dates(terms)

        if cutoff is not None:
            period_dates = [(f, d) for f, d in period_dates if d > cutoff]
            if not period_dates:
                raise InvalidLoanTermsError(f"No installment of the new terms falls after {cutoff}")
            period_dates[0] = (cutoff, period_dates[0][1])

        self._validate_disbursements(period_dates[-1][1])

        model = self.calculator.create_model(
            period_dates,
            terms.annual_nominal_rate,
            terms.days_in_year_type,
            terms.currency,
            terms.rounding,
            frozen_periods=frozen,
            interest_rate_changes=[InterestRateChange(terms.disbursement_date, terms.annual_nominal_rate)]
        )

        for _, _, _, apply in sorted(self._events(terms, cutoff, until), key=lambda e: e[:3]):
            apply(model)
        return model, unmatched

    def _validate_disbursements(self, maturity_date: date) -> None:
        for transaction in self.snapshot.transactions_of(LoanTransactionType.DISBURSEMENT):
            if transaction.transaction_date >= maturity_date:
                raise InvalidLoanTermsError(
                    f"Disbursement on {transaction.transaction_date} is not before maturity {maturity_date}"
                )

    def _events(self, terms: LoanTerms, cutoff: Optional[date],
                until: Optional[date] = None) -> List[Tuple[date, int, int, Callable]]:
        """
        Every change to replay, keyed (date, priority, sequence).

        When rescheduling, rate changes on or before the cut-off take effect
        at the cut-off and pauses are clipped to it. Transactions before the
        cut-off are in the frozen periods already; transactions on or after
        until are left out.
        """
        calculator = self.calculator
        events = []
        sequence = 0

        def clip(on_date: date) -> date:
            return on_date if cutoff is None else max(on_date, cutoff)

        for variation in terms.variations(TermVariationType.INTEREST_RATE):
            effective = clip(variation.applicable_from)
            events.append((effective, _RATE_CHANGE, sequence,
                           lambda m, d=effective, r=variation.decimal_value: calculator.change_interest_rate(m, d, r)))
            sequence += 1

        for variation in terms.variations(TermVariationType.INTEREST_PAUSE):
            if cutoff is not None and variation.date_value < cutoff:
                continue
            start = clip(variation.applicable_from)
            events.append((start, _PAUSE, sequence,
                           lambda m, s=start, e=variation.date_value: calculator.apply_interest_pause(m, s, e)))
            sequence += 1

        for variation in terms.variations(TermVariationType.PRINCIPAL_PAUSE):
            if cutoff is not None and variation.date_value <= cutoff:
                continue
            start = clip(variation.applicable_from)
            events.append((start, _PAUSE, sequence,
                           lambda m, s=start, e=variation.date_value: calculator.apply_principal_pause(m, s, e)))
            sequence += 1

        transactions = self.snapshot.transactions
        if cutoff is None and not self.snapshot.transactions_of(LoanTransactionType.DISBURSEMENT):
            transactions = [LoanTransaction(
                LoanTransactionType.DISBURSEMENT, terms.disbursement_date, terms.principal_amount
            )] + list(transactions)

        for transaction in transactions:
            if cutoff is not None and transaction.transaction_date < cutoff:
                continue
            if until is not None and transaction.transaction_date >= until:
                continue
            events.append((transaction.transaction_date, _TRANSACTION, sequence,
                           lambda m, t=transaction: self._apply_transaction(m, t)))
            sequence += 1

        return events

    def _apply_transaction(self, model: ProgressiveLoanScheduleModel, transaction: LoanTransaction) -> None:
        calculator = self.calculator
        kind = transaction.transaction_type
        on_date = transaction.transaction_date

        if kind is LoanTransactionType.DISBURSEMENT:
            calculator.add_disbursement(model, on_date, transaction.amount)
        elif kind is LoanTransactionType.REPAYMENT:
            calculator.apply_repayment(
                model, on_date, transaction.amount,
                transaction.principal_portion, transaction.interest_portion
            )
        elif kind is LoanTransactionType.CHARGEBACK:
            principal = transaction.principal_portion if transaction.principal_portion is not None \
                else transaction.amount
            calculator.apply_chargeback(model, on_date, principal, transaction.interest_portion)
        elif kind is LoanTransactionType.CAPITALIZED_INCOME:
            calculator.add_capitalized_income(model, on_date, transaction.amount)
        elif kind is LoanTransactionType.BALANCE_CORRECTION:
            calculator.add_balance_correction(model, on_date, transaction.amount)
        else:
            raise ValueError(f"Unsupported transaction type: {kind}")
