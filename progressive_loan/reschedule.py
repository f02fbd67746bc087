"""
Loan Reschedule Module

A reschedule request moves an installment, changes the rate or adds pauses
and extensions from a cut-off date. Before the tail of the schedule is
regenerated, the request's term variations are folded into the existing ones
so that no variation is applied twice and earlier due-date moves still land
on the right installment.
"""

from dataclasses import dataclass, field, replace
from datetime import date
from typing import List, Optional
import uuid

from .logging_config import get_logger, log_action
from .schedule import ProgressiveLoanScheduleModel
from .terms import LoanTerms, TermVariation, TermVariationType


logger = get_logger("progressive_loan.reschedule")


@dataclass
class RescheduleRequest:
    """Request to regenerate a loan's schedule from a date onward"""
    loan_id: str
    reschedule_from_date: date
    term_variations: List[TermVariation] = field(default_factory=list)
    reason: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def due_date_variation(self) -> Optional[TermVariation]:
        for variation in self.term_variations:
            if variation.variation_type is TermVariationType.DUE_DATE:
                return variation
        return None


@dataclass
class ResolvedReschedule:
    """
    Outcome of folding a request into the existing terms.

    freeze_date bounds the carried-over history. It equals the
    reschedule-from date unless an earlier due-date move was folded in; then
    it is the start of the period that the moved installment currently ends.
    """
    terms: LoanTerms
    reschedule_from_date: date
    dropped_variations: List[TermVariation] = field(default_factory=list)
    freeze_date: Optional[date] = None

    def __post_init__(self):
        if self.freeze_date is None:
            self.freeze_date = self.reschedule_from_date


def _drop(loan_id: str, variation: TermVariation, reason: str, dropped: List[TermVariation]) -> None:
    dropped.append(variation)
    log_action(
        logger, "warning",
        f"Dropped {variation.variation_type.value} variation applicable from {variation.applicable_from}: {reason}",
        loan_id=loan_id, action="reschedule",
        extra={"applicable_from": variation.applicable_from, "date_value": variation.date_value}
    )


def resolve_reschedule_terms(
    terms: LoanTerms,
    request: RescheduleRequest,
    model: ProgressiveLoanScheduleModel
) -> ResolvedReschedule:
    """
    Merge a reschedule request into the loan terms.

    1. An existing due-date variation that already moved an installment to
       the date the request wants to move is folded into the request: the
       request then moves the installment's natural date, which becomes the
       reschedule-from date. History is frozen up to the start of the period
       that installment currently ends, since a move to an earlier date can
       end that period before its natural date.
    2. Otherwise the request's reschedule-from date is used as is.
    3. Existing due-date variations after the cut-off that targeted the
       installment following the moved one are re-anchored to the date
       following the new due date. A re-anchored variation that would
       duplicate another one is dropped.
    """
    dropped: List[TermVariation] = []
    existing = list(terms.term_variations)
    reschedule_from_date = request.reschedule_from_date
    freeze_date = reschedule_from_date
    request_due = request.due_date_variation

    # 1. Fold an earlier move of the same installment into the request
    if request_due is not None:
        for variation in terms.variations(TermVariationType.DUE_DATE):
            if variation.date_value != request_due.applicable_from:
                continue
            existing = [v for v in existing if v is not variation]
            request_due = TermVariation(
                TermVariationType.DUE_DATE, variation.applicable_from, date_value=request_due.date_value
            )
            reschedule_from_date = variation.applicable_from
            for period in model.repayment_periods:
                if period.due_date == variation.date_value:
                    freeze_date = period.from_date
                    break
            break

    # A due-date move inside frozen history cannot be honoured
    if request_due is not None and request_due.applicable_from <= freeze_date:
        _drop(request.loan_id, request_due, f"installment is not after {freeze_date}", dropped)
        request_due = None

    # 3. Re-anchor the variation that targeted the following installment
    if request_due is not None:
        next_natural = terms.advance(request.due_date_variation.applicable_from)
        realigned = terms.advance(request_due.date_value)
        taken = {v.applicable_from for v in existing if v.variation_type is TermVariationType.DUE_DATE}
        remapped = []
        for variation in existing:
            if variation.variation_type is TermVariationType.DUE_DATE \
                    and variation.applicable_from > freeze_date \
                    and variation.applicable_from == next_natural:
                if realigned in taken or realigned == request_due.applicable_from:
                    _drop(request.loan_id, variation, f"{realigned} is already varied", dropped)
                    continue
                variation = replace(variation, applicable_from=realigned)
            remapped.append(variation)
        existing = remapped

    # Request variations replace existing ones of the same type and date
    incoming = [v for v in request.term_variations if v.variation_type is not TermVariationType.DUE_DATE]
    if request_due is not None:
        incoming.append(request_due)
    for variation in incoming:
        if any(v.same_as(variation) for v in existing):
            continue
        existing = [
            v for v in existing
            if not (v.variation_type is variation.variation_type and v.applicable_from == variation.applicable_from)
        ]
        existing.append(variation)

    resolved_terms = replace(terms, term_variations=existing)
    return ResolvedReschedule(resolved_terms, reschedule_from_date, dropped, freeze_date)
