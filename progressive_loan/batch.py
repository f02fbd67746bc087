"""
Batch Processing Module

Runs per-loan work for many loans on a thread pool. Loans share no mutable
state, so each one is handed to exactly one worker; a failure is recorded
against its loan id and the remaining loans still run.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple

from .capitalized_income import AmortizationTransactionSink, CapitalizedIncomeAmortizer, CapitalizedIncomeBalance
from .config import get_config
from .currency import Money
from .logging_config import get_logger, log_action
from .scheduler import ScheduleGenerator
from .schedule import ProgressiveLoanScheduleModel
from .terms import LoanSnapshot


logger = get_logger("progressive_loan.batch")


@dataclass
class BatchResult:
    """Per-loan outcomes of a batch run"""
    results: Dict[str, Any] = field(default_factory=dict)
    errors: Dict[str, Exception] = field(default_factory=dict)

    @property
    def succeeded(self) -> List[str]:
        return sorted(self.results)

    @property
    def failed(self) -> List[str]:
        return sorted(self.errors)


def _run(items: List[Tuple[str, Callable[[], Any]]], action: str, max_workers: Optional[int]) -> BatchResult:
    result = BatchResult()
    workers = max_workers or get_config().batch_max_workers

    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {executor.submit(work): loan_id for loan_id, work in items}
        for future in as_completed(futures):
            loan_id = futures[future]
            try:
                result.results[loan_id] = future.result()
            except Exception as e:
                result.errors[loan_id] = e
                log_action(
                    logger, "error", f"{action} failed: {e}",
                    loan_id=loan_id, action=action,
                    extra={"error_type": type(e).__name__}
                )

    log_action(
        logger, "info", f"{action} finished",
        action=action,
        extra={"succeeded": len(result.results), "failed": len(result.errors)}
    )
    return result


def recalculate_loans(
    snapshots: List[LoanSnapshot],
    max_workers: Optional[int] = None
) -> BatchResult:
    """Generate the schedule of every loan; results map loan id to its model"""

    def recalculate(snapshot: LoanSnapshot) -> ProgressiveLoanScheduleModel:
        return ScheduleGenerator(snapshot).generate()

    items = [(s.loan_id, lambda s=s: recalculate(s)) for s in snapshots]
    return _run(items, "recalculate", max_workers)


def run_capitalized_income_amortization(
    loans: List[Tuple[LoanSnapshot, List[CapitalizedIncomeBalance]]],
    business_date: date,
    sink: AmortizationTransactionSink,
    max_workers: Optional[int] = None
) -> BatchResult:
    """
    Close-of-business capitalized income step.

    Closed loans recognize everything left; open loans recognize today's
    share. Loans without a maturity date get it from their generated
    schedule. Results map loan id to the amount recognized.
    """
    amortizer = CapitalizedIncomeAmortizer(sink)

    def amortize(loan: LoanSnapshot, balances: List[CapitalizedIncomeBalance]) -> Money:
        if loan.status.is_closed:
            return amortizer.amortize_on_closure(loan, balances)
        maturity_date = loan.maturity_date or ScheduleGenerator(loan).generate().maturity_date
        return amortizer.amortize_daily(loan, balances, business_date, maturity_date)

    items = [(loan.loan_id, lambda l=loan, b=balances: amortize(l, b)) for loan, balances in loans]
    return _run(items, "capitalized_income_amortization", max_workers)
