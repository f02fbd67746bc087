"""
Loan Reschedule Service

Looks loans and reschedule requests up through the storage backend and
runs schedule generation or a reschedule preview for them. Nothing is
written back: the regenerated schedule is returned to the caller.
"""

from typing import List

from .exceptions import LoanNotFoundError, RescheduleRequestNotFoundError
from .logging_config import get_logger, log_action
from .reschedule import RescheduleRequest
from .schedule import ProgressiveLoanScheduleModel
from .scheduler import RescheduleResult, ScheduleGenerator
from .schemas import LoanSnapshotModel, RescheduleRequestModel
from .storage import StorageInterface, LOANS_TABLE, RESCHEDULE_REQUESTS_TABLE
from .terms import LoanSnapshot


class LoanRescheduleService:
    """Repository-backed entry point for schedule generation and reschedule previews"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.loans_table = LOANS_TABLE
        self.requests_table = RESCHEDULE_REQUESTS_TABLE
        self.logger = get_logger("progressive_loan.services")

    def save_loan(self, snapshot: LoanSnapshot) -> None:
        data = LoanSnapshotModel.from_domain(snapshot).model_dump(mode="json")
        self.storage.save(self.loans_table, snapshot.loan_id, data)

    def save_request(self, request: RescheduleRequest) -> None:
        if not self.storage.exists(self.loans_table, request.loan_id):
            raise LoanNotFoundError(request.loan_id)
        data = RescheduleRequestModel.from_domain(request).model_dump(mode="json")
        self.storage.save(self.requests_table, request.id, data)

    def get_loan(self, loan_id: str) -> LoanSnapshot:
        data = self.storage.load(self.loans_table, loan_id)
        if data is None:
            raise LoanNotFoundError(loan_id)
        return LoanSnapshotModel.model_validate(data).to_domain()

    def get_request(self, request_id: str) -> RescheduleRequest:
        data = self.storage.load(self.requests_table, request_id)
        if data is None:
            raise RescheduleRequestNotFoundError(request_id)
        return RescheduleRequestModel.model_validate(data).to_domain()

    def get_requests_for_loan(self, loan_id: str) -> List[RescheduleRequest]:
        return [
            RescheduleRequestModel.model_validate(data).to_domain()
            for data in self.storage.load_all(self.requests_table)
            if data.get("loan_id") == loan_id
        ]

    def generate_schedule(self, loan_id: str) -> ProgressiveLoanScheduleModel:
        snapshot = self.get_loan(loan_id)
        return ScheduleGenerator(snapshot).generate()

    def preview_reschedule(self, request_id: str) -> RescheduleResult:
        """
        Regenerate a loan's schedule as the reschedule request would leave it.

        Raises:
            RescheduleRequestNotFoundError: Unknown request id
            LoanNotFoundError: The request refers to an unknown loan
        """
        request = self.get_request(request_id)
        snapshot = self.get_loan(request.loan_id)

        generator = ScheduleGenerator(snapshot)
        generator.generate()
        result = generator.reschedule(request)

        log_action(
            self.logger, "info", "Reschedule previewed",
            loan_id=snapshot.loan_id, action="preview_reschedule",
            extra={"request_id": request.id, "reschedule_from_date": result.reschedule_from_date}
        )
        return result
