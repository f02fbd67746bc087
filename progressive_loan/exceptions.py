"""
Engine Exceptions

Invalid input is a ValueError, missing references are a LookupError and
broken invariants are a RuntimeError, so callers can catch either the
builtin family or the engine base class.
"""


class LoanEngineError(Exception):
    """Base class for all progressive loan engine errors"""


class InvalidLoanTermsError(LoanEngineError, ValueError):
    """Loan terms, transactions or variations are malformed or contradictory"""


class NotFoundError(LoanEngineError, LookupError):
    """A referenced entity does not exist"""

    entity_type = "entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} {entity_id} not found")


class LoanNotFoundError(NotFoundError):
    entity_type = "Loan"


class RescheduleRequestNotFoundError(NotFoundError):
    entity_type = "Loan reschedule request"


class InconsistentLoanStateError(LoanEngineError, RuntimeError):
    """Loan is in a state the requested calculation cannot handle"""


class InvalidScheduleStateError(LoanEngineError, RuntimeError):
    """Schedule generator transition is not allowed from its current state"""
