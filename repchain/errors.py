"""
Error kinds raised by the job lifecycle, reputation and scheduler code.

Every mutating operation either returns the updated entity or raises one of
these, so the HTTP layer can render a specific message and status code.
"""
from __future__ import annotations


class RepChainError(Exception):
    status_code = 500
    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(RepChainError):
    """Malformed input: bad budget, past deadline, missing review reason."""
    status_code = 400
    code = "validation_error"


class AuthorizationError(RepChainError):
    """The acting user is not the party the transition requires."""
    status_code = 403
    code = "forbidden"


class PreconditionError(RepChainError):
    """The job is not in the status the transition requires (lost races included)."""
    status_code = 400
    code = "precondition_failed"


class NotFoundError(RepChainError):
    status_code = 404
    code = "not_found"


class ExternalServiceError(RepChainError):
    """A GitHub fetch failed (network, timeout, not found, bad payload)."""
    status_code = 502
    code = "external_service_error"


class SchedulerItemError(RepChainError):
    """Processing one job in a scheduler batch failed."""
    code = "scheduler_item_error"

    def __init__(self, job_id: str, cause: Exception):
        super().__init__(f"Failed to process job {job_id}: {cause}")
        self.job_id = job_id
        self.cause = cause
