from datetime import date
from typing import Any, Dict, Optional

class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)

class InvalidRange(AppException):
    """End date before start date, or a non-positive duration."""
    def __init__(self, start: date, end: date):
        super().__init__(
            message=f"End date {end.isoformat()} must be on or after start date {start.isoformat()}",
            status_code=400,
            error_code="INVALID_RANGE",
            details={"start": start.isoformat(), "end": end.isoformat()}
        )
        self.start = start
        self.end = end

class OverlappingApproval(AppException):
    """The candidate range intersects an already approved request of the same requester."""
    def __init__(self, conflict_id: int, conflict_start: date, conflict_end: date):
        super().__init__(
            message=(
                f"You already have an approved leave from "
                f"{conflict_start.isoformat()} to {conflict_end.isoformat()}"
            ),
            status_code=409,
            error_code="OVERLAPPING_APPROVAL",
            details={
                "conflicting_request_id": conflict_id,
                "conflicting_start": conflict_start.isoformat(),
                "conflicting_end": conflict_end.isoformat(),
            }
        )
        self.conflict_id = conflict_id
        self.conflict_start = conflict_start
        self.conflict_end = conflict_end

class IllegalTransition(AppException):
    def __init__(self, status: str, role: str, decision: str, reason: str = ""):
        message = f"Role {role} cannot {decision} a request in status {status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message=message,
            status_code=409,
            error_code="ILLEGAL_TRANSITION",
            details={"status": status, "role": role, "decision": decision}
        )
        self.status = status
        self.role = role
        self.decision = decision

class ConcurrentModification(AppException):
    """
    The request's status changed between the read and the write of a decision.
    Callers should reload and decide again against the new state; it is never retried automatically.
    """
    def __init__(self, request_id: int, expected: str, actual: Optional[str]):
        super().__init__(
            message=f"Leave request {request_id} was modified concurrently (expected {expected}, found {actual})",
            status_code=409,
            error_code="CONCURRENT_MODIFICATION",
            details={"request_id": request_id, "expected": expected, "actual": actual}
        )
        self.request_id = request_id
        self.expected = expected
        self.actual = actual

class StoreUnavailable(AppException):
    """Persistence or network failure. Always retryable, never a business outcome."""
    def __init__(self, message: str = "Leave request store is unavailable", operation: Optional[str] = None):
        super().__init__(
            message=message,
            status_code=503,
            error_code="STORE_UNAVAILABLE",
            details={"operation": operation, "retryable": True}
        )
        self.operation = operation
        self.retryable = True

class RequestNotFound(AppException):
    def __init__(self, request_id: int):
        super().__init__(
            message=f"Leave request {request_id} not found",
            status_code=404,
            error_code="REQUEST_NOT_FOUND",
            details={"request_id": request_id}
        )
        self.request_id = request_id

class AuthenticationError(AppException):
    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="AUTH_FAILED"
        )
