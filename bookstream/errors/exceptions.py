"""Custom exceptions for error handling"""
from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class BaseHTTPException(HTTPException):
    """Base exception class for all custom HTTP exceptions"""
    def __init__(self, detail: str = None, headers: dict = None):
        super().__init__(
            status_code=self.status_code,
            detail=detail or self.detail,
            headers=headers
        )


class BadRequestException(BaseHTTPException):
    """400 Bad Request"""
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Bad request"


class UnauthorizedException(BaseHTTPException):
    """401 Unauthorized"""
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Not authenticated"

    def __init__(self, detail: str = None):
        super().__init__(
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"}
        )


class ForbiddenException(BaseHTTPException):
    """403 Forbidden"""
    status_code = status.HTTP_403_FORBIDDEN
    detail = "Forbidden: Insufficient permissions"


class NotFoundException(BaseHTTPException):
    """404 Not Found"""
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Resource not found"


class ConflictException(BaseHTTPException):
    """409 Conflict"""
    status_code = status.HTTP_409_CONFLICT
    detail = "Resource already exists"


# ── entitlement engine ────────────────────────────────────────────────────────

class EntitlementException(BaseHTTPException):
    """
    Base class for engine decisions that deny a request.

    Carries a machine-readable ``reason`` plus structured fields the client
    needs to render an actionable message (retry time, current/max counts).
    """
    reason = "denied"

    def __init__(self, detail: str = None, headers: dict = None, **fields: Any):
        self.fields = fields
        super().__init__(detail=detail, headers=headers)

    def to_payload(self) -> Dict[str, Any]:
        payload = {"ok": False, "reason": self.reason, "message": self.detail}
        payload.update(self.fields)
        return payload


class RateLimitedException(EntitlementException):
    """429 - signup attempts from this IP are temporarily blocked"""
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    detail = "Too many signup attempts. Please try again later."
    reason = "rate_limited"

    def __init__(self, retry_after_seconds: int, detail: str = None):
        super().__init__(
            detail=detail,
            headers={"Retry-After": str(retry_after_seconds)},
            retry_after_seconds=retry_after_seconds,
        )


class TrialIneligibleException(EntitlementException):
    """403 - free trial refused; only the violated category is exposed"""
    status_code = status.HTTP_403_FORBIDDEN
    detail = "Free trial is not available"
    reason = "trial_ineligible"

    def __init__(self, conflict_type: str, detail: str = None):
        super().__init__(detail=detail, conflict_type=conflict_type)


class LoanLimitExceededException(EntitlementException):
    """409 - user already holds the maximum number of active loans"""
    status_code = status.HTTP_409_CONFLICT
    reason = "loan_limit_exceeded"

    def __init__(self, active_loans: int, max_loans: int):
        super().__init__(
            detail=(
                f"You have reached the maximum of {max_loans} active loans. "
                "Please return a book before borrowing another."
            ),
            active_loans=active_loans,
            max_loans=max_loans,
        )


class DeviceLimitExceededException(EntitlementException):
    """409 - user already has the maximum number of active devices"""
    status_code = status.HTTP_409_CONFLICT
    reason = "device_limit_exceeded"

    def __init__(self, current_devices: int, max_devices: int):
        super().__init__(
            detail=f"Maximum {max_devices} devices allowed per user",
            current_devices=current_devices,
            max_devices=max_devices,
        )


class InvalidLoanStateException(EntitlementException):
    """400 - illegal loan transition"""
    status_code = status.HTTP_400_BAD_REQUEST
    reason = "invalid_state"

    def __init__(self, current_status: str):
        super().__init__(
            detail=f"Loan is {current_status} and can no longer change state",
            loan_status=current_status,
        )


class InvalidDeviceStateException(EntitlementException):
    """400 - operation not allowed on an inactive device"""
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Device is no longer active"
    reason = "invalid_state"


class SubscriptionRequiredException(EntitlementException):
    """403 - no active subscription or running free trial"""
    status_code = status.HTTP_403_FORBIDDEN
    detail = "An active subscription or free trial is required to borrow books"
    reason = "subscription_required"


class PersistenceUnavailableException(EntitlementException):
    """503 - the store could not answer; limit checks fail closed"""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    detail = "Service temporarily unavailable. Please try again shortly."
    reason = "persistence_unavailable"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail=detail)
