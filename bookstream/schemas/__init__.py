"""Pydantic schemas for request/response validation"""
from bookstream.schemas.auth_schemas import (
    RegisterRequest,
    RegistrationResponse,
    UserResponse,
    Token,
    TokenData
)
from bookstream.schemas.entitlement_schemas import (
    RateLimitDecision,
    ConflictType,
    TrialEligibility,
    TrialStartResponse,
    EntitlementStatus
)
from bookstream.schemas.loan_schemas import (
    BorrowRequest,
    LoanResponse,
    LoanSummary,
    LoanListResponse
)
from bookstream.schemas.device_schemas import (
    DeviceRegisterRequest,
    DeviceResponse,
    LicenseWindow,
    LicenseValidity
)

__all__ = [
    "RegisterRequest",
    "RegistrationResponse",
    "UserResponse",
    "Token",
    "TokenData",
    "RateLimitDecision",
    "ConflictType",
    "TrialEligibility",
    "TrialStartResponse",
    "EntitlementStatus",
    "BorrowRequest",
    "LoanResponse",
    "LoanSummary",
    "LoanListResponse",
    "DeviceRegisterRequest",
    "DeviceResponse",
    "LicenseWindow",
    "LicenseValidity"
]
