"""Error handling module"""
from bookstream.errors.exceptions import (
    BadRequestException,
    UnauthorizedException,
    ForbiddenException,
    NotFoundException,
    ConflictException,
    EntitlementException,
    RateLimitedException,
    TrialIneligibleException,
    LoanLimitExceededException,
    DeviceLimitExceededException,
    InvalidLoanStateException,
    InvalidDeviceStateException,
    SubscriptionRequiredException,
    PersistenceUnavailableException
)

__all__ = [
    "BadRequestException",
    "UnauthorizedException",
    "ForbiddenException",
    "NotFoundException",
    "ConflictException",
    "EntitlementException",
    "RateLimitedException",
    "TrialIneligibleException",
    "LoanLimitExceededException",
    "DeviceLimitExceededException",
    "InvalidLoanStateException",
    "InvalidDeviceStateException",
    "SubscriptionRequiredException",
    "PersistenceUnavailableException"
]
