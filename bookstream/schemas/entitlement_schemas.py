"""Signup rate-limit and free-trial decision schemas"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from bookstream.models.user import SubscriptionTier, SubscriptionStatus


class RateLimitDecision(BaseModel):
    """Outcome of a signup rate-limit check for one IP."""
    allowed: bool
    reason: Optional[str] = None
    retry_after_seconds: int = 0

    @classmethod
    def allow(cls) -> "RateLimitDecision":
        return cls(allowed=True)

    @classmethod
    def block(cls, reason: str, retry_after_seconds: int) -> "RateLimitDecision":
        return cls(allowed=False, reason=reason, retry_after_seconds=retry_after_seconds)


class ConflictType(str, Enum):
    """The single trial-eligibility signal that matched"""
    EMAIL = "email"
    IP = "ip"
    DEVICE = "device"
    DOMAIN = "domain"


class TrialEligibility(BaseModel):
    eligible: bool
    conflict_type: Optional[ConflictType] = None
    reason: Optional[str] = None


class TrialStartResponse(BaseModel):
    ok: bool = True
    trial_started_at: datetime
    trial_ends_at: datetime


class EntitlementStatus(BaseModel):
    """Reading-access snapshot for the authenticated user."""
    subscription_tier: SubscriptionTier
    subscription_status: SubscriptionStatus
    free_trial_used: bool
    free_trial_started_at: Optional[datetime] = None
    free_trial_ends_at: Optional[datetime] = None
    on_free_trial: bool
    free_trial_expired: bool
    has_reading_access: bool
    message: str = Field(..., description="Human-readable summary for the client")
