"""User model with role-based access control and entitlement fields"""
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum as SQLEnum
from enum import Enum

from bookstream.core.clock import utcnow, as_naive_utc
from bookstream.db.base import Base, enum_values


class UserRole(str, Enum):
    """User role enumeration"""
    SUPER_USER = "super_user"
    ADMIN = "admin"
    USER = "user"


class SubscriptionTier(str, Enum):
    FREE = "free"
    BASIC = "basic"
    PREMIUM = "premium"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    CANCELLED = "cancelled"


class User(Base):
    """
    User model with role-based access control.

    The ``free_trial_*`` and ``subscription_*`` columns are the entitlement
    state. Only trial start and subscription lapse/billing hooks write them.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)

    role = Column(
        SQLEnum(UserRole, name="userrole", values_callable=enum_values),
        nullable=False,
        default=UserRole.USER,
    )
    is_active = Column(Boolean, default=True, nullable=False)

    # Entitlement state
    free_trial_used = Column(Boolean, default=False, nullable=False)
    free_trial_started_at = Column(DateTime, nullable=True)
    free_trial_ended_at = Column(DateTime, nullable=True)
    subscription_tier = Column(
        SQLEnum(SubscriptionTier, name="subscriptiontier", values_callable=enum_values),
        nullable=False,
        default=SubscriptionTier.FREE,
    )
    subscription_status = Column(
        SQLEnum(SubscriptionStatus, name="subscriptionstatus", values_callable=enum_values),
        nullable=False,
        default=SubscriptionStatus.INACTIVE,
    )

    # Signals captured at registration
    registration_ip = Column(String(45), nullable=True)
    device_fingerprint = Column(String(128), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, onupdate=utcnow, nullable=True)
    last_login = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', tier='{self.subscription_tier}')>"

    # ── entitlement helpers ────────────────────────────────────
    def is_on_free_trial(self, now: Optional[datetime] = None) -> bool:
        if self.subscription_tier != SubscriptionTier.FREE or not self.free_trial_ended_at:
            return False
        return (now or utcnow()) < as_naive_utc(self.free_trial_ended_at)

    def has_reading_access(self, now: Optional[datetime] = None) -> bool:
        """Paid active subscription, or a free-tier trial that has not ended."""
        if self.subscription_status != SubscriptionStatus.ACTIVE:
            return False
        if self.has_paid_subscription():
            return True
        return self.is_on_free_trial(now)

    def has_paid_subscription(self) -> bool:
        return (
            self.subscription_status == SubscriptionStatus.ACTIVE
            and self.subscription_tier in (SubscriptionTier.BASIC, SubscriptionTier.PREMIUM)
        )
    # ───────────────────────────────────────────────────────────

    def has_permission(self, required_role: UserRole) -> bool:
        """
        Check if user has required permission level
        Hierarchy: SUPER_USER > ADMIN > USER
        """
        role_hierarchy = {
            UserRole.SUPER_USER: 3,
            UserRole.ADMIN: 2,
            UserRole.USER: 1
        }
        return role_hierarchy.get(self.role, 0) >= role_hierarchy.get(required_role, 0)
