"""Subscription service - entitlement snapshot and subscription lapse."""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from bookstream.core.clock import resolve_now, as_naive_utc
from bookstream.db.locks import lock_user
from bookstream.db.transaction import guarded_transaction
from bookstream.errors.exceptions import NotFoundException
from bookstream.models.user import User, SubscriptionStatus
from bookstream.schemas.entitlement_schemas import EntitlementStatus
from bookstream.services.loan_service import revoke_active_loans

logger = logging.getLogger(__name__)


def check_free_trial_expired(user: User, now: Optional[datetime] = None) -> bool:
    if not user.free_trial_ended_at:
        return False
    return resolve_now(now) > as_naive_utc(user.free_trial_ended_at)


def get_entitlement_status(user: User, now: Optional[datetime] = None) -> EntitlementStatus:
    """Return a reading-access snapshot for *user*."""
    now = resolve_now(now)
    on_trial = user.is_on_free_trial(now)
    expired = check_free_trial_expired(user, now)
    has_access = user.has_reading_access(now)

    if on_trial:
        days_left = max(0, (as_naive_utc(user.free_trial_ended_at) - now).days)
        msg = f"Your free trial is active with {days_left} day(s) remaining."
    elif has_access:
        msg = f"Your {user.subscription_tier.value} subscription is active."
    elif expired:
        msg = "Your free trial has ended. Subscribe to keep reading."
    else:
        msg = "You do not have an active subscription."

    return EntitlementStatus(
        subscription_tier=user.subscription_tier,
        subscription_status=user.subscription_status,
        free_trial_used=bool(user.free_trial_used),
        free_trial_started_at=user.free_trial_started_at,
        free_trial_ends_at=user.free_trial_ended_at,
        on_free_trial=on_trial,
        free_trial_expired=expired,
        has_reading_access=has_access,
        message=msg,
    )


def lapse_subscription(
    db: Session,
    user_id: int,
    status: SubscriptionStatus = SubscriptionStatus.CANCELLED,
    reason: str = "Subscription ended",
    now: Optional[datetime] = None,
) -> int:
    """
    End a user's subscription and revoke their active loans in one
    transaction. Returns the number of loans revoked.
    """
    now = resolve_now(now)
    with guarded_transaction(db, "lapse subscription"):
        user = lock_user(db, user_id)
        if user is None:
            raise NotFoundException(detail="User not found")
        user.subscription_status = status
        revoked = revoke_active_loans(db, user_id, reason, now)

    logger.warning(
        f"Subscription lapsed: user_id={user_id}, status={status.value}, loans_revoked={revoked}"
    )
    return revoked
