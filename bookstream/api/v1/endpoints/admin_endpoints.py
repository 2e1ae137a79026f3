"""Admin endpoints - abuse statistics, ledger cleanup and subscription lapse"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from bookstream.core.config import settings
from bookstream.core.dependencies import get_db
from bookstream.middleware.auth import require_admin
from bookstream.models.user import User, SubscriptionStatus
from bookstream.schemas.abuse_schemas import AbuseStatistics, CleanupResponse
from bookstream.schemas.loan_schemas import RevokeAllResponse
from bookstream.services.abuse_service import get_abuse_statistics, cleanup_old_attempts
from bookstream.services.loan_service import revoke_all_active_loans
from bookstream.services.subscription_service import lapse_subscription

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/abuse/statistics", response_model=AbuseStatistics)
async def abuse_statistics(
    days: int = Query(7, ge=1, le=90),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    ## Abuse-prevention statistics

    **Role:** ADMIN or SUPER_USER.

    Signup attempts, refused attempts, trials started and IPs under an active
    block for the last `days` days, plus the IPs with the most refused
    attempts and the email domains with the most trials.
    """
    return get_abuse_statistics(db, days=days)


@router.post("/abuse/cleanup", response_model=CleanupResponse)
async def abuse_cleanup(
    retention_days: Optional[int] = Query(None, ge=1),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    ## Prune old signup attempts

    Deletes attempts older than `retention_days` (default
    `SIGNUP_ATTEMPT_RETENTION_DAYS`). Blocks still in force are kept.
    """
    retention = settings.SIGNUP_ATTEMPT_RETENTION_DAYS if retention_days is None else retention_days
    deleted = cleanup_old_attempts(db, retention_days=retention)
    logger.warning(f"Signup attempt cleanup by admin {admin.email}: deleted={deleted}")
    return CleanupResponse(deleted=deleted, retention_days=retention)


@router.post("/users/{user_id}/revoke-loans", response_model=RevokeAllResponse)
async def revoke_user_loans(
    user_id: int,
    reason: str = Query("Revoked by administrator", max_length=500),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    revoked = revoke_all_active_loans(db, user_id, reason=reason)
    return RevokeAllResponse(user_id=user_id, revoked=revoked)


@router.post("/users/{user_id}/lapse-subscription", response_model=RevokeAllResponse)
async def lapse_user_subscription(
    user_id: int,
    new_status: SubscriptionStatus = Query(SubscriptionStatus.CANCELLED, alias="status"),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    ## End a user's subscription

    Billing hook: sets the subscription status and revokes every active loan
    in the same transaction.
    """
    revoked = lapse_subscription(db, user_id, status=new_status)
    return RevokeAllResponse(user_id=user_id, revoked=revoked)
