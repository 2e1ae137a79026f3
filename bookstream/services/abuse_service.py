"""Abuse-prevention reporting and ledger housekeeping (admin)."""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from bookstream.core.clock import resolve_now
from bookstream.core.config import settings
from bookstream.db.transaction import guarded_transaction
from bookstream.models.free_trial_record import FreeTrialRecord
from bookstream.models.signup_attempt import SignupAttempt
from bookstream.schemas.abuse_schemas import AbuseStatistics, IpAttemptCount, DomainTrialCount

logger = logging.getLogger(__name__)


def get_abuse_statistics(
    db: Session,
    days: int = 7,
    top_n: int = 5,
    now: Optional[datetime] = None,
) -> AbuseStatistics:
    now = resolve_now(now)
    since = now - timedelta(days=days)

    total_attempts = (
        db.query(func.count(SignupAttempt.id))
        .filter(SignupAttempt.attempted_at >= since)
        .scalar()
    ) or 0
    blocked_attempts = (
        db.query(func.count(SignupAttempt.id))
        .filter(SignupAttempt.attempted_at >= since, SignupAttempt.successful.is_(False))
        .scalar()
    ) or 0
    trials_started = (
        db.query(func.count(FreeTrialRecord.id))
        .filter(FreeTrialRecord.trial_started_at >= since)
        .scalar()
    ) or 0
    active_blocks = (
        db.query(func.count(func.distinct(SignupAttempt.ip)))
        .filter(SignupAttempt.block_until > now)
        .scalar()
    ) or 0

    failed_count = func.count(SignupAttempt.id)
    top_ips = (
        db.query(SignupAttempt.ip, failed_count)
        .filter(SignupAttempt.attempted_at >= since, SignupAttempt.successful.is_(False))
        .group_by(SignupAttempt.ip)
        .order_by(failed_count.desc(), SignupAttempt.ip)
        .limit(top_n)
        .all()
    )

    trial_count = func.count(FreeTrialRecord.id)
    top_domains = (
        db.query(FreeTrialRecord.email_domain, trial_count)
        .filter(FreeTrialRecord.trial_started_at >= since)
        .group_by(FreeTrialRecord.email_domain)
        .order_by(trial_count.desc(), FreeTrialRecord.email_domain)
        .limit(top_n)
        .all()
    )

    return AbuseStatistics(
        window_days=days,
        total_signup_attempts=total_attempts,
        blocked_attempts=blocked_attempts,
        free_trials_started=trials_started,
        active_ip_blocks=active_blocks,
        top_abusive_ips=[IpAttemptCount(ip=ip, attempts=n) for ip, n in top_ips],
        top_trial_domains=[DomainTrialCount(domain=d, trials=n) for d, n in top_domains],
    )


def cleanup_old_attempts(
    db: Session,
    retention_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Delete signup attempts older than the retention period.

    Rows carrying a block that is still in force are kept. Free-trial records
    are never pruned here; they stay as long-term abuse evidence.
    """
    now = resolve_now(now)
    if retention_days is None:
        retention_days = settings.SIGNUP_ATTEMPT_RETENTION_DAYS
    cutoff = now - timedelta(days=retention_days)

    with guarded_transaction(db, "cleanup signup attempts"):
        deleted = (
            db.query(SignupAttempt)
            .filter(
                SignupAttempt.attempted_at < cutoff,
                or_(SignupAttempt.block_until.is_(None), SignupAttempt.block_until <= now),
            )
            .delete(synchronize_session=False)
        )

    logger.info(f"Signup attempt cleanup: deleted={deleted}, older_than={cutoff.isoformat()}")
    return deleted
