"""Signup rate limiting over the signup-attempt ledger.

Limits are rolling windows per IP: ``SIGNUP_HOURLY_LIMIT`` attempts in the
last hour and ``SIGNUP_DAILY_LIMIT`` in the last 24 hours. Crossing either
writes a block row whose ``block_until`` keeps the IP out until it passes.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from bookstream.core.clock import resolve_now, as_naive_utc
from bookstream.core.config import settings
from bookstream.db.locks import acquire_advisory_lock
from bookstream.db.transaction import guarded_transaction
from bookstream.models.signup_attempt import SignupAttempt
from bookstream.schemas.entitlement_schemas import RateLimitDecision
from bookstream.utils.logger import log_entitlement_event

logger = logging.getLogger(__name__)

HOURLY_BLOCK = timedelta(hours=1)
DAILY_BLOCK = timedelta(hours=24)

ACTIVE_BLOCK_REASON = "IP temporarily blocked due to suspicious activity"
HOURLY_LIMIT_REASON = "Too many signup attempts. Please try again later."
DAILY_LIMIT_REASON = "Daily signup limit reached. Please try again tomorrow."


def get_active_block(db: Session, ip: str, now: datetime) -> Optional[SignupAttempt]:
    """Return the latest-ending block on *ip* that is still in force."""
    return (
        db.query(SignupAttempt)
        .filter(SignupAttempt.ip == ip, SignupAttempt.block_until > now)
        .order_by(SignupAttempt.block_until.desc())
        .first()
    )


def count_attempts_since(db: Session, ip: str, since: datetime) -> int:
    return (
        db.query(func.count(SignupAttempt.id))
        .filter(SignupAttempt.ip == ip, SignupAttempt.attempted_at >= since)
        .scalar()
    ) or 0


def _place_block(db: Session, ip: str, now: datetime, duration: timedelta) -> SignupAttempt:
    block = SignupAttempt(
        ip=ip,
        attempted_at=now,
        successful=False,
        block_until=now + duration,
    )
    db.add(block)
    return block


def check_and_record_attempt(db: Session, ip: str, now: Optional[datetime] = None) -> RateLimitDecision:
    """
    Decide whether a new signup attempt from *ip* may proceed.

    Writes a block row when a limit is crossed. An allowed decision writes
    nothing: the caller records the real outcome with ``record_outcome``.
    Raises ``PersistenceUnavailableException`` when the ledger cannot be read.
    """
    now = resolve_now(now)

    with guarded_transaction(db, "signup rate-limit check"):
        acquire_advisory_lock(db, f"signup-ip:{ip}")

        active_block = get_active_block(db, ip, now)
        if active_block is not None:
            remaining = (as_naive_utc(active_block.block_until) - now).total_seconds()
            decision = RateLimitDecision.block(ACTIVE_BLOCK_REASON, max(1, math.ceil(remaining)))
        elif count_attempts_since(db, ip, now - timedelta(hours=1)) >= settings.SIGNUP_HOURLY_LIMIT:
            _place_block(db, ip, now, HOURLY_BLOCK)
            decision = RateLimitDecision.block(HOURLY_LIMIT_REASON, int(HOURLY_BLOCK.total_seconds()))
        elif count_attempts_since(db, ip, now - timedelta(hours=24)) >= settings.SIGNUP_DAILY_LIMIT:
            _place_block(db, ip, now, DAILY_BLOCK)
            decision = RateLimitDecision.block(DAILY_LIMIT_REASON, int(DAILY_BLOCK.total_seconds()))
        else:
            decision = RateLimitDecision.allow()

    if not decision.allowed:
        log_entitlement_event(
            "SIGNUP BLOCKED",
            f"{decision.reason} retry_after={decision.retry_after_seconds}s",
            subject=ip,
        )
    return decision


def record_outcome(
    db: Session,
    ip: str,
    email: Optional[str] = None,
    device_fingerprint: Optional[str] = None,
    user_agent: Optional[str] = None,
    successful: bool = False,
    now: Optional[datetime] = None,
) -> SignupAttempt:
    """Append one attempt row so later window counts include it."""
    attempt = SignupAttempt(
        email=email.lower() if email else None,
        ip=ip,
        device_fingerprint=device_fingerprint,
        user_agent=user_agent[:500] if user_agent else None,
        attempted_at=resolve_now(now),
        successful=successful,
    )
    with guarded_transaction(db, "record signup outcome"):
        db.add(attempt)

    logger.info(f"Signup attempt recorded: ip={ip}, successful={successful}")
    return attempt
