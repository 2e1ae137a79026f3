"""Free trial eligibility and trial start.

Four signals are checked in order and the first match wins: the exact email,
the IP (30 days), the device fingerprint (30 days) and the email domain
(``TRIAL_DOMAIN_LIMIT`` trials already started in 30 days). Only the matched
category is reported back to the caller.
"""
import hashlib
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bookstream.core.clock import resolve_now
from bookstream.core.config import settings
from bookstream.db.locks import acquire_advisory_lock
from bookstream.db.transaction import guarded_transaction
from bookstream.errors.exceptions import ConflictException, TrialIneligibleException
from bookstream.models.free_trial_record import FreeTrialRecord
from bookstream.models.signup_attempt import SignupAttempt
from bookstream.models.user import User, SubscriptionTier, SubscriptionStatus
from bookstream.schemas.entitlement_schemas import ConflictType, TrialEligibility
from bookstream.utils.logger import log_entitlement_event

logger = logging.getLogger(__name__)

CONFLICT_REASONS = {
    ConflictType.EMAIL: "Free trial already used with this email address",
    ConflictType.IP: "Free trial already used from this location recently",
    ConflictType.DEVICE: "Free trial already used on this device",
    ConflictType.DOMAIN: "Too many free trials from this email domain",
}


def extract_email_domain(email: str) -> str:
    """Lower-cased part after the last ``@``; empty when there is none."""
    _, sep, domain = email.rpartition("@")
    return domain.lower() if sep else ""


def generate_device_fingerprint(
    user_agent: Optional[str] = None,
    platform: Optional[str] = None,
    screen_resolution: Optional[str] = None,
    timezone: Optional[str] = None,
) -> str:
    """
    SHA-256 over the device characteristics the client reports.

    The inputs come from the client and are not authenticated, so the
    fingerprint is a soft signal: it catches casual reuse, not a determined
    attacker who varies the fields.
    """
    fingerprint_data = (
        f"{user_agent or 'unknown'}|"
        f"{platform or 'unknown'}|"
        f"{screen_resolution or 'unknown'}|"
        f"{timezone or 'unknown'}"
    )
    return hashlib.sha256(fingerprint_data.encode()).hexdigest()


def _ineligible(conflict_type: ConflictType) -> TrialEligibility:
    return TrialEligibility(
        eligible=False,
        conflict_type=conflict_type,
        reason=CONFLICT_REASONS[conflict_type],
    )


def _evaluate(
    db: Session,
    email: str,
    ip: str,
    device_fingerprint: Optional[str],
    now: datetime,
) -> TrialEligibility:
    window_start = now - timedelta(days=settings.TRIAL_LOOKBACK_DAYS)

    email_used = (
        db.query(FreeTrialRecord.id)
        .filter(FreeTrialRecord.email == email)
        .first()
    )
    if email_used:
        return _ineligible(ConflictType.EMAIL)

    ip_used = (
        db.query(FreeTrialRecord.id)
        .filter(FreeTrialRecord.ip == ip, FreeTrialRecord.trial_started_at >= window_start)
        .first()
    )
    if ip_used:
        return _ineligible(ConflictType.IP)

    if device_fingerprint:
        device_used = (
            db.query(FreeTrialRecord.id)
            .filter(
                FreeTrialRecord.device_fingerprint == device_fingerprint,
                FreeTrialRecord.trial_started_at >= window_start,
            )
            .first()
        )
        if device_used:
            return _ineligible(ConflictType.DEVICE)

    domain_trials = (
        db.query(func.count(FreeTrialRecord.id))
        .filter(
            FreeTrialRecord.email_domain == extract_email_domain(email),
            FreeTrialRecord.trial_started_at >= window_start,
        )
        .scalar()
    ) or 0
    if domain_trials >= settings.TRIAL_DOMAIN_LIMIT:
        return _ineligible(ConflictType.DOMAIN)

    return TrialEligibility(eligible=True)


def check_eligibility(
    db: Session,
    email: str,
    ip: str,
    device_fingerprint: Optional[str] = None,
    now: Optional[datetime] = None,
) -> TrialEligibility:
    """Read-only eligibility check for an (email, ip, fingerprint) triple."""
    now = resolve_now(now)
    with guarded_transaction(db, "trial eligibility check"):
        return _evaluate(db, email.lower(), ip, device_fingerprint, now)


def _write_trial_start(
    db: Session,
    user: User,
    ip: str,
    device_fingerprint: Optional[str],
    now: datetime,
) -> FreeTrialRecord:
    if user.has_paid_subscription():
        # Trial start rewrites tier and status; a paying subscriber keeps both.
        logger.warning(f"Trial start refused for paid subscriber user_id={user.id}")
        raise ConflictException(detail="Account already has an active paid subscription")

    email = user.email.lower()
    trial_ends_at = now + timedelta(days=settings.TRIAL_DURATION_DAYS)

    record = FreeTrialRecord(
        email=email,
        email_domain=extract_email_domain(email),
        ip=ip,
        device_fingerprint=device_fingerprint,
        user_id=user.id,
        trial_started_at=now,
        trial_ended_at=trial_ends_at,
    )
    db.add(record)

    user.free_trial_used = True
    user.free_trial_started_at = now
    user.free_trial_ended_at = trial_ends_at
    user.subscription_tier = SubscriptionTier.FREE
    user.subscription_status = SubscriptionStatus.ACTIVE
    user.registration_ip = ip
    user.device_fingerprint = device_fingerprint
    db.add(user)

    db.add(SignupAttempt(
        email=email,
        ip=ip,
        device_fingerprint=device_fingerprint,
        attempted_at=now,
        successful=True,
    ))

    try:
        db.flush()
    except IntegrityError:
        # Another request recorded a trial for this email first.
        db.rollback()
        logger.warning(f"Trial record for {email} already exists, start refused")
        raise TrialIneligibleException(
            conflict_type=ConflictType.EMAIL.value,
            detail=CONFLICT_REASONS[ConflictType.EMAIL],
        )
    return record


def record_trial_start(
    db: Session,
    user: User,
    ip: str,
    device_fingerprint: Optional[str] = None,
    now: Optional[datetime] = None,
) -> FreeTrialRecord:
    """
    Persist a trial start in one transaction: the ledger row, the user's
    entitlement fields and a successful signup attempt commit together or
    not at all.
    """
    now = resolve_now(now)
    with guarded_transaction(db, "record trial start"):
        record = _write_trial_start(db, user, ip, device_fingerprint, now)

    log_entitlement_event(
        "TRIAL STARTED",
        f"ends_at={record.trial_ended_at.isoformat()}",
        user_id=user.id,
        subject=record.email,
        denied=False,
    )
    return record


def start_free_trial(
    db: Session,
    user: User,
    ip: str,
    device_fingerprint: Optional[str] = None,
    now: Optional[datetime] = None,
) -> FreeTrialRecord:
    """
    Check eligibility and record the trial under one lock keyed by the email
    domain, so concurrent signups from one domain cannot both squeeze under
    the domain limit. Raises ``TrialIneligibleException`` on conflict.
    """
    now = resolve_now(now)
    email = user.email.lower()

    with guarded_transaction(db, "start free trial"):
        acquire_advisory_lock(db, f"trial-domain:{extract_email_domain(email)}")
        eligibility = _evaluate(db, email, ip, device_fingerprint, now)
        if not eligibility.eligible:
            log_entitlement_event(
                "TRIAL REFUSED",
                f"conflict={eligibility.conflict_type.value}",
                user_id=user.id,
                subject=email,
            )
            raise TrialIneligibleException(
                conflict_type=eligibility.conflict_type.value,
                detail=eligibility.reason,
            )
        record = _write_trial_start(db, user, ip, device_fingerprint, now)

    log_entitlement_event(
        "TRIAL STARTED",
        f"ends_at={record.trial_ended_at.isoformat()}",
        user_id=user.id,
        subject=email,
        denied=False,
    )
    return record

