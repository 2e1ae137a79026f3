"""Device registry - per-user device cap and offline-license validity."""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from bookstream.core.clock import resolve_now, as_naive_utc
from bookstream.core.config import settings
from bookstream.db.locks import lock_user
from bookstream.db.transaction import guarded_transaction
from bookstream.errors.exceptions import (
    ConflictException,
    DeviceLimitExceededException,
    InvalidDeviceStateException,
    NotFoundException,
)
from bookstream.models.device import Device
from bookstream.models.loan import Loan, LoanStatus
from bookstream.schemas.device_schemas import LicenseWindow, LicenseValidity, LicenseUpdates
from bookstream.utils.logger import log_entitlement_event

logger = logging.getLogger(__name__)


def _device_cap(max_devices: Optional[int]) -> int:
    return settings.MAX_DEVICES_PER_USER if max_devices is None else max_devices


def offline_license_period() -> timedelta:
    return timedelta(days=settings.OFFLINE_LICENSE_DAYS)


def count_active_devices(db: Session, user_id: int) -> int:
    return (
        db.query(func.count(Device.id))
        .filter(Device.user_id == user_id, Device.is_active.is_(True))
        .scalar()
    ) or 0


def register_device(
    db: Session,
    user_id: int,
    name: str,
    public_key: str,
    device_fingerprint: str,
    user_agent: Optional[str] = None,
    now: Optional[datetime] = None,
    max_devices: Optional[int] = None,
) -> Device:
    """
    Add an active device, refusing once the user has ``max_devices`` active.

    A fingerprint the user already has an active device for is a
    ``ConflictException``; deactivate the old registration first.
    """
    now = resolve_now(now)
    cap = _device_cap(max_devices)

    with guarded_transaction(db, "register device"):
        user = lock_user(db, user_id)
        if user is None:
            raise NotFoundException(detail="User not found")

        # One active registration per piece of hardware.
        already_registered = (
            db.query(Device.id)
            .filter(
                Device.user_id == user_id,
                Device.device_fingerprint == device_fingerprint,
                Device.is_active.is_(True),
            )
            .first()
        )
        if already_registered:
            raise ConflictException(detail="Device already registered")

        current_devices = count_active_devices(db, user_id)
        if current_devices >= cap:
            log_entitlement_event(
                "DEVICE LIMIT",
                f"active={current_devices} max={cap}",
                user_id=user_id,
                subject=user.email,
            )
            raise DeviceLimitExceededException(current_devices=current_devices, max_devices=cap)

        device = Device(
            user_id=user_id,
            name=name,
            public_key=public_key,
            device_fingerprint=device_fingerprint,
            user_agent=user_agent[:500] if user_agent else None,
            is_active=True,
            last_active_at=now,
            created_at=now,
        )
        db.add(device)

    logger.info(f"Device registered: user_id={user_id}, device_id={device.id}")
    return device


def deactivate_device(
    db: Session,
    device_id: int,
    requesting_user_id: int,
    now: Optional[datetime] = None,
) -> Device:
    """
    Permanently deactivate a device.

    From the commit on, ``check_license_validity`` and ``license_window``
    report every license bound to the device as unusable, including ones
    issued earlier.
    """
    now = resolve_now(now)
    with guarded_transaction(db, "deactivate device"):
        device = (
            db.query(Device)
            .filter(
                Device.id == device_id,
                Device.user_id == requesting_user_id,
                Device.is_active.is_(True),
            )
            .with_for_update()
            .populate_existing()
            .first()
        )
        if device is None:
            raise NotFoundException(detail="Device not found")

        device.is_active = False
        device.deactivated_at = now

    log_entitlement_event(
        "DEVICE DEACTIVATED",
        f"device_id={device_id} licenses revoked",
        user_id=requesting_user_id,
        denied=False,
    )
    return device


def touch_last_active(db: Session, device_id: int, now: Optional[datetime] = None) -> Device:
    now = resolve_now(now)
    with guarded_transaction(db, "touch device"):
        device = db.query(Device).filter(Device.id == device_id).first()
        if device is None:
            raise NotFoundException(detail="Device not found")
        if not device.is_active:
            raise InvalidDeviceStateException()
        device.last_active_at = now
    return device


def touch_by_fingerprint(
    db: Session,
    user_id: int,
    device_fingerprint: str,
    now: Optional[datetime] = None,
) -> Optional[Device]:
    """Refresh ``last_active_at`` for the user's active device with this fingerprint, if any."""
    device = (
        db.query(Device)
        .filter(
            Device.user_id == user_id,
            Device.device_fingerprint == device_fingerprint,
            Device.is_active.is_(True),
        )
        .order_by(Device.created_at.desc())
        .first()
    )
    if device is None:
        return None
    return touch_last_active(db, device.id, now=now)


def get_user_device(db: Session, device_id: int, user_id: int) -> Device:
    device = db.query(Device).filter(Device.id == device_id, Device.user_id == user_id).first()
    if device is None:
        raise NotFoundException(detail="Device not found")
    return device


def list_devices(db: Session, user_id: int) -> List[Device]:
    return (
        db.query(Device)
        .filter(Device.user_id == user_id)
        .order_by(Device.is_active.desc(), Device.last_active_at.desc())
        .all()
    )


def license_window(
    db: Session,
    user_id: int,
    device_id: int,
    now: Optional[datetime] = None,
) -> LicenseWindow:
    """Is the device active for the user, and until when is a license issued now valid."""
    now = resolve_now(now)
    device = get_user_device(db, device_id, user_id)
    if not device.is_active:
        return LicenseWindow(device_id=device.id, active=False)
    return LicenseWindow(
        device_id=device.id,
        active=True,
        issued_at=now,
        valid_until=now + offline_license_period(),
    )


def check_license_validity(
    db: Session,
    user_id: int,
    device_fingerprint: str,
    issued_at: datetime,
    now: Optional[datetime] = None,
) -> LicenseValidity:
    """
    Validate an offline license issued to *device_fingerprint* at *issued_at*.

    The license must belong to a registration that is still active and
    existed when it was issued; re-registering the same hardware does not
    revive licenses from an earlier, deactivated registration.
    """
    now = resolve_now(now)
    issued_at = as_naive_utc(issued_at)

    device = (
        db.query(Device)
        .filter(
            Device.user_id == user_id,
            Device.device_fingerprint == device_fingerprint,
            Device.is_active.is_(True),
            Device.created_at <= issued_at,
        )
        .first()
    )
    if device is None:
        return LicenseValidity(valid=False, reason="device_inactive")

    expires_at = issued_at + offline_license_period()
    if now >= expires_at:
        return LicenseValidity(valid=False, reason="expired", expires_at=expires_at)
    return LicenseValidity(valid=True, expires_at=expires_at)


def license_updates(
    db: Session,
    user_id: int,
    device_id: int,
    since: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> LicenseUpdates:
    """
    Revocations a license issuer has to apply for one device.

    Reports whether the device was deactivated and which of the user's loans
    were revoked at or after *since* (everything when *since* is omitted).
    Issuers poll this and discard the matching offline licenses.
    """
    now = resolve_now(now)
    since = as_naive_utc(since)
    device = get_user_device(db, device_id, user_id)

    query = db.query(Loan.id).filter(
        Loan.user_id == user_id,
        Loan.status == LoanStatus.REVOKED,
    )
    if since is not None:
        query = query.filter(Loan.revoked_at >= since)
    revoked_loan_ids = [row.id for row in query.order_by(Loan.revoked_at, Loan.id).all()]

    deactivated_at = as_naive_utc(device.deactivated_at)
    device_revoked = not device.is_active and (
        since is None or deactivated_at is None or deactivated_at >= since
    )

    return LicenseUpdates(
        device_id=device.id,
        active=device.is_active,
        device_revoked=device_revoked,
        deactivated_at=deactivated_at,
        revoked_loan_ids=revoked_loan_ids,
        checked_at=now,
    )
