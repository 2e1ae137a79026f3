"""Device endpoints - registration, deactivation and offline-license window"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from bookstream.core.config import settings
from bookstream.core.dependencies import get_db
from bookstream.errors.exceptions import BadRequestException
from bookstream.middleware.auth import require_user, get_device_fingerprint
from bookstream.models.user import User
from bookstream.schemas.device_schemas import (
    DeviceRegisterRequest,
    DeviceResponse,
    DeviceListResponse,
    LicenseWindow,
    LicenseUpdates,
    MessageResponse,
)
from bookstream.services import device_service

router = APIRouter()


@router.post("/register", response_model=DeviceResponse, status_code=status.HTTP_201_CREATED)
async def register_device(
    body: DeviceRegisterRequest,
    request: Request,
    current_user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """
    ## Register the calling device for offline reading

    **Auth:** `Authorization: Bearer <token>` and `X-Device-Fingerprint` headers required.

    ### Required fields (JSON body)
    | Field      | Type   | Description              |
    |------------|--------|--------------------------|
    | name       | string | Display name             |
    | public_key | string | PEM public key           |

    ### Frontend integration
    - HTTP 409 `Device already registered` → this fingerprint is already an
      active device of the caller.
    - HTTP 409 `device_limit_exceeded` → list devices (`GET /devices/me`)
      and let the reader remove one; `current_devices` / `max_devices`
      are included.
    """
    fingerprint = get_device_fingerprint(request)
    if not fingerprint:
        raise BadRequestException(detail="X-Device-Fingerprint header is required")

    return device_service.register_device(
        db,
        current_user.id,
        name=body.name,
        public_key=body.public_key,
        device_fingerprint=fingerprint,
        user_agent=request.headers.get("User-Agent"),
    )


@router.get("/me", response_model=DeviceListResponse)
async def my_devices(
    current_user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    return DeviceListResponse(
        devices=device_service.list_devices(db, current_user.id),
        active_devices=device_service.count_active_devices(db, current_user.id),
        max_devices=settings.MAX_DEVICES_PER_USER,
    )


@router.delete("/{device_id}", response_model=MessageResponse)
async def remove_device(
    device_id: int,
    current_user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """
    ## Deactivate a device

    Permanent. Offline licenses held by the device stop validating, including
    ones issued before this call.
    """
    device_service.deactivate_device(db, device_id, current_user.id)
    return MessageResponse(message="Device deactivated")


@router.put("/{device_id}/activity", response_model=DeviceResponse)
async def device_activity(
    device_id: int,
    current_user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    device_service.get_user_device(db, device_id, current_user.id)
    return device_service.touch_last_active(db, device_id)


@router.get("/{device_id}/license-window", response_model=LicenseWindow)
async def license_window(
    device_id: int,
    current_user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """
    ## Offline-license window

    `active: false` means no license may be issued to this device. For an
    active device `valid_until` is when a license issued now expires.
    """
    return device_service.license_window(db, current_user.id, device_id)


@router.get("/{device_id}/license-updates", response_model=LicenseUpdates)
async def license_updates(
    device_id: int,
    since: Optional[datetime] = Query(None, description="Last poll time (ISO 8601)"),
    current_user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """
    ## Revocation feed for offline licenses

    Poll with the time of the previous call in `since`.

    - `device_revoked: true` → drop every license held by this device.
    - `revoked_loan_ids` → drop the licenses of these loans.
    """
    return device_service.license_updates(db, current_user.id, device_id, since=since)
