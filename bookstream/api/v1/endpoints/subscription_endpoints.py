"""Subscription API endpoints - free trial and entitlement status."""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from bookstream.core.dependencies import get_db
from bookstream.middleware.auth import require_user, get_client_ip, get_device_fingerprint
from bookstream.models.user import User
from bookstream.schemas.entitlement_schemas import EntitlementStatus, TrialStartResponse
from bookstream.services.subscription_service import get_entitlement_status
from bookstream.services.trial_service import start_free_trial

router = APIRouter()


@router.post("/trial", response_model=TrialStartResponse)
async def start_trial(
    request: Request,
    current_user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """
    ## Start a free trial

    **Auth:** `Authorization: Bearer <token>` header required.

    For accounts created without a trial. Eligibility is checked against the
    email, the client IP, the device fingerprint (`X-Device-Fingerprint`) and
    the email domain; the first signal that matches is reported.

    ### Response: TrialStartResponse
    `{ "ok": true, "trial_started_at": "...", "trial_ends_at": "..." }`

    ### Frontend integration
    - HTTP 403 with `reason: "trial_ineligible"` → show `message`; offer a paid plan.
      `conflict_type` is one of `email`, `ip`, `device`, `domain`.
    - HTTP 409 → the account already has an active paid plan; nothing changes.
    """
    record = start_free_trial(
        db,
        current_user,
        get_client_ip(request),
        get_device_fingerprint(request),
    )
    return TrialStartResponse(
        trial_started_at=record.trial_started_at,
        trial_ends_at=record.trial_ended_at,
    )


@router.get("/status", response_model=EntitlementStatus)
async def subscription_status(current_user: User = Depends(require_user)):
    """
    ## Get current entitlement status

    Tier, subscription status, trial window and whether the caller may
    borrow right now (`has_reading_access`).
    """
    return get_entitlement_status(current_user)
