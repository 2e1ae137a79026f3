"""Authentication endpoints - registration with signup abuse checks"""
from fastapi import APIRouter, Depends, Form, Request, status
from sqlalchemy.orm import Session
import logging

from bookstream.core.dependencies import get_db
from bookstream.services.auth_service import (
    authenticate_user,
    create_user,
    create_user_token,
    get_user_by_email,
)
from bookstream.services.rate_limit_service import check_and_record_attempt, record_outcome
from bookstream.services.trial_service import start_free_trial
from bookstream.schemas.auth_schemas import (
    RegisterRequest,
    RegistrationResponse,
    UserResponse,
    Token,
)
from bookstream.middleware.auth import get_current_user, get_client_ip, get_device_fingerprint
from bookstream.models.user import User
from bookstream.errors.exceptions import (
    ConflictException,
    RateLimitedException,
    TrialIneligibleException,
    UnauthorizedException,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/register", response_model=RegistrationResponse, status_code=status.HTTP_201_CREATED)
async def register(user_data: RegisterRequest, request: Request, db: Session = Depends(get_db)):
    """
    ## Register a new reader account

    **Role:** Public - no authentication required.

    Runs the signup rate limiter for the client IP, creates the account and
    then tries to start a free trial. An account whose email, IP, device or
    domain already consumed a trial is still created, just without one.

    ### Required fields (JSON body)
    | Field              | Type   | Description                                  |
    |--------------------|--------|----------------------------------------------|
    | email              | string | Valid email                                  |
    | password           | string | 8-72 chars, upper, lower and a digit         |
    | first_name         | string | Optional                                     |
    | last_name          | string | Optional                                     |
    | device_fingerprint | string | Optional; `X-Device-Fingerprint` also works  |

    ### Response
    `{ "ok": true, "user_id": 42, "free_trial_started": true, "trial_ends_at": "..." }`

    ### Frontend integration
    1. HTTP 201 → go to login; show a trial banner when `free_trial_started`.
    2. HTTP 429 → show `message`, retry after `retry_after_seconds`
       (also sent as the `Retry-After` header).
    3. HTTP 409 → "Email already registered".
    4. HTTP 503 → signups are temporarily unavailable, try again later.
    """
    ip = get_client_ip(request)
    fingerprint = user_data.device_fingerprint or get_device_fingerprint(request)
    user_agent = request.headers.get("User-Agent")

    decision = check_and_record_attempt(db, ip)
    if not decision.allowed:
        raise RateLimitedException(
            retry_after_seconds=decision.retry_after_seconds,
            detail=decision.reason,
        )

    if get_user_by_email(db, user_data.email):
        record_outcome(
            db, ip,
            email=user_data.email,
            device_fingerprint=fingerprint,
            user_agent=user_agent,
            successful=False,
        )
        raise ConflictException(detail="Email already registered")

    user = create_user(db, user_data)
    logger.info(f"User registered: user_id={user.id}, ip={ip}")

    try:
        record = start_free_trial(db, user, ip, fingerprint)
    except TrialIneligibleException:
        # Account creation still counts as a successful signup attempt
        record_outcome(
            db, ip,
            email=user.email,
            device_fingerprint=fingerprint,
            user_agent=user_agent,
            successful=True,
        )
        return RegistrationResponse(user_id=user.id, free_trial_started=False)

    return RegistrationResponse(
        user_id=user.id,
        free_trial_started=True,
        trial_ends_at=record.trial_ended_at,
    )


@router.post("/login", response_model=Token)
async def login(
    username: str = Form(..., description="Enter your EMAIL address here"),
    password: str = Form(..., description="Your password"),
    db: Session = Depends(get_db)
):
    """
    ## Login with email and password

    **Role:** Public - no authentication required.

    The form field is named `username` for OAuth2 compatibility but **must
    contain the user's email**.

    ### Response
    ```json
    { "access_token": "<JWT>", "token_type": "bearer", "user": { ...UserResponse } }
    ```

    ### Frontend integration
    - Send as `application/x-www-form-urlencoded` (standard OAuth2 password flow).
    - HTTP 401 → "Incorrect email or password".
    """
    user = authenticate_user(db, username, password)
    if not user:
        raise UnauthorizedException(detail="Incorrect email or password")

    return Token(
        access_token=create_user_token(user),
        user=UserResponse.model_validate(user),
    )


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """
    ## Get the currently authenticated user's profile

    **Auth:** `Authorization: Bearer <token>` header required.

    HTTP 401 → token missing or expired, redirect to login.
    """
    return current_user
