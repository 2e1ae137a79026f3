"""Authentication middleware and dependencies"""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from bookstream.core.dependencies import get_db
from bookstream.services.auth_service import decode_access_token, get_user_by_id
from bookstream.services.device_service import touch_by_fingerprint
from bookstream.models.user import User, UserRole
from bookstream.errors.exceptions import UnauthorizedException, ForbiddenException

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)

DEVICE_FINGERPRINT_HEADER = "X-Device-Fingerprint"


def get_client_ip(request: Request) -> str:
    """
    Client IP as seen behind a reverse proxy.

    First hop of ``X-Forwarded-For``, then ``X-Real-IP``, then the socket peer.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return request.client.host if request.client else "unknown"


def get_device_fingerprint(request: Request) -> Optional[str]:
    fingerprint = request.headers.get(DEVICE_FINGERPRINT_HEADER)
    return fingerprint.strip() if fingerprint else None


async def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user from JWT token"""
    if not token:
        raise UnauthorizedException(detail="Not authenticated")

    token_data = decode_access_token(token)

    if token_data is None or token_data.user_id is None:
        raise UnauthorizedException(detail="Could not validate credentials")

    user = get_user_by_id(db, user_id=token_data.user_id)

    if user is None:
        raise UnauthorizedException(detail="User not found")

    if not user.is_active:
        raise ForbiddenException(detail="Inactive user")

    # Requests from a registered device keep its last_active_at fresh
    fingerprint = get_device_fingerprint(request)
    if fingerprint:
        touch_by_fingerprint(db, user.id, fingerprint)

    return user


def require_role(required_role: UserRole):
    """Dependency to require a specific role or higher"""
    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if not current_user.has_permission(required_role):
            raise ForbiddenException(
                detail=f"Insufficient permissions. Required role: {required_role.value}"
            )
        return current_user
    return role_checker


require_super_user = require_role(UserRole.SUPER_USER)
require_admin = require_role(UserRole.ADMIN)
require_user = require_role(UserRole.USER)
