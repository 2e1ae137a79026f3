"""Authentication and user schemas"""
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional
from datetime import datetime

from bookstream.models.user import UserRole, SubscriptionTier, SubscriptionStatus


class RegisterRequest(BaseModel):
    """Schema for registering a new reader account"""
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    device_fingerprint: Optional[str] = Field(
        None, max_length=128, description="Client-computed device fingerprint (optional)"
    )

    @field_validator('password')
    @classmethod
    def validate_password(cls, v: str) -> str:
        """Validate password strength"""
        if not any(char.isdigit() for char in v):
            raise ValueError('Password must contain at least one digit')
        if not any(char.isupper() for char in v):
            raise ValueError('Password must contain at least one uppercase letter')
        if not any(char.islower() for char in v):
            raise ValueError('Password must contain at least one lowercase letter')
        return v


class RegistrationResponse(BaseModel):
    """Result of a successful registration"""
    ok: bool = True
    user_id: int
    free_trial_started: bool
    trial_ends_at: Optional[datetime] = None

    class Config:
        json_schema_extra = {
            "example": {
                "ok": True,
                "user_id": 42,
                "free_trial_started": True,
                "trial_ends_at": "2026-10-24T09:30:00"
            }
        }


class UserResponse(BaseModel):
    """Schema for user response"""
    id: int
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: UserRole
    is_active: bool
    free_trial_used: bool
    free_trial_ended_at: Optional[datetime] = None
    subscription_tier: SubscriptionTier
    subscription_status: SubscriptionStatus
    created_at: datetime
    last_login: Optional[datetime] = None

    class Config:
        from_attributes = True


class Token(BaseModel):
    """Token response schema"""
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class TokenData(BaseModel):
    """Token data schema for JWT payload"""
    user_id: Optional[int] = None
    email: Optional[str] = None
    role: Optional[UserRole] = None
