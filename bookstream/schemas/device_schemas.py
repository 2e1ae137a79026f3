"""Device registration and offline-license window schemas"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class DeviceRegisterRequest(BaseModel):
    """Register the calling device for offline reading."""
    name: str = Field(..., min_length=1, max_length=255)
    public_key: str = Field(..., min_length=1, description="Device public key (PEM)")

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Kitchen tablet",
                "public_key": "-----BEGIN PUBLIC KEY-----\nMIIBIjANBgkq...\n-----END PUBLIC KEY-----"
            }
        }


class DeviceResponse(BaseModel):
    id: int
    name: str
    device_fingerprint: str
    is_active: bool
    last_active_at: Optional[datetime] = None
    deactivated_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class DeviceListResponse(BaseModel):
    devices: List[DeviceResponse]
    active_devices: int
    max_devices: int


class LicenseWindow(BaseModel):
    """Answer to "may a license be issued to this device, and until when"."""
    device_id: int
    active: bool
    issued_at: Optional[datetime] = None
    valid_until: Optional[datetime] = None


class LicenseUpdates(BaseModel):
    """What a license issuer must drop for a device since its last poll."""
    device_id: int
    active: bool
    device_revoked: bool = Field(..., description="Device was deactivated since `since`")
    deactivated_at: Optional[datetime] = None
    revoked_loan_ids: List[int] = Field(default_factory=list)
    checked_at: datetime


class LicenseValidity(BaseModel):
    valid: bool
    reason: Optional[str] = None
    expires_at: Optional[datetime] = None


class MessageResponse(BaseModel):
    ok: bool = True
    message: str
