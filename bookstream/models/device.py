"""Registered reading devices for offline access"""
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, Index

from bookstream.core.clock import utcnow
from bookstream.db.base import Base


class Device(Base):
    """
    A user's registered device.

    Deactivation is terminal: ``is_active`` never flips back, and re-adding
    the same hardware creates a new row.
    """
    __tablename__ = "devices"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    name = Column(String(255), nullable=False)
    device_fingerprint = Column(String(128), nullable=False, index=True)
    public_key = Column(Text, nullable=False)
    user_agent = Column(String(500), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    last_active_at = Column(DateTime, default=utcnow, nullable=True)
    deactivated_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, onupdate=utcnow, nullable=True)

    __table_args__ = (
        Index("ix_devices_user_id_is_active", "user_id", "is_active"),
    )

    def __repr__(self):
        return f"<Device(id={self.id}, user_id={self.user_id}, name='{self.name}', active={self.is_active})>"
