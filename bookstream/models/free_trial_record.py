"""Ledger of started free trials, used to detect repeat-trial abuse"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index

from bookstream.core.clock import utcnow
from bookstream.db.base import Base


class FreeTrialRecord(Base):
    """
    One row per successful trial start.

    ``email`` is stored lower-cased and is unique: an address gets one trial,
    ever. ``user_id`` is optional so a record can outlive the account.
    """
    __tablename__ = "free_trial_records"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    email_domain = Column(String(255), nullable=False)
    ip = Column(String(45), nullable=False)
    device_fingerprint = Column(String(128), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    trial_started_at = Column(DateTime, default=utcnow, nullable=False)
    trial_ended_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_free_trial_records_ip_started", "ip", "trial_started_at"),
        Index("ix_free_trial_records_fingerprint_started", "device_fingerprint", "trial_started_at"),
        Index("ix_free_trial_records_domain_started", "email_domain", "trial_started_at"),
    )

    def __repr__(self):
        return f"<FreeTrialRecord(id={self.id}, email='{self.email}', user_id={self.user_id})>"
