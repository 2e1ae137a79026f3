"""Append-only ledger of registration attempts"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Index

from bookstream.core.clock import utcnow
from bookstream.db.base import Base


class SignupAttempt(Base):
    """
    One row per signup attempt, plus one row per block placed on an IP.

    A row whose ``block_until`` lies in the future is an active block for
    its ``ip``. Rows are never updated.
    """
    __tablename__ = "signup_attempts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), nullable=True)
    ip = Column(String(45), nullable=False)
    device_fingerprint = Column(String(128), nullable=True)
    user_agent = Column(String(500), nullable=True)

    attempted_at = Column(DateTime, default=utcnow, nullable=False)
    successful = Column(Boolean, default=False, nullable=False)
    block_until = Column(DateTime, nullable=True, index=True)

    __table_args__ = (
        Index("ix_signup_attempts_ip_attempted_at", "ip", "attempted_at"),
    )

    def __repr__(self):
        return (
            f"<SignupAttempt(id={self.id}, ip='{self.ip}', "
            f"successful={self.successful}, block_until={self.block_until})>"
        )
