"""Loan model: a user's borrow of a book"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, Enum as SQLEnum
from sqlalchemy.orm import relationship
from enum import Enum

from bookstream.core.clock import utcnow
from bookstream.db.base import Base, enum_values


class LoanStatus(str, Enum):
    ACTIVE = "active"
    RETURNED = "returned"
    REVOKED = "revoked"


class LoanType(str, Enum):
    SUBSCRIPTION = "subscription"
    TRIAL = "trial"


class Loan(Base):
    """
    Lifecycle: ``active -> returned`` (user) or ``active -> revoked`` (system).
    Both end states are terminal.
    """
    __tablename__ = "loans"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    book_id = Column(Integer, ForeignKey("books.id", ondelete="RESTRICT"), nullable=False, index=True)

    status = Column(
        SQLEnum(LoanStatus, name="loanstatus", values_callable=enum_values),
        nullable=False,
        default=LoanStatus.ACTIVE,
    )
    loan_type = Column(
        SQLEnum(LoanType, name="loantype", values_callable=enum_values),
        nullable=False,
        default=LoanType.SUBSCRIPTION,
    )

    started_at = Column(DateTime, default=utcnow, nullable=False)
    returned_at = Column(DateTime, nullable=True)
    revoked_at = Column(DateTime, nullable=True)
    revoke_reason = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, onupdate=utcnow, nullable=True)

    book = relationship("Book")

    __table_args__ = (
        Index("ix_loans_user_id_status", "user_id", "status"),
    )

    def __repr__(self):
        return f"<Loan(id={self.id}, user_id={self.user_id}, book_id={self.book_id}, status={self.status})>"
