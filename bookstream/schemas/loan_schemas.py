"""Loan Pydantic schemas"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from bookstream.models.loan import LoanStatus, LoanType


class BorrowRequest(BaseModel):
    """Borrow a book."""
    book_id: int = Field(..., gt=0)


class RevokeRequest(BaseModel):
    reason: str = Field("Revoked by administrator", max_length=500)


class BookSummary(BaseModel):
    id: int
    title: str
    author: Optional[str] = None

    class Config:
        from_attributes = True


class LoanResponse(BaseModel):
    id: int
    book_id: int
    status: LoanStatus
    loan_type: LoanType
    started_at: datetime
    returned_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    revoke_reason: Optional[str] = None
    book: Optional[BookSummary] = None

    class Config:
        from_attributes = True


class LoanEnvelope(BaseModel):
    loan: LoanResponse


class LoanSummary(BaseModel):
    active_loans: int
    max_loans: int
    can_borrow: bool


class LoanListResponse(BaseModel):
    loans: List[LoanResponse]
    summary: LoanSummary


class LoanStatistics(BaseModel):
    total_active_loans: int
    total_returned: int
    total_revoked: int
    borrowers_with_active_loans: int
    average_active_loans_per_borrower: float


class RevokeAllResponse(BaseModel):
    user_id: int
    revoked: int
