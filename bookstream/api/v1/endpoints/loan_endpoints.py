"""Loan endpoints - borrow, return and admin revoke"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from bookstream.core.dependencies import get_db
from bookstream.middleware.auth import require_user, require_admin
from bookstream.models.loan import LoanStatus
from bookstream.models.user import User
from bookstream.schemas.loan_schemas import (
    BorrowRequest,
    RevokeRequest,
    LoanEnvelope,
    LoanListResponse,
    LoanStatistics,
)
from bookstream.services import loan_service

router = APIRouter()


@router.post("", response_model=LoanEnvelope, status_code=status.HTTP_201_CREATED)
async def borrow_book(
    body: BorrowRequest,
    current_user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """
    ## Borrow a book

    **Auth:** `Authorization: Bearer <token>` header required.

    Requires an active subscription or a running free trial. At most
    `MAX_ACTIVE_LOANS` (20) loans may be active at once.

    ### Response
    `{ "loan": { ...LoanResponse } }`

    ### Frontend integration
    - HTTP 409 `loan_limit_exceeded` → show `active_loans` / `max_loans` and
      ask the reader to return a book first.
    - HTTP 403 `subscription_required` → route to the plans page.
    - HTTP 404 → book not in the catalogue.
    """
    loan = loan_service.borrow(db, current_user.id, body.book_id)
    return {"loan": loan}


@router.get("", response_model=LoanListResponse)
async def my_loans(
    loan_status: Optional[LoanStatus] = Query(None, alias="status"),
    current_user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """List the caller's loans, newest first, with the active-loan summary."""
    return LoanListResponse(
        loans=loan_service.list_loans(db, current_user.id, loan_status),
        summary=loan_service.summary(db, current_user.id),
    )


@router.get("/statistics", response_model=LoanStatistics)
async def statistics(
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return loan_service.loan_statistics(db)


@router.post("/{loan_id}/return", response_model=LoanEnvelope)
async def return_book(
    loan_id: int,
    current_user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """
    ## Return a borrowed book

    HTTP 400 `invalid_state` when the loan was already returned or revoked.
    HTTP 404 when the loan does not belong to the caller.
    """
    loan = loan_service.return_loan(db, loan_id, current_user.id)
    return {"loan": loan}


@router.post("/{loan_id}/revoke", response_model=LoanEnvelope)
async def revoke_loan(
    loan_id: int,
    body: Optional[RevokeRequest] = None,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    ## Revoke a loan (admin)

    **Role:** ADMIN or SUPER_USER.
    """
    reason = body.reason if body else RevokeRequest().reason
    loan = loan_service.revoke(db, loan_id, reason)
    return {"loan": loan}
