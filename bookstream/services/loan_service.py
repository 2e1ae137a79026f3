"""Loan service - borrow, return and revoke with a per-user active-loan cap."""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from bookstream.core.clock import resolve_now
from bookstream.core.config import settings
from bookstream.db.locks import lock_user
from bookstream.db.transaction import guarded_transaction
from bookstream.errors.exceptions import (
    ConflictException,
    InvalidLoanStateException,
    LoanLimitExceededException,
    NotFoundException,
    SubscriptionRequiredException,
)
from bookstream.models.book import Book
from bookstream.models.loan import Loan, LoanStatus, LoanType
from bookstream.schemas.loan_schemas import LoanSummary, LoanStatistics
from bookstream.utils.logger import log_entitlement_event

logger = logging.getLogger(__name__)


def _loan_cap(max_loans: Optional[int]) -> int:
    return settings.MAX_ACTIVE_LOANS if max_loans is None else max_loans


def count_active_loans(db: Session, user_id: int) -> int:
    return (
        db.query(func.count(Loan.id))
        .filter(Loan.user_id == user_id, Loan.status == LoanStatus.ACTIVE)
        .scalar()
    ) or 0


def borrow(
    db: Session,
    user_id: int,
    book_id: int,
    now: Optional[datetime] = None,
    max_loans: Optional[int] = None,
) -> Loan:
    """
    Open an active loan of *book_id* for *user_id*.

    The user row is locked before the active loans are counted, so two
    concurrent borrows for one remaining slot cannot both succeed.
    """
    now = resolve_now(now)
    cap = _loan_cap(max_loans)

    with guarded_transaction(db, "borrow"):
        user = lock_user(db, user_id)
        if user is None:
            raise NotFoundException(detail="User not found")
        if not user.has_reading_access(now):
            raise SubscriptionRequiredException()

        book = db.query(Book).filter(Book.id == book_id, Book.is_active.is_(True)).first()
        if book is None:
            raise NotFoundException(detail="Book not found")

        active_loans = count_active_loans(db, user_id)
        if active_loans >= cap:
            log_entitlement_event(
                "LOAN LIMIT",
                f"active={active_loans} max={cap} book_id={book_id}",
                user_id=user_id,
                subject=user.email,
            )
            raise LoanLimitExceededException(active_loans=active_loans, max_loans=cap)

        already_borrowed = (
            db.query(Loan.id)
            .filter(Loan.user_id == user_id, Loan.book_id == book_id, Loan.status == LoanStatus.ACTIVE)
            .first()
        )
        if already_borrowed:
            raise ConflictException(detail="You already have an active loan for this book")

        loan = Loan(
            user_id=user_id,
            book_id=book_id,
            status=LoanStatus.ACTIVE,
            loan_type=LoanType.TRIAL if user.is_on_free_trial(now) else LoanType.SUBSCRIPTION,
            started_at=now,
        )
        db.add(loan)

    logger.info(f"Loan created: user_id={user_id}, book_id={book_id}, loan_id={loan.id}")
    return loan


def _get_active_for_update(db: Session, loan_id: int, owner_id: Optional[int] = None) -> Loan:
    query = db.query(Loan).filter(Loan.id == loan_id)
    if owner_id is not None:
        query = query.filter(Loan.user_id == owner_id)
    loan = query.with_for_update().populate_existing().first()

    if loan is None:
        raise NotFoundException(detail="Loan not found")
    if loan.status != LoanStatus.ACTIVE:
        raise InvalidLoanStateException(current_status=loan.status.value)
    return loan


def return_loan(
    db: Session,
    loan_id: int,
    requesting_user_id: int,
    now: Optional[datetime] = None,
) -> Loan:
    """User-initiated ``active -> returned``. Returning twice is an error."""
    now = resolve_now(now)
    with guarded_transaction(db, "return loan"):
        loan = _get_active_for_update(db, loan_id, owner_id=requesting_user_id)
        loan.status = LoanStatus.RETURNED
        loan.returned_at = now

    logger.info(f"Loan returned: loan_id={loan_id}, user_id={requesting_user_id}")
    return loan


def revoke(
    db: Session,
    loan_id: int,
    reason: str,
    now: Optional[datetime] = None,
) -> Loan:
    """System-initiated ``active -> revoked`` (subscription lapse, admin action)."""
    now = resolve_now(now)
    with guarded_transaction(db, "revoke loan"):
        loan = _get_active_for_update(db, loan_id)
        loan.status = LoanStatus.REVOKED
        loan.revoked_at = now
        loan.revoke_reason = reason

    log_entitlement_event(
        "LOAN REVOKED",
        f"loan_id={loan_id} reason={reason}",
        user_id=loan.user_id,
        denied=False,
    )
    return loan


def revoke_active_loans(db: Session, user_id: int, reason: str, now: datetime) -> int:
    """Mark every active loan of *user_id* revoked. Caller owns the transaction."""
    return (
        db.query(Loan)
        .filter(Loan.user_id == user_id, Loan.status == LoanStatus.ACTIVE)
        .update(
            {
                Loan.status: LoanStatus.REVOKED,
                Loan.revoked_at: now,
                Loan.revoke_reason: reason,
                Loan.updated_at: now,
            },
            synchronize_session=False,
        )
    )


def revoke_all_active_loans(
    db: Session,
    user_id: int,
    reason: str = "Subscription ended",
    now: Optional[datetime] = None,
) -> int:
    now = resolve_now(now)
    with guarded_transaction(db, "revoke all loans"):
        lock_user(db, user_id)
        revoked = revoke_active_loans(db, user_id, reason, now)

    logger.info(f"Revoked {revoked} active loan(s): user_id={user_id}, reason={reason}")
    return revoked


def list_loans(db: Session, user_id: int, status: Optional[LoanStatus] = None) -> List[Loan]:
    """Newest first, optionally filtered by status."""
    query = db.query(Loan).filter(Loan.user_id == user_id)
    if status is not None:
        query = query.filter(Loan.status == status)
    return query.order_by(Loan.started_at.desc(), Loan.id.desc()).all()


def summary(db: Session, user_id: int, max_loans: Optional[int] = None) -> LoanSummary:
    cap = _loan_cap(max_loans)
    active_loans = count_active_loans(db, user_id)
    return LoanSummary(
        active_loans=active_loans,
        max_loans=cap,
        can_borrow=active_loans < cap,
    )


def loan_statistics(db: Session) -> LoanStatistics:
    counts = dict(
        db.query(Loan.status, func.count(Loan.id)).group_by(Loan.status).all()
    )
    active = counts.get(LoanStatus.ACTIVE, 0)
    borrowers = (
        db.query(func.count(func.distinct(Loan.user_id)))
        .filter(Loan.status == LoanStatus.ACTIVE)
        .scalar()
    ) or 0

    return LoanStatistics(
        total_active_loans=active,
        total_returned=counts.get(LoanStatus.RETURNED, 0),
        total_revoked=counts.get(LoanStatus.REVOKED, 0),
        borrowers_with_active_loans=borrowers,
        average_active_loans_per_borrower=round(active / borrowers, 2) if borrowers else 0.0,
    )
