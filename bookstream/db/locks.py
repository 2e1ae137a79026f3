"""Row and advisory locks for check-then-write sequences"""
from typing import Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from bookstream.models.user import User


def lock_user(db: Session, user_id: int) -> Optional[User]:
    """
    Load *user_id* with ``SELECT ... FOR UPDATE``.

    Every cap-enforcing write for a user (loans, devices) goes through this
    row, so concurrent requests for the same user queue up behind it.
    """
    return (
        db.query(User)
        .filter(User.id == user_id)
        .with_for_update()
        .populate_existing()
        .first()
    )


def acquire_advisory_lock(db: Session, key: str) -> None:
    """
    Take a transaction-scoped lock on an arbitrary string key (IP, email domain).

    PostgreSQL gets ``pg_advisory_xact_lock``; SQLite transactions already
    hold the database write lock from ``BEGIN IMMEDIATE``.
    """
    if db.get_bind().dialect.name == "postgresql":
        db.execute(text("SELECT pg_advisory_xact_lock(hashtext(:key))"), {"key": key})
