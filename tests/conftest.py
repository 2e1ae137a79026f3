"""
Shared fixtures: a fresh file-backed SQLite database per test and factories
for users, books, loans and devices.
"""
import os
import tempfile
from datetime import datetime, timedelta

_TEST_DIR = tempfile.mkdtemp(prefix="bookstream-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DIR, 'bookstream.db')}"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_DIR"] = os.path.join(_TEST_DIR, "logs")

import pytest
from fastapi.testclient import TestClient

from bookstream.db.base import Base
from bookstream.db.session import create_db_engine, create_session_factory
from bookstream.models import (
    User, UserRole, SubscriptionTier, SubscriptionStatus,
    Book, Loan, LoanStatus, LoanType, Device,
)
from bookstream.services.auth_service import get_password_hash, create_user_token

T0 = datetime(2026, 3, 2, 12, 0, 0)
PASSWORD = "Readmore123"


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so threads with their own sessions share one database."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    """Test client whose requests use the per-test database."""
    from bookstream.main import app
    from bookstream.core.dependencies import get_db

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _persist(db, obj):
    db.add(obj)
    db.commit()
    return obj


@pytest.fixture
def make_user(db):
    """Create a committed user. Defaults to an active paid (basic) subscriber."""
    counter = {"n": 0}

    def _make(
        email=None,
        role=UserRole.USER,
        tier=SubscriptionTier.BASIC,
        status=SubscriptionStatus.ACTIVE,
        trial_started_at=None,
        trial_days=7,
    ):
        counter["n"] += 1
        user = User(
            email=email or f"reader{counter['n']}@readers.net",
            hashed_password=get_password_hash(PASSWORD),
            first_name="Test",
            last_name=f"Reader{counter['n']}",
            role=role,
            is_active=True,
            subscription_tier=tier,
            subscription_status=status,
        )
        if trial_started_at is not None:
            user.free_trial_used = True
            user.free_trial_started_at = trial_started_at
            user.free_trial_ended_at = trial_started_at + timedelta(days=trial_days)
        return _persist(db, user)

    return _make


@pytest.fixture
def make_book(db):
    counter = {"n": 0}

    def _make(title=None, is_active=True):
        counter["n"] += 1
        return _persist(
            db,
            Book(title=title or f"Book {counter['n']}", author="A. Writer", is_active=is_active),
        )

    return _make


@pytest.fixture
def make_loan(db):
    def _make(user, book, status=LoanStatus.ACTIVE, started_at=T0):
        return _persist(
            db,
            Loan(
                user_id=user.id,
                book_id=book.id,
                status=status,
                loan_type=LoanType.SUBSCRIPTION,
                started_at=started_at,
            ),
        )

    return _make


@pytest.fixture
def make_device(db):
    counter = {"n": 0}

    def _make(user, fingerprint=None, is_active=True, created_at=T0):
        counter["n"] += 1
        return _persist(
            db,
            Device(
                user_id=user.id,
                name=f"Device {counter['n']}",
                device_fingerprint=fingerprint or f"fp-{counter['n']}",
                public_key="-----BEGIN PUBLIC KEY-----\nMIIB\n-----END PUBLIC KEY-----",
                is_active=is_active,
                created_at=created_at,
                last_active_at=created_at,
            ),
        )

    return _make


def auth_headers(user, fingerprint=None, ip=None):
    headers = {"Authorization": f"Bearer {create_user_token(user)}"}
    if fingerprint:
        headers["X-Device-Fingerprint"] = fingerprint
    if ip:
        headers["X-Forwarded-For"] = ip
    return headers
