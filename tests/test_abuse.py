"""
Tests for abuse statistics, ledger cleanup and fail-closed behaviour.
"""
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from bookstream.errors.exceptions import PersistenceUnavailableException
from bookstream.models import SignupAttempt, FreeTrialRecord
from bookstream.services.abuse_service import get_abuse_statistics, cleanup_old_attempts
from bookstream.services.device_service import register_device
from bookstream.services.loan_service import borrow
from bookstream.services.rate_limit_service import check_and_record_attempt, record_outcome
from bookstream.services.trial_service import check_eligibility

from conftest import T0


def _trial(db, email, ip, started_at):
    db.add(FreeTrialRecord(
        email=email,
        email_domain=email.split("@")[1],
        ip=ip,
        trial_started_at=started_at,
        trial_ended_at=started_at + timedelta(days=7),
    ))
    db.commit()


class TestAbuseStatistics:

    def test_counts_and_top_lists(self, db):
        for minute in range(3):
            record_outcome(db, "10.0.0.1", successful=False, now=T0 + timedelta(minutes=minute))
        record_outcome(db, "10.0.0.2", successful=False, now=T0)
        record_outcome(db, "10.0.0.3", successful=True, now=T0)
        record_outcome(db, "10.0.0.9", successful=False, now=T0 - timedelta(days=20))
        check_and_record_attempt(db, "10.0.0.1", now=T0 + timedelta(minutes=5))

        _trial(db, "a@family.org", "10.1.0.1", T0)
        _trial(db, "b@family.org", "10.1.0.2", T0)
        _trial(db, "c@readers.net", "10.1.0.3", T0)

        stats = get_abuse_statistics(db, now=T0 + timedelta(hours=1))

        assert stats.window_days == 7
        assert stats.total_signup_attempts == 6
        assert stats.blocked_attempts == 5
        assert stats.free_trials_started == 3
        assert stats.active_ip_blocks == 1
        assert stats.top_abusive_ips[0].ip == "10.0.0.1"
        assert stats.top_abusive_ips[0].attempts == 4
        assert "10.0.0.9" not in [row.ip for row in stats.top_abusive_ips]
        assert stats.top_trial_domains[0].domain == "family.org"
        assert stats.top_trial_domains[0].trials == 2

    def test_empty_ledger(self, db):
        stats = get_abuse_statistics(db, now=T0)
        assert stats.total_signup_attempts == 0
        assert stats.top_abusive_ips == []
        assert stats.top_trial_domains == []


class TestCleanup:

    def test_deletes_old_rows_and_keeps_active_blocks(self, db):
        record_outcome(db, "10.0.0.1", now=T0 - timedelta(days=100))
        record_outcome(db, "10.0.0.2", now=T0 - timedelta(days=10))
        db.add(SignupAttempt(
            ip="10.0.0.3",
            attempted_at=T0 - timedelta(days=100),
            successful=False,
            block_until=T0 + timedelta(hours=1),
        ))
        db.commit()
        _trial(db, "old@family.org", "10.0.0.1", T0 - timedelta(days=200))

        deleted = cleanup_old_attempts(db, now=T0)

        assert deleted == 1
        remaining = sorted(row.ip for row in db.query(SignupAttempt).all())
        assert remaining == ["10.0.0.2", "10.0.0.3"]
        assert db.query(FreeTrialRecord).count() == 1

    def test_custom_retention(self, db):
        record_outcome(db, "10.0.0.1", now=T0 - timedelta(days=3))
        record_outcome(db, "10.0.0.2", now=T0)

        assert cleanup_old_attempts(db, retention_days=1, now=T0) == 1

    def test_zero_retention_is_not_the_default(self, db):
        record_outcome(db, "10.0.0.1", now=T0 - timedelta(days=3))
        record_outcome(db, "10.0.0.2", now=T0 - timedelta(minutes=1))

        assert cleanup_old_attempts(db, retention_days=0, now=T0) == 2
        assert db.query(SignupAttempt).count() == 0


def _broken_session():
    session = MagicMock()
    session.query.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
    return session


class TestFailClosed:

    def test_rate_limit_check_denies_when_store_is_down(self):
        session = _broken_session()

        with pytest.raises(PersistenceUnavailableException) as exc_info:
            check_and_record_attempt(session, "10.0.0.1", now=T0)

        assert exc_info.value.status_code == 503
        assert exc_info.value.to_payload()["reason"] == "persistence_unavailable"
        session.rollback.assert_called_once()
        session.commit.assert_not_called()

    def test_trial_check_denies_when_store_is_down(self):
        with pytest.raises(PersistenceUnavailableException):
            check_eligibility(_broken_session(), "x@readers.net", "10.0.0.1", now=T0)

    def test_borrow_denies_when_store_is_down(self):
        with pytest.raises(PersistenceUnavailableException):
            borrow(_broken_session(), 1, 1, now=T0)

    def test_device_registration_denies_when_store_is_down(self):
        with pytest.raises(PersistenceUnavailableException):
            register_device(_broken_session(), 1, "Tablet", "key", "fp-1", now=T0)
