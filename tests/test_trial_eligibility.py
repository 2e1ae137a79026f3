"""
Tests for free-trial eligibility and atomic trial start.
"""
from datetime import timedelta

import pytest

from bookstream.errors.exceptions import ConflictException, TrialIneligibleException
from bookstream.models import User, FreeTrialRecord, SignupAttempt, SubscriptionTier, SubscriptionStatus
from bookstream.schemas.entitlement_schemas import ConflictType
from bookstream.services.trial_service import (
    check_eligibility,
    record_trial_start,
    start_free_trial,
    extract_email_domain,
    generate_device_fingerprint,
)

from conftest import T0


@pytest.fixture
def trial_user(make_user):
    """Factory returning a user without a trial."""
    def _make(email):
        return make_user(email=email, tier=SubscriptionTier.FREE, status=SubscriptionStatus.INACTIVE)
    return _make


class TestHelpers:

    def test_extract_email_domain(self):
        assert extract_email_domain("Jane.Doe@Family.ORG") == "family.org"
        assert extract_email_domain("odd@name@readers.net") == "readers.net"
        assert extract_email_domain("no-at-sign") == ""

    def test_fingerprint_is_stable_sha256(self):
        fp = generate_device_fingerprint("Mozilla/5.0", "MacIntel", "1920x1080", "Europe/Berlin")
        assert len(fp) == 64
        assert fp == generate_device_fingerprint("Mozilla/5.0", "MacIntel", "1920x1080", "Europe/Berlin")
        assert fp != generate_device_fingerprint("Mozilla/5.0", "MacIntel", "1280x800", "Europe/Berlin")

    def test_fingerprint_tolerates_missing_fields(self):
        assert generate_device_fingerprint() == generate_device_fingerprint(None, None, None, None)


class TestCheckEligibility:

    def test_fresh_triple_is_eligible(self, db):
        result = check_eligibility(db, "new@readers.net", "10.0.0.1", "fp-a", now=T0)
        assert result.eligible
        assert result.conflict_type is None

    def test_email_never_passes_again(self, db, trial_user):
        user = trial_user("jane@family.org")
        record_trial_start(db, user, "10.0.0.1", "fp-a", now=T0)

        for days in (1, 31, 400):
            result = check_eligibility(
                db, "JANE@family.org", "172.16.0.9", "fp-z", now=T0 + timedelta(days=days)
            )
            assert not result.eligible
            assert result.conflict_type == ConflictType.EMAIL

    def test_ip_conflict_within_lookback(self, db, trial_user):
        record_trial_start(db, trial_user("a@alpha.io"), "10.0.0.1", now=T0)

        result = check_eligibility(db, "b@beta.io", "10.0.0.1", now=T0 + timedelta(days=10))
        assert result.conflict_type == ConflictType.IP
        assert result.reason

        assert check_eligibility(db, "b@beta.io", "10.0.0.1", now=T0 + timedelta(days=31)).eligible

    def test_device_conflict_within_lookback(self, db, trial_user):
        record_trial_start(db, trial_user("a@alpha.io"), "10.0.0.1", "fp-shared", now=T0)

        result = check_eligibility(db, "b@beta.io", "10.0.0.2", "fp-shared", now=T0 + timedelta(days=5))
        assert result.conflict_type == ConflictType.DEVICE

        assert check_eligibility(db, "b@beta.io", "10.0.0.2", None, now=T0 + timedelta(days=5)).eligible

    def test_third_trial_from_domain_is_refused(self, db, trial_user):
        record_trial_start(db, trial_user("one@family.org"), "10.0.0.1", "fp-1", now=T0)
        record_trial_start(db, trial_user("two@family.org"), "10.0.0.2", "fp-2", now=T0 + timedelta(days=1))

        result = check_eligibility(db, "three@family.org", "10.0.0.3", "fp-3", now=T0 + timedelta(days=2))
        assert result.conflict_type == ConflictType.DOMAIN

        later = T0 + timedelta(days=31, hours=1)
        assert check_eligibility(db, "three@family.org", "10.0.0.3", "fp-3", now=later).eligible

    def test_only_first_matching_signal_is_reported(self, db, trial_user):
        record_trial_start(db, trial_user("jane@family.org"), "10.0.0.1", "fp-1", now=T0)

        result = check_eligibility(db, "jane@family.org", "10.0.0.1", "fp-1", now=T0 + timedelta(days=1))
        assert result.conflict_type == ConflictType.EMAIL

        result = check_eligibility(db, "john@other.org", "10.0.0.1", "fp-1", now=T0 + timedelta(days=1))
        assert result.conflict_type == ConflictType.IP


class TestTrialStart:

    def test_start_sets_entitlement_and_ledgers(self, db, trial_user):
        user = trial_user("reader@family.org")

        record = start_free_trial(db, user, "10.0.0.1", "fp-1", now=T0)

        assert record.email == "reader@family.org"
        assert record.email_domain == "family.org"
        assert record.trial_ended_at == T0 + timedelta(days=7)

        db.expire_all()
        stored = db.get(User, user.id)
        assert stored.free_trial_used is True
        assert stored.free_trial_started_at == T0
        assert stored.free_trial_ended_at == T0 + timedelta(days=7)
        assert stored.subscription_tier == SubscriptionTier.FREE
        assert stored.subscription_status == SubscriptionStatus.ACTIVE
        assert stored.registration_ip == "10.0.0.1"
        assert stored.device_fingerprint == "fp-1"

        attempts = db.query(SignupAttempt).filter(SignupAttempt.successful.is_(True)).all()
        assert len(attempts) == 1
        assert attempts[0].email == "reader@family.org"

    def test_trial_grants_reading_access_for_seven_days(self, db, trial_user):
        user = trial_user("reader@family.org")
        start_free_trial(db, user, "10.0.0.1", now=T0)

        assert user.has_reading_access(T0 + timedelta(days=6, hours=23))
        assert not user.has_reading_access(T0 + timedelta(days=7))

    def test_ineligible_start_raises_and_writes_nothing(self, db, trial_user):
        start_free_trial(db, trial_user("one@alpha.io"), "10.0.0.1", now=T0)
        second = trial_user("two@beta.io")

        with pytest.raises(TrialIneligibleException) as exc_info:
            start_free_trial(db, second, "10.0.0.1", now=T0 + timedelta(hours=1))

        assert exc_info.value.status_code == 403
        assert exc_info.value.to_payload()["conflict_type"] == "ip"
        assert db.query(FreeTrialRecord).count() == 1
        assert db.get(User, second.id).free_trial_used is False

    def test_duplicate_record_rolls_back_every_write(self, db, trial_user):
        user = trial_user("reader@family.org")
        record_trial_start(db, user, "10.0.0.1", "fp-1", now=T0)

        with pytest.raises(TrialIneligibleException):
            record_trial_start(db, user, "10.0.0.9", "fp-9", now=T0 + timedelta(days=2))

        db.expire_all()
        assert db.query(FreeTrialRecord).count() == 1
        assert db.query(SignupAttempt).count() == 1
        stored = db.get(User, user.id)
        assert stored.free_trial_started_at == T0
        assert stored.registration_ip == "10.0.0.1"

    def test_paid_subscriber_keeps_plan(self, db, make_user):
        user = make_user(email="payer@family.org", tier=SubscriptionTier.PREMIUM)

        with pytest.raises(ConflictException) as exc_info:
            start_free_trial(db, user, "10.0.0.1", "fp-1", now=T0)

        assert exc_info.value.status_code == 409
        db.expire_all()
        stored = db.get(User, user.id)
        assert stored.subscription_tier == SubscriptionTier.PREMIUM
        assert stored.subscription_status == SubscriptionStatus.ACTIVE
        assert stored.free_trial_ended_at is None
        assert db.query(FreeTrialRecord).count() == 0
        assert db.query(SignupAttempt).count() == 0

    def test_lapsed_paid_subscriber_may_start_trial(self, db, make_user):
        user = make_user(
            email="former@family.org",
            tier=SubscriptionTier.BASIC,
            status=SubscriptionStatus.CANCELLED,
        )

        record = start_free_trial(db, user, "10.0.0.1", now=T0)

        assert record.trial_ended_at == T0 + timedelta(days=7)
        assert user.subscription_tier == SubscriptionTier.FREE
