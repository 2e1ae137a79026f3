"""
HTTP-level tests for the v1 API.
"""
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from bookstream.models import UserRole, SubscriptionTier, SubscriptionStatus

from conftest import PASSWORD, auth_headers

API = "/api/v1"


def _register(client, email, ip, password="Readmore123", fingerprint=None):
    body = {"email": email, "password": password, "first_name": "Ada", "last_name": "Reader"}
    if fingerprint:
        body["device_fingerprint"] = fingerprint
    return client.post(f"{API}/auth/register", json=body, headers={"X-Forwarded-For": ip})


class TestRegistration:

    def test_register_starts_free_trial(self, client):
        response = _register(client, "ada@family.org", "198.51.100.10", fingerprint="fp-ada")

        assert response.status_code == 201
        data = response.json()
        assert data["ok"] is True
        assert data["free_trial_started"] is True
        assert data["trial_ends_at"] is not None
        assert isinstance(data["user_id"], int)

    def test_register_without_trial_when_ip_already_used(self, client):
        _register(client, "ada@family.org", "198.51.100.10")
        response = _register(client, "bob@readers.net", "198.51.100.10")

        assert response.status_code == 201
        assert response.json()["free_trial_started"] is False
        assert response.json()["trial_ends_at"] is None

    def test_duplicate_email_conflicts(self, client):
        _register(client, "ada@family.org", "198.51.100.10")
        response = _register(client, "ADA@family.org", "198.51.100.11")

        assert response.status_code == 409

    def test_fourth_signup_in_an_hour_is_rate_limited(self, client):
        for i in range(3):
            assert _register(client, f"user{i}@readers.net", "198.51.100.20").status_code == 201

        response = _register(client, "user3@readers.net", "198.51.100.20")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "3600"
        data = response.json()
        assert data["ok"] is False
        assert data["reason"] == "rate_limited"
        assert data["retry_after_seconds"] == 3600
        assert data["message"]

    def test_weak_password_is_rejected(self, client):
        response = _register(client, "weak@readers.net", "198.51.100.30", password="alllowercase")
        assert response.status_code == 422

    def test_register_fails_closed_when_store_is_down(self, client):
        from bookstream.main import app
        from bookstream.core.dependencies import get_db

        def broken_db():
            session = MagicMock()
            session.query.side_effect = OperationalError("SELECT 1", {}, Exception("down"))
            yield session

        app.dependency_overrides[get_db] = broken_db
        response = _register(client, "ada@family.org", "198.51.100.40")

        assert response.status_code == 503
        assert response.json()["reason"] == "persistence_unavailable"


class TestAuth:

    def test_login_and_me(self, client, make_user):
        user = make_user(email="login@readers.net")

        response = client.post(
            f"{API}/auth/login",
            data={"username": "login@readers.net", "password": PASSWORD},
        )
        assert response.status_code == 200
        token = response.json()["access_token"]
        assert response.json()["user"]["id"] == user.id

        me = client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["email"] == "login@readers.net"

    def test_wrong_password(self, client, make_user):
        make_user(email="login@readers.net")
        response = client.post(
            f"{API}/auth/login",
            data={"username": "login@readers.net", "password": "Wrong12345"},
        )
        assert response.status_code == 401

    def test_me_requires_token(self, client):
        assert client.get(f"{API}/auth/me").status_code == 401


class TestSubscription:

    def test_start_trial_then_refused_on_repeat(self, client, make_user):
        user = make_user(tier=SubscriptionTier.FREE, status=SubscriptionStatus.INACTIVE)
        headers = auth_headers(user, ip="192.0.2.50")

        first = client.post(f"{API}/subscription/trial", headers=headers)
        assert first.status_code == 200
        assert first.json()["ok"] is True

        second = client.post(f"{API}/subscription/trial", headers=headers)
        assert second.status_code == 403
        data = second.json()
        assert data["reason"] == "trial_ineligible"
        assert data["conflict_type"] == "email"

    def test_trial_refused_for_paying_subscriber(self, client, make_user):
        user = make_user(tier=SubscriptionTier.PREMIUM)
        headers = auth_headers(user, ip="192.0.2.77")

        response = client.post(f"{API}/subscription/trial", headers=headers)
        assert response.status_code == 409

        status = client.get(f"{API}/subscription/status", headers=headers).json()
        assert status["subscription_tier"] == "premium"
        assert status["subscription_status"] == "active"
        assert status["on_free_trial"] is False
        assert status["has_reading_access"] is True

    def test_status_reports_reading_access(self, client, make_user):
        user = make_user()
        response = client.get(f"{API}/subscription/status", headers=auth_headers(user))

        assert response.status_code == 200
        data = response.json()
        assert data["has_reading_access"] is True
        assert data["subscription_tier"] == "basic"
        assert data["on_free_trial"] is False


class TestLoans:

    def test_borrow_list_and_return(self, client, make_user, make_book):
        user = make_user()
        book = make_book(title="Middlemarch")
        headers = auth_headers(user)

        created = client.post(f"{API}/loans", json={"book_id": book.id}, headers=headers)
        assert created.status_code == 201
        loan = created.json()["loan"]
        assert loan["status"] == "active"
        assert loan["book"]["title"] == "Middlemarch"

        listing = client.get(f"{API}/loans", headers=headers).json()
        assert listing["summary"] == {"active_loans": 1, "max_loans": 20, "can_borrow": True}

        returned = client.post(f"{API}/loans/{loan['id']}/return", headers=headers)
        assert returned.status_code == 200
        assert returned.json()["loan"]["status"] == "returned"

        again = client.post(f"{API}/loans/{loan['id']}/return", headers=headers)
        assert again.status_code == 400
        assert again.json()["reason"] == "invalid_state"

        filtered = client.get(f"{API}/loans", params={"status": "active"}, headers=headers).json()
        assert filtered["loans"] == []

    def test_loan_limit_payload(self, client, make_user, make_book, make_loan):
        user = make_user()
        for _ in range(20):
            make_loan(user, make_book())
        extra = make_book()

        response = client.post(f"{API}/loans", json={"book_id": extra.id}, headers=auth_headers(user))

        assert response.status_code == 409
        data = response.json()
        assert data == {
            "ok": False,
            "reason": "loan_limit_exceeded",
            "message": data["message"],
            "active_loans": 20,
            "max_loans": 20,
        }

    def test_borrow_without_subscription(self, client, make_user, make_book):
        user = make_user(tier=SubscriptionTier.FREE, status=SubscriptionStatus.INACTIVE)
        response = client.post(f"{API}/loans", json={"book_id": make_book().id}, headers=auth_headers(user))

        assert response.status_code == 403
        assert response.json()["reason"] == "subscription_required"

    def test_missing_book(self, client, make_user):
        response = client.post(f"{API}/loans", json={"book_id": 777}, headers=auth_headers(make_user()))
        assert response.status_code == 404

    def test_admin_revoke_and_statistics(self, client, make_user, make_book, make_loan):
        reader = make_user()
        admin = make_user(role=UserRole.ADMIN)
        loan = make_loan(reader, make_book())

        forbidden = client.post(f"{API}/loans/{loan.id}/revoke", headers=auth_headers(reader))
        assert forbidden.status_code == 403

        revoked = client.post(
            f"{API}/loans/{loan.id}/revoke",
            json={"reason": "Rights expired"},
            headers=auth_headers(admin),
        )
        assert revoked.status_code == 200
        assert revoked.json()["loan"]["revoke_reason"] == "Rights expired"

        stats = client.get(f"{API}/loans/statistics", headers=auth_headers(admin)).json()
        assert stats["total_revoked"] == 1
        assert stats["total_active_loans"] == 0


class TestDevices:

    def _add(self, client, user, fingerprint):
        return client.post(
            f"{API}/devices/register",
            json={"name": f"Device {fingerprint}", "public_key": "PEM"},
            headers=auth_headers(user, fingerprint=fingerprint),
        )

    def test_device_limit_payload(self, client, make_user):
        user = make_user()
        for i in range(5):
            assert self._add(client, user, f"fp-{i}").status_code == 201

        response = self._add(client, user, "fp-5")

        assert response.status_code == 409
        data = response.json()
        assert data["reason"] == "device_limit_exceeded"
        assert data["current_devices"] == 5
        assert data["max_devices"] == 5

    def test_register_requires_fingerprint_header(self, client, make_user):
        response = client.post(
            f"{API}/devices/register",
            json={"name": "Phone", "public_key": "PEM"},
            headers=auth_headers(make_user()),
        )
        assert response.status_code == 400

    def test_remove_device_closes_license_window(self, client, make_user):
        user = make_user()
        device_id = self._add(client, user, "fp-1").json()["id"]
        headers = auth_headers(user)

        window = client.get(f"{API}/devices/{device_id}/license-window", headers=headers).json()
        assert window["active"] is True
        assert window["valid_until"] is not None

        assert client.delete(f"{API}/devices/{device_id}", headers=headers).status_code == 200
        assert client.delete(f"{API}/devices/{device_id}", headers=headers).status_code == 404

        window = client.get(f"{API}/devices/{device_id}/license-window", headers=headers).json()
        assert window["active"] is False

        listing = client.get(f"{API}/devices/me", headers=headers).json()
        assert listing["active_devices"] == 0
        assert len(listing["devices"]) == 1

    def test_license_updates_after_removal(self, client, make_user):
        user = make_user()
        device_id = self._add(client, user, "fp-1").json()["id"]
        headers = auth_headers(user)

        before = client.get(f"{API}/devices/{device_id}/license-updates", headers=headers)
        assert before.status_code == 200
        assert before.json()["device_revoked"] is False

        client.delete(f"{API}/devices/{device_id}", headers=headers)

        after = client.get(
            f"{API}/devices/{device_id}/license-updates",
            params={"since": "2020-01-01T00:00:00"},
            headers=headers,
        ).json()
        assert after["active"] is False
        assert after["device_revoked"] is True
        assert after["revoked_loan_ids"] == []

    def test_duplicate_fingerprint_conflicts(self, client, make_user):
        user = make_user()
        assert self._add(client, user, "fp-1").status_code == 201
        assert self._add(client, user, "fp-1").status_code == 409

    def test_activity_on_other_users_device(self, client, make_user):
        owner, other = make_user(), make_user()
        device_id = self._add(client, owner, "fp-1").json()["id"]

        response = client.put(f"{API}/devices/{device_id}/activity", headers=auth_headers(other))
        assert response.status_code == 404


class TestAdmin:

    def test_abuse_endpoints_require_admin(self, client, make_user):
        reader = make_user()
        assert client.get(f"{API}/admin/abuse/statistics", headers=auth_headers(reader)).status_code == 403

    def test_statistics_and_cleanup(self, client, make_user):
        admin = make_user(role=UserRole.ADMIN)
        _register(client, "ada@family.org", "198.51.100.60")

        stats = client.get(f"{API}/admin/abuse/statistics", headers=auth_headers(admin))
        assert stats.status_code == 200
        assert stats.json()["free_trials_started"] == 1
        assert stats.json()["top_trial_domains"][0]["domain"] == "family.org"

        cleanup = client.post(f"{API}/admin/abuse/cleanup", headers=auth_headers(admin))
        assert cleanup.status_code == 200
        assert cleanup.json() == {"deleted": 0, "retention_days": 90}

    def test_lapse_subscription_revokes_loans(self, client, make_user, make_book, make_loan):
        admin = make_user(role=UserRole.ADMIN)
        reader = make_user()
        make_loan(reader, make_book())
        make_loan(reader, make_book())

        response = client.post(
            f"{API}/admin/users/{reader.id}/lapse-subscription",
            headers=auth_headers(admin),
        )
        assert response.status_code == 200
        assert response.json() == {"user_id": reader.id, "revoked": 2}

        status = client.get(f"{API}/subscription/status", headers=auth_headers(reader)).json()
        assert status["subscription_status"] == "cancelled"
        assert status["has_reading_access"] is False
