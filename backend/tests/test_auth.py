"""
Authentication tests.

Verifies:
- Registration validation and uniqueness
- OTP login issues a working session token; codes are single use
- Failed codes are throttled (429)
- Missing token -> 401, bad token or non-admin -> 403
"""

import pytest

from app.extensions import db
from app.models import LoginEvent, SessionToken, User
from app.services import session_service
from conftest import auth_headers, make_user


REGISTRATION = {
    "email": "Carol@Example.com",
    "full_name": "Carol Visitor",
    "phone": "5550000003",
    "birthday": {"day": 4, "month": 7, "year": 1990},
    "how_did_you_hear": "Instagram",
    "agree_to_terms": True,
}


def _login(client, notifier, identifier):
    assert client.post("/api/auth/otp/request", json={"identifier": identifier}).status_code == 200
    code = notifier.last_code()
    return client.post("/api/auth/otp/verify", json={"identifier": identifier, "code": code}), code


class TestRegistration:

    def test_register_creates_pending_member(self, client):
        resp = client.post("/api/auth/register", json=REGISTRATION)

        assert resp.status_code == 201
        user = resp.json["data"]
        assert user["email"] == "carol@example.com"
        assert user["status"] == "pending"
        assert user["role"] == "user"
        assert user["birthday"] == "1990-07-04"
        assert user["reward_points"] == 0

    @pytest.mark.parametrize("field", ["email", "phone"])
    def test_duplicate_email_or_phone(self, client, member, field):
        body = dict(REGISTRATION)
        body[field] = member.email if field == "email" else member.phone

        resp = client.post("/api/auth/register", json=body)

        assert resp.status_code == 409
        assert resp.json["error"]["field"] == field

    @pytest.mark.parametrize(
        "override",
        [
            {"agree_to_terms": False},
            {"email": ""},
            {"email": "not-an-email"},
            {"phone": None},
            {"birthday": {"day": 31, "month": 2, "year": 1990}},
            {"phone": {"number": "5550000003"}},
            {"full_name": ["Carol", "Visitor"]},
        ],
    )
    def test_rejects_invalid_registrations(self, client, override):
        resp = client.post("/api/auth/register", json={**REGISTRATION, **override})
        assert resp.status_code == 400


class TestOtpLogin:

    def test_code_login_verifies_account(self, client, notifier):
        client.post("/api/auth/register", json=REGISTRATION)

        resp, _ = _login(client, notifier, REGISTRATION["phone"])

        assert resp.status_code == 200
        token = resp.json["data"]["token"]
        assert notifier.sms[-1]["to"] == REGISTRATION["phone"]

        me = client.get("/api/auth/me", headers=auth_headers(token))
        assert me.status_code == 200
        assert me.json["data"]["status"] == "verified"

    def test_email_identifier(self, client, member, notifier):
        resp, _ = _login(client, notifier, "ALICE@example.com")
        assert resp.status_code == 200
        assert resp.json["data"]["user"]["id"] == member.id

    def test_numeric_phone_identifier(self, client, member, notifier):
        resp, _ = _login(client, notifier, int(member.phone))
        assert resp.status_code == 200
        assert resp.json["data"]["user"]["id"] == member.id

    @pytest.mark.parametrize("identifier", [{"phone": "5550000001"}, ["5550000001"]])
    def test_non_text_identifier_is_rejected(self, client, member, notifier, identifier):
        resp = client.post("/api/auth/otp/request", json={"identifier": identifier})
        assert resp.status_code == 400
        assert notifier.sms == []

    def test_code_is_single_use(self, client, member, notifier):
        first, code = _login(client, notifier, member.phone)
        assert first.status_code == 200

        replay = client.post("/api/auth/otp/verify", json={"identifier": member.phone, "code": code})
        assert replay.status_code == 401

    def test_code_is_not_stored_in_plaintext(self, client, member, notifier):
        client.post("/api/auth/otp/request", json={"phone": member.phone})

        db.session.expire_all()
        stored = db.session.get(User, member.id).otp_hash
        assert stored and notifier.last_code() not in stored

    def test_unknown_identifier_gets_same_answer(self, client, notifier):
        resp = client.post("/api/auth/otp/request", json={"identifier": "5550009999"})

        assert resp.status_code == 200
        assert notifier.sms == [] and notifier.emails == []

    def test_wrong_code(self, client, member, notifier):
        client.post("/api/auth/otp/request", json={"identifier": member.phone})
        code = notifier.last_code()
        wrong = "000000" if code != "000000" else "111111"

        resp = client.post("/api/auth/otp/verify", json={"identifier": member.phone, "code": wrong})

        assert resp.status_code == 401
        assert db.session.query(LoginEvent).filter_by(event_type="OTP_FAILED").count() == 1

    def test_repeated_failures_lock_out_even_the_right_code(self, app, client, member, notifier):
        client.post("/api/auth/otp/request", json={"identifier": member.phone})
        code = notifier.last_code()
        wrong = "000000" if code != "000000" else "111111"

        for _ in range(app.config["OTP_MAX_FAILED_ATTEMPTS"]):
            resp = client.post("/api/auth/otp/verify", json={"identifier": member.phone, "code": wrong})
            assert resp.status_code == 401

        locked = client.post("/api/auth/otp/verify", json={"identifier": member.phone, "code": code})
        assert locked.status_code == 429
        assert locked.json["error"]["seconds_until_unlock"] > 0

    def test_suspended_account_cannot_request_code(self, client, notifier):
        user = make_user("dave@example.com", "5550000004", "Dave", status="suspend")
        resp = client.post("/api/auth/otp/request", json={"identifier": user.phone})
        assert resp.status_code == 403


class TestSessions:

    def test_missing_token(self, client):
        resp = client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.json["message"] == "Access denied. No token provided."

    def test_unknown_token(self, client):
        resp = client.get("/api/auth/me", headers=auth_headers("not-a-real-token"))
        assert resp.status_code == 403

    def test_member_on_admin_route(self, client, member_headers):
        resp = client.get("/api/rewards/admin/stats", headers=member_headers)
        assert resp.status_code == 403
        assert resp.json["message"] == "Admin access required"

    def test_logout_revokes_token(self, client, member_headers):
        assert client.post("/api/auth/logout", headers=member_headers).status_code == 200
        assert client.get("/api/auth/me", headers=member_headers).status_code == 403

    def test_suspension_invalidates_live_sessions(self, client, member, member_headers):
        member.status = "suspend"
        db.session.commit()

        assert client.get("/api/auth/me", headers=member_headers).status_code == 403

    def test_revoke_all_user_sessions(self, client, member):
        tokens = [session_service.create_session(member.id)[1] for _ in range(2)]

        assert session_service.revoke_all_user_sessions(member.id) == 2
        for token in tokens:
            assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 403

    def test_suspending_from_the_cli_signs_the_member_out(self, app, client, member, member_headers):
        other_token = session_service.create_session(member.id)[1]

        result = app.test_cli_runner().invoke(
            args=["users", "set-status", "--identifier", member.email, "--status", "suspend"]
        )

        assert "PASS alice@example.com is now suspend" in result.output
        db.session.expire_all()
        sessions = db.session.query(SessionToken).filter_by(user_id=member.id).all()
        assert len(sessions) == 2
        assert all(s.is_revoked and s.revoked_reason == "User account suspended" for s in sessions)
        assert client.get("/api/auth/me", headers=member_headers).status_code == 403
        assert client.get("/api/auth/me", headers=auth_headers(other_token)).status_code == 403

    def test_set_status_for_unknown_user(self, app):
        result = app.test_cli_runner().invoke(
            args=["users", "set-status", "--identifier", "nobody@example.com", "--status", "suspend"]
        )
        assert "FAIL Failed to update status: User not found" in result.output
