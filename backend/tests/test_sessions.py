"""
Server-side session tests.

Verifies:
- Session ids are random, and only their hash is stored
- Absolute expiry and sliding idle window
- Expired and idle records are removed when seen
- Role changes and deactivation revoke open sessions
- Session snapshot is not re-read from users
"""

from datetime import timedelta

import pytest

from steadymonitor.extensions import db
from steadymonitor.models import User, UserSession
from steadymonitor.services import auth_service, session_service
from steadymonitor.time_utils import utcnow

from conftest import get_session_cookie


def _session_row(token):
    return db.session.query(UserSession).filter_by(
        token_hash=session_service.hash_token(token)
    ).first()


class TestSessionTokens:

    def test_tokens_are_random_hex(self):
        tokens = {session_service.generate_token() for _ in range(50)}
        assert len(tokens) == 50
        for token in tokens:
            assert len(token) == 64
            int(token, 16)

    def test_hash_is_stable_and_one_way(self):
        token = session_service.generate_token()
        assert session_service.hash_token(token) == session_service.hash_token(token)
        assert session_service.hash_token(token) != token
        assert len(session_service.hash_token(token)) == 64

    def test_only_hash_is_persisted(self, app, users):
        session, token = session_service.create_session(users["alice"])
        assert session.token_hash == session_service.hash_token(token)
        assert db.session.query(UserSession).filter_by(token_hash=token).first() is None

    def test_expiry_uses_absolute_timeout(self, app, users):
        app.config["SESSION_ABSOLUTE_TIMEOUT_HOURS"] = 8
        session, _ = session_service.create_session(users["alice"])
        assert session.expires_at - session.created_at == timedelta(hours=8)


class TestResolve:

    def test_resolve_returns_snapshot_identity(self, app, users):
        _, token = session_service.create_session(users["alice"])

        identity = session_service.resolve(token)

        assert identity.user_id == users["alice"].id
        assert identity.username == "alice"
        assert identity.role == "department_uniform"
        assert identity.department == "Uniform"
        assert identity.display_name == "Alice"

    @pytest.mark.parametrize("token", [None, "", "deadbeef", "x" * 64])
    def test_unknown_tokens_resolve_to_none(self, app, users, token):
        assert session_service.resolve(token) is None

    def test_expired_session_is_rejected_and_deleted(self, app, users):
        session, token = session_service.create_session(users["alice"])
        session.expires_at = utcnow() - timedelta(seconds=1)
        db.session.commit()

        assert session_service.resolve(token) is None
        assert _session_row(token) is None

    def test_idle_session_is_rejected_and_deleted(self, app, users):
        session, token = session_service.create_session(users["alice"])
        session.last_used_at = utcnow() - session_service.idle_timeout() - timedelta(minutes=1)
        db.session.commit()

        assert session_service.resolve(token) is None
        assert _session_row(token) is None

    def test_resolve_slides_idle_window(self, app, users):
        session, token = session_service.create_session(users["alice"])
        stale = utcnow() - timedelta(minutes=60)
        session.last_used_at = stale
        db.session.commit()

        assert session_service.resolve(token) is not None

        db.session.expire_all()
        assert _session_row(token).last_used_at > stale

    def test_role_change_without_revocation_is_not_seen(self, app, users):
        _, token = session_service.create_session(users["alice"])

        user = db.session.get(User, users["alice"].id)
        user.role = "admin"
        db.session.commit()

        assert session_service.resolve(token).role == "department_uniform"


class TestRevocation:

    def test_login_resolve_logout(self, app, users):
        result = auth_service.login("alice", "correct")
        assert session_service.resolve(result.token).user_id == users["alice"].id

        auth_service.logout(result.token)

        assert session_service.resolve(result.token) is None
        assert _session_row(result.token) is None

    def test_destroy_reports_whether_anything_was_removed(self, app, users):
        _, token = session_service.create_session(users["alice"])
        assert session_service.destroy_session(token) is True
        assert session_service.destroy_session(token) is False

    def test_set_user_role_revokes_all_sessions(self, app, users):
        _, first = session_service.create_session(users["manager"])
        _, second = session_service.create_session(users["manager"])
        _, other = session_service.create_session(users["alice"])

        user = auth_service.set_user_role(users["manager"].id, "cashier", department="Stationery")

        assert user.role == "cashier"
        assert user.department == "Stationery"
        assert session_service.resolve(first) is None
        assert session_service.resolve(second) is None
        assert session_service.resolve(other) is not None

    def test_department_role_implies_department(self, app, users):
        user = auth_service.set_user_role(users["cashier"].id, "department_stationery", department="Uniform")
        assert user.department == "Stationery"

    def test_set_user_role_rejects_unknown_role(self, app, users):
        _, token = session_service.create_session(users["alice"])
        with pytest.raises(ValueError):
            auth_service.set_user_role(users["alice"].id, "owner")
        assert session_service.resolve(token) is not None

    def test_deactivate_revokes_sessions(self, app, users):
        _, token = session_service.create_session(users["alice"])
        auth_service.deactivate_user(users["alice"].id)
        assert session_service.resolve(token) is None

    def test_revoked_cookie_is_rejected_by_api(self, app, login_as, users):
        alice = login_as("alice")
        assert alice.get('/api/auth/permissions').status_code == 200

        auth_service.set_user_role(users["alice"].id, "department_stationery")

        resp = alice.get('/api/auth/permissions')
        assert resp.status_code == 401

    def test_expired_cookie_is_rejected_by_api(self, app, login_as):
        alice = login_as("alice")
        row = _session_row(get_session_cookie(alice, app))
        row.expires_at = utcnow() - timedelta(minutes=1)
        db.session.commit()

        assert alice.get('/api/pos/departments').status_code == 401
        assert db.session.query(UserSession).count() == 0


class TestCleanup:

    def test_cleanup_removes_expired_and_idle_only(self, app, users):
        expired, _ = session_service.create_session(users["alice"])
        idle, _ = session_service.create_session(users["bob"])
        _, live = session_service.create_session(users["admin"])

        expired.expires_at = utcnow() - timedelta(hours=1)
        idle.last_used_at = utcnow() - session_service.idle_timeout() - timedelta(minutes=5)
        db.session.commit()

        assert session_service.cleanup_expired_sessions() == 2
        assert db.session.query(UserSession).count() == 1
        assert session_service.resolve(live) is not None

    def test_cleanup_with_nothing_to_do(self, app, users):
        session_service.create_session(users["alice"])
        assert session_service.cleanup_expired_sessions() == 0
