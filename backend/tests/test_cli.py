"""
Flask CLI command tests (system, users, maintenance groups).
"""

from datetime import timedelta

import pytest

from steadymonitor.extensions import db
from steadymonitor.models import Customer, Product, SecurityEvent, User, UserSession
from steadymonitor.services import session_service
from steadymonitor.time_utils import utcnow


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


class TestSystemCommands:

    def test_seed_creates_demo_data(self, runner):
        result = runner.invoke(args=["system", "seed"])

        assert result.exit_code == 0
        assert "PASS Created user admin (admin)" in result.output
        assert db.session.query(User).count() == 5
        assert db.session.query(Product).count() == 6
        assert db.session.query(Customer).count() == 3

        uniform = db.session.query(User).filter_by(username="uniform").one()
        assert uniform.department == "Uniform"

    def test_seed_is_idempotent(self, runner):
        runner.invoke(args=["system", "seed"])
        result = runner.invoke(args=["system", "seed"])

        assert result.exit_code == 0
        assert "SKIP User admin already exists" in result.output
        assert db.session.query(User).count() == 5
        assert db.session.query(Product).count() == 6

    def test_seed_rejects_weak_password(self, runner):
        result = runner.invoke(args=["system", "seed", "--password", "weak"])
        assert "FAIL Password validation failed" in result.output
        assert db.session.query(User).count() == 0

    def test_seeded_user_can_log_in(self, runner, client):
        runner.invoke(args=["system", "seed", "--password", "Seeded123"])
        resp = client.post('/api/auth/login', json={'username': 'stationery', 'password': 'Seeded123'})
        assert resp.status_code == 200
        assert resp.get_json()["user"]["department"] == "Stationery"


class TestUserCommands:

    def test_create_user(self, runner):
        result = runner.invoke(args=[
            "users", "create",
            "--username", "dora",
            "--password", "Secret123",
            "--role", "cashier",
            "--department", "Uniform",
        ])

        assert "PASS Created user: dora" in result.output
        user = db.session.query(User).filter_by(username="dora").one()
        assert user.role == "cashier"
        assert user.department == "Uniform"

    def test_create_user_with_weak_password(self, runner):
        result = runner.invoke(args=[
            "users", "create", "--username", "dora", "--password", "abc", "--role", "cashier",
        ])
        assert "FAIL Password validation failed" in result.output
        assert db.session.query(User).filter_by(username="dora").first() is None

    def test_list_users(self, runner, users):
        result = runner.invoke(args=["users", "list"])
        assert result.exit_code == 0
        for username in users:
            assert username in result.output

    def test_set_role_ends_sessions(self, runner, users):
        session_service.create_session(users["alice"])
        session_service.create_session(users["alice"])

        result = runner.invoke(args=["users", "set-role", "alice", "department_stationery"])

        assert "PASS alice is now department_stationery (department: Stationery)" in result.output
        assert "Ended 2 open session(s)" in result.output
        assert db.session.query(UserSession).filter_by(user_id=users["alice"].id).count() == 0

        event = db.session.query(SecurityEvent).filter_by(event_type="ROLE_CHANGED").one()
        assert event.action == "alice"

    def test_set_role_unknown_user(self, runner, users):
        result = runner.invoke(args=["users", "set-role", "nobody", "cashier"])
        assert "FAIL User nobody not found" in result.output

    def test_deactivate_blocks_login_and_ends_sessions(self, runner, users, client):
        session_service.create_session(users["alice"])

        result = runner.invoke(args=["users", "deactivate", "alice"])

        assert result.exit_code == 0
        assert "PASS alice deactivated" in result.output
        assert "Ended 1 open session(s)" in result.output
        assert db.session.get(User, users["alice"].id).is_active is False
        assert db.session.query(UserSession).filter_by(user_id=users["alice"].id).count() == 0
        assert db.session.query(SecurityEvent).filter_by(event_type="USER_DEACTIVATED", action="alice").count() == 1

        resp = client.post('/api/auth/login', json={'username': 'alice', 'password': 'correct'})
        assert resp.status_code == 401

    def test_deactivate_twice(self, runner, users):
        runner.invoke(args=["users", "deactivate", "alice"])
        result = runner.invoke(args=["users", "deactivate", "alice"])
        assert "SKIP alice is already inactive" in result.output

    def test_deactivate_unknown_user(self, runner, users):
        result = runner.invoke(args=["users", "deactivate", "nobody"])
        assert "FAIL User nobody not found" in result.output


class TestMaintenanceCommands:

    def test_cleanup_sessions(self, runner, users):
        expired, _ = session_service.create_session(users["alice"])
        session_service.create_session(users["bob"])
        expired.expires_at = utcnow() - timedelta(minutes=1)
        db.session.commit()

        result = runner.invoke(args=["maintenance", "cleanup-sessions"])

        assert "Deleted 1 expired or idle sessions." in result.output
        assert db.session.query(UserSession).count() == 1

    def test_cleanup_security_events(self, runner, users):
        db.session.add_all([
            SecurityEvent(event_type="LOGIN_FAILED", success=False, action="alice",
                          occurred_at=utcnow() - timedelta(days=120)),
            SecurityEvent(event_type="LOGIN_FAILED", success=False, action="alice",
                          occurred_at=utcnow()),
        ])
        db.session.commit()

        result = runner.invoke(args=["maintenance", "cleanup-security-events", "--retention-days", "90"])

        assert "Deleted 1 security events older than 90 days." in result.output
        assert db.session.query(SecurityEvent).count() == 1

    def test_security_events_newest_first(self, runner, users):
        db.session.add_all([
            SecurityEvent(event_type="LOGIN_FAILED", success=False, action="alice",
                          reason="Password mismatch", occurred_at=utcnow() - timedelta(minutes=5)),
            SecurityEvent(event_type="PERMISSION_DENIED", success=False, user_id=users["bob"].id,
                          action="void", department="Uniform", occurred_at=utcnow()),
        ])
        db.session.commit()

        result = runner.invoke(args=["maintenance", "security-events"])

        assert result.exit_code == 0
        lines = result.output.strip().splitlines()
        assert len(lines) == 2
        assert "PERMISSION_DENIED" in lines[0]
        assert "action=void" in lines[0]
        assert "dept=Uniform" in lines[0]
        assert "LOGIN_FAILED" in lines[1]
        assert "Password mismatch" in lines[1]

    def test_security_events_filtered_by_type(self, runner, users):
        db.session.add_all([
            SecurityEvent(event_type="LOGIN_FAILED", success=False, action="alice", occurred_at=utcnow()),
            SecurityEvent(event_type="LOGOUT", success=True, user_id=users["alice"].id, occurred_at=utcnow()),
        ])
        db.session.commit()

        result = runner.invoke(args=["maintenance", "security-events", "--type", "LOGOUT"])

        assert "LOGOUT" in result.output
        assert "LOGIN_FAILED" not in result.output

    def test_security_events_empty(self, runner):
        result = runner.invoke(args=["maintenance", "security-events"])
        assert "No security events found." in result.output
