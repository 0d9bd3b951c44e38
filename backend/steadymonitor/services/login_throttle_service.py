"""
Login Throttling Service

WHY: Prevent brute-force password attacks by limiting failed login attempts.
After too many failures, the username is temporarily locked.

SECURITY FEATURES:
- Tracks failed attempts per username
- Lockout after LOGIN_MAX_FAILED_ATTEMPTS failures within the window
- Lockout lasts LOGIN_LOCKOUT_MINUTES from the most recent failure
- Uses security_events table for tracking (no extra table)
"""

from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SecurityEvent, User
from steadymonitor.time_utils import utcnow


LOGIN_RESOURCE = "/api/auth/login"


def _max_failed_attempts() -> int:
    return int(current_app.config.get("LOGIN_MAX_FAILED_ATTEMPTS", 10))


def _lockout_window() -> timedelta:
    return timedelta(minutes=current_app.config.get("LOGIN_LOCKOUT_MINUTES", 15))


def get_recent_failed_attempts(username: str) -> int:
    """
    Count recent failed login attempts for a username.

    The username is stored in the 'action' field of LOGIN_FAILED events.
    """
    cutoff = utcnow() - _lockout_window()

    return db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == "LOGIN_FAILED",
        SecurityEvent.action == username,
        SecurityEvent.occurred_at >= cutoff,
    ).count()


def is_account_locked(username: str) -> tuple[bool, int | None]:
    """
    Check if a username is currently locked due to too many failed attempts.

    Returns:
    - (True, seconds_remaining) if locked
    - (False, None) if not locked
    """
    if get_recent_failed_attempts(username) < _max_failed_attempts():
        return False, None

    most_recent = db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == "LOGIN_FAILED",
        SecurityEvent.action == username,
    ).order_by(SecurityEvent.occurred_at.desc()).first()

    if most_recent:
        lockout_end = most_recent.occurred_at + _lockout_window()
        now = utcnow()
        if now < lockout_end:
            return True, int((lockout_end - now).total_seconds())

    return False, None


def record_failed_attempt(
    username: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
    reason: str = "Invalid credentials",
) -> int:
    """
    Record a failed login attempt.

    `reason` is the server-side reason (unknown user, wrong password,
    deactivated) and never leaves the server.

    Returns the total number of recent failed attempts.
    """
    user = db.session.query(User).filter(User.username == username).first()

    event = SecurityEvent(
        user_id=user.id if user else None,
        event_type="LOGIN_FAILED",
        resource=LOGIN_RESOURCE,
        action=username,
        success=False,
        reason=reason,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return get_recent_failed_attempts(username)


def record_successful_login(
    user_id: int,
    username: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """
    Record a successful login.

    Old failures are kept for audit; they age out of the window on their own.
    """
    event = SecurityEvent(
        user_id=user_id,
        event_type="LOGIN_SUCCESS",
        resource=LOGIN_RESOURCE,
        action=username,
        success=True,
        reason=None,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()


def get_lockout_status(username: str) -> dict:
    """Detailed lockout status for a username (used by the users CLI)."""
    is_locked, seconds_remaining = is_account_locked(username)

    return {
        "locked": is_locked,
        "failed_attempts": get_recent_failed_attempts(username),
        "max_attempts": _max_failed_attempts(),
        "seconds_until_unlock": seconds_remaining,
        "lockout_minutes": int(_lockout_window().total_seconds() / 60),
    }
