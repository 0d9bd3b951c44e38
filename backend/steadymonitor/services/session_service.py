# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Server-Side Session Management

WHY: The browser holds only an opaque, unpredictable session id in an
HTTP-only cookie. Everything else lives in `user_sessions`.

IDENTITY SNAPSHOT: Sessions capture username, role, department and display
name at login. resolve() builds the request identity from that snapshot and
never re-reads `users`, so a role change is invisible to an open session
until it is revoked (auth_service.set_user_role does that) or it expires.

SECURITY FEATURES:
- Cryptographically secure random ids (32 bytes)
- Ids hashed with SHA-256 before storage (fast, one-way)
- Absolute timeout (SESSION_ABSOLUTE_TIMEOUT_HOURS, default 24h)
- Sliding idle timeout (SESSION_IDLE_TIMEOUT_MINUTES, default 2h)
- Deleted on logout; idle/expired records are removed on sight
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import UserSession, User
from steadymonitor.time_utils import utcnow


@dataclass(frozen=True)
class IdentityContext:
    """
    Caller identity for one request, built from the session record.

    Passed explicitly to services; the request pipeline keeps it on flask.g
    for the lifetime of the request only.
    """
    user_id: int
    username: str
    role: str
    department: str | None
    display_name: str
    session_id: int | None = None

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "role": self.role,
            "department": self.department,
            "display_name": self.display_name,
        }


def absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24))


def idle_timeout() -> timedelta:
    return timedelta(minutes=current_app.config.get("SESSION_IDLE_TIMEOUT_MINUTES", 120))


def generate_token() -> str:
    """
    Generate cryptographically secure random session id.

    Returns 64-character hex string (32 bytes of entropy).
    This is the plaintext value sent to the client (never stored).
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash session id for database storage using SHA-256.

    WHY SHA-256 not bcrypt: ids are already high-entropy (unlike passwords).
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    user: User,
    user_agent: str | None = None,
    ip_address: str | None = None,
    commit: bool = True,
) -> tuple[UserSession, str]:
    """
    Create new session for an authenticated user.

    Returns (session_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.
    """
    plaintext_token = generate_token()

    now = utcnow()
    session = UserSession(
        user_id=user.id,
        token_hash=hash_token(plaintext_token),
        username=user.username,
        role=user.role,
        department=user.department,
        display_name=user.display_name or user.username,
        created_at=now,
        last_used_at=now,
        expires_at=now + absolute_timeout(),
        user_agent=(user_agent or "")[:512] or None,
        ip_address=ip_address,
    )

    db.session.add(session)
    if commit:
        db.session.commit()

    return session, plaintext_token


def _find_session(token: str | None) -> UserSession | None:
    if not token:
        return None
    return db.session.query(UserSession).filter_by(token_hash=hash_token(token)).first()


def resolve(token: str | None) -> IdentityContext | None:
    """
    Resolve a session id to the caller's identity.

    Returns None if the id is missing, unknown, past its absolute expiry or
    idle for longer than the idle window. Expired/idle records are deleted.

    Updates last_used_at on success (sliding idle window).
    """
    session = _find_session(token)
    if not session:
        return None

    now = utcnow()

    if session.expires_at <= now or now - session.last_used_at > idle_timeout():
        db.session.delete(session)
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()

    return IdentityContext(
        user_id=session.user_id,
        username=session.username,
        role=session.role,
        department=session.department,
        display_name=session.display_name or session.username,
        session_id=session.id,
    )


def destroy_session(token: str | None) -> bool:
    """
    Delete the session behind a session id.

    Returns True if a record was removed, False if there was nothing to remove.
    Callers treat both as a successful logout.
    """
    session = _find_session(token)
    if not session:
        return False

    db.session.delete(session)
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: int, commit: bool = True) -> int:
    """
    Delete every session of a user.

    Returns count of sessions removed.

    WHY: Role/department changes and deactivation must not wait for the
    snapshot in existing sessions to expire.
    """
    count = db.session.query(UserSession).filter_by(user_id=user_id).delete()
    if commit:
        db.session.commit()
    return count


def cleanup_expired_sessions() -> int:
    """
    Delete sessions past their absolute expiry or idle window.

    Returns count of sessions deleted.
    """
    now = utcnow()
    deleted = db.session.query(UserSession).filter(
        db.or_(
            UserSession.expires_at <= now,
            UserSession.last_used_at < now - idle_timeout(),
        )
    ).delete(synchronize_session=False)

    db.session.commit()
    return deleted
