# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for password hashing,
owns the role -> permission matrix lookups and the role -> landing page map.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor BCRYPT_ROUNDS, default 12)
- bcrypt.checkpw compares in constant time
- Unknown usernames are checked against a dummy hash so both failure paths
  cost the same; the client sees one generic message for both
- Session ids are managed separately (see session_service.py)
"""

import re
from dataclasses import dataclass
from functools import lru_cache

import bcrypt
from flask import current_app, has_app_context

from ..extensions import db
from ..models import User, UserSession
from ..permissions import (
    ROLE_PERMISSIONS,
    DEFAULT_PERMISSIONS,
    ROLE_DEPARTMENTS,
    ROLE_REDIRECTS,
    LOGIN_PATH,
    KNOWN_ROLES,
    DEPARTMENTS,
)
from . import session_service
from steadymonitor.time_utils import utcnow


GENERIC_LOGIN_FAILURE = "Invalid username or password"


class InvalidCredentialsError(Exception):
    """
    Raised when a login fails.

    str(exc) is the client-facing message; `reason` is for server-side logs
    and security events only.
    """
    def __init__(self, reason: str):
        super().__init__(GENERIC_LOGIN_FAILURE)
        self.reason = reason


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


@dataclass
class LoginResult:
    user: User
    session: UserSession
    token: str
    redirect_path: str


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one letter
    - At least one digit

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def _bcrypt_rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("BCRYPT_ROUNDS", 12))
    return 12


def hash_password(password: str) -> str:
    """Hash password using bcrypt with a fresh salt."""
    salt = bcrypt.gensalt(rounds=_bcrypt_rounds())
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


@lru_cache(maxsize=4)
def _dummy_hash(rounds: int) -> bytes:
    return bcrypt.hashpw(b"steadymonitor-dummy-password", bcrypt.gensalt(rounds=rounds))


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    Returns True if password matches hash, False otherwise (including
    malformed or legacy non-bcrypt hashes, which must be reset by an admin).
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


# =============================================================================
# PERMISSION MATRIX ACCESS
# =============================================================================

def get_user_permissions(role: str | None) -> frozenset[str]:
    """
    Permission tags for a role.

    Total: unknown or missing roles get the empty (most restrictive) set.
    """
    return ROLE_PERMISSIONS.get(role or "", DEFAULT_PERMISSIONS)


def get_redirect_path(role: str | None) -> str:
    """Landing page for a role; unrecognized roles go back to login."""
    return ROLE_REDIRECTS.get(role or "", LOGIN_PATH)


def department_for_role(role: str, department: str | None = None) -> str | None:
    """Department implied by a department_* role, else the explicit one."""
    return ROLE_DEPARTMENTS.get(role, department)


# =============================================================================
# LOGIN / LOGOUT
# =============================================================================

def login(
    username: str,
    password: str,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> LoginResult:
    """
    Authenticate by exact (case-sensitive) username and password and open
    a session.

    Raises InvalidCredentialsError on any failure. The exception's reason
    tells unknown users, inactive users and wrong passwords apart for the
    logs; its message does not.
    """
    user = db.session.query(User).filter(User.username == username).first()

    if not user:
        # Burn the same bcrypt work as a real check
        bcrypt.checkpw(password.encode('utf-8'), _dummy_hash(_bcrypt_rounds()))
        raise InvalidCredentialsError("Unknown username")

    if not verify_password(password, user.password_hash):
        raise InvalidCredentialsError("Password mismatch")

    if not user.is_active:
        raise InvalidCredentialsError("Account deactivated")

    user.last_login_at = utcnow()
    session, token = session_service.create_session(
        user,
        user_agent=user_agent,
        ip_address=ip_address,
        commit=False,
    )
    db.session.commit()

    return LoginResult(
        user=user,
        session=session,
        token=token,
        redirect_path=get_redirect_path(user.role),
    )


def logout(token: str | None) -> bool:
    """
    Destroy the session behind a session id.

    Idempotent: always returns True, whether or not a session existed.
    """
    session_service.destroy_session(token)
    return True


# =============================================================================
# USER ADMINISTRATION
# =============================================================================

def _validate_role_and_department(role: str, department: str | None) -> str | None:
    if role not in KNOWN_ROLES:
        raise ValueError(f"Unknown role: {role}. Must be one of {list(KNOWN_ROLES)}")

    department = department_for_role(role, department)
    if department is not None and department not in DEPARTMENTS:
        raise ValueError(f"Unknown department: {department}. Must be one of {list(DEPARTMENTS)}")
    return department


def create_user(
    username: str,
    password: str,
    role: str,
    department: str | None = None,
    display_name: str | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Password must meet strength requirements or PasswordValidationError will be raised.
    Username must be unique and role known or ValueError will be raised.
    """
    department = _validate_role_and_department(role, department)

    existing = db.session.query(User).filter(User.username == username).first()
    if existing:
        raise ValueError("Username already exists")

    validate_password_strength(password)

    user = User(
        username=username,
        password_hash=hash_password(password),
        role=role,
        department=department,
        display_name=display_name,
    )

    db.session.add(user)
    db.session.commit()
    return user


def set_user_role(user_id: int, role: str, department: str | None = None) -> User:
    """
    Change a user's role/department and end all of their sessions.

    WHY: Sessions carry a snapshot of role and department. Revoking them here
    closes the staleness window instead of waiting for expiry.
    """
    department = _validate_role_and_department(role, department)

    user = db.session.get(User, user_id)
    if not user:
        raise ValueError("User not found")

    user.role = role
    user.department = department
    session_service.revoke_all_user_sessions(user.id, commit=False)

    db.session.commit()
    return user


def deactivate_user(user_id: int) -> User:
    """Block further logins and end all open sessions."""
    user = db.session.get(User, user_id)
    if not user:
        raise ValueError("User not found")

    user.is_active = False
    session_service.revoke_all_user_sessions(user.id, commit=False)

    db.session.commit()
    return user
