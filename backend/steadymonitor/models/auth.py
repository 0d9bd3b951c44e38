from __future__ import annotations

from ..extensions import db
from steadymonitor.time_utils import to_utc_z


class User(db.Model):
    """
    Staff accounts for authentication and attribution.

    WHY: Every sale, payment and refund must be attributable. No shared logins.

    ROLE/DEPARTMENT: role is one of the keys of the permission matrix
    (admin, manager, cashier, department_uniform, department_stationery).
    department is implied by department_* roles and may be set explicitly
    for manager/cashier accounts tied to one department.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    # Case-sensitive, exact match on login
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(32), nullable=False, index=True)
    department = db.Column(db.String(32), nullable=True, index=True)
    display_name = db.Column(db.String(128), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        """Public profile; never includes the credential."""
        return {
            "user_id": self.id,
            "username": self.username,
            "role": self.role,
            "department": self.department,
            "display_name": self.display_name or self.username,
        }


class UserSession(db.Model):
    """
    Server-side session record behind the `sid` cookie.

    WHY: The browser only holds an opaque random id. Everything the request
    pipeline needs about the caller (role, department, display name) is copied
    here at login so requests resolve without touching `users`.

    STALENESS: role/department changes do not reach existing sessions on their
    own; auth_service.set_user_role() revokes them so the next request has to
    log in again.

    SECURITY NOTES:
    - Only the SHA-256 of the session id is stored
    - Absolute lifetime via expires_at
    - Sliding idle window via last_used_at
    """
    __tablename__ = "user_sessions"
    __table_args__ = (
        db.Index("ix_user_sessions_user_expires", "user_id", "expires_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Token hash (never store plaintext session ids!)
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    # Identity snapshot taken at login
    username = db.Column(db.String(64), nullable=False)
    role = db.Column(db.String(32), nullable=False)
    department = db.Column(db.String(32), nullable=True)
    display_name = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    # Client information (for security monitoring)
    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)  # IPv6 max length

    user = db.relationship("User", backref=db.backref("sessions", lazy=True, passive_deletes=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
        }
