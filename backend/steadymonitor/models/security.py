from __future__ import annotations

from ..extensions import db
from steadymonitor.time_utils import to_utc_z

class SecurityEvent(db.Model):
    """
    Security event audit log.

    WHY: Track failed logins, permission denials and logouts. The login
    throttle counts LOGIN_FAILED rows from here.

    IMMUTABLE: Never update. Append-only for audit integrity (old rows are
    pruned by the maintenance CLI).
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_type_action", "event_type", "action"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)  # Nullable for anonymous

    # Event classification
    event_type = db.Column(db.String(64), nullable=False, index=True)  # LOGIN_FAILED, LOGIN_SUCCESS, PERMISSION_DENIED, LOGOUT
    resource = db.Column(db.String(128), nullable=True)  # e.g., "/api/pos/checkout"
    action = db.Column(db.String(128), nullable=True)    # e.g., username for login events, tag for denials
    department = db.Column(db.String(32), nullable=True)

    # Event details
    success = db.Column(db.Boolean, nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)

    # Client context
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "event_type": self.event_type,
            "resource": self.resource,
            "action": self.action,
            "department": self.department,
            "success": self.success,
            "reason": self.reason,
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }
