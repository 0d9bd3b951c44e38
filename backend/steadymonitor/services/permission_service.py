# Overview: Service-layer operations for permission; encapsulates business logic and database work.

"""
Permission Checking and Security Event Logging with Department Scoping

WHY: Enforce role-based access control and create audit trail.
Every denial is logged for security monitoring.

DEPARTMENT SCOPING: Tags in DEPARTMENT_SCOPED_PERMISSIONS ("pos", "refunds", "void")
are also checked against the department the request targets. A non-admin
caller may only act on their own department.

DESIGN PRINCIPLES:
- Fail closed: Deny by default, require explicit permission grant
- Log denials only: Permission grants are not logged
- No caching: the matrix is consulted on every request
"""

from datetime import timedelta

from ..extensions import db
from ..models import SecurityEvent
from ..permissions import DEPARTMENT_SCOPED_PERMISSIONS, ROLE_ADMIN
from . import auth_service
from steadymonitor.time_utils import utcnow


class PermissionDeniedError(Exception):
    """Raised when the caller lacks a permission or targets another department."""
    kind = "Forbidden"
    status_code = 403

    def __init__(self, message: str, permission: str | None = None, department: str | None = None):
        super().__init__(message)
        self.permission = permission
        self.department = department


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    department: str | None = None,
) -> SecurityEvent:
    """
    Log security event to audit trail.

    WHY: Immutable audit log for compliance and security monitoring.

    event_type examples:
    - LOGIN_FAILED
    - LOGIN_SUCCESS
    - LOGOUT
    - PERMISSION_DENIED
    - ROLE_CHANGED
    - USER_DEACTIVATED
    """
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        department=department,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event


def has_permission(identity, permission: str, scope_department: str | None = None) -> bool:
    """
    Pure permission check, no logging.

    Returns False for a missing tag, or for a department-scoped tag when a
    scope is given, the caller is not admin, and the departments differ.
    """
    if identity is None:
        return False

    if permission not in auth_service.get_user_permissions(identity.role):
        return False

    if (
        permission in DEPARTMENT_SCOPED_PERMISSIONS
        and scope_department is not None
        and identity.role != ROLE_ADMIN
        and identity.department != scope_department
    ):
        return False

    return True


def authorize(
    identity,
    permission: str,
    scope_department: str | None = None,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """
    Require the caller to hold a permission, raise PermissionDeniedError if not.

    Denials are written to security_events before raising.

    Usage:
        authorize(g.identity, "pos", scope_department="Uniform", resource=request.path)
    """
    if identity is None:
        raise PermissionDeniedError("Authentication required", permission, scope_department)

    if has_permission(identity, permission, scope_department):
        return

    if permission not in auth_service.get_user_permissions(identity.role):
        reason = f"Missing permission: {permission}"
        message = f"Permission denied: {permission}"
    else:
        reason = f"Department mismatch: {identity.department} cannot access {scope_department}"
        message = f"Access denied for department {scope_department}"

    # Log only denials (policy: no granted logs)
    log_security_event(
        user_id=identity.user_id,
        event_type="PERMISSION_DENIED",
        success=False,
        resource=resource,
        action=permission,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        department=scope_department,
    )
    raise PermissionDeniedError(message, permission, scope_department)


def get_recent_security_events(limit: int = 100, event_type: str | None = None) -> list[SecurityEvent]:
    """Most recent security events first, optionally filtered by type."""
    query = db.session.query(SecurityEvent)
    if event_type:
        query = query.filter(SecurityEvent.event_type == event_type)
    return query.order_by(SecurityEvent.occurred_at.desc(), SecurityEvent.id.desc()).limit(limit).all()


def cleanup_security_events(older_than_days: int = 90) -> int:
    """Delete security events older than the retention window. Returns count deleted."""
    cutoff = utcnow() - timedelta(days=older_than_days)
    deleted = db.session.query(SecurityEvent).filter(
        SecurityEvent.occurred_at < cutoff
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
