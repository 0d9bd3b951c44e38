# Overview: Request and permission decorators for API and page routes.

from functools import wraps
from flask import request, jsonify, g, redirect, current_app

from .permissions import LOGIN_PATH, validate_permission_code
from .services import session_service, permission_service
from .services.permission_service import PermissionDeniedError


def _wants_json() -> bool:
    return request.path.startswith("/api/")


def _session_token() -> str | None:
    return request.cookies.get(current_app.config.get("AUTH_COOKIE_NAME", "sid"))


def _is_authenticated() -> bool:
    return getattr(g, "identity", None) is not None


def load_identity():
    """
    Resolve the session cookie into g.identity (None when there is no valid
    session). Safe to call more than once per request.
    """
    if "identity" not in g:
        g.identity = session_service.resolve(_session_token())
    return g.identity


def require_auth(f):
    """
    Require a valid session and establish the request identity.

    Sets the following Flask g attributes:
    - g.identity: IdentityContext built from the session snapshot

    SECURITY: never continues anonymously.
    - /api/* requests without a valid session get 401 JSON
    - page requests are redirected to the login page
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if load_identity() is None:
            if _wants_json():
                return jsonify({"success": False, "message": "Authentication required"}), 401
            return redirect(LOGIN_PATH)

        return f(*args, **kwargs)

    return decorated_function


def _scope_department(kwargs) -> str | None:
    department = kwargs.get("department")
    if department:
        return department

    if request.method in ("POST", "PUT", "PATCH", "DELETE"):
        body = request.get_json(silent=True)
        if isinstance(body, dict):
            value = body.get("department")
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def require_permission(permission_code: str, scoped: bool = False):
    """
    Require a permission tag.

    With scoped=True the target department is read from the `department`
    URL argument, falling back to the JSON body's `department` field, and
    department-scoped tags are checked against it.

    Denials are logged to security_events with the department.
    Unknown tags fail at import time rather than denying every request.
    """
    if not validate_permission_code(permission_code):
        raise ValueError(f"Unknown permission tag: {permission_code}")

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                if _wants_json():
                    return jsonify({"success": False, "message": "Authentication required"}), 401
                return redirect(LOGIN_PATH)

            scope = _scope_department(kwargs) if scoped else None

            try:
                permission_service.authorize(
                    g.identity,
                    permission_code,
                    scope_department=scope,
                    resource=request.path,
                    ip_address=request.remote_addr,
                    user_agent=request.headers.get("User-Agent"),
                )
            except PermissionDeniedError as e:
                current_app.logger.warning(
                    "Permission denied: user=%s role=%s permission=%s department=%s path=%s",
                    g.identity.username, g.identity.role, permission_code, scope, request.path,
                )
                if not _wants_json():
                    return redirect(LOGIN_PATH)
                return jsonify({
                    "success": False,
                    "error": PermissionDeniedError.kind,
                    "message": str(e),
                    "required_permission": permission_code,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
