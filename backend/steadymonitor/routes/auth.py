# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

SECURITY FEATURES:
- Session id travels only in an HTTP-only, SameSite cookie
- One generic message for unknown user and wrong password
- Login throttling to prevent brute-force attacks
- Failed logins, successful logins and logouts recorded in security_events
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import login_throttle_service
from ..services import permission_service
from ..services import session_service
from ..services.auth_service import InvalidCredentialsError, GENERIC_LOGIN_FAILURE
from ..decorators import require_auth, load_identity
from ..permissions import get_permission_definition


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _set_session_cookie(response, token: str) -> None:
    config = current_app.config
    response.set_cookie(
        config.get("AUTH_COOKIE_NAME", "sid"),
        token,
        max_age=int(session_service.absolute_timeout().total_seconds()),
        httponly=True,
        secure=bool(config.get("AUTH_COOKIE_SECURE", False)),
        samesite=config.get("AUTH_COOKIE_SAMESITE", "Lax"),
        path="/",
    )


def _clear_session_cookie(response) -> None:
    config = current_app.config
    response.delete_cookie(
        config.get("AUTH_COOKIE_NAME", "sid"),
        path="/",
        httponly=True,
        secure=bool(config.get("AUTH_COOKIE_SECURE", False)),
        samesite=config.get("AUTH_COOKIE_SAMESITE", "Lax"),
    )


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and open a session.

    Returns the user and the landing page for their role; the session id
    is set as the `sid` cookie, never returned in the body.

    SECURITY:
    - Checks for lockout before attempting authentication
    - Records failed attempts (with the real reason) for throttling and audit
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        password = data.get("password")

        if not isinstance(username, str) or not isinstance(password, str) or not username or not password:
            return jsonify({"success": False, "message": "Username and password are required"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        is_locked, seconds_remaining = login_throttle_service.is_account_locked(username)
        if is_locked:
            return jsonify({
                "success": False,
                "message": "Too many failed login attempts. Try again later.",
                "retryAfterSeconds": seconds_remaining,
            }), 429

        try:
            result = auth_service.login(username, password, user_agent=user_agent, ip_address=ip_address)
        except InvalidCredentialsError as exc:
            failed_count = login_throttle_service.record_failed_attempt(
                username,
                ip_address=ip_address,
                user_agent=user_agent,
                reason=exc.reason,
            )
            current_app.logger.warning(
                "Failed login for %r from %s: %s (%d recent failures)",
                username, ip_address, exc.reason, failed_count,
            )
            if failed_count >= current_app.config.get("LOGIN_MAX_FAILED_ATTEMPTS", 10):
                return jsonify({
                    "success": False,
                    "message": "Too many failed login attempts. Try again later.",
                }), 429
            return jsonify({"success": False, "message": GENERIC_LOGIN_FAILURE}), 401

        login_throttle_service.record_successful_login(
            user_id=result.user.id,
            username=username,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        current_app.logger.info("User %s logged in (role=%s)", result.user.username, result.user.role)

        response = jsonify({
            "success": True,
            "message": "Login successful",
            "user": result.user.to_dict(),
            "redirectTo": result.redirect_path,
        })
        _set_session_cookie(response, result.token)
        return response, 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """
    End the caller's session.

    Idempotent: succeeds whether or not the cookie still maps to a session,
    and always clears the cookie.
    """
    try:
        identity = load_identity()
        token = request.cookies.get(current_app.config.get("AUTH_COOKIE_NAME", "sid"))
        auth_service.logout(token)

        if identity is not None:
            permission_service.log_security_event(
                user_id=identity.user_id,
                event_type="LOGOUT",
                success=True,
                resource=request.path,
                action=identity.username,
                ip_address=request.remote_addr,
                user_agent=request.headers.get("User-Agent"),
                department=identity.department,
            )
            current_app.logger.info("User %s logged out", identity.username)

        response = jsonify({"success": True, "message": "Logged out"})
        _clear_session_cookie(response)
        return response, 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@auth_bp.get("/check")
@auth_bp.get("/verify")
def check_route():
    """
    Report whether the caller has a valid session.

    Never fails: a broken or missing session reads as not authenticated.
    """
    try:
        identity = load_identity()
    except Exception:
        current_app.logger.exception("Session check failed")
        identity = None

    if identity is None:
        return jsonify({"success": True, "isAuthenticated": False, "user": None}), 200

    return jsonify({
        "success": True,
        "isAuthenticated": True,
        "user": identity.to_dict(),
        "redirectTo": auth_service.get_redirect_path(identity.role),
    }), 200


@auth_bp.get("/permissions")
@require_auth
def permissions_route():
    """Permission tags of the caller's role (used by the UI to show/hide screens)."""
    try:
        identity = g.identity
        codes = sorted(auth_service.get_user_permissions(identity.role))
        return jsonify({
            "success": True,
            "role": identity.role,
            "department": identity.department,
            "permissions": codes,
            "definitions": [get_permission_definition(code) for code in codes],
        }), 200

    except Exception:
        current_app.logger.exception("Failed to load permissions")
        return jsonify({"success": False, "message": "Internal server error"}), 500
