# Overview: Page entry points; serve minimal shells for the browser screens behind the auth guard.

"""
Page routes.

The screens themselves are static front-end code and out of scope here;
these routes exist so that page navigation goes through the same session
guard as the API (missing session -> redirect to /login, wrong role ->
redirect to /login).
"""

from flask import Blueprint, redirect

from ..decorators import require_auth, require_permission, load_identity
from ..permissions import LOGIN_PATH
from ..services import auth_service


pages_bp = Blueprint("pages", __name__)


def _shell(title: str) -> str:
    return (
        "<!doctype html>"
        f"<html><head><meta charset=\"utf-8\"><title>SteadyMonitor - {title}</title></head>"
        f"<body data-page=\"{title.lower()}\"><div id=\"app\"></div></body></html>"
    )


@pages_bp.get("/")
def index_page():
    """Send the caller to their landing page (or the login page)."""
    identity = load_identity()
    if identity is None:
        return redirect(LOGIN_PATH)
    return redirect(auth_service.get_redirect_path(identity.role))


@pages_bp.get("/login")
def login_page():
    identity = load_identity()
    if identity is not None:
        target = auth_service.get_redirect_path(identity.role)
        if target != LOGIN_PATH:
            return redirect(target)
    return _shell("Login")


@pages_bp.get("/admin")
@require_auth
@require_permission("admin")
def admin_page():
    return _shell("Admin")


@pages_bp.get("/department")
@require_auth
@require_permission("department")
def department_page():
    return _shell("Department")


@pages_bp.get("/pos")
@require_auth
@require_permission("pos")
def pos_page():
    return _shell("POS")
