"""
Authentication helpers for this application.

DUAL AUTHENTICATION STRATEGY:

1. **Human users (browser/frontend):**
   - Authentication: Flask-Login session backed by a server-side ``UserSession``
   - Decorators: @session_required, @admin_required

2. **Automated systems (cron, scripts):**
   - Authentication: JWT Bearer token created with ``create_service_token``
   - Decorator: @admin_or_service_required (license sweep trigger)

Examples:
    @license_bp.route("/sweep", methods=["POST"])
    @admin_or_service_required
    def sweep():
        ...
"""

from functools import wraps
from typing import Any, Optional

from flask import current_app, g, jsonify, request
from flask_login import UserMixin, current_user

from agenda.core.security import get_service_caller
from agenda.domain.entities import ROLE_ADMIN


class SessionPrincipal(UserMixin):
    """Flask-Login user object wrapping the caller's ``UserSession``."""

    def __init__(self, session) -> None:
        self.session = session

    def get_id(self) -> str:
        return self.session.current_user.uid

    @property
    def is_authenticated(self) -> bool:
        return self.session.current_user is not None

    @property
    def user(self):
        return self.session.current_user


def get_services() -> Any:
    """Service container registered by ``create_app``."""
    return current_app.extensions["agenda"]


def get_current_session() -> Optional[Any]:
    """Return the caller's UserSession, preferring ``g.session`` if already resolved."""
    if getattr(g, "session", None) is not None:
        return g.session
    if current_user and getattr(current_user, "is_authenticated", False):
        return current_user.session
    return None


def _bearer_caller() -> Optional[dict]:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return get_service_caller(auth_header.split(" ", 1)[1])


def session_required(f):
    """Require a logged-in session; returns 401 JSON instead of redirecting."""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        session = get_current_session()
        if session is None or session.current_user is None:
            return jsonify({"error": "Authentication required. Please log in."}), 401
        g.session = session
        return f(*args, **kwargs)

    return decorated_function


def admin_required(f):
    """Require a logged-in platform admin."""

    @wraps(f)
    @session_required
    def decorated_function(*args, **kwargs):
        if not g.session.current_user.is_admin:
            return jsonify({"error": "Access denied. Administrator role required."}), 403
        return f(*args, **kwargs)

    return decorated_function


def admin_or_service_required(f):
    """Accept either an admin session or a JWT Bearer service token with the admin role."""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        session = get_current_session()
        if session is not None and session.current_user is not None:
            if not session.current_user.is_admin:
                return jsonify({"error": "Access denied. Administrator role required."}), 403
            g.session = session
            g.caller_id = session.current_user.uid
            return f(*args, **kwargs)

        caller = _bearer_caller()
        if caller is None:
            return jsonify({"error": "Missing or invalid Authorization header"}), 401
        if caller.get("role") != ROLE_ADMIN:
            return jsonify({"error": "Access denied. Administrator role required."}), 403
        g.caller_id = caller["uid"]
        return f(*args, **kwargs)

    return decorated_function
