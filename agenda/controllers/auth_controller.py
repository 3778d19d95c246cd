"""
Auth controller - login, registration and session-scoped user operations.

Each successful login/registration opens a server-side ``UserSession`` that
Flask-Login tracks through the session cookie.
"""

import logging

from flask import Blueprint, g
from flask_limiter.util import get_remote_address
from flask_login import login_user, logout_user

from agenda.core.api_utils import api_response, get_json_body
from agenda.core.auth_decorators import SessionPrincipal, get_services, session_required
from agenda.core.exceptions import ValidationError
from agenda.core.limiter_config import AUTH_RATE_LIMIT, limiter
from agenda.schemas.dtos import LoginRequest, RegisterRequest

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def session_payload(session) -> dict:
    """JSON view of a session: user, state, license status and gate flags."""
    user = session.current_user
    gate = session.gate()
    return {
        "user": user.to_dict() if user else None,
        "state": session.state.value,
        "currentBusiness": session.current_business,
        "businessAccess": {
            bid: access.to_dict() for bid, access in session.business_access.items()
        },
        "licenseStatus": session.license_status.to_dict() if session.license_status else None,
        "licenseMessage": gate.license_status_message(),
        "canWrite": gate.can_perform_write_action(),
    }


def _start(session) -> None:
    get_services().sessions.attach(session)
    login_user(SessionPrincipal(session))


@auth_bp.route("/login", methods=["POST"])
@limiter.limit(AUTH_RATE_LIMIT, key_func=get_remote_address)
def login():
    request_dto = LoginRequest.from_json(get_json_body())
    request_dto.validate()

    session = get_services().new_session()
    session.login(request_dto.email, request_dto.password)
    _start(session)
    return api_response(True, "Login successful", session_payload(session))


@auth_bp.route("/register", methods=["POST"])
@limiter.limit(AUTH_RATE_LIMIT, key_func=get_remote_address)
def register():
    request_dto = RegisterRequest.from_json(get_json_body())
    request_dto.validate()

    session = get_services().new_session()
    session.register(
        request_dto.email,
        request_dto.password,
        request_dto.display_name,
        request_dto.role,
        request_dto.business_key,
    )
    _start(session)
    return api_response(True, "Registration successful", session_payload(session), 201)


@auth_bp.route("/logout", methods=["POST"])
@session_required
def logout():
    get_services().sessions.detach(g.session)
    logout_user()
    return api_response(True, "Logged out")


@auth_bp.route("/me", methods=["GET"])
@session_required
def me():
    return api_response(True, "Session loaded", session_payload(g.session))


@auth_bp.route("/refresh", methods=["POST"])
@session_required
def refresh():
    g.session.refresh_license_status()
    return api_response(True, "License status refreshed", session_payload(g.session))


@auth_bp.route("/business-access", methods=["POST"])
@session_required
def add_business_access():
    key = get_json_body().get("businessKey")
    if not key:
        raise ValidationError("businessKey is required")
    if not g.session.add_business_access(key):
        return api_response(False, "Business key not found", status_code=404)
    return api_response(True, "Business linked", session_payload(g.session))


@auth_bp.route("/current-business", methods=["PUT"])
@session_required
def set_current_business():
    business_id = get_json_body().get("businessId")
    if not business_id:
        raise ValidationError("businessId is required")
    g.session.set_current_business(business_id)
    return api_response(True, "Current business updated", session_payload(g.session))


@auth_bp.route("/profile", methods=["PUT"])
@session_required
def update_profile():
    user = g.session.update_user_profile(get_json_body().get("displayName"))
    return api_response(True, "Profile updated", user.to_dict())


@auth_bp.route("/sections/<section>", methods=["GET"])
@session_required
def can_access_section(section):
    allowed = g.session.gate().can_access_section(section)
    return api_response(True, "Section access evaluated", {"section": section, "allowed": allowed})
