"""
Business controller - business creation, key rotation and catalog endpoints.
"""

import logging

from flask import Blueprint, g

from agenda.core.api_utils import api_response, get_json_body
from agenda.core.auth_decorators import get_services, session_required
from agenda.core.exceptions import PermissionDeniedError
from agenda.schemas.dtos import BusinessCreateRequest, ServiceCreateRequest
from agenda.services.access_control import Capability, require

logger = logging.getLogger(__name__)

business_bp = Blueprint("businesses", __name__, url_prefix="/api/businesses")


def require_business_member(session, business_id: str):
    """Return the session user if it belongs to ``business_id``."""
    user = session.current_user
    if user.has_access_to(business_id) or business_id in session.business_access:
        return user
    raise PermissionDeniedError("No tiene acceso a este negocio")


@business_bp.route("", methods=["POST"])
@session_required
def create_business():
    request_dto = BusinessCreateRequest.from_json(get_json_body())
    business = get_services().business_service.create_business(
        g.session.current_user, request_dto
    )
    # reload access map, license status and the monitor subscription
    g.session.refresh_license_status()
    return api_response(True, "Business created", {"id": business.id, **business.to_dict()}, 201)


@business_bp.route("/<business_id>/key", methods=["POST"])
@session_required
def regenerate_key(business_id):
    key = get_services().business_service.regenerate_business_key(
        g.session.current_user, business_id
    )
    return api_response(True, "Business key regenerated", {"businessKey": key})


@business_bp.route("/<business_id>/services", methods=["GET"])
@session_required
def list_services(business_id):
    user = require_business_member(g.session, business_id)
    require(user.role, Capability.SERVICE_VIEW)
    services = get_services().business_repo.list_services(business_id)
    return api_response(True, f"{len(services)} services", [s.to_dict() for s in services.values()])


@business_bp.route("/<business_id>/services", methods=["POST"])
@session_required
def add_service(business_id):
    g.session.gate().require_write()
    request_dto = ServiceCreateRequest.from_json(get_json_body())
    service = get_services().business_service.add_service(
        g.session.current_user, business_id, request_dto
    )
    return api_response(True, "Service created", service.to_dict(), 201)


@business_bp.route("/<business_id>/clients", methods=["GET"])
@session_required
def list_clients(business_id):
    user = require_business_member(g.session, business_id)
    require(user.role, Capability.CLIENT_VIEW)
    clients = get_services().business_repo.list_clients(business_id)
    return api_response(True, f"{len(clients)} clients", [c.to_dict() for c in clients.values()])


@business_bp.route("/<business_id>/clients", methods=["POST"])
@session_required
def add_client(business_id):
    g.session.gate().require_write()
    data = get_json_body()
    client = get_services().business_service.add_client(
        g.session.current_user,
        business_id,
        data.get("name"),
        phone=data.get("phone", ""),
        email=data.get("email"),
    )
    return api_response(True, "Client created", client.to_dict(), 201)
