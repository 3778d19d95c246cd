"""
License controller - platform admin license management.
"""

import logging

from flask import Blueprint, g

from agenda.core.api_utils import api_response, get_json_body
from agenda.core.auth_decorators import (
    admin_or_service_required,
    admin_required,
    get_services,
    session_required,
)
from agenda.core.exceptions import NotFoundError, PermissionDeniedError
from agenda.core.limiter_config import SWEEP_RATE_LIMIT, limiter
from agenda.schemas.dtos import LicenseAssignRequest
from agenda.services.license_evaluator import evaluate_business

logger = logging.getLogger(__name__)

license_bp = Blueprint("licenses", __name__, url_prefix="/api/licenses")


@license_bp.route("", methods=["GET"])
@admin_required
def list_licenses():
    businesses = get_services().license_service.list_businesses_with_licenses()
    return api_response(True, f"{len(businesses)} businesses", businesses)


@license_bp.route("/<business_id>", methods=["GET"])
@admin_required
def get_license(business_id):
    services = get_services()
    business = services.business_repo.get(business_id)
    if business is None:
        raise NotFoundError(f"Business {business_id} not found")
    status = evaluate_business(business, business_id, services.clock())
    return api_response(True, "License loaded", status.to_dict())


@license_bp.route("/assign", methods=["POST"])
@admin_required
def assign_license():
    request_dto = LicenseAssignRequest.from_json(get_json_body())
    request_dto.validate()
    license = get_services().license_service.assign_license(
        request_dto.business_id, request_dto.license_type, g.session.current_user.uid
    )
    return api_response(True, "License assigned", license.to_dict())


@license_bp.route("/<business_id>/cancel", methods=["POST"])
@admin_required
def cancel_license(business_id):
    license = get_services().license_service.cancel_license(
        business_id, g.session.current_user.uid
    )
    return api_response(True, "License canceled", license.to_dict())


@license_bp.route("/sweep", methods=["POST"])
@limiter.limit(SWEEP_RATE_LIMIT)
@admin_or_service_required
def sweep_licenses():
    blocked = get_services().license_service.sweep_all_licenses()
    logger.info(
        "License sweep triggered",
        extra={"context": {"caller": g.caller_id, "blocked": len(blocked)}},
    )
    return api_response(True, f"{len(blocked)} businesses blocked", {"blocked": blocked})


@license_bp.route("/reactivation-request", methods=["POST"])
@session_required
def request_reactivation():
    """Owner asks the platform admin to renew a lapsed license."""
    user = g.session.current_user
    if not user.is_owner or not user.business_id:
        raise PermissionDeniedError("Solo el propietario puede solicitar la reactivación")
    services = get_services()
    business = services.business_repo.get(user.business_id)
    if business is None:
        raise NotFoundError(f"Business {user.business_id} not found")
    sent = services.notification_service.notify_admin_reactivation_request(
        business.id, business.name, user.email
    )
    return api_response(True, "Reactivation requested", {"sent": sent is not None})
