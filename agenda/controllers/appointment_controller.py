"""
Appointment controller - calendar endpoints scoped to one business.
"""

import logging

from flask import Blueprint, g, request

from agenda.controllers.business_controller import require_business_member
from agenda.core.api_utils import api_response, get_json_body
from agenda.core.auth_decorators import get_services, session_required
from agenda.schemas.dtos import (
    AppointmentCreateRequest,
    AppointmentUpdateRequest,
    validate_date,
)
from agenda.services.access_control import Capability, require

logger = logging.getLogger(__name__)

appointment_bp = Blueprint(
    "appointments", __name__, url_prefix="/api/businesses/<business_id>/appointments"
)


@appointment_bp.route("", methods=["GET"])
@session_required
def list_appointments(business_id):
    user = require_business_member(g.session, business_id)
    require(user.role, Capability.APPOINTMENT_VIEW)

    date = request.args.get("date")
    if date:
        validate_date(date)
    appointments = get_services().appointment_service.list_appointments(business_id, date)
    return api_response(
        True, f"{len(appointments)} appointments", [apt.to_dict() for apt in appointments]
    )


@appointment_bp.route("", methods=["POST"])
@session_required
def create_appointment(business_id):
    request_dto = AppointmentCreateRequest.from_json(get_json_body())
    appointment = get_services().appointment_service.create_appointment(
        g.session.current_user, business_id, request_dto
    )
    return api_response(True, "Appointment created", appointment.to_dict(), 201)


@appointment_bp.route("/<appointment_id>", methods=["PUT", "PATCH"])
@session_required
def update_appointment(business_id, appointment_id):
    changes = AppointmentUpdateRequest.from_json(get_json_body())
    appointment = get_services().appointment_service.update_appointment(
        g.session.current_user, business_id, appointment_id, changes
    )
    return api_response(True, "Appointment updated", appointment.to_dict())


@appointment_bp.route("/<appointment_id>", methods=["DELETE"])
@session_required
def delete_appointment(business_id, appointment_id):
    get_services().appointment_service.delete_appointment(
        g.session.current_user, business_id, appointment_id
    )
    return api_response(True, "Appointment deleted")
