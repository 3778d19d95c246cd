"""
Digital record controller - per-client treatment records.
"""

import logging

from flask import Blueprint, g

from agenda.core.api_utils import api_response, get_json_body
from agenda.core.auth_decorators import session_required
from agenda.services.access_control import Capability, require

logger = logging.getLogger(__name__)

record_bp = Blueprint("records", __name__, url_prefix="/api/businesses/<business_id>")


@record_bp.route("/clients/<client_id>/records", methods=["GET"])
@session_required
def list_records(business_id, client_id):
    require(g.session.current_user.role, Capability.RECORD_VIEW)
    records = g.session.get_client_records(business_id, client_id)
    return api_response(True, f"{len(records)} records", [r.to_dict() for r in records])


@record_bp.route("/clients/<client_id>/records", methods=["POST"])
@session_required
def create_record(business_id, client_id):
    require(g.session.current_user.role, Capability.RECORD_WRITE)
    data = get_json_body()
    follow_up_date = data.pop("followUpDate", None)
    record = g.session.create_client_record(
        business_id, client_id, data, follow_up_date=follow_up_date
    )
    return api_response(True, "Record created", record.to_dict(), 201)


@record_bp.route("/records/<record_id>", methods=["PUT", "PATCH"])
@session_required
def update_record(business_id, record_id):
    require(g.session.current_user.role, Capability.RECORD_WRITE)
    record = g.session.update_client_record(business_id, record_id, get_json_body())
    return api_response(True, "Record updated", record.to_dict())


@record_bp.route("/records/<record_id>", methods=["DELETE"])
@session_required
def delete_record(business_id, record_id):
    require(g.session.current_user.role, Capability.RECORD_WRITE)
    g.session.delete_client_record(business_id, record_id)
    return api_response(True, "Record deleted")
