"""
Notification controller - the caller's inbox.
"""

from flask import Blueprint, g

from agenda.core.api_utils import api_response
from agenda.core.auth_decorators import get_services, session_required
from agenda.core.exceptions import NotFoundError
from agenda.services.access_control import Capability, require

notification_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


def _require_own(notification_id: str) -> None:
    owned = get_services().notification_service.get_user_notifications(
        g.session.current_user.uid
    )
    if not any(n.id == notification_id for n in owned):
        raise NotFoundError(f"Notification {notification_id} not found")


@notification_bp.route("", methods=["GET"])
@session_required
def list_notifications():
    notifications = get_services().notification_service.get_user_notifications(
        g.session.current_user.uid
    )
    unread = sum(1 for n in notifications if not n.is_read)
    return api_response(
        True,
        f"{unread} unread",
        {"notifications": [n.to_dict() for n in notifications], "unread": unread},
    )


@notification_bp.route("/<notification_id>/read", methods=["POST"])
@session_required
def mark_as_read(notification_id):
    _require_own(notification_id)
    get_services().notification_service.mark_as_read(notification_id)
    return api_response(True, "Notification marked as read")


@notification_bp.route("/read-all", methods=["POST"])
@session_required
def mark_all_as_read():
    count = get_services().notification_service.mark_all_as_read(g.session.current_user.uid)
    return api_response(True, f"{count} notifications marked as read", {"count": count})


@notification_bp.route("/<notification_id>", methods=["DELETE"])
@session_required
def delete_notification(notification_id):
    require(g.session.current_user.role, Capability.NOTIFICATION_DELETE)
    _require_own(notification_id)
    get_services().notification_service.delete_notification(notification_id)
    return api_response(True, "Notification deleted")
