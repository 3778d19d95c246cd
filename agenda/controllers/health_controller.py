"""
Health controller - health check endpoints for monitoring.
"""

import logging

from flask import Blueprint, jsonify

from agenda.core.auth_decorators import get_services
from agenda.domain.entities import to_iso

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/health")


@health_bp.route("", methods=["GET"])
def health_check():
    """
    Report store reachability and the license sweep state.

    Returns 200 with ``status: healthy`` when the store answers a read, 503
    otherwise. No authentication required (monitoring endpoint).
    """
    services = get_services()
    scheduler = services.scheduler
    sweep = {
        "running": bool(scheduler and scheduler.running),
        "lastRunAt": to_iso(scheduler.last_run_at) if scheduler else None,
    }
    try:
        services.store.read("businesses")
    except Exception as e:
        logger.error(
            "Error in health check",
            extra={"context": {"endpoint": "/health", "error": str(e)}},
            exc_info=True,
        )
        return (
            jsonify(
                {
                    "status": "error",
                    "store": services.config.store_backend,
                    "sweep": sweep,
                    "message": f"Health check failed: {str(e)}",
                }
            ),
            503,
        )

    return (
        jsonify(
            {
                "status": "healthy",
                "store": services.config.store_backend,
                "sweep": sweep,
            }
        ),
        200,
    )
