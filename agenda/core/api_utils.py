"""
Common API utilities for consistent response formatting across all controllers.
"""

import logging
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request

from agenda.core.exceptions import AgendaError

logger = logging.getLogger(__name__)


def api_response(
    success: bool, message: str, data: Optional[Any] = None, status_code: int = 200
) -> tuple:
    """
    Standardized API response format for all endpoints.

    Args:
        success: Whether the operation was successful
        message: Human-readable message about the operation
        data: Optional data payload
        status_code: HTTP status code

    Returns:
        Tuple of (json_response, status_code)
    """
    response = {"success": success, "message": message}

    if data is not None:
        response["data"] = data

    return jsonify(response), status_code


def get_json_body() -> Dict[str, Any]:
    """Request JSON as a dict; an empty dict when the body is missing or not an object."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def register_error_handlers(app: Flask) -> None:
    """Translate every AgendaError into the standard response envelope."""

    @app.errorhandler(AgendaError)
    def handle_agenda_error(error: AgendaError):
        if error.status_code >= 500:
            logger.error(
                "Request failed",
                extra={"context": {"error": error.error_code, "path": request.path}},
                exc_info=True,
            )
        payload = error.to_dict()
        payload.pop("message", None)
        return api_response(
            False, error.message, data=payload, status_code=error.status_code
        )
