"""
Custom exceptions for the application.
Following SOLID principles - centralized error handling.

Every error carries an HTTP ``status_code`` so controllers can translate it
with a single error handler.
"""

from typing import Optional


class AgendaError(Exception):
    """Base class for all domain errors raised by the agenda core."""

    status_code = 500
    error_code = "agenda_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.error_code, "message": self.message}


class NotFoundError(AgendaError):
    """Referenced business, user or record is absent."""

    status_code = 404
    error_code = "not_found"


class NoLicenseError(AgendaError):
    """Cancellation attempted on a business that never had a license."""

    status_code = 409
    error_code = "no_license"


class PermissionDeniedError(AgendaError, PermissionError):
    """Caller lacks the role or business association required for the action."""

    status_code = 403
    error_code = "permission_denied"


class ConflictError(AgendaError):
    """
    Appointment overlaps an existing booking for an exclusive-resource service.

    Carries the conflicting client so the operator can reschedule deliberately.
    """

    status_code = 409
    error_code = "conflict"

    def __init__(
        self,
        message: str,
        client_id: Optional[str] = None,
        client_name: Optional[str] = None,
        appointment_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.client_id = client_id
        self.client_name = client_name
        self.appointment_id = appointment_id

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["conflict"] = {
            "clientId": self.client_id,
            "clientName": self.client_name,
            "appointmentId": self.appointment_id,
        }
        return data


class ValidationError(AgendaError, ValueError):
    """Malformed input or exhausted business key generation."""

    status_code = 400
    error_code = "validation_error"


class UpstreamStoreError(AgendaError):
    """The persistent store operation itself failed."""

    status_code = 503
    error_code = "store_unavailable"


class AuthenticationError(AgendaError):
    """Identity provider rejected the credentials."""

    status_code = 401
    error_code = "authentication_failed"
