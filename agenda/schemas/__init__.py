"""
Schemas package - Data Transfer Objects and validation.

This package contains the request DTOs that define the API contracts.
"""

from .dtos import (
    AppointmentCreateRequest,
    AppointmentUpdateRequest,
    BusinessCreateRequest,
    LicenseAssignRequest,
    LoginRequest,
    RegisterRequest,
    ServiceCreateRequest,
)

__all__ = [
    "AppointmentCreateRequest",
    "AppointmentUpdateRequest",
    "BusinessCreateRequest",
    "LicenseAssignRequest",
    "LoginRequest",
    "RegisterRequest",
    "ServiceCreateRequest",
]
