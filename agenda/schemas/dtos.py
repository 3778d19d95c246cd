"""
Data Transfer Objects (DTOs) and validation schemas.

Request DTOs are built from the JSON bodies the controllers receive
(``from_json`` accepts the camelCase keys the clients send) and expose
``validate()`` raising ``ValidationError``.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from agenda.core.exceptions import ValidationError
from agenda.domain.entities import (
    APPOINTMENT_STATUSES,
    LICENSE_TYPES,
    ROLES,
    ROLE_ASSISTANT,
)

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def validate_date(value: str, field_name: str = "date") -> None:
    try:
        datetime.strptime(value or "", "%Y-%m-%d")
    except ValueError:
        raise ValidationError(f"{field_name} must be a YYYY-MM-DD date") from None


def validate_time(value: str, field_name: str = "time") -> None:
    if not value or not TIME_PATTERN.match(value):
        raise ValidationError(f"{field_name} must be an HH:MM time")


@dataclass
class LoginRequest:
    """DTO for login requests."""

    email: str
    password: str

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "LoginRequest":
        return cls(email=(data.get("email") or "").strip(), password=data.get("password") or "")

    def validate(self) -> None:
        if not self.email or "@" not in self.email:
            raise ValidationError("Valid email is required")
        if not self.password:
            raise ValidationError("Password is required")


@dataclass
class RegisterRequest:
    """DTO for registration requests."""

    email: str
    password: str
    display_name: str
    role: str
    business_key: Optional[str] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "RegisterRequest":
        return cls(
            email=(data.get("email") or "").strip(),
            password=data.get("password") or "",
            display_name=(data.get("displayName") or data.get("display_name") or "").strip(),
            role=data.get("role") or "owner",
            business_key=data.get("businessKey") or data.get("business_key"),
        )

    def validate(self) -> None:
        """Validate the request data."""
        if not self.email or "@" not in self.email:
            raise ValidationError("Valid email is required")
        if not self.display_name or len(self.display_name) < 2:
            raise ValidationError("Name must be at least 2 characters")
        if self.role not in ROLES:
            raise ValidationError(f"Invalid role: {self.role}")
        if self.role == ROLE_ASSISTANT and not (self.business_key or "").strip():
            raise ValidationError("Business key is required for assistants")


@dataclass
class AppointmentCreateRequest:
    """DTO for appointment creation requests.

    ``end_time`` may be omitted; it is then derived from the service duration.
    """

    client_id: str
    service_id: str
    date: str
    start_time: str
    end_time: Optional[str] = None
    status: str = "pending"
    notes: Optional[str] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "AppointmentCreateRequest":
        return cls(
            client_id=data.get("clientId") or "",
            service_id=data.get("serviceId") or "",
            date=data.get("date") or "",
            start_time=data.get("startTime") or "",
            end_time=data.get("endTime") or None,
            status=data.get("status") or "pending",
            notes=data.get("notes"),
        )

    def validate(self) -> None:
        """Validate the request data."""
        if not self.client_id:
            raise ValidationError("Client is required")
        if not self.service_id:
            raise ValidationError("Service is required")
        validate_date(self.date)
        validate_time(self.start_time, "startTime")
        if self.end_time is not None:
            validate_time(self.end_time, "endTime")
        if self.status not in APPOINTMENT_STATUSES:
            raise ValidationError(f"Invalid appointment status: {self.status}")


@dataclass
class AppointmentUpdateRequest:
    """DTO for appointment edits (calendar drag/resize or the edit form)."""

    client_id: Optional[str] = None
    service_id: Optional[str] = None
    date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None

    _FIELDS = {
        "clientId": "client_id",
        "serviceId": "service_id",
        "date": "date",
        "startTime": "start_time",
        "endTime": "end_time",
        "status": "status",
        "notes": "notes",
    }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "AppointmentUpdateRequest":
        return cls(**{attr: data.get(key) for key, attr in cls._FIELDS.items()})

    def validate(self) -> None:
        if self.date is not None:
            validate_date(self.date)
        if self.start_time is not None:
            validate_time(self.start_time, "startTime")
        if self.end_time is not None:
            validate_time(self.end_time, "endTime")
        if self.status is not None and self.status not in APPOINTMENT_STATUSES:
            raise ValidationError(f"Invalid appointment status: {self.status}")

    def changes(self) -> Dict[str, Any]:
        """Only the fields that were actually sent."""
        return {
            attr: getattr(self, attr)
            for attr in self._FIELDS.values()
            if getattr(self, attr) is not None
        }


@dataclass
class LicenseAssignRequest:
    business_id: str
    license_type: str

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "LicenseAssignRequest":
        return cls(
            business_id=data.get("businessId") or "",
            license_type=data.get("type") or data.get("licenseType") or "",
        )

    def validate(self) -> None:
        if not self.business_id:
            raise ValidationError("businessId is required")
        if self.license_type not in LICENSE_TYPES:
            raise ValidationError(f"Invalid license type: {self.license_type}")


@dataclass
class BusinessCreateRequest:
    """DTO for the onboarding form."""

    name: str
    categories: List[str] = field(default_factory=list)
    operating_hours: Dict[str, Any] = field(default_factory=dict)
    email: str = ""
    phone: str = ""
    address: str = ""
    description: str = ""

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "BusinessCreateRequest":
        return cls(
            name=(data.get("name") or "").strip(),
            categories=list(data.get("categories") or []),
            operating_hours=dict(data.get("operatingHours") or {}),
            email=data.get("email") or "",
            phone=data.get("phone") or "",
            address=data.get("address") or "",
            description=data.get("description") or "",
        )

    def validate(self) -> None:
        if not self.name or len(self.name) < 2:
            raise ValidationError("Business name must be at least 2 characters")
        if not self.categories:
            raise ValidationError("At least one category is required")


@dataclass
class ServiceCreateRequest:
    name: str
    duration: int = 60
    category: str = ""
    resources: int = 1
    price: float = 0.0
    is_active: bool = True
    notes: Optional[str] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ServiceCreateRequest":
        try:
            return cls(
                name=(data.get("name") or "").strip(),
                duration=int(data.get("duration") or 60),
                category=data.get("category") or "",
                resources=int(data.get("resources") or 1),
                price=float(data.get("price") or 0),
                is_active=bool(data.get("isActive", True)),
                notes=data.get("notes"),
            )
        except (TypeError, ValueError):
            raise ValidationError("duration, resources and price must be numbers") from None

    def validate(self) -> None:
        if not self.name:
            raise ValidationError("Service name is required")
        if self.duration <= 0:
            raise ValidationError("Duration must be positive")
        if self.resources < 1:
            raise ValidationError("Resources must be at least 1")
        if self.price < 0:
            raise ValidationError("Price cannot be negative")
