"""
Domain entities - Pure business logic, no framework dependencies.

Entities are stored in the document tree with camelCase keys (``businessId``,
``renewalCount``...). ``from_dict``/``to_dict`` are the only places that know
about that shape.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

ROLE_OWNER = "owner"
ROLE_ASSISTANT = "assistant"
ROLE_ADMIN = "admin"
ROLES = (ROLE_OWNER, ROLE_ASSISTANT, ROLE_ADMIN)

ACCESS_ROLES = ("admin", "editor", "viewer")

LICENSE_15_DAYS = "15days"
LICENSE_1_MONTH = "1month"
LICENSE_3_MONTHS = "3months"
LICENSE_6_MONTHS = "6months"
LICENSE_1_YEAR = "1year"
LICENSE_TYPES = (
    LICENSE_15_DAYS,
    LICENSE_1_MONTH,
    LICENSE_3_MONTHS,
    LICENSE_6_MONTHS,
    LICENSE_1_YEAR,
)

APPOINTMENT_STATUSES = ("pending", "confirmed", "completed", "cancelled", "no-show")


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize an aware datetime as ISO-8601 UTC (naive values are taken as UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_iso(value: Any) -> Optional[datetime]:
    """Parse ISO-8601 strings, including the trailing ``Z`` form browsers emit."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


@dataclass
class BusinessAccess:
    """An assistant's (or owner's) link to one business."""

    business_id: str
    business_name: str = ""
    business_key: str = ""
    role: str = "viewer"
    added_at: Optional[str] = None

    def __post_init__(self):
        if self.role not in ACCESS_ROLES:
            raise ValueError(f"Invalid business access role: {self.role}")

    @classmethod
    def from_dict(cls, business_id: str, data: Dict[str, Any]) -> "BusinessAccess":
        return cls(
            business_id=data.get("businessId") or business_id,
            business_name=data.get("businessName", ""),
            business_key=data.get("businessKey", ""),
            role=data.get("role", "viewer"),
            added_at=data.get("addedAt"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "businessId": self.business_id,
                "businessName": self.business_name,
                "businessKey": self.business_key,
                "role": self.role,
                "addedAt": self.added_at,
            }
        )


@dataclass
class User:
    """Domain entity representing a platform user.

    Exactly one shape applies: an owner with ``business_id`` (or none yet,
    during onboarding), an assistant with zero or more ``business_access``
    entries, or an admin with neither.
    """

    uid: str = ""
    email: str = ""
    display_name: str = ""
    role: str = ROLE_OWNER
    business_id: Optional[str] = None
    business_access: Dict[str, BusinessAccess] = field(default_factory=dict)
    current_business: Optional[str] = None
    is_blocked: bool = False
    blocked_reason: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def __post_init__(self):
        """Validate domain rules."""
        if not self.uid:
            raise ValueError("User uid is required")
        if self.role not in ROLES:
            raise ValueError(f"Invalid role: {self.role}")
        if self.email and "@" not in self.email:
            raise ValueError("Invalid email format")

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_owner(self) -> bool:
        return self.role == ROLE_OWNER

    @property
    def is_assistant(self) -> bool:
        return self.role == ROLE_ASSISTANT

    def has_access_to(self, business_id: str) -> bool:
        return self.business_id == business_id or business_id in self.business_access

    @classmethod
    def from_dict(cls, uid: str, data: Dict[str, Any]) -> "User":
        access = {
            bid: BusinessAccess.from_dict(bid, entry or {})
            for bid, entry in (data.get("businessAccess") or {}).items()
        }
        return cls(
            uid=data.get("uid") or uid,
            email=data.get("email", "") or "",
            display_name=data.get("displayName", "") or "",
            role=data.get("role", ROLE_OWNER),
            business_id=data.get("businessId"),
            business_access=access,
            current_business=data.get("currentBusiness"),
            is_blocked=bool(data.get("isBlocked", False)),
            blocked_reason=data.get("blockedReason"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uid": self.uid,
            "email": self.email,
            "displayName": self.display_name,
            "role": self.role,
            "businessId": self.business_id,
            "businessAccess": {
                bid: entry.to_dict() for bid, entry in self.business_access.items()
            },
            "currentBusiness": self.current_business,
            "isBlocked": self.is_blocked,
            "blockedReason": self.blocked_reason,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class BusinessLicense:
    """Time-bound entitlement of a business.

    ``is_active=False`` means expired whatever ``end_date`` says.
    """

    type: str
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    assigned_by: str = ""
    assigned_at: Optional[datetime] = None
    renewal_count: int = 0
    canceled_at: Optional[datetime] = None
    canceled_by: Optional[str] = None

    def __post_init__(self):
        if self.type not in LICENSE_TYPES:
            raise ValueError(f"Invalid license type: {self.type}")
        if self.renewal_count < 0:
            raise ValueError("Renewal count cannot be negative")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BusinessLicense":
        return cls(
            type=data["type"],
            start_date=parse_iso(data["startDate"]),
            end_date=parse_iso(data["endDate"]),
            is_active=bool(data.get("isActive", False)),
            assigned_by=data.get("assignedBy", ""),
            assigned_at=parse_iso(data.get("assignedAt")),
            renewal_count=int(data.get("renewalCount") or 0),
            canceled_at=parse_iso(data.get("canceledAt")),
            canceled_by=data.get("canceledBy"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "type": self.type,
                "startDate": to_iso(self.start_date),
                "endDate": to_iso(self.end_date),
                "isActive": self.is_active,
                "assignedBy": self.assigned_by,
                "assignedAt": to_iso(self.assigned_at),
                "renewalCount": self.renewal_count,
                "canceledAt": to_iso(self.canceled_at),
                "canceledBy": self.canceled_by,
            }
        )


@dataclass
class Business:
    """A tenant. Owns services, clients, appointments and records as child collections."""

    id: str
    name: str = ""
    owner_id: str = ""
    business_key: str = ""
    categories: List[str] = field(default_factory=list)
    operating_hours: Dict[str, Any] = field(default_factory=dict)
    license: Optional[BusinessLicense] = None
    is_active: Optional[bool] = None
    email: str = ""
    phone: str = ""
    address: str = ""
    description: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, business_id: str, data: Dict[str, Any]) -> "Business":
        raw_license = data.get("license")
        return cls(
            id=business_id,
            name=data.get("name", ""),
            owner_id=data.get("ownerId", ""),
            business_key=data.get("businessKey", ""),
            categories=list(data.get("categories") or []),
            operating_hours=dict(data.get("operatingHours") or {}),
            license=BusinessLicense.from_dict(raw_license) if raw_license else None,
            is_active=data.get("isActive"),
            email=data.get("email", "") or "",
            phone=data.get("phone", "") or "",
            address=data.get("address", "") or "",
            description=data.get("description", "") or "",
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "name": self.name,
                "ownerId": self.owner_id,
                "businessKey": self.business_key,
                "categories": list(self.categories),
                "operatingHours": dict(self.operating_hours),
                "license": self.license.to_dict() if self.license else None,
                "isActive": self.is_active,
                "email": self.email,
                "phone": self.phone,
                "address": self.address,
                "description": self.description,
                "createdAt": self.created_at,
                "updatedAt": self.updated_at,
            }
        )


@dataclass
class Service:
    """Bookable catalog entry. ``resources == 1`` means exclusive use."""

    id: str
    name: str = ""
    duration: int = 60
    category: str = ""
    resources: int = 1
    is_active: bool = True
    business_id: str = ""
    price: float = 0.0
    notes: Optional[str] = None

    def __post_init__(self):
        if self.duration <= 0:
            raise ValueError("Duration must be positive")
        if self.resources < 1:
            raise ValueError("Resources must be at least 1")

    @property
    def is_exclusive(self) -> bool:
        return self.resources <= 1

    @classmethod
    def from_dict(cls, service_id: str, data: Dict[str, Any]) -> "Service":
        return cls(
            id=data.get("id") or service_id,
            name=data.get("name", ""),
            duration=int(data.get("duration") or 60),
            category=data.get("category", ""),
            resources=int(data.get("resources") or 1),
            is_active=data.get("isActive", True) is not False,
            business_id=data.get("businessId", ""),
            price=float(data.get("price") or 0),
            notes=data.get("notes"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "name": self.name,
                "duration": self.duration,
                "category": self.category,
                "resources": self.resources,
                "isActive": self.is_active,
                "businessId": self.business_id,
                "price": self.price,
                "notes": self.notes,
            }
        )


@dataclass
class Client:
    """Domain entity representing a Client of a business."""

    id: str
    name: str = ""
    phone: str = ""
    email: str = ""
    business_id: str = ""

    @classmethod
    def from_dict(cls, client_id: str, data: Dict[str, Any]) -> "Client":
        return cls(
            id=data.get("id") or client_id,
            name=data.get("name", ""),
            phone=data.get("phone", "") or "",
            email=data.get("email", "") or "",
            business_id=data.get("businessId", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "businessId": self.business_id,
        }


@dataclass
class Appointment:
    """Domain entity for Appointment business logic.

    ``date`` is a local calendar date (YYYY-MM-DD); times are local HH:MM.
    """

    id: Optional[str] = None
    client_id: str = ""
    service_id: str = ""
    date: str = ""
    start_time: str = ""
    end_time: str = ""
    status: str = "pending"
    business_id: str = ""
    created_by: str = ""
    notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def __post_init__(self):
        """Validate business rules."""
        if self.status not in APPOINTMENT_STATUSES:
            raise ValueError(f"Invalid appointment status: {self.status}")

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"

    @classmethod
    def from_dict(cls, appointment_id: str, data: Dict[str, Any]) -> "Appointment":
        return cls(
            id=data.get("id") or appointment_id,
            client_id=data.get("clientId", ""),
            service_id=data.get("serviceId", ""),
            date=data.get("date", ""),
            start_time=data.get("startTime", ""),
            end_time=data.get("endTime", ""),
            status=data.get("status", "pending"),
            business_id=data.get("businessId", ""),
            created_by=data.get("createdBy", ""),
            notes=data.get("notes"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "clientId": self.client_id,
                "serviceId": self.service_id,
                "date": self.date,
                "startTime": self.start_time,
                "endTime": self.end_time,
                "status": self.status,
                "businessId": self.business_id,
                "createdBy": self.created_by,
                "notes": self.notes,
                "createdAt": self.created_at,
                "updatedAt": self.updated_at,
            }
        )


@dataclass
class DigitalRecord:
    """Per-client treatment/visit note. ``id``, ``created_at`` and ``created_by`` never change."""

    id: str
    client_id: str
    business_id: str
    created_by: str
    service_id: str = ""
    treatment: str = ""
    date: str = ""
    notes: str = ""
    diagnosis: Optional[str] = None
    duration: Optional[int] = None
    category: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, record_id: str, data: Dict[str, Any]) -> "DigitalRecord":
        return cls(
            id=data.get("id") or record_id,
            client_id=data.get("clientId", ""),
            business_id=data.get("businessId", ""),
            created_by=data.get("createdBy", ""),
            service_id=data.get("serviceId", ""),
            treatment=data.get("treatment", ""),
            date=data.get("date", ""),
            notes=data.get("notes", "") or "",
            diagnosis=data.get("diagnosis"),
            duration=data.get("duration"),
            category=data.get("category"),
            data=dict(data.get("data") or {}),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "clientId": self.client_id,
                "businessId": self.business_id,
                "createdBy": self.created_by,
                "serviceId": self.service_id,
                "treatment": self.treatment,
                "date": self.date,
                "notes": self.notes,
                "diagnosis": self.diagnosis,
                "duration": self.duration,
                "category": self.category,
                "data": dict(self.data),
                "createdAt": self.created_at,
                "updatedAt": self.updated_at,
            }
        )


@dataclass
class LicenseStatus:
    """Snapshot of a business license as seen by a session."""

    is_valid: bool
    is_expired: bool
    is_expiring_soon: bool
    days_remaining: int
    license: Optional[BusinessLicense] = None
    business_id: Optional[str] = None

    @classmethod
    def invalid(cls, business_id: Optional[str] = None) -> "LicenseStatus":
        return cls(
            is_valid=False,
            is_expired=True,
            is_expiring_soon=False,
            days_remaining=0,
            license=None,
            business_id=business_id,
        )

    @classmethod
    def unrestricted(cls) -> "LicenseStatus":
        """Status reported for admins, who are never license-gated."""
        return cls(
            is_valid=True,
            is_expired=False,
            is_expiring_soon=False,
            days_remaining=999,
            license=None,
            business_id=None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "isExpired": self.is_expired,
            "isExpiringSoon": self.is_expiring_soon,
            "daysRemaining": self.days_remaining,
            "license": self.license.to_dict() if self.license else None,
            "businessId": self.business_id,
        }


NOTIFICATION_TYPES = (
    "appointment_pending",
    "appointment_reminder",
    "system",
    "error",
    "license_expiring",
    "license_expired",
    "account_blocked",
    "account_reactivated",
    "assistant_linked",
    "record_updated",
)
NOTIFICATION_PRIORITIES = ("low", "medium", "high", "critical")


@dataclass
class Notification:
    """In-app message for a user and/or a business."""

    type: str
    title: str
    message: str
    priority: str = "medium"
    id: Optional[str] = None
    is_read: bool = False
    created_at: Optional[str] = None
    business_id: Optional[str] = None
    user_id: Optional[str] = None
    action_url: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    read_at: Optional[str] = None

    def __post_init__(self):
        if self.type not in NOTIFICATION_TYPES:
            raise ValueError(f"Invalid notification type: {self.type}")
        if self.priority not in NOTIFICATION_PRIORITIES:
            raise ValueError(f"Invalid notification priority: {self.priority}")

    @classmethod
    def from_dict(cls, notification_id: str, data: Dict[str, Any]) -> "Notification":
        return cls(
            id=data.get("id") or notification_id,
            type=data.get("type", "system"),
            title=data.get("title", ""),
            message=data.get("message", ""),
            priority=data.get("priority", "medium"),
            is_read=bool(data.get("isRead", False)),
            created_at=data.get("createdAt"),
            business_id=data.get("businessId"),
            user_id=data.get("userId"),
            action_url=data.get("actionUrl"),
            metadata=dict(data.get("metadata") or {}),
            read_at=data.get("readAt"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "type": self.type,
                "title": self.title,
                "message": self.message,
                "priority": self.priority,
                "isRead": self.is_read,
                "createdAt": self.created_at,
                "businessId": self.business_id,
                "userId": self.user_id,
                "actionUrl": self.action_url,
                "metadata": dict(self.metadata) or None,
                "readAt": self.read_at,
            }
        )
