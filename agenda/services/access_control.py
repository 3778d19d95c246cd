"""
Access control gate.

Two independent checks:

* ``AccessGate`` decides section reachability and write permission from the
  caller's role, block flag and the cached license status.
* ``CAPABILITIES`` is a static role x capability lookup for CRUD actions.
"""

import logging
from enum import Enum
from typing import Callable, Dict, FrozenSet, Optional

from agenda.core.exceptions import PermissionDeniedError
from agenda.domain.entities import ROLE_ADMIN, ROLE_ASSISTANT, ROLE_OWNER, LicenseStatus

logger = logging.getLogger(__name__)

SECTION_NOTIFICATIONS = "notifications"
SECTION_DASHBOARD = "dashboard"
BLOCKED_SECTIONS = frozenset({SECTION_NOTIFICATIONS})
READ_ONLY_SECTIONS = frozenset({SECTION_DASHBOARD, SECTION_NOTIFICATIONS})

MSG_ACTION_DENIED = "No puede realizar esta acción."
MSG_ACCOUNT_BLOCKED = "Su cuenta está bloqueada. Contacte al administrador."
MSG_LICENSE_EXPIRED = "Su licencia ha expirado. Contacte al administrador para renovarla."
MSG_LICENSE_INACTIVE = "Su licencia no está activa. Contacte al administrador."


class AccessGate:
    """Stateless decision object for one caller.

    ``fallback`` is asked for the license validity only when no status has
    been cached yet (it should return True when the user must be blocked).
    """

    def __init__(
        self,
        role: Optional[str],
        is_blocked: bool = False,
        license_status: Optional[LicenseStatus] = None,
        fallback: Optional[Callable[[], bool]] = None,
        blocked_reason: Optional[str] = None,
    ) -> None:
        self.role = role
        self.is_blocked = is_blocked
        self.license_status = license_status
        self.fallback = fallback
        self.blocked_reason = blocked_reason

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def can_access_section(self, section: str) -> bool:
        if self.role is None:
            return False
        if self.is_admin:
            return True
        if self.is_blocked:
            return section in BLOCKED_SECTIONS
        if self.license_status is not None and not self.license_status.is_valid:
            return section in READ_ONLY_SECTIONS
        return True

    def can_perform_write_action(self) -> bool:
        if self.role is None:
            return False
        if self.is_admin:
            return True
        if self.is_blocked:
            return False
        if self.license_status is not None:
            return self.license_status.is_valid
        if self.fallback is not None:
            return not self.fallback()
        return False

    def write_denied_message(self) -> str:
        if self.is_blocked:
            return self.blocked_reason or MSG_ACCOUNT_BLOCKED
        if self.license_status is not None and not self.license_status.is_valid:
            if self.license_status.is_expired:
                return MSG_LICENSE_EXPIRED
            return MSG_LICENSE_INACTIVE
        return MSG_ACTION_DENIED

    def require_write(self) -> None:
        """Raise PermissionDeniedError carrying the user-visible reason."""
        if not self.can_perform_write_action():
            raise PermissionDeniedError(self.write_denied_message())

    def license_status_message(self) -> Optional[str]:
        """Short banner text, or None when there is nothing to report."""
        if self.role is None or self.is_admin:
            return None
        if self.is_blocked:
            return self.blocked_reason or "Cuenta bloqueada"
        status = self.license_status
        if status is not None:
            if not status.is_valid:
                return "Licencia expirada" if status.is_expired else "Licencia inactiva"
            if status.is_expiring_soon:
                return f"Licencia expira en {status.days_remaining} días"
        return None


class Capability(str, Enum):
    SERVICE_VIEW = "service:view"
    SERVICE_WRITE = "service:write"
    CLIENT_VIEW = "client:view"
    CLIENT_WRITE = "client:write"
    CLIENT_DELETE = "client:delete"
    APPOINTMENT_VIEW = "appointment:view"
    APPOINTMENT_WRITE = "appointment:write"
    RECORD_VIEW = "record:view"
    RECORD_WRITE = "record:write"
    REPORT_VIEW = "report:view"
    REPORT_EXPORT = "report:export"
    BUSINESS_SETTINGS = "business:settings"
    BUSINESS_KEY_VIEW = "business:key"
    NOTIFICATION_DELETE = "notification:delete"
    ADMIN_PANEL = "admin:panel"


_OWNER: FrozenSet[Capability] = frozenset(
    {
        Capability.SERVICE_VIEW,
        Capability.SERVICE_WRITE,
        Capability.CLIENT_VIEW,
        Capability.CLIENT_WRITE,
        Capability.CLIENT_DELETE,
        Capability.APPOINTMENT_VIEW,
        Capability.APPOINTMENT_WRITE,
        Capability.RECORD_VIEW,
        Capability.RECORD_WRITE,
        Capability.REPORT_VIEW,
        Capability.REPORT_EXPORT,
        Capability.BUSINESS_SETTINGS,
        Capability.BUSINESS_KEY_VIEW,
        Capability.NOTIFICATION_DELETE,
    }
)

_ASSISTANT: FrozenSet[Capability] = frozenset(
    {
        Capability.SERVICE_VIEW,
        Capability.CLIENT_VIEW,
        Capability.CLIENT_WRITE,
        Capability.APPOINTMENT_VIEW,
        Capability.APPOINTMENT_WRITE,
        Capability.REPORT_VIEW,
        Capability.NOTIFICATION_DELETE,
    }
)

CAPABILITIES: Dict[str, FrozenSet[Capability]] = {
    ROLE_OWNER: _OWNER,
    ROLE_ASSISTANT: _ASSISTANT,
    ROLE_ADMIN: frozenset({Capability.ADMIN_PANEL}),
}

_RESTRICTIONS = {
    Capability.SERVICE_WRITE: "Solo el propietario puede gestionar servicios",
    Capability.CLIENT_DELETE: "Solo el propietario puede eliminar clientes",
    Capability.RECORD_VIEW: "Solo el propietario puede ver los expedientes",
    Capability.RECORD_WRITE: "Solo el propietario puede gestionar expedientes",
    Capability.REPORT_EXPORT: "Solo el propietario puede exportar reportes",
    Capability.BUSINESS_SETTINGS: "Solo el propietario puede editar la configuración",
    Capability.BUSINESS_KEY_VIEW: "Solo el propietario puede ver la clave del negocio",
    Capability.ADMIN_PANEL: "Solo el administrador puede acceder a este panel",
}


def can(role: Optional[str], capability: Capability) -> bool:
    return capability in CAPABILITIES.get(role or "", frozenset())


def restriction_message(role: Optional[str], capability: Capability) -> Optional[str]:
    """Why ``role`` may not use ``capability``; None when it may."""
    if can(role, capability):
        return None
    return _RESTRICTIONS.get(capability, MSG_ACTION_DENIED)


def require(role: Optional[str], capability: Capability) -> None:
    if not can(role, capability):
        logger.info(
            "Capability denied",
            extra={"context": {"role": role, "capability": capability.value}},
        )
        raise PermissionDeniedError(restriction_message(role, capability))
