"""
Tests for the access control gate and the role capability table.
"""

import pytest

from agenda.core.exceptions import PermissionDeniedError
from agenda.domain.entities import LicenseStatus
from agenda.services.access_control import (
    CAPABILITIES,
    AccessGate,
    Capability,
    can,
    require,
    restriction_message,
)

VALID = LicenseStatus(is_valid=True, is_expired=False, is_expiring_soon=False, days_remaining=20)
EXPIRING = LicenseStatus(is_valid=True, is_expired=False, is_expiring_soon=True, days_remaining=2)
EXPIRED = LicenseStatus.invalid("b1")

SECTIONS = ["dashboard", "notifications", "agenda", "clients", "records", "settings"]


class TestSectionAccess:
    @pytest.mark.parametrize("section", SECTIONS)
    def test_admin_reaches_everything_even_when_blocked(self, section):
        gate = AccessGate("admin", is_blocked=True, license_status=EXPIRED)
        assert gate.can_access_section(section) is True
        assert gate.can_perform_write_action() is True

    def test_blocked_user_only_sees_notifications(self):
        gate = AccessGate("owner", is_blocked=True, license_status=VALID)
        allowed = [s for s in SECTIONS if gate.can_access_section(s)]
        assert allowed == ["notifications"]
        assert gate.can_perform_write_action() is False

    def test_invalid_license_is_read_only_dashboard(self):
        gate = AccessGate("assistant", license_status=EXPIRED)
        allowed = [s for s in SECTIONS if gate.can_access_section(s)]
        assert allowed == ["dashboard", "notifications"]
        assert gate.can_perform_write_action() is False

    def test_valid_license_reaches_everything(self):
        gate = AccessGate("owner", license_status=VALID)
        assert all(gate.can_access_section(s) for s in SECTIONS)
        assert gate.can_perform_write_action() is True

    def test_anonymous_is_denied(self):
        gate = AccessGate(None)
        assert gate.can_access_section("dashboard") is False
        assert gate.can_perform_write_action() is False


class TestWriteFallback:
    def test_fallback_blocking(self):
        gate = AccessGate("owner", fallback=lambda: True)
        assert gate.can_perform_write_action() is False

    def test_fallback_allowing(self):
        gate = AccessGate("owner", fallback=lambda: False)
        assert gate.can_perform_write_action() is True

    def test_cached_status_wins_over_fallback(self):
        calls = []

        def fallback():
            calls.append(1)
            return True

        gate = AccessGate("owner", license_status=VALID, fallback=fallback)
        assert gate.can_perform_write_action() is True
        assert calls == []

    def test_no_status_and_no_fallback_denies(self):
        assert AccessGate("owner").can_perform_write_action() is False


class TestMessages:
    def test_require_write_raises_builtin_permission_error(self):
        gate = AccessGate("owner", is_blocked=True, blocked_reason="Licencia expirada")
        with pytest.raises(PermissionError) as exc_info:
            gate.require_write()
        assert isinstance(exc_info.value, PermissionDeniedError)
        assert exc_info.value.message == "Licencia expirada"

    def test_require_write_expired_license_message(self):
        gate = AccessGate("owner", license_status=EXPIRED)
        with pytest.raises(PermissionDeniedError) as exc_info:
            gate.require_write()
        assert "expirado" in exc_info.value.message

    def test_license_status_banner(self):
        assert AccessGate("owner", license_status=EXPIRING).license_status_message() == (
            "Licencia expira en 2 días"
        )
        assert AccessGate("owner", license_status=VALID).license_status_message() is None
        assert AccessGate("owner", license_status=EXPIRED).license_status_message() == (
            "Licencia expirada"
        )
        assert AccessGate("admin", license_status=EXPIRED).license_status_message() is None


class TestCapabilities:
    def test_owner_has_every_business_capability(self):
        assert CAPABILITIES["owner"] == frozenset(c for c in Capability if c != Capability.ADMIN_PANEL)

    @pytest.mark.parametrize(
        "capability",
        [
            Capability.SERVICE_WRITE,
            Capability.CLIENT_DELETE,
            Capability.RECORD_VIEW,
            Capability.RECORD_WRITE,
            Capability.REPORT_EXPORT,
            Capability.BUSINESS_SETTINGS,
            Capability.BUSINESS_KEY_VIEW,
        ],
    )
    def test_assistant_restrictions(self, capability):
        assert can("assistant", capability) is False
        assert restriction_message("assistant", capability).startswith("Solo el propietario")

    @pytest.mark.parametrize(
        "capability",
        [
            Capability.CLIENT_WRITE,
            Capability.APPOINTMENT_WRITE,
            Capability.SERVICE_VIEW,
            Capability.NOTIFICATION_DELETE,
        ],
    )
    def test_assistant_allowed(self, capability):
        assert can("assistant", capability) is True
        assert restriction_message("assistant", capability) is None

    def test_admin_only_has_admin_panel(self):
        assert CAPABILITIES["admin"] == frozenset({Capability.ADMIN_PANEL})
        assert can("owner", Capability.ADMIN_PANEL) is False

    def test_require_raises(self):
        with pytest.raises(PermissionDeniedError):
            require("assistant", Capability.RECORD_WRITE)
        require("owner", Capability.RECORD_WRITE)

    def test_unknown_role_has_nothing(self):
        assert can(None, Capability.SERVICE_VIEW) is False
