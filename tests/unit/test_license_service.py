"""
Tests for the license lifecycle: assignment, renewal, cancellation, expiry
sweeps and the block/unblock cascade over associated users.
"""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from agenda.core.exceptions import NoLicenseError, NotFoundError, UpstreamStoreError, ValidationError
from agenda.services.license_service import REASON_CANCELED, REASON_EXPIRED
from fixtures.domain_fixtures import access_entry, business_doc, license_doc, user_doc


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def associations(store):
    """One user per association predicate, plus an unrelated user."""
    store.patch(
        {
            "businesses/b1": business_doc(),
            "businesses/b2": business_doc(owner_id="other-owner", key="FFFF0000FFFF0000"),
            "users/by-business-id": user_doc("by-business-id", businessId="b1"),
            "users/by-access": user_doc(
                "by-access", role="assistant", businessAccess={"b1": access_entry("b1")}
            ),
            "users/by-current": user_doc("by-current", currentBusiness="b1"),
            "users/unrelated": user_doc(
                "unrelated",
                role="assistant",
                businessAccess={"b2": access_entry("b2", key="FFFF0000FFFF0000")},
            ),
        }
    )
    return "b1"


class TestAssignLicense:
    def test_first_assignment(self, license_service, store, associations, clock):
        license = license_service.assign_license("b1", "1month", "admin-1")

        assert license.renewal_count == 1
        assert license.is_active is True
        assert license.start_date == clock()
        assert license.end_date == utc(2024, 2, 15, 12)
        assert license.assigned_by == "admin-1"

        stored = store.read("businesses/b1")
        assert stored["isActive"] is True
        assert stored["license"]["type"] == "1month"
        assert stored["license"]["renewalCount"] == 1

    def test_renewal_increments_count(self, license_service, store, associations, clock):
        license_service.assign_license("b1", "1month", "admin-1")
        clock.advance(days=10)
        license = license_service.assign_license("b1", "3months", "admin-1")

        assert license.renewal_count == 2
        assert store.read("businesses/b1/license/renewalCount") == 2
        assert license.start_date == utc(2024, 1, 25, 12)

    def test_unknown_type(self, license_service, associations):
        with pytest.raises(ValidationError):
            license_service.assign_license("b1", "2weeks", "admin-1")

    def test_unknown_business(self, license_service):
        with pytest.raises(NotFoundError):
            license_service.assign_license("ghost", "1month", "admin-1")

    def test_unblocks_every_associated_user(self, license_service, store, associations):
        for uid in ("by-business-id", "by-access", "by-current", "unrelated"):
            store.update(f"users/{uid}", {"isBlocked": True, "blockedReason": REASON_EXPIRED})

        license_service.assign_license("b1", "1month", "admin-1")

        for uid in ("by-business-id", "by-access", "by-current"):
            user = store.read(f"users/{uid}")
            assert user["isBlocked"] is False, uid
            assert "blockedReason" not in user, uid
        assert store.read("users/unrelated/isBlocked") is True


class TestCancelLicense:
    def test_cancel_is_retroactive(self, license_service, store, associations, clock):
        license_service.assign_license("b1", "1month", "admin-1")
        clock.advance(days=5)

        license = license_service.cancel_license("b1", "admin-2")

        assert license.is_active is False
        assert license.end_date == clock()
        assert license.canceled_at == clock()
        assert license.canceled_by == "admin-2"
        assert license.renewal_count == 1

        stored = store.read("businesses/b1")
        assert stored["isActive"] is False
        assert stored["license"]["isActive"] is False
        assert stored["license"]["renewalCount"] == 1

    def test_cancel_blocks_each_association_predicate(self, license_service, store, associations):
        license_service.assign_license("b1", "1month", "admin-1")
        license_service.cancel_license("b1", "admin-1")

        for uid in ("by-business-id", "by-access", "by-current"):
            user = store.read(f"users/{uid}")
            assert user["isBlocked"] is True, uid
            assert user["blockedReason"] == REASON_CANCELED, uid
        assert store.read("users/unrelated/isBlocked") is False

    def test_assistant_with_access_only_is_blocked(self, license_service, store):
        store.patch(
            {
                "businesses/b1": business_doc(license=license_doc()),
                "users/solo": user_doc(
                    "solo", role="assistant", businessAccess={"b1": access_entry("b1")}
                ),
            }
        )
        license_service.cancel_license("b1", "admin-1")
        assert store.read("users/solo/isBlocked") is True

    def test_owner_by_current_business_only_is_blocked(self, license_service, store):
        store.patch(
            {
                "businesses/b1": business_doc(license=license_doc()),
                "users/drifter": user_doc("drifter", currentBusiness="b1"),
            }
        )
        license_service.cancel_license("b1", "admin-1")
        assert store.read("users/drifter/isBlocked") is True

    def test_cancel_without_license(self, license_service, associations):
        with pytest.raises(NoLicenseError):
            license_service.cancel_license("b1", "admin-1")

    def test_cancel_unknown_business(self, license_service):
        with pytest.raises(NotFoundError):
            license_service.cancel_license("ghost", "admin-1")

    def test_no_associated_users_is_success(self, license_service, store):
        store.write("businesses/lonely", business_doc(owner_id="", license=license_doc()))
        license = license_service.cancel_license("lonely", "admin-1")
        assert license.is_active is False


class TestSweep:
    def test_expired_business_blocks_owner_and_assistants(
        self, license_service, store, licensed_business, clock
    ):
        clock.set(utc(2024, 2, 16, 12))

        blocked = license_service.sweep_all_licenses()

        assert blocked == ["b1"]
        for uid in ("owner-1", "assistant-1"):
            assert store.read(f"users/{uid}/isBlocked") is True
            assert store.read(f"users/{uid}/blockedReason") == REASON_EXPIRED
        assert store.read("businesses/b1/isActive") is False
        assert store.read("businesses/b1/license/isActive") is False

    def test_second_sweep_is_a_no_op(self, license_service, licensed_business, clock):
        clock.set(utc(2024, 2, 16, 12))
        license_service.sweep_all_licenses()
        assert license_service.sweep_all_licenses() == []

    def test_valid_and_unlicensed_businesses_are_skipped(self, license_service, store, clock):
        store.patch(
            {
                "businesses/valid": business_doc(license=license_doc(start=utc(2024, 2, 10))),
                "businesses/unlicensed": business_doc(key="1111222233334444"),
            }
        )
        clock.set(utc(2024, 2, 16, 12))

        assert license_service.sweep_all_licenses() == []
        assert store.read("businesses/unlicensed/isActive") is True

    def test_failure_on_one_business_does_not_stop_the_sweep(self, license_service, store, clock):
        store.patch(
            {
                "businesses/b1": business_doc(license=license_doc()),
                "businesses/b2": business_doc(key="1111222233334444", license=license_doc()),
            }
        )
        clock.set(utc(2024, 3, 1))
        original = license_service.block_for_expiry

        def flaky(business_id):
            if business_id == "b1":
                raise UpstreamStoreError("boom")
            return original(business_id)

        with patch.object(license_service, "block_for_expiry", side_effect=flaky):
            blocked = license_service.sweep_all_licenses()

        assert blocked == ["b2"]
        assert store.read("businesses/b1/isActive") is True
        assert store.read("businesses/b2/isActive") is False


class TestQueries:
    def test_get_business_license(self, license_service, licensed_business):
        license = license_service.get_business_license("b1")
        assert license.type == "1month"
        assert license_service.get_business_license("ghost") is None

    def test_overview_carries_evaluated_status(self, license_service, store, licensed_business):
        store.write("businesses/b2", business_doc(key="1111222233334444"))

        overview = license_service.list_businesses_with_licenses()

        by_id = {entry["id"]: entry for entry in overview}
        assert by_id["b1"]["licenseStatus"]["isValid"] is True
        assert by_id["b2"]["licenseStatus"]["isValid"] is False
        assert by_id["b2"]["licenseStatus"]["license"] is None
