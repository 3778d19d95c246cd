"""
Tests for notifications: creation, read state, subscriptions and the
fire-and-forget helpers.
"""

from unittest.mock import patch

import pytest

from agenda.core.exceptions import NotFoundError, UpstreamStoreError
from agenda.services.notification_service import clean_notification_text
from fixtures.domain_fixtures import ADMIN_EMAIL, user_doc


class TestCreateAndRead:
    def test_newest_first(self, notification_service, clock):
        notification_service.create_notification("system", "Primera", "uno", user_id="u1")
        clock.advance(minutes=1)
        notification_service.create_notification("system", "Segunda", "dos", user_id="u1")
        notification_service.create_notification("system", "Ajena", "x", user_id="u2")

        titles = [n.title for n in notification_service.get_user_notifications("u1")]
        assert titles == ["Segunda", "Primera"]

    def test_business_notifications(self, notification_service):
        notification_service.create_notification("system", "T", "M", business_id="b1")
        assert len(notification_service.get_business_notifications("b1")) == 1
        assert notification_service.get_business_notifications("b2") == []

    def test_local_urls_are_scrubbed(self):
        assert clean_notification_text("Visite http://localhost:5000/panel") == "Visite Agenda/panel"
        assert clean_notification_text("127.0.0.1:8080 listo") == "Agenda listo"

    def test_mark_as_read(self, notification_service, store):
        n = notification_service.create_notification("system", "T", "M", user_id="u1")
        notification_service.mark_as_read(n.id)
        assert store.read(f"notifications/{n.id}/isRead") is True
        assert store.read(f"notifications/{n.id}/readAt")

        with pytest.raises(NotFoundError):
            notification_service.mark_as_read("ghost")

    def test_mark_all_as_read_counts_unread_only(self, notification_service):
        first = notification_service.create_notification("system", "A", "M", user_id="u1")
        notification_service.create_notification("system", "B", "M", user_id="u1")
        notification_service.create_notification("system", "C", "M", user_id="u2")
        notification_service.mark_as_read(first.id)

        assert notification_service.mark_all_as_read("u1") == 1
        assert all(n.is_read for n in notification_service.get_user_notifications("u1"))
        assert not notification_service.get_user_notifications("u2")[0].is_read

    def test_delete(self, notification_service, store):
        n = notification_service.create_notification("system", "T", "M", user_id="u1")
        notification_service.delete_notification(n.id)
        assert store.read(f"notifications/{n.id}") is None

    def test_subscription_filters_by_user(self, notification_service):
        batches = []
        handle = notification_service.subscribe_to_user_notifications("u1", batches.append)
        notification_service.create_notification("system", "Mía", "M", user_id="u1")
        notification_service.create_notification("system", "Ajena", "M", user_id="u2")
        handle.unsubscribe()

        assert batches[0] == []
        assert [n.title for n in batches[-1]] == ["Mía"]


class TestHelpers:
    def test_expiring_message_pluralises(self, notification_service):
        one = notification_service.notify_license_expiring("b1", "owner-1", 1)
        three = notification_service.notify_license_expiring("b1", "owner-1", 3)
        assert "1 día." in one.message
        assert "3 días." in three.message
        assert three.priority == "high"
        assert three.metadata == {"daysRemaining": 3}

    def test_helper_swallows_store_failure(self, notification_service):
        with patch.object(
            notification_service.store, "write", side_effect=UpstreamStoreError("down")
        ):
            assert notification_service.notify_account_blocked("u1", "Licencia") is None

    def test_reactivation_request_goes_to_admin(self, notification_service, store):
        store.write("users/admin-uid", user_doc("admin-uid", role="admin", email=ADMIN_EMAIL))

        n = notification_service.notify_admin_reactivation_request(
            "b1", "Estudio Uno", "owner-1@agenda.test"
        )

        assert n.user_id == "admin-uid"
        assert n.metadata["requestType"] == "reactivation"
        assert n.metadata["businessId"] == "b1"

    def test_reactivation_request_without_admin(self, notification_service, store):
        assert notification_service.notify_admin_reactivation_request("b1", "E", "o@x.y") is None
        assert store.read("notifications") is None
