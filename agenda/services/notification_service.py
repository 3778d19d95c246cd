"""
Notification service.

Notifications are flat documents under ``notifications/{id}`` tagged with a
``userId`` and/or ``businessId``. The ``notify_*`` helpers are fire-and-forget:
a failure is logged and never breaks the operation that triggered it.
"""

import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from agenda.core.config import get_admin_email, utc_now
from agenda.core.exceptions import AgendaError, NotFoundError
from agenda.domain.entities import Notification, to_iso
from agenda.domain.interfaces import IDocumentStore, Subscription
from agenda.repositories.user_repo import UserRepository

logger = logging.getLogger(__name__)

NOTIFICATIONS_PATH = "notifications"
APP_NAME = "Agenda"

_LOCAL_URL = re.compile(r"(https?://)?(localhost|127\.0\.0\.1)(:\d+)?")


def clean_notification_text(text: str) -> str:
    """Replace development host references with the product name."""
    return _LOCAL_URL.sub(APP_NAME, text or "").strip()


def _newest_first(notifications: List[Notification]) -> List[Notification]:
    return sorted(notifications, key=lambda n: n.created_at or "", reverse=True)


class NotificationService:
    def __init__(
        self,
        store: IDocumentStore,
        clock: Callable[[], datetime] = utc_now,
        admin_email: Optional[str] = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.admin_email = (admin_email or get_admin_email()).lower()

    def _all(self) -> List[Notification]:
        raw = self.store.read(NOTIFICATIONS_PATH) or {}
        notifications = []
        for notification_id, data in raw.items():
            try:
                notifications.append(Notification.from_dict(notification_id, data))
            except ValueError as e:
                logger.warning(
                    "Skipping malformed notification",
                    extra={"context": {"notification_id": notification_id, "error": str(e)}},
                )
        return notifications

    def create_notification(
        self,
        type: str,
        title: str,
        message: str,
        priority: str = "medium",
        user_id: Optional[str] = None,
        business_id: Optional[str] = None,
        action_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        notification = Notification(
            type=type,
            title=clean_notification_text(title),
            message=clean_notification_text(message),
            priority=priority,
            user_id=user_id,
            business_id=business_id,
            action_url=action_url,
            metadata=dict(metadata or {}),
        )
        notification.id = self.store.generate_key(NOTIFICATIONS_PATH)
        notification.created_at = to_iso(self.clock())
        self.store.write(f"{NOTIFICATIONS_PATH}/{notification.id}", notification.to_dict())
        logger.debug(
            "Notification created",
            extra={"context": {"notification_id": notification.id, "type": type}},
        )
        return notification

    def get_user_notifications(self, user_id: str) -> List[Notification]:
        return _newest_first([n for n in self._all() if n.user_id == user_id])

    def get_business_notifications(self, business_id: str) -> List[Notification]:
        return _newest_first([n for n in self._all() if n.business_id == business_id])

    def mark_as_read(self, notification_id: str) -> None:
        path = f"{NOTIFICATIONS_PATH}/{notification_id}"
        if self.store.read(path) is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        self.store.update(path, {"isRead": True, "readAt": to_iso(self.clock())})

    def mark_all_as_read(self, user_id: str) -> int:
        """Mark every unread notification of ``user_id`` in a single patch."""
        stamp = to_iso(self.clock())
        updates: Dict[str, Any] = {}
        for notification in self.get_user_notifications(user_id):
            if notification.is_read:
                continue
            base = f"{NOTIFICATIONS_PATH}/{notification.id}"
            updates[f"{base}/isRead"] = True
            updates[f"{base}/readAt"] = stamp
        if updates:
            self.store.patch(updates)
        return len(updates) // 2

    def delete_notification(self, notification_id: str) -> None:
        self.store.write(f"{NOTIFICATIONS_PATH}/{notification_id}", None)

    def subscribe_to_user_notifications(
        self, user_id: str, callback: Callable[[List[Notification]], None]
    ) -> Subscription:
        def on_change(raw) -> None:
            notifications = [
                Notification.from_dict(notification_id, data)
                for notification_id, data in (raw or {}).items()
                if isinstance(data, dict) and data.get("userId") == user_id
            ]
            callback(_newest_first(notifications))

        return self.store.subscribe(NOTIFICATIONS_PATH, on_change)

    def _safe_create(self, **kwargs) -> Optional[Notification]:
        try:
            return self.create_notification(**kwargs)
        except (AgendaError, ValueError) as e:
            logger.warning(
                "Could not create notification",
                extra={"context": {"type": kwargs.get("type"), "error": str(e)}},
            )
            return None

    def notify_license_expiring(
        self, business_id: str, owner_id: str, days_remaining: int
    ) -> Optional[Notification]:
        plural = "" if days_remaining == 1 else "s"
        return self._safe_create(
            type="license_expiring",
            title="Licencia próxima a expirar",
            message=(
                f"Su licencia expira en {days_remaining} día{plural}. "
                "Contacte al administrador para renovar."
            ),
            priority="high",
            user_id=owner_id,
            business_id=business_id,
            metadata={"daysRemaining": days_remaining},
        )

    def notify_license_expired(self, business_id: str, owner_id: str) -> Optional[Notification]:
        return self._safe_create(
            type="license_expired",
            title="Licencia expirada",
            message=(
                "Su licencia ha expirado. Su cuenta ha sido bloqueada. "
                "Contacte al administrador para reactivar."
            ),
            priority="critical",
            user_id=owner_id,
            business_id=business_id,
        )

    def notify_account_blocked(self, user_id: str, reason: str) -> Optional[Notification]:
        return self._safe_create(
            type="account_blocked",
            title="Cuenta bloqueada",
            message=f"Su cuenta ha sido bloqueada. Motivo: {reason}",
            priority="critical",
            user_id=user_id,
        )

    def notify_account_reactivated(
        self, user_id: str, business_id: Optional[str] = None
    ) -> Optional[Notification]:
        return self._safe_create(
            type="account_reactivated",
            title="Cuenta reactivada",
            message="Su cuenta ha sido reactivada. Ya puede acceder a todas las funcionalidades.",
            priority="medium",
            user_id=user_id,
            business_id=business_id,
        )

    def notify_assistant_linked(
        self, business_id: str, owner_id: str, assistant_name: str
    ) -> Optional[Notification]:
        return self._safe_create(
            type="assistant_linked",
            title="Nuevo asistente vinculado",
            message=f"{assistant_name} se ha vinculado a su negocio como asistente.",
            priority="medium",
            user_id=owner_id,
            business_id=business_id,
        )

    def notify_admin_reactivation_request(
        self, business_id: str, business_name: str, owner_email: str
    ) -> Optional[Notification]:
        try:
            admin = UserRepository(self.store).find_admin(self.admin_email)
        except AgendaError as e:
            logger.warning(
                "Could not resolve platform admin", extra={"context": {"error": str(e)}}
            )
            return None
        if admin is None:
            logger.info("No platform admin registered, reactivation request dropped")
            return None
        return self._safe_create(
            type="system",
            title="Solicitud de reactivación",
            message=f"{business_name} ({owner_email}) solicita reactivación de licencia.",
            priority="high",
            user_id=admin.uid,
            metadata={
                "businessId": business_id,
                "businessName": business_name,
                "ownerEmail": owner_email,
                "requestType": "reactivation",
            },
        )
