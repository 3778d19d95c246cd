"""
Real-time license monitor.

Watches ``businesses/{id}`` through the store subscription API and
re-evaluates the license on every change. At most one subscription is kept
per slot: subscribing again on a slot detaches the previous handle first.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Dict, Optional

from agenda.core.config import utc_now
from agenda.core.exceptions import UpstreamStoreError
from agenda.domain.entities import Business, LicenseStatus, User
from agenda.domain.interfaces import IDocumentStore, NullSubscription, Subscription
from agenda.repositories.business_repo import business_path
from agenda.services.license_evaluator import evaluate_business

logger = logging.getLogger(__name__)

LicenseCallback = Callable[[LicenseStatus], None]

MSG_EXPIRED = "Su licencia ha expirado. Contacte al administrador para renovarla."
MSG_NO_LICENSE = "No tiene una licencia activa. Contacte al administrador."
MSG_DEACTIVATED = "Su cuenta ha sido desactivada. Contacte al administrador."
MSG_RESTRICTED = "Acceso restringido. Contacte al administrador."


class _SlotSubscription(Subscription):
    """Handle that also frees its slot in the monitor when detached."""

    def __init__(self, monitor: "RealTimeLicenseService", slot: str, inner: Subscription) -> None:
        self._monitor = monitor
        self._slot = slot
        self._inner = inner

    def unsubscribe(self) -> None:
        self._inner.unsubscribe()
        self._monitor._release(self._slot, self)

    @property
    def active(self) -> bool:
        return self._inner.active


class RealTimeLicenseService:
    def __init__(
        self, store: IDocumentStore, clock: Callable[[], datetime] = utc_now
    ) -> None:
        self.store = store
        self.clock = clock
        self._lock = threading.Lock()
        self._slots: Dict[str, _SlotSubscription] = {}

    @staticmethod
    def resolve_business_id(user: User) -> Optional[str]:
        """Owner -> ``businessId``; assistant -> ``currentBusiness``; admin -> None."""
        if user.is_owner:
            return user.business_id
        if user.is_assistant:
            return user.current_business
        return None

    def _evaluate(self, business_id: str, data) -> LicenseStatus:
        if not data:
            return LicenseStatus.invalid(business_id)
        try:
            business = Business.from_dict(business_id, data)
        except (KeyError, ValueError) as e:
            logger.warning(
                "Malformed business record, treating license as invalid",
                extra={"context": {"business_id": business_id, "error": str(e)}},
            )
            return LicenseStatus.invalid(business_id)
        return evaluate_business(business, business_id, self.clock())

    def check_business_license(self, business_id: str) -> LicenseStatus:
        try:
            data = self.store.read(business_path(business_id))
        except UpstreamStoreError as e:
            logger.error(
                "Error checking business license",
                extra={"context": {"business_id": business_id, "error": str(e)}},
            )
            return LicenseStatus.invalid(business_id)
        return self._evaluate(business_id, data)

    def check_user_license_status(self, user: User) -> LicenseStatus:
        if user.is_admin:
            return LicenseStatus.unrestricted()
        business_id = self.resolve_business_id(user)
        if not business_id:
            return LicenseStatus.invalid(None)
        return self.check_business_license(business_id)

    def watch_business(
        self, business_id: str, callback: LicenseCallback, slot: Optional[str] = None
    ) -> Subscription:
        """Deliver the license status now and on every change of the business record."""
        slot = slot or f"business_{business_id}"
        self._detach(slot)

        def on_change(data) -> None:
            callback(self._evaluate(business_id, data))

        inner = self.store.subscribe(business_path(business_id), on_change)
        handle = _SlotSubscription(self, slot, inner)
        with self._lock:
            self._slots[slot] = handle
        logger.debug(
            "License listener attached",
            extra={"context": {"slot": slot, "business_id": business_id}},
        )
        return handle

    def watch_user(
        self, user: User, callback: LicenseCallback, slot: Optional[str] = None
    ) -> Subscription:
        """Watch the business relevant to ``user``.

        Admins and users without a business get one immediate status and a
        handle that never fires again.
        """
        slot = slot or f"user_{user.uid}"
        if user.is_admin:
            self._detach(slot)
            callback(LicenseStatus.unrestricted())
            return NullSubscription()

        business_id = self.resolve_business_id(user)
        if not business_id:
            self._detach(slot)
            callback(LicenseStatus.invalid(None))
            return NullSubscription()

        return self.watch_business(business_id, callback, slot=slot)

    def _detach(self, slot: str) -> None:
        with self._lock:
            previous = self._slots.pop(slot, None)
        if previous is not None:
            previous.unsubscribe()

    def _release(self, slot: str, handle: _SlotSubscription) -> None:
        with self._lock:
            if self._slots.get(slot) is handle:
                del self._slots[slot]

    @property
    def active_slots(self) -> int:
        with self._lock:
            return len(self._slots)

    def cleanup(self) -> None:
        with self._lock:
            handles = list(self._slots.values())
            self._slots.clear()
        for handle in handles:
            handle.unsubscribe()

    def should_block_user(self, user: User) -> bool:
        if user.is_admin:
            return False
        if user.is_blocked:
            return True
        return not self.check_user_license_status(user).is_valid

    def get_blocking_reason(self, user: User) -> str:
        """Message explaining why ``user`` cannot work.

        A stored ``blocked_reason`` wins. Otherwise the license status decides:
        a missing license is reported before expiry. ``evaluate_business``
        marks a missing license as expired as well, so checking expiry first
        would never produce ``MSG_NO_LICENSE``.
        """
        if user.is_blocked and user.blocked_reason:
            return user.blocked_reason

        status = self.check_user_license_status(user)
        if not status.is_valid:
            if status.license is None:
                return MSG_NO_LICENSE
            if status.is_expired:
                return MSG_EXPIRED
            return MSG_DEACTIVATED
        return MSG_RESTRICTED
