"""
User session state machine.

One ``UserSession`` per signed-in principal: created on login/registration,
refreshed on demand, torn down on logout. The store stays the source of truth;
the session only keeps a projection of the user and the latest license status
pushed by the real-time monitor.

States::

    anonymous -> authenticating -> admin | owner_no_business | owner_active
                                   | assistant_active | blocked -> anonymous
"""

import logging
import threading
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from agenda.core.config import AppConfig, utc_now
from agenda.core.exceptions import (
    AgendaError,
    AuthenticationError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from agenda.domain.entities import (
    ROLE_ADMIN,
    ROLE_ASSISTANT,
    BusinessAccess,
    DigitalRecord,
    LicenseStatus,
    User,
    to_iso,
)
from agenda.domain.interfaces import IDocumentStore, IIdentityProvider, Subscription
from agenda.repositories.business_repo import BusinessRepository
from agenda.repositories.user_repo import UserRepository, user_path
from agenda.schemas.dtos import RegisterRequest
from agenda.services.access_control import AccessGate
from agenda.services.business_key import normalize_business_key
from agenda.services.notification_service import NotificationService
from agenda.services.realtime_license_service import RealTimeLicenseService
from agenda.services.record_service import DigitalRecordService

logger = logging.getLogger(__name__)

ADMIN_DISPLAY_NAME = "Administrador"
MONITOR_BLOCK_REASON = "Licencia expirada o cancelada"
MSG_UNKNOWN_KEY = "No se pudo encontrar el negocio con la clave proporcionada"


class SessionState(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    ADMIN = "admin"
    OWNER_NO_BUSINESS = "owner_no_business"
    OWNER_ACTIVE = "owner_active"
    ASSISTANT_ACTIVE = "assistant_active"
    BLOCKED = "blocked"


def _license_applies(user: User) -> bool:
    """Admins and owners still onboarding (no business yet) are not license-gated."""
    if user.is_admin:
        return False
    return not (user.is_owner and not user.business_id)


def _is_license_reason(reason: Optional[str]) -> bool:
    return bool(reason) and "licencia" in reason.lower()


class UserSession:
    def __init__(
        self,
        store: IDocumentStore,
        identity_provider: IIdentityProvider,
        license_monitor: Optional[RealTimeLicenseService] = None,
        record_service: Optional[DigitalRecordService] = None,
        notification_service: Optional[NotificationService] = None,
        business_repo: Optional[BusinessRepository] = None,
        user_repo: Optional[UserRepository] = None,
        config: Optional[AppConfig] = None,
        clock: Callable[[], datetime] = utc_now,
        appointment_service=None,
    ) -> None:
        self.store = store
        self.identity_provider = identity_provider
        self.clock = clock
        self.config = config or AppConfig.from_env()
        self.license_monitor = license_monitor or RealTimeLicenseService(store, clock)
        self.record_service = record_service or DigitalRecordService(store, clock)
        self.notification_service = notification_service or NotificationService(
            store, clock, admin_email=self.config.admin_email
        )
        self.business_repo = business_repo or BusinessRepository(store)
        self.user_repo = user_repo or UserRepository(store)
        self.appointment_service = appointment_service

        self.current_user: Optional[User] = None
        self.current_business: Optional[str] = None
        self.business_access: Dict[str, BusinessAccess] = {}
        self.license_status: Optional[LicenseStatus] = None
        self.loading = False
        self._authenticating = False
        self._subscription: Optional[Subscription] = None
        self._slot = f"session_{id(self)}"

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        user = self.current_user
        if user is None:
            if self._authenticating:
                return SessionState.AUTHENTICATING
            return SessionState.ANONYMOUS
        if user.is_admin:
            return SessionState.ADMIN
        if user.is_blocked:
            return SessionState.BLOCKED
        if user.is_owner:
            if user.business_id:
                return SessionState.OWNER_ACTIVE
            return SessionState.OWNER_NO_BUSINESS
        return SessionState.ASSISTANT_ACTIVE

    @property
    def is_authenticated(self) -> bool:
        return self.current_user is not None

    def _require_user(self) -> User:
        if self.current_user is None:
            raise AuthenticationError("Usuario no autenticado")
        return self.current_user

    def gate(self) -> AccessGate:
        user = self.current_user
        if user is None:
            return AccessGate(None)
        return AccessGate(
            user.role,
            is_blocked=user.is_blocked,
            license_status=self.license_status,
            fallback=lambda: self.license_monitor.should_block_user(user),
            blocked_reason=user.blocked_reason,
        )

    # ------------------------------------------------------------------
    # License monitor wiring
    # ------------------------------------------------------------------

    def _on_license_change(self, status: LicenseStatus) -> None:
        self.license_status = status
        user = self.current_user
        if user is None or status.is_valid or user.is_blocked:
            return
        if not _license_applies(user):
            return
        user.is_blocked = True
        user.blocked_reason = MONITOR_BLOCK_REASON
        logger.info(
            "Session blocked by license monitor",
            extra={"context": {"uid": user.uid, "business_id": status.business_id}},
        )

    def _subscribe_monitor(self, user: User) -> None:
        self._unsubscribe_monitor()
        self._subscription = self.license_monitor.watch_user(
            user, self._on_license_change, slot=self._slot
        )

    def _unsubscribe_monitor(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    # ------------------------------------------------------------------
    # Loading and self-healing block state
    # ------------------------------------------------------------------

    def _ensure_current_business(self, user: User) -> None:
        if user.role == ROLE_ASSISTANT and not user.current_business and user.business_access:
            first = next(iter(user.business_access))
            user.current_business = first
            self.user_repo.update_fields(user.uid, {"currentBusiness": first})

    def _heal_block_state(self, user: User) -> None:
        """Persist a block for users whose license lapsed while they were away."""
        if not _license_applies(user) or user.is_blocked:
            return
        if not self.license_monitor.should_block_user(user):
            return
        reason = self.license_monitor.get_blocking_reason(user)
        user.is_blocked = True
        user.blocked_reason = reason
        self.user_repo.update_fields(
            user.uid,
            {"isBlocked": True, "blockedReason": reason, "updatedAt": to_iso(self.clock())},
        )
        logger.info(
            "User blocked on load",
            extra={"context": {"uid": user.uid, "reason": reason}},
        )

    def _activate(self, user: User) -> None:
        self.current_user = user
        self.business_access = dict(user.business_access)
        self.current_business = user.current_business or user.business_id
        self._subscribe_monitor(user)

    def _load(self, user: User) -> None:
        self._ensure_current_business(user)
        self._heal_block_state(user)
        self._activate(user)

    def _bootstrap_admin(self, uid: str, email: str) -> None:
        if self.user_repo.get(uid) is not None:
            return
        stamp = to_iso(self.clock())
        self.user_repo.save(
            User(
                uid=uid,
                email=email,
                display_name=ADMIN_DISPLAY_NAME,
                role=ROLE_ADMIN,
                created_at=stamp,
                updated_at=stamp,
            )
        )
        logger.info("Platform admin record created", extra={"context": {"uid": uid}})

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> User:
        self.loading = True
        self._authenticating = True
        try:
            account = self.identity_provider.sign_in(email, password)
            if account.email.strip().lower() == self.config.admin_email:
                self._bootstrap_admin(account.uid, account.email)

            user = self.user_repo.get(account.uid)
            if user is None:
                self.identity_provider.sign_out(account.uid)
                raise NotFoundError("User data not found")

            self._load(user)
            logger.info(
                "User logged in",
                extra={"context": {"uid": user.uid, "state": self.state.value}},
            )
            return user
        finally:
            self._authenticating = False
            self.loading = False

    def register(
        self,
        email: str,
        password: str,
        display_name: str,
        role: str,
        business_key: Optional[str] = None,
    ) -> User:
        """Create the identity account and the user record for one of the three roles.

        The assistant's business key is resolved before anything is created, so
        an unknown key leaves neither an account nor a user record behind.
        """
        request = RegisterRequest(
            email=(email or "").strip(),
            password=password,
            display_name=(display_name or "").strip(),
            role=role,
            business_key=business_key,
        )
        request.validate()

        if role == ROLE_ADMIN and request.email.lower() != self.config.admin_email:
            raise PermissionDeniedError("No autorizado para crear cuenta de administrador")

        business = None
        if role == ROLE_ASSISTANT:
            business = self.business_repo.find_by_key(normalize_business_key(business_key))
            if business is None:
                raise ValidationError(MSG_UNKNOWN_KEY)

        self.loading = True
        self._authenticating = True
        try:
            account = self.identity_provider.create_account(
                request.email, password, request.display_name
            )
            stamp = to_iso(self.clock())
            user = User(
                uid=account.uid,
                email=request.email,
                display_name=request.display_name,
                role=role,
                created_at=stamp,
                updated_at=stamp,
            )
            if business is not None:
                user.business_access = {
                    business.id: BusinessAccess(
                        business_id=business.id,
                        business_name=business.name,
                        business_key=business.business_key.upper(),
                        role="viewer",
                        added_at=stamp,
                    )
                }
                user.current_business = business.id
            self.user_repo.save(user)

            if business is not None and business.owner_id:
                self.notification_service.notify_assistant_linked(
                    business.id, business.owner_id, user.display_name
                )

            self._load(user)
            logger.info(
                "User registered",
                extra={"context": {"uid": user.uid, "role": role}},
            )
            return user
        finally:
            self._authenticating = False
            self.loading = False

    def logout(self) -> None:
        user = self.current_user
        self._unsubscribe_monitor()
        if user is not None:
            self.identity_provider.sign_out(user.uid)
            logger.info("User logged out", extra={"context": {"uid": user.uid}})
        self.current_user = None
        self.current_business = None
        self.business_access = {}
        self.license_status = None

    def release(self) -> None:
        """Drop the monitor subscription and local state without signing out."""
        self._unsubscribe_monitor()
        self.current_user = None
        self.current_business = None
        self.business_access = {}
        self.license_status = None

    def set_current_business(self, business_id: str) -> None:
        user = self._require_user()
        if not user.is_assistant:
            raise PermissionDeniedError("Solo los asistentes pueden cambiar de negocio")
        if business_id not in user.business_access:
            raise PermissionDeniedError("No tiene acceso a este negocio")

        self.user_repo.update_fields(
            user.uid, {"currentBusiness": business_id, "updatedAt": to_iso(self.clock())}
        )
        user.current_business = business_id
        self.current_business = business_id
        self._subscribe_monitor(user)

    def add_business_access(self, business_key: str) -> bool:
        """Link the signed-in assistant to the business behind ``business_key``.

        Returns False when no business uses the key.
        """
        user = self._require_user()
        if not user.is_assistant:
            raise PermissionDeniedError("Solo los asistentes pueden vincularse a un negocio")

        key = normalize_business_key(business_key)
        business = self.business_repo.find_by_key(key)
        if business is None:
            logger.info("Business key not found", extra={"context": {"uid": user.uid}})
            return False

        stamp = to_iso(self.clock())
        access = BusinessAccess(
            business_id=business.id,
            business_name=business.name,
            business_key=key,
            role="viewer",
            added_at=stamp,
        )
        first_link = not user.business_access
        base = user_path(user.uid)
        updates: Dict[str, Any] = {
            f"{base}/businessAccess/{business.id}": access.to_dict(),
            f"{base}/updatedAt": stamp,
        }
        if first_link:
            updates[f"{base}/currentBusiness"] = business.id
        self.store.patch(updates)

        user.business_access[business.id] = access
        self.business_access = dict(user.business_access)
        if first_link:
            user.current_business = business.id
            self.current_business = business.id
            self._subscribe_monitor(user)

        if business.owner_id:
            self.notification_service.notify_assistant_linked(
                business.id, business.owner_id, user.display_name
            )
        return True

    def update_user_profile(self, display_name: Optional[str] = None) -> User:
        user = self._require_user()
        if display_name is None:
            return user
        display_name = display_name.strip()
        if len(display_name) < 2:
            raise ValidationError("Name must be at least 2 characters")
        self.identity_provider.update_profile(user.uid, display_name=display_name)
        self.user_repo.update_fields(
            user.uid, {"displayName": display_name, "updatedAt": to_iso(self.clock())}
        )
        user.display_name = display_name
        return user

    def refresh_license_status(self) -> Optional[LicenseStatus]:
        """Re-read the user, re-derive the block state and re-subscribe the monitor."""
        if self.current_user is None:
            return None
        user = self.user_repo.get(self.current_user.uid)
        if user is None:
            raise NotFoundError("User data not found")

        status = self.license_monitor.check_user_license_status(user)
        stamp = to_iso(self.clock())
        if status.is_valid and user.is_blocked and _is_license_reason(user.blocked_reason):
            user.is_blocked = False
            user.blocked_reason = None
            self.user_repo.update_fields(
                user.uid, {"isBlocked": False, "blockedReason": None, "updatedAt": stamp}
            )
            self.notification_service.notify_account_reactivated(
                user.uid, self.license_monitor.resolve_business_id(user)
            )
        else:
            self._heal_block_state(user)

        self._activate(user)
        self.license_status = status
        logger.info(
            "License status refreshed",
            extra={
                "context": {
                    "uid": user.uid,
                    "is_blocked": user.is_blocked,
                    "license_valid": status.is_valid,
                }
            },
        )
        return status

    def current_business_owner_name(self) -> str:
        """Owner display name for the banner; blank when it cannot be read."""
        if not self.current_business:
            return ""
        try:
            business = self.business_repo.get(self.current_business)
            owner = self.user_repo.get(business.owner_id) if business else None
        except AgendaError as e:
            logger.warning(
                "Could not load business owner",
                extra={"context": {"business_id": self.current_business, "error": str(e)}},
            )
            return ""
        return owner.display_name if owner else ""

    # ------------------------------------------------------------------
    # Digital records
    # ------------------------------------------------------------------

    def validate_record_access(self, business_id: str) -> User:
        user = self._require_user()
        if user.business_id == business_id or business_id in self.business_access:
            return user
        raise PermissionDeniedError("No tienes permiso para acceder a este recurso")

    def _require_record_write(self, user: User, business_id: str) -> None:
        """Write gate evaluated against the business license as stored now."""
        AccessGate(
            user.role,
            is_blocked=user.is_blocked,
            license_status=self.license_monitor.check_business_license(business_id),
            blocked_reason=user.blocked_reason,
        ).require_write()

    def create_client_record(
        self,
        business_id: str,
        client_id: str,
        record_data: Mapping[str, Any],
        follow_up_date: Optional[str] = None,
    ) -> DigitalRecord:
        user = self.validate_record_access(business_id)
        self._require_record_write(user, business_id)
        record = self.record_service.create(user, business_id, client_id, record_data)

        if follow_up_date and self.appointment_service is not None and record.service_id:
            try:
                self.appointment_service.create_follow_up(
                    user,
                    business_id,
                    client_id,
                    record.service_id,
                    follow_up_date,
                    treatment=record.treatment,
                    duration=int(record.duration) if record.duration else None,
                )
            except (AgendaError, ValueError) as e:
                logger.warning(
                    "Record saved but follow-up appointment failed",
                    extra={"context": {"record_id": record.id, "error": str(e)}},
                )
        return record

    def get_client_records(self, business_id: str, client_id: str) -> List[DigitalRecord]:
        self.validate_record_access(business_id)
        return self.record_service.list_for_client(business_id, client_id)

    def update_client_record(
        self, business_id: str, record_id: str, updates: Mapping[str, Any]
    ) -> DigitalRecord:
        user = self.validate_record_access(business_id)
        self._require_record_write(user, business_id)
        return self.record_service.update(user, business_id, record_id, updates)

    def delete_client_record(self, business_id: str, record_id: str) -> None:
        user = self.validate_record_access(business_id)
        self._require_record_write(user, business_id)
        self.record_service.delete(user, business_id, record_id)


class SessionRegistry:
    """Live ``UserSession`` objects keyed by uid, shared by all request threads.

    A second login for the same uid replaces the previous one and releases it.
    With an ``idle_timeout``, a session not looked up for longer than that is
    dropped and released, so its license subscription stops receiving store
    writes after the browser cookie is gone.
    """

    def __init__(
        self,
        idle_timeout: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utc_now,
        sweep_every: timedelta = timedelta(minutes=1),
    ) -> None:
        self.idle_timeout = idle_timeout
        self.clock = clock
        self.sweep_every = sweep_every
        self._sessions: Dict[str, UserSession] = {}
        self._last_seen: Dict[str, datetime] = {}
        self._last_sweep: Optional[datetime] = None
        self._lock = threading.Lock()

    def attach(self, session: UserSession) -> None:
        uid = session.current_user.uid
        with self._lock:
            previous = self._sessions.get(uid)
            self._sessions[uid] = session
            self._last_seen[uid] = self.clock()
        if previous is not None and previous is not session:
            previous.release()

    def get(self, uid: str) -> Optional[UserSession]:
        now = self.clock()
        with self._lock:
            session = self._sessions.get(uid)
            if session is None:
                return None
            if not self._is_idle(uid, now):
                self._last_seen[uid] = now
                return session
            self._drop(uid)
        self._expire(uid, session)
        return None

    def discard(self, uid: str) -> None:
        """Drop and release whatever session is held for ``uid``."""
        with self._lock:
            session = self._drop(uid)
        if session is not None:
            session.release()

    def evict_idle(self, force: bool = False) -> int:
        """Release every idle session; runs at most once per ``sweep_every`` unless forced."""
        if self.idle_timeout is None:
            return 0
        now = self.clock()
        with self._lock:
            if (
                not force
                and self._last_sweep is not None
                and now - self._last_sweep < self.sweep_every
            ):
                return 0
            self._last_sweep = now
            idle = [uid for uid in self._sessions if self._is_idle(uid, now)]
            expired = [(uid, self._drop(uid)) for uid in idle]
        for uid, session in expired:
            self._expire(uid, session)
        return len(expired)

    def detach(self, session: UserSession) -> None:
        user = session.current_user
        if user is not None:
            with self._lock:
                if self._sessions.get(user.uid) is session:
                    self._drop(user.uid)
        session.logout()

    def clear(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._last_seen.clear()
        for session in sessions:
            session.logout()

    def _is_idle(self, uid: str, now: datetime) -> bool:
        if self.idle_timeout is None:
            return False
        last_seen = self._last_seen.get(uid)
        return last_seen is not None and now - last_seen > self.idle_timeout

    def _drop(self, uid: str) -> Optional[UserSession]:
        self._last_seen.pop(uid, None)
        return self._sessions.pop(uid, None)

    def _expire(self, uid: str, session: UserSession) -> None:
        session.release()
        logger.info("Idle session released", extra={"context": {"uid": uid}})

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
