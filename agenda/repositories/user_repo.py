import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from agenda.domain.entities import ROLE_OWNER, User, to_iso
from agenda.domain.interfaces import IDocumentStore

logger = logging.getLogger(__name__)

USERS_PATH = "users"


def user_path(uid: str) -> str:
    return f"{USERS_PATH}/{uid}"


def is_associated(user: User, business_id: str) -> bool:
    """A user belongs to a business for block/unblock purposes if any predicate holds:
    owns it (``businessId``), holds a ``businessAccess`` entry for it, or is an
    owner whose ``currentBusiness`` points at it.
    """
    if user.business_id == business_id:
        return True
    if business_id in user.business_access:
        return True
    return user.role == ROLE_OWNER and user.current_business == business_id


class UserRepository:
    """Reads and writes ``users/{uid}`` documents.

    Block/unblock helpers only *build* patch payloads; callers submit them in
    one atomic ``patch`` together with their own business writes.
    """

    def __init__(self, store: IDocumentStore) -> None:
        self.store = store

    def get(self, uid: str) -> Optional[User]:
        data = self.store.read(user_path(uid))
        return User.from_dict(uid, data) if data else None

    def get_all(self) -> Dict[str, User]:
        """All users; records that no longer parse are logged and skipped."""
        raw = self.store.read(USERS_PATH) or {}
        users: Dict[str, User] = {}
        for uid, data in raw.items():
            if not isinstance(data, dict):
                continue
            try:
                users[uid] = User.from_dict(uid, data)
            except ValueError as e:
                logger.warning(
                    "Skipping malformed user record",
                    extra={"context": {"uid": uid, "error": str(e)}},
                )
        return users

    def find_by_email(self, email: str) -> Optional[User]:
        wanted = (email or "").strip().lower()
        for user in self.get_all().values():
            if user.email.lower() == wanted:
                return user
        return None

    def find_admin(self, admin_email: str) -> Optional[User]:
        user = self.find_by_email(admin_email)
        return user if user and user.is_admin else None

    def save(self, user: User) -> User:
        self.store.write(user_path(user.uid), user.to_dict())
        return user

    def update_fields(self, uid: str, fields: Dict[str, Any]) -> None:
        self.store.update(user_path(uid), fields)

    def associated_users(self, business_id: str) -> List[User]:
        return [
            user for user in self.get_all().values() if is_associated(user, business_id)
        ]

    def build_block_updates(
        self, business_id: str, reason: str, now: datetime
    ) -> Dict[str, Any]:
        """Patch payload blocking every user associated with ``business_id``."""
        stamp = to_iso(now)
        updates: Dict[str, Any] = {}
        for user in self.associated_users(business_id):
            base = user_path(user.uid)
            updates[f"{base}/isBlocked"] = True
            updates[f"{base}/blockedReason"] = reason
            updates[f"{base}/updatedAt"] = stamp
        return updates

    def build_unblock_updates(self, business_id: str, now: datetime) -> Dict[str, Any]:
        """Patch payload clearing the block of every blocked associated user."""
        stamp = to_iso(now)
        updates: Dict[str, Any] = {}
        for user in self.associated_users(business_id):
            if not user.is_blocked:
                continue
            base = user_path(user.uid)
            updates[f"{base}/isBlocked"] = False
            updates[f"{base}/blockedReason"] = None
            updates[f"{base}/updatedAt"] = stamp
        return updates
