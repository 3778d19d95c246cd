"""
Local identity provider.

Stands in for the hosted identity service in development and tests: keeps
password hashes (passlib) under ``credentials/{emailHash}`` in the same store.
"""

import hashlib
import logging
from typing import Optional, Set

from agenda.core.config import utc_now
from agenda.core.exceptions import AuthenticationError, ValidationError
from agenda.core.security import hash_password, verify_password
from agenda.domain.entities import to_iso
from agenda.domain.interfaces import IDocumentStore, IdentityAccount, IIdentityProvider

logger = logging.getLogger(__name__)

CREDENTIALS_PATH = "credentials"
MIN_PASSWORD_LENGTH = 6


def credential_key(email: str) -> str:
    normalized = (email or "").strip().lower()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:40]


class LocalIdentityProvider(IIdentityProvider):
    def __init__(self, store: IDocumentStore) -> None:
        self.store = store
        self._signed_in: Set[str] = set()

    def sign_in(self, email: str, password: str) -> IdentityAccount:
        record = self.store.read(f"{CREDENTIALS_PATH}/{credential_key(email)}")
        if not record or not verify_password(password or "", record.get("passwordHash", "")):
            logger.info(
                "Sign-in rejected",
                extra={"context": {"email_hash": credential_key(email)[:8]}},
            )
            raise AuthenticationError("Invalid email or password")
        self._signed_in.add(record["uid"])
        return IdentityAccount(
            uid=record["uid"],
            email=record["email"],
            display_name=record.get("displayName", ""),
        )

    def create_account(
        self, email: str, password: str, display_name: str
    ) -> IdentityAccount:
        email = (email or "").strip()
        if "@" not in email:
            raise ValidationError("Valid email is required")
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )
        path = f"{CREDENTIALS_PATH}/{credential_key(email)}"
        if self.store.read(path):
            raise ValidationError("Email already registered")

        uid = self.store.generate_key("users")
        self.store.write(
            path,
            {
                "uid": uid,
                "email": email,
                "displayName": display_name,
                "passwordHash": hash_password(password),
                "createdAt": to_iso(utc_now()),
            },
        )
        self._signed_in.add(uid)
        logger.info("Identity account created", extra={"context": {"uid": uid}})
        return IdentityAccount(uid=uid, email=email, display_name=display_name)

    def update_profile(self, uid: str, display_name: Optional[str] = None) -> None:
        if display_name is None:
            return
        credentials = self.store.read(CREDENTIALS_PATH) or {}
        for key, record in credentials.items():
            if record.get("uid") == uid:
                self.store.update(
                    f"{CREDENTIALS_PATH}/{key}", {"displayName": display_name}
                )
                return
        raise AuthenticationError("Unknown account")

    def sign_out(self, uid: str) -> None:
        self._signed_in.discard(uid)

    def is_signed_in(self, uid: str) -> bool:
        return uid in self._signed_in
