"""Business keys: 16 uppercase hex characters used by assistants to join a business."""

import logging
import secrets
from typing import Optional, Tuple

from agenda.core.exceptions import ValidationError
from agenda.domain.interfaces import IDocumentStore
from agenda.repositories.business_repo import BusinessRepository

logger = logging.getLogger(__name__)

BUSINESS_KEY_LENGTH = 16
MAX_KEY_ATTEMPTS = 10


def generate_business_key() -> str:
    return secrets.token_hex(BUSINESS_KEY_LENGTH // 2).upper()


def normalize_business_key(key: Optional[str]) -> str:
    return (key or "").strip().upper()


def is_business_key_unique(store: IDocumentStore, key: str) -> bool:
    return normalize_business_key(key) not in {
        normalize_business_key(existing)
        for existing in BusinessRepository(store).existing_keys()
    }


def generate_unique_business_key(
    store: IDocumentStore, max_attempts: int = MAX_KEY_ATTEMPTS
) -> str:
    """Draw keys until one is absent from the current business set.

    Raises ValidationError after ``max_attempts`` collisions.
    """
    for attempt in range(1, max_attempts + 1):
        key = generate_business_key()
        if is_business_key_unique(store, key):
            return key
        logger.warning(
            "Business key collision",
            extra={"context": {"attempt": attempt}},
        )
    raise ValidationError(
        f"Could not generate a unique business key after {max_attempts} attempts"
    )


def find_business_by_key(store: IDocumentStore, key: str) -> Optional[Tuple[str, str]]:
    """Return ``(business_id, business_name)`` for ``key`` (case-insensitive) or None."""
    business = BusinessRepository(store).find_by_key(normalize_business_key(key))
    if business is None:
        return None
    return business.id, business.name
