import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from passlib.context import CryptContext

# Credentials of the local identity provider
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

SERVICE_TOKEN_TYPE = "service"
SERVICE_TOKEN_ALGORITHM = "HS256"
SERVICE_TOKEN_TTL = timedelta(hours=24)

_WEAK_SECRETS = {"dev-jwt-secret-change-me", "dev-secret-change-me", "secret123"}


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """True when ``plain_password`` matches the stored hash.

    A missing or malformed hash counts as a mismatch.
    """
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        return False


def get_service_token_secret() -> str:
    """Signing secret for service tokens.

    Raises:
        ValueError: in production when JWT_SECRET_KEY is missing, a known
            development value, or shorter than 32 characters.
    """
    secret = os.getenv("JWT_SECRET_KEY", "dev-jwt-secret-change-me")
    if os.getenv("FLASK_ENV") == "production" and (
        secret in _WEAK_SECRETS or len(secret) < 32
    ):
        raise ValueError(
            "Production deployment requires strong JWT_SECRET_KEY (min 32 chars). "
            "Set JWT_SECRET_KEY environment variable."
        )
    return secret


def create_service_token(
    uid: str, email: str, role: str, expires_in: Optional[timedelta] = None
) -> str:
    """Sign a bearer token for an automated caller, e.g. the cron job that triggers license sweeps."""
    payload = {
        "sub": uid,
        "email": email,
        "role": role,
        "type": SERVICE_TOKEN_TYPE,
        "exp": datetime.now(timezone.utc) + (expires_in or SERVICE_TOKEN_TTL),
    }
    return jwt.encode(payload, get_service_token_secret(), algorithm=SERVICE_TOKEN_ALGORITHM)


def get_service_caller(token: str) -> Optional[Dict[str, Any]]:
    """Caller described by a service token, or None when it is invalid, expired or not a service token."""
    try:
        payload = jwt.decode(
            token, get_service_token_secret(), algorithms=[SERVICE_TOKEN_ALGORITHM]
        )
    except jwt.PyJWTError:
        return None

    if payload.get("type") != SERVICE_TOKEN_TYPE:
        return None
    uid = payload.get("sub")
    email = payload.get("email")
    if uid is None or email is None:
        return None
    return {"uid": str(uid), "email": email, "role": payload.get("role")}
