import os
import sys

from flask import request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import current_user

# Login and registration are keyed by address, so a guessed password costs the
# whole client, not one account.
AUTH_RATE_LIMIT = "10 per minute"
# Manual sweeps scan every business and every user.
SWEEP_RATE_LIMIT = "6 per hour"
# Calendar drag and resize sends one request per drop.
DEFAULT_RATE_LIMITS = ["1000 per hour", "120 per minute"]


def _is_test_mode():
    """Check if we're running in test mode (pytest/CI)."""
    testing_val = os.getenv("TESTING", "").lower().strip()
    if testing_val in ("true", "1", "yes"):
        return True
    if "pytest" in sys.modules:
        return True
    return bool(os.getenv("PYTEST_CURRENT_TEST"))


def rate_limit_key() -> str:
    """Bucket per logged-in uid, per bearer token caller, else per client address."""
    if current_user and getattr(current_user, "is_authenticated", False):
        return f"user:{current_user.get_id()}"
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return f"service:{get_remote_address()}"
    return f"addr:{get_remote_address()}"


# create_app switches it off through RATE_LIMIT_ENABLED / test mode.
limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=DEFAULT_RATE_LIMITS,
    storage_uri=os.getenv("LIMITER_STORAGE_URI", "memory://"),
    enabled=True,
)
