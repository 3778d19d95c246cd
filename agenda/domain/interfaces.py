"""
Abstract interfaces for the collaborators the core depends on.

These interfaces define contracts without implementation details,
enabling dependency injection and easier testing.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

StoreCallback = Callable[[Any], None]


class Subscription(ABC):
    """Disposable handle returned by every subscribe call."""

    @abstractmethod
    def unsubscribe(self) -> None:
        """Stop future callback delivery. Calling it twice is a no-op."""
        pass

    @property
    @abstractmethod
    def active(self) -> bool:
        pass


class NullSubscription(Subscription):
    """Handle for listeners that never attached (admins, users without business)."""

    def unsubscribe(self) -> None:
        return None

    @property
    def active(self) -> bool:
        return False


class IDocumentStore(ABC):
    """Keyed, hierarchical, subscribable document tree.

    Paths are slash-delimited (``businesses/b1/appointments/a1``). ``None``
    stands for "absent" both when reading and when writing.
    """

    @abstractmethod
    def read(self, path: str) -> Any:
        """Return a copy of the value stored at ``path`` or None."""
        pass

    @abstractmethod
    def subscribe(self, path: str, callback: StoreCallback) -> Subscription:
        """Deliver the current value now and after every change under or above ``path``."""
        pass

    @abstractmethod
    def write(self, path: str, value: Any) -> None:
        """Overwrite ``path``. ``None`` deletes it."""
        pass

    @abstractmethod
    def patch(self, updates: Dict[str, Any]) -> None:
        """Apply several path writes atomically: all land or none do."""
        pass

    @abstractmethod
    def generate_key(self, path: str) -> str:
        """Return a new unique child key for ``path``."""
        pass

    def update(self, path: str, values: Dict[str, Any]) -> None:
        """Merge ``values`` into the node at ``path`` (one patch)."""
        base = path.strip("/")
        self.patch({f"{base}/{key}": value for key, value in values.items()})


@dataclass
class IdentityAccount:
    """What the identity provider knows about an authenticated principal."""

    uid: str
    email: str
    display_name: str = ""


class IIdentityProvider(ABC):
    """External identity provider (credentials never reach the core)."""

    @abstractmethod
    def sign_in(self, email: str, password: str) -> IdentityAccount:
        """Authenticate or raise AuthenticationError."""
        pass

    @abstractmethod
    def create_account(
        self, email: str, password: str, display_name: str
    ) -> IdentityAccount:
        """Create credentials for a new principal."""
        pass

    @abstractmethod
    def update_profile(self, uid: str, display_name: Optional[str] = None) -> None:
        pass

    @abstractmethod
    def sign_out(self, uid: str) -> None:
        pass
