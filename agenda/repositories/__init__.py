from .business_repo import BusinessRepository
from .identity_provider import LocalIdentityProvider
from .memory_store import InMemoryDocumentStore
from .sql_store import SqlDocumentStore
from .user_repo import UserRepository

__all__ = [
    "BusinessRepository",
    "InMemoryDocumentStore",
    "LocalIdentityProvider",
    "SqlDocumentStore",
    "UserRepository",
]
