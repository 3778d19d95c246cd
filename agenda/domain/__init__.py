"""
Domain package - Pure business logic layer.

This package contains:
- entities.py: Domain entities and their document-tree mapping
- interfaces.py: Store and identity provider contracts
"""

from .entities import (
    Appointment,
    Business,
    BusinessAccess,
    BusinessLicense,
    Client,
    DigitalRecord,
    LicenseStatus,
    Notification,
    Service,
    User,
)
from .interfaces import (
    IDocumentStore,
    IdentityAccount,
    IIdentityProvider,
    NullSubscription,
    Subscription,
)

__all__ = [
    # Domain entities
    "Appointment",
    "Business",
    "BusinessAccess",
    "BusinessLicense",
    "Client",
    "DigitalRecord",
    "LicenseStatus",
    "Notification",
    "Service",
    "User",
    # Collaborator interfaces
    "IDocumentStore",
    "IdentityAccount",
    "IIdentityProvider",
    "NullSubscription",
    "Subscription",
]
