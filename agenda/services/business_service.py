"""
Business onboarding and settings service.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from agenda.core.config import utc_now
from agenda.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from agenda.domain.entities import Business, BusinessAccess, Client, Service, User, to_iso
from agenda.domain.interfaces import IDocumentStore
from agenda.repositories.business_repo import (
    BUSINESSES_PATH,
    BusinessRepository,
    business_path,
    collection_path,
)
from agenda.repositories.user_repo import user_path
from agenda.schemas.dtos import BusinessCreateRequest, ServiceCreateRequest
from agenda.services.access_control import Capability, require
from agenda.services.business_key import generate_unique_business_key

logger = logging.getLogger(__name__)


class BusinessService:
    """Application service for the owner's business lifecycle.

    Business Rules:
    - Only owners without a business may create one
    - New businesses start without license and with ``isActive`` unset
    - Onboarding services start hidden (``isActive=false``)
    """

    def __init__(self, store: IDocumentStore, clock: Callable[[], datetime] = utc_now) -> None:
        self.store = store
        self.clock = clock
        self.business_repo = BusinessRepository(store)

    def _require_owner_of(self, actor: User, business_id: str) -> Business:
        business = self.business_repo.get(business_id)
        if business is None:
            raise NotFoundError(f"Business {business_id} not found")
        if not actor.is_owner or business.owner_id != actor.uid:
            raise PermissionDeniedError("Solo el propietario puede modificar este negocio")
        return business

    def create_business(self, owner: User, request: BusinessCreateRequest) -> Business:
        """Create the owner's business and link the owner to it in one patch."""
        if not owner.is_owner:
            raise PermissionDeniedError("Solo los propietarios pueden crear un negocio")
        if owner.business_id:
            raise ValidationError("El usuario ya tiene un negocio")
        request.validate()

        stamp = to_iso(self.clock())
        business_id = self.store.generate_key(BUSINESSES_PATH)
        business = Business(
            id=business_id,
            name=request.name,
            owner_id=owner.uid,
            business_key=generate_unique_business_key(self.store),
            categories=request.categories,
            operating_hours=request.operating_hours,
            email=request.email,
            phone=request.phone,
            address=request.address,
            description=request.description,
            created_at=stamp,
            updated_at=stamp,
        )
        access = BusinessAccess(
            business_id=business_id,
            business_name=business.name,
            business_key=business.business_key,
            role="admin",
            added_at=stamp,
        )

        base = user_path(owner.uid)
        self.store.patch(
            {
                business_path(business_id): business.to_dict(),
                f"{base}/businessId": business_id,
                f"{base}/businessAccess/{business_id}": access.to_dict(),
                f"{base}/currentBusiness": business_id,
                f"{base}/updatedAt": stamp,
            }
        )
        owner.business_id = business_id
        owner.business_access[business_id] = access
        owner.current_business = business_id

        logger.info(
            "Business created",
            extra={"context": {"business_id": business_id, "owner_id": owner.uid}},
        )
        return business

    def regenerate_business_key(self, owner: User, business_id: str) -> str:
        self._require_owner_of(owner, business_id)
        require(owner.role, Capability.BUSINESS_SETTINGS)
        key = generate_unique_business_key(self.store)
        stamp = to_iso(self.clock())
        self.store.patch(
            {
                f"{business_path(business_id)}/businessKey": key,
                f"{business_path(business_id)}/updatedAt": stamp,
                f"{user_path(owner.uid)}/businessAccess/{business_id}/businessKey": key,
            }
        )
        logger.info("Business key regenerated", extra={"context": {"business_id": business_id}})
        return key

    def add_service(
        self, actor: User, business_id: str, request: ServiceCreateRequest
    ) -> Service:
        self._require_owner_of(actor, business_id)
        require(actor.role, Capability.SERVICE_WRITE)
        request.validate()

        path = collection_path(business_id, "services")
        service = Service(
            id=self.store.generate_key(path),
            name=request.name,
            duration=request.duration,
            category=request.category,
            resources=request.resources,
            is_active=request.is_active,
            business_id=business_id,
            price=request.price,
            notes=request.notes,
        )
        self.store.write(f"{path}/{service.id}", service.to_dict())
        return service

    def add_client(
        self,
        actor: User,
        business_id: str,
        name: str,
        phone: str = "",
        email: Optional[str] = None,
    ) -> Client:
        if not actor.has_access_to(business_id):
            raise PermissionDeniedError("No tiene acceso a este negocio")
        require(actor.role, Capability.CLIENT_WRITE)
        if not (name or "").strip():
            raise ValidationError("Client name is required")

        path = collection_path(business_id, "clients")
        client = Client(
            id=self.store.generate_key(path),
            name=name.strip(),
            phone=phone or "",
            email=email or "",
            business_id=business_id,
        )
        stamp = to_iso(self.clock())
        self.store.write(
            f"{path}/{client.id}", {**client.to_dict(), "createdAt": stamp, "updatedAt": stamp}
        )
        return client
