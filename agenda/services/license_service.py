"""
License lifecycle service.

Assigns, renews, cancels and expires business licenses and cascades the
block/unblock state to every user associated with the business. Each
operation submits the business changes and the user changes as one atomic
``patch`` so a failure never leaves some users blocked and others not.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from agenda.core.config import utc_now
from agenda.core.exceptions import AgendaError, NoLicenseError, NotFoundError, ValidationError
from agenda.domain.entities import LICENSE_TYPES, Business, BusinessLicense, LicenseStatus, to_iso
from agenda.domain.interfaces import IDocumentStore
from agenda.repositories.business_repo import BusinessRepository, business_path
from agenda.repositories.user_repo import UserRepository
from agenda.services.license_evaluator import compute_end_date, evaluate_business, is_expired

logger = logging.getLogger(__name__)

REASON_CANCELED = "Licencia cancelada por administrador"
REASON_EXPIRED = "Licencia expirada"


class LicenseService:
    """Application service for the license lifecycle.

    Business Rules:
    - ``renewalCount`` grows by one on every assignment and is never reset
    - Cancellation is retroactive: ``endDate`` becomes the cancellation instant
    - Association to a business follows ``user_repo.is_associated``
    """

    def __init__(
        self,
        store: IDocumentStore,
        user_repo: UserRepository,
        business_repo: BusinessRepository,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.user_repo = user_repo
        self.business_repo = business_repo
        self.clock = clock

    def _require_business(self, business_id: str) -> Business:
        business = self.business_repo.get(business_id)
        if business is None:
            raise NotFoundError(f"Business {business_id} not found")
        return business

    def assign_license(
        self, business_id: str, license_type: str, admin_id: str
    ) -> BusinessLicense:
        """Assign (or renew) a license and unblock the business users."""
        if license_type not in LICENSE_TYPES:
            raise ValidationError(f"Invalid license type: {license_type}")
        business = self._require_business(business_id)

        now = self.clock()
        previous_count = business.license.renewal_count if business.license else 0
        license = BusinessLicense(
            type=license_type,
            start_date=now,
            end_date=compute_end_date(now, license_type),
            is_active=True,
            assigned_by=admin_id,
            assigned_at=now,
            renewal_count=previous_count + 1,
        )

        base = business_path(business_id)
        updates: Dict[str, Any] = {
            f"{base}/license": license.to_dict(),
            f"{base}/isActive": True,
            f"{base}/updatedAt": to_iso(now),
        }
        user_updates = self.user_repo.build_unblock_updates(business_id, now)
        updates.update(user_updates)
        self.store.patch(updates)

        logger.info(
            "License assigned",
            extra={
                "context": {
                    "business_id": business_id,
                    "license_type": license_type,
                    "renewal_count": license.renewal_count,
                    "assigned_by": admin_id,
                    "users_unblocked": _count_users(user_updates),
                }
            },
        )
        return license

    def cancel_license(self, business_id: str, admin_id: str) -> BusinessLicense:
        """Terminate the current license immediately and block the business users."""
        business = self._require_business(business_id)
        if business.license is None:
            raise NoLicenseError(f"Business {business_id} has no license to cancel")

        now = self.clock()
        license = business.license
        license.is_active = False
        license.end_date = now
        license.canceled_at = now
        license.canceled_by = admin_id

        base = business_path(business_id)
        updates: Dict[str, Any] = {
            f"{base}/license": license.to_dict(),
            f"{base}/isActive": False,
            f"{base}/updatedAt": to_iso(now),
        }
        user_updates = self.user_repo.build_block_updates(business_id, REASON_CANCELED, now)
        updates.update(user_updates)
        self.store.patch(updates)

        logger.info(
            "License canceled",
            extra={
                "context": {
                    "business_id": business_id,
                    "canceled_by": admin_id,
                    "users_blocked": _count_users(user_updates),
                }
            },
        )
        return license

    def block_for_expiry(self, business_id: str) -> None:
        """Deactivate a business whose license lapsed and block its users."""
        business = self._require_business(business_id)
        now = self.clock()
        base = business_path(business_id)
        updates: Dict[str, Any] = {
            f"{base}/isActive": False,
            f"{base}/updatedAt": to_iso(now),
        }
        if business.license is not None:
            updates[f"{base}/license/isActive"] = False
        user_updates = self.user_repo.build_block_updates(business_id, REASON_EXPIRED, now)
        updates.update(user_updates)
        self.store.patch(updates)

        logger.info(
            "Business blocked for expired license",
            extra={
                "context": {
                    "business_id": business_id,
                    "users_blocked": _count_users(user_updates),
                }
            },
        )

    def sweep_all_licenses(self) -> List[str]:
        """Block every still-active business whose license has expired.

        Returns the ids of the businesses blocked by this sweep. A failure on
        one business is logged and the sweep moves on to the next one.
        """
        now = self.clock()
        blocked: List[str] = []
        for business_id, business in self.business_repo.get_all().items():
            if business.license is None or business.is_active is False:
                continue
            if not is_expired(business.license, now):
                continue
            try:
                self.block_for_expiry(business_id)
                blocked.append(business_id)
            except AgendaError as e:
                logger.error(
                    "Failed to block business during license sweep",
                    extra={"context": {"business_id": business_id, "error": str(e)}},
                    exc_info=True,
                )

        logger.info(
            "License sweep completed",
            extra={"context": {"blocked": len(blocked), "business_ids": blocked}},
        )
        return blocked

    def get_business_license(self, business_id: str) -> Optional[BusinessLicense]:
        business = self.business_repo.get(business_id)
        return business.license if business else None

    def list_businesses_with_licenses(self) -> List[Dict[str, Any]]:
        """Admin overview: every business with its evaluated license status."""
        now = self.clock()
        overview = []
        for business_id, business in sorted(self.business_repo.get_all().items()):
            status: LicenseStatus = evaluate_business(business, business_id, now)
            entry = business.to_dict()
            entry["id"] = business_id
            entry["licenseStatus"] = status.to_dict()
            overview.append(entry)
        return overview


def _count_users(updates: Dict[str, Any]) -> int:
    return len({path.split("/")[1] for path in updates if path.startswith("users/")})
