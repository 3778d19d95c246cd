"""
Digital record service.

Records live under ``businesses/{id}/digitalRecords/{recordId}``. ``id``,
``createdAt`` and ``createdBy`` are set once at creation and stripped from
every update.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping

from agenda.core.config import utc_now
from agenda.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from agenda.domain.entities import DigitalRecord, User, to_iso
from agenda.domain.interfaces import IDocumentStore
from agenda.repositories.business_repo import BusinessRepository, collection_path

logger = logging.getLogger(__name__)

IMMUTABLE_FIELDS = ("id", "createdAt", "createdBy")
RECORD_FIELDS = (
    "clientId",
    "serviceId",
    "treatment",
    "date",
    "notes",
    "diagnosis",
    "duration",
    "category",
    "data",
)


def _split_payload(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Known fields stay top-level; anything else goes into the free-form ``data`` map."""
    fields: Dict[str, Any] = {}
    extra: Dict[str, Any] = dict(payload.get("data") or {})
    for key, value in payload.items():
        if key in IMMUTABLE_FIELDS or key in ("data", "businessId", "updatedAt"):
            continue
        if key in RECORD_FIELDS:
            fields[key] = value
        else:
            extra[key] = value
    if extra:
        fields["data"] = extra
    return fields


class DigitalRecordService:
    def __init__(self, store: IDocumentStore, clock: Callable[[], datetime] = utc_now) -> None:
        self.store = store
        self.clock = clock
        self.business_repo = BusinessRepository(store)

    def _record_path(self, business_id: str, record_id: str) -> str:
        if not record_id:
            raise ValidationError("Record id is required")
        return f"{collection_path(business_id, 'digitalRecords')}/{record_id}"

    def create(
        self, actor: User, business_id: str, client_id: str, payload: Mapping[str, Any]
    ) -> DigitalRecord:
        if not isinstance(payload, Mapping):
            raise ValidationError("Record data must be an object")
        if self.business_repo.get_client(business_id, client_id) is None:
            raise NotFoundError(f"Client {client_id} not found")

        path = collection_path(business_id, "digitalRecords")
        record_id = self.store.generate_key(path)
        stamp = to_iso(self.clock())
        document = _split_payload(payload)
        document.update(
            {
                "id": record_id,
                "clientId": client_id,
                "businessId": business_id,
                "createdBy": actor.uid,
                "createdAt": stamp,
                "updatedAt": stamp,
            }
        )
        self.store.write(f"{path}/{record_id}", document)
        logger.info(
            "Digital record created",
            extra={
                "context": {
                    "business_id": business_id,
                    "record_id": record_id,
                    "client_id": client_id,
                }
            },
        )
        return DigitalRecord.from_dict(record_id, document)

    def list_for_client(self, business_id: str, client_id: str) -> List[DigitalRecord]:
        """Records of one client, newest first."""
        raw = self.store.read(collection_path(business_id, "digitalRecords")) or {}
        records = [
            DigitalRecord.from_dict(record_id, data)
            for record_id, data in raw.items()
            if isinstance(data, dict) and data.get("clientId") == client_id
        ]
        return sorted(records, key=lambda r: r.created_at or "", reverse=True)

    def update(
        self, actor: User, business_id: str, record_id: str, changes: Mapping[str, Any]
    ) -> DigitalRecord:
        if not isinstance(changes, Mapping):
            raise ValidationError("Record data must be an object")
        path = self._record_path(business_id, record_id)
        existing = self.store.read(path)
        if existing is None:
            raise NotFoundError(f"Record {record_id} not found")

        fields = _split_payload(changes)
        if "data" in fields:
            merged = dict(existing.get("data") or {})
            merged.update(fields["data"])
            fields["data"] = merged
        fields["updatedAt"] = to_iso(self.clock())
        self.store.update(path, fields)

        logger.info(
            "Digital record updated",
            extra={
                "context": {
                    "business_id": business_id,
                    "record_id": record_id,
                    "updated_by": actor.uid,
                }
            },
        )
        existing.update(fields)
        return DigitalRecord.from_dict(record_id, existing)

    def delete(self, actor: User, business_id: str, record_id: str) -> None:
        """Delete a record; someone else's record needs owner or in-business assistant rights."""
        path = self._record_path(business_id, record_id)
        existing = self.store.read(path)
        if existing is None:
            raise NotFoundError(f"Record {record_id} not found")

        creator = existing.get("createdBy")
        if creator and creator != actor.uid:
            privileged = actor.is_owner or (
                actor.is_assistant and actor.business_id == business_id
            )
            if not privileged:
                raise PermissionDeniedError("No tienes permiso para eliminar este expediente")

        self.store.write(path, None)
        logger.info(
            "Digital record deleted",
            extra={"context": {"business_id": business_id, "record_id": record_id}},
        )
