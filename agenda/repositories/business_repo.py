import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

from agenda.core.exceptions import ValidationError
from agenda.domain.entities import Appointment, Business, Client, Service
from agenda.domain.interfaces import IDocumentStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

BUSINESSES_PATH = "businesses"
COLLECTIONS = ("services", "clients", "appointments", "digitalRecords")


def business_path(business_id: str) -> str:
    return f"{BUSINESSES_PATH}/{business_id}"


def collection_path(business_id: str, collection: str) -> str:
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown business collection: {collection}")
    return f"{BUSINESSES_PATH}/{business_id}/{collection}"


def _parse(
    kind: str, record_id: str, data: Dict[str, Any], parser: Callable[[str, Dict[str, Any]], T]
) -> T:
    try:
        return parser(record_id, data)
    except (KeyError, ValueError, TypeError) as e:
        logger.warning(
            "Malformed stored record",
            extra={"context": {"kind": kind, "id": record_id, "error": str(e)}},
        )
        raise ValidationError(f"Registro inválido ({kind}): {record_id}") from e


def _parse_each(
    kind: str, raw: Dict[str, Any], parser: Callable[[str, Dict[str, Any]], T]
) -> Dict[str, T]:
    """Parse a collection, skipping (and logging) records that do not parse."""
    parsed: Dict[str, T] = {}
    for record_id, data in raw.items():
        if not isinstance(data, dict):
            continue
        try:
            parsed[record_id] = _parse(kind, record_id, data, parser)
        except ValidationError:
            continue
    return parsed


class BusinessRepository:
    """Reads ``businesses/{id}`` and its child collections."""

    def __init__(self, store: IDocumentStore) -> None:
        self.store = store

    def get(self, business_id: str) -> Optional[Business]:
        data = self.store.read(business_path(business_id))
        return _parse("business", business_id, data, Business.from_dict) if data else None

    def get_all(self) -> Dict[str, Business]:
        return _parse_each("business", self.store.read(BUSINESSES_PATH) or {}, Business.from_dict)

    def existing_keys(self) -> set:
        raw = self.store.read(BUSINESSES_PATH) or {}
        return {
            data.get("businessKey")
            for data in raw.values()
            if isinstance(data, dict) and data.get("businessKey")
        }

    def find_by_key(self, business_key: str) -> Optional[Business]:
        """Resolve a business key; keys are compared upper-cased."""
        wanted = (business_key or "").strip().upper()
        if not wanted:
            return None
        raw = self.store.read(BUSINESSES_PATH) or {}
        for business_id, data in raw.items():
            if isinstance(data, dict) and (data.get("businessKey") or "").upper() == wanted:
                return _parse("business", business_id, data, Business.from_dict)
        return None

    def get_service(self, business_id: str, service_id: str) -> Optional[Service]:
        data = self.store.read(f"{collection_path(business_id, 'services')}/{service_id}")
        return _parse("service", service_id, data, Service.from_dict) if data else None

    def list_services(self, business_id: str) -> Dict[str, Service]:
        raw = self.store.read(collection_path(business_id, "services")) or {}
        return _parse_each("service", raw, Service.from_dict)

    def get_client(self, business_id: str, client_id: str) -> Optional[Client]:
        data = self.store.read(f"{collection_path(business_id, 'clients')}/{client_id}")
        return _parse("client", client_id, data, Client.from_dict) if data else None

    def list_clients(self, business_id: str) -> Dict[str, Client]:
        raw = self.store.read(collection_path(business_id, "clients")) or {}
        return _parse_each("client", raw, Client.from_dict)

    def list_appointments(self, business_id: str) -> List[Appointment]:
        raw = self.store.read(collection_path(business_id, "appointments")) or {}
        return list(_parse_each("appointment", raw, Appointment.from_dict).values())

    def get_appointment(self, business_id: str, appointment_id: str) -> Optional[Appointment]:
        data = self.store.read(
            f"{collection_path(business_id, 'appointments')}/{appointment_id}"
        )
        return _parse("appointment", appointment_id, data, Appointment.from_dict) if data else None
