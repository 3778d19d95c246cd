"""
Appointment service: conflict checking and the appointment write path.

Conflict rules:
- Services with ``resources > 1`` never conflict
- Two bookings conflict when they share service and date and their
  half-open ``[start, end)`` minute ranges overlap (touching ends are fine)
- Cancelled bookings and the booking being edited are ignored

The conflict check and the write are two separate store calls; two
concurrent bookings of the same slot can both pass the check.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from agenda.core.config import utc_now
from agenda.core.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from agenda.domain.entities import Appointment, Service, User, to_iso
from agenda.domain.interfaces import IDocumentStore
from agenda.repositories.business_repo import BusinessRepository, collection_path
from agenda.schemas.dtos import AppointmentCreateRequest, AppointmentUpdateRequest
from agenda.services.access_control import AccessGate, Capability, require
from agenda.services.realtime_license_service import RealTimeLicenseService

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60
FOLLOW_UP_START = "10:00"


def time_to_minutes(value: str) -> int:
    """``"HH:MM"`` -> minutes since midnight."""
    try:
        hours, minutes = value.split(":")
        return int(hours) * 60 + int(minutes)
    except (AttributeError, ValueError):
        raise ValidationError(f"Invalid time: {value!r}") from None


def minutes_to_time(total: int) -> str:
    total %= MINUTES_PER_DAY
    return f"{total // 60:02d}:{total % 60:02d}"


def derive_end_time(start_time: str, duration: int) -> str:
    """Start plus duration, wrapping past midnight like a wall clock."""
    return minutes_to_time(time_to_minutes(start_time) + duration)


def find_conflicts(
    candidate: Appointment,
    services: Dict[str, Service],
    appointments: Iterable[Appointment],
    exclude_id: Optional[str] = None,
) -> List[Appointment]:
    """Existing appointments that collide with ``candidate``."""
    service = services.get(candidate.service_id)
    if service is None or not service.is_exclusive:
        return []
    if not (candidate.date and candidate.start_time and candidate.end_time):
        return []

    start = time_to_minutes(candidate.start_time)
    end = time_to_minutes(candidate.end_time)

    conflicts = []
    for existing in appointments:
        if exclude_id is not None and existing.id == exclude_id:
            continue
        if existing.is_cancelled:
            continue
        if existing.service_id != candidate.service_id or existing.date != candidate.date:
            continue
        existing_start = time_to_minutes(existing.start_time)
        existing_end = time_to_minutes(existing.end_time)
        if existing_start < end and existing_end > start:
            conflicts.append(existing)
    return conflicts


class AppointmentService:
    """Application service for appointment-related use-cases.

    Every write runs, in order: business authorisation, license write gate,
    validation, conflict check, persistence.
    """

    def __init__(
        self,
        store: IDocumentStore,
        clock: Callable[[], datetime] = utc_now,
        license_monitor: Optional[RealTimeLicenseService] = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.business_repo = BusinessRepository(store)
        self.license_monitor = license_monitor or RealTimeLicenseService(store, clock)

    def _authorize(self, actor: User, business_id: str) -> None:
        belongs = actor.has_access_to(business_id) or (
            actor.is_owner and actor.current_business == business_id
        )
        if not belongs:
            raise PermissionDeniedError("No tiene acceso a este negocio")
        require(actor.role, Capability.APPOINTMENT_WRITE)

    def _require_writable(self, actor: User, business_id: str) -> None:
        gate = AccessGate(
            actor.role,
            is_blocked=actor.is_blocked,
            license_status=self.license_monitor.check_business_license(business_id),
            blocked_reason=actor.blocked_reason,
        )
        gate.require_write()

    def _check_conflicts(
        self, business_id: str, candidate: Appointment, services: Dict[str, Service]
    ) -> None:
        conflicts = find_conflicts(
            candidate,
            services,
            self.business_repo.list_appointments(business_id),
            exclude_id=candidate.id,
        )
        if not conflicts:
            return
        holder = conflicts[0]
        client = self.business_repo.get_client(business_id, holder.client_id)
        client_name = client.name if client and client.name else "otro cliente"
        logger.info(
            "Appointment conflict",
            extra={
                "context": {
                    "business_id": business_id,
                    "service_id": candidate.service_id,
                    "date": candidate.date,
                    "conflicting_appointment": holder.id,
                }
            },
        )
        raise ConflictError(
            f"Conflicto de horario: Ya hay una cita programada con {client_name} "
            "en este horario para este servicio.",
            client_id=holder.client_id,
            client_name=client_name,
            appointment_id=holder.id,
        )

    def _resolve_times(self, candidate: Appointment, service: Service, end_given: bool) -> None:
        if not end_given:
            candidate.end_time = derive_end_time(candidate.start_time, service.duration)
        if time_to_minutes(candidate.end_time) <= time_to_minutes(candidate.start_time):
            raise ValidationError("End time must be after start time")

    def _load_refs(self, business_id: str, candidate: Appointment) -> Dict[str, Service]:
        services = self.business_repo.list_services(business_id)
        if candidate.service_id not in services:
            raise ValidationError(f"Unknown service: {candidate.service_id}")
        if self.business_repo.get_client(business_id, candidate.client_id) is None:
            raise ValidationError(f"Unknown client: {candidate.client_id}")
        return services

    def create_appointment(
        self, actor: User, business_id: str, request: AppointmentCreateRequest
    ) -> Appointment:
        """Create a new appointment with business rule validation."""
        self._authorize(actor, business_id)
        self._require_writable(actor, business_id)
        request.validate()

        candidate = Appointment(
            client_id=request.client_id,
            service_id=request.service_id,
            date=request.date,
            start_time=request.start_time,
            end_time=request.end_time or "",
            status=request.status,
            business_id=business_id,
            created_by=actor.uid,
            notes=request.notes,
        )
        services = self._load_refs(business_id, candidate)
        self._resolve_times(candidate, services[candidate.service_id], bool(request.end_time))
        self._check_conflicts(business_id, candidate, services)

        path = collection_path(business_id, "appointments")
        stamp = to_iso(self.clock())
        candidate.id = self.store.generate_key(path)
        candidate.created_at = stamp
        candidate.updated_at = stamp
        self.store.write(f"{path}/{candidate.id}", candidate.to_dict())

        logger.info(
            "Appointment created",
            extra={
                "context": {
                    "business_id": business_id,
                    "appointment_id": candidate.id,
                    "created_by": actor.uid,
                }
            },
        )
        return candidate

    def update_appointment(
        self,
        actor: User,
        business_id: str,
        appointment_id: str,
        changes: AppointmentUpdateRequest,
    ) -> Appointment:
        """Apply an edit or a calendar drag/resize, re-checking conflicts."""
        self._authorize(actor, business_id)
        self._require_writable(actor, business_id)
        changes.validate()

        existing = self.business_repo.get_appointment(business_id, appointment_id)
        if existing is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")

        delta = changes.changes()
        for attr, value in delta.items():
            setattr(existing, attr, value)
        existing.id = appointment_id

        services = self._load_refs(business_id, existing)
        rederive = "end_time" not in delta and (
            "service_id" in delta or "start_time" in delta
        )
        self._resolve_times(existing, services[existing.service_id], not rederive)
        if not existing.is_cancelled:
            self._check_conflicts(business_id, existing, services)

        existing.updated_at = to_iso(self.clock())
        path = f"{collection_path(business_id, 'appointments')}/{appointment_id}"
        self.store.write(path, existing.to_dict())

        logger.info(
            "Appointment updated",
            extra={
                "context": {
                    "business_id": business_id,
                    "appointment_id": appointment_id,
                    "fields": sorted(delta),
                }
            },
        )
        return existing

    def delete_appointment(self, actor: User, business_id: str, appointment_id: str) -> None:
        self._authorize(actor, business_id)
        self._require_writable(actor, business_id)
        path = f"{collection_path(business_id, 'appointments')}/{appointment_id}"
        if self.store.read(path) is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        self.store.write(path, None)
        logger.info(
            "Appointment deleted",
            extra={"context": {"business_id": business_id, "appointment_id": appointment_id}},
        )

    def list_appointments(
        self, business_id: str, date: Optional[str] = None
    ) -> List[Appointment]:
        appointments = self.business_repo.list_appointments(business_id)
        if date is not None:
            appointments = [apt for apt in appointments if apt.date == date]
        return sorted(appointments, key=lambda apt: (apt.date, apt.start_time, apt.id or ""))

    def create_follow_up(
        self,
        actor: User,
        business_id: str,
        client_id: str,
        service_id: str,
        date: str,
        treatment: str = "",
        duration: Optional[int] = None,
    ) -> Appointment:
        """Book a follow-up at 10:00 on ``date`` for a treatment just recorded."""
        service = self.business_repo.get_service(business_id, service_id)
        minutes = duration or (service.duration if service else 60)
        request = AppointmentCreateRequest(
            client_id=client_id,
            service_id=service_id,
            date=date,
            start_time=FOLLOW_UP_START,
            end_time=derive_end_time(FOLLOW_UP_START, minutes),
            notes=f"Seguimiento de: {treatment}",
        )
        return self.create_appointment(actor, business_id, request)
