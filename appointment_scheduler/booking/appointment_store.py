import logging
import threading
import time
from typing import Any, Dict, List

from .appointment import Appointment
from .booking_utils import (MAX_NAME_LENGTH, MAX_REASON_LENGTH, canonical, missing_fields, parse_datetime,
                            sanitize_email, sanitize_text, to_iso, utc_now)
from .conflicts import ConflictChecker
from .error_utils import BookingError, ConflictError, NotFoundError, StorageError, ValidationError

logger = logging.getLogger(__name__)


class AppointmentStore:
    """
    Authoritative collection of appointments.

    The collection is loaded once from the storage backend and written back in full after every mutation.
    create() and delete() each run their check-then-write sequence under one lock, so at most one mutation is in flight.
    """

    def __init__(self, storage, checker: ConflictChecker = None):
        self._storage = storage
        self._checker = checker or ConflictChecker()
        self._lock = threading.RLock()
        self._appointments: List[Appointment] = self._load()
        self._last_id = max((a.id for a in self._appointments), default=0)
        logger.info("Loaded %d appointments", len(self._appointments))

    def _load(self) -> List[Appointment]:
        """
        Rebuild the collection from storage. A record that can't be read back, or a repeated id, means the stored data is corrupt.
        """
        appointments = []
        seen_ids = set()
        for position, record in enumerate(self._storage.read_all()):
            try:
                appointment = Appointment.from_dict(record)
            except (KeyError, TypeError, ValueError, AttributeError, BookingError) as e:
                logger.error("Stored appointment at position %d is malformed: %r", position, e)
                raise StorageError(position=position) from e
            if appointment.id in seen_ids:
                logger.error("Stored appointment id %s appears more than once", appointment.id)
                raise StorageError(position=position)
            seen_ids.add(appointment.id)
            appointments.append(appointment)
        return appointments

    @property
    def checker(self) -> ConflictChecker:
        return self._checker

    def _next_id(self) -> int:
        # Time derived like a millisecond timestamp but never reused within this store
        self._last_id = max(int(time.time() * 1000), self._last_id + 1)
        return self._last_id

    def _persist(self, appointments: List[Appointment]) -> None:
        self._storage.write_all([a.to_dict() for a in appointments])

    def create(self, candidate: Dict[str, Any]) -> Appointment:
        """
        Validate, conflict check and append a new appointment.

        Raises ValidationError, ConflictError or StorageError. Nothing is stored unless every check passed.
        """
        if not isinstance(candidate, dict):
            candidate = {}

        missing = missing_fields(candidate)
        if missing:
            raise ValidationError("Missing required fields", missing=missing)

        name = sanitize_text(candidate.get("name"), "name", MAX_NAME_LENGTH)
        email = sanitize_email(candidate.get("email"))
        reason = sanitize_text(candidate.get("reason"), "reason", MAX_REASON_LENGTH, required=False)
        requested = canonical(parse_datetime(candidate.get("dateTime")))

        with self._lock:
            result = self._checker.check(requested, self._appointments)
            if result:
                logger.warning("Booking at %s conflicts with appointment %s", to_iso(requested), result.appointment.id)
                raise ConflictError(to_iso(requested))

            previous_id = self._last_id
            appointment = Appointment(
                id=self._next_id(),
                name=name,
                email=email,
                date_time=requested,
                reason=reason,
                created_at=canonical(utc_now()),
            )
            try:
                self._persist(self._appointments + [appointment])
            except StorageError:
                self._last_id = previous_id
                raise
            self._appointments.append(appointment)

        logger.info("Appointment %s booked for %s", appointment.id, to_iso(requested))
        return appointment

    def list(self) -> List[Appointment]:
        """Snapshot of the collection in insertion order."""
        with self._lock:
            return list(self._appointments)

    def _index_of(self, appointment_id) -> int:
        try:
            wanted = int(appointment_id)
        except (TypeError, ValueError):
            raise NotFoundError(appointment_id)
        for index, appointment in enumerate(self._appointments):
            if appointment.id == wanted:
                return index
        raise NotFoundError(appointment_id)

    def get(self, appointment_id) -> Appointment:
        with self._lock:
            return self._appointments[self._index_of(appointment_id)]

    def delete(self, appointment_id) -> Dict[str, Any]:
        """
        Remove exactly one appointment.

        Returns: dict with the removed id and the deletion timestamp. Raises NotFoundError for unknown ids.
        """
        with self._lock:
            try:
                index = self._index_of(appointment_id)
            except NotFoundError:
                logger.warning("Cancellation requested for unknown appointment %s", appointment_id)
                raise
            removed = self._appointments[index]
            remaining = self._appointments[:index] + self._appointments[index + 1:]
            self._persist(remaining)
            self._appointments = remaining

        logger.info("Appointment %s cancelled", removed.id)
        return {"id": removed.id, "deletedAt": to_iso(utc_now())}
