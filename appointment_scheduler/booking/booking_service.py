import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from .appointment import Appointment
from .appointment_store import AppointmentStore
from .booking_utils import parse_datetime, to_iso, utc_now
from .conflicts import ConflictChecker
from .database import build_storage
from .error_utils import ValidationError
from .schedule import SlotGenerator

logger = logging.getLogger(__name__)


class BookingService:
    """
    Request handling contract for the web layer: the store's create/list/delete plus the derived read-only views.
    """

    def __init__(self, store: AppointmentStore, generator: SlotGenerator = None):
        self.store = store
        self.generator = generator or SlotGenerator()

    @classmethod
    def from_config(cls, config) -> "BookingService":
        """Build the whole booking stack from a Flask config mapping."""
        checker = ConflictChecker(timedelta(seconds=float(config.get("BOOKING_CONFLICT_TOLERANCE_SECONDS", 60))))
        generator = SlotGenerator(
            timezone=config.get("BOOKING_TIMEZONE", "UTC"),
            day_start=config.get("BOOKING_DAY_START", "09:00"),
            day_end=config.get("BOOKING_DAY_END", "17:00"),
            slot_minutes=int(config.get("BOOKING_SLOT_MINUTES", 30)),
        )
        storage = build_storage(config)
        logger.info("Booking service using %s", type(storage).__name__)
        return cls(AppointmentStore(storage, checker), generator)

    def book(self, payload: Dict[str, Any]) -> Appointment:
        return self.store.create(payload)

    def list_appointments(self) -> List[Appointment]:
        return self.store.list()

    def cancel(self, appointment_id) -> Dict[str, Any]:
        return self.store.delete(appointment_id)

    def list_upcoming(self, reference: Optional[datetime] = None) -> List[Appointment]:
        """Appointments strictly after reference (default: now), earliest first."""
        reference = parse_datetime(reference) if reference is not None else utc_now()
        upcoming = [a for a in self.store.list() if a.date_time > reference]
        return sorted(upcoming, key=lambda a: a.date_time)

    def list_in_range(self, start, end) -> List[Appointment]:
        """
        Appointments with start <= dateTime <= end, earliest first.

        Raises ValidationError when a bound is missing, unparsable or start is after end.
        """
        missing = [name for name, value in (("start", start), ("end", end)) if value is None or value == ""]
        if missing:
            raise ValidationError("start and end query parameters are required", missing=missing)
        start_at = parse_datetime(start)
        end_at = parse_datetime(end)
        if start_at > end_at:
            raise ValidationError("start must not be after end")
        in_range = [a for a in self.store.list() if start_at <= a.date_time <= end_at]
        return sorted(in_range, key=lambda a: a.date_time)

    def week_slots(self, reference: Optional[datetime] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
        """The bookable slots of a week with their past/booked/available state."""
        try:
            week_start = self.generator.week_start(reference)
            slots = self.generator.week_view(self.store.list(), reference, now, self.store.checker)
        except OverflowError:
            # The week around year 1 or 9999 doesn't fit in a datetime in the calendar's zone
            raise ValidationError("Week out of range")
        return {"weekStart": to_iso(week_start), "slots": slots}

    @staticmethod
    def health() -> Dict[str, str]:
        return {"status": "ok", "timestamp": to_iso(utc_now())}
