"""
Weekly slot generation for the booking calendar.

A week runs Monday to Friday. Every business day is split into fixed length
slots between the opening and closing time, closing time exclusive. With the
defaults (09:00-17:00, 30 minutes) that is 16 slots a day and 80 a week.

Slots are built from their calendar date and wall-clock time in the configured
timezone. Weeks that cross a daylight saving change are not normalized: each
slot simply carries the UTC offset the zone assigns to that wall time.
"""
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Optional

from .appointment import Appointment
from .booking_utils import resolve_timezone, split_into_segments, to_iso, utc_now
from .conflicts import ConflictChecker

PAST = "past"
BOOKED = "booked"
AVAILABLE = "available"


def parse_clock(value) -> time:
    """Accepts a time object or an 'HH:MM' string."""
    if isinstance(value, time):
        return value
    try:
        return datetime.strptime(value, "%H:%M").time()
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid time of day: {value!r}") from e


class SlotGenerator:

    BUSINESS_DAYS = 5  # Monday through Friday

    def __init__(self, timezone: str = "UTC", day_start="09:00", day_end="17:00", slot_minutes: int = 30):
        self.tz = resolve_timezone(timezone)
        self.day_start = parse_clock(day_start)
        self.day_end = parse_clock(day_end)
        if self.day_end <= self.day_start:
            raise ValueError("Business day must end after it starts")
        if slot_minutes <= 0:
            raise ValueError("Slot length must be positive")
        self.slot_minutes = slot_minutes

    def _local(self, reference: Optional[datetime]) -> datetime:
        if reference is None:
            reference = utc_now()
        elif reference.tzinfo is None:
            reference = reference.replace(tzinfo=self.tz)
        return reference.astimezone(self.tz)

    def week_start(self, reference: Optional[datetime] = None) -> datetime:
        """Midnight of the Monday at or before the reference date."""
        local = self._local(reference)
        # Monday == 0
        monday: date = local.date() - timedelta(days=local.weekday())
        return datetime.combine(monday, time(0, 0), tzinfo=self.tz)

    def generate(self, reference: Optional[datetime] = None) -> List[datetime]:
        """
        Ordered slot instants for the week containing reference (default: now).
        Recomputed on every call.
        """
        monday = self.week_start(reference).date()
        slots = []
        for offset in range(self.BUSINESS_DAYS):
            day = monday + timedelta(days=offset)
            begin = datetime.combine(day, self.day_start, tzinfo=self.tz)
            end = datetime.combine(day, self.day_end, tzinfo=self.tz)
            slots.extend(split_into_segments(begin, end, self.slot_minutes))
        return slots

    @staticmethod
    def classify(slot: datetime, appointments: Iterable[Appointment], now: datetime, checker: ConflictChecker) -> str:
        # Booked wins over past so already taken slots still read as taken
        if checker.check(slot, appointments):
            return BOOKED
        if slot < now:
            return PAST
        return AVAILABLE

    def week_view(self, appointments: Iterable[Appointment], reference: Optional[datetime] = None,
                  now: Optional[datetime] = None, checker: Optional[ConflictChecker] = None) -> List[Dict[str, str]]:
        """
        Slots for the week with their display state, ready for JSON or template rendering.
        """
        appointments = list(appointments)
        now = now or utc_now()
        checker = checker or ConflictChecker()
        return [
            {"dateTime": to_iso(slot), "state": self.classify(slot, appointments, now, checker)}
            for slot in self.generate(reference)
        ]
