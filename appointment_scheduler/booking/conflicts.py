from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from .appointment import Appointment

DEFAULT_TOLERANCE = timedelta(seconds=60)


@dataclass
class ConflictResult:
    """Type-safe result for conflict checks."""
    has_conflict: bool
    appointment: Optional[Appointment] = None

    def __bool__(self):
        return self.has_conflict


class ConflictChecker:
    """
    Decides whether a candidate instant collides with existing appointments.

    Two instants conflict when they are strictly closer than the tolerance window.
    Shrinking the tolerance to a microsecond gives an exact match rule.
    """

    def __init__(self, tolerance: timedelta = DEFAULT_TOLERANCE):
        if tolerance <= timedelta(0):
            raise ValueError("Conflict tolerance must be positive")
        self.tolerance = tolerance

    def check(self, candidate: datetime, appointments: Iterable[Appointment]) -> ConflictResult:
        """
        Args:
            candidate: aware datetime of the requested booking
            appointments: the current collection, in storage order

        Returns:
            ConflictResult holding the first conflicting appointment, if any
        """
        for appointment in appointments:
            if abs(appointment.date_time - candidate) < self.tolerance:
                return ConflictResult(True, appointment)
        return ConflictResult(False)
