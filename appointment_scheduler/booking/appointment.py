from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict

from .booking_utils import parse_datetime, to_iso


@dataclass(frozen=True)
class Appointment:
    """A single booking. Never mutated after creation."""
    id: int
    name: str
    email: str
    date_time: datetime
    reason: str
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """JSON shape shared by the API and the storage backends."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "dateTime": to_iso(self.date_time),
            "reason": self.reason,
            "createdAt": to_iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> "Appointment":
        # Records come from our own storage so they were normalized when created
        return cls(
            id=int(record["id"]),
            name=record["name"],
            email=record["email"],
            date_time=parse_datetime(record["dateTime"]),
            reason=record.get("reason") or "",
            created_at=parse_datetime(record["createdAt"]),
        )
