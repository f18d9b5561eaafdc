"""Query result models."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class Departure:
    """A scheduled departure from a stop."""

    trip_id: str
    minutes_until: int
    scheduled_departure: datetime
    direction_id: int
    direction: str
    destination: str

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["scheduled_departure"] = self.scheduled_departure.isoformat()
        return data
