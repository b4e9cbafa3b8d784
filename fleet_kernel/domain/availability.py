"""Half-open booking windows and the overlap rule used for availability."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from fleet_kernel.domain.clock import ensure_utc
from fleet_kernel.exceptions import InvalidWindowError


@dataclass(frozen=True)
class TimeWindow:
    """``[start, end)`` in UTC."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "end", ensure_utc(self.end))
        if self.end <= self.start:
            raise InvalidWindowError(
                f"end {self.end.isoformat()} must be after start {self.start.isoformat()}",
                field="end_date",
            )

    def overlaps(self, other: "TimeWindow") -> bool:
        # Abutting windows (self.end == other.start) do not overlap.
        return self.start < other.end and other.start < self.end

    def contains(self, instant: datetime) -> bool:
        instant = ensure_utc(instant)
        return self.start <= instant < self.end

    @property
    def duration_minutes(self) -> float:
        return (self.end - self.start).total_seconds() / 60.0
