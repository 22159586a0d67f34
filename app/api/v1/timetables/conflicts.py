"""
Slot overlap detection. Intervals are half-open [start, end): a slot ending at 10:00
does not clash with one starting at 10:00. Only slots on the same day can clash;
room is not part of the test.
"""

from dataclasses import dataclass
from datetime import datetime, time
from typing import Any, Iterable, List, Optional, Union
from uuid import UUID

from app.core.exceptions import ValidationError


def parse_time_24(v: Union[str, time]) -> time:
    """Parse 24-hour time string (HH:MM or HH:MM:SS) to time."""
    if isinstance(v, time):
        return v
    if isinstance(v, str):
        v = v.strip()
        if len(v) == 5:  # HH:MM
            return datetime.strptime(v, "%H:%M").time()
        return datetime.strptime(v, "%H:%M:%S").time()
    raise ValueError("start_time/end_time must be 24-hour string (e.g. 09:00, 09:45) or time")


@dataclass(frozen=True)
class Interval:
    day_of_week: int  # 0=Monday .. 6=Sunday
    start: time
    end: time

    def __post_init__(self) -> None:
        if not 0 <= self.day_of_week <= 6:
            raise ValidationError("day_of_week must be between 0 (Monday) and 6 (Sunday)")
        if self.start >= self.end:
            raise ValidationError("end_time must be after start_time")

    @classmethod
    def parse(cls, day_of_week: int, start: Union[str, time], end: Union[str, time]) -> "Interval":
        try:
            return cls(day_of_week, parse_time_24(start), parse_time_24(end))
        except ValueError as e:
            raise ValidationError(str(e))

    @classmethod
    def of(cls, slot: Any) -> "Interval":
        """Interval of anything with day_of_week/start_time/end_time (e.g. a TimetableSlot)."""
        return cls(slot.day_of_week, slot.start_time, slot.end_time)


def overlaps(a: Interval, b: Interval) -> bool:
    """
    Examples:
        Mon 09:00-10:00 vs Mon 09:30-10:30 -> True
        Mon 09:00-10:00 vs Mon 10:00-11:00 -> False
        Mon 09:00-10:00 vs Tue 09:00-10:00 -> False
    """
    return a.day_of_week == b.day_of_week and a.start < b.end and b.start < a.end


def find_conflicts(candidate: Interval, slots: Iterable[Any], exclude_id: Optional[UUID] = None) -> List[Any]:
    """Every slot overlapping candidate, in input order. exclude_id skips the slot being edited."""
    return [
        s for s in slots
        if (exclude_id is None or s.id != exclude_id) and overlaps(candidate, Interval.of(s))
    ]
