# backend/lounge/services/slots/intervals.py
"""
Wall-clock interval arithmetic.

Times are "HH:MM" strings on a 24-hour clock and are compared as minutes
since midnight. An end time of "00:00" means the end of the day (1440),
never the start, so a 23:00-00:00 slot is the last hour of the day.
"""

import re
from dataclasses import dataclass
from datetime import date

from ...errors import MalformedTime, ValidationError

MINUTES_PER_DAY = 24 * 60

TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def time_str_to_minutes(hhmm: str) -> int:
    """Parse "HH:MM" into minutes since midnight."""
    if not isinstance(hhmm, str):
        raise MalformedTime(
            "Invalid time format. Use HH:MM (24-hour)",
            received=hhmm,
        )
    match = TIME_RE.match(hhmm)
    if not match:
        raise MalformedTime(
            "Invalid time format. Use HH:MM (24-hour)",
            received=hhmm,
        )
    return int(match.group(1)) * 60 + int(match.group(2))


def minutes_to_time_str(minutes: int) -> str:
    """Format minutes since midnight as "HH:MM" (1440 → "00:00")."""
    minutes = minutes % MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalized_end(end_minutes: int) -> int:
    """Midnight as an end time is the end of the day."""
    return MINUTES_PER_DAY if end_minutes == 0 else end_minutes


def overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """
    True if the two intervals share any point in time.

    Four-clause test: a starts inside b, a ends inside b, a contains b,
    or b contains a. Back-to-back intervals (a_end == b_start) do not
    overlap.
    """
    a_end = normalized_end(a_end)
    b_end = normalized_end(b_end)
    return (
        (a_start >= b_start and a_start < b_end)
        or (a_end > b_start and a_end <= b_end)
        or (a_start <= b_start and a_end >= b_end)
        or (b_start <= a_start and b_end >= a_end)
    )


def parse_date(value: str) -> date:
    """Parse a strict "YYYY-MM-DD" date."""
    if not isinstance(value, str) or not DATE_RE.match(value):
        raise ValidationError("Invalid date format. Use YYYY-MM-DD", received=value)
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError("Invalid date format. Use YYYY-MM-DD", received=value) from None


@dataclass(frozen=True)
class Slot:
    """A start/end pair on one day, kept as the original strings."""

    start_time: str
    end_time: str

    @property
    def start_minute(self) -> int:
        return time_str_to_minutes(self.start_time)

    @property
    def end_minute(self) -> int:
        return normalized_end(time_str_to_minutes(self.end_time))

    def overlaps(self, other: "Slot") -> bool:
        return overlaps(self.start_minute, self.end_minute, other.start_minute, other.end_minute)

    def contains_minute(self, minute: int) -> bool:
        return self.start_minute <= minute < self.end_minute

    def __str__(self) -> str:
        return f"{self.start_time} - {self.end_time}"


def parse_slot(start_time: str, end_time: str) -> Slot:
    """
    Build a validated Slot.

    Raises MalformedTime for bad strings and ValidationError when the
    normalized end is not after the start.
    """
    start = time_str_to_minutes(start_time)
    end = normalized_end(time_str_to_minutes(end_time))
    if end <= start:
        raise ValidationError(
            "End time must be after start time",
            received={"start_time": start_time, "end_time": end_time},
        )
    return Slot(start_time=start_time, end_time=end_time)
