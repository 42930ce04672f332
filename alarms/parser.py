from __future__ import annotations

import re
from dataclasses import dataclass
from enum import IntEnum
from typing import FrozenSet, Iterable, Optional

from .errors import ValidationError

TIME_12H_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])\s*$")
TIME_24H_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


class Weekday(IntEnum):
    MON = 0
    TUE = 1
    WED = 2
    THU = 3
    FRI = 4
    SAT = 5
    SUN = 6

    @property
    def short_name(self) -> str:
        return self.name.capitalize()

    @classmethod
    def parse(cls, token) -> "Weekday":
        if isinstance(token, Weekday):
            return token
        if isinstance(token, int) and not isinstance(token, bool):
            if 0 <= token <= 6:
                return cls(token)
            raise ValidationError("days", f"Weekday index out of range: {token}")
        cleaned = str(token).strip().lower()
        day = DAY_NAMES.get(cleaned)
        if day is None:
            raise ValidationError("days", f"Unknown weekday: {token!r}")
        return day


DAY_NAMES = {
    "mon": Weekday.MON,
    "monday": Weekday.MON,
    "tue": Weekday.TUE,
    "tuesday": Weekday.TUE,
    "wed": Weekday.WED,
    "wednesday": Weekday.WED,
    "thu": Weekday.THU,
    "thursday": Weekday.THU,
    "fri": Weekday.FRI,
    "friday": Weekday.FRI,
    "sat": Weekday.SAT,
    "saturday": Weekday.SAT,
    "sun": Weekday.SUN,
    "sunday": Weekday.SUN,
}


@dataclass(frozen=True)
class TimeOfDay:
    hour: int
    minute: int

    def __post_init__(self) -> None:
        if not (0 <= self.hour <= 23 and 0 <= self.minute <= 59):
            raise ValidationError("time", f"Time out of range: {self.hour}:{self.minute:02d}")

    def format(self) -> str:
        """Render as the "H:MM AM|PM" form accepted by parse_time_of_day."""
        period = "AM" if self.hour < 12 else "PM"
        hour = self.hour % 12 or 12
        return f"{hour}:{self.minute:02d} {period}"

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


def parse_time_of_day(text: str) -> TimeOfDay:
    """Parse "H:MM AM|PM" (or 24h "HH:MM") into a TimeOfDay.

    12 AM is hour 0, 12 PM is hour 12, PM hours 1-11 add 12.
    """
    if not isinstance(text, str):
        raise ValidationError("time", f"Invalid time format: {text!r}")

    match = TIME_12H_RE.match(text)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2))
        period = match.group(3).upper()
        if not (1 <= hour <= 12) or minute > 59:
            raise ValidationError("time", f"Invalid time format: {text!r}")
        return TimeOfDay(_to_24h(hour, period), minute)

    match = TIME_24H_RE.match(text)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2))
        if hour > 23 or minute > 59:
            raise ValidationError("time", f"Invalid time format: {text!r}")
        return TimeOfDay(hour, minute)

    raise ValidationError("time", f"Invalid time format: {text!r}")


def parse_weekdays(tokens: Optional[Iterable]) -> FrozenSet[Weekday]:
    """Parse a collection of day tokens ("Mon", "tuesday", 2, ...) into a weekday set.

    A single comma separated string is accepted as well. Empty input gives an
    empty set; deciding whether that is allowed is up to the caller.
    """
    if tokens is None:
        return frozenset()
    if isinstance(tokens, str):
        tokens = [chunk for chunk in re.split(r"[,\s]+", tokens) if chunk]
    return frozenset(Weekday.parse(token) for token in tokens)


def _to_24h(hour: int, period: str) -> int:
    if period == "AM":
        return 0 if hour == 12 else hour
    return hour if hour == 12 else hour + 12
