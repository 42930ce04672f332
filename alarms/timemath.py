"""Trigger-instant arithmetic for class alarms.

Everything here is pure: callers pass the reference instant explicitly, so the
same inputs always produce the same trigger instants.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Union

from .parser import TimeOfDay, Weekday


class _Past:
    """Marker returned when a one-shot instant is not in the future."""

    def __repr__(self) -> str:
        return "PAST"

    def __bool__(self) -> bool:
        return False


PAST = _Past()


def at_time_of_day(day: datetime, time_of_day: TimeOfDay) -> datetime:
    return day.replace(hour=time_of_day.hour, minute=time_of_day.minute, second=0, microsecond=0)


def next_occurrence(time_of_day: TimeOfDay, weekday: Weekday, reference: datetime) -> datetime:
    """Next instant strictly after `reference` falling on `weekday` at `time_of_day`.

    A slot later today is kept; once today's slot has passed (or equals the
    reference) the alarm rolls to the following week.
    """
    days_to_add = (int(weekday) - reference.weekday() + 7) % 7
    candidate = at_time_of_day(reference + timedelta(days=days_to_add), time_of_day)
    if candidate <= reference:
        candidate = candidate + timedelta(days=7)
    return candidate


def next_occurrence_one_shot(instant: datetime, reference: datetime) -> Union[datetime, _Past]:
    if instant > reference:
        return instant
    return PAST


def roll_forward_days(instant: datetime, reference: datetime) -> datetime:
    """Shift `instant` by whole days until it is strictly after `reference`."""
    if instant > reference:
        return instant
    days = (reference.date() - instant.date()).days
    rolled = instant + timedelta(days=max(days, 1))
    while rolled <= reference:
        rolled = rolled + timedelta(days=1)
    return rolled


def offset_earlier(instant: datetime, minutes: int) -> datetime:
    """Move `instant` `minutes` earlier on the wall clock.

    Minutes borrow from the hour, hours below zero wrap to 23 and borrow a day,
    so Monday 00:02 minus 5 is Sunday 23:57. Only wall-clock fields are touched.
    """
    if minutes < 0:
        raise ValueError("minutes must be non-negative")
    minute = instant.minute - minutes
    hour = instant.hour
    days_back = 0
    while minute < 0:
        minute += 60
        hour -= 1
    while hour < 0:
        hour += 24
        days_back += 1
    shifted = instant - timedelta(days=days_back) if days_back else instant
    return shifted.replace(hour=hour, minute=minute)

