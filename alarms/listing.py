"""Read-only views over a snapshot of alarms, for list and schedule screens."""

from __future__ import annotations

import calendar
from collections import OrderedDict
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List

from .storage import Alarm, OnceRecurrence, WeeklyRecurrence


def format_alarm_time(dt: datetime, now: datetime) -> str:
    """Short label for a trigger instant: "today 09:00", "tomorrow 09:00" or "09.01 09:00"."""
    days_ahead = (dt.date() - now.date()).days
    if days_ahead == 0:
        prefix = "today"
    elif days_ahead == 1:
        prefix = "tomorrow"
    else:
        prefix = dt.strftime("%d.%m")
    return f"{prefix} {dt:%H:%M}"


def rings_on(alarm: Alarm, day: date) -> bool:
    recurrence = alarm.recurrence
    if isinstance(recurrence, WeeklyRecurrence):
        return day.weekday() in recurrence.days
    if isinstance(recurrence, OnceRecurrence):
        return recurrence.at.date() == day
    return False


def alarms_for_day(alarms: Iterable[Alarm], day: date) -> List[Alarm]:
    matching = [a for a in alarms if rings_on(a, day)]
    return sorted(matching, key=lambda a: (a.time_of_day.hour, a.time_of_day.minute, a.id))


def today_alarms(alarms: Iterable[Alarm], now: datetime) -> List[Alarm]:
    return alarms_for_day(alarms, now.date())


def tomorrow_alarms(alarms: Iterable[Alarm], now: datetime) -> List[Alarm]:
    return alarms_for_day(alarms, now.date() + timedelta(days=1))


def group_alarms_by_date(alarms: Iterable[Alarm]) -> Dict[str, List[Alarm]]:
    """Group one-shot alarms under their date and weekly alarms under each weekday name.

    Dated groups come first in date order, then Mon..Sun.
    """
    dated: Dict[date, List[Alarm]] = {}
    weekly: Dict[int, List[Alarm]] = {}
    for alarm in alarms:
        recurrence = alarm.recurrence
        if isinstance(recurrence, OnceRecurrence):
            dated.setdefault(recurrence.at.date(), []).append(alarm)
        elif isinstance(recurrence, WeeklyRecurrence):
            for day in recurrence.days:
                weekly.setdefault(int(day), []).append(alarm)

    def by_time(items: List[Alarm]) -> List[Alarm]:
        return sorted(items, key=lambda a: (a.time_of_day.hour, a.time_of_day.minute, a.id))

    grouped: Dict[str, List[Alarm]] = OrderedDict()
    for day in sorted(dated):
        grouped[day.strftime("%a %b %d %Y")] = by_time(dated[day])
    for index in sorted(weekly):
        grouped[calendar.day_name[index]] = by_time(weekly[index])
    return grouped
