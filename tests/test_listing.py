from datetime import date, datetime, timezone

from alarms.listing import alarms_for_day, format_alarm_time, group_alarms_by_date, today_alarms, tomorrow_alarms
from alarms.parser import TimeOfDay, Weekday
from alarms.storage import Alarm, OnceRecurrence, WeeklyRecurrence


def _now() -> datetime:
    return datetime(2025, 1, 6, 8, 0, tzinfo=timezone.utc)


def _weekly(alarm_id, hour, *days) -> Alarm:
    return Alarm(
        id=alarm_id,
        subject=f"Subject {alarm_id}",
        classroom="Room",
        time_of_day=TimeOfDay(hour, 0),
        recurrence=WeeklyRecurrence(frozenset(days)),
    )


def _once(alarm_id, at) -> Alarm:
    return Alarm(
        id=alarm_id,
        subject=f"Subject {alarm_id}",
        classroom="Room",
        time_of_day=TimeOfDay(at.hour, at.minute),
        recurrence=OnceRecurrence(at),
    )


def test_format_alarm_time_prefixes():
    assert format_alarm_time(datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc), _now()) == "today 09:00"
    assert format_alarm_time(datetime(2025, 1, 7, 9, 0, tzinfo=timezone.utc), _now()) == "tomorrow 09:00"
    assert format_alarm_time(datetime(2025, 1, 9, 9, 0, tzinfo=timezone.utc), _now()) == "09.01 09:00"


def test_today_and_tomorrow_mix_weekly_and_one_shot():
    alarms = [
        _weekly(1, 11, Weekday.MON),
        _weekly(2, 9, Weekday.MON, Weekday.TUE),
        _once(3, datetime(2025, 1, 7, 7, 0, tzinfo=timezone.utc)),
        _once(4, datetime(2025, 1, 8, 7, 0, tzinfo=timezone.utc)),
    ]
    assert [a.id for a in today_alarms(alarms, _now())] == [2, 1]
    assert [a.id for a in tomorrow_alarms(alarms, _now())] == [3, 2]
    assert [a.id for a in alarms_for_day(alarms, date(2025, 1, 8))] == [4]


def test_group_alarms_by_date():
    alarms = [
        _weekly(1, 11, Weekday.WED),
        _weekly(2, 9, Weekday.MON, Weekday.WED),
        _once(3, datetime(2025, 1, 7, 7, 0, tzinfo=timezone.utc)),
    ]
    grouped = group_alarms_by_date(alarms)
    assert list(grouped) == ["Tue Jan 07 2025", "Monday", "Wednesday"]
    assert [a.id for a in grouped["Wednesday"]] == [2, 1]
