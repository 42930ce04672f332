from __future__ import annotations

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Union

from .errors import NotFound, StorageError, ValidationError
from .parser import TimeOfDay, Weekday, parse_time_of_day, parse_weekdays

logger = logging.getLogger(__name__)

ALARMS_KEY = "alarms"
SETTINGS_KEY = "settings"
NOTIFICATIONS_KEY = "scheduled_notifications"

DEFAULT_COLOR = "#7B2CBF"
DEFAULT_SOUND = "default"


def ensure_tz(dt: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Naive instants are wall-clock time in `tz`, or in the system zone when `tz` is None."""
    if dt.tzinfo:
        return dt
    if tz is not None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone()


@dataclass(frozen=True)
class WeeklyRecurrence:
    days: FrozenSet[Weekday]

    def sorted_days(self) -> List[Weekday]:
        return sorted(self.days)


@dataclass(frozen=True)
class OnceRecurrence:
    at: datetime


Recurrence = Union[WeeklyRecurrence, OnceRecurrence]


@dataclass(frozen=True)
class AlarmDraft:
    """User input for a new alarm, before the store assigns an id."""

    subject: str
    classroom: str
    time_of_day: Optional[TimeOfDay]
    recurrence: Optional[Recurrence]
    notify_before: Optional[bool] = None
    color: str = DEFAULT_COLOR
    sound: str = DEFAULT_SOUND
    is_active: bool = True
    notes: Optional[str] = None

    @classmethod
    def build(
        cls,
        subject: str,
        classroom: str,
        time: Optional[str] = None,
        days=None,
        at: Optional[datetime] = None,
        tz: Optional[tzinfo] = None,
        **kwargs,
    ) -> "AlarmDraft":
        """Build a draft from form-style values: "9:00 AM" plus day names, or an absolute `at`.

        A naive `at` is kept naive unless `tz` is given; `AlarmStore` localizes it on insert.
        """
        recurrence: Optional[Recurrence] = None
        time_of_day = parse_time_of_day(time) if time else None
        if at is not None:
            if tz is not None:
                at = ensure_tz(at, tz)
            recurrence = OnceRecurrence(at)
            time_of_day = TimeOfDay(at.hour, at.minute)
        elif days:
            recurrence = WeeklyRecurrence(parse_weekdays(days))
        return cls(
            subject=subject,
            classroom=classroom,
            time_of_day=time_of_day,
            recurrence=recurrence,
            **kwargs,
        )

    def validate(self) -> None:
        validate_fields(self.subject, self.classroom, self.time_of_day, self.recurrence)


@dataclass(frozen=True)
class Alarm:
    id: int
    subject: str
    classroom: str
    time_of_day: TimeOfDay
    recurrence: Recurrence
    notify_before: bool = False
    color: str = DEFAULT_COLOR
    sound: str = DEFAULT_SOUND
    is_active: bool = True
    notes: Optional[str] = None

    @property
    def is_recurring(self) -> bool:
        return isinstance(self.recurrence, WeeklyRecurrence)

    def validate(self) -> None:
        validate_fields(self.subject, self.classroom, self.time_of_day, self.recurrence)

    def to_dict(self) -> dict:
        recurrence = self.recurrence
        return {
            "id": self.id,
            "subject": self.subject,
            "classroom": self.classroom,
            "time": self.time_of_day.format(),
            "days": [d.short_name for d in recurrence.sorted_days()] if isinstance(recurrence, WeeklyRecurrence) else None,
            "at": recurrence.at.isoformat() if isinstance(recurrence, OnceRecurrence) else None,
            "notifyBefore": self.notify_before,
            "color": self.color,
            "sound": self.sound,
            "isActive": self.is_active,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict, tz: Optional[tzinfo] = None) -> "Alarm":
        if "id" not in data:
            raise ValueError("Alarm payload missing id field")
        time_raw = data.get("time")
        at_raw = data.get("at")
        days_raw = data.get("days")
        if not at_raw and not days_raw and time_raw and "T" in str(time_raw):
            # Records written with an ISO timestamp in "time" are one-shot alarms
            at_raw = time_raw
        if at_raw:
            at = ensure_tz(datetime.fromisoformat(at_raw), tz)
            recurrence: Recurrence = OnceRecurrence(at)
            time_of_day = TimeOfDay(at.hour, at.minute)
        elif days_raw:
            recurrence = WeeklyRecurrence(parse_weekdays(days_raw))
            time_of_day = parse_time_of_day(time_raw)
        else:
            raise ValueError(f"Alarm {data.get('id')} has neither days nor an absolute time")
        return cls(
            id=int(data["id"]),
            subject=str(data.get("subject") or ""),
            classroom=str(data.get("classroom") or ""),
            time_of_day=time_of_day,
            recurrence=recurrence,
            notify_before=bool(data.get("notifyBefore", False)),
            color=data.get("color") or DEFAULT_COLOR,
            sound=data.get("sound") or DEFAULT_SOUND,
            is_active=bool(data.get("isActive", True)),
            notes=data.get("notes"),
        )


def validate_fields(
    subject: str,
    classroom: str,
    time_of_day: Optional[TimeOfDay],
    recurrence: Optional[Recurrence],
) -> None:
    if not (subject or "").strip():
        raise ValidationError("subject")
    if not (classroom or "").strip():
        raise ValidationError("classroom")
    if time_of_day is None:
        raise ValidationError("time")
    if recurrence is None:
        raise ValidationError("recurrence", "days or a date is required")
    if isinstance(recurrence, WeeklyRecurrence) and not recurrence.days:
        raise ValidationError("days", "at least one day is required")


@dataclass
class Settings:
    dark_mode: Optional[bool] = None
    notifications: bool = True
    early_reminders: bool = True
    vibration: bool = True

    def to_dict(self) -> dict:
        return {
            "darkMode": self.dark_mode,
            "notifications": self.notifications,
            "earlyReminders": self.early_reminders,
            "vibration": self.vibration,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        defaults = cls()
        return cls(
            dark_mode=data.get("darkMode", defaults.dark_mode),
            notifications=bool(data.get("notifications", defaults.notifications)),
            early_reminders=bool(data.get("earlyReminders", defaults.early_reminders)),
            vibration=bool(data.get("vibration", defaults.vibration)),
        )


class KeyValueStore(ABC):
    """String-valued async key-value primitive; values are read and written wholesale."""

    @abstractmethod
    async def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def clear(self) -> None:
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    async def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    async def clear(self) -> None:
        self._items.clear()


class JsonFileKeyValueStore(KeyValueStore):
    """One `<key>.json` file per key under `directory`."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    async def get_item(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._read, self._path(key))

    async def set_item(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, self._path(key), value)

    async def remove_item(self, key: str) -> None:
        await asyncio.to_thread(self._unlink, self._path(key))

    async def clear(self) -> None:
        for path in sorted(self.directory.glob("*.json")):
            await asyncio.to_thread(self._unlink, path)

    @staticmethod
    def _read(path: Path) -> Optional[str]:
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as f:
                return f.read()
        except OSError as exc:
            raise StorageError(f"Failed to read {path}: {exc}") from exc

    @staticmethod
    def _write(path: Path, value: str) -> None:
        tmp_path = path.with_suffix(".json.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_path, path)
        except OSError as exc:
            raise StorageError(f"Failed to write {path}: {exc}") from exc

    @staticmethod
    def _unlink(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to remove {path}: {exc}") from exc


async def load_json(kv: KeyValueStore, key: str):
    raw = await kv.get_item(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise StorageError(f"Stored value under {key!r} is not valid JSON: {exc}") from exc


async def save_json(kv: KeyValueStore, key: str, payload) -> None:
    await kv.set_item(key, json.dumps(payload, ensure_ascii=False, indent=2))


class AlarmStore:
    """Durable list of alarms kept as one JSON array under a single key.

    Naive one-shot instants, whether stored or passed in, are read as wall-clock
    time in `tz` (the system zone when `tz` is None).
    """

    def __init__(self, kv: KeyValueStore, key: str = ALARMS_KEY, tz: Optional[tzinfo] = None):
        self.kv = kv
        self.key = key
        self.tz = tz

    async def list(self) -> List[Alarm]:
        payload = await load_json(self.kv, self.key)
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise StorageError(f"Stored alarms under {self.key!r} are not a list")
        alarms: List[Alarm] = []
        for item in payload:
            try:
                alarms.append(Alarm.from_dict(item, self.tz))
            except (ValueError, TypeError, AttributeError, ValidationError) as exc:
                raise StorageError(f"Corrupted alarm record {item!r}: {exc}") from exc
        return alarms

    async def get(self, alarm_id: int) -> Alarm:
        for alarm in await self.list():
            if alarm.id == alarm_id:
                return alarm
        raise NotFound(alarm_id)

    async def insert(self, draft: AlarmDraft, notify_before_default: bool = False) -> Alarm:
        alarms = await self.list()
        new_id = max((a.id for a in alarms), default=0) + 1
        alarm = Alarm(
            id=new_id,
            subject=draft.subject,
            classroom=draft.classroom,
            time_of_day=draft.time_of_day,
            recurrence=self._localize(draft.recurrence),
            notify_before=notify_before_default if draft.notify_before is None else draft.notify_before,
            color=draft.color,
            sound=draft.sound,
            is_active=draft.is_active,
            notes=draft.notes,
        )
        alarms.append(alarm)
        await self._save(alarms)
        logger.info("Stored alarm %s (%s)", alarm.id, alarm.subject)
        return alarm

    async def replace(self, alarm: Alarm) -> Alarm:
        alarm = replace(alarm, recurrence=self._localize(alarm.recurrence))
        alarms = await self.list()
        for index, existing in enumerate(alarms):
            if existing.id == alarm.id:
                alarms[index] = alarm
                await self._save(alarms)
                return alarm
        raise NotFound(alarm.id)

    async def remove(self, alarm_id: int) -> None:
        alarms = await self.list()
        remaining = [a for a in alarms if a.id != alarm_id]
        if len(remaining) == len(alarms):
            raise NotFound(alarm_id)
        await self._save(remaining)
        logger.info("Removed alarm %s from storage", alarm_id)

    async def clear_all(self) -> None:
        await self.kv.remove_item(self.key)

    async def _save(self, alarms: List[Alarm]) -> None:
        await save_json(self.kv, self.key, [a.to_dict() for a in alarms])

    def _localize(self, recurrence: Recurrence) -> Recurrence:
        if isinstance(recurrence, OnceRecurrence) and recurrence.at.tzinfo is None:
            return OnceRecurrence(ensure_tz(recurrence.at, self.tz))
        return recurrence


class SettingsStore:
    def __init__(self, kv: KeyValueStore, key: str = SETTINGS_KEY):
        self.kv = kv
        self.key = key

    async def get(self) -> Settings:
        payload = await load_json(self.kv, self.key)
        if payload is None:
            return Settings()
        if not isinstance(payload, dict):
            raise StorageError(f"Stored settings under {self.key!r} are not an object")
        return Settings.from_dict(payload)

    async def save(self, settings: Settings) -> None:
        await save_json(self.kv, self.key, settings.to_dict())
