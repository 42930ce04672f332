from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional

from .errors import NotificationSchedulingError, StorageError, ValidationError
from .parser import TimeOfDay, Weekday
from .sounds import AlarmSoundPlayer, LocalSpeaker
from .storage import NOTIFICATIONS_KEY, KeyValueStore, load_json, save_json
from .timemath import next_occurrence

logger = logging.getLogger(__name__)


class TriggerKind(str, Enum):
    MAIN = "main"
    EARLY = "early"


def notification_id(alarm_id: int, kind: TriggerKind, weekday: Optional[Weekday] = None) -> str:
    if weekday is None:
        return f"{alarm_id}:{kind.value}"
    return f"{alarm_id}:{kind.value}:{weekday.name.lower()}"


@dataclass(frozen=True)
class ScheduledNotification:
    id: str
    alarm_id: int
    kind: TriggerKind
    trigger_at: datetime
    title: str
    body: str
    sound: str = "default"
    repeats: bool = False
    weekday: Optional[Weekday] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "alarmId": self.alarm_id,
            "kind": self.kind.value,
            "triggerAt": self.trigger_at.isoformat(),
            "title": self.title,
            "body": self.body,
            "sound": self.sound,
            "repeats": self.repeats,
            "weekday": self.weekday.name.lower() if self.weekday is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ScheduledNotification":
        weekday_raw = data.get("weekday")
        return cls(
            id=str(data["id"]),
            alarm_id=int(data["alarmId"]),
            kind=TriggerKind(data.get("kind", TriggerKind.MAIN.value)),
            trigger_at=datetime.fromisoformat(data["triggerAt"]),
            title=str(data.get("title") or ""),
            body=str(data.get("body") or ""),
            sound=data.get("sound") or "default",
            repeats=bool(data.get("repeats", False)),
            weekday=Weekday.parse(weekday_raw) if weekday_raw else None,
        )


class NotificationGateway(ABC):
    """Host notification primitive: fires registered notifications at or after their trigger."""

    @abstractmethod
    async def request_permission(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def schedule(self, notification: ScheduledNotification) -> str:
        """Register `notification`, replacing any registration with the same id.

        Returns the handle of the registration.
        """
        raise NotImplementedError

    @abstractmethod
    async def cancel(self, notification_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def list_scheduled(self) -> List[ScheduledNotification]:
        raise NotImplementedError

    async def cancel_all_for_alarm(self, alarm_id: int) -> int:
        cancelled = 0
        for notification in await self.list_scheduled():
            if notification.alarm_id == alarm_id:
                await self.cancel(notification.id)
                cancelled += 1
        return cancelled


class LocalNotificationGateway(NotificationGateway):
    """Desktop stand-in for the OS scheduler.

    Registrations are mirrored to a durable log so that `list_scheduled()` after a
    restart reports what was last registered. A polling task fires due entries by
    speaking the text and ringing the alarm sound; weekly entries re-arm themselves.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        sound_player: Optional[AlarmSoundPlayer] = None,
        speaker: Optional[LocalSpeaker] = None,
        permission_granted: bool = True,
        check_interval: float = 0.8,
        ring_seconds: float = 10.0,
        on_fire: Optional[Callable[[ScheduledNotification], None]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        log_key: str = NOTIFICATIONS_KEY,
    ):
        self.kv = kv
        self.sound_player = sound_player
        self.speaker = speaker
        self.permission_granted = permission_granted
        self.check_interval = max(0.2, check_interval)
        self.ring_seconds = max(0.0, ring_seconds)
        self.on_fire = on_fire
        self.clock = clock or (lambda: datetime.now().astimezone())
        self.log_key = log_key

        self._scheduled: Dict[str, ScheduledNotification] = {}
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._stop_ring_handle: Optional[asyncio.TimerHandle] = None

    async def load(self) -> None:
        payload = await load_json(self.kv, self.log_key) or {}
        if not isinstance(payload, dict):
            raise StorageError(f"Notification log under {self.log_key!r} is not an object")
        restored: Dict[str, ScheduledNotification] = {}
        for key, item in payload.items():
            try:
                restored[key] = ScheduledNotification.from_dict(item)
            except (KeyError, ValueError, TypeError, ValidationError) as exc:
                logger.warning("Dropping unreadable notification log entry %s: %s", key, exc)
        async with self._lock:
            self._scheduled = restored
        logger.info("Loaded %s scheduled notifications from log", len(restored))

    async def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._loop(), name="notification-gateway")

    async def shutdown(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.stop_ringing()

    async def request_permission(self) -> bool:
        return self.permission_granted

    async def schedule(self, notification: ScheduledNotification) -> str:
        if not self.permission_granted:
            raise NotificationSchedulingError(
                notification.alarm_id,
                [(notification.id, "permission denied")],
                message="No notification permission",
            )
        async with self._lock:
            self._scheduled[notification.id] = notification
            await self._persist_locked()
        logger.info(
            "Notification %s scheduled for %s (repeats=%s)",
            notification.id,
            notification.trigger_at.isoformat(),
            notification.repeats,
        )
        return notification.id

    async def cancel(self, notification_id: str) -> None:
        async with self._lock:
            if self._scheduled.pop(notification_id, None) is None:
                return
            await self._persist_locked()
        logger.info("Notification %s cancelled", notification_id)

    async def list_scheduled(self) -> List[ScheduledNotification]:
        async with self._lock:
            return sorted(self._scheduled.values(), key=lambda n: (n.trigger_at, n.id))

    def stop_ringing(self) -> None:
        if self._stop_ring_handle:
            self._stop_ring_handle.cancel()
            self._stop_ring_handle = None
        if self.sound_player:
            self.sound_player.stop_loop()

    async def fire_due(self, now: Optional[datetime] = None) -> List[ScheduledNotification]:
        """Deliver every registration whose trigger is at or before `now`.

        Nothing is delivered while permission is withheld; due entries stay
        registered until recovery or a mutation cancels them.
        """
        if not self.permission_granted:
            return []
        now = now or self.clock()
        async with self._lock:
            due = [n for n in self._scheduled.values() if n.trigger_at <= now]
            for notification in due:
                if notification.repeats:
                    self._scheduled[notification.id] = replace(
                        notification, trigger_at=self._next_weekly_trigger(notification, now)
                    )
                else:
                    del self._scheduled[notification.id]
            if due:
                await self._persist_locked()
        for notification in sorted(due, key=lambda n: n.trigger_at):
            self._deliver(notification)
        return due

    @staticmethod
    def _next_weekly_trigger(notification: ScheduledNotification, now: datetime) -> datetime:
        # Same weekday and wall-clock time in the clock's zone, so DST shifts keep the local hour.
        local = notification.trigger_at.astimezone(now.tzinfo)
        return next_occurrence(TimeOfDay(local.hour, local.minute), Weekday(local.weekday()), now)

    async def _loop(self) -> None:
        while True:
            try:
                await self.fire_due()
            except Exception:  # pragma: no cover - keep the poller alive
                logger.error("Notification poll failed", exc_info=True)
            await asyncio.sleep(self.check_interval)

    def _deliver(self, notification: ScheduledNotification) -> None:
        logger.info("Notification fired: %s (%s)", notification.title, notification.id)
        if self.on_fire:
            try:
                self.on_fire(notification)
            except Exception:  # pragma: no cover - callback safety
                logger.error("on_fire callback failed", exc_info=True)
        if self.speaker and self.speaker.available:
            self.speaker.speak_async(f"{notification.title}. {notification.body}")
        if self.sound_player:
            self.sound_player.start_loop(notification.sound)
            if self.ring_seconds:
                if self._stop_ring_handle:
                    self._stop_ring_handle.cancel()
                loop = asyncio.get_running_loop()
                self._stop_ring_handle = loop.call_later(self.ring_seconds, self.stop_ringing)

    async def _persist_locked(self) -> None:
        await save_json(self.kv, self.log_key, {nid: n.to_dict() for nid, n in self._scheduled.items()})
