"""Keeps registered notifications in step with the stored alarms.

Every mutation cancels the alarm's registrations before anything is
re-registered, so an alarm never carries triggers computed from stale fields.
Callers issue one operation at a time; nothing here locks.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional, Tuple

from .errors import NotificationSchedulingError
from .gateway import NotificationGateway, ScheduledNotification, TriggerKind, notification_id
from .storage import Alarm, AlarmDraft, AlarmStore, OnceRecurrence, SettingsStore, WeeklyRecurrence
from .timemath import PAST, next_occurrence, next_occurrence_one_shot, offset_earlier, roll_forward_days

logger = logging.getLogger(__name__)

DEFAULT_EARLY_MINUTES = 5
WEEK = timedelta(days=7)


class OneShotPastPolicy(str, Enum):
    ROLL_FORWARD = "roll_forward"
    SKIP = "skip"


def plan_notifications(
    alarm: Alarm,
    now: datetime,
    early_minutes: int = DEFAULT_EARLY_MINUTES,
    past_policy: OneShotPastPolicy = OneShotPastPolicy.ROLL_FORWARD,
) -> List[ScheduledNotification]:
    """Trigger registrations an active alarm should have at `now`."""
    if not alarm.is_active:
        return []

    notifications: List[ScheduledNotification] = []
    recurrence = alarm.recurrence
    if isinstance(recurrence, WeeklyRecurrence):
        for day in recurrence.sorted_days():
            main_at = next_occurrence(alarm.time_of_day, day, now)
            notifications.append(_build(alarm, TriggerKind.MAIN, main_at, day, early_minutes))
            if alarm.notify_before:
                early_at = offset_earlier(main_at, early_minutes)
                if early_at <= now:
                    early_at = early_at + WEEK
                notifications.append(_build(alarm, TriggerKind.EARLY, early_at, day, early_minutes))
        return notifications

    if isinstance(recurrence, OnceRecurrence):
        main_at = next_occurrence_one_shot(recurrence.at, now)
        if main_at is PAST:
            if past_policy == OneShotPastPolicy.SKIP:
                logger.warning("Alarm %s is in the past (%s), not scheduling", alarm.id, recurrence.at.isoformat())
                return []
            main_at = roll_forward_days(recurrence.at, now)
            logger.warning(
                "Alarm %s is in the past (%s), rolled forward to %s",
                alarm.id,
                recurrence.at.isoformat(),
                main_at.isoformat(),
            )
        notifications.append(_build(alarm, TriggerKind.MAIN, main_at, None, early_minutes))
        if alarm.notify_before:
            early_at = offset_earlier(main_at, early_minutes)
            if early_at > now:
                notifications.append(_build(alarm, TriggerKind.EARLY, early_at, None, early_minutes))
            else:
                logger.info("Early reminder for alarm %s is in the past, skipping", alarm.id)
        return notifications

    raise TypeError(f"Unsupported recurrence for alarm {alarm.id}: {recurrence!r}")


def _build(alarm: Alarm, kind: TriggerKind, trigger_at: datetime, day, early_minutes: int) -> ScheduledNotification:
    if kind == TriggerKind.MAIN:
        title = f"Class Alarm: {alarm.subject}"
        body = f"{alarm.subject} in {alarm.classroom} starts now!"
        sound = alarm.sound
    else:
        title = f"{early_minutes}-Minute Reminder: {alarm.subject}"
        body = f"{alarm.subject} in {alarm.classroom} starts in {early_minutes} minutes!"
        sound = "default"
    return ScheduledNotification(
        id=notification_id(alarm.id, kind, day),
        alarm_id=alarm.id,
        kind=kind,
        trigger_at=trigger_at,
        title=title,
        body=body,
        sound=sound,
        repeats=day is not None,
        weekday=day,
    )


class AlarmScheduler:
    def __init__(
        self,
        store: AlarmStore,
        gateway: NotificationGateway,
        settings_store: Optional[SettingsStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
        early_minutes: int = DEFAULT_EARLY_MINUTES,
        one_shot_past_policy: OneShotPastPolicy = OneShotPastPolicy.ROLL_FORWARD,
    ):
        self.store = store
        self.gateway = gateway
        self.settings_store = settings_store
        self.clock = clock or (lambda: datetime.now().astimezone())
        self.early_minutes = early_minutes
        self.one_shot_past_policy = OneShotPastPolicy(one_shot_past_policy)

    async def create(self, draft: AlarmDraft) -> Alarm:
        draft.validate()
        notify_default = False
        if draft.notify_before is None and self.settings_store:
            notify_default = (await self.settings_store.get()).early_reminders
        alarm = await self.store.insert(draft, notify_before_default=notify_default)
        logger.info("Alarm %s created (%s, active=%s)", alarm.id, alarm.subject, alarm.is_active)
        if alarm.is_active:
            await self.schedule_alarm(alarm)
        return alarm

    async def update(self, alarm: Alarm) -> Alarm:
        alarm.validate()
        await self.store.get(alarm.id)
        await self.gateway.cancel_all_for_alarm(alarm.id)
        alarm = await self.store.replace(alarm)
        logger.info("Alarm %s updated (active=%s)", alarm.id, alarm.is_active)
        if alarm.is_active:
            await self.schedule_alarm(alarm)
        return alarm

    async def delete(self, alarm_id: int) -> None:
        await self.store.get(alarm_id)
        cancelled = await self.gateway.cancel_all_for_alarm(alarm_id)
        await self.store.remove(alarm_id)
        logger.info("Alarm %s deleted (%s notifications cancelled)", alarm_id, cancelled)

    async def toggle_active(self, alarm_id: int) -> Alarm:
        current = await self.store.get(alarm_id)
        toggled = replace(current, is_active=not current.is_active)
        await self.gateway.cancel_all_for_alarm(alarm_id)
        await self.store.replace(toggled)
        logger.info("Alarm %s toggled to active=%s", alarm_id, toggled.is_active)
        if toggled.is_active:
            await self.schedule_alarm(toggled)
        return toggled

    async def get_all(self) -> List[Alarm]:
        return await self.store.list()

    async def get(self, alarm_id: int) -> Alarm:
        return await self.store.get(alarm_id)

    def plan(self, alarm: Alarm, now: Optional[datetime] = None) -> List[ScheduledNotification]:
        return plan_notifications(
            alarm,
            now or self.clock(),
            early_minutes=self.early_minutes,
            past_policy=self.one_shot_past_policy,
        )

    async def schedule_alarm(self, alarm: Alarm) -> List[ScheduledNotification]:
        """Register every trigger of `alarm`.

        A failing registration does not stop the remaining ones; failures are
        collected and raised together once the fan-out is done.
        """
        scheduled: List[ScheduledNotification] = []
        failures: List[Tuple[str, str]] = []
        for notification in self.plan(alarm):
            try:
                await self.gateway.schedule(notification)
            except Exception as exc:
                logger.error("Failed to schedule notification %s", notification.id, exc_info=True)
                failures.append((notification.id, str(exc)))
                continue
            scheduled.append(notification)
        if failures:
            raise NotificationSchedulingError(alarm.id, failures)
        return scheduled
