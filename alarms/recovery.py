from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from .errors import NotificationSchedulingError
from .scheduler import AlarmScheduler

logger = logging.getLogger(__name__)


@dataclass
class RecoveryReport:
    permission_granted: bool
    rescheduled: List[int] = field(default_factory=list)
    orphans_cancelled: List[str] = field(default_factory=list)
    failures: Dict[int, str] = field(default_factory=dict)
    dormant_cancelled: int = 0


class RecoveryReconciler:
    """Rebuilds the registered notification set from stored alarms at process start.

    The result depends only on what is stored, so running it again without an
    intervening mutation registers exactly the same set.
    """

    def __init__(self, scheduler: AlarmScheduler):
        self.scheduler = scheduler

    async def run(self) -> RecoveryReport:
        gateway = self.scheduler.gateway
        granted = await gateway.request_permission()
        report = RecoveryReport(permission_granted=granted)

        alarms = await self.scheduler.store.list()
        active_ids = {alarm.id for alarm in alarms if alarm.is_active}

        for notification in await gateway.list_scheduled():
            if notification.alarm_id not in active_ids:
                await gateway.cancel(notification.id)
                report.orphans_cancelled.append(notification.id)

        if not granted:
            for alarm_id in sorted(active_ids):
                report.dormant_cancelled += await gateway.cancel_all_for_alarm(alarm_id)
            logger.warning(
                "Notification permission not granted, %s alarms stay stored but dormant (%s registrations cancelled)",
                len(active_ids),
                report.dormant_cancelled,
            )
            return report

        for alarm in alarms:
            if not alarm.is_active:
                continue
            await gateway.cancel_all_for_alarm(alarm.id)
            try:
                await self.scheduler.schedule_alarm(alarm)
            except NotificationSchedulingError as exc:
                logger.error("Recovery could not fully schedule alarm %s: %s", alarm.id, exc)
                report.failures[alarm.id] = str(exc)
                continue
            report.rescheduled.append(alarm.id)

        logger.info(
            "Recovery done: %s alarms rescheduled, %s orphaned notifications cancelled, %s failures",
            len(report.rescheduled),
            len(report.orphans_cancelled),
            len(report.failures),
        )
        return report
