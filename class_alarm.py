import asyncio
import logging

from alarms.gateway import LocalNotificationGateway, ScheduledNotification
from alarms.listing import format_alarm_time
from alarms.recovery import RecoveryReconciler
from alarms.scheduler import AlarmScheduler
from alarms.sounds import AlarmSoundPlayer, LocalSpeaker
from alarms.storage import AlarmStore, JsonFileKeyValueStore, SettingsStore
from config import Config, load_config, setup_logging
from time_utils import format_tz_offset, make_clock, resolve_timezone

logger = logging.getLogger("class_alarm")


class AlarmRuntime:
    """Wires storage, the local notification gateway and the scheduler together."""

    def __init__(self, config: Config):
        self.config = config
        self.tz = resolve_timezone(config.timezone)
        self.clock = make_clock(self.tz)
        self.kv = JsonFileKeyValueStore(config.data_dir)
        self.store = AlarmStore(self.kv, tz=self.tz)
        self.settings_store = SettingsStore(self.kv)
        self.gateway: LocalNotificationGateway | None = None
        self.scheduler: AlarmScheduler | None = None

    async def start(self) -> None:
        settings = await self.settings_store.get()
        self.gateway = LocalNotificationGateway(
            self.kv,
            sound_player=AlarmSoundPlayer(self.config.alarm_sound_path, self.config.alarm_sounds_dir),
            speaker=LocalSpeaker(enabled=self.config.enable_speech),
            permission_granted=settings.notifications,
            check_interval=max(0.2, self.config.alarm_check_interval_ms / 1000.0),
            ring_seconds=self.config.alarm_ring_seconds,
            on_fire=self._on_fired,
            clock=self.clock,
        )
        await self.gateway.load()
        self.scheduler = AlarmScheduler(
            self.store,
            self.gateway,
            settings_store=self.settings_store,
            clock=self.clock,
            early_minutes=self.config.early_reminder_minutes,
            one_shot_past_policy=self.config.one_shot_past_policy,
        )
        report = await RecoveryReconciler(self.scheduler).run()
        if not report.permission_granted:
            logger.warning("Notifications are disabled in settings; alarms will not ring")
        await self.gateway.start()

    async def shutdown(self) -> None:
        if self.gateway:
            await self.gateway.shutdown()

    def _on_fired(self, notification: ScheduledNotification) -> None:
        when = format_alarm_time(notification.trigger_at.astimezone(self.tz), self.clock())
        logger.info("%s (%s) - %s", notification.title, when, notification.body)


async def run(config: Config) -> None:
    runtime = AlarmRuntime(config)
    await runtime.start()
    try:
        await asyncio.Event().wait()
    finally:
        await runtime.shutdown()


def main() -> None:
    config = load_config()
    setup_logging(config.log_level, config.log_dir)
    tz = resolve_timezone(config.timezone)
    logger.info("Starting class alarm service (data=%s, tz offset %s)", config.data_dir, format_tz_offset(tz))
    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")


if __name__ == "__main__":
    main()
