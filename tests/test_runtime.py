import asyncio
import logging
from datetime import timedelta
from pathlib import Path

from alarms.gateway import ScheduledNotification, TriggerKind
from alarms.storage import AlarmDraft, AlarmStore, JsonFileKeyValueStore, Settings, SettingsStore
from class_alarm import AlarmRuntime
from config import Config


def _config(data_dir: Path) -> Config:
    return Config(
        data_dir=data_dir,
        alarm_sound_path=data_dir / "alarm.wav",
        alarm_sounds_dir=data_dir / "sounds",
        alarm_check_interval_ms=200,
        alarm_ring_seconds=0,
        early_reminder_minutes=5,
        one_shot_past_policy="roll_forward",
        timezone="UTC",
        enable_speech=False,
        log_level="INFO",
        log_dir=data_dir / "logs",
    )


def test_runtime_start_recovers_stored_alarms(tmp_path):
    async def scenario():
        store = AlarmStore(JsonFileKeyValueStore(tmp_path))
        alarm = await store.insert(
            AlarmDraft.build("Math", "Room 1", time="9:00 AM", days=["Mon", "Thu"], notify_before=True)
        )
        runtime = AlarmRuntime(_config(tmp_path))
        await runtime.start()
        try:
            scheduled = await runtime.gateway.list_scheduled()
        finally:
            await runtime.shutdown()
        return alarm, scheduled

    alarm, scheduled = asyncio.run(scenario())
    assert {n.id for n in scheduled} == {
        f"{alarm.id}:main:mon",
        f"{alarm.id}:early:mon",
        f"{alarm.id}:main:thu",
        f"{alarm.id}:early:thu",
    }
    assert (tmp_path / "scheduled_notifications.json").exists()


def test_runtime_with_notifications_disabled_keeps_alarms_dormant(tmp_path):
    async def scenario():
        kv = JsonFileKeyValueStore(tmp_path)
        await SettingsStore(kv).save(Settings(notifications=False))
        await AlarmStore(kv).insert(AlarmDraft.build("Math", "Room 1", time="9:00 AM", days=["Mon"]))
        runtime = AlarmRuntime(_config(tmp_path))
        await runtime.start()
        try:
            scheduled = await runtime.gateway.list_scheduled()
        finally:
            await runtime.shutdown()
        return scheduled, await runtime.scheduler.get_all()

    scheduled, stored = asyncio.run(scenario())
    assert scheduled == []
    assert len(stored) == 1


def test_restart_with_notifications_disabled_silences_logged_registrations(tmp_path):
    async def scenario():
        first = AlarmRuntime(_config(tmp_path))
        await first.start()
        try:
            alarm = await first.scheduler.create(
                AlarmDraft.build("Math", "Room 1", time="9:00 AM", days=["Mon"], notify_before=True)
            )
            logged = await first.gateway.list_scheduled()
        finally:
            await first.shutdown()

        kv = JsonFileKeyValueStore(tmp_path)
        await AlarmStore(kv).remove(alarm.id)
        await SettingsStore(kv).save(Settings(notifications=False))

        second = AlarmRuntime(_config(tmp_path))
        await second.start()
        try:
            fired = await second.gateway.fire_due(second.clock() + timedelta(days=8))
            remaining = await second.gateway.list_scheduled()
        finally:
            await second.shutdown()
        return logged, fired, remaining

    logged, fired, remaining = asyncio.run(scenario())
    assert len(logged) == 2
    assert fired == []
    assert remaining == []


def test_fired_notification_is_logged_with_day_label(tmp_path, caplog):
    runtime = AlarmRuntime(_config(tmp_path))
    trigger = runtime.clock().replace(second=0, microsecond=0) + timedelta(days=1)
    notification = ScheduledNotification(
        id="1:main:mon",
        alarm_id=1,
        kind=TriggerKind.MAIN,
        trigger_at=trigger,
        title="Class Alarm: Math",
        body="Math in Room 1 starts now!",
    )
    with caplog.at_level(logging.INFO, logger="class_alarm"):
        runtime._on_fired(notification)
    assert f"Class Alarm: Math (tomorrow {trigger:%H:%M})" in caplog.text
