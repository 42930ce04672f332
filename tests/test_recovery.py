import asyncio
from datetime import datetime, timezone

from alarms.gateway import ScheduledNotification, TriggerKind
from alarms.recovery import RecoveryReconciler
from alarms.scheduler import AlarmScheduler
from alarms.storage import AlarmDraft, AlarmStore, MemoryKeyValueStore

from fakes import RecordingGateway


def _now() -> datetime:
    return datetime(2025, 1, 6, 8, 0, tzinfo=timezone.utc)


async def _seed(store: AlarmStore):
    math = await store.insert(AlarmDraft.build("Math", "Room 1", time="9:00 AM", days=["Mon"], notify_before=True))
    art = await store.insert(AlarmDraft.build("Art", "Studio", time="1:00 PM", days=["Tue", "Thu"], notify_before=False))
    gym = await store.insert(
        AlarmDraft.build("Gym", "Hall", time="3:00 PM", days=["Fri"], notify_before=True, is_active=False)
    )
    return math, art, gym


def _stale(alarm_id: int, suffix: str = "main") -> ScheduledNotification:
    return ScheduledNotification(
        id=f"{alarm_id}:{suffix}",
        alarm_id=alarm_id,
        kind=TriggerKind.MAIN,
        trigger_at=datetime(2024, 12, 1, 9, 0, tzinfo=timezone.utc),
        title="stale",
        body="stale",
    )


def test_recovery_registers_active_alarms_only():
    async def scenario():
        store = AlarmStore(MemoryKeyValueStore())
        math, art, gym = await _seed(store)
        gateway = RecordingGateway()
        report = await RecoveryReconciler(AlarmScheduler(store, gateway, clock=_now)).run()
        return report, gateway, (math, art, gym)

    report, gateway, (math, art, gym) = asyncio.run(scenario())
    assert report.permission_granted is True
    assert report.rescheduled == [math.id, art.id]
    assert len(gateway.for_alarm(math.id)) == 2
    assert len(gateway.for_alarm(art.id)) == 2
    assert gateway.for_alarm(gym.id) == []


def test_recovery_discards_stale_and_orphaned_registrations():
    async def scenario():
        store = AlarmStore(MemoryKeyValueStore())
        math, _, gym = await _seed(store)
        gateway = RecordingGateway()
        for notification in (_stale(math.id, "main:mon"), _stale(gym.id), _stale(99)):
            await gateway.schedule(notification)
        report = await RecoveryReconciler(AlarmScheduler(store, gateway, clock=_now)).run()
        return report, gateway, math

    report, gateway, math = asyncio.run(scenario())
    assert sorted(report.orphans_cancelled) == ["3:main", "99:main"]
    assert all(n.title != "stale" for n in gateway.registered.values())
    main = gateway.registered[f"{math.id}:main:mon"]
    assert main.trigger_at == datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


def test_recovery_twice_yields_same_registered_set():
    async def scenario():
        store = AlarmStore(MemoryKeyValueStore())
        await _seed(store)
        gateway = RecordingGateway()
        reconciler = RecoveryReconciler(AlarmScheduler(store, gateway, clock=_now))
        await reconciler.run()
        first = dict(gateway.registered)
        await reconciler.run()
        return first, dict(gateway.registered)

    first, second = asyncio.run(scenario())
    assert first == second
    assert len(second) == 4


def test_permission_denied_leaves_alarms_dormant():
    async def scenario():
        store = AlarmStore(MemoryKeyValueStore())
        await _seed(store)
        gateway = RecordingGateway(permission=False)
        report = await RecoveryReconciler(AlarmScheduler(store, gateway, clock=_now)).run()
        return report, gateway, await store.list()

    report, gateway, stored = asyncio.run(scenario())
    assert report.permission_granted is False
    assert report.rescheduled == []
    assert gateway.schedule_calls == []
    assert len(stored) == 3


def test_permission_denied_cancels_registrations_left_from_earlier_runs():
    async def scenario():
        store = AlarmStore(MemoryKeyValueStore())
        math, _, gym = await _seed(store)
        gateway = RecordingGateway(permission=False)
        for notification in (_stale(math.id, "main:mon"), _stale(gym.id), _stale(99)):
            gateway.registered[notification.id] = notification
        report = await RecoveryReconciler(AlarmScheduler(store, gateway, clock=_now)).run()
        return report, gateway

    report, gateway = asyncio.run(scenario())
    assert sorted(report.orphans_cancelled) == ["3:main", "99:main"]
    assert report.dormant_cancelled == 1
    assert gateway.registered == {}
    assert gateway.schedule_calls == []


def test_partial_failure_is_reported_not_raised():
    async def scenario():
        store = AlarmStore(MemoryKeyValueStore())
        math, art, _ = await _seed(store)
        gateway = RecordingGateway(fail_ids={f"{art.id}:main:thu"})
        report = await RecoveryReconciler(AlarmScheduler(store, gateway, clock=_now)).run()
        return report, gateway, math, art

    report, gateway, math, art = asyncio.run(scenario())
    assert report.rescheduled == [math.id]
    assert list(report.failures) == [art.id]
    assert [n.id for n in gateway.for_alarm(art.id)] == [f"{art.id}:main:tue"]
