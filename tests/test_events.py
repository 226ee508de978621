"""Tests for the event bus."""

from devflow.events import EventBus, EventType


async def test_typed_and_global_listeners():
    bus = EventBus()
    typed, everything = [], []

    async def on_created(event_type, data):
        typed.append(data)

    async def on_any(event_type, data):
        everything.append(event_type)

    bus.on(EventType.PROJECT_CREATED, on_created)
    bus.on_all(on_any)

    await bus.emit(EventType.PROJECT_CREATED, {"project_id": "p1"})
    await bus.emit(EventType.BACKUP_FAILED, {"project_id": "p1"})

    assert typed == [{"project_id": "p1"}]
    assert everything == [EventType.PROJECT_CREATED, EventType.BACKUP_FAILED]


async def test_off_removes_listener():
    bus = EventBus()
    calls = []

    async def listener(event_type, data):
        calls.append(event_type)

    bus.on(EventType.PHASE_ADVANCED, listener)
    bus.off(EventType.PHASE_ADVANCED, listener)
    await bus.emit(EventType.PHASE_ADVANCED)
    assert calls == []


async def test_failing_listener_is_isolated():
    bus = EventBus()
    calls = []

    async def broken(event_type, data):
        raise RuntimeError("boom")

    async def healthy(event_type, data):
        calls.append(event_type)

    bus.on(EventType.INDEX_REPAIRED, broken)
    bus.on(EventType.INDEX_REPAIRED, healthy)
    await bus.emit(EventType.INDEX_REPAIRED, {})
    assert calls == [EventType.INDEX_REPAIRED]


async def test_history_bounded_and_filterable():
    bus = EventBus(history_size=3)
    for _ in range(4):
        await bus.emit(EventType.BACKUP_CREATED, {})
    await bus.emit(EventType.BACKUPS_PRUNED, {"deleted": ["x"]})

    assert len(bus.history()) == 3
    assert [e.data for e in bus.history(EventType.BACKUPS_PRUNED)] == [{"deleted": ["x"]}]

    bus.clear()
    assert bus.history() == []


def test_event_type_values():
    assert EventType.BACKUP_FAILED == "backup.failed"
    assert EventType.PHASE_ADVANCED == "phase.advanced"
