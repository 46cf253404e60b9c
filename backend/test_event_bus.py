"""
Tests for the in-process event bus
"""

import asyncio

from ddi_gateway.services.event_bus import EventBus


async def test_sync_and_async_subscribers_receive_events():
    bus = EventBus()
    received = []

    async def async_handler(event, payload):
        received.append(("async", event, payload["id"]))

    bus.subscribe("backup:completed", async_handler)
    bus.subscribe("backup:completed", lambda event, payload: received.append(("sync", event, payload["id"])))

    bus.emit("backup:completed", {"id": "full-backup-1"})
    assert received == []

    await bus.drain()
    assert sorted(received) == [
        ("async", "backup:completed", "full-backup-1"),
        ("sync", "backup:completed", "full-backup-1"),
    ]


async def test_glob_patterns():
    bus = EventBus()
    received = []
    bus.subscribe("alert:*", lambda event, payload: received.append(event))

    bus.emit("alert:created", {})
    bus.emit("alert:acknowledged", {})
    bus.emit("health:checked", {})
    await bus.drain()

    assert received == ["alert:created", "alert:acknowledged"]
    assert bus.subscriber_count("alert:created") == 1
    assert bus.subscriber_count("health:checked") == 0


async def test_failing_subscriber_does_not_affect_others():
    bus = EventBus()
    received = []

    async def broken(event, payload):
        raise RuntimeError("subscriber bug")

    def also_broken(event, payload):
        raise ValueError("another bug")

    bus.subscribe("zone_created", broken)
    bus.subscribe("zone_created", also_broken)
    bus.subscribe("zone_created", lambda event, payload: received.append(payload))

    bus.emit("zone_created", {"zone": "example.com"})
    await bus.drain()

    assert received == [{"zone": "example.com"}]


async def test_slow_subscriber_does_not_block_emit():
    bus = EventBus()
    finished = asyncio.Event()

    async def slow(event, payload):
        await asyncio.sleep(0.05)
        finished.set()

    bus.subscribe("record_created", slow)
    bus.emit("record_created", {})

    assert not finished.is_set()
    await bus.drain()
    assert finished.is_set()


async def test_unsubscribe():
    bus = EventBus()
    received = []
    unsubscribe = bus.subscribe("zone_deleted", lambda event, payload: received.append(event))

    unsubscribe()
    bus.emit("zone_deleted", {})
    await bus.drain()

    assert received == []


def test_emit_without_loop_is_dropped():
    bus = EventBus()
    bus.subscribe("zone_created", lambda event, payload: None)
    bus.emit("zone_created", {})
