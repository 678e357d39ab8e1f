import asyncio
from contextlib import suppress
from datetime import datetime, timedelta, timezone

import pytest

from medbox_relay.adapters.repo_memory import InMemoryRecordStore
from medbox_relay.application.scheduling import every, liveness_tick, retention_purge
from medbox_relay.domain.models import DeviceLogEvent, SensorReadingEvent
from medbox_relay.errors import StoreError


@pytest.mark.asyncio
async def test_liveness_tick_flips_to_offline_without_new_messages(relay, fanout, clock, bus):
    bus.broker_clients = 2
    await relay.on_message("smartmedbox/status", b'{"door": "closed"}')
    tick = liveness_tick(relay, fanout, bus)

    await tick()
    clock.advance(8001)
    await tick()

    online, offline = fanout.named("status")
    assert online["online"] is True and online["busConnected"] is True
    assert online["brokerClients"] == 2
    assert offline["online"] is False
    assert offline["deviceID"] == "ESP32MedBox001"


@pytest.mark.asyncio
async def test_every_keeps_running_after_store_error():
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise StoreError("locked")

    task = asyncio.create_task(every(0.001, flaky, "flaky"))
    for _ in range(100):
        if len(calls) >= 3:
            break
        await asyncio.sleep(0.005)
    task.cancel()
    with suppress(asyncio.CancelledError):
        await task

    assert len(calls) >= 3


@pytest.mark.asyncio
async def test_retention_purge_drops_expired_rows():
    store = InMemoryRecordStore()
    now = datetime.now(timezone.utc)
    log = DeviceLogEvent(timestamp="t", card_uid="a", action="open", success=True)
    reading = SensorReadingEvent(heart_rate=70, spo2=97, timestamp="t")
    store.logs = [(now - timedelta(days=31), log), (now - timedelta(days=2), log)]
    store.sensors = [(now - timedelta(days=8), reading), (now - timedelta(hours=1), reading)]

    await retention_purge(store, now=lambda: now)()

    assert len(store.logs) == 1
    assert len(store.sensors) == 1
