import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from medbox_relay.adapters.repo_memory import InMemoryRecordStore
from medbox_relay.application.bulk_sync import BulkSync
from medbox_relay.application.commands import CommandPublisher
from medbox_relay.domain.models import DeviceConfig, Recipient
from medbox_relay.errors import StoreError


def _json(doc):
    return json.dumps(doc).encode("utf-8")


class SlowBus:
    """Bus whose first publish is much slower than the rest (jitter)."""

    def __init__(self):
        self.published = []
        self.delays = [0.05]

    async def publish(self, topic, payload):
        if self.delays:
            await asyncio.sleep(self.delays.pop(0))
        self.published.append((topic, json.loads(payload)))


@pytest.mark.asyncio
async def test_load_all_on_empty_store(make_relay, empty_store, bus):
    relay = make_relay(empty_store)
    await relay.on_message("smartmedbox/request", _json({"type": "load_all", "deviceID": "X"}))
    await relay.drain()

    assert bus.published == [
        ("smartmedbox/data", {"type": "load_medicines", "count": 0, "medicines": []}),
        ("smartmedbox/config", {"type": "config", "servoTimeout": 10000, "lockRFIDOutsideReminder": False}),
        ("smartmedbox/data", {"type": "load_recipients", "count": 0, "recipients": []}),
    ]


@pytest.mark.asyncio
async def test_load_all_with_records(make_relay, medicine, bus):
    store = InMemoryRecordStore(
        medicines=[medicine],
        config=DeviceConfig(servo_timeout=12000, lock_rfid_outside_reminder=True),
        recipients=[Recipient(chat_id=111), Recipient(chat_id=222, active=False)],
    )
    relay = make_relay(store)
    await relay.on_message("smartmedbox/request", _json({"type": "load_all"}))
    await relay.drain()

    medicines, config, recipients = (payload for _, payload in bus.published)
    assert medicines["count"] == 1
    assert medicines["medicines"][0] == {
        "_id": "med-1",
        "name": "Paracetamol",
        "uid": "a1b2c3d4",
        "closeUid": "",
        "quantity": 10,
        "expiryDate": "",
        "servoPin": 1,
        "numReminders": 0,
        "reminderTimes": ["08:00"],
        "reminderTimeout": 2,
    }
    assert config == {"type": "config", "servoTimeout": 12000, "lockRFIDOutsideReminder": True}
    assert recipients == {
        "type": "load_recipients",
        "count": 2,
        "recipients": [{"chatID": 111, "active": True}, {"chatID": 222, "active": False}],
    }


@pytest.mark.asyncio
async def test_order_survives_publish_jitter(topics, empty_store):
    bus = SlowBus()
    sync = BulkSync(empty_store, CommandPublisher(bus, topics), config_delay_ms=0, recipients_delay_ms=0)

    sent = await sync.run("X")

    assert sent == ["medicines", "config", "recipients"]
    assert [p["type"] for _, p in bus.published] == ["load_medicines", "config", "load_recipients"]


@pytest.mark.asyncio
async def test_steps_are_spaced_by_configured_offsets(topics, empty_store, bus):
    sleep = AsyncMock()
    sync = BulkSync(empty_store, CommandPublisher(bus, topics), 500, 1000, sleep=sleep)

    await sync.run()

    waits = [c.args[0] for c in sleep.await_args_list]
    assert waits == [pytest.approx(0.5, abs=0.05), pytest.approx(1.0, abs=0.05)]


@pytest.mark.asyncio
async def test_failed_step_is_skipped_others_still_fire(topics, bus):
    class NoConfigStore(InMemoryRecordStore):
        async def get_config(self):
            raise StoreError("config collection unavailable")

    sync = BulkSync(NoConfigStore(), CommandPublisher(bus, topics), 0, 0)
    sent = await sync.run()

    assert sent == ["medicines", "recipients"]
    assert [t for t, _ in bus.published] == ["smartmedbox/data", "smartmedbox/data"]


def test_plan_is_ordered():
    sync = BulkSync(InMemoryRecordStore(), AsyncMock())
    plan = sync.plan()
    assert [s.name for s in plan] == ["medicines", "config", "recipients"]
    assert [s.offset_ms for s in plan] == [0, 500, 1000]


@pytest.mark.parametrize("config_ms,recipients_ms", [(-1, 1000), (600, 500)])
def test_inverted_offsets_are_rejected(config_ms, recipients_ms):
    with pytest.raises(ValueError):
        BulkSync(InMemoryRecordStore(), AsyncMock(), config_ms, recipients_ms)
