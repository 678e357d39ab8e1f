import json

import pytest
from fastapi.testclient import TestClient

from medbox_relay.adapters.bus import InMemoryBus
from medbox_relay.adapters.repo_memory import InMemoryRecordStore
from medbox_relay.main import create_app
from medbox_relay.settings import Settings


@pytest.fixture
def memory_bus():
    return InMemoryBus()


@pytest.fixture
def client(memory_bus, store):
    app = create_app(
        settings=Settings(bus_mode="memory", log_level="WARNING"),
        store=store,
        bus=memory_bus,
    )
    return TestClient(app)


def _drain(sub):
    out = []
    while not sub.queue.empty():
        msg = sub.queue.get_nowait()
        out.append((msg.topic, json.loads(msg.payload)))
    return out


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "ok"
    assert body["busConnected"] is True
    assert body["brokerClients"] is None


def test_control_publishes_command(client, memory_bus):
    device = memory_bus.subscribe("smartmedbox/commands")
    res = client.post("/v1/control", json={"action": "open_all"})

    assert res.status_code == 200
    assert res.json() == {"status": "sent", "action": "open_all"}
    assert _drain(device) == [("smartmedbox/commands", {"type": "control", "action": "open_all"})]


def test_control_without_action_is_rejected(client, memory_bus):
    device = memory_bus.subscribe("smartmedbox/commands")
    res = client.post("/v1/control", json={})

    assert res.status_code == 400
    assert _drain(device) == []


def test_status_includes_liveness_store_data_and_bus(client):
    res = client.get("/v1/status")
    assert res.status_code == 200
    body = res.json()
    assert body["liveness"] == {"deviceID": None, "online": False, "lastSeen": None, "producers": {}}
    assert body["medicineCount"] == 1
    assert body["config"]["servoTimeout"] == 10000
    assert body["config"]["lockRFIDOutsideReminder"] is False
    assert body["busConnected"] is True
    assert body["brokerClients"] is None


def test_status_reports_store_failure(memory_bus):
    from medbox_relay.errors import StoreError

    class BrokenStore(InMemoryRecordStore):
        async def list_medicines(self):
            raise StoreError("timeout")

    app = create_app(settings=Settings(bus_mode="memory", log_level="WARNING"), store=BrokenStore(), bus=memory_bus)
    assert TestClient(app).get("/v1/status").status_code == 500


def test_memory_database_url_uses_in_memory_store():
    app = create_app(settings=Settings(database_url="memory", bus_mode="memory", log_level="WARNING"))
    assert isinstance(app.state.store, InMemoryRecordStore)
    assert isinstance(app.state.bus, InMemoryBus)
    assert app.state.broker is None

    with TestClient(app) as client:
        body = client.get("/v1/status").json()
    assert body["medicineCount"] == 0
    assert body["config"]["servoTimeout"] == 10000


def test_sync_endpoints_push_to_device(client, memory_bus):
    device = memory_bus.subscribe("smartmedbox/#")

    assert client.post("/v1/sync/medicines").json() == {"success": True}
    assert client.post("/v1/sync/config").json() == {"success": True}
    assert client.post("/v1/sync/recipients").json() == {"success": True}

    published = _drain(device)
    assert [(t, p["type"]) for t, p in published] == [
        ("smartmedbox/data", "load_medicines"),
        ("smartmedbox/config", "config"),
        ("smartmedbox/data", "load_recipients"),
    ]
    assert published[0][1]["count"] == 1


def test_sync_reports_store_failure(memory_bus):
    from medbox_relay.errors import StoreError

    class BrokenStore(InMemoryRecordStore):
        async def list_recipients(self):
            raise StoreError("timeout")

    app = create_app(settings=Settings(bus_mode="memory", log_level="WARNING"), store=BrokenStore(), bus=memory_bus)
    res = TestClient(app).post("/v1/sync/recipients")
    assert res.json() == {"success": False}
