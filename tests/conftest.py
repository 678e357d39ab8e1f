"""
Pytest configuration and fixtures for the sync relay tests.
"""

import json

import pytest

from medbox_relay.adapters.repo_memory import InMemoryRecordStore
from medbox_relay.application.bulk_sync import BulkSync
from medbox_relay.application.commands import CommandPublisher
from medbox_relay.application.services import SyncRelay
from medbox_relay.domain.liveness import LivenessTracker
from medbox_relay.domain.models import Medicine
from medbox_relay.domain.topics import Topics

NS = "smartmedbox"
WINDOW_MS = 8000


# ============================================
# Fakes
# ============================================

class RecordingFanout:
    """Fan-out that remembers every broadcast in emission order."""

    def __init__(self):
        self.events = []

    async def broadcast(self, event, payload=None):
        self.events.append((event, payload))

    def named(self, event):
        return [p for e, p in self.events if e == event]


class RecordingBus:
    """Bus that keeps (topic, decoded JSON) for every publish."""

    connected = True
    broker_clients = None

    def __init__(self):
        self.published = []

    async def publish(self, topic, payload):
        self.published.append((topic, json.loads(payload)))

    def on(self, topic):
        return [p for t, p in self.published if t == topic]


class FakeClock:
    def __init__(self, now_ms=1_700_000_000_000):
        self.now_ms = now_ms

    def __call__(self):
        return self.now_ms

    def advance(self, ms):
        self.now_ms += ms


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def medicine():
    return Medicine(id="med-1", name="Paracetamol", uid="a1b2c3d4", quantity=10, reminder_times=["08:00"])


@pytest.fixture
def store(medicine):
    return InMemoryRecordStore(medicines=[medicine])


@pytest.fixture
def empty_store():
    return InMemoryRecordStore()


@pytest.fixture
def fanout():
    return RecordingFanout()


@pytest.fixture
def bus():
    return RecordingBus()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def topics():
    return Topics(NS)


@pytest.fixture
def make_relay(fanout, bus, clock, topics):
    """Factory: relay wired to the recording fakes, with short bulk-sync delays."""
    def _make(store, config_delay_ms=10, recipients_delay_ms=20):
        publisher = CommandPublisher(bus, topics)
        return SyncRelay(
            store=store,
            fanout=fanout,
            publisher=publisher,
            topics=topics,
            liveness=LivenessTracker(WINDOW_MS),
            bulk_sync=BulkSync(store, publisher, config_delay_ms, recipients_delay_ms),
            clock=clock,
        )
    return _make


@pytest.fixture
def relay(make_relay, store):
    return make_relay(store)
