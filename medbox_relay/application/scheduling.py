import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from medbox_relay.application.ports import BusState, FanOut, RecordStore
from medbox_relay.application.services import SyncRelay
from medbox_relay.errors import RelayError

log = logging.getLogger(__name__)


async def every(interval_s: float, fn: Callable[[], Awaitable[None]], name: str) -> None:
    """Llama fn() cada interval_s segundos hasta que cancelen la tarea."""
    log.info("[TICK] %s every %.1fs", name, interval_s)
    while True:
        try:
            await fn()
        except RelayError as e:
            log.error("[TICK] %s failed: %s", name, e)
        await asyncio.sleep(interval_s)


def bus_status(bus: BusState) -> Dict[str, Any]:
    return {"busConnected": bool(bus.connected), "brokerClients": bus.broker_clients}


def liveness_tick(relay: SyncRelay, fanout: FanOut, bus: BusState):
    """Re-evalua el liveness y lo empuja aunque el dispositivo no mande nada."""
    async def _tick() -> None:
        status = relay.liveness_status()
        status.update(bus_status(bus))
        await fanout.broadcast("status", status)
    return _tick


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def retention_purge(store: RecordStore, now: Optional[Callable[[], datetime]] = None):
    clock = now or _utcnow

    async def _purge() -> None:
        deleted = await store.purge_expired(clock())
        if deleted:
            log.info("[TICK] purged %d expired rows", deleted)
    return _purge
