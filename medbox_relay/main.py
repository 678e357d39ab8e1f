import asyncio
from contextlib import asynccontextmanager, suppress
from typing import List, Optional, Union

import uvicorn
from fastapi import FastAPI

from medbox_relay import __version__
from medbox_relay.adapters.broker import LOCAL_HOST, EmbeddedBroker
from medbox_relay.adapters.bus import InMemoryBus
from medbox_relay.adapters.http_api import api_router, health_router
from medbox_relay.adapters.mqtt_client import MqttBus
from medbox_relay.adapters.repo_memory import InMemoryRecordStore
from medbox_relay.adapters.repo_sql import SqlRecordStore
from medbox_relay.adapters.ws import LiveFanout, router as ws_router
from medbox_relay.application.bulk_sync import BulkSync
from medbox_relay.application.commands import CommandPublisher
from medbox_relay.application.ports import BusOut, FanOut, RecordStore
from medbox_relay.application.scheduling import every, liveness_tick, retention_purge
from medbox_relay.application.services import SyncRelay
from medbox_relay.deps import build_engine, build_session_factory, init_models
from medbox_relay.domain.liveness import LivenessTracker
from medbox_relay.domain.models import DeviceConfig
from medbox_relay.domain.topics import Topics
from medbox_relay.logger import setup_logging
from medbox_relay.settings import Settings

"""
== Relay MQTT <-> dashboards ==
El ESP32 del pastillero publica por MQTT (logs de acceso RFID, lecturas del
sensor de pulso, status) bajo <ns>/... y pide el estado completo con
<ns>/request {"type": "load_all"}. Este proceso:

    - se suscribe a <ns>/# (adapters.mqtt_client contra Mosquitto o contra el
      broker embebido de adapters.broker; o el bus en memoria),
    - persiste los hechos en la BDD (adapters.repo_sql, o repo_memory con
      DATABASE_URL=memory),
    - los reenvia a los dashboards por WebSocket (/ws),
    - publica hacia el dispositivo medicinas / config / destinatarios / comandos.
"""

Bus = Union[MqttBus, InMemoryBus]


def build_relay(settings: Settings, store: RecordStore, bus: BusOut, fanout: FanOut) -> SyncRelay:
    topics = Topics(settings.mqtt_namespace)
    publisher = CommandPublisher(bus, topics)
    bulk_sync = BulkSync(
        store,
        publisher,
        config_delay_ms=settings.bulk_config_delay_ms,
        recipients_delay_ms=settings.bulk_recipients_delay_ms,
    )
    return SyncRelay(
        store=store,
        fanout=fanout,
        publisher=publisher,
        topics=topics,
        liveness=LivenessTracker(settings.staleness_window_ms),
        bulk_sync=bulk_sync,
        debug_payload=settings.debug_payload,
    )


def build_bus(settings: Settings) -> Bus:
    topics = Topics(settings.mqtt_namespace)
    if settings.bus_mode == "memory":
        return InMemoryBus()
    if settings.bus_mode == "embedded":
        # el relay es un cliente mas del broker que corre en este proceso
        return MqttBus(settings, topics, host=LOCAL_HOST)
    return MqttBus(settings, topics)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[RecordStore] = None,
    bus: Optional[Bus] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    setup_logging(settings.log_level)

    engine = None
    if store is None:
        if settings.uses_memory_store:
            store = InMemoryRecordStore(config=DeviceConfig())
        else:
            engine = build_engine(settings.database_url)
            store = SqlRecordStore(build_session_factory(engine))

    broker = EmbeddedBroker(settings) if settings.bus_mode == "embedded" else None
    if bus is None:
        bus = build_bus(settings)

    fanout = LiveFanout()
    relay = build_relay(settings, store, bus, fanout)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # 1) Tablas + config por defecto
        if engine is not None:
            await init_models(engine)

        # 2) Broker embebido (si aplica) y despues el bus
        if broker is not None:
            await broker.start()
        bus.start(relay)

        # 3) Ticks periodicos: liveness hacia los dashboards y purga por retencion
        ticks: List[asyncio.Task] = [
            asyncio.create_task(every(
                settings.status_tick_ms / 1000,
                liveness_tick(relay, fanout, bus),
                "liveness",
            )),
            asyncio.create_task(every(
                settings.purge_interval_seconds,
                retention_purge(store),
                "retention purge",
            )),
        ]
        try:
            yield
        finally:
            for task in ticks:
                task.cancel()
            for task in ticks:
                with suppress(asyncio.CancelledError):
                    await task
            await bus.stop()
            await relay.aclose()
            if broker is not None:
                await broker.stop()
            if engine is not None:
                await engine.dispose()

    app = FastAPI(title="MedBox Sync Relay", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.bus = bus
    app.state.broker = broker
    app.state.fanout = fanout
    app.state.relay = relay

    app.include_router(health_router)
    app.include_router(api_router, prefix="/v1")
    app.include_router(ws_router)
    return app


def run() -> None:
    uvicorn.run("medbox_relay.main:create_app", factory=True, host="0.0.0.0", port=3001)


if __name__ == "__main__":
    run()
