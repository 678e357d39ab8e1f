import asyncio
import logging
import time
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union

from medbox_relay.application.bulk_sync import BulkSync
from medbox_relay.application.commands import CommandPublisher
from medbox_relay.application.ports import FanOut, RecordStore
from medbox_relay.domain.codec import decode_event
from medbox_relay.domain.liveness import LivenessTracker
from medbox_relay.domain.models import (
    DEFAULT_DEVICE_ID,
    BulkLoadRequest,
    DeviceConfig,
    DeviceLogEvent,
    QuantityUpdateEvent,
    SensorReadingEvent,
    StatusEvent,
)
from medbox_relay.domain.topics import TopicKind, Topics
from medbox_relay.errors import DecodeError, RecordNotFound, StoreError

"""
Logica de la aplicacion sin detalles de red/DB:
1) Clasifica el topico (TopicKind cerrado) y decodifica el payload; si no es
   JSON valido para ese topico se descarta y se loguea.
2) Marca al productor como visto (liveness), para cualquier topico del dispositivo.
3) Aplica el efecto del evento: persistir (logs/sensores), reemplazar el status
   en memoria, actualizar la cantidad de una medicina, o disparar el load_all.
4) Reenvia el evento normalizado a los consumidores (fan-out WebSocket).

Ademas expone los hooks de auto-sync que llama el CRUD externo despues de
modificar medicinas / config / destinatarios.
"""

log = logging.getLogger(__name__)

Payload = Union[bytes, bytearray, str]


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


class SyncRelay:
    def __init__(
        self,
        store: RecordStore,
        fanout: FanOut,
        publisher: CommandPublisher,
        topics: Topics,
        liveness: LivenessTracker,
        bulk_sync: BulkSync,
        clock: Callable[[], int] = wall_clock_ms,
        debug_payload: bool = False,
    ):
        self.store = store
        self.fanout = fanout
        self.publisher = publisher
        self.topics = topics
        self.liveness = liveness
        self.bulk_sync = bulk_sync
        self.clock = clock
        self.debug_payload = debug_payload

        # ultimo status del dispositivo; vive lo que vive el proceso
        self.current_status: Dict[str, Any] = {}
        self._tasks: Set[asyncio.Task] = set()
        # un lock por medicina: los updates de la misma medicina se aplican en orden de llegada
        self._medicine_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

        self._handlers: Dict[TopicKind, Callable[[Any], Awaitable[None]]] = {
            TopicKind.LOGS: self._on_log,
            TopicKind.STATUS: self._on_status,
            TopicKind.SENSORS: self._on_sensor,
            TopicKind.MEDICINE_UPDATE: self._on_quantity,
            TopicKind.REQUEST: self._on_request,
        }

    # ------------------ ingestion ------------------

    async def on_message(self, topic: str, payload: Payload, producer_hint: Optional[str] = None) -> None:
        kind = self.topics.classify(topic)
        if kind is TopicKind.RESERVED:
            return
        if not kind.device_originated:
            # eco de lo que publicamos nosotros mismos en <ns>/data|config|commands
            return

        if self.debug_payload:
            preview = payload[:100] if isinstance(payload, str) else bytes(payload[:100]).decode("utf-8", "replace")
            log.debug("[MQTT] %s: %s", topic, preview)

        if not kind.handled:
            self._touch(producer_hint)
            log.debug("[MQTT] unhandled topic %s ignored", topic)
            return

        try:
            ev = decode_event(kind, topic, payload)
        except DecodeError as e:
            self._touch(producer_hint)
            log.warning("[MQTT] dropped message: %s", e)
            return

        self._touch(getattr(ev, "device_id", None) or producer_hint)
        await self._handlers[kind](ev)

    def dispatch(self, topic: str, payload: Payload, producer_hint: Optional[str] = None) -> asyncio.Task:
        """Procesa el mensaje en su propia tarea; no bloquea la lectura del bus."""
        return self.spawn(self.on_message(topic, payload, producer_hint))

    def _touch(self, producer_id: Optional[str]) -> None:
        self.liveness.touch(producer_id or DEFAULT_DEVICE_ID, self.clock())

    async def _on_log(self, ev: DeviceLogEvent) -> None:
        try:
            await self.store.insert_log(ev)
        except StoreError as e:
            log.error("[SYNC] log not persisted (%s): %s", ev.action, e)
            return
        await self.fanout.broadcast("new_log", ev.to_wire())
        log.info("[SYNC] log saved: %s", ev.action)

    async def _on_sensor(self, ev: SensorReadingEvent) -> None:
        try:
            await self.store.insert_sensor(ev)
        except StoreError as e:
            log.error("[SYNC] sensor reading not persisted: %s", e)
            return
        await self.fanout.broadcast("sensor_data", ev.to_wire())
        log.info("[SYNC] sensor: HR %s | SpO2 %s%%", ev.heart_rate, ev.spo2)

    async def _on_status(self, ev: StatusEvent) -> None:
        self.current_status = ev.data
        await self.fanout.broadcast("status_update", ev.data)

    async def _on_quantity(self, ev: QuantityUpdateEvent) -> None:
        # update + broadcast + republish bajo el lock: el siguiente update de la
        # misma medicina no arranca hasta que el dispositivo recibio este
        async with self._medicine_locks[ev.medicine_id]:
            try:
                await self.store.update_medicine_quantity(ev.medicine_id, ev.quantity)
            except RecordNotFound as e:
                log.warning("[SYNC] quantity update ignored: %s", e)
                return
            except StoreError as e:
                log.error("[SYNC] quantity update failed for %s: %s", ev.medicine_id, e)
                return
            await self.fanout.broadcast(
                "medicine_qty_updated", {"medicineID": ev.medicine_id, "quantity": ev.quantity}
            )
            log.info("[SYNC] medicine qty updated: %s -> %s", ev.medicine_id, ev.quantity)
            await self.push_medicines()

    async def _on_request(self, ev: BulkLoadRequest) -> None:
        self.spawn(self.bulk_sync.run(ev.requested_by))

    # ------------------ auto-sync ------------------

    async def push_medicines(self) -> bool:
        try:
            medicines = await self.store.list_medicines()
        except StoreError as e:
            log.error("[AUTO] error publishing medicines: %s", e)
            return False
        await self.publisher.publish_medicines(medicines)
        log.info("[AUTO] published %d medicines", len(medicines))
        return True

    async def sync_medicines(self) -> bool:
        await self.fanout.broadcast("medicines_updated")
        return await self.push_medicines()

    async def sync_config(self) -> bool:
        try:
            config = await self.store.get_config() or DeviceConfig()
        except StoreError as e:
            log.error("[AUTO] error publishing config: %s", e)
            return False
        await self.publisher.publish_config(config)
        await self.fanout.broadcast("config_updated", config.to_public())
        return True

    async def sync_recipients(self) -> bool:
        try:
            recipients = await self.store.list_recipients()
        except StoreError as e:
            log.error("[AUTO] error publishing recipients: %s", e)
            return False
        await self.publisher.publish_recipients(recipients)
        await self.fanout.broadcast("recipients_updated")
        return True

    # ------------------ status ------------------

    def liveness_status(self) -> Dict[str, Any]:
        return self.liveness.snapshot(self.clock())

    def status_snapshot(self) -> Dict[str, Any]:
        return {**self.current_status, "liveness": self.liveness_status()}

    async def full_status(self) -> Dict[str, Any]:
        """Snapshot + datos del store (cantidad de medicinas y config publica).

        Levanta StoreError si el store no responde.
        """
        medicines = await self.store.list_medicines()
        config = await self.store.get_config() or DeviceConfig()
        return {
            **self.status_snapshot(),
            "medicineCount": len(medicines),
            "config": config.to_public(),
        }

    # ------------------ tareas ------------------

    def spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("[SYNC] handler crashed", exc_info=exc)

    async def drain(self) -> None:
        """Espera a que terminen los handlers y secuencias load_all pendientes."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()
