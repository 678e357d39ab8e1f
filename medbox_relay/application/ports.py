from datetime import datetime
from typing import Any, List, Optional, Protocol, Union

from medbox_relay.domain.models import (
    DeviceConfig,
    DeviceLogEvent,
    Medicine,
    Recipient,
    SensorReadingEvent,
)

"""
Puertos que usa la capa de aplicacion; las implementaciones viven en adapters/.
"""


class BusOut(Protocol):
    async def publish(self, topic: str, payload: Union[str, bytes]) -> None: ...


class BusState(Protocol):
    connected: bool
    broker_clients: Optional[int]


class FanOut(Protocol):
    async def broadcast(self, event: str, payload: Any = None) -> None: ...


class RecordStore(Protocol):
    """
    Almacen durable (colaborador externo). Todas las operaciones pueden lanzar
    StoreError; update_medicine_quantity lanza RecordNotFound si el id no existe.
    """

    async def insert_log(self, ev: DeviceLogEvent) -> None: ...
    async def insert_sensor(self, ev: SensorReadingEvent) -> None: ...
    async def update_medicine_quantity(self, medicine_id: str, quantity: int) -> Medicine: ...
    async def list_medicines(self) -> List[Medicine]: ...
    async def get_config(self) -> Optional[DeviceConfig]: ...
    async def list_recipients(self) -> List[Recipient]: ...
    async def purge_expired(self, now: datetime) -> int: ...
