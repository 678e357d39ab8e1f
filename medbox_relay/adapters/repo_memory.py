from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from medbox_relay.domain.models import (
    LOG_RETENTION,
    SENSOR_RETENTION,
    DeviceConfig,
    DeviceLogEvent,
    Medicine,
    Recipient,
    SensorReadingEvent,
)
from medbox_relay.errors import RecordNotFound


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Record Store minimo en memoria (DATABASE_URL=memory y tests) ---
class InMemoryRecordStore:
    def __init__(
        self,
        medicines: Optional[List[Medicine]] = None,
        config: Optional[DeviceConfig] = None,
        recipients: Optional[List[Recipient]] = None,
    ):
        self.medicines: Dict[str, Medicine] = {m.id: m for m in medicines or []}
        self.config = config
        self.recipients: List[Recipient] = list(recipients or [])
        self.logs: List[Tuple[datetime, DeviceLogEvent]] = []
        self.sensors: List[Tuple[datetime, SensorReadingEvent]] = []

    async def insert_log(self, ev: DeviceLogEvent) -> None:
        self.logs.append((_utcnow(), ev))

    async def insert_sensor(self, ev: SensorReadingEvent) -> None:
        self.sensors.append((_utcnow(), ev))

    async def update_medicine_quantity(self, medicine_id: str, quantity: int) -> Medicine:
        current = self.medicines.get(medicine_id)
        if current is None:
            raise RecordNotFound("medicine", medicine_id)
        updated = current.model_copy(update={"quantity": quantity, "updated_at": _utcnow()})
        self.medicines[medicine_id] = updated
        return updated

    async def list_medicines(self) -> List[Medicine]:
        return list(self.medicines.values())

    async def get_config(self) -> Optional[DeviceConfig]:
        return self.config

    async def list_recipients(self) -> List[Recipient]:
        return list(self.recipients)

    async def purge_expired(self, now: datetime) -> int:
        before = len(self.logs) + len(self.sensors)
        self.logs = [(at, ev) for at, ev in self.logs if now - at <= LOG_RETENTION]
        self.sensors = [(at, ev) for at, ev in self.sensors if now - at <= SENSOR_RETENTION]
        return before - len(self.logs) - len(self.sensors)
