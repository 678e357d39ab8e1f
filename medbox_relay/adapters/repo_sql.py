from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medbox_relay.domain.db_models import ConfigRow, LogRow, MedicineRow, RecipientRow, SensorRow
from medbox_relay.domain.models import (
    LOG_RETENTION,
    SENSOR_RETENTION,
    DeviceConfig,
    DeviceLogEvent,
    Medicine,
    Recipient,
    SensorReadingEvent,
)
from medbox_relay.errors import RecordNotFound, StoreError

"""
Acceso a la BDD (SQLAlchemy async). Cada operacion abre su propia sesion, asi un
handler lento no retiene la sesion de otro. Los errores de SQLAlchemy se
envuelven en StoreError para que la capa de aplicacion no dependa del driver.
"""


def _to_medicine(row: MedicineRow) -> Medicine:
    return Medicine(
        id=row.id,
        name=row.name,
        uid=row.uid,
        close_uid=row.close_uid or "",
        quantity=row.quantity,
        expiry_date=row.expiry_date or "",
        servo_pin=row.servo_pin,
        num_reminders=row.num_reminders,
        reminder_times=list(row.reminder_times or []),
        reminder_timeout=row.reminder_timeout,
        updated_at=row.updated_at,
    )


def _to_config(row: ConfigRow) -> DeviceConfig:
    return DeviceConfig(
        servo_timeout=row.servo_timeout,
        lock_rfid_outside_reminder=row.lock_rfid_outside_reminder,
        wifi_ssid=row.wifi_ssid or "",
        wifi_password=row.wifi_password or "",
        updated_at=row.updated_at,
    )


class SqlRecordStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def insert_log(self, ev: DeviceLogEvent) -> None:
        row = LogRow(
            device_id=ev.device_id,
            timestamp=ev.timestamp,
            card_uid=ev.card_uid,
            action=ev.action,
            servo=ev.servo,
            details=ev.details,
            success=ev.success,
        )
        await self._add(row)

    async def insert_sensor(self, ev: SensorReadingEvent) -> None:
        row = SensorRow(
            device_id=ev.device_id,
            heart_rate=ev.heart_rate,
            spo2=ev.spo2,
            timestamp=ev.timestamp,
        )
        await self._add(row)

    async def _add(self, row) -> None:
        async with self.session_factory() as session:
            try:
                session.add(row)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise StoreError(str(e.__cause__ or e)) from e

    async def update_medicine_quantity(self, medicine_id: str, quantity: int) -> Medicine:
        async with self.session_factory() as session:
            try:
                row = await session.get(MedicineRow, medicine_id)
                if row is None:
                    raise RecordNotFound("medicine", medicine_id)
                row.quantity = quantity
                row.updated_at = datetime.now(timezone.utc)
                await session.commit()
                return _to_medicine(row)
            except SQLAlchemyError as e:
                await session.rollback()
                raise StoreError(str(e.__cause__ or e)) from e

    async def list_medicines(self) -> List[Medicine]:
        stmt = select(MedicineRow).order_by(MedicineRow.created_at)
        async with self.session_factory() as session:
            try:
                rows = (await session.execute(stmt)).scalars().all()
            except SQLAlchemyError as e:
                raise StoreError(str(e.__cause__ or e)) from e
        return [_to_medicine(r) for r in rows]

    async def get_config(self) -> Optional[DeviceConfig]:
        stmt = select(ConfigRow).order_by(ConfigRow.id).limit(1)
        async with self.session_factory() as session:
            try:
                row = (await session.execute(stmt)).scalar_one_or_none()
            except SQLAlchemyError as e:
                raise StoreError(str(e.__cause__ or e)) from e
        return _to_config(row) if row else None

    async def list_recipients(self) -> List[Recipient]:
        stmt = select(RecipientRow).order_by(RecipientRow.created_at)
        async with self.session_factory() as session:
            try:
                rows = (await session.execute(stmt)).scalars().all()
            except SQLAlchemyError as e:
                raise StoreError(str(e.__cause__ or e)) from e
        return [Recipient(chat_id=r.chat_id, active=r.active) for r in rows]

    async def purge_expired(self, now: datetime) -> int:
        async with self.session_factory() as session:
            try:
                logs = await session.execute(delete(LogRow).where(LogRow.created_at < now - LOG_RETENTION))
                sensors = await session.execute(
                    delete(SensorRow).where(SensorRow.created_at < now - SENSOR_RETENTION)
                )
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise StoreError(str(e.__cause__ or e)) from e
        return (logs.rowcount or 0) + (sensors.rowcount or 0)
