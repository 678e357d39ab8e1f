import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, BigInteger, String, Float
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from medbox_relay.domain.models import DEFAULT_DEVICE_ID, DEFAULT_SERVO, DEFAULT_SERVO_TIMEOUT_MS


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class Base(DeclarativeBase): pass


class MedicineRow(Base):
    __tablename__ = "medicines"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    uid: Mapped[str] = mapped_column(String(64), nullable=False)        # tarjeta RFID, minusculas
    close_uid: Mapped[str] = mapped_column(String(64), default="")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expiry_date: Mapped[str] = mapped_column(String(32), default="")
    servo_pin: Mapped[int] = mapped_column(Integer, default=1)
    num_reminders: Mapped[int] = mapped_column(Integer, default=0)
    reminder_times: Mapped[list] = mapped_column(JSON, default=list)
    reminder_timeout: Mapped[int] = mapped_column(Integer, default=2)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class LogRow(Base):
    __tablename__ = "logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[str] = mapped_column(String(64), default=DEFAULT_DEVICE_ID)
    timestamp: Mapped[str] = mapped_column(String(64), nullable=False)
    card_uid: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    servo: Mapped[str] = mapped_column(String(32), default=DEFAULT_SERVO)
    details: Mapped[str] = mapped_column(String(512), default="")
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class SensorRow(Base):
    __tablename__ = "sensors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[str] = mapped_column(String(64), default=DEFAULT_DEVICE_ID)
    heart_rate: Mapped[float] = mapped_column(Float, nullable=False)
    spo2: Mapped[float] = mapped_column(Float, nullable=False)
    timestamp: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class ConfigRow(Base):
    __tablename__ = "config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    servo_timeout: Mapped[int] = mapped_column(Integer, default=DEFAULT_SERVO_TIMEOUT_MS)
    lock_rfid_outside_reminder: Mapped[bool] = mapped_column(Boolean, default=False)
    wifi_ssid: Mapped[str] = mapped_column(String(64), default="")
    wifi_password: Mapped[str] = mapped_column(String(128), default="")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class RecipientRow(Base):
    __tablename__ = "telegram_recipients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chat_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


Index("ix_medicines_uid", MedicineRow.uid, unique=True)
Index("ix_recipients_chat_id", RecipientRow.chat_id, unique=True)
Index("ix_logs_created_at", LogRow.created_at)
Index("ix_sensors_created_at", SensorRow.created_at)
