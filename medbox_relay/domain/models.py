from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Literal, Optional, Union
from datetime import datetime, timedelta

"""
Contratos del dominio (Pydantic).

Eventos que llegan desde el dispositivo (ESP32) por MQTT, registros durables
(medicinas, config, destinatarios) y los payloads que el relay publica de vuelta
hacia el dispositivo. Los nombres de campo en Python son snake_case; en el cable
se usan los alias camelCase que entiende el firmware (deviceID, cardUID, ...).
"""

DEFAULT_DEVICE_ID = "ESP32MedBox001"
DEFAULT_SERVO = "Servo1"
DEFAULT_SERVO_TIMEOUT_MS = 10000

# horizonte de retencion del Record Store
LOG_RETENTION = timedelta(days=30)
SENSOR_RETENTION = timedelta(days=7)

Number = Union[int, float]


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


def _blank(v) -> bool:
    # el firmware manda "" o null cuando no tiene el dato
    return v is None or (isinstance(v, str) and not v.strip())


def _as_text(v):
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


# --- Eventos entrantes (dispositivo -> relay) ---

class DeviceLogEvent(WireModel):
    device_id: str = Field(default=DEFAULT_DEVICE_ID, alias="deviceID")
    timestamp: str
    card_uid: str = Field(alias="cardUID")
    action: str
    servo: str = DEFAULT_SERVO
    details: str = ""
    success: bool

    @field_validator("device_id", mode="before")
    @classmethod
    def fill_device_id(cls, v):
        return DEFAULT_DEVICE_ID if _blank(v) else v

    @field_validator("servo", mode="before")
    @classmethod
    def fill_servo(cls, v):
        return DEFAULT_SERVO if _blank(v) else v

    @field_validator("details", mode="before")
    @classmethod
    def fill_details(cls, v):
        return "" if v is None else v

    @field_validator("timestamp", "card_uid", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return _as_text(v)


class SensorReadingEvent(WireModel):
    device_id: str = Field(default=DEFAULT_DEVICE_ID, alias="deviceID")
    heart_rate: Number = Field(alias="heartRate")
    spo2: Number
    timestamp: str

    @field_validator("device_id", mode="before")
    @classmethod
    def fill_device_id(cls, v):
        return DEFAULT_DEVICE_ID if _blank(v) else v

    @field_validator("timestamp", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return _as_text(v)


class StatusEvent(BaseModel):
    """Snapshot arbitrario; reemplaza al anterior (solo en memoria)."""
    data: Dict[str, Any]

    @property
    def device_id(self) -> Optional[str]:
        value = self.data.get("deviceID")
        return str(value) if value else None


class QuantityUpdateEvent(WireModel):
    medicine_id: str = Field(alias="medicineID", min_length=1)
    quantity: int = Field(ge=0)
    device_id: Optional[str] = Field(default=None, alias="deviceID")

    @field_validator("medicine_id", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return _as_text(v)


class BulkLoadRequest(WireModel):
    type: Literal["load_all"]
    device_id: Optional[str] = Field(default=None, alias="deviceID")

    @property
    def requested_by(self) -> str:
        return self.device_id or "unknown"


DomainEvent = Union[
    DeviceLogEvent, SensorReadingEvent, StatusEvent, QuantityUpdateEvent, BulkLoadRequest
]


# --- Registros durables (propiedad del Record Store) ---

class Medicine(WireModel):
    id: str = Field(alias="_id")
    name: str
    uid: str
    close_uid: str = Field(default="", alias="closeUid")
    quantity: int = 0
    expiry_date: str = Field(default="", alias="expiryDate")
    servo_pin: int = Field(default=1, alias="servoPin")
    num_reminders: int = Field(default=0, alias="numReminders")
    reminder_times: List[str] = Field(default_factory=list, alias="reminderTimes")
    reminder_timeout: int = Field(default=2, alias="reminderTimeout")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    def to_device(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude={"updated_at"})


class DeviceConfig(WireModel):
    servo_timeout: int = Field(default=DEFAULT_SERVO_TIMEOUT_MS, alias="servoTimeout")
    lock_rfid_outside_reminder: bool = Field(default=False, alias="lockRFIDOutsideReminder")
    wifi_ssid: str = Field(default="", alias="wifiSSID")
    wifi_password: str = Field(default="", alias="wifiPassword")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    def to_public(self) -> Dict[str, Any]:
        # lo que ve el dashboard: nunca la clave del wifi
        return self.model_dump(by_alias=True, mode="json", exclude={"wifi_password"})


class Recipient(WireModel):
    chat_id: int = Field(alias="chatID")
    active: bool = True

    def to_device(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# --- Payloads salientes (relay -> dispositivo) ---

class MedicinesPayload(BaseModel):
    type: Literal["load_medicines"] = "load_medicines"
    count: int
    medicines: List[Dict[str, Any]]

    @classmethod
    def build(cls, medicines: List[Medicine]) -> "MedicinesPayload":
        return cls(count=len(medicines), medicines=[m.to_device() for m in medicines])


class ConfigPayload(BaseModel):
    type: Literal["config"] = "config"
    servoTimeout: int
    lockRFIDOutsideReminder: bool

    @classmethod
    def build(cls, config: DeviceConfig) -> "ConfigPayload":
        return cls(
            servoTimeout=config.servo_timeout,
            lockRFIDOutsideReminder=config.lock_rfid_outside_reminder,
        )


class RecipientsPayload(BaseModel):
    type: Literal["load_recipients"] = "load_recipients"
    count: int
    recipients: List[Dict[str, Any]]

    @classmethod
    def build(cls, recipients: List[Recipient]) -> "RecipientsPayload":
        return cls(count=len(recipients), recipients=[r.to_device() for r in recipients])


class ControlCommand(BaseModel):
    type: Literal["control"] = "control"
    action: str = Field(min_length=1)
