from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

"""
Configuracion del relay leida de variables de entorno (DATABASE_URL, MQTT_HOST, ...).

Todo se lee una sola vez (Settings.from_env()) y se inyecta; ningun modulo
consulta os.getenv por su cuenta. Un valor mal formado (MQTT_PORT=abc) corta
el arranque con ValidationError.
"""

BusMode = Literal["mqtt", "memory", "embedded"]

# DATABASE_URL=memory: store en memoria, sin BDD (demos / BUS_MODE=memory)
MEMORY_DATABASE_URL = "memory"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(frozen=True, extra="ignore")

    # ---- Persistencia ---------------------------------------------------
    database_url: str = "sqlite+aiosqlite:///./medbox.db"

    # ---- Bus ------------------------------------------------------------
    mqtt_host: str = "mosquitto"
    mqtt_port: int = Field(1883, ge=1, le=65535)
    mqtt_username: Optional[str] = None
    mqtt_password: Optional[str] = None
    mqtt_client_id: Optional[str] = None
    mqtt_namespace: str = Field("smartmedbox", min_length=1)
    mqtt_reconnect_seconds: float = Field(3, ge=0)
    # "mqtt" = broker externo (Mosquitto), "embedded" = broker MQTT dentro del
    # proceso escuchando en MQTT_BIND_HOST:MQTT_PORT, "memory" = sin red
    bus_mode: BusMode = "mqtt"
    mqtt_bind_host: str = "0.0.0.0"
    broker_sys_interval_seconds: int = Field(10, ge=1)

    # ---- Tiempos --------------------------------------------------------
    staleness_window_ms: int = Field(8000, gt=0)
    status_tick_ms: int = Field(2000, gt=0)
    bulk_config_delay_ms: int = Field(500, ge=0)
    bulk_recipients_delay_ms: int = Field(1000, ge=0)
    purge_interval_seconds: int = Field(3600, gt=0)

    # ---- Logs -----------------------------------------------------------
    log_level: str = "INFO"
    debug_payload: bool = True

    @field_validator("mqtt_username", "mqtt_password", "mqtt_client_id", mode="before")
    @classmethod
    def blank_as_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("bus_mode", "log_level", mode="before")
    @classmethod
    def normalize_case(cls, v, info):
        if isinstance(v, str):
            v = v.strip()
            return v.upper() if info.field_name == "log_level" else v.lower()
        return v

    @field_validator("mqtt_namespace")
    @classmethod
    def strip_slashes(cls, v: str) -> str:
        v = v.strip("/")
        if not v:
            raise ValueError("namespace cannot be empty")
        return v

    @model_validator(mode="after")
    def check_bulk_offsets(self) -> "Settings":
        if self.bulk_recipients_delay_ms < self.bulk_config_delay_ms:
            raise ValueError("BULK_RECIPIENTS_DELAY_MS must be >= BULK_CONFIG_DELAY_MS")
        return self

    @property
    def uses_memory_store(self) -> bool:
        return self.database_url.strip().lower() == MEMORY_DATABASE_URL

    @classmethod
    def from_env(cls) -> "Settings":
        return cls()
