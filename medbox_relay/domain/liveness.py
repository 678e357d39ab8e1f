from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass
class LivenessRecord:
    last_seen_ms: int


class LivenessTracker:
    """
    Liveness pasivo por productor.

    No se le pide heartbeat al dispositivo: cualquier mensaje suyo (de cualquier
    topico) cuenta como señal de vida. Un productor esta online mientras
    now - last_seen < window. Nada se persiste; al reiniciar el proceso todos
    vuelven a "nunca visto".
    """

    def __init__(self, window_ms: int = 8000) -> None:
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        self.window_ms = window_ms
        self._records: Dict[str, LivenessRecord] = {}
        self._latest: Optional[str] = None

    def touch(self, producer_id: str, at_ms: int) -> None:
        record = self._records.get(producer_id)
        if record is None:
            self._records[producer_id] = LivenessRecord(last_seen_ms=at_ms)
        elif at_ms > record.last_seen_ms:
            record.last_seen_ms = at_ms
        self._latest = producer_id

    def last_seen(self, producer_id: str) -> Optional[int]:
        record = self._records.get(producer_id)
        return record.last_seen_ms if record else None

    def is_online(self, producer_id: str, now_ms: int) -> bool:
        last = self.last_seen(producer_id)
        return last is not None and now_ms - last < self.window_ms

    def producers(self) -> List[str]:
        return list(self._records)

    def snapshot(self, now_ms: int) -> Dict[str, Any]:
        latest = self._latest
        return {
            "deviceID": latest,
            "online": self.is_online(latest, now_ms) if latest else False,
            "lastSeen": self.last_seen(latest) if latest else None,
            "producers": {
                pid: {"lastSeen": rec.last_seen_ms, "online": self.is_online(pid, now_ms)}
                for pid, rec in self._records.items()
            },
        }
