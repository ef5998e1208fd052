from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Optional


@dataclass(slots=True)
class ConnectionState:
    """Mutable connection bookkeeping owned by a single gateway.

    Timestamps are monotonic seconds from the gateway's clock; ``None`` means
    the event never happened in this process.
    """

    is_connected: bool = False
    is_reconnecting: bool = False
    last_connect_attempt: Optional[float] = None
    last_health_probe: Optional[float] = None

    @property
    def phase(self) -> str:
        if self.is_reconnecting:
            return "connecting"
        return "connected" if self.is_connected else "disconnected"

    def snapshot(self) -> dict:
        data = asdict(self)
        data["phase"] = self.phase
        return data


@dataclass(frozen=True, slots=True)
class ReconnectOutcome:
    """Result shared by every caller that waited on the same reconnect attempt."""

    attempted_at: float
    completed_at: float


@dataclass(frozen=True, slots=True)
class HealthStatus:
    connected: bool
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {"connected": self.connected, "error": self.error}
