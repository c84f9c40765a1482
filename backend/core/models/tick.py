"""Tick result and signal read models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from core.models.position import PositionState


class TickStatus(str, Enum):
    """Outcome of one tick."""

    SUCCESS = "success"  # Decision made, any orders acknowledged
    BASELINE = "baseline"  # First RSI stored, no trade
    DATA_UNAVAILABLE = "data_unavailable"
    GATEWAY_FAILURE = "gateway_failure"
    CONFIGURATION_ERROR = "configuration_error"

    @property
    def is_failure(self) -> bool:
        return self not in (TickStatus.SUCCESS, TickStatus.BASELINE)


class SignalLabel(str, Enum):
    """Read-only RSI classification (not used for trading decisions)."""

    OVERBOUGHT = "OVERBOUGHT"
    OVERSOLD = "OVERSOLD"
    NEUTRAL = "NEUTRAL"


@dataclass(frozen=True, slots=True)
class GatewayAction:
    """A broker call issued during a tick, e.g. ("close", None) or ("open", "LONG")."""

    kind: str
    direction: str | None = None
    reference: str | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TickResult:
    """Typed result of one tick, delivered to the observability sink.

    Attributes:
        instrument: Instrument the tick acted on (None if none was selected).
        status: Tick outcome.
        previous_rsi: RSI stored before the tick.
        current_rsi: RSI computed during the tick (None if unavailable).
        previous_position: Position held before the tick.
        position: Position held after the tick.
        actions: Gateway calls acknowledged during the tick, in order.
        error: Failure description for failed ticks.
    """

    instrument: str | None
    status: TickStatus
    previous_rsi: float | None = None
    current_rsi: float | None = None
    previous_position: PositionState = PositionState.NONE
    position: PositionState = PositionState.NONE
    actions: list[GatewayAction] = field(default_factory=list)
    error: str | None = None
    started_at: datetime = field(default_factory=_utcnow)
    finished_at: datetime | None = None

    @property
    def ok(self) -> bool:
        return not self.status.is_failure

    @property
    def position_changed(self) -> bool:
        return self.position != self.previous_position

    def to_dict(self) -> dict:
        """Serialize for logging / WebSocket broadcast."""
        return {
            "instrument": self.instrument,
            "status": self.status.value,
            "previous_rsi": self.previous_rsi,
            "current_rsi": self.current_rsi,
            "previous_position": self.previous_position.value,
            "position": self.position.value,
            "actions": [
                {"kind": a.kind, "direction": a.direction, "reference": a.reference}
                for a in self.actions
            ],
            "error": self.error,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass(frozen=True, slots=True)
class SignalSnapshot:
    """Current RSI reading for an instrument, for display."""

    instrument: str
    rsi_value: float
    label: SignalLabel
    position: PositionState
