"""Position state models."""

from dataclasses import dataclass
from enum import Enum


class PositionState(str, Enum):
    """Exposure held for an instrument."""

    NONE = "NONE"
    LONG = "LONG"
    SHORT = "SHORT"


class Direction(str, Enum):
    """Direction of a new position."""

    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def order_side(self) -> str:
        """Broker order side ("BUY" / "SELL")."""
        return "BUY" if self is Direction.LONG else "SELL"

    @property
    def position(self) -> PositionState:
        """Position state held once an order in this direction fills."""
        return PositionState(self.value)


@dataclass(frozen=True, slots=True)
class StrategyMemory:
    """What the engine remembers about one instrument between ticks.

    ``last_rsi`` is None until the first successful tick stores a baseline.
    """

    last_rsi: float | None = None
    position: PositionState = PositionState.NONE

    @property
    def has_baseline(self) -> bool:
        return self.last_rsi is not None
