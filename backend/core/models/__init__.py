"""Domain models shared by the engine and the application layer."""

from core.models.config import RESOLUTIONS, StrategyConfig
from core.models.position import Direction, PositionState, StrategyMemory
from core.models.price import PriceBar, closes_of
from core.models.tick import (
    GatewayAction,
    SignalLabel,
    SignalSnapshot,
    TickResult,
    TickStatus,
)

__all__ = [
    "RESOLUTIONS",
    "StrategyConfig",
    "Direction",
    "PositionState",
    "StrategyMemory",
    "PriceBar",
    "closes_of",
    "GatewayAction",
    "SignalLabel",
    "SignalSnapshot",
    "TickResult",
    "TickStatus",
]
