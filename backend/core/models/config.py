"""Strategy configuration models."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

# Resolutions accepted by the broker's price history endpoint
RESOLUTIONS = (
    "MINUTE",
    "MINUTE_5",
    "MINUTE_15",
    "MINUTE_30",
    "HOUR",
    "HOUR_4",
    "DAY",
    "WEEK",
)


class StrategyConfig(BaseModel):
    """RSI momentum strategy parameters."""

    # Oscillator
    rsi_period: int = Field(default=14, gt=0)

    # Price history request
    resolution: str = "MINUTE_5"
    max_bars: int = Field(default=100, gt=0)

    # Fixed order size in instrument units (no sizing logic)
    order_size: float = Field(default=1.0, gt=0)

    # Read-only signal thresholds
    overbought: float = 70.0
    oversold: float = 30.0

    @model_validator(mode="after")
    def _validate(self):
        if self.resolution not in RESOLUTIONS:
            raise ValueError(
                f"resolution must be one of {RESOLUTIONS}, got '{self.resolution}'"
            )
        if self.max_bars < self.rsi_period + 1:
            raise ValueError(
                f"max_bars ({self.max_bars}) must be at least rsi_period + 1 "
                f"({self.rsi_period + 1})"
            )
        if not 0 <= self.oversold < self.overbought <= 100:
            raise ValueError("thresholds must satisfy 0 <= oversold < overbought <= 100")
        return self

    @property
    def min_bars(self) -> int:
        """Bars needed for a defined RSI."""
        return self.rsi_period + 1
