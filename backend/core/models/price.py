"""Price bar (candlestick) data model."""

import math
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, field_validator


class PriceBar(BaseModel):
    """One OHLC bar of broker price history.

    Only ``close`` feeds the oscillator; the other fields are carried for
    chart display.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: int  # Millisecond epoch
    open: float
    high: float
    low: float
    close: float

    @field_validator("open", "high", "low", "close")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("price values must be finite")
        return value

    @property
    def time(self) -> datetime:
        """Bar timestamp as an aware UTC datetime."""
        return datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)


def closes_of(bars: list[PriceBar]) -> list[float]:
    """Get the closing prices of a bar sequence, oldest first."""
    return [bar.close for bar in bars]
