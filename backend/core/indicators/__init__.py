"""Technical indicators (pure math, no I/O)."""

from core.indicators.rsi import (
    DEFAULT_PERIOD,
    OVERBOUGHT,
    OVERSOLD,
    classify_rsi,
    rsi,
    rsi_series,
)

__all__ = [
    "DEFAULT_PERIOD",
    "OVERBOUGHT",
    "OVERSOLD",
    "classify_rsi",
    "rsi",
    "rsi_series",
]
