"""Relative Strength Index (pure math, no I/O).

Smoothing: the average gain and average loss are simple means of the last
``period`` price deltas, i.e. Wilder's seed average over a window of
``period + 1`` closes. Older closes are ignored, so the value depends only on
that window.
"""

from typing import Sequence

import numpy as np

from core.models.tick import SignalLabel

DEFAULT_PERIOD = 14
OVERBOUGHT = 70.0
OVERSOLD = 30.0


def _window_rsi(window: np.ndarray) -> float:
    """RSI of one window of period + 1 closes."""
    deltas = np.diff(window)
    avg_gain = float(np.mean(np.where(deltas > 0, deltas, 0.0)))
    avg_loss = float(np.mean(np.where(deltas < 0, -deltas, 0.0)))

    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def rsi(closes: Sequence[float], period: int = DEFAULT_PERIOD) -> float | None:
    """
    Calculate the RSI of the most recent ``period + 1`` closes.

    Args:
        closes: Closing prices, oldest first
        period: Number of deltas in the window

    Returns:
        RSI in [0, 100], or None when fewer than ``period + 1`` closes exist
    """
    if period <= 0:
        raise ValueError("RSI period must be > 0")
    if len(closes) < period + 1:
        return None

    window = np.asarray(closes[-(period + 1):], dtype=np.float64)
    return _window_rsi(window)


def rsi_series(closes: Sequence[float], period: int = DEFAULT_PERIOD) -> list[float | None]:
    """
    Calculate the rolling RSI for every close.

    Each value uses the same window rule as ``rsi()``, so the last element
    equals ``rsi(closes, period)``.

    Returns:
        List the same length as ``closes`` with None for the first ``period`` bars
    """
    if period <= 0:
        raise ValueError("RSI period must be > 0")

    arr = np.asarray(closes, dtype=np.float64)
    result: list[float | None] = [None] * len(arr)

    for i in range(period, len(arr)):
        result[i] = _window_rsi(arr[i - period : i + 1])

    return result


def classify_rsi(
    value: float,
    overbought: float = OVERBOUGHT,
    oversold: float = OVERSOLD,
) -> SignalLabel:
    """Classify an RSI reading as OVERBOUGHT / OVERSOLD / NEUTRAL."""
    if value > overbought:
        return SignalLabel.OVERBOUGHT
    if value < oversold:
        return SignalLabel.OVERSOLD
    return SignalLabel.NEUTRAL
