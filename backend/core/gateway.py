"""Broker gateway protocol consumed by the strategy engine.

The engine never talks to a broker directly. Anything satisfying this
protocol can be injected: the Capital.com REST client in app/clients, or a
mock in tests.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from core.models import Direction, PriceBar


@runtime_checkable
class BrokerGateway(Protocol):
    """Price history and order execution for a single broker account.

    All methods raise core.errors.GatewayError on failure; none of them
    signal failure by returning an empty value.
    """

    async def get_historical_prices(
        self,
        instrument: str,
        resolution: str,
        max_bars: int,
    ) -> list[PriceBar]:
        """Fetch recent bars, newest last."""
        ...

    async def open_position(self, instrument: str, direction: Direction) -> str:
        """Open a position and return the acknowledged deal reference."""
        ...

    async def close_position(self, instrument: str) -> None:
        """Close any open position on the instrument (no-op if none)."""
        ...
