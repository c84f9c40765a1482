"""RSI momentum strategy engine.

Each tick fetches price history for one instrument, computes the RSI and
compares it with the RSI stored on the previous tick:

- RSI rising  -> hold LONG  (close a SHORT first if one is open)
- RSI falling -> hold SHORT (close a LONG first if one is open)
- RSI equal   -> do nothing

Only the direction of change drives entries; the overbought/oversold
classification is read-only and never trades.

The engine performs no I/O of its own. The broker is injected as a
BrokerGateway and state lives in an injected PositionStore, which is written
exactly once per tick after every order call has been acknowledged.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable

from core.errors import DataUnavailable, GatewayFailure
from core.gateway import BrokerGateway
from core.indicators import classify_rsi, rsi
from core.models import (
    Direction,
    GatewayAction,
    PositionState,
    SignalSnapshot,
    StrategyConfig,
    StrategyMemory,
    TickResult,
    TickStatus,
    closes_of,
)
from core.position_store import PositionStore

logger = logging.getLogger(__name__)

ResultCallback = Callable[[TickResult], Awaitable[None]]


def decide(
    previous_rsi: float,
    current_rsi: float,
    position: PositionState,
) -> Direction | None:
    """
    Pick the position to move into, or None to stay put.

    Returns None when the RSI is unchanged or when the position the RSI
    points to is already held.
    """
    if current_rsi > previous_rsi and position is not PositionState.LONG:
        return Direction.LONG
    if current_rsi < previous_rsi and position is not PositionState.SHORT:
        return Direction.SHORT
    return None


class StrategyEngine:
    """
    Drive the per-instrument NONE/LONG/SHORT state machine from RSI changes.

    Ticks for the same instrument are serialized; a tick never raises
    (except on cancellation). Every tick produces a TickResult that is
    logged and passed to the callbacks registered with on_result().
    """

    def __init__(
        self,
        gateway: BrokerGateway,
        store: PositionStore | None = None,
        config: StrategyConfig | None = None,
    ):
        self.gateway = gateway
        self.store = store if store is not None else PositionStore()
        self.config = config or StrategyConfig()

        self._selected: str | None = None
        self._locks: dict[str, asyncio.Lock] = {}
        self._callbacks: list[ResultCallback] = []

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def on_result(self, callback: ResultCallback) -> None:
        """Register callback for tick results.

        Note: Duplicate callbacks are ignored.
        """
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def off_result(self, callback: ResultCallback) -> None:
        """Unregister callback for tick results."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    async def _emit(self, result: TickResult) -> None:
        for callback in self._callbacks:
            try:
                await callback(result)
            except Exception:
                logger.exception("Tick result callback failed")

    # ------------------------------------------------------------------
    # Instrument selection
    # ------------------------------------------------------------------

    @property
    def selected_instrument(self) -> str | None:
        return self._selected

    def select_instrument(self, instrument: str) -> None:
        """Set the instrument scheduled ticks act on, from the next tick onward."""
        instrument = instrument.strip()
        if not instrument:
            raise ValueError("instrument must not be empty")
        self._selected = instrument
        logger.info(f"Selected market for trading: {instrument}")

    # ------------------------------------------------------------------
    # Read paths
    # ------------------------------------------------------------------

    async def fetch_rsi(self, instrument: str) -> float:
        """
        Fetch price history and compute the current RSI.

        Raises:
            DataUnavailable: history fetch failed or has too few bars
        """
        try:
            bars = await self.gateway.get_historical_prices(
                instrument,
                self.config.resolution,
                self.config.max_bars,
            )
        except Exception as e:
            raise DataUnavailable(
                f"price history fetch failed for {instrument}: {e}"
            ) from e

        value = rsi(closes_of(bars), self.config.rsi_period)
        if value is None:
            raise DataUnavailable(
                f"insufficient data for {instrument}: {len(bars)} bars, "
                f"need {self.config.min_bars}"
            )
        return value

    async def current_signal(self, instrument: str) -> SignalSnapshot:
        """Current RSI with its OVERBOUGHT/OVERSOLD/NEUTRAL label."""
        value = await self.fetch_rsi(instrument)
        return SignalSnapshot(
            instrument=instrument,
            rsi_value=value,
            label=classify_rsi(value, self.config.overbought, self.config.oversold),
            position=self.store.position(instrument),
        )

    def current_position(self, instrument: str) -> PositionState:
        return self.store.position(instrument)

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    async def run_selected(self) -> TickResult:
        """Run a tick for the selected instrument (scheduler entry point)."""
        instrument = self._selected
        if not instrument:
            logger.warning("No market selected for trading")
            result = TickResult(
                instrument=None,
                status=TickStatus.CONFIGURATION_ERROR,
                error="no instrument selected for trading",
            )
            result.finished_at = datetime.now(timezone.utc)
            await self._emit(result)
            return result

        return await self.tick(instrument)

    async def tick(self, instrument: str) -> TickResult:
        """Run one tick for an instrument and report its result."""
        lock = self._locks.setdefault(instrument, asyncio.Lock())
        async with lock:
            logger.info(f"Starting RSI strategy check for {instrument}")
            try:
                result = await self._tick(instrument)
            except asyncio.CancelledError:
                logger.warning(f"Tick for {instrument} cancelled, state left unchanged")
                raise

        result.finished_at = datetime.now(timezone.utc)
        await self._emit(result)
        return result

    async def _tick(self, instrument: str) -> TickResult:
        memory = self.store.get(instrument)
        result = TickResult(
            instrument=instrument,
            status=TickStatus.SUCCESS,
            previous_rsi=memory.last_rsi,
            previous_position=memory.position,
            position=memory.position,
        )

        try:
            current = await self.fetch_rsi(instrument)
        except DataUnavailable as e:
            logger.warning(f"Tick aborted: {e}")
            result.status = TickStatus.DATA_UNAVAILABLE
            result.error = str(e)
            return result

        result.current_rsi = current
        logger.info(f"Current RSI for {instrument}: {current:.4f}")

        if memory.last_rsi is None:
            logger.info(f"First calculation for {instrument}, storing RSI baseline")
            self.store.set(instrument, StrategyMemory(current, memory.position))
            result.status = TickStatus.BASELINE
            return result

        target = decide(memory.last_rsi, current, memory.position)
        if target is None:
            if current == memory.last_rsi:
                logger.info(f"No RSI change for {instrument} - RSI: {current:.4f}")
            else:
                logger.info(
                    f"RSI for {instrument} moved {memory.last_rsi:.4f} -> {current:.4f}, "
                    f"already {memory.position.value}"
                )
        else:
            logger.info(
                f"{target.order_side} signal for {instrument} - "
                f"RSI moved {memory.last_rsi:.4f} -> {current:.4f}"
            )
            try:
                await self._transition(instrument, memory.position, target, result.actions)
            except GatewayFailure as e:
                logger.error(f"Tick failed, keeping {memory.position.value}: {e}")
                result.status = TickStatus.GATEWAY_FAILURE
                result.error = str(e)
                return result
            result.position = target.position

        self.store.set(instrument, StrategyMemory(current, result.position))
        return result

    async def _transition(
        self,
        instrument: str,
        held: PositionState,
        target: Direction,
        actions: list[GatewayAction],
    ) -> None:
        """Close the opposite position (if any), then open ``target``.

        Acknowledged calls are appended to ``actions``.

        Raises:
            GatewayFailure: a close or open call was not acknowledged
        """
        if held is not PositionState.NONE:
            logger.info(f"Closing {held.value} position for {instrument}")
            try:
                await self.gateway.close_position(instrument)
            except Exception as e:
                raise GatewayFailure("close", instrument, e) from e
            actions.append(GatewayAction(kind="close", direction=held.value))

        logger.info(f"Opening {target.value} position for {instrument}")
        try:
            reference = await self.gateway.open_position(instrument, target)
        except Exception as e:
            raise GatewayFailure("open", instrument, e) from e
        actions.append(GatewayAction(kind="open", direction=target.value, reference=reference))
