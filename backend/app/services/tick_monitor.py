"""Observability sink for tick results."""

import logging
from collections import Counter, deque

from app.api.websocket import ConnectionManager
from core.models import TickResult, TickStatus

logger = logging.getLogger(__name__)


class TickMonitor:
    """
    Collect tick results from the strategy engine.

    Keeps per-status counters, the last result per instrument and a bounded
    history, and forwards every result to WebSocket clients.
    """

    def __init__(
        self,
        manager: ConnectionManager | None = None,
        history_size: int = 100,
    ):
        self._manager = manager
        self._history: deque[TickResult] = deque(maxlen=history_size)
        self._last: dict[str, TickResult] = {}
        self._counts: Counter[TickStatus] = Counter()
        self._last_result: TickResult | None = None

    async def record(self, result: TickResult) -> None:
        """Engine callback: store and broadcast a tick result."""
        self._history.append(result)
        self._counts[result.status] += 1
        self._last_result = result
        if result.instrument:
            self._last[result.instrument] = result

        if result.status.is_failure:
            logger.debug(f"Tick failure recorded: {result.status.value} {result.error}")

        if self._manager:
            await self._manager.send_tick(result.to_dict())
            if result.position_changed:
                await self._manager.send_position(
                    instrument=result.instrument,
                    previous=result.previous_position.value,
                    position=result.position.value,
                )

    @property
    def last_result(self) -> TickResult | None:
        return self._last_result

    def last_for(self, instrument: str) -> TickResult | None:
        return self._last.get(instrument)

    def history(self, limit: int | None = None) -> list[TickResult]:
        """Recent results, newest last."""
        items = list(self._history)
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return items

    @property
    def counts(self) -> dict[str, int]:
        return {status.value: self._counts.get(status, 0) for status in TickStatus}

    @property
    def failure_count(self) -> int:
        return sum(n for status, n in self._counts.items() if status.is_failure)
