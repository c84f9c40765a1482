"""Process-wide per-instrument strategy memory."""

import threading

from core.models import PositionState, StrategyMemory

_EMPTY = StrategyMemory()


class PositionStore:
    """
    Mutex-guarded map from instrument to StrategyMemory.

    Written only by the strategy engine, once per tick. Read paths (API,
    status) may run concurrently with a tick; StrategyMemory is immutable,
    so every read returns a consistent snapshot.
    """

    def __init__(self):
        self._entries: dict[str, StrategyMemory] = {}
        self._lock = threading.Lock()

    def get(self, instrument: str) -> StrategyMemory:
        """Get memory for an instrument (empty memory if never seen)."""
        with self._lock:
            return self._entries.get(instrument, _EMPTY)

    def set(self, instrument: str, memory: StrategyMemory) -> None:
        """Replace the memory for an instrument."""
        with self._lock:
            self._entries[instrument] = memory

    def position(self, instrument: str) -> PositionState:
        return self.get(instrument).position

    def snapshot(self) -> dict[str, StrategyMemory]:
        """Copy of all entries."""
        with self._lock:
            return dict(self._entries)

    def __contains__(self, instrument: str) -> bool:
        with self._lock:
            return instrument in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
