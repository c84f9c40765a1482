"""Application services."""

from app.services.scheduler import TickScheduler
from app.services.tick_monitor import TickMonitor

__all__ = [
    "TickScheduler",
    "TickMonitor",
]
