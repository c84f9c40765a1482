"""Error taxonomy for the trading engine.

Errors never escape a tick: the engine converts them into TickResult
statuses (see core.models.tick.TickStatus).
"""


class TradingBotError(Exception):
    """Base class for all engine errors."""


class DataUnavailable(TradingBotError):
    """Price history could not be fetched or is too short for an RSI."""


class GatewayError(TradingBotError):
    """Raised by a broker gateway on transport, auth or order failure."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class GatewayFailure(TradingBotError):
    """An order call failed during a tick; prior state was kept."""

    def __init__(self, action: str, instrument: str, cause: Exception):
        super().__init__(f"{action} failed for {instrument}: {cause}")
        self.action = action
        self.instrument = instrument
        self.cause = cause


class ConfigurationError(TradingBotError, ValueError):
    """trading.yaml is malformed or holds invalid values."""
