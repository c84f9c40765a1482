"""Trading configuration loaded from trading.yaml.

Supports:
- Initial instrument selection (can be changed at runtime via the API)
- RSI strategy parameters
- Tick schedule
- Backward compatible: no YAML file = defaults, no instrument selected
"""

import logging
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from core.errors import ConfigurationError
from core.models import StrategyConfig

logger = logging.getLogger(__name__)


class ScheduleConfig(BaseModel):
    """When ticks fire."""

    interval_seconds: float = Field(default=1800.0, gt=0)  # 30 minutes
    initial_delay_seconds: float = Field(default=60.0, ge=0)
    shutdown_grace_seconds: float = Field(default=30.0, ge=0)


class TradingConfig(BaseModel):
    """Top-level trading.yaml configuration."""

    instrument: str | None = None
    strategy: StrategyConfig = StrategyConfig()
    schedule: ScheduleConfig = ScheduleConfig()

    @field_validator("instrument")
    @classmethod
    def _instrument_not_blank(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("instrument must not be blank (omit it to start without a selection)")
        return v


_DEFAULT_PATH = Path(__file__).parent.parent / "trading.yaml"


def load_trading_config(path: Path | None = None) -> TradingConfig:
    """Load trading config from YAML file.

    Falls back to defaults if the file doesn't exist.

    Raises:
        ConfigurationError: the file is not valid YAML or holds invalid values
    """
    config_path = path or _DEFAULT_PATH

    # Load .env into os.environ alongside the YAML file
    env_path = config_path.parent / ".env"
    load_dotenv(env_path, override=False)

    if not config_path.exists():
        logger.info(f"No trading.yaml found at {config_path}, using defaults")
        return TradingConfig()

    with open(config_path) as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"cannot parse {config_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping")

    try:
        config = TradingConfig(**raw)
    except ValidationError as e:
        raise ConfigurationError(f"invalid trading config in {config_path}: {e}") from e
    logger.info(
        f"Loaded trading config: instrument={config.instrument or '-'}, "
        f"rsi_period={config.strategy.rsi_period}, "
        f"resolution={config.strategy.resolution}, "
        f"interval={config.schedule.interval_seconds:.0f}s"
    )
    return config
