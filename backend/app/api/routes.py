"""REST API routes for the trading bot UI."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from core.errors import DataUnavailable, GatewayError
from core.indicators import rsi_series
from core.models import RESOLUTIONS, closes_of
from core.strategy_engine import StrategyEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trading-bot")

_RELEVANT_CATEGORIES = (
    "commodities",
    "commodity",
    "forex",
    "currencies",
    "indices",
    "index",
    "etf",
    "shares",
)


# Response models
class AccountTypeResponse(BaseModel):
    account_types: list[str]


class AccountResponse(BaseModel):
    account_id: str
    account_name: Optional[str] = None
    account_type: str
    currency: Optional[str] = None
    balance: Optional[float] = None


class MarketCategoryResponse(BaseModel):
    id: str
    name: str


class MarketResponse(BaseModel):
    epic: str
    name: Optional[str] = None
    type: Optional[str] = None
    bid: Optional[float] = None
    offer: Optional[float] = None
    percentage_change: Optional[float] = None


class RSIResponse(BaseModel):
    epic: str
    rsi_value: float
    signal: str
    current_position: str


class PositionResponse(BaseModel):
    epic: str
    position: str
    last_rsi: Optional[float] = None


class ChartPoint(BaseModel):
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    rsi: Optional[float] = None


class ChartDataResponse(BaseModel):
    epic: str
    resolution: str
    prices: list[ChartPoint]
    current_rsi: Optional[float] = None


class ActionResponse(BaseModel):
    status: str
    message: str


# Dependencies resolved from app.state (set up in app.main lifespan)
def get_engine(request: Request) -> StrategyEngine:
    return request.app.state.engine


def get_client(request: Request):
    return request.app.state.client


def _gateway_error(e: GatewayError) -> HTTPException:
    logger.error(f"Broker request failed: {e}")
    return HTTPException(status_code=502, detail=str(e))


def _is_relevant_category(name: str | None) -> bool:
    if not name:
        return False
    lowered = name.lower()
    return any(key in lowered for key in _RELEVANT_CATEGORIES)


@router.get("/account-types", response_model=AccountTypeResponse)
async def get_account_types():
    """Available account types."""
    return AccountTypeResponse(account_types=["Demo", "Live"])


@router.get("/accounts", response_model=list[AccountResponse])
async def get_accounts(
    account_type: str = Query(..., description="Demo or Live"),
    client=Depends(get_client),
):
    """Accounts of the current session matching the requested type.

    Demo and live accounts live on different hosts, so only the type the
    client is connected to can return accounts.
    """
    if account_type.lower() != client.account_type.lower():
        return []

    try:
        accounts = await client.get_accounts()
    except GatewayError as e:
        raise _gateway_error(e)

    return [
        AccountResponse(
            account_id=acct["accountId"],
            account_name=acct.get("accountName"),
            account_type=client.account_type,
            currency=acct.get("currency"),
            balance=(acct.get("balance") or {}).get("balance"),
        )
        for acct in accounts
    ]


@router.post("/switch-account", response_model=ActionResponse)
async def switch_account(account_id: str, client=Depends(get_client)):
    """Switch the session to another account."""
    try:
        await client.switch_account(account_id)
    except GatewayError as e:
        raise _gateway_error(e)
    return ActionResponse(status="success", message=f"Switched to account {account_id}")


@router.get("/market-categories", response_model=list[MarketCategoryResponse])
async def get_market_categories(client=Depends(get_client)):
    """Top-level market categories (commodities, forex, indices, ETF, shares)."""
    try:
        navigation = await client.get_market_navigation()
    except GatewayError as e:
        raise _gateway_error(e)

    return [
        MarketCategoryResponse(id=node["id"], name=node["name"])
        for node in navigation.get("nodes", [])
        if _is_relevant_category(node.get("name"))
    ]


@router.get("/markets", response_model=list[MarketResponse])
async def get_markets(category_id: str, client=Depends(get_client)):
    """Markets in a category."""
    try:
        data = await client.get_market_navigation_node(category_id)

        if "markets" in data:
            return [
                MarketResponse(
                    epic=m["epic"],
                    name=m.get("instrumentName"),
                    type=m.get("instrumentType"),
                    bid=m.get("bid"),
                    offer=m.get("offer"),
                    percentage_change=m.get("percentageChange"),
                )
                for m in data["markets"]
            ]

        markets = []
        for node in data.get("nodes", []):
            details = await client.get_market_details(node["id"])
            snapshot = details.get("snapshot") or {}
            markets.append(
                MarketResponse(
                    epic=node["id"],
                    name=node.get("name"),
                    type=(details.get("instrument") or {}).get("type"),
                    bid=snapshot.get("bid"),
                    offer=snapshot.get("offer"),
                    percentage_change=snapshot.get("percentageChange"),
                )
            )
        return markets
    except GatewayError as e:
        raise _gateway_error(e)


@router.get("/rsi/{epic}", response_model=RSIResponse)
async def get_rsi(epic: str, engine: StrategyEngine = Depends(get_engine)):
    """Current RSI, its signal label and the bot's position."""
    try:
        snapshot = await engine.current_signal(epic)
    except DataUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))

    return RSIResponse(
        epic=epic,
        rsi_value=snapshot.rsi_value,
        signal=snapshot.label.value,
        current_position=snapshot.position.value,
    )


@router.get("/position/{epic}", response_model=PositionResponse)
async def get_position(epic: str, engine: StrategyEngine = Depends(get_engine)):
    """Position the bot holds for a market."""
    memory = engine.store.get(epic)
    return PositionResponse(epic=epic, position=memory.position.value, last_rsi=memory.last_rsi)


@router.get("/chart/{epic}", response_model=ChartDataResponse)
async def get_chart_data(
    epic: str,
    resolution: str = "HOUR_4",
    max: int = Query(100, ge=1, le=1000),
    engine: StrategyEngine = Depends(get_engine),
):
    """OHLC history with the rolling RSI for charting."""
    if resolution not in RESOLUTIONS:
        raise HTTPException(status_code=400, detail=f"resolution must be one of {RESOLUTIONS}")

    try:
        bars = await engine.gateway.get_historical_prices(epic, resolution, max)
    except GatewayError as e:
        raise _gateway_error(e)

    # Same value the strategy trades on, whatever the chart resolution
    try:
        current_rsi = await engine.fetch_rsi(epic)
    except DataUnavailable:
        current_rsi = None

    rsi_values = rsi_series(closes_of(bars), engine.config.rsi_period)
    points = [
        ChartPoint(
            timestamp=bar.timestamp,
            open=bar.open,
            high=bar.high,
            low=bar.low,
            close=bar.close,
            rsi=value,
        )
        for bar, value in zip(bars, rsi_values)
    ]
    return ChartDataResponse(
        epic=epic,
        resolution=resolution,
        prices=points,
        current_rsi=current_rsi,
    )


@router.post("/start-trading", response_model=ActionResponse)
async def start_trading(epic: str, engine: StrategyEngine = Depends(get_engine)):
    """Select the market the scheduled ticks trade."""
    try:
        engine.select_instrument(epic)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ActionResponse(status="success", message=f"Trading bot started for {epic}")


@router.post("/tick", response_model=ActionResponse)
async def trigger_tick(request: Request):
    """Run a tick now instead of waiting for the schedule."""
    scheduler = request.app.state.scheduler
    if not scheduler.trigger():
        return ActionResponse(status="skipped", message="A tick is already running")
    return ActionResponse(status="success", message="Tick started")


@router.get("/status")
async def get_status(request: Request):
    """Selection, scheduler state, positions and tick counters."""
    engine: StrategyEngine = request.app.state.engine
    scheduler = request.app.state.scheduler
    monitor = request.app.state.monitor

    last = monitor.last_result
    return {
        "selected_instrument": engine.selected_instrument,
        "scheduler": {
            "running": scheduler.running,
            "interval_seconds": scheduler.interval,
            "next_run_at": scheduler.next_run_at.isoformat() if scheduler.next_run_at else None,
            "tick_in_progress": scheduler.tick_in_progress,
            "ticks": scheduler.tick_count,
            "skipped": scheduler.skipped_count,
        },
        "positions": {
            epic: {"position": memory.position.value, "last_rsi": memory.last_rsi}
            for epic, memory in engine.store.snapshot().items()
        },
        "tick_counts": monitor.counts,
        "last_tick": last.to_dict() if last else None,
    }
