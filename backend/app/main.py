"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

# Configure logging FIRST, before any other imports
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
)

# Reduce noise from third-party libraries (must be set before importing them)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from app.api import manager, router, websocket_endpoint
from app.clients import CapitalRestClient
from app.config import get_settings
from app.services import TickMonitor, TickScheduler
from app.trading_config import load_trading_config
from core.position_store import PositionStore
from core.strategy_engine import StrategyEngine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    logger.info("Starting RSI Momentum Bot...")
    trading_config = load_trading_config()

    client = CapitalRestClient(
        api_key=settings.capital_api_key,
        identifier=settings.capital_identifier,
        password=settings.capital_password,
        demo=settings.capital_demo,
        trading_enabled=settings.trading_enabled,
        order_size=trading_config.strategy.order_size,
    )
    engine = StrategyEngine(
        gateway=client,
        store=PositionStore(),
        config=trading_config.strategy,
    )
    if trading_config.instrument:
        engine.select_instrument(trading_config.instrument)

    monitor = TickMonitor(manager=manager)
    engine.on_result(monitor.record)

    scheduler = TickScheduler(
        engine.run_selected,
        interval=trading_config.schedule.interval_seconds,
        initial_delay=trading_config.schedule.initial_delay_seconds,
    )

    app.state.client = client
    app.state.engine = engine
    app.state.monitor = monitor
    app.state.scheduler = scheduler

    try:
        await scheduler.start()
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        await client.close()
        raise

    yield

    # Shutdown
    logger.info("Shutting down...")
    await scheduler.stop(grace=trading_config.schedule.shutdown_grace_seconds)
    engine.off_result(monitor.record)
    await client.close()
    logger.info("Shutdown complete")


# Create FastAPI app with orjson for faster JSON serialization
app = FastAPI(
    title="RSI Momentum Bot",
    description="RSI momentum trading bot for Capital.com",
    version="0.1.0",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include REST routes
app.include_router(router, prefix="/api")

# WebSocket endpoint
app.websocket("/ws")(websocket_endpoint)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "RSI Momentum Bot",
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


def main():
    """Run the application."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
