"""Capital.com REST API client: price history, orders and market navigation.

Implements core.gateway.BrokerGateway for the strategy engine.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from core.errors import GatewayError
from core.models import Direction, PriceBar

logger = logging.getLogger(__name__)

LIVE_URL = "https://api-capital.backend-capital.com"
DEMO_URL = "https://demo-api-capital.backend-capital.com"


class RateLimiter:
    """Simple rate limiter for API calls."""

    def __init__(self, calls_per_minute: int = 600):
        self.calls_per_minute = calls_per_minute
        self.interval = 60.0 / calls_per_minute
        self.last_call = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait if necessary to respect rate limit."""
        async with self._lock:
            loop = asyncio.get_running_loop()
            wait_time = self.last_call + self.interval - loop.time()
            if wait_time > 0:
                await asyncio.sleep(wait_time)
            self.last_call = loop.time()


def _parse_time(value: str) -> int:
    """Parse a Capital.com UTC timestamp ("2024-01-02T10:05:00") to ms epoch."""
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return int(ts.timestamp() * 1000)


def _side(price: dict[str, Any]) -> float:
    """Bid side of a price pair, falling back to ask."""
    value = price.get("bid")
    if value is None:
        value = price.get("ask")
    if value is None:
        raise GatewayError(f"price without bid/ask: {price}")
    return float(value)


def parse_price_bar(item: dict[str, Any]) -> PriceBar:
    """Convert one entry of the /prices response to a PriceBar (bid side)."""
    snapshot_time = item.get("snapshotTimeUTC") or item["snapshotTime"]
    return PriceBar(
        timestamp=_parse_time(snapshot_time),
        open=_side(item["openPrice"]),
        high=_side(item["highPrice"]),
        low=_side(item["lowPrice"]),
        close=_side(item["closePrice"]),
    )


class CapitalRestClient:
    """
    Capital.com REST API client.

    Authenticates lazily with an API key plus login credentials and keeps
    the CST / X-SECURITY-TOKEN session headers. A 401 drops the session so
    the next request logs in again.

    Order placement is simulated unless ``trading_enabled`` is True.
    """

    def __init__(
        self,
        api_key: str = "",
        identifier: str = "",
        password: str = "",
        demo: bool = True,
        trading_enabled: bool = False,
        order_size: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.identifier = identifier
        self.password = password
        self.demo = demo
        self.trading_enabled = trading_enabled
        self.order_size = order_size
        self.base_url = DEMO_URL if demo else LIVE_URL
        self.rate_limiter = RateLimiter()

        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._session_headers: dict[str, str] = {}
        self._session_lock = asyncio.Lock()

        if not trading_enabled:
            logger.warning("Trading disabled - orders will be simulated")

    @property
    def account_type(self) -> str:
        """"Demo" or "Live"."""
        return "Demo" if self.demo else "Live"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"X-CAP-API-KEY": self.api_key},
                timeout=30.0,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
        self._session_headers = {}

    async def _ensure_session(self) -> dict[str, str]:
        """Log in if there is no session yet."""
        async with self._session_lock:
            if self._session_headers:
                return self._session_headers

            client = await self._get_client()
            try:
                response = await client.post(
                    "/api/v1/session",
                    json={
                        "identifier": self.identifier,
                        "password": self.password,
                        "encryptedPassword": False,
                    },
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise GatewayError(
                    f"login failed: HTTP {e.response.status_code}",
                    status_code=e.response.status_code,
                ) from e
            except httpx.HTTPError as e:
                raise GatewayError(f"login failed: {e}") from e

            cst = response.headers.get("CST")
            token = response.headers.get("X-SECURITY-TOKEN")
            if not cst or not token:
                raise GatewayError("login response missing session tokens")

            self._session_headers = {"CST": cst, "X-SECURITY-TOKEN": token}
            logger.info(f"Capital.com session created ({self.account_type})")
            return self._session_headers

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        """Make an authenticated API request with rate limiting."""
        headers = await self._ensure_session()
        await self.rate_limiter.acquire()
        client = await self._get_client()

        try:
            response = await client.request(
                method, endpoint, params=params, json=json, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 401:
                self._session_headers = {}
            raise GatewayError(
                f"{method} {endpoint} failed: HTTP {status} {e.response.text}",
                status_code=status,
            ) from e
        except httpx.HTTPError as e:
            raise GatewayError(f"{method} {endpoint} failed: {e}") from e

        if not response.content:
            return {}
        return response.json()

    # ------------------------------------------------------------------
    # BrokerGateway
    # ------------------------------------------------------------------

    async def get_historical_prices(
        self,
        instrument: str,
        resolution: str,
        max_bars: int,
    ) -> list[PriceBar]:
        """
        Fetch historical price bars.

        Args:
            instrument: Market epic (e.g., "GOLD")
            resolution: Bar resolution (e.g., "MINUTE_5", "HOUR_4")
            max_bars: Maximum number of bars

        Returns:
            List of PriceBar objects, oldest first
        """
        data = await self._request(
            "GET",
            f"/api/v1/prices/{instrument}",
            params={"resolution": resolution, "max": max_bars},
        )
        try:
            bars = [parse_price_bar(item) for item in data.get("prices", [])]
        except (KeyError, TypeError, ValueError) as e:
            raise GatewayError(f"malformed price history for {instrument}: {e}") from e

        bars.sort(key=lambda bar: bar.timestamp)
        return bars

    async def open_position(self, instrument: str, direction: Direction) -> str:
        """
        Open a market position and wait for the deal confirmation.

        Returns:
            Deal reference

        Raises:
            GatewayError: request failed or the deal was not accepted
        """
        if not self.trading_enabled:
            logger.warning(
                f"Trading disabled - simulating {direction.order_side} {instrument} "
                f"size={self.order_size}"
            )
            return "SIMULATED"

        logger.info(
            f"Placing {direction.order_side} market order: {instrument} "
            f"size={self.order_size}"
        )
        data = await self._request(
            "POST",
            "/api/v1/positions",
            json={
                "epic": instrument,
                "direction": direction.order_side,
                "size": self.order_size,
            },
        )
        reference = data.get("dealReference")
        if not reference:
            raise GatewayError(f"no deal reference in response: {data}")

        await self._confirm(reference)
        logger.info(f"Position opened: {direction.value} {instrument} ref={reference}")
        return reference

    async def close_position(self, instrument: str) -> None:
        """Close every open position on an instrument (no-op if none)."""
        if not self.trading_enabled:
            logger.warning(f"Trading disabled - simulating close of {instrument}")
            return

        positions = await self.get_positions(instrument)
        if not positions:
            logger.info(f"No position to close for {instrument}")
            return

        for pos in positions:
            deal_id = pos["position"]["dealId"]
            logger.info(f"Closing position: {instrument} deal={deal_id}")
            data = await self._request("DELETE", f"/api/v1/positions/{deal_id}")
            reference = data.get("dealReference")
            if reference:
                await self._confirm(reference)

    async def _confirm(self, reference: str) -> dict:
        """Check a deal was accepted."""
        confirm = await self._request("GET", f"/api/v1/confirms/{reference}")
        status = confirm.get("dealStatus")
        if status != "ACCEPTED":
            raise GatewayError(
                f"deal {reference} not accepted: {status} {confirm.get('reason', '')}".strip()
            )
        return confirm

    # ------------------------------------------------------------------
    # Account and market navigation
    # ------------------------------------------------------------------

    async def get_positions(self, instrument: str | None = None) -> list[dict]:
        """Open positions, optionally filtered by epic."""
        data = await self._request("GET", "/api/v1/positions")
        positions = data.get("positions", [])
        if instrument is None:
            return positions
        return [p for p in positions if p.get("market", {}).get("epic") == instrument]

    async def get_session_info(self) -> dict:
        return await self._request("GET", "/api/v1/session")

    async def get_accounts(self) -> list[dict]:
        data = await self._request("GET", "/api/v1/accounts")
        return data.get("accounts", [])

    async def switch_account(self, account_id: str) -> dict:
        """Make another account of the session active."""
        logger.info(f"Switching to account {account_id}")
        return await self._request(
            "PUT", "/api/v1/session", json={"accountId": account_id}
        )

    async def get_market_navigation(self) -> dict:
        """Top-level market categories."""
        return await self._request("GET", "/api/v1/marketnavigation")

    async def get_market_navigation_node(self, node_id: str) -> dict:
        """Sub-nodes and markets of a navigation node."""
        return await self._request("GET", f"/api/v1/marketnavigation/{node_id}")

    async def get_market_details(self, instrument: str) -> dict:
        return await self._request("GET", f"/api/v1/markets/{instrument}")
