"""Tests for the Capital.com REST client."""

import json

import httpx
import pytest

from app.clients.capital_rest import (
    DEMO_URL,
    LIVE_URL,
    CapitalRestClient,
    RateLimiter,
    parse_price_bar,
)
from core.errors import GatewayError
from core.gateway import BrokerGateway
from core.models import Direction

PRICES = {
    "prices": [
        {
            "snapshotTime": "2024-01-02T11:05:00",
            "snapshotTimeUTC": "2024-01-02T10:05:00",
            "openPrice": {"bid": 2061.0, "ask": 2061.5},
            "closePrice": {"bid": 2063.0, "ask": 2063.5},
            "highPrice": {"bid": 2064.0, "ask": 2064.5},
            "lowPrice": {"bid": 2060.0, "ask": 2060.5},
            "lastTradedVolume": 120,
        },
        {
            "snapshotTime": "2024-01-02T11:00:00",
            "snapshotTimeUTC": "2024-01-02T10:00:00",
            "openPrice": {"bid": 2060.0, "ask": 2060.5},
            "closePrice": {"bid": 2061.0, "ask": 2061.5},
            "highPrice": {"bid": 2062.0, "ask": 2062.5},
            "lowPrice": {"bid": 2059.0, "ask": 2059.5},
            "lastTradedVolume": 95,
        },
    ]
}


class FakeCapitalAPI:
    """Request handler for httpx.MockTransport emulating the endpoints used."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.logins = 0
        self.login_status = 200
        self.responses: dict[tuple[str, str], httpx.Response] = {}
        self.positions: list[dict] = []
        self.deal_status = "ACCEPTED"

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)

        if key == ("POST", "/api/v1/session"):
            self.logins += 1
            if self.login_status != 200:
                return httpx.Response(self.login_status, json={"errorCode": "error.invalid.details"})
            return httpx.Response(
                200,
                headers={"CST": f"cst-{self.logins}", "X-SECURITY-TOKEN": f"tok-{self.logins}"},
                json={"accountType": "CFD", "currentAccountId": "A1"},
            )

        if key in self.responses:
            return self.responses.pop(key)

        if key == ("GET", "/api/v1/prices/GOLD"):
            return httpx.Response(200, json=PRICES)
        if key == ("POST", "/api/v1/positions"):
            return httpx.Response(200, json={"dealReference": "o_ref1"})
        if request.method == "GET" and request.url.path.startswith("/api/v1/confirms/"):
            return httpx.Response(200, json={"dealStatus": self.deal_status, "reason": "SUCCESS"})
        if key == ("GET", "/api/v1/positions"):
            return httpx.Response(200, json={"positions": self.positions})
        if request.method == "DELETE" and request.url.path.startswith("/api/v1/positions/"):
            return httpx.Response(200, json={"dealReference": "p_close"})
        if key == ("GET", "/api/v1/accounts"):
            return httpx.Response(200, json={"accounts": [{"accountId": "A1"}]})
        if key == ("PUT", "/api/v1/session"):
            return httpx.Response(200, json={"trailingStopsEnabled": False})
        return httpx.Response(404, json={"errorCode": "error.not-found"})

    def paths(self, method: str | None = None) -> list[str]:
        return [r.url.path for r in self.requests if method is None or r.method == method]


class TestCapitalRestClient:
    @pytest.fixture
    def api(self):
        return FakeCapitalAPI()

    @pytest.fixture
    def client(self, api):
        client = CapitalRestClient(
            api_key="key",
            identifier="user@example.com",
            password="secret",
            trading_enabled=True,
            order_size=2.0,
            transport=httpx.MockTransport(api),
        )
        client.rate_limiter = RateLimiter(calls_per_minute=600_000)
        return client

    def test_satisfies_gateway_protocol(self, client):
        assert isinstance(client, BrokerGateway)

    def test_base_url(self):
        assert CapitalRestClient(demo=True).base_url == DEMO_URL
        assert CapitalRestClient(demo=False).base_url == LIVE_URL
        assert CapitalRestClient(demo=False).account_type == "Live"

    @pytest.mark.asyncio
    async def test_historical_prices(self, client, api):
        bars = await client.get_historical_prices("GOLD", "MINUTE_5", 100)

        assert [b.close for b in bars] == [2061.0, 2063.0]  # sorted oldest first
        assert bars[0].timestamp == 1704189600000  # 2024-01-02T10:00:00Z
        assert bars[1].high == 2064.0

        login, prices = api.requests
        assert login.headers["X-CAP-API-KEY"] == "key"
        assert json.loads(login.content)["identifier"] == "user@example.com"
        assert prices.headers["CST"] == "cst-1"
        assert prices.headers["X-SECURITY-TOKEN"] == "tok-1"
        assert prices.url.params["resolution"] == "MINUTE_5"
        assert prices.url.params["max"] == "100"
        await client.close()

    @pytest.mark.asyncio
    async def test_session_is_reused(self, client, api):
        await client.get_historical_prices("GOLD", "MINUTE_5", 100)
        await client.get_historical_prices("GOLD", "MINUTE_5", 100)
        assert api.logins == 1

    @pytest.mark.asyncio
    async def test_login_failure_raises(self, client, api):
        api.login_status = 401
        with pytest.raises(GatewayError, match="login failed") as exc_info:
            await client.get_historical_prices("GOLD", "MINUTE_5", 100)
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_http_error_raises_gateway_error(self, client, api):
        api.responses[("GET", "/api/v1/prices/GOLD")] = httpx.Response(500, text="oops")
        with pytest.raises(GatewayError) as exc_info:
            await client.get_historical_prices("GOLD", "MINUTE_5", 100)
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_unauthorized_drops_session(self, client, api):
        api.responses[("GET", "/api/v1/prices/GOLD")] = httpx.Response(401, json={})
        with pytest.raises(GatewayError):
            await client.get_historical_prices("GOLD", "MINUTE_5", 100)

        await client.get_historical_prices("GOLD", "MINUTE_5", 100)
        assert api.logins == 2

    @pytest.mark.asyncio
    async def test_transport_error_raises_gateway_error(self, api):
        def broken(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = CapitalRestClient(api_key="k", transport=httpx.MockTransport(broken))
        with pytest.raises(GatewayError, match="login failed"):
            await client.get_historical_prices("GOLD", "MINUTE_5", 100)

    @pytest.mark.asyncio
    async def test_malformed_prices_raise(self, client, api):
        api.responses[("GET", "/api/v1/prices/GOLD")] = httpx.Response(
            200, json={"prices": [{"snapshotTimeUTC": "2024-01-02T10:00:00"}]}
        )
        with pytest.raises(GatewayError, match="malformed"):
            await client.get_historical_prices("GOLD", "MINUTE_5", 100)

    @pytest.mark.asyncio
    async def test_open_position_confirms_deal(self, client, api):
        reference = await client.open_position("GOLD", Direction.SHORT)

        assert reference == "o_ref1"
        order = next(r for r in api.requests if r.method == "POST" and r.url.path == "/api/v1/positions")
        assert json.loads(order.content) == {"epic": "GOLD", "direction": "SELL", "size": 2.0}
        assert "/api/v1/confirms/o_ref1" in api.paths("GET")

    @pytest.mark.asyncio
    async def test_rejected_deal_raises(self, client, api):
        api.deal_status = "REJECTED"
        with pytest.raises(GatewayError, match="not accepted"):
            await client.open_position("GOLD", Direction.LONG)

    @pytest.mark.asyncio
    async def test_close_position_deletes_matching_deals(self, client, api):
        api.positions = [
            {"position": {"dealId": "D1"}, "market": {"epic": "GOLD"}},
            {"position": {"dealId": "D2"}, "market": {"epic": "EURUSD"}},
        ]

        await client.close_position("GOLD")

        assert api.paths("DELETE") == ["/api/v1/positions/D1"]
        assert "/api/v1/confirms/p_close" in api.paths("GET")

    @pytest.mark.asyncio
    async def test_close_without_position_is_noop(self, client, api):
        await client.close_position("GOLD")
        assert api.paths("DELETE") == []

    @pytest.mark.asyncio
    async def test_trading_disabled_simulates_orders(self, api):
        client = CapitalRestClient(api_key="k", trading_enabled=False, transport=httpx.MockTransport(api))

        assert await client.open_position("GOLD", Direction.LONG) == "SIMULATED"
        await client.close_position("GOLD")
        assert api.requests == []

    @pytest.mark.asyncio
    async def test_switch_account(self, client, api):
        await client.switch_account("A2")
        put = next(r for r in api.requests if r.method == "PUT")
        assert json.loads(put.content) == {"accountId": "A2"}

    @pytest.mark.asyncio
    async def test_get_accounts(self, client):
        assert await client.get_accounts() == [{"accountId": "A1"}]


class TestParsePriceBar:
    def test_falls_back_to_ask(self):
        bar = parse_price_bar({
            "snapshotTimeUTC": "2024-01-02T10:00:00",
            "openPrice": {"ask": 1.0},
            "closePrice": {"ask": 2.0},
            "highPrice": {"ask": 3.0},
            "lowPrice": {"ask": 0.5},
        })
        assert bar.close == 2.0

    def test_missing_sides_raise(self):
        with pytest.raises(GatewayError):
            parse_price_bar({
                "snapshotTimeUTC": "2024-01-02T10:00:00",
                "openPrice": {},
                "closePrice": {},
                "highPrice": {},
                "lowPrice": {},
            })
