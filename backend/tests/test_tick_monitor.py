"""Tests for TickMonitor."""

from unittest.mock import AsyncMock

import pytest

from app.services.tick_monitor import TickMonitor
from core.models import GatewayAction, PositionState, TickResult, TickStatus


def make_result(status=TickStatus.SUCCESS, instrument="GOLD", **kwargs) -> TickResult:
    return TickResult(instrument=instrument, status=status, **kwargs)


class TestTickMonitor:
    @pytest.fixture
    def manager(self):
        manager = AsyncMock()
        return manager

    @pytest.mark.asyncio
    async def test_counts_and_last_result(self):
        monitor = TickMonitor()

        await monitor.record(make_result(TickStatus.BASELINE))
        await monitor.record(make_result(TickStatus.SUCCESS))
        await monitor.record(make_result(TickStatus.GATEWAY_FAILURE, error="boom"))

        counts = monitor.counts
        assert counts["baseline"] == 1
        assert counts["success"] == 1
        assert counts["gateway_failure"] == 1
        assert counts["data_unavailable"] == 0
        assert monitor.failure_count == 1
        assert monitor.last_result.status == TickStatus.GATEWAY_FAILURE

    @pytest.mark.asyncio
    async def test_last_per_instrument(self):
        monitor = TickMonitor()
        gold = make_result(instrument="GOLD")
        eur = make_result(instrument="EURUSD")

        await monitor.record(gold)
        await monitor.record(eur)
        await monitor.record(make_result(TickStatus.CONFIGURATION_ERROR, instrument=None))

        assert monitor.last_for("GOLD") is gold
        assert monitor.last_for("EURUSD") is eur
        assert monitor.last_for("US500") is None

    @pytest.mark.asyncio
    async def test_history_is_bounded(self):
        monitor = TickMonitor(history_size=3)
        for i in range(5):
            await monitor.record(make_result(current_rsi=float(i)))

        assert [r.current_rsi for r in monitor.history()] == [2.0, 3.0, 4.0]
        assert [r.current_rsi for r in monitor.history(limit=2)] == [3.0, 4.0]
        assert monitor.history(limit=0) == []

    @pytest.mark.asyncio
    async def test_broadcasts_tick(self, manager):
        monitor = TickMonitor(manager=manager)
        result = make_result(TickStatus.BASELINE, current_rsi=55.0)

        await monitor.record(result)

        manager.send_tick.assert_awaited_once_with(result.to_dict())
        manager.send_position.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_broadcasts_position_change(self, manager):
        monitor = TickMonitor(manager=manager)
        result = make_result(
            previous_position=PositionState.SHORT,
            position=PositionState.LONG,
            actions=[GatewayAction("close"), GatewayAction("open", "LONG", "ref")],
        )

        await monitor.record(result)

        manager.send_position.assert_awaited_once_with(
            instrument="GOLD", previous="SHORT", position="LONG"
        )

    def test_result_serialization(self):
        result = make_result(
            previous_rsi=45.0,
            current_rsi=55.0,
            position=PositionState.LONG,
            actions=[GatewayAction("open", "LONG", "ref1")],
        )
        data = result.to_dict()

        assert data["status"] == "success"
        assert data["position"] == "LONG"
        assert data["previous_position"] == "NONE"
        assert data["actions"] == [{"kind": "open", "direction": "LONG", "reference": "ref1"}]
        assert data["finished_at"] is None
        assert result.ok
        assert result.position_changed
