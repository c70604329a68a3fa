"""Service wiring from settings."""

from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest

from conftest import ACCOUNT, FakeLedger, make_params
from ai_trader.config import settings
from ai_trader.db.connection import get_connection
from ai_trader.db.migrate import migrate
from ai_trader.errors import InsufficientDataError, NotInitializedError
from ai_trader.models.enums import SchedulerState
from ai_trader.models.prediction import PriceSeries
from ai_trader.service import TradingService
from ai_trader.utils.time import utc_now_s


class ShortCollector:
    async def collect(self, sources, window) -> PriceSeries:
        return PriceSeries.from_prices([40.0] * 10)


@pytest.fixture
def service(tmp_path):
    url = f"sqlite:///{tmp_path / 'service.db'}"
    migrate(url)
    config = replace(
        settings,
        database_url=url,
        model_dir=str(tmp_path / "models"),
        trader_account_address=ACCOUNT,
        trading_enabled=False,
    )
    return TradingService.from_settings(config, ledger=FakeLedger(), collector=ShortCollector())


def test_components_share_configuration(service):
    assert service.scheduler.account == ACCOUNT
    assert service.scheduler.trading_enabled is False
    assert service.tracker.max_blocks == service.config.confirmation_max_blocks
    assert not service.get_system_state().is_initialized


def test_failed_retrain_is_recorded(service):
    with pytest.raises(InsufficientDataError):
        asyncio.run(service.retrain())

    conn = get_connection(service.config.database_url)
    try:
        row = conn.execute("SELECT status, details FROM training_runs").fetchone()
    finally:
        conn.close()
    assert row["status"] == "failed"
    assert "need at least 100" in row["details"]


def test_predict_before_initialization_raises(service):
    with pytest.raises(NotInitializedError):
        asyncio.run(service.predict(PriceSeries.from_prices([1.0, 2.0])))


def test_execute_trade_uses_configured_account(service):
    result = asyncio.run(service.execute_trade(make_params(deadline=utc_now_s() + 600)))
    assert result.success


def test_start_by_strategy_name(service):
    async def scenario():
        assert service.start("conservative")
        assert service.status().state == SchedulerState.RUNNING
        assert service.emergency_stop()
        assert not service.start()
        assert service.resume()
        await service.shutdown()
        return service.status()

    status = asyncio.run(scenario())
    assert status.state == SchedulerState.STOPPED
    assert status.strategy == "conservative"
