"""Environment-driven settings."""

from __future__ import annotations

from ai_trader.config import Settings


def test_defaults(monkeypatch):
    for name in ("DATA_SOURCES", "TRADING_ENABLED", "SEQUENCE_LENGTH", "CHAIN_ID"):
        monkeypatch.delenv(name, raising=False)

    config = Settings.from_env()

    assert config.data_sources == ("coingecko", "exchange")
    assert config.trading_enabled is False
    assert config.sequence_length == 60
    assert config.chain_id == 43113


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("DATA_SOURCES", "exchange, coingecko ,")
    monkeypatch.setenv("TRADING_ENABLED", "yes")
    monkeypatch.setenv("SEQUENCE_LENGTH", "30")
    monkeypatch.setenv("GAS_CACHE_TTL_S", "15.5")
    monkeypatch.setenv("TX_MAX_ATTEMPTS", "not-a-number")

    config = Settings.from_env()

    assert config.data_sources == ("exchange", "coingecko")
    assert config.trading_enabled is True
    assert config.sequence_length == 30
    assert config.gas_cache_ttl_s == 15.5
    assert config.tx_max_attempts == 3
