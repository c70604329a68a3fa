"""Market data exports."""

from ai_trader.data.collector import MarketDataCollector, preprocess_prices

__all__ = ["MarketDataCollector", "preprocess_prices"]
