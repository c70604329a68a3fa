"""Market data collection for model training and live prediction."""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Callable, Dict, Optional, Sequence

import ccxt
import httpx
import numpy as np
import pandas as pd

from ai_trader.config import settings
from ai_trader.models.prediction import PriceSeries
from ai_trader.utils.time import utc_now_s


logger = logging.getLogger(__name__)

BUCKET_SECONDS = 3600


def create_exchange_client(exchange_id: Optional[str] = None) -> ccxt.Exchange:
    exchange_cls = getattr(ccxt, exchange_id or settings.exchange_id)
    return exchange_cls({"enableRateLimit": True, "timeout": 30000})


def preprocess_prices(
    frame: pd.DataFrame,
    since: Optional[int] = None,
    bucket_seconds: Optional[int] = BUCKET_SECONDS,
) -> pd.DataFrame:
    """Drop invalid rows, align to buckets and average duplicate timestamps."""
    if frame.empty:
        return pd.DataFrame(columns=["timestamp", "price"])
    df = frame[["timestamp", "price"]].copy()
    df["price"] = pd.to_numeric(df["price"], errors="coerce")
    df["timestamp"] = pd.to_numeric(df["timestamp"], errors="coerce")
    df = df.dropna()
    df = df[np.isfinite(df["price"]) & (df["price"] > 0)]
    df["timestamp"] = df["timestamp"].astype("int64")
    if since is not None:
        df = df[df["timestamp"] >= since]
    if bucket_seconds:
        df["timestamp"] = df["timestamp"] // bucket_seconds * bucket_seconds
    return (
        df.groupby("timestamp", as_index=False)["price"]
        .mean()
        .sort_values("timestamp")
        .reset_index(drop=True)
    )


class MarketDataCollector:
    """Gather a price window from the configured sources."""

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        exchange: Optional[Any] = None,
        coingecko_base: Optional[str] = None,
        coin_id: Optional[str] = None,
        exchange_symbol: Optional[str] = None,
        exchange_timeframe: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        clock: Callable[[], int] = utc_now_s,
    ) -> None:
        self.http_client = http_client
        self.exchange = exchange
        self.coingecko_base = (coingecko_base or settings.coingecko_api_base).rstrip("/")
        self.coin_id = coin_id or settings.coingecko_coin_id
        self.exchange_symbol = exchange_symbol or settings.exchange_symbol
        self.exchange_timeframe = exchange_timeframe or settings.exchange_timeframe
        self.timeout = timeout
        self.max_retries = max_retries
        self.clock = clock
        self._fetchers: Dict[str, Callable[[int], Any]] = {
            "coingecko": self.fetch_coingecko,
            "exchange": self.fetch_exchange,
        }

    async def collect(self, sources: Sequence[str], window: dict) -> PriceSeries:
        hours = int(window.get("hours", settings.training_window_hours))
        since = self.clock() - hours * 3600
        frames = []
        for source in sources:
            fetcher = self._fetchers.get(source)
            if fetcher is None:
                logger.warning("Unknown market data source: %s", source)
                continue
            try:
                frame = await fetcher(hours)
            except (httpx.HTTPError, ccxt.BaseError, ValueError, KeyError) as exc:
                logger.warning("Market data source %s failed: %s", source, exc)
                continue
            logger.info("Collected %d rows from %s", len(frame), source)
            frames.append(frame)

        if not frames:
            return PriceSeries(timestamps=(), prices=())
        merged = preprocess_prices(pd.concat(frames, ignore_index=True), since=since)
        return PriceSeries.from_frame(merged)

    async def latest_prices(self, sources: Sequence[str], count: int, hours: int = 168) -> PriceSeries:
        series = await self.collect(sources, {"hours": hours})
        return series.tail(count)

    async def _get_json(self, url: str, params: dict) -> Any:
        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                if self.http_client is not None:
                    response = await self.http_client.get(url, params=params)
                else:
                    async with httpx.AsyncClient(timeout=self.timeout) as client:
                        response = await client.get(url, params=params)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPError as exc:
                last_error = exc
                if attempt < self.max_retries:
                    await asyncio.sleep(0.5 * attempt)
                    continue
                raise
        raise RuntimeError(f"request failed: {last_error}")

    async def fetch_coingecko(self, hours: int) -> pd.DataFrame:
        url = f"{self.coingecko_base}/coins/{self.coin_id}/market_chart"
        params = {"vs_currency": "usd", "days": max(1, math.ceil(hours / 24))}
        payload = await self._get_json(url, params)
        rows = payload.get("prices") or []
        return pd.DataFrame(
            {
                "timestamp": [int(row[0]) // 1000 for row in rows],
                "price": [row[1] for row in rows],
            }
        )

    async def fetch_exchange(self, hours: int) -> pd.DataFrame:
        if self.exchange is None:
            self.exchange = create_exchange_client()
        exchange = self.exchange
        timeframe_s = int(exchange.parse_timeframe(self.exchange_timeframe))
        limit = max(1, hours * 3600 // timeframe_s)
        since_ms = (self.clock() - hours * 3600) * 1000
        candles = await asyncio.to_thread(
            exchange.fetch_ohlcv,
            self.exchange_symbol,
            self.exchange_timeframe,
            since_ms,
            limit,
        )
        return pd.DataFrame(
            {
                "timestamp": [int(c[0]) // 1000 for c in candles],
                "price": [c[4] for c in candles],
            }
        )
