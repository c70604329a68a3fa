"""Gas price lookup with a short-lived cache."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Callable, Optional, Protocol


logger = logging.getLogger(__name__)

GWEI = 10**9


class GasPriceSource(Protocol):
    async def gas_price(self) -> int:
        ...


@dataclass(frozen=True)
class GasPriceCache:
    price: int
    captured_at: float


class GasPriceOracle:
    """Return a buffered network gas price, cached for ``ttl_s`` seconds.

    A failed lookup yields the fallback price, which is never cached.
    """

    def __init__(
        self,
        source: GasPriceSource,
        ttl_s: float = 60.0,
        buffer_pct: int = 10,
        fallback_gwei: int = 50,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.ttl_s = ttl_s
        self.buffer_pct = buffer_pct
        self.fallback_price = fallback_gwei * GWEI
        self.clock = clock
        self._cache: Optional[GasPriceCache] = None

    @property
    def cache(self) -> Optional[GasPriceCache]:
        return self._cache

    async def get_price(self) -> int:
        cache = self._cache
        if cache is not None and self.clock() - cache.captured_at < self.ttl_s:
            return cache.price
        try:
            network_price = await self.source.gas_price()
        except Exception as exc:
            logger.warning("Gas price lookup failed, using fallback: %s", exc)
            return self.fallback_price
        price = int(network_price) * (100 + self.buffer_pct) // 100
        self._cache = GasPriceCache(price=price, captured_at=self.clock())
        return price

    def invalidate(self) -> None:
        self._cache = None
