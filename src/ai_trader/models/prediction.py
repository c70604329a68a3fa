"""Price series and prediction value objects."""

from __future__ import annotations

from dataclasses import dataclass, field
import math
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ai_trader.models.enums import Direction, ModelType


MAX_CONFIDENCE = 0.95


@dataclass(frozen=True)
class PriceSeries:
    """Ordered, immutable price history.

    Timestamps are unix seconds and must be strictly increasing.
    """

    timestamps: Tuple[int, ...]
    prices: Tuple[float, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamps", tuple(int(ts) for ts in self.timestamps))
        object.__setattr__(self, "prices", tuple(float(p) for p in self.prices))
        if len(self.timestamps) != len(self.prices):
            raise ValueError("timestamps and prices must have the same length")
        for prev, cur in zip(self.timestamps, self.timestamps[1:]):
            if cur <= prev:
                raise ValueError("timestamps must be strictly increasing")
        for price in self.prices:
            if not math.isfinite(price):
                raise ValueError("prices must be finite")

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[int, float]]) -> "PriceSeries":
        items = list(pairs)
        return cls(
            timestamps=tuple(ts for ts, _ in items),
            prices=tuple(price for _, price in items),
        )

    @classmethod
    def from_prices(cls, prices: Sequence[float], start: int = 0, step: int = 3600) -> "PriceSeries":
        return cls(
            timestamps=tuple(start + i * step for i in range(len(prices))),
            prices=tuple(prices),
        )

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "PriceSeries":
        if df.empty:
            return cls(timestamps=(), prices=())
        return cls(
            timestamps=tuple(int(ts) for ts in df["timestamp"].tolist()),
            prices=tuple(float(p) for p in df["price"].tolist()),
        )

    def __len__(self) -> int:
        return len(self.prices)

    def values(self) -> np.ndarray:
        arr = np.asarray(self.prices, dtype=np.float64)
        arr.setflags(write=False)
        return arr

    def tail(self, count: int) -> "PriceSeries":
        if count <= 0:
            return PriceSeries(timestamps=(), prices=())
        return PriceSeries(timestamps=self.timestamps[-count:], prices=self.prices[-count:])

    @property
    def last_price(self) -> Optional[float]:
        return self.prices[-1] if self.prices else None

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"timestamp": list(self.timestamps), "price": list(self.prices)})


@dataclass(frozen=True)
class PredictionResult:
    price: float
    direction: Direction
    confidence: float
    timestamp: int
    model_type: ModelType
    features: Tuple[float, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= MAX_CONFIDENCE:
            raise ValueError(
                f"confidence {self.confidence} outside [0, {MAX_CONFIDENCE}]"
            )
        object.__setattr__(self, "features", tuple(float(x) for x in self.features))

    def to_dict(self) -> dict:
        return {
            "price": self.price,
            "direction": self.direction.value,
            "confidence": self.confidence,
            "timestamp": self.timestamp,
            "model_type": self.model_type.value,
            "features": list(self.features),
        }


@dataclass(frozen=True)
class SystemState:
    is_initialized: bool
    last_training_time: Optional[int]
    total_predictions: int
    average_accuracy: float
    model_version: str

    def to_dict(self) -> dict:
        return {
            "is_initialized": self.is_initialized,
            "last_training_time": self.last_training_time,
            "total_predictions": self.total_predictions,
            "average_accuracy": self.average_accuracy,
            "model_version": self.model_version,
        }


def clip_confidence(value: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return float(min(MAX_CONFIDENCE, max(0.0, value)))
