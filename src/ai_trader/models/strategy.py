"""Trading strategy presets."""

from __future__ import annotations

from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Strategy(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    risk_level: float = Field(gt=0, le=100)
    max_trades_per_hour: int = Field(ge=0)
    min_time_between_trades: float = Field(ge=0)
    ai_confidence_threshold: float
    max_portfolio_exposure: float = Field(gt=0, le=100)

    @field_validator("ai_confidence_threshold")
    @classmethod
    def _check_threshold(cls, value: float) -> float:
        if value < 0 or value > 1:
            raise ValueError("ai_confidence_threshold must be between 0 and 1")
        return value

    @property
    def min_seconds_between_trades(self) -> float:
        return self.min_time_between_trades * 60.0


CONSERVATIVE = Strategy(
    name="conservative",
    description="Low risk, high-confidence trades only.",
    risk_level=25,
    max_trades_per_hour=2,
    min_time_between_trades=30,
    ai_confidence_threshold=0.80,
    max_portfolio_exposure=20,
)

BALANCED = Strategy(
    name="balanced",
    description="Moderate risk with balanced frequency.",
    risk_level=50,
    max_trades_per_hour=4,
    min_time_between_trades=15,
    ai_confidence_threshold=0.70,
    max_portfolio_exposure=35,
)

AGGRESSIVE = Strategy(
    name="aggressive",
    description="Higher risk, frequent trades on lower confidence.",
    risk_level=75,
    max_trades_per_hour=6,
    min_time_between_trades=10,
    ai_confidence_threshold=0.60,
    max_portfolio_exposure=50,
)

PRESETS: Dict[str, Strategy] = {
    CONSERVATIVE.name: CONSERVATIVE,
    BALANCED.name: BALANCED,
    AGGRESSIVE.name: AGGRESSIVE,
}


def get_strategy(name: str) -> Strategy:
    key = name.strip().lower()
    if key not in PRESETS:
        raise KeyError(f"Unknown strategy: {name}")
    return PRESETS[key]
