"""Risk management exports."""

from ai_trader.risk.validator import (
    ConfidenceRule,
    CooldownRule,
    HourlyLimitRule,
    RiskRule,
    TotalExposureRule,
    TradeContext,
    TradeDecision,
    TradeSizeRule,
    TradeValidator,
    position_size,
)

__all__ = [
    "ConfidenceRule",
    "CooldownRule",
    "HourlyLimitRule",
    "RiskRule",
    "TotalExposureRule",
    "TradeContext",
    "TradeDecision",
    "TradeSizeRule",
    "TradeValidator",
    "position_size",
]
