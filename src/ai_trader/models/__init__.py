"""Model exports."""

from ai_trader.models.enums import (
    Direction,
    ModelType,
    PolicyAction,
    SchedulerState,
    TradeAction,
    TradeStatus,
    TradeType,
)
from ai_trader.models.prediction import PredictionResult, PriceSeries, SystemState
from ai_trader.models.strategy import Strategy, get_strategy
from ai_trader.models.trade import TradeHistoryEntry, TradeParams, TradeResult

__all__ = [
    "Direction",
    "ModelType",
    "PolicyAction",
    "PredictionResult",
    "PriceSeries",
    "SchedulerState",
    "Strategy",
    "SystemState",
    "TradeAction",
    "TradeHistoryEntry",
    "TradeParams",
    "TradeResult",
    "TradeStatus",
    "TradeType",
    "get_strategy",
]
