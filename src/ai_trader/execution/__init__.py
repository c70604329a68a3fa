"""Execution exports."""

from ai_trader.execution.journal import TradeJournal
from ai_trader.execution.planner import TradePlanner, action_for
from ai_trader.execution.scheduler import AutoTradingScheduler, SchedulerStatus, TickOutcome

__all__ = [
    "AutoTradingScheduler",
    "SchedulerStatus",
    "TickOutcome",
    "TradeJournal",
    "TradePlanner",
    "action_for",
]
