"""Pre-trade risk rules and the validator that applies them."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

from ai_trader.models.prediction import PredictionResult
from ai_trader.models.strategy import Strategy
from ai_trader.models.trade import TradeHistoryEntry
from ai_trader.utils.time import utc_now_s


HOUR_S = 3600
MAX_TOTAL_EXPOSURE_PCT = 50.0
MIN_POSITION_PCT = 1.0


@dataclass(frozen=True)
class TradeContext:
    prediction: PredictionResult
    strategy: Strategy
    history: Tuple[TradeHistoryEntry, ...]
    now: int
    portfolio_value: Optional[float] = None
    position_size: Optional[float] = None

    def active_trades(self, within_s: Optional[int] = None) -> List[TradeHistoryEntry]:
        return [
            entry
            for entry in self.history
            if entry.is_active and (within_s is None or self.now - entry.timestamp < within_s)
        ]


@dataclass(frozen=True)
class TradeDecision:
    allow: bool
    reason: str
    rule: str = ""
    position_size: Optional[float] = None


class RiskEventRecorder(Protocol):
    def record_risk_event(self, rule: str, reason: str, context: TradeContext) -> None:
        ...


class RiskRule(ABC):
    name: str

    @abstractmethod
    def check(self, context: TradeContext) -> Tuple[bool, str]:
        raise NotImplementedError


@dataclass(frozen=True)
class ConfidenceRule(RiskRule):
    name: str = "confidence"

    def check(self, context: TradeContext) -> Tuple[bool, str]:
        confidence = context.prediction.confidence
        threshold = context.strategy.ai_confidence_threshold
        if confidence < threshold:
            return False, f"AI confidence {confidence:.2%} below threshold {threshold:.2%}"
        return True, "ok"


@dataclass(frozen=True)
class CooldownRule(RiskRule):
    name: str = "cooldown"

    def check(self, context: TradeContext) -> Tuple[bool, str]:
        active = context.active_trades()
        if not active:
            return True, "ok"
        last = max(entry.timestamp for entry in active)
        elapsed = context.now - last
        if elapsed < context.strategy.min_seconds_between_trades:
            return (
                False,
                f"Too soon since last trade ({elapsed // 60}m ago, "
                f"minimum {context.strategy.min_time_between_trades:g}m)",
            )
        return True, "ok"


@dataclass(frozen=True)
class HourlyLimitRule(RiskRule):
    name: str = "hourly_limit"

    def check(self, context: TradeContext) -> Tuple[bool, str]:
        recent = len(context.active_trades(within_s=HOUR_S))
        limit = context.strategy.max_trades_per_hour
        if recent >= limit:
            return False, f"Maximum trades per hour ({limit}) reached"
        return True, "ok"


@dataclass(frozen=True)
class TradeSizeRule(RiskRule):
    name: str = "trade_size"

    def check(self, context: TradeContext) -> Tuple[bool, str]:
        if context.portfolio_value is None:
            return True, "ok"
        if context.portfolio_value <= 0 or context.position_size is None:
            return False, "portfolio value is zero"
        share = context.position_size / context.portfolio_value * 100
        if share > context.strategy.risk_level:
            return (
                False,
                f"Trade size ({share:.2f}%) exceeds maximum risk per trade "
                f"({context.strategy.risk_level:g}%)",
            )
        return True, "ok"


@dataclass(frozen=True)
class TotalExposureRule(RiskRule):
    max_exposure_pct: float = MAX_TOTAL_EXPOSURE_PCT
    window_s: int = 24 * HOUR_S
    name: str = "total_exposure"

    def check(self, context: TradeContext) -> Tuple[bool, str]:
        if not context.portfolio_value or context.position_size is None:
            return True, "ok"
        exposure = sum(entry.amount for entry in context.active_trades(within_s=self.window_s))
        share = (exposure + context.position_size) / context.portfolio_value * 100
        if share > self.max_exposure_pct:
            return (
                False,
                f"Total exposure ({share:.2f}%) exceeds {self.max_exposure_pct:g}% limit",
            )
        return True, "ok"


def position_size(portfolio_value: float, strategy: Strategy, confidence: float) -> float:
    """Confidence-scaled size, bounded by 1% and the strategy's max exposure."""
    base = portfolio_value * strategy.risk_level / 100
    sized = base * min(confidence * 1.5, 1.5)
    lower = portfolio_value * MIN_POSITION_PCT / 100
    upper = portfolio_value * strategy.max_portfolio_exposure / 100
    return max(lower, min(upper, sized))


def default_rules() -> List[RiskRule]:
    return [
        ConfidenceRule(),
        CooldownRule(),
        HourlyLimitRule(),
        TradeSizeRule(),
        TotalExposureRule(),
    ]


class TradeValidator:
    """Evaluate a prediction against the strategy and recent trade history."""

    def __init__(
        self,
        rules: Optional[Sequence[RiskRule]] = None,
        recorder: Optional[RiskEventRecorder] = None,
    ) -> None:
        self.rules = list(rules) if rules is not None else default_rules()
        self.recorder = recorder

    def evaluate(
        self,
        prediction: PredictionResult,
        strategy: Strategy,
        history: Iterable[TradeHistoryEntry],
        portfolio_value: Optional[float] = None,
        now: Optional[int] = None,
    ) -> TradeDecision:
        size = None
        if portfolio_value is not None and portfolio_value > 0:
            size = position_size(portfolio_value, strategy, prediction.confidence)
        context = TradeContext(
            prediction=prediction,
            strategy=strategy,
            history=tuple(history),
            now=utc_now_s() if now is None else now,
            portfolio_value=portfolio_value,
            position_size=size,
        )
        for rule in self.rules:
            passed, reason = rule.check(context)
            if not passed:
                if self.recorder is not None:
                    self.recorder.record_risk_event(rule.name, reason, context)
                return TradeDecision(allow=False, reason=reason, rule=rule.name, position_size=size)
        return TradeDecision(allow=True, reason="ok", position_size=size)
