"""Periodic AI-gated trading loop."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Awaitable, Callable, Optional, Protocol

from ai_trader.execution.journal import TradeJournal
from ai_trader.execution.planner import BalanceSource, TradePlanner, action_for
from ai_trader.models.enums import SchedulerState, TradeAction, TradeStatus
from ai_trader.models.prediction import PredictionResult, PriceSeries
from ai_trader.models.strategy import Strategy
from ai_trader.models.trade import TradeHistoryEntry, TradeParams, TradeResult
from ai_trader.risk.validator import TradeValidator
from ai_trader.utils.time import utc_now_s


logger = logging.getLogger(__name__)


class Predictor(Protocol):
    async def predict(self, prices: PriceSeries) -> PredictionResult:
        ...


class Submitter(Protocol):
    async def submit(self, params: TradeParams, user_address: str) -> TradeResult:
        ...


@dataclass(frozen=True)
class TickOutcome:
    status: str
    reason: str
    action: Optional[TradeAction] = None
    result: Optional[TradeResult] = None


@dataclass(frozen=True)
class SchedulerStatus:
    state: SchedulerState
    strategy: Optional[str]
    ticks: int
    trades: int
    last_tick_at: Optional[int]
    last_outcome: Optional[TickOutcome]


class AutoTradingScheduler:
    """Run a tick every ``interval_s`` seconds while in the running state.

    Every run owns a cancellation token. Stopping sets the token, which wakes
    the interval wait at once and is checked at each suspension point of a
    tick. A tick already submitting is left to finish.
    """

    def __init__(
        self,
        predictor: Predictor,
        validator: TradeValidator,
        submitter: Submitter,
        planner: TradePlanner,
        journal: TradeJournal,
        ledger: BalanceSource,
        price_feed: Callable[[], Awaitable[PriceSeries]],
        account: str,
        interval_s: float = 30.0,
        trading_enabled: bool = False,
        clock: Callable[[], int] = utc_now_s,
    ) -> None:
        self.predictor = predictor
        self.validator = validator
        self.submitter = submitter
        self.planner = planner
        self.journal = journal
        self.ledger = ledger
        self.price_feed = price_feed
        self.account = account
        self.interval_s = interval_s
        self.trading_enabled = trading_enabled
        self.clock = clock
        self.state = SchedulerState.STOPPED
        self.strategy: Optional[Strategy] = None
        self._token: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        self._tick_lock = asyncio.Lock()
        self._ticks = 0
        self._trades = 0
        self._last_tick_at: Optional[int] = None
        self._last_outcome: Optional[TickOutcome] = None

    def _launch(self) -> None:
        token = asyncio.Event()
        self._token = token
        self._task = asyncio.get_running_loop().create_task(self._run(token))
        self.state = SchedulerState.RUNNING

    def _cancel(self) -> None:
        if self._token is not None:
            self._token.set()

    def start(self, strategy: Strategy) -> bool:
        if self.state == SchedulerState.RUNNING:
            return False
        if self.state == SchedulerState.EMERGENCY_STOPPED:
            logger.warning("Auto trading is emergency stopped; call resume() first")
            return False
        self.strategy = strategy
        self._launch()
        logger.info(
            "Auto trading started with %s strategy (interval %.0fs, trading %s)",
            strategy.name,
            self.interval_s,
            "enabled" if self.trading_enabled else "dry-run",
        )
        return True

    def stop(self) -> bool:
        if self.state != SchedulerState.RUNNING:
            return False
        self._cancel()
        self.state = SchedulerState.STOPPED
        logger.info("Auto trading stopped")
        return True

    def emergency_stop(self) -> bool:
        if self.state == SchedulerState.EMERGENCY_STOPPED:
            return False
        self._cancel()
        self.state = SchedulerState.EMERGENCY_STOPPED
        logger.warning("Auto trading EMERGENCY STOP")
        return True

    def resume(self) -> bool:
        if self.state != SchedulerState.EMERGENCY_STOPPED:
            return False
        if self.strategy is None:
            logger.warning("No strategy to resume with")
            return False
        self._launch()
        logger.info("Auto trading resumed with %s strategy", self.strategy.name)
        return True

    def set_strategy(self, strategy: Strategy) -> None:
        self.strategy = strategy

    async def join(self) -> None:
        task = self._task
        if task is not None:
            await task

    async def shutdown(self) -> None:
        self.stop()
        await self.join()

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            state=self.state,
            strategy=self.strategy.name if self.strategy else None,
            ticks=self._ticks,
            trades=self._trades,
            last_tick_at=self._last_tick_at,
            last_outcome=self._last_outcome,
        )

    async def _run(self, token: asyncio.Event) -> None:
        while not token.is_set():
            try:
                await asyncio.wait_for(token.wait(), timeout=self.interval_s)
            except asyncio.TimeoutError:
                pass
            if token.is_set():
                break
            try:
                await self.tick(token)
            except Exception:
                logger.exception("Auto trading tick failed")

    async def tick(self, token: Optional[asyncio.Event] = None) -> TickOutcome:
        token = token or asyncio.Event()
        async with self._tick_lock:
            outcome = await self._tick(token)
        self._ticks += 1
        self._last_tick_at = self.clock()
        self._last_outcome = outcome
        return outcome

    async def _tick(self, token: asyncio.Event) -> TickOutcome:
        strategy = self.strategy
        if strategy is None:
            return TickOutcome("skipped", "no strategy selected")
        if token.is_set():
            return TickOutcome("cancelled", "stopped before prediction")

        prices = await self.price_feed()
        if token.is_set():
            return TickOutcome("cancelled", "stopped after price refresh")
        if len(prices) == 0 or prices.last_price is None:
            return TickOutcome("skipped", "no market data")

        prediction = await self.predictor.predict(prices)
        if token.is_set():
            return TickOutcome("cancelled", "stopped after prediction")
        action = action_for(prediction.direction)
        if action is None:
            return TickOutcome("hold", "neutral prediction")

        price = float(prices.last_price)
        portfolio = await self.planner.portfolio_value(self.ledger, self.account, price)
        if token.is_set():
            return TickOutcome("cancelled", "stopped after balance refresh")

        # No awaits from here until the submitter has the params.
        decision = self.validator.evaluate(
            prediction,
            strategy,
            self.journal.entries(),
            portfolio_value=portfolio,
            now=self.clock(),
        )
        if not decision.allow:
            logger.info("Trade blocked by %s: %s", decision.rule, decision.reason)
            return TickOutcome("blocked", decision.reason, action=action)
        size = decision.position_size or 0.0
        params = self.planner.build(action, size, price)
        if token.is_set():
            return TickOutcome("cancelled", "stopped before submission", action=action)
        if not self.trading_enabled:
            logger.info(
                "Dry run: would %s %.2f at %.4f (confidence %.2f)",
                action.value,
                size,
                price,
                prediction.confidence,
            )
            return TickOutcome("dry_run", "trading disabled", action=action)

        result = await self.submitter.submit(params, self.account)
        # An unconfirmed broadcast is recorded as failed; it must not hold rate limits open.
        status = TradeStatus.CONFIRMED if result.success else TradeStatus.FAILED
        entry = TradeHistoryEntry.create(
            action=action,
            amount=size,
            price=prediction.price,
            confidence=prediction.confidence,
            status=status,
            tx_hash=result.tx_hash,
            timestamp=self.clock(),
        )
        self.journal.append(entry, strategy=strategy.name, error=result.error)
        if result.success:
            self._trades += 1
            logger.info("Auto trade executed: %s %.2f tx=%s", action.value, size, result.tx_hash)
            return TickOutcome("executed", "ok", action=action, result=result)
        logger.warning("Auto trade failed: %s", result.error)
        return TickOutcome("failed", result.error or "unknown error", action=action, result=result)
