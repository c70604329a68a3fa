"""Wire the pipeline together and expose its operations."""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from ai_trader.ai.ensemble import EnsemblePredictor, TrainingReport
from ai_trader.ai.policy_agent import PolicyConfig, TabularPolicyAgent
from ai_trader.ai.sequence_model import SequenceModel, SequenceModelConfig
from ai_trader.config import Settings, settings as default_settings
from ai_trader.data.collector import MarketDataCollector
from ai_trader.execution.journal import TradeJournal
from ai_trader.execution.planner import TradePlanner
from ai_trader.execution.scheduler import AutoTradingScheduler, SchedulerStatus
from ai_trader.ledger.client import LedgerClient
from ai_trader.ledger.confirmation import ConfirmationTracker
from ai_trader.ledger.gas import GasPriceOracle
from ai_trader.ledger.submitter import TransactionSubmitter
from ai_trader.models.prediction import PredictionResult, PriceSeries, SystemState
from ai_trader.models.strategy import Strategy, get_strategy
from ai_trader.models.trade import TradeHistoryEntry, TradeParams, TradeResult
from ai_trader.risk.validator import TradeValidator
from ai_trader.utils.time import utc_now_s


logger = logging.getLogger(__name__)


class TradingService:
    """Owns one instance of every pipeline component."""

    def __init__(
        self,
        ensemble: EnsemblePredictor,
        collector: MarketDataCollector,
        submitter: TransactionSubmitter,
        tracker: ConfirmationTracker,
        scheduler: AutoTradingScheduler,
        journal: TradeJournal,
        config: Settings = default_settings,
    ) -> None:
        self.ensemble = ensemble
        self.collector = collector
        self.submitter = submitter
        self.tracker = tracker
        self.scheduler = scheduler
        self.journal = journal
        self.config = config

    @classmethod
    def from_settings(
        cls,
        config: Settings = default_settings,
        ledger: Optional[LedgerClient] = None,
        collector: Optional[MarketDataCollector] = None,
    ) -> "TradingService":
        ledger = ledger or LedgerClient()
        collector = collector or MarketDataCollector()
        ensemble = EnsemblePredictor(
            sequence_model=SequenceModel(
                SequenceModelConfig(
                    sequence_length=config.sequence_length,
                    epochs=config.sequence_epochs,
                )
            ),
            policy_agent=TabularPolicyAgent(PolicyConfig()),
            collector=collector,
            sources=config.data_sources,
            window_hours=config.training_window_hours,
            initial_episodes=config.policy_initial_episodes,
            retrain_episodes=config.policy_retrain_episodes,
            model_dir=config.model_dir,
        )
        journal = TradeJournal(database_url=config.database_url)
        tracker = ConfirmationTracker(
            ledger,
            max_blocks=config.confirmation_max_blocks,
            poll_interval_s=config.confirmation_poll_interval_s,
        )
        submitter = TransactionSubmitter(
            ledger,
            GasPriceOracle(
                ledger,
                ttl_s=config.gas_cache_ttl_s,
                fallback_gwei=config.gas_fallback_gwei,
            ),
            tracker,
            max_attempts=config.tx_max_attempts,
        )
        live_hours = max(72, config.sequence_length + 12)

        async def price_feed() -> PriceSeries:
            return await collector.collect(config.data_sources, {"hours": live_hours})

        account = config.trader_account_address or (
            ledger.account.address if ledger.account is not None else ""
        )
        scheduler = AutoTradingScheduler(
            predictor=ensemble,
            validator=TradeValidator(recorder=journal),
            submitter=submitter,
            planner=TradePlanner(
                native_token=config.native_token_address,
                stable_token=config.stable_token_address,
                stable_decimals=config.stable_token_decimals,
                slippage_pct=config.slippage_pct,
            ),
            journal=journal,
            ledger=ledger,
            price_feed=price_feed,
            account=account,
            interval_s=config.scheduler_interval_s,
            trading_enabled=config.trading_enabled,
        )
        return cls(ensemble, collector, submitter, tracker, scheduler, journal, config)

    async def initialize(self) -> Optional[TrainingReport]:
        self.journal.load_recent()
        started = utc_now_s()
        try:
            report = await self.ensemble.initialize()
        except Exception as exc:
            self.journal.record_training_run(started, utc_now_s(), 0, "failed", str(exc))
            raise
        if report is not None:
            self._record_report(report, "initial")
        return report

    async def retrain(self) -> TrainingReport:
        started = utc_now_s()
        try:
            report = await self.ensemble.retrain()
        except Exception as exc:
            self.journal.record_training_run(started, utc_now_s(), 0, "failed", str(exc))
            raise
        self._record_report(report, "retrain")
        return report

    def _record_report(self, report: TrainingReport, kind: str) -> None:
        self.journal.record_training_run(
            report.started_at,
            report.finished_at,
            report.sample_count,
            "success",
            f"{kind}: episodes={report.episodes} reward={report.final_reward:.2f}",
        )

    async def predict(self, series: Optional[PriceSeries] = None) -> PredictionResult:
        if series is None:
            series = await self.scheduler.price_feed()
        return await self.ensemble.predict(series)

    async def execute_trade(self, params: TradeParams, user_address: Optional[str] = None) -> TradeResult:
        return await self.submitter.submit(params, user_address or self.scheduler.account)

    def get_system_state(self) -> SystemState:
        return self.ensemble.get_system_state()

    def start(self, strategy: Strategy | str | None = None) -> bool:
        if strategy is None:
            strategy = self.config.default_strategy
        if isinstance(strategy, str):
            strategy = get_strategy(strategy)
        return self.scheduler.start(strategy)

    def stop(self) -> bool:
        return self.scheduler.stop()

    def emergency_stop(self) -> bool:
        return self.scheduler.emergency_stop()

    def resume(self) -> bool:
        return self.scheduler.resume()

    def status(self) -> SchedulerStatus:
        return self.scheduler.status()

    def trade_history(self) -> Tuple[TradeHistoryEntry, ...]:
        return self.journal.entries()

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()
