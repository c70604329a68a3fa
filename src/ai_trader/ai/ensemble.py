"""Weighted ensemble of the sequence model and the policy agent."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Optional, Protocol, Sequence, Tuple

import numpy as np

from ai_trader.ai.policy_agent import TabularPolicyAgent
from ai_trader.ai.sequence_model import SequenceModel
from ai_trader.errors import (
    InsufficientDataError,
    NotInitializedError,
    RetrainInProgressError,
)
from ai_trader.models.enums import Direction, ModelType
from ai_trader.models.prediction import (
    MAX_CONFIDENCE,
    PredictionResult,
    PriceSeries,
    SystemState,
)
from ai_trader.utils.time import utc_now_ms, utc_now_s


logger = logging.getLogger(__name__)

MODEL_VERSION = "1.0.0"
DEAD_BAND = 0.001
FEATURE_WINDOW = 20
MIN_TRAINING_SAMPLES = 100


class PriceCollector(Protocol):
    async def collect(self, sources: Sequence[str], window: dict) -> PriceSeries:
        ...


@dataclass(frozen=True)
class TrainingReport:
    started_at: int
    finished_at: int
    sample_count: int
    episodes: int
    final_reward: float


def combine_predictions(
    sequence: PredictionResult,
    policy: PredictionResult,
    last_price: float,
    weights: Tuple[float, float] = (0.7, 0.3),
) -> PredictionResult:
    """Blend two sub-model predictions into one ensemble result."""
    seq_weight, policy_weight = weights
    price = seq_weight * sequence.price + policy_weight * policy.price
    confidence = min(
        MAX_CONFIDENCE,
        seq_weight * sequence.confidence + policy_weight * policy.confidence,
    )
    if price > last_price * (1 + DEAD_BAND):
        direction = Direction.UP
    elif price < last_price * (1 - DEAD_BAND):
        direction = Direction.DOWN
    else:
        direction = Direction.NEUTRAL
    return PredictionResult(
        price=price,
        direction=direction,
        confidence=max(0.0, confidence),
        timestamp=utc_now_ms(),
        model_type=ModelType.ENSEMBLE,
    )


class EnsemblePredictor:
    """Run both sub-models concurrently and keep their training in lockstep."""

    def __init__(
        self,
        sequence_model: SequenceModel,
        policy_agent: TabularPolicyAgent,
        collector: Optional[PriceCollector] = None,
        sources: Sequence[str] = ("coingecko", "exchange"),
        window_hours: int = 168,
        weights: Tuple[float, float] = (0.7, 0.3),
        initial_episodes: int = 500,
        retrain_episodes: int = 1000,
        min_training_samples: int = MIN_TRAINING_SAMPLES,
        model_dir: Optional[str | Path] = None,
    ) -> None:
        self.sequence_model = sequence_model
        self.policy_agent = policy_agent
        self.collector = collector
        self.sources = tuple(sources)
        self.window_hours = window_hours
        self.weights = weights
        self.initial_episodes = initial_episodes
        self.retrain_episodes = retrain_episodes
        self.min_training_samples = min_training_samples
        self.model_dir = Path(model_dir) if model_dir else None
        self._retrain_lock = asyncio.Lock()
        self._last_training_time: Optional[int] = None
        self._total_predictions = 0
        self._confidence_sum = 0.0

    @property
    def is_initialized(self) -> bool:
        return self.sequence_model.is_trained and self.policy_agent.is_trained

    async def predict(self, prices: PriceSeries | Sequence[float]) -> PredictionResult:
        if not self.is_initialized:
            raise NotInitializedError("ensemble models are not trained")
        values = prices.values() if isinstance(prices, PriceSeries) else np.asarray(prices, dtype=np.float64)
        if len(values) == 0:
            raise InsufficientDataError("no prices to predict from")

        sequence, policy = await asyncio.gather(
            asyncio.to_thread(self.sequence_model.predict, values),
            asyncio.to_thread(self.policy_agent.predict, values),
        )
        blended = combine_predictions(sequence, policy, float(values[-1]), self.weights)
        result = PredictionResult(
            price=blended.price,
            direction=blended.direction,
            confidence=blended.confidence,
            timestamp=blended.timestamp,
            model_type=ModelType.ENSEMBLE,
            features=tuple(values[-FEATURE_WINDOW:]),
        )
        self._total_predictions += 1
        self._confidence_sum += result.confidence
        logger.debug(
            "Ensemble prediction price=%.4f direction=%s confidence=%.3f",
            result.price,
            result.direction.value,
            result.confidence,
        )
        return result

    async def _collect(self) -> PriceSeries:
        if self.collector is None:
            raise InsufficientDataError("no market data collector configured")
        series = await self.collector.collect(self.sources, {"hours": self.window_hours})
        if len(series) < self.min_training_samples:
            raise InsufficientDataError(
                f"collected {len(series)} samples, need at least {self.min_training_samples}"
            )
        return series

    async def _train(self, series: PriceSeries, episodes: int) -> TrainingReport:
        started = utc_now_s()
        candidate = self.policy_agent.fork()
        results = await asyncio.gather(
            asyncio.to_thread(self.sequence_model.fit, series),
            asyncio.to_thread(candidate.train, series, episodes),
            return_exceptions=True,
        )
        # Worker threads cannot be cancelled; surface a failure only once both have returned.
        for outcome in results:
            if isinstance(outcome, BaseException):
                raise outcome
        state, reward = results
        # Both fits succeeded; install them together.
        self.sequence_model.adopt(state)
        self.policy_agent.restore(candidate.snapshot())
        self._last_training_time = utc_now_s()
        return TrainingReport(
            started_at=started,
            finished_at=self._last_training_time,
            sample_count=len(series),
            episodes=episodes,
            final_reward=reward,
        )

    async def train(self, series: PriceSeries, episodes: Optional[int] = None) -> TrainingReport:
        """Train both sub-models on ``series``; previous state survives any failure."""
        if self._retrain_lock.locked():
            raise RetrainInProgressError("training already in progress")
        async with self._retrain_lock:
            if len(series) < self.min_training_samples:
                raise InsufficientDataError(
                    f"got {len(series)} samples, need at least {self.min_training_samples}"
                )
            return await self._train(series, episodes or self.initial_episodes)

    async def retrain(self) -> TrainingReport:
        if self._retrain_lock.locked():
            raise RetrainInProgressError("retrain already in progress")
        async with self._retrain_lock:
            series = await self._collect()
            logger.info("Retraining ensemble on %d samples", len(series))
            report = await self._train(series, self.retrain_episodes)
        if self.model_dir is not None:
            await asyncio.to_thread(self.save_models)
        return report

    async def initialize(self) -> Optional[TrainingReport]:
        """Load saved models when available, otherwise train on fresh data."""
        if self.model_dir is not None and await asyncio.to_thread(self.load_models):
            logger.info("Loaded saved models from %s", self.model_dir)
            return None
        if self._retrain_lock.locked():
            raise RetrainInProgressError("training already in progress")
        async with self._retrain_lock:
            series = await self._collect()
            logger.info("Initial training on %d samples", len(series))
            report = await self._train(series, self.initial_episodes)
        if self.model_dir is not None:
            await asyncio.to_thread(self.save_models)
        return report

    def save_models(self) -> None:
        if self.model_dir is None:
            raise ValueError("model_dir is not configured")
        self.sequence_model.save(self.model_dir)
        self.policy_agent.save(self.model_dir)

    def load_models(self) -> bool:
        if self.model_dir is None or not self.model_dir.exists():
            return False
        policy_snapshot = self.policy_agent.snapshot()
        try:
            loaded = self.policy_agent.load(self.model_dir) and self.sequence_model.load(self.model_dir)
        except Exception as exc:
            logger.warning("Saved models in %s could not be loaded: %s", self.model_dir, exc)
            loaded = False
        if not loaded:
            self.policy_agent.restore(policy_snapshot)
            return False
        self._last_training_time = (
            self.sequence_model.state.trained_at if self.sequence_model.state else None
        )
        return True

    def get_system_state(self) -> SystemState:
        average = self._confidence_sum / self._total_predictions if self._total_predictions else 0.0
        return SystemState(
            is_initialized=self.is_initialized,
            last_training_time=self._last_training_time,
            total_predictions=self._total_predictions,
            average_accuracy=average,
            model_version=MODEL_VERSION,
        )
