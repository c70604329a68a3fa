"""Ensemble blending, initialization and all-or-nothing retraining."""

from __future__ import annotations

import asyncio
import random
import time
from types import SimpleNamespace

import numpy as np
import pytest

from ai_trader.ai.ensemble import EnsemblePredictor, combine_predictions
from ai_trader.ai.policy_agent import PolicyConfig, TabularPolicyAgent
from ai_trader.errors import (
    InsufficientDataError,
    NotInitializedError,
    RetrainInProgressError,
)
from ai_trader.models.enums import Direction, ModelType
from ai_trader.models.prediction import PredictionResult, PriceSeries


def _result(price: float, confidence: float, model_type: ModelType) -> PredictionResult:
    return PredictionResult(
        price=price,
        direction=Direction.UP,
        confidence=confidence,
        timestamp=0,
        model_type=model_type,
    )


def _series(count: int) -> PriceSeries:
    rng = np.random.default_rng(11)
    return PriceSeries.from_prices(list(40 * np.cumprod(1 + rng.normal(0, 0.01, count))))


class StubSequence:
    def __init__(self, price: float = 43.0, confidence: float = 0.8, trained: bool = True) -> None:
        self.price = price
        self.confidence = confidence
        self.state = SimpleNamespace(trained_at=123) if trained else None
        self.fit_error = None
        self.fits = 0

    @property
    def is_trained(self) -> bool:
        return self.state is not None

    def fit(self, prices):
        self.fits += 1
        if self.fit_error is not None:
            raise self.fit_error
        return SimpleNamespace(trained_at=456, sample_count=len(prices))

    def adopt(self, state):
        self.state = state
        return state

    def predict(self, prices) -> PredictionResult:
        return _result(self.price, self.confidence, ModelType.SEQUENCE)


class StubPolicy:
    is_trained = True

    def __init__(self, error=None) -> None:
        self.error = error

    def predict(self, prices) -> PredictionResult:
        if self.error is not None:
            raise self.error
        return _result(43.333, 0.6, ModelType.POLICY)


class StubCollector:
    def __init__(self, series: PriceSeries, gate: asyncio.Event | None = None) -> None:
        self.series = series
        self.gate = gate
        self.calls = 0

    async def collect(self, sources, window) -> PriceSeries:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        return self.series


def _trained_policy() -> TabularPolicyAgent:
    agent = TabularPolicyAgent(PolicyConfig(state_size=5), rng=random.Random(2))
    agent.train(_series(50), episodes=3)
    return agent


def test_combine_weights_prices_and_confidences():
    result = combine_predictions(
        _result(43.0, 0.8, ModelType.SEQUENCE),
        _result(43.333, 0.6, ModelType.POLICY),
        last_price=42.0,
    )
    assert result.price == pytest.approx(43.1, abs=1e-3)
    assert result.confidence == pytest.approx(0.74)
    assert result.direction == Direction.UP
    assert result.model_type == ModelType.ENSEMBLE


@pytest.mark.parametrize(
    "price, expected",
    [(100.05, Direction.NEUTRAL), (99.95, Direction.NEUTRAL), (100.2, Direction.UP), (99.8, Direction.DOWN)],
)
def test_combine_dead_band(price, expected):
    result = combine_predictions(
        _result(price, 0.5, ModelType.SEQUENCE),
        _result(price, 0.5, ModelType.POLICY),
        last_price=100.0,
    )
    assert result.direction == expected


def test_combine_caps_confidence():
    result = combine_predictions(
        _result(1.0, 0.95, ModelType.SEQUENCE),
        _result(1.0, 0.95, ModelType.POLICY),
        last_price=1.0,
    )
    assert result.confidence == 0.95


def test_predict_blends_and_tracks_statistics():
    ensemble = EnsemblePredictor(StubSequence(), StubPolicy())
    assert ensemble.get_system_state() == ensemble.get_system_state()

    result = asyncio.run(ensemble.predict(PriceSeries.from_prices([41.0, 42.0])))

    assert result.price == pytest.approx(43.1, abs=1e-3)
    assert result.features == (41.0, 42.0)
    state = ensemble.get_system_state()
    assert state.is_initialized
    assert state.total_predictions == 1
    assert state.average_accuracy == pytest.approx(0.74)
    assert state.model_version == "1.0.0"
    assert ensemble.get_system_state() == state


def test_predict_requires_both_models_trained():
    ensemble = EnsemblePredictor(StubSequence(trained=False), StubPolicy())
    with pytest.raises(NotInitializedError):
        asyncio.run(ensemble.predict([1.0, 2.0]))
    assert not ensemble.get_system_state().is_initialized


def test_sub_model_errors_propagate():
    ensemble = EnsemblePredictor(StubSequence(), StubPolicy(error=InsufficientDataError("short")))
    with pytest.raises(InsufficientDataError):
        asyncio.run(ensemble.predict([1.0, 2.0]))
    assert ensemble.get_system_state().total_predictions == 0


def test_retrain_with_too_few_samples_keeps_models():
    sequence = StubSequence()
    policy = _trained_policy()
    before = policy.table.to_dict()
    ensemble = EnsemblePredictor(sequence, policy, collector=StubCollector(_series(99)))

    with pytest.raises(InsufficientDataError):
        asyncio.run(ensemble.retrain())

    assert sequence.fits == 0
    assert sequence.state.trained_at == 123
    assert policy.table.to_dict() == before


def test_failed_sequence_fit_leaves_policy_untouched():
    sequence = StubSequence()
    sequence.fit_error = RuntimeError("out of memory")
    policy = _trained_policy()
    before = (policy.table.to_dict(), policy.episodes_trained, policy.epsilon)
    ensemble = EnsemblePredictor(sequence, policy, collector=StubCollector(_series(150)))

    with pytest.raises(RuntimeError):
        asyncio.run(ensemble.retrain())

    assert (policy.table.to_dict(), policy.episodes_trained, policy.epsilon) == before
    assert sequence.state.trained_at == 123
    assert ensemble.get_system_state().last_training_time is None


def test_successful_retrain_installs_both_models():
    sequence = StubSequence()
    policy = _trained_policy()
    ensemble = EnsemblePredictor(
        sequence, policy, collector=StubCollector(_series(150)), retrain_episodes=4
    )

    report = asyncio.run(ensemble.retrain())

    assert report.sample_count == 150
    assert report.episodes == 4
    assert sequence.state.trained_at == 456
    assert policy.episodes_trained == 7
    assert ensemble.get_system_state().last_training_time == report.finished_at


def test_concurrent_retrain_is_rejected():
    async def scenario():
        gate = asyncio.Event()
        ensemble = EnsemblePredictor(
            StubSequence(),
            _trained_policy(),
            collector=StubCollector(_series(150), gate=gate),
            retrain_episodes=1,
        )
        first = asyncio.create_task(ensemble.retrain())
        await asyncio.sleep(0)
        with pytest.raises(RetrainInProgressError):
            await ensemble.retrain()
        gate.set()
        return await first

    report = asyncio.run(scenario())
    assert report.sample_count == 150


def test_train_on_supplied_series():
    sequence = StubSequence(trained=False)
    policy = TabularPolicyAgent(PolicyConfig(state_size=5), rng=random.Random(4))
    ensemble = EnsemblePredictor(sequence, policy)

    report = asyncio.run(ensemble.train(_series(120), episodes=2))

    assert ensemble.is_initialized
    assert report.episodes == 2


def test_initialize_trains_when_nothing_is_saved(tmp_path):
    sequence = StubSequence(trained=False)
    sequence.save = lambda path: None
    sequence.load = lambda path: False
    policy = TabularPolicyAgent(PolicyConfig(state_size=5), rng=random.Random(4))
    collector = StubCollector(_series(120))
    ensemble = EnsemblePredictor(
        sequence, policy, collector=collector, initial_episodes=2, model_dir=tmp_path
    )

    report = asyncio.run(ensemble.initialize())

    assert report is not None
    assert collector.calls == 1
    assert ensemble.is_initialized
    assert (tmp_path / "policy_table.json").exists()


def test_unreadable_saved_sequence_keeps_current_policy(tmp_path):
    _trained_policy().save(tmp_path)
    sequence = StubSequence(trained=False)

    def broken_load(path):
        raise OSError("truncated model file")

    sequence.load = broken_load
    policy = TabularPolicyAgent(PolicyConfig(state_size=5), rng=random.Random(4))
    before = (policy.table.to_dict(), policy.episodes_trained, policy.epsilon)
    ensemble = EnsemblePredictor(sequence, policy, model_dir=tmp_path)

    assert ensemble.load_models() is False
    assert (policy.table.to_dict(), policy.episodes_trained, policy.epsilon) == before
    assert not ensemble.is_initialized


def test_initialize_falls_back_to_training_when_load_raises(tmp_path):
    _trained_policy().save(tmp_path)
    sequence = StubSequence(trained=False)
    sequence.save = lambda path: None

    def broken_load(path):
        raise OSError("truncated model file")

    sequence.load = broken_load
    policy = TabularPolicyAgent(PolicyConfig(state_size=5), rng=random.Random(4))
    collector = StubCollector(_series(120))
    ensemble = EnsemblePredictor(
        sequence, policy, collector=collector, initial_episodes=2, model_dir=tmp_path
    )

    report = asyncio.run(ensemble.initialize())

    assert report is not None
    assert collector.calls == 1
    assert policy.episodes_trained == 2


class SlowSequence(StubSequence):
    def __init__(self) -> None:
        super().__init__()
        self.finished = False

    def fit(self, prices):
        time.sleep(0.2)
        state = super().fit(prices)
        self.finished = True
        return state


def test_failed_policy_training_waits_for_sequence_fit():
    sequence = SlowSequence()
    policy = _trained_policy()
    before = (policy.table.to_dict(), policy.episodes_trained)

    def diverging_train(series, episodes):
        raise RuntimeError("policy diverged")

    policy.fork = lambda: SimpleNamespace(train=diverging_train)
    ensemble = EnsemblePredictor(sequence, policy)

    async def scenario():
        with pytest.raises(RuntimeError, match="policy diverged"):
            await ensemble.train(_series(120), episodes=2)
        # The lock is free again only after the fit thread has returned.
        return sequence.finished, ensemble._retrain_lock.locked()

    finished, locked = asyncio.run(scenario())
    assert finished
    assert not locked
    assert sequence.state.trained_at == 123
    assert (policy.table.to_dict(), policy.episodes_trained) == before
