"""Stacked-LSTM next-price forecaster.

Every training window is normalized with its own median and median absolute
deviation, and the target is expressed in the same window units. A forecast
is therefore mapped back through the scaler of the window it was made from.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import asdict, dataclass
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Sequence, Tuple

import numpy as np

from ai_trader.errors import InsufficientDataError, NotTrainedError
from ai_trader.models.enums import Direction, ModelType
from ai_trader.models.prediction import PredictionResult, PriceSeries, clip_confidence
from ai_trader.utils.time import utc_now_ms, utc_now_s


logger = logging.getLogger(__name__)

EPSILON = 1e-8
TREND_WINDOW = 10
SMA_WINDOW = 20
# Placeholder until a volume feed is wired in.
VOLUME_CONSISTENCY = 0.7

MODEL_FILENAME = "sequence_model.keras"
META_FILENAME = "sequence_meta.json"


@dataclass(frozen=True)
class SequenceModelConfig:
    sequence_length: int = 60
    lstm_units: Tuple[int, ...] = (128, 64, 32)
    dense_units: int = 16
    dropout: float = 0.2
    learning_rate: float = 0.001
    batch_size: int = 32
    epochs: int = 100
    validation_split: float = 0.2
    patience: int = 10
    seed: Optional[int] = None


@dataclass(frozen=True)
class RobustScaler:
    median: float
    mad: float

    @classmethod
    def fit(cls, values: np.ndarray) -> "RobustScaler":
        median = float(np.median(values))
        mad = float(np.median(np.abs(values - median)))
        return cls(median=median, mad=mad)

    def transform(self, values: np.ndarray) -> np.ndarray:
        return (values - self.median) / (self.mad + EPSILON)

    def inverse(self, value: float) -> float:
        return value * (self.mad + EPSILON) + self.median


@dataclass(frozen=True)
class TrainingState:
    model: Any
    scaler: RobustScaler
    trained_at: int
    sample_count: int
    epochs_run: int
    best_loss: float


def _as_array(prices: PriceSeries | Sequence[float]) -> np.ndarray:
    if isinstance(prices, PriceSeries):
        return prices.values()
    return np.asarray(prices, dtype=np.float64)


@contextmanager
def scoped_buffers() -> Iterator[Dict[str, np.ndarray]]:
    """Hold intermediate arrays and drop them on every exit path."""
    buffers: Dict[str, np.ndarray] = {}
    try:
        yield buffers
    finally:
        buffers.clear()


def build_windows(values: np.ndarray, length: int) -> Tuple[np.ndarray, np.ndarray]:
    """Return window-normalized inputs (n, length, 1) and targets (n,)."""
    count = len(values) - length
    if count < 1:
        raise InsufficientDataError(
            f"need at least {length + 1} prices to build a training window, got {len(values)}"
        )
    windows = np.lib.stride_tricks.sliding_window_view(values, length)[:count]
    targets = values[length:]
    medians = np.median(windows, axis=1)
    scales = np.median(np.abs(windows - medians[:, None]), axis=1) + EPSILON
    inputs = (windows - medians[:, None]) / scales[:, None]
    normalized_targets = (targets - medians) / scales
    return inputs[..., np.newaxis].astype(np.float32), normalized_targets.astype(np.float32)


def trend_consistency(values: np.ndarray) -> float:
    if len(values) < TREND_WINDOW:
        return 0.5
    moves = np.sign(np.diff(values[-TREND_WINDOW:]))
    return float(np.mean(moves == moves[-1]))


def technical_alignment(predicted: float, values: np.ndarray) -> float:
    if len(values) < SMA_WINDOW:
        return 0.5
    sma = float(np.mean(values[-SMA_WINDOW:]))
    if sma == 0:
        return 0.5
    return max(0.0, 1.0 - abs(predicted - sma) / abs(sma))


def forecast_confidence(predicted: float, values: np.ndarray) -> float:
    score = (
        trend_consistency(values)
        + VOLUME_CONSISTENCY
        + technical_alignment(predicted, values)
    ) / 3.0
    return clip_confidence(score)


def direction_of(predicted: float, last_price: float) -> Direction:
    if predicted > last_price:
        return Direction.UP
    if predicted < last_price:
        return Direction.DOWN
    return Direction.NEUTRAL


class SequenceModel:
    """LSTM forecaster producing a next-step price and a heuristic confidence."""

    def __init__(self, config: Optional[SequenceModelConfig] = None) -> None:
        self.config = config or SequenceModelConfig()
        self._state: Optional[TrainingState] = None

    @property
    def is_trained(self) -> bool:
        return self._state is not None

    @property
    def state(self) -> Optional[TrainingState]:
        return self._state

    def build_model(self):
        try:
            from tensorflow import keras
            from tensorflow.keras import layers
        except ImportError as exc:
            raise ImportError("TensorFlow is required for SequenceModel. Install with: pip install tensorflow") from exc

        cfg = self.config
        model = keras.Sequential()
        model.add(keras.Input(shape=(cfg.sequence_length, 1)))
        last = len(cfg.lstm_units) - 1
        for i, units in enumerate(cfg.lstm_units):
            model.add(
                layers.LSTM(
                    units,
                    return_sequences=i < last,
                    dropout=cfg.dropout,
                    recurrent_dropout=cfg.dropout,
                )
            )
            model.add(layers.Dropout(cfg.dropout))
        model.add(layers.Dense(cfg.dense_units, activation="relu"))
        model.add(layers.Dropout(cfg.dropout))
        model.add(layers.Dense(1, activation="linear"))
        model.compile(
            optimizer=keras.optimizers.Adamax(learning_rate=cfg.learning_rate),
            loss=keras.losses.Huber(),
            metrics=["mae", "mse"],
        )
        return model

    def train(self, prices: PriceSeries | Sequence[float]) -> TrainingState:
        """Fit a fresh network and swap it in only once fitting succeeded."""
        return self.adopt(self.fit(prices))

    def adopt(self, state: TrainingState) -> TrainingState:
        self._state = state
        return state

    def fit(self, prices: PriceSeries | Sequence[float]) -> TrainingState:
        """Fit a fresh network without touching the installed state."""
        cfg = self.config
        values = _as_array(prices)
        if len(values) < cfg.sequence_length + 1:
            raise InsufficientDataError(
                f"SequenceModel needs at least {cfg.sequence_length + 1} prices, got {len(values)}"
            )
        from tensorflow import keras

        if cfg.seed is not None:
            keras.utils.set_random_seed(cfg.seed)

        with scoped_buffers() as buffers:
            buffers["x"], buffers["y"] = build_windows(values, cfg.sequence_length)
            count = len(buffers["y"])
            val_count = int(count * cfg.validation_split)
            validation_data = None
            if val_count >= 1 and count - val_count >= 1:
                split = count - val_count
                buffers["x_val"], buffers["y_val"] = buffers["x"][split:], buffers["y"][split:]
                buffers["x"], buffers["y"] = buffers["x"][:split], buffers["y"][:split]
                validation_data = (buffers["x_val"], buffers["y_val"])
            monitor = "val_loss" if validation_data is not None else "loss"

            model = self.build_model()
            history = model.fit(
                buffers["x"],
                buffers["y"],
                validation_data=validation_data,
                epochs=cfg.epochs,
                batch_size=cfg.batch_size,
                callbacks=[
                    keras.callbacks.EarlyStopping(
                        monitor=monitor,
                        patience=cfg.patience,
                        restore_best_weights=True,
                    )
                ],
                shuffle=False,
                verbose=0,
            )

        losses = history.history.get(monitor) or history.history.get("loss") or [float("nan")]
        state = TrainingState(
            model=model,
            scaler=RobustScaler.fit(values),
            trained_at=utc_now_s(),
            sample_count=len(values),
            epochs_run=len(history.history.get("loss", [])),
            best_loss=float(np.nanmin(losses)),
        )
        logger.info(
            "SequenceModel fitted on %d prices (%d epochs, best %s=%.6f)",
            state.sample_count,
            state.epochs_run,
            monitor,
            state.best_loss,
        )
        return state

    def predict(self, prices: PriceSeries | Sequence[float]) -> PredictionResult:
        state = self._state
        if state is None:
            raise NotTrainedError("SequenceModel has not been trained")
        length = self.config.sequence_length
        values = _as_array(prices)
        if len(values) < length:
            raise InsufficientDataError(
                f"SequenceModel needs {length} prices to predict, got {len(values)}"
            )

        with scoped_buffers() as buffers:
            buffers["window"] = values[-length:]
            scaler = RobustScaler.fit(buffers["window"])
            buffers["x"] = scaler.transform(buffers["window"]).reshape(1, length, 1).astype(np.float32)
            output = state.model.predict(buffers["x"], verbose=0)
            predicted = scaler.inverse(float(np.asarray(output).reshape(-1)[0]))

        last_price = float(values[-1])
        return PredictionResult(
            price=predicted,
            direction=direction_of(predicted, last_price),
            confidence=forecast_confidence(predicted, values),
            timestamp=utc_now_ms(),
            model_type=ModelType.SEQUENCE,
            features=tuple(values[-SMA_WINDOW:]),
        )

    def save(self, path: str | Path) -> None:
        state = self._state
        if state is None:
            raise NotTrainedError("SequenceModel has not been trained")
        target = Path(path)
        target.mkdir(parents=True, exist_ok=True)
        state.model.save(target / MODEL_FILENAME)
        meta = {
            "config": asdict(self.config),
            "scaler": asdict(state.scaler),
            "trained_at": state.trained_at,
            "sample_count": state.sample_count,
            "epochs_run": state.epochs_run,
            "best_loss": state.best_loss,
        }
        (target / META_FILENAME).write_text(json.dumps(meta, indent=2), encoding="utf-8")

    def load(self, path: str | Path) -> bool:
        """Load a saved network. Returns False when nothing is saved at ``path``."""
        target = Path(path)
        model_path = target / MODEL_FILENAME
        meta_path = target / META_FILENAME
        if not model_path.exists() or not meta_path.exists():
            return False
        from tensorflow import keras

        meta = json.loads(meta_path.read_text(encoding="utf-8"))
        saved_length = meta.get("config", {}).get("sequence_length")
        if saved_length is not None and saved_length != self.config.sequence_length:
            logger.warning(
                "Saved sequence model uses length %s, expected %s; ignoring it",
                saved_length,
                self.config.sequence_length,
            )
            return False
        self._state = TrainingState(
            model=keras.models.load_model(model_path),
            scaler=RobustScaler(**meta["scaler"]),
            trained_at=int(meta["trained_at"]),
            sample_count=int(meta["sample_count"]),
            epochs_run=int(meta.get("epochs_run", 0)),
            best_loss=float(meta.get("best_loss", float("nan"))),
        )
        return True

    def describe(self) -> Dict[str, Any]:
        state = self._state
        return {
            "is_trained": state is not None,
            "sequence_length": self.config.sequence_length,
            "trained_at": state.trained_at if state else None,
            "sample_count": state.sample_count if state else 0,
            "best_loss": state.best_loss if state else None,
        }
