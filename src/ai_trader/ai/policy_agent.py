"""Tabular Q-learning agent over discretized price moves."""

from __future__ import annotations

from dataclasses import asdict, dataclass
import json
import logging
from pathlib import Path
import random
from typing import Dict, List, Optional, Sequence

import numpy as np

from ai_trader.errors import InsufficientDataError
from ai_trader.models.enums import Direction, ModelType, PolicyAction
from ai_trader.models.prediction import PredictionResult, PriceSeries, clip_confidence
from ai_trader.utils.time import utc_now_ms


logger = logging.getLogger(__name__)

ACTION_COUNT = len(PolicyAction)
LARGE_TABLE_WARNING = 50_000
POLICY_FILENAME = "policy_table.json"

_PRICE_FACTOR = {
    PolicyAction.HOLD: 1.0,
    PolicyAction.BUY: 1.02,
    PolicyAction.SELL: 0.98,
}
_DIRECTION = {
    PolicyAction.HOLD: Direction.NEUTRAL,
    PolicyAction.BUY: Direction.UP,
    PolicyAction.SELL: Direction.DOWN,
}


@dataclass(frozen=True)
class PolicyConfig:
    learning_rate: float = 0.1
    discount: float = 0.95
    epsilon: float = 0.1
    epsilon_decay: float = 0.995
    min_epsilon: float = 0.01
    state_size: int = 10
    move_threshold: float = 0.01


class PolicyTable:
    """Action values stored as dense rows, addressed by state key."""

    def __init__(self, action_count: int = ACTION_COUNT, capacity: int = 64) -> None:
        self.action_count = action_count
        self._index: Dict[str, int] = {}
        self._rows = np.zeros((max(capacity, 1), action_count), dtype=np.float64)
        self._warned = False

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, key: str) -> bool:
        return key in self._index

    def values(self, key: str) -> np.ndarray:
        """Action values for ``key``; unseen states read as all-zero."""
        idx = self._index.get(key)
        if idx is None:
            return np.zeros(self.action_count, dtype=np.float64)
        return self._rows[idx].copy()

    def _slot(self, key: str) -> int:
        idx = self._index.get(key)
        if idx is not None:
            return idx
        idx = len(self._index)
        if idx >= len(self._rows):
            grown = np.zeros((len(self._rows) * 2, self.action_count), dtype=np.float64)
            grown[: len(self._rows)] = self._rows
            self._rows = grown
        self._index[key] = idx
        if not self._warned and len(self._index) > LARGE_TABLE_WARNING:
            self._warned = True
            logger.warning("Policy table holds %d states and is never pruned", len(self._index))
        return idx

    def update(self, key: str, action: int, value: float) -> None:
        idx = self._slot(key)
        self._rows[idx, action] = value

    def copy(self) -> "PolicyTable":
        clone = PolicyTable(self.action_count, capacity=len(self._rows))
        clone._index = dict(self._index)
        clone._rows = self._rows.copy()
        clone._warned = self._warned
        return clone

    def to_dict(self) -> Dict[str, List[float]]:
        return {key: self._rows[idx].tolist() for key, idx in self._index.items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Sequence[float]], action_count: int = ACTION_COUNT) -> "PolicyTable":
        table = cls(action_count, capacity=max(len(data), 64))
        for key, row in data.items():
            if len(row) != action_count:
                raise ValueError(f"state {key!r} has {len(row)} action values, expected {action_count}")
            idx = table._slot(key)
            table._rows[idx] = np.asarray(row, dtype=np.float64)
        return table


@dataclass(frozen=True)
class PolicySnapshot:
    table: PolicyTable
    epsilon: float
    episodes_trained: int


def _as_array(prices: PriceSeries | Sequence[float]) -> np.ndarray:
    if isinstance(prices, PriceSeries):
        return prices.values()
    return np.asarray(prices, dtype=np.float64)


class TabularPolicyAgent:
    """Epsilon-greedy Q-learning over hold/buy/sell."""

    def __init__(
        self,
        config: Optional[PolicyConfig] = None,
        table: Optional[PolicyTable] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config or PolicyConfig()
        self.table = table if table is not None else PolicyTable()
        self.rng = rng or random.Random()
        self.epsilon = self.config.epsilon
        self.episodes_trained = 0

    @property
    def is_trained(self) -> bool:
        return self.episodes_trained > 0

    def state_key(self, prices: Sequence[float] | np.ndarray) -> str:
        size = self.config.state_size
        window = np.asarray(prices, dtype=np.float64)[-size:]
        if len(window) < size:
            window = np.concatenate([np.full(size - len(window), window[0]), window])
        moves = np.sign(np.diff(window)).astype(int)
        return ",".join(str(move) for move in moves)

    def select_action(self, key: str, explore: bool = True) -> PolicyAction:
        if explore and self.rng.random() < self.epsilon:
            return PolicyAction(self.rng.randrange(ACTION_COUNT))
        return PolicyAction(int(np.argmax(self.table.values(key))))

    def reward(self, action: PolicyAction, change: float) -> float:
        threshold = self.config.move_threshold
        if action == PolicyAction.HOLD:
            return 0.1 if abs(change) < threshold else -0.1
        if action == PolicyAction.BUY:
            return 1.0 if change > threshold else -1.0
        return 1.0 if change < -threshold else -1.0

    def _update(self, key: str, action: PolicyAction, reward: float, next_key: str) -> None:
        cfg = self.config
        current = self.table.values(key)[action]
        best_next = float(np.max(self.table.values(next_key)))
        target = reward + cfg.discount * best_next
        self.table.update(key, action, current + cfg.learning_rate * (target - current))

    def train(self, prices: PriceSeries | Sequence[float], episodes: int = 1000) -> float:
        """Run ``episodes`` passes over ``prices``. Returns the last episode's total reward."""
        values = _as_array(prices)
        if len(values) == 0:
            raise InsufficientDataError("TabularPolicyAgent received no prices")
        size = self.config.state_size
        if len(values) < size + 1:
            logger.warning(
                "Policy training skipped: %d prices, need %d for one transition",
                len(values),
                size + 1,
            )
            return 0.0

        # Step i observes the window ending at i and is rewarded on the move i -> i+1.
        keys = [self.state_key(values[i - size + 1 : i + 1]) for i in range(size - 1, len(values))]
        changes = np.zeros(len(values) - 1)
        np.divide(np.diff(values), values[:-1], out=changes, where=values[:-1] != 0)

        total = 0.0
        for episode in range(episodes):
            total = 0.0
            for step, key in enumerate(keys[:-1]):
                i = step + size - 1
                action = self.select_action(key)
                reward = self.reward(action, float(changes[i]))
                self._update(key, action, reward, keys[step + 1])
                total += reward
            self.epsilon = max(self.config.min_epsilon, self.epsilon * self.config.epsilon_decay)
            self.episodes_trained += 1
            if episode % 100 == 0:
                logger.debug(
                    "Policy episode %d/%d reward=%.2f states=%d",
                    episode,
                    episodes,
                    total,
                    len(self.table),
                )

        logger.info(
            "Policy agent trained %d episodes (states=%d, epsilon=%.4f)",
            episodes,
            len(self.table),
            self.epsilon,
        )
        return total

    def predict(self, prices: PriceSeries | Sequence[float]) -> PredictionResult:
        values = _as_array(prices)
        if len(values) == 0:
            raise InsufficientDataError("TabularPolicyAgent received no prices")
        q_values = self.table.values(self.state_key(values))
        action = PolicyAction(int(np.argmax(q_values)))
        best, worst = float(np.max(q_values)), float(np.min(q_values))
        confidence = (best - worst) / (abs(best) + 1e-8) if best > worst else 0.5
        current = float(values[-1])
        return PredictionResult(
            price=current * _PRICE_FACTOR[action],
            direction=_DIRECTION[action],
            confidence=clip_confidence(confidence),
            timestamp=utc_now_ms(),
            model_type=ModelType.POLICY,
            features=tuple(values[-self.config.state_size :]),
        )

    def fork(self) -> "TabularPolicyAgent":
        """Independent copy to train on while this agent keeps serving predictions."""
        clone = TabularPolicyAgent(self.config, table=self.table.copy(), rng=self.rng)
        clone.epsilon = self.epsilon
        clone.episodes_trained = self.episodes_trained
        return clone

    def snapshot(self) -> PolicySnapshot:
        return PolicySnapshot(
            table=self.table.copy(),
            epsilon=self.epsilon,
            episodes_trained=self.episodes_trained,
        )

    def restore(self, snapshot: PolicySnapshot) -> None:
        self.table = snapshot.table.copy()
        self.epsilon = snapshot.epsilon
        self.episodes_trained = snapshot.episodes_trained

    def save(self, path: str | Path) -> None:
        target = Path(path)
        target.mkdir(parents=True, exist_ok=True)
        payload = {
            "config": asdict(self.config),
            "epsilon": self.epsilon,
            "episodes_trained": self.episodes_trained,
            "table": self.table.to_dict(),
        }
        (target / POLICY_FILENAME).write_text(json.dumps(payload), encoding="utf-8")

    def load(self, path: str | Path) -> bool:
        source = Path(path) / POLICY_FILENAME
        if not source.exists():
            return False
        payload = json.loads(source.read_text(encoding="utf-8"))
        self.table = PolicyTable.from_dict(payload.get("table", {}))
        self.epsilon = float(payload.get("epsilon", self.config.epsilon))
        self.episodes_trained = int(payload.get("episodes_trained", 0))
        return True

    def describe(self) -> Dict[str, float]:
        return {
            "states": len(self.table),
            "epsilon": self.epsilon,
            "episodes_trained": self.episodes_trained,
        }
