"""Prediction models: LSTM forecaster, Q-learning agent and their ensemble."""

from ai_trader.ai.ensemble import EnsemblePredictor, TrainingReport, combine_predictions
from ai_trader.ai.policy_agent import PolicyConfig, PolicyTable, TabularPolicyAgent
from ai_trader.ai.sequence_model import SequenceModel, SequenceModelConfig

__all__ = [
    "EnsemblePredictor",
    "PolicyConfig",
    "PolicyTable",
    "SequenceModel",
    "SequenceModelConfig",
    "TabularPolicyAgent",
    "TrainingReport",
    "combine_predictions",
]
