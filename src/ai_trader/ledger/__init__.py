"""Ledger access: RPC client, gas pricing, submission and confirmation."""

from ai_trader.ledger.client import LedgerClient, OraclePrediction, PredictionStatus
from ai_trader.ledger.confirmation import ConfirmationTracker
from ai_trader.ledger.gas import GasPriceOracle
from ai_trader.ledger.submitter import TransactionSubmitter

__all__ = [
    "ConfirmationTracker",
    "GasPriceOracle",
    "LedgerClient",
    "OraclePrediction",
    "PredictionStatus",
    "TransactionSubmitter",
]
