"""Exception types shared across the trading pipeline."""

from __future__ import annotations


class TradingError(Exception):
    """Base class for every error raised by ai_trader."""


class InsufficientDataError(TradingError):
    """Raised when a price series is too short for the requested operation."""


class ModelStateError(TradingError):
    pass


class NotTrainedError(ModelStateError):
    pass


class NotInitializedError(ModelStateError):
    pass


class RetrainInProgressError(TradingError):
    pass


class TransactionFailure(TradingError):
    """Raised when a mined transaction reports a failed status."""

    def __init__(self, message: str, tx_hash: str | None = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash


class ConfirmationTimeoutError(TradingError):
    def __init__(self, tx_hash: str, blocks_waited: int) -> None:
        super().__init__(
            f"transaction {tx_hash} not confirmed after {blocks_waited} blocks"
        )
        self.tx_hash = tx_hash
        self.blocks_waited = blocks_waited

