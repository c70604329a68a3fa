"""Trade request, result and history models."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from web3 import Web3

from ai_trader.models.enums import TradeAction, TradeStatus, TradeType
from ai_trader.utils.time import utc_now_s


DEFAULT_DEADLINE_S = 1200


def _default_deadline() -> int:
    return utc_now_s() + DEFAULT_DEADLINE_S


class TradeParams(BaseModel):
    """Parameters of a single swap submitted to the trader contract.

    Amounts are integer base units of the input/output token.
    """

    model_config = ConfigDict(frozen=True)

    token_in: str
    token_out: str
    amount_in: int = Field(gt=0)
    amount_out_min: int = Field(default=0, ge=0)
    deadline: int = Field(default_factory=_default_deadline)
    trade_type: TradeType

    @field_validator("token_in", "token_out")
    @classmethod
    def _checksum_address(cls, value: str) -> str:
        if not isinstance(value, str) or not Web3.is_address(value.strip()):
            raise ValueError(f"invalid address: {value!r}")
        return Web3.to_checksum_address(value.strip())

    @field_validator("trade_type", mode="before")
    @classmethod
    def _normalize_trade_type(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value


@dataclass(frozen=True)
class TradeResult:
    success: bool
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "tx_hash": self.tx_hash,
            "error": self.error,
            "attempts": self.attempts,
        }


@dataclass(frozen=True)
class TradeHistoryEntry:
    id: str
    timestamp: int
    action: TradeAction
    amount: float
    price: float
    status: TradeStatus
    confidence: float

    @classmethod
    def create(
        cls,
        action: TradeAction,
        amount: float,
        price: float,
        confidence: float,
        status: TradeStatus = TradeStatus.PENDING,
        tx_hash: Optional[str] = None,
        timestamp: Optional[int] = None,
    ) -> "TradeHistoryEntry":
        return cls(
            id=tx_hash or f"local-{uuid4()}",
            timestamp=utc_now_s() if timestamp is None else timestamp,
            action=action,
            amount=amount,
            price=price,
            status=status,
            confidence=confidence,
        )

    @property
    def is_active(self) -> bool:
        """Pending or confirmed trades count toward rate and exposure limits."""
        return self.status in (TradeStatus.PENDING, TradeStatus.CONFIRMED)

    def with_status(self, status: TradeStatus) -> "TradeHistoryEntry":
        return replace(self, status=status)
