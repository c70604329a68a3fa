"""Shared fixtures and fakes for the pytest suite."""

from __future__ import annotations

from pathlib import Path
import sys
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from hexbytes import HexBytes
from web3 import Web3

from ai_trader.ledger.abi import TRADE_SIGNATURES, function_selector
from ai_trader.models.enums import Direction, ModelType, TradeType
from ai_trader.models.prediction import PredictionResult
from ai_trader.models.trade import TradeParams


NATIVE = Web3.to_checksum_address("0xd00ae08403b9bbb9124bb305c09058e32c39a48c")
STABLE = Web3.to_checksum_address("0x5425890298aed601595a70ab815c96711a31bc65")
TRADER = Web3.to_checksum_address("0x" + "11" * 20)
ACCOUNT = Web3.to_checksum_address("0x" + "22" * 20)
GWEI = 10**9
NOW = 1_700_000_000


def receipt(tx_hash: str, status: int, block: int) -> Dict[str, Any]:
    """Receipt shaped like web3's, whose hash fields are HexBytes."""
    return {
        "transactionHash": HexBytes(tx_hash),
        "status": status,
        "blockNumber": block,
    }


class FakeLedger:
    """In-memory stand-in for LedgerClient.

    ``outcomes`` drives successive sends: "confirm", "revert", "timeout", or an
    exception instance to raise from send_transaction.
    """

    def __init__(self) -> None:
        self.trader_address = TRADER
        self.block = 100
        self.block_step = 1
        self.gas_price_wei = 25 * GWEI
        self.gas_price_error: Optional[Exception] = None
        self.gas_price_calls = 0
        self.prediction_valid = True
        self.prediction_error: Optional[Exception] = None
        self.estimate: Any = 100_000
        self.nonce = 7
        self.nonce_calls = 0
        self.outcomes: List[Any] = []
        self.sent: List[Dict[str, Any]] = []
        self.hashes: List[str] = []
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self.native_wei = 10 * 10**18
        self.stable_units = 500 * 10**6

    async def block_number(self) -> int:
        current = self.block
        self.block += self.block_step
        return current

    async def gas_price(self) -> int:
        self.gas_price_calls += 1
        if self.gas_price_error is not None:
            raise self.gas_price_error
        return self.gas_price_wei

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        if isinstance(self.estimate, Exception):
            raise self.estimate
        return self.estimate

    async def get_transaction_count(self, address: str) -> int:
        self.nonce_calls += 1
        return self.nonce

    async def prediction_status(self):
        if self.prediction_error is not None:
            raise self.prediction_error
        return SimpleNamespace(is_valid=self.prediction_valid, confidence=80)

    def encode_trade_call(self, params: TradeParams) -> str:
        return function_selector(TRADE_SIGNATURES[params.trade_type]) + "00" * 32

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        outcome = self.outcomes.pop(0) if self.outcomes else "confirm"
        if isinstance(outcome, Exception):
            raise outcome
        self.sent.append(dict(tx))
        tx_hash = "0x" + format(len(self.sent), "064x")
        self.hashes.append(tx_hash)
        if outcome == "confirm":
            self.receipts[tx_hash] = receipt(tx_hash, 1, self.block)
        elif outcome == "revert":
            self.receipts[tx_hash] = receipt(tx_hash, 0, self.block)
            self.nonce += 1
        return tx_hash

    async def get_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        stored = self.receipts.get(tx_hash)
        return dict(stored) if stored is not None else None

    async def native_balance(self, address: str) -> int:
        return self.native_wei

    async def token_balance(self, token: str, address: str) -> int:
        return self.stable_units


class Recorder:
    """Collects awaited sleep durations without sleeping."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_prediction(
    confidence: float = 0.9,
    direction: Direction = Direction.UP,
    price: float = 101.0,
    model_type: ModelType = ModelType.ENSEMBLE,
) -> PredictionResult:
    return PredictionResult(
        price=price,
        direction=direction,
        confidence=confidence,
        timestamp=NOW * 1000,
        model_type=model_type,
    )


def make_params(trade_type: TradeType = TradeType.NATIVE_TO_TOKEN, deadline: int = NOW + 1200) -> TradeParams:
    token_in, token_out = (NATIVE, STABLE) if trade_type == TradeType.NATIVE_TO_TOKEN else (STABLE, NATIVE)
    return TradeParams(
        token_in=token_in,
        token_out=token_out,
        amount_in=5 * 10**17,
        amount_out_min=10 * 10**6,
        deadline=deadline,
        trade_type=trade_type,
    )


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def sleeper() -> Recorder:
    return Recorder()
