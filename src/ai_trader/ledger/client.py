"""Async JSON-RPC client for the ledger and the trading contracts."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, Optional

from web3 import AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound

from ai_trader.config import settings
from ai_trader.ledger.abi import ERC20_ABI, ORACLE_ABI, TRADE_FUNCTIONS, TRADER_ABI
from ai_trader.models.trade import TradeParams


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PredictionStatus:
    is_valid: bool
    confidence: int


@dataclass(frozen=True)
class OraclePrediction:
    price: float
    confidence: float
    timestamp: int
    expires_at: int
    is_valid: bool


def create_web3(rpc_url: Optional[str] = None) -> AsyncWeb3:
    return AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url or settings.rpc_url))


def _to_hex(value: Any) -> str:
    if isinstance(value, str):
        return value if value.startswith("0x") else "0x" + value
    return Web3.to_hex(value)


class LedgerClient:
    """Thin wrapper over AsyncWeb3 returning plain Python values."""

    def __init__(
        self,
        web3: Optional[AsyncWeb3] = None,
        trader_address: Optional[str] = None,
        oracle_address: Optional[str] = None,
        private_key: Optional[str] = None,
        chain_id: Optional[int] = None,
    ) -> None:
        self.web3 = web3 or create_web3()
        trader = trader_address if trader_address is not None else settings.trader_contract_address
        oracle = oracle_address if oracle_address is not None else settings.oracle_contract_address
        if not trader:
            raise ValueError("TRADER_CONTRACT_ADDRESS is not configured")
        self.trader_address = Web3.to_checksum_address(trader)
        self.trader = self.web3.eth.contract(address=self.trader_address, abi=TRADER_ABI)
        self.oracle = (
            self.web3.eth.contract(address=Web3.to_checksum_address(oracle), abi=ORACLE_ABI)
            if oracle
            else None
        )
        key = private_key if private_key is not None else settings.trader_private_key
        self.account = self.web3.eth.account.from_key(key) if key else None
        self.chain_id = chain_id if chain_id is not None else settings.chain_id

    async def block_number(self) -> int:
        return int(await self.web3.eth.block_number)

    async def gas_price(self) -> int:
        return int(await self.web3.eth.gas_price)

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        return int(await self.web3.eth.estimate_gas(tx))

    async def get_transaction_count(self, address: str) -> int:
        return int(
            await self.web3.eth.get_transaction_count(Web3.to_checksum_address(address), "pending")
        )

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        """Sign locally when a key is configured, otherwise let the node sign."""
        if self.account is not None:
            payload = dict(tx)
            payload.setdefault("chainId", self.chain_id)
            signed = self.account.sign_transaction(payload)
            tx_hash = await self.web3.eth.send_raw_transaction(signed.raw_transaction)
        else:
            tx_hash = await self.web3.eth.send_transaction(tx)
        return _to_hex(tx_hash)

    async def get_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        try:
            receipt = await self.web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        if receipt is None:
            return None
        return dict(receipt)

    async def prediction_status(self) -> PredictionStatus:
        is_valid, confidence = await self.trader.functions.getAIPredictionStatus().call()
        return PredictionStatus(is_valid=bool(is_valid), confidence=int(confidence))

    async def oracle_prediction(self) -> OraclePrediction:
        if self.oracle is None:
            raise ValueError("ORACLE_CONTRACT_ADDRESS is not configured")
        price, confidence, timestamp, expires_at, is_valid = (
            await self.oracle.functions.getPrediction().call()
        )
        return OraclePrediction(
            price=int(price) / 1e18,
            confidence=int(confidence) / 100,
            timestamp=int(timestamp),
            expires_at=int(expires_at),
            is_valid=bool(is_valid),
        )

    async def native_balance(self, address: str) -> int:
        return int(await self.web3.eth.get_balance(Web3.to_checksum_address(address)))

    async def token_balance(self, token: str, address: str) -> int:
        contract = self.web3.eth.contract(address=Web3.to_checksum_address(token), abi=ERC20_ABI)
        return int(await contract.functions.balanceOf(Web3.to_checksum_address(address)).call())

    def encode_trade_call(self, params: TradeParams) -> str:
        name = TRADE_FUNCTIONS[params.trade_type]
        if name == "tradeExactAVAXForTokens":
            args = [params.token_out, params.amount_out_min, params.deadline]
        elif name == "tradeExactTokensForAVAX":
            args = [params.token_in, params.amount_in, params.amount_out_min, params.deadline]
        else:
            args = [
                params.token_in,
                params.token_out,
                params.amount_in,
                params.amount_out_min,
                params.deadline,
            ]
        return self.trader.encode_abi(name, args=args)
