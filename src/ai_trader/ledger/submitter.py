"""Build, sign and push trade transactions with bounded retries."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple

from web3 import Web3

from ai_trader.errors import ConfirmationTimeoutError, TransactionFailure
from ai_trader.ledger.abi import trade_type_from_calldata
from ai_trader.ledger.confirmation import ConfirmationTracker
from ai_trader.ledger.gas import GasPriceOracle
from ai_trader.models.enums import TradeType
from ai_trader.models.trade import TradeParams, TradeResult
from ai_trader.utils.time import utc_now_s


logger = logging.getLogger(__name__)

DEFAULT_GAS_LIMITS = {
    TradeType.NATIVE_TO_TOKEN: 300_000,
    TradeType.TOKEN_TO_NATIVE: 250_000,
}
FALLBACK_GAS_LIMIT = 200_000
GAS_LIMIT_BUFFER_PCT = 20
REPLACEMENT_BUMP_PERMILLE = 1125


class TradeLedger(Protocol):
    trader_address: str

    async def prediction_status(self) -> Any:
        ...

    def encode_trade_call(self, params: TradeParams) -> str:
        ...

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        ...

    async def get_transaction_count(self, address: str) -> int:
        ...

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        ...

    async def get_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        ...


def default_gas_limit(data: Any) -> int:
    trade_type = trade_type_from_calldata(data)
    return DEFAULT_GAS_LIMITS.get(trade_type, FALLBACK_GAS_LIMIT)


def retry_delay(attempt: int, base_s: float = 1.0, cap_s: float = 10.0) -> float:
    """Backoff before the attempt following ``attempt`` (1-based)."""
    return min(base_s * 2 ** (attempt - 1), cap_s)


class TransactionSubmitter:
    def __init__(
        self,
        ledger: TradeLedger,
        gas_oracle: GasPriceOracle,
        tracker: ConfirmationTracker,
        max_attempts: int = 3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], int] = utc_now_s,
    ) -> None:
        self.ledger = ledger
        self.gas_oracle = gas_oracle
        self.tracker = tracker
        self.max_attempts = max_attempts
        self.sleep = sleep
        self.clock = clock

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        try:
            estimate = int(await self.ledger.estimate_gas(tx))
        except Exception as exc:
            fallback = default_gas_limit(tx.get("data"))
            logger.warning("Gas estimation failed (%s), using default limit %d", exc, fallback)
            return fallback
        return -(-estimate * (100 + GAS_LIMIT_BUFFER_PCT) // 100)

    async def _prediction_is_valid(self) -> bool:
        try:
            status = await self.ledger.prediction_status()
        except Exception as exc:
            logger.error("Failed to read on-chain AI prediction status: %s", exc)
            return False
        return bool(status.is_valid)

    async def submit(self, params: TradeParams, user_address: str) -> TradeResult:
        """Validate, price and send one trade. Never raises."""
        logger.info(
            "Executing %s trade %s -> %s amount_in=%d",
            params.trade_type.value,
            params.token_in,
            params.token_out,
            params.amount_in,
        )
        try:
            if not await self._prediction_is_valid():
                return TradeResult(success=False, error="AI prediction validation failed")
            if params.deadline <= self.clock():
                return TradeResult(success=False, error="trade deadline has already passed")

            sender = Web3.to_checksum_address(user_address)
            tx: Dict[str, Any] = {
                "from": sender,
                "to": self.ledger.trader_address,
                "data": self.ledger.encode_trade_call(params),
                "value": params.amount_in if params.trade_type == TradeType.NATIVE_TO_TOKEN else 0,
            }
            tx["gasPrice"] = await self.gas_oracle.get_price()
            tx["gas"] = await self.estimate_gas(tx)
            tx["nonce"] = await self.ledger.get_transaction_count(sender)
            result = await self.execute_with_retry(tx)
        except Exception as exc:
            logger.exception("Trade execution failed")
            return TradeResult(success=False, error=str(exc) or type(exc).__name__)

        if result.success:
            logger.info("Trade confirmed: %s", result.tx_hash)
        return result

    async def _settled(self, outstanding: List[str]) -> Optional[Tuple[str, Dict[str, Any]]]:
        """Hash and receipt of any earlier broadcast for the current nonce, if one was mined."""
        for tx_hash in outstanding:
            receipt = await self.ledger.get_receipt(tx_hash)
            if receipt is not None:
                return tx_hash, receipt
        return None

    async def execute_with_retry(
        self, tx: Dict[str, Any], max_attempts: Optional[int] = None
    ) -> TradeResult:
        """Send ``tx`` until it confirms, re-using its nonce across timeouts."""
        attempts = max_attempts or self.max_attempts
        tx = dict(tx)
        outstanding: List[str] = []
        last_error = "transaction failed after all retries"

        for attempt in range(1, attempts + 1):
            logger.info("Transaction attempt %d/%d", attempt, attempts)
            refresh_nonce = False
            try:
                if outstanding:
                    settled = await self._settled(outstanding)
                    if settled is not None:
                        tx_hash, receipt = settled
                        outstanding.clear()
                        if receipt.get("status") == 1:
                            logger.info("Earlier broadcast %s confirmed late", tx_hash)
                            return TradeResult(success=True, tx_hash=tx_hash, attempts=attempt - 1)
                        tx["nonce"] = await self.ledger.get_transaction_count(tx["from"])

                tx_hash = await self.ledger.send_transaction(tx)
                outstanding.append(tx_hash)
                receipt = await self.tracker.wait_for_confirmation(tx_hash)
                outstanding.clear()
                if receipt.get("status") == 1:
                    return TradeResult(success=True, tx_hash=tx_hash, attempts=attempt)
                refresh_nonce = True
                raise TransactionFailure("Transaction failed on-chain", tx_hash)
            except ConfirmationTimeoutError as exc:
                last_error = str(exc)
                tx["gasPrice"] = int(tx["gasPrice"]) * REPLACEMENT_BUMP_PERMILLE // 1000
            except Exception as exc:
                last_error = str(exc) or type(exc).__name__

            logger.warning("Transaction attempt %d failed: %s", attempt, last_error)
            if attempt == attempts:
                break
            await self.sleep(retry_delay(attempt))
            if refresh_nonce:
                tx["nonce"] = await self.ledger.get_transaction_count(tx["from"])

        last_hash = outstanding[-1] if outstanding else None
        return TradeResult(success=False, tx_hash=last_hash, error=last_error, attempts=attempts)
