"""Poll for transaction receipts, bounded by block advance."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

from ai_trader.errors import ConfirmationTimeoutError
from ai_trader.models.enums import TradeStatus


logger = logging.getLogger(__name__)


class ReceiptSource(Protocol):
    async def block_number(self) -> int:
        ...

    async def get_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        ...


class ConfirmationTracker:
    def __init__(
        self,
        ledger: ReceiptSource,
        max_blocks: int = 12,
        poll_interval_s: float = 3.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.ledger = ledger
        self.max_blocks = max_blocks
        self.poll_interval_s = poll_interval_s
        self.sleep = sleep

    async def wait_for_confirmation(
        self, tx_hash: str, max_blocks: Optional[int] = None
    ) -> Dict[str, Any]:
        """Return the receipt, or raise once the chain advanced past ``max_blocks``."""
        limit = self.max_blocks if max_blocks is None else max_blocks
        start_block = await self.ledger.block_number()
        while True:
            receipt = await self.ledger.get_receipt(tx_hash)
            if receipt is not None:
                logger.info(
                    "Transaction %s mined in block %s (status=%s)",
                    tx_hash,
                    receipt.get("blockNumber"),
                    receipt.get("status"),
                )
                return receipt
            advanced = await self.ledger.block_number() - start_block
            if advanced > limit:
                raise ConfirmationTimeoutError(tx_hash, advanced)
            await self.sleep(self.poll_interval_s)

    async def transaction_status(self, tx_hash: str) -> TradeStatus:
        receipt = await self.ledger.get_receipt(tx_hash)
        if receipt is None:
            return TradeStatus.PENDING
        return TradeStatus.CONFIRMED if receipt.get("status") == 1 else TradeStatus.FAILED
