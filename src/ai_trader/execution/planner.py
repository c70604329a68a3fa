"""Turn an approved decision into concrete swap parameters."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional, Protocol

from ai_trader.config import settings
from ai_trader.models.enums import Direction, TradeAction, TradeType
from ai_trader.models.trade import TradeParams


logger = logging.getLogger(__name__)

NATIVE_DECIMALS = 18


class BalanceSource(Protocol):
    async def native_balance(self, address: str) -> int:
        ...

    async def token_balance(self, token: str, address: str) -> int:
        ...


def action_for(direction: Direction) -> Optional[TradeAction]:
    if direction == Direction.UP:
        return TradeAction.BUY
    if direction == Direction.DOWN:
        return TradeAction.SELL
    return None


@dataclass
class TradePlanner:
    """BUY spends the stable token for native; SELL spends native for the stable token."""

    native_token: str = settings.native_token_address
    stable_token: str = settings.stable_token_address
    stable_decimals: int = settings.stable_token_decimals
    slippage_pct: float = settings.slippage_pct

    def build(self, action: TradeAction, size_quote: float, price: float) -> TradeParams:
        if price <= 0:
            raise ValueError("price must be positive")
        keep = 1 - self.slippage_pct / 100
        native_amount = size_quote / price
        if action == TradeAction.BUY:
            return TradeParams(
                token_in=self.stable_token,
                token_out=self.native_token,
                amount_in=int(size_quote * 10**self.stable_decimals),
                amount_out_min=int(native_amount * keep * 10**NATIVE_DECIMALS),
                trade_type=TradeType.TOKEN_TO_NATIVE,
            )
        return TradeParams(
            token_in=self.native_token,
            token_out=self.stable_token,
            amount_in=int(native_amount * 10**NATIVE_DECIMALS),
            amount_out_min=int(size_quote * keep * 10**self.stable_decimals),
            trade_type=TradeType.NATIVE_TO_TOKEN,
        )

    async def portfolio_value(self, ledger: BalanceSource, account: str, price: float) -> float:
        """Native holdings at ``price`` plus stable holdings, in quote currency."""
        native = await ledger.native_balance(account)
        stable = await ledger.token_balance(self.stable_token, account)
        return native / 10**NATIVE_DECIMALS * price + stable / 10**self.stable_decimals
