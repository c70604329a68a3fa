"""ABI fragments of the trader, oracle and ERC-20 contracts."""

from __future__ import annotations

from typing import Dict

from web3 import Web3

from ai_trader.models.enums import TradeType


def _fn(name: str, inputs: list, outputs: list, mutability: str = "nonpayable") -> dict:
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
        "stateMutability": mutability,
    }


TRADER_ABI = [
    _fn(
        "tradeExactAVAXForTokens",
        [("tokenOut", "address"), ("amountOutMin", "uint256"), ("deadline", "uint256")],
        [("amountOut", "uint256")],
        mutability="payable",
    ),
    _fn(
        "tradeExactTokensForAVAX",
        [
            ("tokenIn", "address"),
            ("amountIn", "uint256"),
            ("amountOutMin", "uint256"),
            ("deadline", "uint256"),
        ],
        [("amountOut", "uint256")],
    ),
    _fn(
        "tradeExactTokensForTokens",
        [
            ("tokenIn", "address"),
            ("tokenOut", "address"),
            ("amountIn", "uint256"),
            ("amountOutMin", "uint256"),
            ("deadline", "uint256"),
        ],
        [("amountOut", "uint256")],
    ),
    _fn(
        "getAIPredictionStatus",
        [],
        [("isValid", "bool"), ("confidence", "uint256")],
        mutability="view",
    ),
]

ORACLE_ABI = [
    _fn(
        "getPrediction",
        [],
        [
            ("price", "uint256"),
            ("confidence", "uint256"),
            ("timestamp", "uint256"),
            ("expiresAt", "uint256"),
            ("isValid", "bool"),
        ],
        mutability="view",
    ),
]

ERC20_ABI = [
    _fn("balanceOf", [("account", "address")], [("balance", "uint256")], mutability="view"),
    _fn("decimals", [], [("", "uint8")], mutability="view"),
]

TRADE_FUNCTIONS: Dict[TradeType, str] = {
    TradeType.NATIVE_TO_TOKEN: "tradeExactAVAXForTokens",
    TradeType.TOKEN_TO_NATIVE: "tradeExactTokensForAVAX",
    TradeType.TOKEN_TO_TOKEN: "tradeExactTokensForTokens",
}

TRADE_SIGNATURES: Dict[TradeType, str] = {
    TradeType.NATIVE_TO_TOKEN: "tradeExactAVAXForTokens(address,uint256,uint256)",
    TradeType.TOKEN_TO_NATIVE: "tradeExactTokensForAVAX(address,uint256,uint256,uint256)",
    TradeType.TOKEN_TO_TOKEN: "tradeExactTokensForTokens(address,address,uint256,uint256,uint256)",
}


def function_selector(signature: str) -> str:
    """4-byte selector as a 0x-prefixed lowercase hex string."""
    return "0x" + bytes(Web3.keccak(text=signature)[:4]).hex()


TRADE_SELECTORS: Dict[str, TradeType] = {
    function_selector(sig): trade_type for trade_type, sig in TRADE_SIGNATURES.items()
}


def trade_type_from_calldata(data: str | bytes | None) -> TradeType | None:
    if not data:
        return None
    if isinstance(data, (bytes, bytearray)):
        data = "0x" + bytes(data).hex()
    return TRADE_SELECTORS.get(data[:10].lower())
