"""Configuration loader for the AI trader."""

from dataclasses import dataclass
import os
from typing import Tuple

from dotenv import load_dotenv


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_csv(value: str | None, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if not value:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _get_float(value: str | None, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_int(value: str | None, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    database_url: str
    rpc_url: str
    chain_id: int
    trader_contract_address: str
    oracle_contract_address: str
    trader_private_key: str
    trader_account_address: str
    native_token_address: str
    stable_token_address: str
    stable_token_decimals: int
    data_sources: Tuple[str, ...]
    training_window_hours: int
    coingecko_api_base: str
    coingecko_coin_id: str
    exchange_id: str
    exchange_symbol: str
    exchange_timeframe: str
    model_dir: str
    sequence_length: int
    sequence_epochs: int
    policy_initial_episodes: int
    policy_retrain_episodes: int
    gas_cache_ttl_s: float
    gas_fallback_gwei: int
    tx_max_attempts: int
    confirmation_max_blocks: int
    confirmation_poll_interval_s: float
    scheduler_interval_s: float
    slippage_pct: float
    trading_enabled: bool
    default_strategy: str

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///data/ai_trader.db"),
            rpc_url=os.getenv("RPC_URL", "https://api.avax-test.network/ext/bc/C/rpc"),
            chain_id=_get_int(os.getenv("CHAIN_ID"), 43113),
            trader_contract_address=os.getenv("TRADER_CONTRACT_ADDRESS", ""),
            oracle_contract_address=os.getenv("ORACLE_CONTRACT_ADDRESS", ""),
            trader_private_key=os.getenv("TRADER_PRIVATE_KEY", ""),
            trader_account_address=os.getenv("TRADER_ACCOUNT_ADDRESS", ""),
            native_token_address=os.getenv(
                "NATIVE_TOKEN_ADDRESS", "0xd00ae08403B9bbb9124bB305C09058E32C39A48c"
            ),
            stable_token_address=os.getenv(
                "STABLE_TOKEN_ADDRESS", "0x5425890298aed601595a70AB815c96711a31Bc65"
            ),
            stable_token_decimals=_get_int(os.getenv("STABLE_TOKEN_DECIMALS"), 6),
            data_sources=_get_csv(
                os.getenv("DATA_SOURCES"),
                default=("coingecko", "exchange"),
            ),
            training_window_hours=_get_int(os.getenv("TRAINING_WINDOW_HOURS"), 168),
            coingecko_api_base=os.getenv(
                "COINGECKO_API_BASE", "https://api.coingecko.com/api/v3"
            ),
            coingecko_coin_id=os.getenv("COINGECKO_COIN_ID", "avalanche-2"),
            exchange_id=os.getenv("EXCHANGE_ID", "okx"),
            exchange_symbol=os.getenv("EXCHANGE_SYMBOL", "AVAX/USDT"),
            exchange_timeframe=os.getenv("EXCHANGE_TIMEFRAME", "1h"),
            model_dir=os.getenv("MODEL_DIR", "models/ai_trader"),
            sequence_length=_get_int(os.getenv("SEQUENCE_LENGTH"), 60),
            sequence_epochs=_get_int(os.getenv("SEQUENCE_EPOCHS"), 100),
            policy_initial_episodes=_get_int(os.getenv("POLICY_INITIAL_EPISODES"), 500),
            policy_retrain_episodes=_get_int(os.getenv("POLICY_RETRAIN_EPISODES"), 1000),
            gas_cache_ttl_s=_get_float(os.getenv("GAS_CACHE_TTL_S"), 60.0),
            gas_fallback_gwei=_get_int(os.getenv("GAS_FALLBACK_GWEI"), 50),
            tx_max_attempts=_get_int(os.getenv("TX_MAX_ATTEMPTS"), 3),
            confirmation_max_blocks=_get_int(os.getenv("CONFIRMATION_MAX_BLOCKS"), 12),
            confirmation_poll_interval_s=_get_float(
                os.getenv("CONFIRMATION_POLL_INTERVAL_S"), 3.0
            ),
            scheduler_interval_s=_get_float(os.getenv("SCHEDULER_INTERVAL_S"), 30.0),
            slippage_pct=_get_float(os.getenv("SLIPPAGE_PCT"), 0.5),
            trading_enabled=_get_bool(os.getenv("TRADING_ENABLED"), default=False),
            default_strategy=os.getenv("DEFAULT_STRATEGY", "balanced"),
        )


settings = Settings.from_env()
