"""Shared enumerations."""

from __future__ import annotations

from enum import Enum, IntEnum


class Direction(str, Enum):
    UP = "up"
    DOWN = "down"
    NEUTRAL = "neutral"


class ModelType(str, Enum):
    SEQUENCE = "sequence"
    POLICY = "policy"
    ENSEMBLE = "ensemble"


class TradeType(str, Enum):
    NATIVE_TO_TOKEN = "NATIVE_TO_TOKEN"
    TOKEN_TO_NATIVE = "TOKEN_TO_NATIVE"
    TOKEN_TO_TOKEN = "TOKEN_TO_TOKEN"


class TradeAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class TradeStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PolicyAction(IntEnum):
    HOLD = 0
    BUY = 1
    SELL = 2


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    EMERGENCY_STOPPED = "emergency_stopped"
