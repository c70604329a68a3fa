"""Time helpers (UTC, unix epoch)."""

from __future__ import annotations

import time


def utc_now_s() -> int:
    return int(time.time())


def utc_now_ms() -> int:
    return int(time.time() * 1000)
