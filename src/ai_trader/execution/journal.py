"""Bounded in-memory trade history with a best-effort sqlite sink."""

from __future__ import annotations

from collections import deque
import logging
import sqlite3
import threading
from typing import Deque, Optional, Sequence, Tuple

from ai_trader.db.connection import get_connection
from ai_trader.models.enums import TradeAction, TradeStatus
from ai_trader.models.trade import TradeHistoryEntry
from ai_trader.risk.validator import TradeContext
from ai_trader.utils.time import utc_now_s


logger = logging.getLogger(__name__)

MAX_HISTORY = 100


class TradeJournal:
    """Keep the most recent trades for rate limiting and persist them for audit.

    Database failures are logged and never propagate to the trading path.
    """

    def __init__(
        self,
        max_entries: int = MAX_HISTORY,
        database_url: Optional[str] = None,
        persist: bool = True,
    ) -> None:
        self._entries: Deque[TradeHistoryEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()
        self.database_url = database_url
        self.persist = persist

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> Tuple[TradeHistoryEntry, ...]:
        """Oldest first."""
        with self._lock:
            return tuple(self._entries)

    def recent(self, count: int) -> Tuple[TradeHistoryEntry, ...]:
        entries = self.entries()
        return entries[-count:] if count > 0 else ()

    def append(
        self,
        entry: TradeHistoryEntry,
        strategy: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        with self._lock:
            self._entries.append(entry)
        self._write(
            """
            INSERT OR REPLACE INTO auto_trades
            (id, timestamp, action, amount, price, status, confidence, strategy, error, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.id,
                entry.timestamp,
                entry.action.value,
                entry.amount,
                entry.price,
                entry.status.value,
                entry.confidence,
                strategy,
                error,
                utc_now_s(),
            ),
        )

    def update_status(self, entry_id: str, status: TradeStatus) -> Optional[TradeHistoryEntry]:
        updated = None
        with self._lock:
            for idx, entry in enumerate(self._entries):
                if entry.id == entry_id:
                    updated = entry.with_status(status)
                    self._entries[idx] = updated
                    break
        if updated is not None:
            self._write(
                "UPDATE auto_trades SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, utc_now_s(), entry_id),
            )
        return updated

    def record_risk_event(self, rule: str, reason: str, context: TradeContext) -> None:
        self._write(
            """
            INSERT INTO risk_events (timestamp, level, rule, details, confidence, strategy)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                context.now,
                "block",
                rule,
                reason,
                context.prediction.confidence,
                context.strategy.name,
            ),
        )

    def record_training_run(
        self,
        started_at: int,
        finished_at: int,
        sample_count: int,
        status: str,
        details: str = "",
    ) -> None:
        self._write(
            """
            INSERT INTO training_runs (started_at, finished_at, sample_count, status, details)
            VALUES (?, ?, ?, ?, ?)
            """,
            (started_at, finished_at, sample_count, status, details),
        )

    def load_recent(self) -> int:
        """Reload the newest persisted trades into memory. Returns the count loaded."""
        if not self.persist:
            return 0
        limit = self._entries.maxlen or MAX_HISTORY
        try:
            conn = get_connection(self.database_url)
            try:
                rows = conn.execute(
                    """
                    SELECT id, timestamp, action, amount, price, status, confidence
                    FROM auto_trades
                    ORDER BY timestamp DESC
                    LIMIT ?
                    """,
                    (limit,),
                ).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            logger.warning("Could not load trade history: %s", exc)
            return 0

        loaded = [
            TradeHistoryEntry(
                id=row["id"],
                timestamp=int(row["timestamp"]),
                action=TradeAction(row["action"]),
                amount=float(row["amount"]),
                price=float(row["price"]),
                status=TradeStatus(row["status"]),
                confidence=float(row["confidence"]),
            )
            for row in reversed(rows)
        ]
        with self._lock:
            self._entries.clear()
            self._entries.extend(loaded)
        return len(loaded)

    def _write(self, sql: str, params: Sequence) -> None:
        if not self.persist:
            return
        try:
            conn = get_connection(self.database_url)
            try:
                conn.execute(sql, params)
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            logger.warning("Trade journal write failed: %s", exc)
