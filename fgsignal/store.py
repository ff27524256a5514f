#!/usr/bin/env python3
"""
POSITION / EXECUTION STORE - Per-user open positions and append-only execution ledger.

Every operation is scoped to one user id (the chat id); no call can read or
touch another user's rows. Two backends share the same interface:

- SQLiteStore: local default, real transactions via db.get_session().
- SupabaseStore: hosted Postgres; the atomic confirmation runs server side
  through the confirm_execution() function (migrations/supabase_schema.sql).

Backend failures surface as StoreOperationFailed (PositionConflict when the
(user, ticker) uniqueness constraint rejects a second open position).
"""

import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager, nullcontext
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Tuple

from . import db
from .errors import (
    FrequencyLimitExceeded, PositionConflict, PositionStateError, StoreOperationFailed,
)
from .models import ExecutionRecord, Position, Side

logger = logging.getLogger(__name__)


def to_millis(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def from_millis(ms: int) -> datetime:
    return datetime.fromtimestamp(int(ms) / 1000, tz=timezone.utc)


def _now_millis() -> int:
    return to_millis(datetime.now(timezone.utc))


def month_window(dt: datetime) -> Tuple[datetime, datetime]:
    """[first instant of dt's UTC month, first instant of the next month)."""
    dt = dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)
    start = datetime(dt.year, dt.month, 1, tzinfo=timezone.utc)
    if dt.month == 12:
        return start, datetime(dt.year + 1, 1, 1, tzinfo=timezone.utc)
    return start, datetime(dt.year, dt.month + 1, 1, tzinfo=timezone.utc)


def _row_to_execution(row) -> ExecutionRecord:
    signal_price = row["signal_price"]
    return ExecutionRecord(
        signal_type=Side(row["signal_type"]),
        ticker=row["ticker"],
        execution_price=float(row["execution_price"]),
        execution_date=from_millis(row["execution_date"]),
        signal_price=float(signal_price) if signal_price is not None else None,
    )


class TradingStore(ABC):
    """Logical store operations required by the signal engine."""

    @abstractmethod
    def get_position(self, user: str, ticker: str) -> Optional[Position]:
        ...

    @abstractmethod
    def list_positions(self, user: str) -> List[Position]:
        ...

    @abstractmethod
    def set_position(self, user: str, ticker: str, entry_price: float) -> None:
        """Upsert: overwrites any prior position on this ticker."""

    @abstractmethod
    def open_position(self, user: str, ticker: str, entry_price: float) -> None:
        """Insert only: raises PositionConflict if one is already open."""

    @abstractmethod
    def clear_position(self, user: str, ticker: str) -> bool:
        """Delete the position; returns True if one existed."""

    @abstractmethod
    def append_execution(self, user: str, record: ExecutionRecord) -> None:
        ...

    @abstractmethod
    def list_executions(self, user: str, ticker: Optional[str] = None) -> List[ExecutionRecord]:
        """Executions ordered newest first."""

    def latest_execution(self, user: str, ticker: Optional[str] = None) -> Optional[ExecutionRecord]:
        executions = self.list_executions(user, ticker)
        return executions[0] if executions else None

    @abstractmethod
    def execution_in_window(self, user: str, start: datetime,
                            end: datetime) -> Optional[ExecutionRecord]:
        """Newest execution with start <= execution_date < end, across all tickers."""

    @abstractmethod
    def apply_execution(self, user: str, record: ExecutionRecord) -> None:
        """
        Apply a confirmed execution as one unit: BUY opens the position,
        SELL closes it, and the record is appended to the ledger.
        """

    def transaction(self):
        """Context manager grouping several operations atomically."""
        return nullcontext(self)


# ── SQLite ───────────────────────────────────────────────────────────

class SQLiteStore(TradingStore):

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        db.migrate(db_path)

    @contextmanager
    def transaction(self) -> Iterator["SQLiteStore"]:
        if self._conn is not None:
            # Nested: join the outer transaction
            yield self
            return
        try:
            with db.get_session(self.db_path) as conn:
                self._conn = conn
                try:
                    yield self
                finally:
                    self._conn = None
        except sqlite3.Error as e:
            raise StoreOperationFailed("transaction", e) from e

    @contextmanager
    def _session(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Reuse the open transaction if any, otherwise run in a fresh one."""
        try:
            if self._conn is not None:
                yield self._conn
            else:
                with db.get_session(self.db_path) as conn:
                    yield conn
        except sqlite3.Error as e:
            logger.error(f"{operation}: {e}")
            raise StoreOperationFailed(operation, e) from e

    def get_position(self, user: str, ticker: str) -> Optional[Position]:
        with self._session("get_position") as conn:
            row = conn.execute(
                "SELECT ticker, entry_price, created_at FROM active_positions "
                "WHERE chat_id = ? AND ticker = ? LIMIT 1",
                (str(user), ticker.upper()),
            ).fetchone()
        if row is None:
            return None
        return Position(row["ticker"], float(row["entry_price"]), from_millis(row["created_at"]))

    def list_positions(self, user: str) -> List[Position]:
        with self._session("list_positions") as conn:
            rows = conn.execute(
                "SELECT ticker, entry_price, created_at FROM active_positions "
                "WHERE chat_id = ? ORDER BY ticker",
                (str(user),),
            ).fetchall()
        return [Position(r["ticker"], float(r["entry_price"]), from_millis(r["created_at"]))
                for r in rows]

    def set_position(self, user: str, ticker: str, entry_price: float) -> None:
        now = _now_millis()
        with self._session("set_position") as conn:
            conn.execute(
                "INSERT INTO active_positions (chat_id, ticker, entry_price, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?) "
                "ON CONFLICT(chat_id, ticker) DO UPDATE SET entry_price = ?, updated_at = ?",
                (str(user), ticker.upper(), float(entry_price), now, now, float(entry_price), now),
            )

    def open_position(self, user: str, ticker: str, entry_price: float) -> None:
        now = _now_millis()
        try:
            with self._session("open_position") as conn:
                conn.execute(
                    "INSERT INTO active_positions (chat_id, ticker, entry_price, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (str(user), ticker.upper(), float(entry_price), now, now),
                )
        except StoreOperationFailed as e:
            if isinstance(e.cause, sqlite3.IntegrityError) and "UNIQUE" in str(e.cause).upper():
                raise PositionConflict("open_position", str(user), ticker.upper(), e.cause) from e
            raise

    def clear_position(self, user: str, ticker: str) -> bool:
        with self._session("clear_position") as conn:
            cur = conn.execute(
                "DELETE FROM active_positions WHERE chat_id = ? AND ticker = ?",
                (str(user), ticker.upper()),
            )
            return cur.rowcount > 0

    def append_execution(self, user: str, record: ExecutionRecord) -> None:
        with self._session("append_execution") as conn:
            conn.execute(
                "INSERT INTO executions (chat_id, signal_type, ticker, execution_price, "
                "signal_price, execution_date, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    str(user), record.signal_type.value, record.ticker.upper(),
                    float(record.execution_price), record.signal_price,
                    to_millis(record.execution_date), _now_millis(),
                ),
            )

    def list_executions(self, user: str, ticker: Optional[str] = None) -> List[ExecutionRecord]:
        sql = ("SELECT signal_type, ticker, execution_price, signal_price, execution_date "
               "FROM executions WHERE chat_id = ?")
        args = [str(user)]
        if ticker:
            sql += " AND ticker = ?"
            args.append(ticker.upper())
        sql += " ORDER BY execution_date DESC, id DESC"
        with self._session("list_executions") as conn:
            rows = conn.execute(sql, args).fetchall()
        return [_row_to_execution(r) for r in rows]

    def execution_in_window(self, user: str, start: datetime,
                            end: datetime) -> Optional[ExecutionRecord]:
        with self._session("execution_in_window") as conn:
            row = conn.execute(
                "SELECT signal_type, ticker, execution_price, signal_price, execution_date "
                "FROM executions WHERE chat_id = ? AND execution_date >= ? AND execution_date < ? "
                "ORDER BY execution_date DESC, id DESC LIMIT 1",
                (str(user), to_millis(start), to_millis(end)),
            ).fetchone()
        return _row_to_execution(row) if row is not None else None

    def apply_execution(self, user: str, record: ExecutionRecord) -> None:
        with self.transaction():
            if record.signal_type is Side.BUY:
                self.open_position(user, record.ticker, record.execution_price)
            else:
                self.clear_position(user, record.ticker)
            self.append_execution(user, record)


# ── Supabase ─────────────────────────────────────────────────────────

UNIQUE_VIOLATION = "23505"
# Raised by confirm_execution() in migrations/supabase_schema.sql
MONTH_ALREADY_USED = "FG001"
NO_OPEN_POSITION = "FG002"


class SupabaseStore(TradingStore):
    """Typed wrapper around the Supabase tables active_positions and executions."""

    def __init__(self, client=None):
        self._client = client if client is not None else db.get_supabase_client()
        if self._client is None:
            raise StoreOperationFailed("connect", message="Supabase is not configured")

    def _fail(self, operation: str, e: Exception) -> StoreOperationFailed:
        logger.error(f"{operation}: {e}")
        return StoreOperationFailed(operation, e)

    @staticmethod
    def _is_unique_violation(e: Exception) -> bool:
        return getattr(e, "code", None) == UNIQUE_VIOLATION or "duplicate key" in str(e).lower()

    def get_position(self, user: str, ticker: str) -> Optional[Position]:
        try:
            resp = (self._client.table("active_positions")
                    .select("ticker, entry_price, created_at")
                    .eq("chat_id", str(user))
                    .eq("ticker", ticker.upper())
                    .limit(1)
                    .execute())
        except Exception as e:
            raise self._fail("get_position", e) from e
        if not resp.data:
            return None
        row = resp.data[0]
        return Position(row["ticker"], float(row["entry_price"]), from_millis(row["created_at"]))

    def list_positions(self, user: str) -> List[Position]:
        try:
            resp = (self._client.table("active_positions")
                    .select("ticker, entry_price, created_at")
                    .eq("chat_id", str(user))
                    .order("ticker")
                    .execute())
        except Exception as e:
            raise self._fail("list_positions", e) from e
        return [Position(r["ticker"], float(r["entry_price"]), from_millis(r["created_at"]))
                for r in resp.data or []]

    def set_position(self, user: str, ticker: str, entry_price: float) -> None:
        now = _now_millis()
        row = {
            "chat_id": str(user),
            "ticker": ticker.upper(),
            "entry_price": float(entry_price),
            "created_at": now,
            "updated_at": now,
        }
        try:
            self._client.table("active_positions").upsert(
                row, on_conflict="chat_id,ticker"
            ).execute()
        except Exception as e:
            raise self._fail("set_position", e) from e

    def open_position(self, user: str, ticker: str, entry_price: float) -> None:
        now = _now_millis()
        row = {
            "chat_id": str(user),
            "ticker": ticker.upper(),
            "entry_price": float(entry_price),
            "created_at": now,
            "updated_at": now,
        }
        try:
            self._client.table("active_positions").insert(row).execute()
        except Exception as e:
            if self._is_unique_violation(e):
                raise PositionConflict("open_position", str(user), ticker.upper(), e) from e
            raise self._fail("open_position", e) from e

    def clear_position(self, user: str, ticker: str) -> bool:
        try:
            resp = (self._client.table("active_positions")
                    .delete()
                    .eq("chat_id", str(user))
                    .eq("ticker", ticker.upper())
                    .execute())
        except Exception as e:
            raise self._fail("clear_position", e) from e
        return bool(resp.data)

    def append_execution(self, user: str, record: ExecutionRecord) -> None:
        row = {
            "chat_id": str(user),
            "signal_type": record.signal_type.value,
            "ticker": record.ticker.upper(),
            "execution_price": float(record.execution_price),
            "signal_price": record.signal_price,
            "execution_date": to_millis(record.execution_date),
            "created_at": _now_millis(),
        }
        try:
            self._client.table("executions").insert(row).execute()
        except Exception as e:
            raise self._fail("append_execution", e) from e

    def list_executions(self, user: str, ticker: Optional[str] = None) -> List[ExecutionRecord]:
        try:
            q = (self._client.table("executions")
                 .select("signal_type, ticker, execution_price, signal_price, execution_date")
                 .eq("chat_id", str(user)))
            if ticker:
                q = q.eq("ticker", ticker.upper())
            resp = q.order("execution_date", desc=True).execute()
        except Exception as e:
            raise self._fail("list_executions", e) from e
        return [_row_to_execution(r) for r in resp.data or []]

    def execution_in_window(self, user: str, start: datetime,
                            end: datetime) -> Optional[ExecutionRecord]:
        try:
            resp = (self._client.table("executions")
                    .select("signal_type, ticker, execution_price, signal_price, execution_date")
                    .eq("chat_id", str(user))
                    .gte("execution_date", to_millis(start))
                    .lt("execution_date", to_millis(end))
                    .order("execution_date", desc=True)
                    .limit(1)
                    .execute())
        except Exception as e:
            raise self._fail("execution_in_window", e) from e
        return _row_to_execution(resp.data[0]) if resp.data else None

    def apply_execution(self, user: str, record: ExecutionRecord) -> None:
        params = {
            "p_chat_id": str(user),
            "p_signal_type": record.signal_type.value,
            "p_ticker": record.ticker.upper(),
            "p_execution_price": float(record.execution_price),
            "p_signal_price": record.signal_price,
            "p_execution_date": to_millis(record.execution_date),
        }
        try:
            self._client.rpc("confirm_execution", params).execute()
        except Exception as e:
            code = getattr(e, "code", None)
            if code == MONTH_ALREADY_USED:
                start, end = month_window(record.execution_date)
                existing = self.execution_in_window(user, start, end)
                last = existing.execution_date if existing else record.execution_date
                logger.info(f"Frequency limit hit for user {user} in {start:%Y-%m}")
                raise FrequencyLimitExceeded(str(user), last, end) from e
            if code == NO_OPEN_POSITION:
                raise PositionStateError(
                    f"No open position for {record.ticker.upper()} to sell"
                ) from e
            if self._is_unique_violation(e):
                raise PositionConflict("apply_execution", str(user), record.ticker.upper(), e) from e
            raise self._fail("apply_execution", e) from e


# Singleton
_store: Optional[TradingStore] = None


def get_store() -> TradingStore:
    """Supabase when configured, otherwise the local SQLite database."""
    global _store
    if _store is None:
        client = db.get_supabase_client()
        _store = SupabaseStore(client) if client is not None else SQLiteStore()
    return _store
