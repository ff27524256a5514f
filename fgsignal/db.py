#!/usr/bin/env python3
"""
DATABASE ENGINES - SQLite sessions and the lazy Supabase client.

SQLite is the default local engine: every session is one explicit
transaction (BEGIN IMMEDIATE ... COMMIT) that rolls back on any exception.
Supabase is used when SUPABASE_URL and the service role key are configured.
"""

import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

from .config import get_config

logger = logging.getLogger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS active_positions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        chat_id TEXT NOT NULL,
        ticker TEXT NOT NULL,
        entry_price REAL NOT NULL,
        created_at INTEGER NOT NULL,
        updated_at INTEGER NOT NULL,
        UNIQUE(chat_id, ticker)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_active_positions_chat_id ON active_positions (chat_id)",
    """
    CREATE TABLE IF NOT EXISTS executions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        chat_id TEXT NOT NULL,
        signal_type TEXT NOT NULL CHECK(signal_type IN ('BUY', 'SELL')),
        ticker TEXT NOT NULL,
        execution_price REAL NOT NULL,
        signal_price REAL,
        execution_date INTEGER NOT NULL,
        created_at INTEGER NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_executions_chat_id ON executions (chat_id)",
    "CREATE INDEX IF NOT EXISTS idx_executions_chat_id_ticker ON executions (chat_id, ticker)",
    "CREATE INDEX IF NOT EXISTS idx_executions_execution_date ON executions (execution_date DESC)",
)


def _configure_sqlite(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA foreign_keys=ON;")


def get_connection(db_path: Optional[str] = None) -> sqlite3.Connection:
    """
    Open a SQLite connection in autocommit mode; transactions are explicit.
    30 s busy timeout so a concurrent confirmation waits instead of failing.
    """
    path = db_path or get_config().db_path
    conn = sqlite3.connect(path, timeout=30, isolation_level=None)
    conn.row_factory = sqlite3.Row
    _configure_sqlite(conn)
    return conn


@contextmanager
def get_session(db_path: Optional[str] = None) -> Iterator[sqlite3.Connection]:
    """
    One transaction per block:
        with get_session() as conn:
            conn.execute(...)
    Commits on success, rolls back and re-raises on any exception.
    """
    conn = get_connection(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        yield conn
        conn.execute("COMMIT")
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()


def migrate(db_path: Optional[str] = None) -> None:
    """Create tables and indexes if they do not exist."""
    with get_session(db_path) as conn:
        for statement in SCHEMA:
            conn.execute(statement)


# ── Supabase ─────────────────────────────────────────────────────────

_client = None


def get_supabase_client():
    """Lazily create the shared Supabase client, or None when not configured."""
    global _client
    if _client is not None:
        return _client

    cfg = get_config()
    if not cfg.has_supabase:
        logger.info("Supabase not configured - using local SQLite store")
        return None

    from supabase import create_client
    _client = create_client(cfg.supabase.url, cfg.supabase.service_role_key)
    return _client
