import json
import logging
import sqlite3
from contextlib import contextmanager
from threading import Lock
from typing import Any

import config
from services.errors import UnavailableError

logger = logging.getLogger(__name__)
# Read at call time so tests can point it at a temporary file
DB_PATH = config.DB_PATH

# ====================================================================
# SQLITE SETUP: WAL MODE + TIMEOUT + WRITE LOCK
# - WAL mode allows concurrent reads while serializing writes
# - 10s timeout prevents infinite hangs on database locks
# - _db_write_lock serializes all INSERT/UPDATE/DELETE to prevent SQLITE_BUSY
# ====================================================================

_db_write_lock = Lock()
_db_timeout = 10  # seconds

_TRANSIENT_MARKERS = ("database is locked", "unable to open", "disk i/o error", "database is busy")


def _is_transient(exc: sqlite3.OperationalError) -> bool:
    msg = str(exc).lower()
    return any(marker in msg for marker in _TRANSIENT_MARKERS)


@contextmanager
def get_db_connection():
    """
    Context manager for a SQLite connection.
    - Enforces timeout to prevent infinite waits
    - Enables WAL mode for better concurrency
    - Converts lock / open failures into UnavailableError
    """
    conn = None
    try:
        conn = sqlite3.connect(DB_PATH, timeout=_db_timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        yield conn
    except sqlite3.OperationalError as e:
        if _is_transient(e):
            logger.error(f"[DB] Store unavailable: {e}")
            raise UnavailableError(f"Database unavailable: {e}") from e
        logger.error(f"[DB] Database error: {e}", exc_info=True)
        raise
    except sqlite3.IntegrityError:
        raise
    except sqlite3.DatabaseError as e:
        logger.error(f"[DB] Database error: {e}", exc_info=True)
        raise
    finally:
        if conn:
            try:
                conn.close()
            except Exception as e:
                logger.warning(f"[DB] Error closing connection: {e}")


@contextmanager
def write_connection():
    """
    Hold the write lock for a multi-statement write.
    Commits when the block completes, rolls back if it raises.
    """
    with _db_write_lock:
        with get_db_connection() as conn:
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise


def execute_write(sql: str, params: tuple = (), commit: bool = True):
    """
    Serialize a single write statement; returns lastrowid.
    """
    with _db_write_lock:
        with get_db_connection() as conn:
            try:
                cur = conn.execute(sql, params)
                if commit:
                    conn.commit()
                return cur.lastrowid
            except sqlite3.OperationalError as e:
                if "database is locked" in str(e):
                    logger.error(f"[DB] Database locked after {_db_timeout}s timeout: {e}")
                raise
            except sqlite3.IntegrityError:
                raise
            except Exception as exc:
                logger.error(f"[DB] Write failed for SQL: {sql} params={params}: {exc}", exc_info=True)
                raise


def execute_many_write(sql: str, seq_of_params: list[tuple], commit: bool = True) -> None:
    """
    Batched write helper with the same write lock/timeout safety.
    """
    with _db_write_lock:
        with get_db_connection() as conn:
            try:
                conn.executemany(sql, seq_of_params)
                if commit:
                    conn.commit()
            except sqlite3.OperationalError as e:
                if "database is locked" in str(e):
                    logger.error(f"[DB] Batch write locked after {_db_timeout}s timeout: {e}")
                raise
            except Exception as exc:
                logger.error(f"[DB] Batch write failed for SQL: {sql} params_count={len(seq_of_params)}: {exc}", exc_info=True)
                raise


def ensure_app_kv_table() -> None:
    """
    Ensure the app_kv_store table exists.
    Simple key/value store for sync bookkeeping (last run summaries).
    """
    sql = """
    CREATE TABLE IF NOT EXISTS app_kv_store (
        key   TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """
    try:
        execute_write(sql)
        logger.debug("[DB] app_kv_store table ensured")
    except Exception as exc:
        logger.error(f"[DB] Failed to ensure app_kv_store table: {exc}", exc_info=True)
        raise


def set_app_kv(conn, key: str, value: str) -> None:
    conn.execute(
        """
        INSERT INTO app_kv_store (key, value)
        VALUES (?, ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value
        """,
        (key, value),
    )


def record_sync_summary(job: str, summary: dict) -> None:
    """Persist the latest summary for a sync job under sync:<job>."""
    ensure_app_kv_table()
    with write_connection() as conn:
        set_app_kv(conn, f"sync:{job}", json.dumps(summary, default=str))


def get_sync_summaries() -> dict[str, Any]:
    ensure_app_kv_table()
    with get_db_connection() as conn:
        rows = conn.execute(
            "SELECT key, value FROM app_kv_store WHERE key LIKE 'sync:%' ORDER BY key"
        ).fetchall()
    out: dict[str, Any] = {}
    for row in rows:
        try:
            out[row["key"][len("sync:"):]] = json.loads(row["value"])
        except ValueError:
            logger.warning("[DB] Unreadable sync summary for %s", row["key"])
    return out
