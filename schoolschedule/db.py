from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Iterator

from mysql.connector import Error as MySQLError  # type: ignore
from mysql.connector import pooling  # type: ignore
from mysql.connector.constants import ClientFlag  # type: ignore

from schoolschedule import config
from schoolschedule.errors import StorageError

log = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")


@dataclass(frozen=True)
class DbConfig:
    host: str
    user: str
    password: str
    database: str
    port: int = 3306


def load_db_config() -> DbConfig:
    return DbConfig(
        host=config.DB_HOST,
        user=config.DB_USER,
        password=config.DB_PASSWORD or "",
        database=config.DB_NAME,
        port=int(config.DB_PORT),
    )


_POOL: pooling.MySQLConnectionPool | None = None
_POOL_LOCK = threading.Lock()


def get_pool() -> pooling.MySQLConnectionPool:
    global _POOL
    if _POOL is not None:
        return _POOL
    with _POOL_LOCK:
        if _POOL is None:
            cfg = load_db_config()
            _POOL = pooling.MySQLConnectionPool(
                pool_name="schedule_pool",
                pool_size=int(config.DB_POOL_SIZE),
                host=cfg.host,
                user=cfg.user,
                password=cfg.password,
                database=cfg.database,
                port=cfg.port,
                autocommit=False,
                pool_reset_session=True,
                # rowcount of UPDATE = matched rows, not only changed ones
                client_flags=[ClientFlag.FOUND_ROWS],
            )
            log.info("MySQL pool created for %s@%s:%s/%s", cfg.user, cfg.host, cfg.port, cfg.database)
    return _POOL


@contextmanager
def db_cursor(*, dictionary: bool = True, context: str = "query failed") -> Iterator[tuple[Any, Any]]:
    """
    Context manager returning (conn, cur).
    Commits on success, rollbacks on error.

    MySQL errors are re-raised as StorageError prefixed with `context`;
    anything else (validation, not-found) propagates unchanged after rollback.
    """
    pool = get_pool()
    try:
        conn = pool.get_connection()
        # пул может отдать соединение, которое сервер уже закрыл
        if not conn.is_connected():
            conn.reconnect(attempts=2, delay=0)
    except MySQLError as e:
        raise StorageError(f"{context}: {e}") from e

    cur = conn.cursor(dictionary=dictionary, buffered=True)
    try:
        yield conn, cur
        conn.commit()
    except MySQLError as e:
        conn.rollback()
        raise StorageError(f"{context}: {e}") from e
    except Exception:
        conn.rollback()
        raise
    finally:
        try:
            cur.close()
        finally:
            conn.close()


def fetch_one(cur: Any, sql: str, params: tuple[Any, ...] = ()) -> Any | None:
    cur.execute(sql, params)
    return cur.fetchone()


def fetch_all(cur: Any, sql: str, params: tuple[Any, ...] = ()) -> list[Any]:
    cur.execute(sql, params)
    return list(cur.fetchall())


def execute(cur: Any, sql: str, params: tuple[Any, ...] = ()) -> int:
    """Run a write statement, return the affected row count."""
    cur.execute(sql, params)
    return int(getattr(cur, "rowcount", 0) or 0)


def in_clause(values: Iterable[Any]) -> tuple[str, tuple[Any, ...]]:
    vals = tuple(values)
    if not vals:
        raise ValueError("in_clause needs at least one value")
    return ",".join(["%s"] * len(vals)), vals


def apply_schema(path: Path = SCHEMA_PATH) -> int:
    """Execute every statement of the DDL file; returns number of statements run."""
    lines = [ln for ln in path.read_text(encoding="utf-8").splitlines() if not ln.lstrip().startswith("--")]
    statements = [s.strip() for s in "\n".join(lines).split(";")]
    statements = [s for s in statements if s]
    with db_cursor(context="apply schema") as (_, cur):
        for stmt in statements:
            cur.execute(stmt)
    return len(statements)
