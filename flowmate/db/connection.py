"""
Postgres access for the vault, registry, mirror and audit log.

Every DAL call borrows one connection for one transaction. Calls from the
sync engine arrive on ``asyncio.to_thread`` workers, hence the threaded pool.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Generator
from contextlib import contextmanager

import psycopg2
import psycopg2.pool

from flowmate.config import get_config

logger = logging.getLogger(__name__)

POOL_MAX_CONNECTIONS = 10

_pool: psycopg2.pool.ThreadedConnectionPool | None = None
_pool_lock = threading.Lock()
_conn_factory: Callable[[], psycopg2.extensions.connection] | None = None


def _shared_pool() -> psycopg2.pool.ThreadedConnectionPool:
    global _pool
    with _pool_lock:
        if _pool is None or _pool.closed:
            cfg = get_config().db
            logger.info("Opening Postgres pool for %s on %s", cfg.name, cfg.host or "local socket")
            try:
                _pool = psycopg2.pool.ThreadedConnectionPool(1, POOL_MAX_CONNECTIONS, **cfg.dict)
            except psycopg2.OperationalError as e:
                raise ConnectionError(
                    f"Postgres unreachable ({cfg.name} on {cfg.host or 'local socket'}); "
                    f"check the FLOWMATE_DB_* variables: {e}"
                ) from e
        return _pool


@contextmanager
def get_connection() -> Generator[psycopg2.extensions.connection, None, None]:
    """Borrow a connection; commit if the block succeeds, roll back if it raises."""
    pool = None if _conn_factory is not None else _shared_pool()
    conn = _conn_factory() if pool is None else pool.getconn()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        if pool is not None:
            pool.putconn(conn)


def set_connection_factory(factory: Callable[[], psycopg2.extensions.connection]) -> None:
    """Route get_connection() through ``factory`` instead of the pool (tests)."""
    global _conn_factory
    _conn_factory = factory


def reset_connection_factory() -> None:
    global _conn_factory
    _conn_factory = None
