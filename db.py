# db.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as Connection
from psycopg2.extras import RealDictCursor
from psycopg2.pool import SimpleConnectionPool

from settings import settings

_pool: SimpleConnectionPool | None = None


def init_pool() -> None:
    """
    Initialize the PostgreSQL connection pool.
    Called once at app startup (lazily on first use otherwise).
    """
    global _pool
    psycopg2.extras.register_uuid()
    if _pool is None:
        _pool = SimpleConnectionPool(
            minconn=settings.DB_POOL_MIN,
            maxconn=settings.DB_POOL_MAX,
            dsn=settings.DATABASE_URL,
            connect_timeout=5,
        )


def close_pool() -> None:
    global _pool
    if _pool:
        _pool.closeall()
        _pool = None


@contextmanager
def get_conn() -> Iterator[Connection]:
    """
    One `with get_conn()` block is one database transaction.

    Commits when the block exits cleanly, rolls back on any exception, so a
    status change and its side effects (job creation, stock restoration,
    balance adjustment) are persisted together or not at all.
    """
    if _pool is None:
        init_pool()

    conn = _pool.getconn()

    try:
        with conn.cursor() as cur:
            cur.execute("SET statement_timeout = '5000ms';")
            # row locks taken by FOR UPDATE must not queue forever
            cur.execute("SET lock_timeout = '3000ms';")
            cur.execute("SET application_name = 'jemo_api';")

        yield conn
        conn.commit()

    except Exception:
        conn.rollback()
        raise

    finally:
        _pool.putconn(conn)


def dict_cursor(conn: Connection):
    return conn.cursor(cursor_factory=RealDictCursor)
