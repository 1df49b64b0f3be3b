from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterator, Mapping

from psycopg2 import pool as pg_pool
from psycopg2.extras import RealDictCursor

import config

_POOL: pg_pool.SimpleConnectionPool | None = None


def _get_pool() -> pg_pool.SimpleConnectionPool:
    global _POOL
    if _POOL is None:
        if not config.DATABASE_URL:
            raise RuntimeError("DATABASE_URL environment variable is not set")
        _POOL = pg_pool.SimpleConnectionPool(
            config.DB_POOL_MIN,
            config.DB_POOL_MAX,
            dsn=config.DATABASE_URL,
            sslmode=config.DB_SSLMODE,
            connect_timeout=10,
        )
    return _POOL


def get_connection():
    return _get_pool().getconn()


def release_connection(conn):
    if conn:
        _get_pool().putconn(conn)


@contextmanager
def transaction() -> Iterator[RealDictCursor]:
    """Yield a dict-row cursor; commit on success, roll back on any error."""
    conn = get_connection()
    cur = conn.cursor(cursor_factory=RealDictCursor)
    try:
        yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        cur.close()
        release_connection(conn)


def serialize_row(row: Mapping[str, Any] | None) -> dict[str, Any] | None:
    if row is None:
        return None
    out: dict[str, Any] = {}
    for key, value in row.items():
        if isinstance(value, (datetime, date)):
            out[key] = value.isoformat()
        elif isinstance(value, Decimal):
            out[key] = int(value) if value == value.to_integral_value() else float(value)
        else:
            out[key] = value
    return out
