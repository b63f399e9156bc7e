"""Database access layer using psycopg2.

Provides:
- get_conn(): New connection from DATABASE_URL
- txn(): Context manager for short, safe transactions
"""

import os
from contextlib import contextmanager
from typing import Iterator

import psycopg2
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor


def get_conn() -> PgConnection:
    """Get a new database connection from DATABASE_URL.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
        psycopg2.Error: On connection failure.
    """
    dsn = os.environ.get("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable not set")
    return psycopg2.connect(dsn)


@contextmanager
def txn(conn: PgConnection | None = None) -> Iterator[PgCursor]:
    """Context manager for a short, safe transaction.

    If conn is None, creates a new connection that is closed on exit.
    Commits on successful exit, rolls back on exception.

    Example:
        with txn() as cur:
            cur.execute("UPDATE conversations SET status = %s WHERE id = %s", ("closed", cid))
    """
    owns_conn = conn is None
    if owns_conn:
        conn = get_conn()

    try:
        with conn.cursor() as cur:
            yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        if owns_conn:
            conn.close()
