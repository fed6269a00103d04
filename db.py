from contextlib import contextmanager

import psycopg2.extras
from psycopg2.pool import SimpleConnectionPool

from settings import settings

APPLICATION_NAME = "finance_payments_api"

_pool: SimpleConnectionPool | None = None


def init_pool() -> SimpleConnectionPool:
    """
    Build the process-wide pool on first use. UUID columns come back as
    uuid.UUID once the adapter is registered.
    """
    global _pool
    if _pool is None:
        psycopg2.extras.register_uuid()
        _pool = SimpleConnectionPool(
            minconn=1,
            maxconn=settings.DB_POOL_MAX_CONN,
            dsn=settings.DATABASE_URL,
            connect_timeout=5,
            application_name=APPLICATION_NAME,
        )
    return _pool


def _apply_session_limits(conn) -> None:
    with conn.cursor() as cur:
        # SET cannot take bind parameters for every setting, set_config can
        cur.execute(
            """
            SELECT set_config('statement_timeout', %(stmt)s, false),
                   set_config('lock_timeout', %(lock)s, false),
                   set_config('idle_in_transaction_session_timeout', %(stmt)s, false)
            """,
            {"stmt": f"{settings.DB_STATEMENT_TIMEOUT_MS}ms", "lock": f"{settings.DB_LOCK_TIMEOUT_MS}ms"},
        )


@contextmanager
def get_conn():
    """
    One pooled connection == one transaction: committed when the block exits
    cleanly, rolled back when it raises.
    """
    pool = init_pool()
    conn = pool.getconn()
    try:
        _apply_session_limits(conn)
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn)
