from contextlib import contextmanager

import psycopg
from psycopg.rows import dict_row

from .settings import Settings


@contextmanager
def get_conn(settings: Settings):
    timeout_ms = int(settings.db_timeout_seconds * 1000)
    conn = psycopg.connect(
        settings.database_url,
        row_factory=dict_row,
        connect_timeout=max(1, int(settings.db_timeout_seconds)),
        options=f"-c statement_timeout={timeout_ms}",
    )
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
