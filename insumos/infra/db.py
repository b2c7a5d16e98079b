# insumos/infra/db.py
"""
Utilidades de conexão SQLite.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Iterator

from insumos.config import DEFAULTS


@contextmanager
def connect(db_path: str, immediate: bool = False) -> Iterator[sqlite3.Connection]:
    """
    Context manager para abrir conexão SQLite com:
    - foreign_keys ON
    - row_factory = sqlite3.Row
    - transação explícita (BEGIN IMMEDIATE quando ``immediate=True``,
      que reserva a escrita e serializa escritores concorrentes)
    - commit ao sair (rollback em caso de exceção)
    """
    conn = sqlite3.connect(
        db_path,
        timeout=DEFAULTS.busy_timeout_s,
        isolation_level=None,
        check_same_thread=False,
    )
    try:
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.execute("BEGIN IMMEDIATE;" if immediate else "BEGIN;")
        yield conn
        if conn.in_transaction:
            conn.execute("COMMIT;")
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK;")
        raise
    finally:
        conn.close()
