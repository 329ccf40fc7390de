"""
core/database.py -- Generic storage collaborator shared by all stores.

Pattern: a thin gateway over a SQLAlchemy Engine. Stores build SQLAlchemy
Core statements (insert/select/update/delete constructs on their own Table
objects) and hand them to this class; nothing above the stores touches SQL.

Interface:
  execute(statement, params)     -> affected row count
  query_first(statement, params) -> first row or None
  query_all(statement, params)   -> list of rows
  insert(statement, params)      -> new primary key

Every call runs in its own short transaction (engine.begin()). There is no
cross-call transaction: the verification workflows rely on per-row
atomicity only.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: core/ is the kernel. No imports from api/, auth/, or verification/.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import MetaData, Table, create_engine, event, text
from sqlalchemy.engine import Engine, Row
from sqlalchemy.sql import Executable

logger = logging.getLogger("otpgate.database")

# Shared by every store module so one create_all covers the whole schema.
metadata = MetaData()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


class Database:
    """Owns the Engine; executes statements built by the stores.

    Usage:
        db = Database("sqlite:///otpgate.db")
        rows = db.execute(users.update().where(users.c.id == 1).values(last_ip="10.0.0.1"))
        db.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)

    @property
    def dialect(self) -> str:
        """Backend name ("sqlite", "postgresql", "mysql") -- used for upserts."""
        return self.engine.dialect.name

    def ensure_tables(self, *tables: Table) -> None:
        """Create the given tables if they do not exist. Idempotent."""
        metadata.create_all(self.engine, tables=list(tables))

    def execute(self, statement: Executable, params: dict[str, Any] | None = None) -> int:
        """Run a write statement and return the number of affected rows."""
        with self.engine.begin() as conn:
            result = conn.execute(statement, params or {})
            return result.rowcount

    def insert(self, statement: Executable, params: dict[str, Any] | None = None) -> int:
        """Run an INSERT and return the new row's primary key."""
        with self.engine.begin() as conn:
            result = conn.execute(statement, params or {})
            return result.inserted_primary_key[0]

    def query_first(self, statement: Executable, params: dict[str, Any] | None = None) -> Row | None:
        with self.engine.connect() as conn:
            return conn.execute(statement, params or {}).first()

    def query_all(self, statement: Executable, params: dict[str, Any] | None = None) -> list[Row]:
        with self.engine.connect() as conn:
            return list(conn.execute(statement, params or {}).fetchall())

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception:
            logger.exception("Database ping failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()
