from __future__ import annotations

import logging
from typing import Generator, Optional, Set

from fastapi import Request
from sqlalchemy import event, inspect, text
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from weam.models import REQUIRED_SCHEMA

logger = logging.getLogger("weam.db")

# Applied to every new SQLite connection.
SQLITE_PRAGMAS = (
    "PRAGMA foreign_keys = ON",
    "PRAGMA busy_timeout = 5000",
    "PRAGMA journal_mode = WAL",
    "PRAGMA synchronous = NORMAL",
    "PRAGMA cache_size = -16000",
)

READONLY_HINT = (
    "Hint: check ownership/permissions of the database directory, e.g. "
    "sudo chown -R 1000:1000 ./data && sudo chmod -R u+rwX,g+rwX ./data"
)


class SchemaError(RuntimeError):
    """The database lacks a required table or column."""


def _apply_pragmas(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    try:
        for pragma in SQLITE_PRAGMAS:
            cursor.execute(pragma)
    finally:
        cursor.close()


def _log_if_readonly(context) -> None:
    """Explain SQLITE_READONLY; the error itself still propagates."""
    msg = str(context.original_exception)
    if "readonly" in msg.lower():
        logger.error("SQL error: SQLITE_READONLY, the database is not writable.")
        logger.error(READONLY_HINT)


class Database:
    """
    Connection handle plus cached schema facts for one application.

    Created once per app (see weam.main.create_app) and reached through
    request.app.state.ctx; the engine itself is built on first use.
    """

    def __init__(self, database_file: str):
        self.database_file = database_file
        self._engine: Optional[Engine] = None
        self._tx_columns: Optional[Set[str]] = None

    @property
    def url(self) -> str:
        return f"sqlite:///{self.database_file}"

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            engine = create_engine(
                self.url,
                echo=False,
                connect_args={"check_same_thread": False},
            )
            event.listen(engine, "connect", _apply_pragmas)
            event.listen(engine, "handle_error", _log_if_readonly)
            self._engine = engine
            logger.info("SQLite connected: %s", self.database_file)
        return self._engine

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            logger.info("SQLite connection closed.")

    def create_all(self) -> None:
        """
        Create missing tables from the models.
        For tests and local bootstrap only; production schemas pre-exist.
        """
        SQLModel.metadata.create_all(self.engine)
        self._tx_columns = None

    def ensure_schema(self) -> None:
        """
        Check that every required table and column exists.
        Caches the transactions column set (remainder is optional).
        """
        insp = inspect(self.engine)
        tables = set(insp.get_table_names())
        for table, required in REQUIRED_SCHEMA.items():
            if table not in tables:
                raise SchemaError(f'Table "{table}" is missing.')
            cols = {c["name"] for c in insp.get_columns(table)}
            for col in required:
                if col not in cols:
                    raise SchemaError(f'Table "{table}" has no column "{col}".')
            if table == "transactions":
                self._tx_columns = cols

        logger.info(
            "Schema OK. transactions.remainder: %s",
            "present" if self.has_tx_remainder else "absent",
        )

    @property
    def tx_columns(self) -> Set[str]:
        if self._tx_columns is None:
            insp = inspect(self.engine)
            self._tx_columns = {c["name"] for c in insp.get_columns("transactions")}
        return self._tx_columns

    @property
    def has_tx_remainder(self) -> bool:
        return "remainder" in self.tx_columns

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                return conn.execute(text("SELECT 1")).scalar() == 1
        except Exception:
            logger.exception("Database ping failed")
            return False


def get_db(request: Request) -> Database:
    return request.app.state.ctx.db


def get_session(request: Request) -> Generator[Session, None, None]:
    """FastAPI dependency: yields a database session and closes it afterwards."""
    with Session(get_db(request).engine) as session:
        yield session
