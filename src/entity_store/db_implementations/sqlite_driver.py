# src/entity_store/db_implementations/sqlite_driver.py

import logging
import sqlite3
from typing import Any, Sequence, Union

from entity_store.base.conversion import BoundParam
from entity_store.base.exceptions import (KeyAlreadyExistsException,
                                          StoreOperationException)
from entity_store.base.interfaces import Driver, ExecutionResult

base_logger = logging.getLogger("entity_store.db_implementations.sqlite_driver")


class SqliteDriver(Driver):
    """
    Driver over the standard library ``sqlite3`` module.

    The connection runs in autocommit mode (``isolation_level=None``) and
    transactions are opened with explicit ``BEGIN`` statements, so a
    statement outside a transaction is committed right away.

    SQLite accepts both the backtick quoting and the ``?`` markers the
    statement builder produces, so statements are executed unchanged.
    """

    paramstyle = "qmark"

    def __init__(self, database: Union[str, sqlite3.Connection] = ":memory:", **connect_kwargs: Any):
        """
        Args:
            database: Path of the database file (``":memory:"`` by default) or
                an already open connection, which is then switched to autocommit.
            connect_kwargs: Extra arguments for ``sqlite3.connect``.
        """
        if isinstance(database, sqlite3.Connection):
            self._conn = database
            self._owns_connection = False
        else:
            self._conn = sqlite3.connect(database, **connect_kwargs)
            self._owns_connection = True
        self._conn.isolation_level = None
        self._conn.row_factory = sqlite3.Row
        self._logger = base_logger
        self._logger.debug(f"SQLite driver ready (owns connection: {self._owns_connection}).")

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def _handle_db_error(self, error: sqlite3.Error, sql: str) -> None:
        if isinstance(error, sqlite3.IntegrityError) and "UNIQUE constraint failed" in str(error):
            raise KeyAlreadyExistsException(
                f"An object with the same key already exists. Detail: {error}", sql=sql, cause=error
            ) from error
        raise StoreOperationException(f"SQLite error: {error}", sql=sql, cause=error) from error

    def execute(self, sql: str, params: Sequence[BoundParam] = ()) -> ExecutionResult:
        values = [param.value for param in params]
        try:
            cursor = self._conn.execute(sql, values)
            rows = [dict(row) for row in cursor.fetchall()] if cursor.description else []
        except sqlite3.Error as e:
            self._handle_db_error(e, sql)
        return ExecutionResult(
            rows=rows,
            rowcount=max(cursor.rowcount, 0),
            last_insert_id=cursor.lastrowid,
        )

    def _run(self, sql: str) -> None:
        try:
            self._conn.execute(sql)
        except sqlite3.Error as e:
            self._handle_db_error(e, sql)

    def begin(self) -> None:
        self._run("BEGIN")

    def commit(self) -> None:
        self._run("COMMIT")

    def rollback(self) -> None:
        self._run("ROLLBACK")

    def close(self) -> None:
        if self._owns_connection:
            self._conn.close()
            self._logger.debug("SQLite connection closed.")
