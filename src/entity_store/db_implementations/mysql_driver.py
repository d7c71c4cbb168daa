# src/entity_store/db_implementations/mysql_driver.py

import logging
from typing import Any, Optional, Sequence

# --- PyMySQL Driver Import ---
import pymysql
import pymysql.cursors

from entity_store.base.conversion import BoundParam
from entity_store.base.exceptions import (KeyAlreadyExistsException,
                                          StoreOperationException)
from entity_store.base.interfaces import Driver, ExecutionResult

base_logger = logging.getLogger("entity_store.db_implementations.mysql_driver")

# MySQL error code for "Duplicate entry ... for key ..."
ER_DUP_ENTRY = 1062


def to_format_paramstyle(sql: str) -> str:
    """Rewrites ``?`` markers to PyMySQL's ``%s`` (literal ``%`` are doubled first)."""
    return sql.replace("%", "%%").replace("?", "%s")


class MySQLDriver(Driver):
    """
    Driver over a PyMySQL connection.

    Rows are fetched with ``DictCursor``. The connection stays in autocommit
    mode; ``begin`` opens an explicit transaction that ``commit`` or
    ``rollback`` closes.
    """

    paramstyle = "format"

    def __init__(self, connection: Optional[pymysql.connections.Connection] = None, **connect_kwargs: Any):
        """
        Args:
            connection: An open PyMySQL connection managed by the caller.
            connect_kwargs: Arguments for ``pymysql.connect`` when no
                connection is given (host, user, password, database...).
        """
        if connection is None:
            connect_kwargs.setdefault("cursorclass", pymysql.cursors.DictCursor)
            connect_kwargs.setdefault("autocommit", True)
            connect_kwargs.setdefault("charset", "utf8mb4")
            self._conn = pymysql.connect(**connect_kwargs)
            self._owns_connection = True
        else:
            self._conn = connection
            self._conn.autocommit(True)
            self._owns_connection = False
        self._logger = base_logger
        self._logger.debug(f"MySQL driver ready (owns connection: {self._owns_connection}).")

    @property
    def connection(self) -> pymysql.connections.Connection:
        return self._conn

    def _handle_db_error(self, error: pymysql.MySQLError, sql: str) -> None:
        errno = error.args[0] if error.args else None
        if isinstance(error, pymysql.err.IntegrityError) and errno == ER_DUP_ENTRY:
            raise KeyAlreadyExistsException(
                f"An object with the same key already exists. Detail: {error}", sql=sql, cause=error
            ) from error
        raise StoreOperationException(f"MySQL error {errno}: {error}", sql=sql, cause=error) from error

    def execute(self, sql: str, params: Sequence[BoundParam] = ()) -> ExecutionResult:
        values = tuple(param.value for param in params)
        try:
            with self._conn.cursor(pymysql.cursors.DictCursor) as cursor:
                cursor.execute(to_format_paramstyle(sql), values)
                rows = [dict(row) for row in cursor.fetchall()] if cursor.description else []
                return ExecutionResult(
                    rows=rows,
                    rowcount=max(cursor.rowcount, 0),
                    last_insert_id=cursor.lastrowid,
                )
        except pymysql.MySQLError as e:
            self._handle_db_error(e, sql)

    def begin(self) -> None:
        try:
            self._conn.begin()
        except pymysql.MySQLError as e:
            self._handle_db_error(e, "BEGIN")

    def commit(self) -> None:
        try:
            self._conn.commit()
        except pymysql.MySQLError as e:
            self._handle_db_error(e, "COMMIT")

    def rollback(self) -> None:
        try:
            self._conn.rollback()
        except pymysql.MySQLError as e:
            self._handle_db_error(e, "ROLLBACK")

    def close(self) -> None:
        if self._owns_connection:
            self._conn.close()
            self._logger.debug("MySQL connection closed.")
