# src/entity_store/base/database.py

import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Mapping, Optional, Sequence, Union

from ..settings import get_settings
from .exceptions import StoreOperationException, TransactionStateException
from .interfaces import Driver, ExecutionResult
from .statements import (
    CompiledStatement,
    FieldEntry,
    build_delete,
    build_insert,
    build_select,
    build_update,
)

base_logger = logging.getLogger(__name__)


class Database:
    """
    Store handle: builds statements, runs them through a driver and keeps
    the transaction state of its single connection.

    Failures of ``search`` are reported as an empty result (the error stays
    available in ``last_error``); every other operation raises
    ``StoreOperationException``.
    """

    def __init__(self, driver: Driver):
        if not isinstance(driver, Driver):
            raise TypeError("driver must be an instance of entity_store Driver")
        self._driver = driver
        self._in_transaction = False
        self._last_error: Optional[StoreOperationException] = None
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}[{driver.name}]")

    @property
    def driver(self) -> Driver:
        return self._driver

    @property
    def last_error(self) -> Optional[StoreOperationException]:
        """Error of the last failed statement (None after a successful one)."""
        return self._last_error

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    # --- Execution ---

    def execute(self, statement: CompiledStatement) -> ExecutionResult:
        """
        Runs a compiled statement.

        Raises:
            StoreOperationException: If the driver reports a failure.
        """
        if get_settings().log_queries:
            self._logger.debug(f"Executing SQL: {statement.sql!r} Params: {statement.values!r}")
        try:
            result = self._driver.execute(statement.sql, statement.params)
        except StoreOperationException as e:
            if e.sql is None:
                e.sql = statement.sql
            self._last_error = e
            self._logger.warning(f"Statement failed: {e} (SQL: {statement.sql!r})")
            raise
        self._last_error = None
        return result

    def search(
        self,
        table: str,
        condition: Optional[Mapping[str, Any]] = None,
        fields: Optional[Sequence[FieldEntry]] = None,
        compose: str = "AND",
        order_by: Optional[Union[str, Sequence[str]]] = None,
        group_by: Optional[Sequence[str]] = None,
        raw_sql: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Runs a SELECT and returns its rows, or an empty list if the query fails."""
        statement = build_select(
            table,
            condition,
            fields=fields,
            compose=compose,
            order_by=order_by,
            group_by=group_by,
            raw_sql=raw_sql,
        )
        try:
            return self.execute(statement).rows
        except StoreOperationException:
            return []

    def insert(self, table: str, values: Mapping[str, Any]) -> Any:
        """Runs an INSERT and returns the generated id of the new row."""
        statement = build_insert(table, values)
        result = self.execute(statement)
        statement.generated_id = result.last_insert_id
        return statement.generated_id

    def update(
        self, table: str, values: Mapping[str, Any], where: Optional[Mapping[str, Any]] = None
    ) -> int:
        """Runs an UPDATE and returns the number of affected rows."""
        return self.execute(build_update(table, values, where)).rowcount

    def delete(
        self, table: str, condition: Optional[Mapping[str, Any]] = None, compose: str = "AND"
    ) -> int:
        """Runs a DELETE and returns the number of affected rows."""
        if not condition:
            self._logger.warning(f"Deleting every row of table '{table}' (no condition given).")
        return self.execute(build_delete(table, condition, compose)).rowcount

    # --- Transactions ---

    def begin_transaction(self) -> None:
        """
        Starts a transaction.

        Raises:
            TransactionStateException: If a transaction is already open.
        """
        if self._in_transaction:
            raise TransactionStateException("A transaction is already in progress; nesting is not supported")
        self._driver.begin()
        self._in_transaction = True
        self._logger.debug("Transaction started.")

    def commit(self) -> None:
        if not self._in_transaction:
            raise TransactionStateException("Cannot commit: no transaction in progress")
        try:
            self._driver.commit()
        finally:
            self._in_transaction = False
        self._logger.debug("Transaction committed.")

    def rollback(self) -> None:
        if not self._in_transaction:
            raise TransactionStateException("Cannot roll back: no transaction in progress")
        try:
            self._driver.rollback()
        finally:
            self._in_transaction = False
        self._logger.debug("Transaction rolled back.")

    @contextmanager
    def transaction(self) -> Generator["Database", None, None]:
        """
        Runs the block inside a transaction: commits when it finishes and
        rolls back (re-raising the error) when it fails.
        """
        self.begin_transaction()
        try:
            yield self
        except Exception as e:
            self._logger.error(f"Rolling back transaction after error: {e}", exc_info=True)
            self.rollback()
            raise
        self.commit()

    def close(self) -> None:
        if self._in_transaction:
            self._logger.warning("Closing the store handle with an open transaction; rolling it back.")
            self.rollback()
        self._driver.close()
