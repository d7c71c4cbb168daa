# src/entity_store/base/interfaces.py

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .conversion import BoundParam


@dataclass
class ExecutionResult:
    """Outcome of one statement: fetched rows, affected row count and generated id."""

    rows: List[Dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0
    last_insert_id: Any = None


class Driver(ABC):
    """
    Minimal blocking contract the store handle needs from a database driver.

    Statements use ``?`` markers and backtick-quoted identifiers; a driver
    whose library expects another syntax rewrites them in ``execute``.
    Drivers translate their library's errors into
    ``StoreOperationException`` (``KeyAlreadyExistsException`` for unique
    key violations).
    """

    # DB-API paramstyle the underlying library expects
    paramstyle: str = "qmark"

    @abstractmethod
    def execute(self, sql: str, params: Sequence[BoundParam] = ()) -> ExecutionResult:
        """
        Executes one statement with positional parameters.

        Args:
            sql: Statement text with ``?`` markers.
            params: One tagged value per marker, in marker order.

        Returns:
            ExecutionResult with the rows as dicts keyed by column (or alias).
        """
        pass

    @abstractmethod
    def begin(self) -> None:
        """Leaves autocommit mode and starts a transaction."""
        pass

    @abstractmethod
    def commit(self) -> None:
        """Commits the open transaction and returns to autocommit mode."""
        pass

    @abstractmethod
    def rollback(self) -> None:
        """Discards the open transaction and returns to autocommit mode."""
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    @property
    def name(self) -> str:
        return self.__class__.__name__

    def __enter__(self) -> "Driver":
        return self

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        self.close()
        return None
