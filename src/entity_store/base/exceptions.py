from typing import Optional


class ObjectNotFoundException(Exception):
    """Exception raised when an object with the specified identifier does not exist."""

    def __init__(self, message: str = "The requested object was not found."):
        super().__init__(message)


class StoreOperationException(Exception):
    """Exception raised when the backing store fails to prepare or execute a statement."""

    def __init__(
        self,
        message: str = "The store failed to execute the statement.",
        sql: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.sql = sql
        self.cause = cause


class KeyAlreadyExistsException(StoreOperationException):
    """Exception raised when trying to insert an entity that would violate a unique constraint."""

    def __init__(
        self,
        message: str = "An object with the same key already exists.",
        sql: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, sql=sql, cause=cause)


class TransactionStateException(RuntimeError):
    """Exception raised when a transaction verb is used in the wrong state (e.g. nested begin)."""

    def __init__(self, message: str = "Invalid transaction state."):
        super().__init__(message)
