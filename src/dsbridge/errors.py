"""Structured error types for dsbridge."""

from __future__ import annotations


class DatastoreError(Exception):
    """Base error for all dsbridge errors."""


class NoSuchEntityError(DatastoreError):
    """Raised (or reported per item) when a requested entity does not exist."""

    def __init__(self, message: str = "datastore: no such entity") -> None:
        super().__init__(message)


class ConcurrentTransactionError(DatastoreError):
    """Raised when a transaction conflicted with another and retries are exhausted."""

    def __init__(self, attempts: int | None = None) -> None:
        self.attempts = attempts
        if attempts is None:
            message = "datastore: concurrent transaction"
        else:
            message = f"datastore: concurrent transaction after {attempts} attempt(s)"
        super().__init__(message)


class InvalidKeyError(DatastoreError):
    """Raised when a key is malformed or rejected by the backend."""

    def __init__(self, message: str = "datastore: invalid key") -> None:
        super().__init__(message)


class InvalidCursorError(DatastoreError):
    """Raised when a serialized cursor cannot be decoded."""

    def __init__(self, cursor: str) -> None:
        self.cursor = cursor
        super().__init__(f"datastore: invalid cursor {cursor!r}")


class InvalidNamespaceError(DatastoreError):
    """Raised when a namespace name does not match the allowed pattern."""

    def __init__(self, namespace: str, pattern: str) -> None:
        self.namespace = namespace
        super().__init__(f"namespace {namespace!r} does not match /{pattern}/")


class ConfigurationError(DatastoreError):
    """Raised for caller mistakes that retrying can never fix."""


class NestedTransactionError(ConfigurationError):
    """Raised when a transaction is started inside another one on the same scope."""

    def __init__(self) -> None:
        super().__init__("nested transactions are not supported")


class UnsupportedTransactionOptionError(ConfigurationError):
    """Raised when a transaction option has no equivalent in the backend."""

    def __init__(self, option: str) -> None:
        self.option = option
        super().__init__(f"{option} transactions are not supported")


class TransactionScopeError(ConfigurationError):
    """Raised when a scope is used outside the transaction context it belongs to."""

    def __init__(
        self,
        message: str = "transaction is not active on this client; scope used outside its attempt",
    ) -> None:
        super().__init__(message)


class PropertyTypeError(ConfigurationError):
    """Raised when a property value has a type the codec cannot represent."""


class QueryError(ConfigurationError):
    """Raised when a query descriptor is contradictory or unsupported."""
