"""Mapping of Cloud Datastore errors onto dsbridge sentinels."""

from __future__ import annotations

from google.api_core import exceptions as api_exceptions

from dsbridge.errors import (
    ConcurrentTransactionError,
    DatastoreError,
    InvalidKeyError,
    NoSuchEntityError,
)


def _wrap(error: BaseException, normalized: DatastoreError) -> DatastoreError:
    normalized.__cause__ = error
    return normalized


def normalize_error(error: BaseException | None) -> BaseException | None:
    """Map a backend exception to the matching dsbridge sentinel.

    Returns a new exception rather than raising, with the original attached as
    ``__cause__``. Errors without a mapping, and errors that are already
    dsbridge errors, are returned unchanged so callers can still inspect
    backend detail.
    """
    if error is None or isinstance(error, DatastoreError):
        return error

    if isinstance(error, api_exceptions.NotFound):
        return _wrap(error, NoSuchEntityError())

    # Conflict (409) also covers AlreadyExists, which is not contention.
    if isinstance(error, api_exceptions.Conflict) and not isinstance(
        error, api_exceptions.AlreadyExists
    ):
        return _wrap(error, ConcurrentTransactionError())

    if isinstance(error, api_exceptions.InvalidArgument) and "key" in str(error).lower():
        return _wrap(error, InvalidKeyError(f"datastore: invalid key: {error.message}"))

    return error
