"""Transaction retry loop and transactional key pre-allocation."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from google.cloud import datastore

from dsbridge.cloud.errors import normalize_error
from dsbridge.config import DEFAULT_TRANSACTION_ATTEMPTS
from dsbridge.errors import (
    ConcurrentTransactionError,
    NestedTransactionError,
    UnsupportedTransactionOptionError,
)
from dsbridge.interface import TransactionOptions

logger = logging.getLogger(__name__)

T = TypeVar("T")
S = TypeVar("S")


def allocate_incomplete(
    client: datastore.Client, native_keys: Sequence[datastore.Key]
) -> list[datastore.Key]:
    """Return ``native_keys`` with every partial key replaced by an allocated one.

    Partial keys sharing a path are allocated with a single backend call.
    Complete keys keep their position untouched. Allocated ids are consumed
    even if the surrounding transaction later fails.
    """
    keys = list(native_keys)
    groups: dict[tuple[Any, ...], list[int]] = {}
    for i, nk in enumerate(keys):
        if nk.is_partial:
            groups.setdefault((nk.project, nk.namespace, tuple(nk.flat_path)), []).append(i)

    for positions in groups.values():
        allocated = client.allocate_ids(keys[positions[0]], len(positions))
        if len(allocated) != len(positions):
            raise RuntimeError(
                f"allocate_ids returned {len(allocated)} keys for {len(positions)} requested"
            )
        for pos, nk in zip(positions, allocated):
            keys[pos] = nk

    if groups:
        logger.debug(
            "pre-allocated %d ids across %d key paths",
            sum(len(p) for p in groups.values()),
            len(groups),
        )
    return keys


class TransactionCoordinator:
    """Runs a function inside a backend transaction, retrying on contention.

    Attempts are strictly sequential and each one gets a fresh backend
    transaction. ``bind`` turns that transaction into the scope object handed
    to the function.
    """

    def __init__(
        self,
        client: datastore.Client,
        default_attempts: int = DEFAULT_TRANSACTION_ATTEMPTS,
    ) -> None:
        self._client = client
        self._default_attempts = default_attempts

    def run(
        self,
        current: datastore.Transaction | None,
        bind: Callable[[datastore.Transaction], S],
        fn: Callable[[S], T],
        options: TransactionOptions | None = None,
    ) -> T:
        if current is not None:
            raise NestedTransactionError()
        opts = options or TransactionOptions()
        # The backend has no equivalent of cross-group transactions.
        if opts.xg:
            raise UnsupportedTransactionOptionError("cross-group")

        attempts = opts.attempts or self._default_attempts
        for attempt in range(1, attempts + 1):
            try:
                return self._attempt(bind, fn)
            except Exception as e:
                err = normalize_error(e)
                if not isinstance(err, ConcurrentTransactionError):
                    if err is e:
                        raise
                    raise err from e
                logger.debug("transaction attempt %d/%d hit contention", attempt, attempts)

        logger.warning("transaction failed after %d attempt(s) due to contention", attempts)
        raise ConcurrentTransactionError(attempts)

    def _attempt(
        self,
        bind: Callable[[datastore.Transaction], S],
        fn: Callable[[S], T],
    ) -> T:
        # Entering begins the transaction and makes it the client's current
        # one; leaving commits, or rolls back if fn raised.
        with self._client.transaction() as tx:
            return fn(bind(tx))
