"""Cloud Datastore implementation of the dsbridge storage contract."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Sequence
from typing import Any, NoReturn

from google.cloud import datastore

from dsbridge.cloud import query as cloud_query
from dsbridge.cloud.batch import BatchSequencer, dispatch
from dsbridge.cloud.codec import Codec
from dsbridge.cloud.errors import normalize_error
from dsbridge.cloud.transaction import TransactionCoordinator, allocate_incomplete
from dsbridge.config import DatastoreConfig
from dsbridge.errors import ConfigurationError, InvalidKeyError, TransactionScopeError
from dsbridge.info import EnvironmentInfo
from dsbridge.interface import (
    DeleteMultiCallback,
    GetMultiCallback,
    PutMultiCallback,
    RunCallback,
    RunControl,
    TransactionOptions,
)
from dsbridge.keys import Key
from dsbridge.properties import PropertyMap
from dsbridge.query import Cursor, FinalizedQuery, decode_cursor

logger = logging.getLogger(__name__)


def _raise_normalized(e: Exception) -> NoReturn:
    err = normalize_error(e)
    if err is e:
        raise e
    raise err from e


class CloudDatastore:
    """Process-wide adapter around a ``google.cloud.datastore.Client``.

    Create one per client and call :meth:`bind` at the start of each request
    to get a :class:`BoundDatastore` for that request's scope.
    """

    def __init__(self, client: datastore.Client, config: DatastoreConfig | None = None) -> None:
        # A client-level namespace replaces the default namespace in queries
        # but not in keys, so the two would address different partitions.
        if getattr(client, "namespace", None):
            raise ConfigurationError(
                f"client namespace {client.namespace!r} is not supported; "
                "select namespaces through EnvironmentInfo"
            )
        self.client = client
        self.config = config or DatastoreConfig(project=client.project)

    def bind(self, info: EnvironmentInfo | None = None) -> BoundDatastore:
        if info is None:
            info = self.config.environment(self.client.project)
        logger.debug("binding datastore app_id=%s namespace=%r", info.app_id, info.namespace)
        return BoundDatastore(self, info)


class BoundDatastore:
    """The storage contract bound to one namespace and, optionally, one transaction.

    App id and namespace are read from ``info`` once at construction. A bound
    instance belongs to the request (or transaction attempt) that created it and
    must not be shared with another.
    """

    def __init__(
        self,
        parent: CloudDatastore,
        info: EnvironmentInfo,
        transaction: datastore.Transaction | None = None,
    ) -> None:
        self._parent = parent
        self._client = parent.client
        self.info = info
        self.app_id = info.app_id
        self.namespace = info.namespace
        self.transaction = transaction
        self._codec = Codec(info.app_id, parent.client.project, parent.config.database)

    def __repr__(self) -> str:
        return (
            f"BoundDatastore(app_id={self.app_id!r}, namespace={self.namespace!r}, "
            f"transactional={self.transaction is not None})"
        )

    @property
    def codec(self) -> Codec:
        return self._codec

    def _check_scope(self) -> None:
        tx = self.transaction
        current = self._client.current_transaction
        if tx is not None and current is not tx:
            raise TransactionScopeError()
        # The client routes non-transactional calls into its current transaction.
        if tx is None and current is not None:
            raise TransactionScopeError(
                "non-transactional scope used while a transaction is running; "
                "use the scope passed to the transaction function"
            )

    def _with_transaction(self, tx: datastore.Transaction) -> BoundDatastore:
        return BoundDatastore(self._parent, self.info, tx)

    def _batch(self) -> BatchSequencer:
        self._check_scope()
        return BatchSequencer(self._client, self._codec, self.transaction)

    # --- Keys ---

    def allocate_ids(self, keys: Sequence[Key]) -> list[Key]:
        self._check_scope()
        for i, key in enumerate(keys):
            if not key.incomplete:
                raise InvalidKeyError(f"allocate_ids: key {i} ({key}) is already complete")
        try:
            allocated = allocate_incomplete(self._client, self._codec.keys_to_native(keys))
        except Exception as e:
            _raise_normalized(e)
        return self._codec.keys_from_native(allocated)

    # --- Transactions ---

    def run_in_transaction(
        self,
        fn: Callable[[BoundDatastore], Any],
        options: TransactionOptions | None = None,
    ) -> Any:
        coordinator = TransactionCoordinator(
            self._client, self._parent.config.transaction_attempts
        )
        current = self.transaction
        if current is None:
            current = self._client.current_transaction
        return coordinator.run(current, self._with_transaction, fn, options)

    # --- Queries ---

    def decode_cursor(self, s: str) -> Cursor:
        return decode_cursor(s)

    def _compile(self, fq: FinalizedQuery) -> cloud_query.CompiledQuery:
        self._check_scope()
        return cloud_query.compile_query(
            self._client,
            self._codec,
            fq,
            namespace=self.namespace,
            transaction=self.transaction,
        )

    def run(self, query: FinalizedQuery, cb: RunCallback) -> None:
        compiled = self._compile(query)
        try:
            iterator = cloud_query.fetch(compiled, self._client)
            for entity, cursor_fn in cloud_query.iter_results(iterator):
                key = self._codec.key_from_native(entity.key)
                pmap = None if query.keys_only else self._codec.property_map_from_entity(entity)
                if cb(key, pmap, cursor_fn) is RunControl.STOP:
                    return
        except Exception as e:
            _raise_normalized(e)

    def count(self, query: FinalizedQuery) -> int:
        keys_query = dataclasses.replace(query, keys_only=True, projection=(), distinct=False)
        compiled = self._compile(keys_query)
        try:
            return sum(1 for _ in cloud_query.fetch(compiled, self._client))
        except Exception as e:
            _raise_normalized(e)

    # --- Batch operations ---

    def get_multi(self, keys: Sequence[Key], cb: GetMultiCallback) -> None:
        batch = self._batch()
        result, pmaps = batch.get(self._codec.keys_to_native(keys))
        dispatch(result, len(keys), lambda i, err: cb(pmaps[i] if err is None else None, err))

    def put_multi(
        self,
        keys: Sequence[Key],
        values: Sequence[PropertyMap],
        cb: PutMultiCallback,
    ) -> None:
        if len(keys) != len(values):
            raise ValueError(f"put_multi: {len(keys)} keys but {len(values)} values")
        batch = self._batch()
        result, native_keys = batch.put(self._codec.keys_to_native(keys), values)

        def _cb(i: int, err: BaseException | None) -> None:
            if err is None:
                cb(self._codec.key_from_native(native_keys[i]), None)
            else:
                cb(None, err)  # type: ignore[arg-type]

        dispatch(result, len(keys), _cb)

    def delete_multi(self, keys: Sequence[Key], cb: DeleteMultiCallback) -> None:
        batch = self._batch()
        result = batch.delete(self._codec.keys_to_native(keys))
        dispatch(result, len(keys), lambda _i, err: cb(err))  # type: ignore[arg-type]
