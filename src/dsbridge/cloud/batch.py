"""Batch get/put/delete against Cloud Datastore with per-index results."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Union

from google.cloud import datastore

from dsbridge.cloud.codec import Codec
from dsbridge.cloud.errors import normalize_error
from dsbridge.cloud.transaction import allocate_incomplete
from dsbridge.errors import NoSuchEntityError
from dsbridge.properties import PropertyMap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchSuccess:
    """Every item in the batch succeeded."""


@dataclass(frozen=True)
class UniformError:
    """One error that applies to every item in the batch."""

    error: BaseException


@dataclass(frozen=True)
class IndexedErrors:
    """Per-item outcome; ``None`` marks a successful index."""

    errors: tuple[BaseException | None, ...]


BatchResult = Union[BatchSuccess, UniformError, IndexedErrors]


def dispatch(
    result: BatchResult, count: int, cb: Callable[[int, BaseException | None], Any]
) -> None:
    """Invoke ``cb(index, error)`` once per index, in input order.

    Errors are normalized before they reach the callback. An exception raised
    by the callback stops dispatch and propagates.
    """
    if isinstance(result, BatchSuccess):
        for i in range(count):
            cb(i, None)
    elif isinstance(result, UniformError):
        err = normalize_error(result.error)
        for i in range(count):
            cb(i, err)
    elif isinstance(result, IndexedErrors):
        if len(result.errors) != count:
            raise ValueError(f"batch returned {len(result.errors)} results for {count} items")
        for i, item_err in enumerate(result.errors):
            cb(i, normalize_error(item_err))
    else:
        raise TypeError(f"unknown batch result {result!r}")


def _lookup_key(key: datastore.Key) -> tuple[Any, ...]:
    return (key.namespace, tuple(key.flat_path))


class BatchSequencer:
    """Issues one backend batch call per operation and maps results back by index."""

    def __init__(
        self,
        client: datastore.Client,
        codec: Codec,
        transaction: datastore.Transaction | None = None,
    ) -> None:
        self._client = client
        self._codec = codec
        self._transaction = transaction

    def get(
        self, native_keys: Sequence[datastore.Key]
    ) -> tuple[BatchResult, list[PropertyMap | None]]:
        pmaps: list[PropertyMap | None] = [None] * len(native_keys)
        missing: list[datastore.Entity] = []
        try:
            found = self._client.get_multi(
                list(native_keys), missing=missing, transaction=self._transaction
            )
        except Exception as e:
            return UniformError(e), pmaps

        by_key = {_lookup_key(entity.key): entity for entity in found}
        errors: list[BaseException | None] = []
        for i, nk in enumerate(native_keys):
            entity = by_key.get(_lookup_key(nk))
            if entity is None:
                errors.append(NoSuchEntityError())
                continue
            try:
                pmaps[i] = self._codec.property_map_from_entity(entity)
            except Exception as e:
                errors.append(e)
                continue
            errors.append(None)

        logger.debug("get_multi: %d keys, %d missing", len(native_keys), len(missing))
        if any(err is not None for err in errors):
            return IndexedErrors(tuple(errors)), pmaps
        return BatchSuccess(), pmaps

    def put(
        self, native_keys: Sequence[datastore.Key], values: Sequence[PropertyMap]
    ) -> tuple[BatchResult, list[datastore.Key]]:
        keys = list(native_keys)
        try:
            entities = [
                self._codec.entity_from_property_map(nk, pmap) for nk, pmap in zip(keys, values)
            ]
        except Exception as e:
            return UniformError(e), keys

        tx = self._transaction
        try:
            if tx is not None:
                # Transactional writes only complete partial keys at commit, but
                # callers need the assigned keys now: allocate them up front.
                keys = allocate_incomplete(self._client, keys)
                for entity, nk in zip(entities, keys):
                    entity.key = nk
                    tx.put(entity)
            else:
                self._client.put_multi(entities)
                keys = [entity.key for entity in entities]
        except Exception as e:
            return UniformError(e), keys

        logger.debug("put_multi: %d entities (transactional=%s)", len(entities), tx is not None)
        return BatchSuccess(), keys

    def delete(self, native_keys: Sequence[datastore.Key]) -> BatchResult:
        tx = self._transaction
        try:
            if tx is not None:
                for nk in native_keys:
                    tx.delete(nk)
            else:
                self._client.delete_multi(list(native_keys))
        except Exception as e:
            return UniformError(e)

        logger.debug("delete_multi: %d keys (transactional=%s)", len(native_keys), tx is not None)
        return BatchSuccess()
