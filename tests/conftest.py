"""Shared test fixtures for dsbridge tests."""

from __future__ import annotations

import itertools
from unittest.mock import MagicMock
from typing import Any

import pytest
from google.api_core import exceptions as api_exceptions
from google.cloud import datastore

from dsbridge import CloudDatastore, DatastoreConfig, EnvironmentInfo

PROJECT = "test-proj"
APP_ID = "s~test-app"


def _lookup(key: datastore.Key) -> tuple[Any, ...]:
    return (key.namespace, tuple(key.flat_path))


class FakeTransaction:
    """Stand-in for google.cloud.datastore.Transaction that records writes."""

    def __init__(self, client: FakeClient) -> None:
        self._client = client
        self.puts: list[datastore.Entity] = []
        self.deletes: list[datastore.Key] = []
        self.committed = False
        self.rolled_back = False

    def __enter__(self) -> FakeTransaction:
        self._client.calls.append(("begin",))
        self._client._stack.append(self)
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> bool:
        try:
            if exc_type is None:
                self.commit()
            else:
                self.rolled_back = True
                self._client.calls.append(("rollback",))
        finally:
            self._client._stack.pop()
        return False

    def put(self, entity: datastore.Entity) -> None:
        self.puts.append(entity)

    def delete(self, key: datastore.Key) -> None:
        self.deletes.append(key)

    def commit(self) -> None:
        self._client.calls.append(("commit",))
        if self._client.conflicts > 0:
            self._client.conflicts -= 1
            raise api_exceptions.Aborted("too much contention on these datastore entities")
        for entity in self.puts:
            self._client.store[_lookup(entity.key)] = entity
        for key in self.deletes:
            self._client.store.pop(_lookup(key), None)
        self.committed = True


class FakeClient:
    """In-memory double exposing the slice of datastore.Client the adapter calls."""

    def __init__(self, project: str = PROJECT) -> None:
        self.project = project
        self.namespace = None
        self.database = None
        self.store: dict[tuple[Any, ...], datastore.Entity] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.transactions: list[FakeTransaction] = []
        self.conflicts = 0
        self.fail_with: Exception | None = None
        self._ids = itertools.count(1000)
        self._stack: list[FakeTransaction] = []

    @property
    def current_transaction(self) -> FakeTransaction | None:
        return self._stack[-1] if self._stack else None

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def transaction(self) -> FakeTransaction:
        tx = FakeTransaction(self)
        self.transactions.append(tx)
        return tx

    def query(self, kind: str | None = None, namespace: str | None = None) -> MagicMock:
        nq = MagicMock(name=f"query({kind})")
        self.calls.append(("query", kind, namespace, nq))
        return nq

    def allocate_ids(self, incomplete_key: datastore.Key, num_ids: int) -> list[datastore.Key]:
        self.calls.append(("allocate_ids", incomplete_key, num_ids))
        self._maybe_fail()
        return [incomplete_key.completed_key(next(self._ids)) for _ in range(num_ids)]

    def get_multi(
        self,
        keys: list[datastore.Key],
        missing: list[datastore.Entity] | None = None,
        transaction: Any = None,
    ) -> list[datastore.Entity]:
        # Like the real client, an explicit None still joins the current transaction.
        if transaction is None:
            transaction = self.current_transaction
        self.calls.append(("get_multi", keys, transaction))
        self._maybe_fail()
        found = []
        for key in keys:
            entity = self.store.get(_lookup(key))
            if entity is None:
                if missing is not None:
                    missing.append(datastore.Entity(key=key))
            else:
                found.append(entity)
        # The backend does not promise input order.
        return list(reversed(found))

    def put_multi(self, entities: list[datastore.Entity]) -> None:
        self.calls.append(("put_multi", entities))
        self._maybe_fail()
        if self.current_transaction is not None:
            for entity in entities:
                self.current_transaction.put(entity)
            return
        for entity in entities:
            if entity.key.is_partial:
                entity.key = entity.key.completed_key(next(self._ids))
            self.store[_lookup(entity.key)] = entity

    def delete_multi(self, keys: list[datastore.Key]) -> None:
        self.calls.append(("delete_multi", keys))
        self._maybe_fail()
        if self.current_transaction is not None:
            for key in keys:
                self.current_transaction.delete(key)
            return
        for key in keys:
            self.store.pop(_lookup(key), None)

    def backend_calls(self) -> list[str]:
        return [c[0] for c in self.calls]


class FakeIterator:
    """Page iterator with one cursor per result, shaped like the native iterator."""

    def __init__(self, pages: list[list[datastore.Entity]]) -> None:
        self._pages = pages
        self.result_cursors: list[bytes] = []
        self.next_page_token: bytes | None = None

    @property
    def pages(self):
        for n, page in enumerate(self._pages):
            self.result_cursors = [f"p{n}r{i}".encode() for i in range(len(page))]
            yield iter(page)

    def __iter__(self):
        for page in self.pages:
            yield from page


def make_entity(
    *path: Any, namespace: str | None = None, **props: Any
) -> datastore.Entity:
    entity = datastore.Entity(key=datastore.Key(*path, project=PROJECT, namespace=namespace))
    entity.update(props)
    return entity


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def info() -> EnvironmentInfo:
    return EnvironmentInfo(app_id=APP_ID, namespace="")


@pytest.fixture
def cloud(client: FakeClient) -> CloudDatastore:
    return CloudDatastore(client, DatastoreConfig(project=PROJECT))  # type: ignore[arg-type]


@pytest.fixture
def ds(cloud: CloudDatastore, info: EnvironmentInfo):
    return cloud.bind(info)
