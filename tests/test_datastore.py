"""Tests for the bound Cloud Datastore adapter."""

from __future__ import annotations

import pytest
from google.api_core import exceptions as api_exceptions

from dsbridge import (
    CloudDatastore,
    ConcurrentTransactionError,
    ConfigurationError,
    Cursor,
    DatastoreConfig,
    GeoPoint,
    InvalidCursorError,
    InvalidKeyError,
    Key,
    NoSuchEntityError,
    Property,
    PropertyTypeError,
    Query,
    RawDatastore,
    RunControl,
    property_map,
)
from dsbridge.cloud import query as cloud_query

from tests.conftest import APP_ID, PROJECT, FakeIterator, make_entity


@pytest.fixture
def entities():
    return [make_entity("K", i, n=i) for i in range(1, 6)]


@pytest.fixture
def fetched(monkeypatch, entities):
    """Serve ``entities`` from fetch, honoring offset and limit; records compiled queries."""
    compiled_queries = []

    def fake_fetch(compiled, client):
        compiled_queries.append(compiled)
        rows = entities[compiled.fetch_kwargs.get("offset", 0) :]
        limit = compiled.fetch_kwargs.get("limit")
        if limit is not None:
            rows = rows[:limit]
        return FakeIterator([rows])

    monkeypatch.setattr(cloud_query, "fetch", fake_fetch)
    return compiled_queries


def test_bound_datastore_satisfies_protocol(ds):
    assert isinstance(ds, RawDatastore)


def test_namespaced_client_rejected(client):
    client.namespace = "tenant"
    with pytest.raises(ConfigurationError):
        CloudDatastore(client, DatastoreConfig(project=PROJECT))


def test_bind_defaults_to_config_environment(client):
    cloud = CloudDatastore(client, DatastoreConfig(project=PROJECT, namespace="tenant"))
    bound = cloud.bind()
    assert bound.app_id == PROJECT
    assert bound.namespace == "tenant"


class TestGetMulti:
    def test_missing_entity_reported_at_its_index(self, ds, client):
        client.store[(None, ("A", 1))] = make_entity("A", 1, v="a")
        client.store[(None, ("C", 1))] = make_entity("C", 1, v="c")
        keys = [Key.make(APP_ID, "", kind, 1) for kind in ("A", "B", "C")]
        seen = []

        ds.get_multi(keys, lambda pmap, err: seen.append((pmap, err)))

        assert len(seen) == 3
        assert seen[0] == ({"v": [Property.of("a")]}, None)
        assert seen[1][0] is None
        assert isinstance(seen[1][1], NoSuchEntityError)
        assert seen[2] == ({"v": [Property.of("c")]}, None)
        assert client.backend_calls() == ["get_multi"]

    def test_backend_error_reaches_every_callback(self, ds, client):
        client.fail_with = api_exceptions.ServiceUnavailable("down")
        seen = []
        ds.get_multi(
            [Key.make(APP_ID, "", "K", 1), Key.make(APP_ID, "", "K", 2)],
            lambda pmap, err: seen.append(err),
        )
        assert len(seen) == 2
        assert all(isinstance(err, api_exceptions.ServiceUnavailable) for err in seen)

    def test_empty_batch(self, ds):
        seen = []
        ds.get_multi([], lambda pmap, err: seen.append(err))
        assert seen == []


class TestPutMulti:
    def test_assigns_keys_in_input_order(self, ds, client):
        keys = [Key.make(APP_ID, "", "K"), Key.make(APP_ID, "", "K", "named")]
        out = []
        ds.put_multi(keys, [{}, property_map({"x": 1})], lambda key, err: out.append((key, err)))

        assert out[0][1] is None and out[1][1] is None
        assert not out[0][0].incomplete
        assert out[0][0].kind == "K"
        assert out[1][0] == keys[1]
        assert len(client.store) == 2

    def test_length_mismatch(self, ds, client):
        with pytest.raises(ValueError):
            ds.put_multi([Key.make(APP_ID, "", "K")], [], lambda key, err: None)
        assert client.calls == []

    def test_unsupported_value_fails_whole_batch(self, ds, client):
        keys = [Key.make(APP_ID, "", "K", 1), Key.make(APP_ID, "", "K", 2)]
        values = [property_map({"ok": 1}), {"where": [Property.of(GeoPoint(1, 2))]}]
        out = []
        ds.put_multi(keys, values, lambda key, err: out.append((key, err)))
        assert [key for key, _ in out] == [None, None]
        assert all(isinstance(err, PropertyTypeError) for _, err in out)
        assert client.calls == []

    def test_meta_properties_are_not_stored(self, ds, client):
        pmap = property_map({"x": 1})
        pmap["$kind"] = [Property.of("ignored")]
        ds.put_multi([Key.make(APP_ID, "", "K", 1)], [pmap], lambda key, err: None)
        assert dict(client.store[(None, ("K", 1))]) == {"x": 1}

    def test_contention_is_normalized(self, ds, client):
        client.fail_with = api_exceptions.Aborted("contention")
        out = []
        ds.put_multi([Key.make(APP_ID, "", "K", 1)], [{}], lambda key, err: out.append(err))
        assert isinstance(out[0], ConcurrentTransactionError)


def test_delete_multi(ds, client):
    client.store[(None, ("K", 1))] = make_entity("K", 1)
    errors = []
    ds.delete_multi([Key.make(APP_ID, "", "K", 1)], errors.append)
    assert errors == [None]
    assert client.store == {}


class TestAllocateIds:
    def test_completes_keys_in_order(self, ds, client):
        keys = [
            Key.make(APP_ID, "", "K"),
            Key.make(APP_ID, "", "P", 1, "C"),
            Key.make(APP_ID, "", "K"),
        ]
        out = ds.allocate_ids(keys)
        assert [k.incomplete for k in out] == [False, False, False]
        assert [k.kind for k in out] == ["K", "C", "K"]
        assert out[1].parent == Key.make(APP_ID, "", "P", 1)
        assert len(client.backend_calls()) == 2

    def test_complete_key_rejected(self, ds, client):
        with pytest.raises(InvalidKeyError):
            ds.allocate_ids([Key.make(APP_ID, "", "K", 1)])
        assert client.calls == []


class TestRun:
    def test_limit_bounds_callbacks(self, ds, fetched):
        seen = []
        ds.run(Query("K").limit(3).finalize(), lambda key, pmap, cursor: seen.append(key))
        assert [k.int_id for k in seen] == [1, 2, 3]

    def test_stop_halts_iteration(self, ds, fetched):
        seen = []

        def cb(key, pmap, cursor):
            seen.append(key)
            if len(seen) == 2:
                return RunControl.STOP
            return RunControl.CONTINUE

        ds.run(Query("K").finalize(), cb)
        assert len(seen) == 2

    def test_property_maps_and_cursors(self, ds, fetched):
        seen = []
        ds.run(
            Query("K").limit(2).finalize(),
            lambda key, pmap, cursor: seen.append((pmap, cursor())),
        )
        assert seen[0] == ({"n": [Property.of(1)]}, Cursor.from_bytes(b"p0r0"))
        assert seen[1][1] == Cursor.from_bytes(b"p0r1")

    def test_keys_only_has_no_property_map(self, ds, fetched):
        maps = []
        ds.run(Query("K").keys_only().finalize(), lambda key, pmap, cursor: maps.append(pmap))
        assert maps == [None] * 5

    def test_compiles_in_bound_namespace(self, client, fetched):
        bound = CloudDatastore(client, DatastoreConfig(project=PROJECT)).bind(
            DatastoreConfig(project=PROJECT, namespace="tenant").environment()
        )
        bound.run(Query("K").finalize(), lambda *args: None)
        assert client.calls[0][:3] == ("query", "K", "tenant")

    def test_backend_error_is_normalized(self, ds, monkeypatch):
        def failing_fetch(compiled, client):
            raise api_exceptions.InvalidArgument("key path is invalid")

        monkeypatch.setattr(cloud_query, "fetch", failing_fetch)
        with pytest.raises(InvalidKeyError):
            ds.run(Query("K").finalize(), lambda *args: None)

    def test_callback_error_propagates(self, ds, fetched):
        def cb(key, pmap, cursor):
            raise LookupError("stop here")

        with pytest.raises(LookupError):
            ds.run(Query("K").finalize(), cb)


class TestCount:
    def test_counts_matching_entities(self, ds, fetched):
        assert ds.count(Query("K").finalize()) == 5

    def test_respects_limit_and_offset(self, ds, fetched):
        assert ds.count(Query("K").offset(1).limit(3).finalize()) == 3

    def test_runs_keys_only_without_projection(self, ds, fetched, client):
        ds.count(Query("K").project("n").distinct().finalize())
        nq = fetched[0].query
        nq.keys_only.assert_called_once_with()
        assert client.calls[0][0] == "query"
        # Attributes never assigned stay auto-created mocks.
        assert not isinstance(nq.projection, list)
        assert not isinstance(nq.distinct_on, list)


def test_decode_cursor(ds):
    cursor = Cursor.from_bytes(b"\x01position")
    assert ds.decode_cursor(str(cursor)) == cursor
    with pytest.raises(InvalidCursorError):
        ds.decode_cursor("???")
