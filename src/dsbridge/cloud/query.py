"""Compilation of FinalizedQuery descriptors into Cloud Datastore queries."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

from google.cloud import datastore
from google.cloud.datastore.query import Iterator as NativeIterator
from google.cloud.datastore.query import PropertyFilter

from dsbridge.cloud.codec import Codec
from dsbridge.errors import PropertyTypeError, TransactionScopeError
from dsbridge.properties import Property
from dsbridge.query import Cursor, FinalizedQuery


@dataclass
class CompiledQuery:
    """A native query plus the arguments its fetch needs."""

    query: datastore.Query
    fetch_kwargs: dict[str, Any] = field(default_factory=dict)


def compile_query(
    client: datastore.Client,
    codec: Codec,
    fq: FinalizedQuery,
    *,
    namespace: str = "",
    transaction: datastore.Transaction | None = None,
) -> CompiledQuery:
    """Build the native query for ``fq``.

    Queries run inside the client's current transaction, so a transactional
    scope may only compile while its transaction is the active one.
    """
    nq = client.query(kind=fq.kind, namespace=namespace or None)
    if transaction is not None and client.current_transaction is not transaction:
        raise TransactionScopeError()
    fetch_kwargs: dict[str, Any] = {}

    # Values the codec cannot translate go through as-is; the backend rejects them.
    def native_filter(prop: Property) -> Any:
        try:
            return codec.property_to_native("", [prop]).value
        except PropertyTypeError:
            return prop.value

    for field_name, props in fq.eq_filters.items():
        for prop in props:
            nq.add_filter(filter=PropertyFilter(field_name, "=", native_filter(prop)))

    if fq.ineq_field:
        for bound in (fq.ineq_filter_low(), fq.ineq_filter_high()):
            if bound is not None:
                field_name, op, prop = bound
                nq.add_filter(filter=PropertyFilter(field_name, op, native_filter(prop)))

    start, end = fq.bounds()
    if start is not None:
        fetch_kwargs["start_cursor"] = start.token
    if end is not None:
        fetch_kwargs["end_cursor"] = end.token

    if fq.distinct:
        nq.distinct_on = list(fq.projection)
    if fq.keys_only:
        nq.keys_only()
    if fq.limit is not None:
        fetch_kwargs["limit"] = fq.limit
    if fq.offset is not None:
        fetch_kwargs["offset"] = fq.offset
    if fq.projection:
        nq.projection = list(fq.projection)
    if fq.ancestor is not None:
        nq.ancestor = codec.key_to_native(fq.ancestor)
    if fq.eventually_consistent:
        fetch_kwargs["eventual"] = True

    if fq.orders:
        nq.order = [f"-{o.field}" if o.descending else o.field for o in fq.orders]

    return CompiledQuery(nq, fetch_kwargs)


class CursorTrackingIterator(NativeIterator):
    """Query iterator that keeps the cursor of each result in the current batch."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.result_cursors: list[bytes] = []

    def _process_query_results(self, response_pb: Any) -> Any:
        self.result_cursors = [bytes(r.cursor) for r in response_pb.batch.entity_results]
        return super()._process_query_results(response_pb)


def fetch(compiled: CompiledQuery, client: datastore.Client) -> NativeIterator:
    return CursorTrackingIterator(compiled.query, client, **compiled.fetch_kwargs)


def _page_cursor(iterator: Any) -> Cursor | None:
    token = iterator.next_page_token
    if not token:
        return None
    if isinstance(token, bytes):
        token = token.decode("ascii")
    return Cursor(token)


def iter_results(
    iterator: Any,
) -> Iterator[tuple[datastore.Entity, Callable[[], Cursor | None]]]:
    """Yield ``(entity, cursor_fn)`` pairs.

    ``cursor_fn`` returns the position just after that entity. Without a
    per-result cursor it falls back to the end of the current batch.
    """
    for page in iterator.pages:
        cursors = list(getattr(iterator, "result_cursors", ()))
        for i, entity in enumerate(page):
            raw = cursors[i] if i < len(cursors) else b""
            if raw:
                yield entity, (lambda raw=raw: Cursor.from_bytes(raw))
            else:
                yield entity, (lambda: _page_cursor(iterator))
