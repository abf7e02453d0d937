"""Query DSL: Query builder, FinalizedQuery descriptor and Cursor."""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass, field
from typing import Any

from dsbridge.errors import InvalidCursorError, QueryError
from dsbridge.keys import Key
from dsbridge.properties import Property

_CURSOR_RE = re.compile(r"^[A-Za-z0-9_-]+={0,2}$")

LOW_OPS = (">", ">=")
HIGH_OPS = ("<", "<=")


@dataclass(frozen=True)
class Cursor:
    """Opaque position within an ordered query result stream.

    ``str(cursor)`` is a URL-safe base64 token accepted by :func:`decode_cursor`.
    """

    token: str

    @classmethod
    def from_bytes(cls, raw: bytes) -> Cursor:
        return cls(base64.urlsafe_b64encode(raw).decode("ascii"))

    @property
    def raw(self) -> bytes:
        return base64.urlsafe_b64decode(self.token.encode("ascii"))

    def __str__(self) -> str:
        return self.token


def decode_cursor(s: str) -> Cursor:
    if not s or not _CURSOR_RE.match(s):
        raise InvalidCursorError(s)
    try:
        base64.urlsafe_b64decode(s.encode("ascii"))
    except (binascii.Error, ValueError) as e:
        raise InvalidCursorError(s) from e
    return Cursor(s)


@dataclass(frozen=True)
class Order:
    field: str
    descending: bool = False

    @classmethod
    def parse(cls, text: str) -> Order:
        if text.startswith("-"):
            return cls(text[1:], True)
        return cls(text)


@dataclass(frozen=True)
class Bound:
    op: str
    value: Property


@dataclass(frozen=True)
class FinalizedQuery:
    """A validated, immutable query descriptor ready for compilation."""

    kind: str
    eq_filters: dict[str, tuple[Property, ...]] = field(default_factory=dict)
    ineq_field: str = ""
    low: Bound | None = None
    high: Bound | None = None
    orders: tuple[Order, ...] = ()
    ancestor: Key | None = None
    projection: tuple[str, ...] = ()
    distinct: bool = False
    keys_only: bool = False
    eventually_consistent: bool = False
    limit: int | None = None
    offset: int | None = None
    start: Cursor | None = None
    end: Cursor | None = None

    def ineq_filter_low(self) -> tuple[str, str, Property] | None:
        if self.low is None:
            return None
        return self.ineq_field, self.low.op, self.low.value

    def ineq_filter_high(self) -> tuple[str, str, Property] | None:
        if self.high is None:
            return None
        return self.ineq_field, self.high.op, self.high.value

    def bounds(self) -> tuple[Cursor | None, Cursor | None]:
        return self.start, self.end


class Query:
    """Mutable builder for datastore queries.

    Every method returns the builder so calls chain; :meth:`finalize` checks the
    combination and produces a :class:`FinalizedQuery`.
    """

    def __init__(self, kind: str) -> None:
        self._kind = kind
        self._eq: dict[str, list[Property]] = {}
        self._ineq: dict[str, dict[str, Bound]] = {}
        self._orders: list[Order] = []
        self._ancestor: Key | None = None
        self._projection: list[str] = []
        self._distinct = False
        self._keys_only = False
        self._eventual = False
        self._limit: int | None = None
        self._offset: int | None = None
        self._start: Cursor | None = None
        self._end: Cursor | None = None

    def eq(self, field_name: str, *values: Any) -> Query:
        if not values:
            raise QueryError(f"eq({field_name!r}) needs at least one value")
        props = self._eq.setdefault(field_name, [])
        for v in values:
            prop = v if isinstance(v, Property) else Property.of(v)
            if prop not in props:
                props.append(prop)
        return self

    def _bound(self, field_name: str, op: str, value: Any) -> Query:
        prop = value if isinstance(value, Property) else Property.of(value)
        side = "low" if op in LOW_OPS else "high"
        self._ineq.setdefault(field_name, {})[side] = Bound(op, prop)
        return self

    def gt(self, field_name: str, value: Any) -> Query:
        return self._bound(field_name, ">", value)

    def gte(self, field_name: str, value: Any) -> Query:
        return self._bound(field_name, ">=", value)

    def lt(self, field_name: str, value: Any) -> Query:
        return self._bound(field_name, "<", value)

    def lte(self, field_name: str, value: Any) -> Query:
        return self._bound(field_name, "<=", value)

    def order(self, *fields: str) -> Query:
        """Append sort orders; a leading ``-`` sorts that field descending."""
        self._orders.extend(Order.parse(f) for f in fields)
        return self

    def ancestor(self, key: Key | None) -> Query:
        self._ancestor = key
        return self

    def project(self, *fields: str) -> Query:
        for f in fields:
            if f not in self._projection:
                self._projection.append(f)
        return self

    def distinct(self, on: bool = True) -> Query:
        self._distinct = on
        return self

    def keys_only(self, on: bool = True) -> Query:
        self._keys_only = on
        return self

    def eventual_consistency(self, on: bool = True) -> Query:
        self._eventual = on
        return self

    def limit(self, n: int | None) -> Query:
        self._limit = n
        return self

    def offset(self, n: int | None) -> Query:
        self._offset = n
        return self

    def start(self, cursor: Cursor | None) -> Query:
        self._start = cursor
        return self

    def end(self, cursor: Cursor | None) -> Query:
        self._end = cursor
        return self

    def finalize(self) -> FinalizedQuery:
        if not self._kind:
            raise QueryError("kind-less queries are not supported")
        if len(self._ineq) > 1:
            raise QueryError(
                f"inequality filters on multiple properties: {sorted(self._ineq)}"
            )

        ineq_field = ""
        low = high = None
        if self._ineq:
            ineq_field, sides = next(iter(self._ineq.items()))
            low, high = sides.get("low"), sides.get("high")
            if self._orders and self._orders[0].field != ineq_field:
                raise QueryError(
                    f"first sort order must be inequality property {ineq_field!r}, "
                    f"not {self._orders[0].field!r}"
                )

        if self._keys_only and self._projection:
            raise QueryError("keys-only queries cannot have a projection")
        if self._distinct and not self._projection:
            raise QueryError("distinct requires a projection")
        for name in self._projection:
            if name in self._eq:
                raise QueryError(f"cannot project on equality-filtered field {name!r}")
        if self._limit is not None and self._limit < 0:
            raise QueryError(f"negative limit {self._limit}")
        if self._offset is not None and self._offset < 0:
            raise QueryError(f"negative offset {self._offset}")

        return FinalizedQuery(
            kind=self._kind,
            eq_filters={k: tuple(v) for k, v in self._eq.items()},
            ineq_field=ineq_field,
            low=low,
            high=high,
            orders=tuple(self._orders),
            ancestor=self._ancestor,
            projection=tuple(self._projection),
            distinct=self._distinct,
            keys_only=self._keys_only,
            eventually_consistent=self._eventual,
            limit=self._limit,
            offset=self._offset,
            start=self._start,
            end=self._end,
        )
