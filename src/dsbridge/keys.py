"""Abstract hierarchical datastore keys."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from dsbridge.errors import InvalidKeyError

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


@dataclass(frozen=True)
class KeyTok:
    """One (kind, id) step of a key's ancestor path.

    At most one of ``string_id`` and ``int_id`` is set. A token with neither
    is incomplete: the backend assigns its identifier on write.
    """

    kind: str
    string_id: str = ""
    int_id: int = 0

    @property
    def incomplete(self) -> bool:
        return self.string_id == "" and self.int_id == 0

    @property
    def id(self) -> str | int | None:
        """The identifier as a single value, or None when incomplete."""
        if self.string_id:
            return self.string_id
        if self.int_id:
            return self.int_id
        return None

    def __str__(self) -> str:
        if self.string_id:
            return f"{self.kind},{self.string_id!r}"
        return f"{self.kind},{self.int_id}"


@dataclass(frozen=True)
class Key:
    """A root-to-leaf token path scoped by application id and namespace."""

    app_id: str
    namespace: str
    toks: tuple[KeyTok, ...]

    def __post_init__(self) -> None:
        if not isinstance(self.toks, tuple):
            object.__setattr__(self, "toks", tuple(self.toks))
        if not self.toks:
            raise InvalidKeyError("key must have at least one token")
        last = len(self.toks) - 1
        for i, tok in enumerate(self.toks):
            if not tok.kind:
                raise InvalidKeyError(f"token {i} has an empty kind")
            if tok.string_id and tok.int_id:
                raise InvalidKeyError(f"token {i} has both a string and an integer id")
            if not INT64_MIN <= tok.int_id <= INT64_MAX:
                raise InvalidKeyError(f"token {i} integer id {tok.int_id} overflows int64")
            if tok.incomplete and i != last:
                raise InvalidKeyError(f"token {i} is incomplete but is not the leaf")

    @classmethod
    def make(cls, app_id: str, namespace: str, *path: Any) -> Key:
        """Build a key from a flat ``kind, id, kind, id, ...`` path.

        A trailing kind with no id produces an incomplete key. Ids may be
        strings or integers.
        """
        if not path:
            raise InvalidKeyError("key path must not be empty")
        toks: list[KeyTok] = []
        for i in range(0, len(path), 2):
            kind = path[i]
            ident = path[i + 1] if i + 1 < len(path) else None
            if isinstance(ident, bool) or not isinstance(ident, (int, str, type(None))):
                raise InvalidKeyError(f"unsupported id type {type(ident).__name__} at {i + 1}")
            if not ident:
                toks.append(KeyTok(kind))
            elif isinstance(ident, int):
                toks.append(KeyTok(kind, int_id=ident))
            else:
                toks.append(KeyTok(kind, string_id=ident))
        return cls(app_id, namespace, tuple(toks))

    def split(self) -> tuple[str, str, tuple[KeyTok, ...]]:
        return self.app_id, self.namespace, self.toks

    @property
    def leaf(self) -> KeyTok:
        return self.toks[-1]

    @property
    def kind(self) -> str:
        return self.leaf.kind

    @property
    def string_id(self) -> str:
        return self.leaf.string_id

    @property
    def int_id(self) -> int:
        return self.leaf.int_id

    @property
    def incomplete(self) -> bool:
        return self.leaf.incomplete

    @property
    def parent(self) -> Key | None:
        if len(self.toks) == 1:
            return None
        return Key(self.app_id, self.namespace, self.toks[:-1])

    @property
    def root(self) -> Key:
        return Key(self.app_id, self.namespace, self.toks[:1])

    def is_ancestor_of(self, other: Key) -> bool:
        """True if this key is a strict prefix of ``other`` in the same scope."""
        if (self.app_id, self.namespace) != (other.app_id, other.namespace):
            return False
        n = len(self.toks)
        return n < len(other.toks) and other.toks[:n] == self.toks

    def with_int_id(self, int_id: int) -> Key:
        """Return a copy whose leaf carries ``int_id`` instead of its current id."""
        leaf = KeyTok(self.kind, int_id=int_id)
        return Key(self.app_id, self.namespace, self.toks[:-1] + (leaf,))

    def __str__(self) -> str:
        path = "/".join(f"({tok})" for tok in self.toks)
        ns = f":{self.namespace}" if self.namespace else ""
        return f"{self.app_id}{ns}:/{path}"
