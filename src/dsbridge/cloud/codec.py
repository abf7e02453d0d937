"""Translation between dsbridge keys/properties and Cloud Datastore natives."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from google.cloud import datastore

from dsbridge.errors import PropertyTypeError
from dsbridge.keys import Key, KeyTok
from dsbridge.properties import (
    IndexSetting,
    Property,
    PropertyMap,
    PropertyType,
    is_meta,
    to_utc,
)

# Types stored by the backend exactly as Python holds them.
_PASSTHROUGH_TYPES = frozenset(
    {
        PropertyType.NULL,
        PropertyType.INT,
        PropertyType.TIME,
        PropertyType.BOOL,
        PropertyType.BYTES,
        PropertyType.STRING,
        PropertyType.FLOAT,
    }
)

_NATIVE_SCALARS = (bool, int, float, str, bytes)


@dataclass(frozen=True)
class NativeProperty:
    """A property as the backend stores it: one value or a list, plus its index flag."""

    name: str
    value: Any
    no_index: bool = False


def _flat(tok: KeyTok) -> tuple[Any, ...]:
    return (tok.kind,) if tok.incomplete else (tok.kind, tok.id)


class Codec:
    """Key and property codec bound to one application id and backend project."""

    def __init__(self, app_id: str, project: str, database: str | None = None) -> None:
        self.app_id = app_id
        self.project = project
        self.database = database

    # --- Keys ---

    def key_to_native(self, key: Key) -> datastore.Key:
        """Build the native key ancestor-first from the key's tokens."""
        _, namespace, toks = key.split()
        kwargs: dict[str, Any] = {"project": self.project, "namespace": namespace or None}
        if self.database:
            kwargs["database"] = self.database
        native = datastore.Key(*_flat(toks[0]), **kwargs)
        for tok in toks[1:]:
            native = datastore.Key(*_flat(tok), parent=native)
        return native

    def keys_to_native(self, keys: Iterable[Key]) -> list[datastore.Key]:
        return [self.key_to_native(k) for k in keys]

    def key_from_native(self, native: datastore.Key) -> Key:
        toks: list[KeyTok] = []
        cur: datastore.Key | None = native
        while cur is not None:
            toks.append(KeyTok(cur.kind, string_id=cur.name or "", int_id=cur.id or 0))
            cur = cur.parent
        # Collected leaf-first; keys are root-to-leaf.
        toks.reverse()
        return Key(self.app_id, native.namespace or "", tuple(toks))

    def keys_from_native(self, natives: Iterable[datastore.Key]) -> list[Key]:
        return [self.key_from_native(n) for n in natives]

    # --- Properties ---

    def property_to_native(self, name: str, props: Sequence[Property]) -> NativeProperty:
        values: list[Any] = []
        for i, prop in enumerate(props):
            if prop.type in _PASSTHROUGH_TYPES:
                values.append(prop.value)
            elif prop.type is PropertyType.KEY:
                values.append(self.key_to_native(prop.value))
            else:
                raise PropertyTypeError(f"unsupported property type at {i}: {prop.type.value}")

        if len(values) == 1:
            return NativeProperty(name, values[0], props[0].index is not IndexSetting.SHOULD_INDEX)
        # List values are always indexed.
        return NativeProperty(name, values)

    def property_from_native(self, name: str, value: Any, no_index: bool) -> list[Property]:
        native_values = value if isinstance(value, list) else [value]
        index = IndexSetting.NO_INDEX if no_index else IndexSetting.SHOULD_INDEX

        props: list[Property] = []
        for i, nv in enumerate(native_values):
            if nv is None or isinstance(nv, _NATIVE_SCALARS):
                pass
            elif isinstance(nv, datetime):
                nv = to_utc(nv)
            elif isinstance(nv, datastore.Key):
                nv = self.key_from_native(nv)
            else:
                raise PropertyTypeError(
                    f"property {name!r} element {i} has unsupported datastore value type "
                    f"{type(nv).__name__}"
                )
            props.append(Property.of(nv, index))
        return props

    # --- Entities ---

    def entity_from_property_map(
        self, native_key: datastore.Key | None, pmap: PropertyMap | None
    ) -> datastore.Entity:
        native_props = [
            self.property_to_native(name, plist)
            for name, plist in (pmap or {}).items()
            if not is_meta(name)
        ]
        entity = datastore.Entity(
            key=native_key,
            exclude_from_indexes=tuple(p.name for p in native_props if p.no_index),
        )
        for p in native_props:
            entity[p.name] = p.value
        return entity

    def property_map_from_entity(self, entity: datastore.Entity) -> PropertyMap:
        excluded = set(entity.exclude_from_indexes)
        pmap: PropertyMap = {}
        for name, value in entity.items():
            pmap.setdefault(name, []).extend(
                self.property_from_native(name, value, name in excluded)
            )
        return pmap
