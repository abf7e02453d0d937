"""Typed, optionally multi-valued entity properties."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from dsbridge.errors import PropertyTypeError
from dsbridge.keys import INT64_MAX, INT64_MIN, Key

# Property names with this prefix carry metadata and are never stored.
META_PREFIX = "$"


class PropertyType(enum.Enum):
    NULL = "null"
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    STRING = "string"
    BYTES = "bytes"
    TIME = "time"
    GEOPOINT = "geopoint"
    KEY = "key"
    BLOBKEY = "blobkey"


class IndexSetting(enum.Enum):
    SHOULD_INDEX = "should_index"
    NO_INDEX = "no_index"


@dataclass(frozen=True)
class GeoPoint:
    """A latitude/longitude pair in degrees."""

    lat: float
    lng: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"latitude {self.lat} out of range [-90, 90]")
        if not -180.0 <= self.lng <= 180.0:
            raise ValueError(f"longitude {self.lng} out of range [-180, 180]")


class BlobKey(str):
    """Opaque reference into a blob store."""

    def __repr__(self) -> str:
        return f"BlobKey({str.__repr__(self)})"


def to_utc(value: datetime) -> datetime:
    """Normalize a timestamp to UTC; naive values are taken to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def classify(value: Any) -> PropertyType:
    """Return the PropertyType for a Python value.

    Raises:
        PropertyTypeError: if the value has no property representation.
    """
    # bool before int: bool is an int subclass. BlobKey before str, same reason.
    if value is None:
        return PropertyType.NULL
    if isinstance(value, bool):
        return PropertyType.BOOL
    if isinstance(value, int):
        return PropertyType.INT
    if isinstance(value, float):
        return PropertyType.FLOAT
    if isinstance(value, BlobKey):
        return PropertyType.BLOBKEY
    if isinstance(value, str):
        return PropertyType.STRING
    if isinstance(value, (bytes, bytearray)):
        return PropertyType.BYTES
    if isinstance(value, datetime):
        return PropertyType.TIME
    if isinstance(value, GeoPoint):
        return PropertyType.GEOPOINT
    if isinstance(value, Key):
        return PropertyType.KEY
    raise PropertyTypeError(f"unsupported property value type {type(value).__name__}")


@dataclass(frozen=True)
class Property:
    """A single tagged property value with its index setting.

    Build instances with :meth:`Property.of`, which classifies the value and
    normalizes it (timestamps to UTC, bytearray to bytes).
    """

    type: PropertyType
    value: Any
    index: IndexSetting = IndexSetting.SHOULD_INDEX

    @classmethod
    def of(cls, value: Any, index: IndexSetting = IndexSetting.SHOULD_INDEX) -> Property:
        ptype = classify(value)
        if ptype is PropertyType.INT and not INT64_MIN <= value <= INT64_MAX:
            raise PropertyTypeError(f"integer {value} overflows int64")
        if ptype is PropertyType.TIME:
            value = to_utc(value)
        elif ptype is PropertyType.BYTES:
            value = bytes(value)
        return cls(ptype, value, index)

    @property
    def indexed(self) -> bool:
        return self.index is IndexSetting.SHOULD_INDEX


PropertyMap = dict[str, list[Property]]


def is_meta(name: str) -> bool:
    return name.startswith(META_PREFIX)


def clone_property_map(pmap: PropertyMap | None) -> PropertyMap | None:
    if pmap is None:
        return None
    return {name: list(props) for name, props in pmap.items()}


def property_map(
    values: dict[str, Any], *, no_index: tuple[str, ...] | list[str] = ()
) -> PropertyMap:
    """Build a PropertyMap from plain values; lists become multi-valued properties."""
    pmap: PropertyMap = {}
    for name, value in values.items():
        index = IndexSetting.NO_INDEX if name in no_index else IndexSetting.SHOULD_INDEX
        items = value if isinstance(value, list) else [value]
        pmap[name] = [Property.of(v, index) for v in items]
    return pmap
