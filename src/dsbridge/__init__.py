"""dsbridge: hierarchical entity storage bound to Google Cloud Datastore."""

__version__ = "0.1.0"

from dsbridge.cloud import BoundDatastore, CloudDatastore
from dsbridge.config import DatastoreConfig, create_client
from dsbridge.errors import (
    ConcurrentTransactionError,
    ConfigurationError,
    DatastoreError,
    InvalidCursorError,
    InvalidKeyError,
    InvalidNamespaceError,
    NestedTransactionError,
    NoSuchEntityError,
    PropertyTypeError,
    QueryError,
    TransactionScopeError,
    UnsupportedTransactionOptionError,
)
from dsbridge.info import EnvironmentInfo
from dsbridge.interface import RawDatastore, RunControl, TransactionOptions
from dsbridge.keys import Key, KeyTok
from dsbridge.properties import (
    BlobKey,
    GeoPoint,
    IndexSetting,
    Property,
    PropertyMap,
    PropertyType,
    property_map,
)
from dsbridge.query import Cursor, FinalizedQuery, Query, decode_cursor

__all__ = [
    "__version__",
    "BoundDatastore",
    "CloudDatastore",
    "DatastoreConfig",
    "create_client",
    "EnvironmentInfo",
    "RawDatastore",
    "RunControl",
    "TransactionOptions",
    "Key",
    "KeyTok",
    "Property",
    "PropertyMap",
    "PropertyType",
    "IndexSetting",
    "GeoPoint",
    "BlobKey",
    "property_map",
    "Query",
    "FinalizedQuery",
    "Cursor",
    "decode_cursor",
    "DatastoreError",
    "ConfigurationError",
    "NoSuchEntityError",
    "ConcurrentTransactionError",
    "InvalidKeyError",
    "InvalidCursorError",
    "InvalidNamespaceError",
    "NestedTransactionError",
    "UnsupportedTransactionOptionError",
    "TransactionScopeError",
    "PropertyTypeError",
    "QueryError",
]
