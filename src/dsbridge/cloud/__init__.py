"""Cloud Datastore backend for dsbridge."""

from dsbridge.cloud.datastore import BoundDatastore, CloudDatastore

__all__ = ["BoundDatastore", "CloudDatastore"]
