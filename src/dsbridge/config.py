"""Configuration for the Cloud Datastore adapter."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from google.cloud import datastore

from dsbridge.info import EnvironmentInfo

DEFAULT_TRANSACTION_ATTEMPTS = 3


@dataclass
class DatastoreConfig:
    """Configuration for a CloudDatastore."""

    project: str | None = None
    database: str | None = None
    namespace: str = ""
    # Fully qualified application id carried by decoded keys; defaults to project.
    app_id: str | None = None
    transaction_attempts: int = DEFAULT_TRANSACTION_ATTEMPTS

    def __post_init__(self) -> None:
        if self.transaction_attempts < 1:
            raise ValueError(
                f"transaction_attempts must be at least 1, got {self.transaction_attempts}"
            )

    def environment(self, project: str | None = None) -> EnvironmentInfo:
        """Default environment info for requests that do not supply their own."""
        app_id = self.app_id or self.project or project
        if not app_id:
            raise ValueError("no app_id or project configured")
        return EnvironmentInfo(app_id=app_id, namespace=self.namespace)


def create_client(config: DatastoreConfig, **kwargs: Any) -> datastore.Client:
    """Create a Cloud Datastore client for ``config``.

    Extra keyword arguments (``credentials``, ``client_options``...) are passed
    to ``google.cloud.datastore.Client``. The emulator is selected by the
    library itself through ``DATASTORE_EMULATOR_HOST``. ``config.namespace`` is
    not given to the client: namespaces are chosen per request through
    EnvironmentInfo.
    """
    client_kwargs: dict[str, Any] = {"project": config.project}
    if config.database:
        client_kwargs["database"] = config.database
    client_kwargs.update(kwargs)
    return datastore.Client(**client_kwargs)
