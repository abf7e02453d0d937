"""Per-request environment information consumed by bound datastores."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace

from dsbridge.errors import InvalidNamespaceError

NAMESPACE_PATTERN = r"^[0-9A-Za-z._-]{0,100}$"

_NAMESPACE_RE = re.compile(NAMESPACE_PATTERN)


def validate_namespace(namespace: str) -> None:
    if not _NAMESPACE_RE.fullmatch(namespace):
        raise InvalidNamespaceError(namespace, NAMESPACE_PATTERN)


@dataclass(frozen=True)
class EnvironmentInfo:
    """Application id and namespace for one request scope.

    The empty namespace is the default namespace.
    """

    app_id: str
    namespace: str = ""
    request_id: str = ""
    version_id: str = ""

    def __post_init__(self) -> None:
        if not self.app_id:
            raise ValueError("app_id must not be empty")
        validate_namespace(self.namespace)

    def with_namespace(self, namespace: str) -> EnvironmentInfo:
        return replace(self, namespace=namespace)

    def with_request_id(self, request_id: str) -> EnvironmentInfo:
        return replace(self, request_id=request_id)
