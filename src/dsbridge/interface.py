"""Backend-agnostic datastore contract implemented by bound adapters."""

from __future__ import annotations

import enum
from collections.abc import Callable, Sequence
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from dsbridge.keys import Key
from dsbridge.properties import PropertyMap
from dsbridge.query import Cursor, FinalizedQuery


class RunControl(enum.Enum):
    """Return value of a run callback; ``None`` also means continue."""

    CONTINUE = "continue"
    STOP = "stop"


class TransactionOptions(BaseModel):
    """Options for run_in_transaction.

    ``attempts`` of 0 means the configured default.
    """

    model_config = ConfigDict(frozen=True)

    xg: bool = False
    attempts: int = Field(default=0, ge=0)


CursorFn = Callable[[], "Cursor | None"]
RunCallback = Callable[[Key, "PropertyMap | None", CursorFn], "RunControl | None"]
GetMultiCallback = Callable[["PropertyMap | None", "Exception | None"], None]
PutMultiCallback = Callable[["Key | None", "Exception | None"], None]
DeleteMultiCallback = Callable[["Exception | None"], None]


@runtime_checkable
class RawDatastore(Protocol):
    """Storage contract used by the service layer."""

    def allocate_ids(self, keys: Sequence[Key]) -> list[Key]: ...

    def run_in_transaction(
        self,
        fn: Callable[[RawDatastore], Any],
        options: TransactionOptions | None = None,
    ) -> Any: ...

    def decode_cursor(self, s: str) -> Cursor: ...

    def run(self, query: FinalizedQuery, cb: RunCallback) -> None: ...

    def count(self, query: FinalizedQuery) -> int: ...

    def get_multi(self, keys: Sequence[Key], cb: GetMultiCallback) -> None: ...

    def put_multi(
        self,
        keys: Sequence[Key],
        values: Sequence[PropertyMap],
        cb: PutMultiCallback,
    ) -> None: ...

    def delete_multi(self, keys: Sequence[Key], cb: DeleteMultiCallback) -> None: ...
