"""Protocol definitions for the storage collaborator.

Repositories only rely on this surface, so any object providing it (the
SQLite ``Database`` or a test double) can back them.
"""

from collections.abc import Iterable, Iterator
from contextlib import AbstractContextManager
from typing import Any, Protocol, runtime_checkable

# ============================================================================
# Storage Protocols
# ============================================================================


class CursorProtocol(Protocol):
    """Rows returned by one query."""

    def __iter__(self) -> Iterator[dict[str, Any]]: ...
    def next_row(self) -> dict[str, Any] | None: ...


@runtime_checkable
class StorageProtocol(Protocol):
    """Primitive operations of a relational store."""

    def execute(self, statement: str, params: Iterable[Any] = ()) -> int: ...
    def executemany(self, statement: str, seq_of_params: Iterable[Iterable[Any]]) -> int: ...
    def query(self, statement: str, params: Iterable[Any] = ()) -> CursorProtocol: ...
    def insert(self, table: str, record: dict[str, Any]) -> None: ...
    def insert_or_replace(self, table: str, record: dict[str, Any]) -> None: ...
    def insert_many(self, table: str, records: list[dict[str, Any]]) -> int: ...
    def get_next_row(self, cursor: CursorProtocol) -> dict[str, Any] | None: ...
    def transaction(self) -> AbstractContextManager[None]: ...
    def scratch_table(self, columns: str) -> AbstractContextManager[str]: ...
    def table_columns(self, table: str) -> list[str]: ...
