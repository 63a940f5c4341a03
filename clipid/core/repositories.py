"""Repository classes for catalog operations."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from clipid.core.protocols import StorageProtocol


@dataclass(frozen=True, slots=True)
class Context:
    """A named partition of the catalog."""

    name: str
    directory: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Context:
        return cls(name=row["name"], directory=row["directory"])

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class AudioRecord:
    """One fingerprinted reference clip.

    Attributes:
        uuid: Canonical lowercase UUID4 text, generated at creation
        name: Basename of the source file (not unique)
        context: Name of the owning context
        hash: Lowercase hex MD5 of the whole file
    """

    uuid: str
    name: str
    context: str
    hash: str

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> AudioRecord:
        return cls(uuid=row["uuid"], name=row["name"], context=row["context"], hash=row["hash"])

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class BaseRepository:
    """Base class for repositories."""

    def __init__(self, database: StorageProtocol) -> None:
        """Initialize repository with database reference.

        Args:
            database: Storage collaborator (usually the SQLite Database)
        """
        self._db = database

    def _first(self, statement: str, params: tuple = ()) -> dict[str, Any] | None:
        """Return the first row of a query, or None."""
        cursor = self._db.query(statement, params)
        return self._db.get_next_row(cursor)


class ContextRepository(BaseRepository):
    """Repository for context operations."""

    def add(self, context: Context) -> None:
        """Insert a context.

        Raises:
            StorageError: If a context with that name already exists
        """
        self._db.insert("contexts", context.to_dict())

    def upsert(self, context: Context) -> None:
        """Insert a context or replace its directory."""
        self._db.insert_or_replace("contexts", context.to_dict())

    def get(self, name: str) -> Context | None:
        """Get a context by name.

        Args:
            name: Context name

        Returns:
            Context or None if not found
        """
        row = self._first("SELECT name, directory FROM contexts WHERE name = ?", (name,))
        return Context.from_row(row) if row else None

    def get_all(self) -> list[Context]:
        """Get all contexts, ordered by name."""
        cursor = self._db.query("SELECT name, directory FROM contexts ORDER BY name")
        return [Context.from_row(row) for row in cursor]

    def exists(self, name: str) -> bool:
        return self._first("SELECT 1 AS present FROM contexts WHERE name = ?", (name,)) is not None

    def delete(self, name: str) -> bool:
        """Delete a context row (its audio records are not touched).

        Returns:
            True if a row was deleted
        """
        return self._db.execute("DELETE FROM contexts WHERE name = ?", (name,)) > 0

    def count(self) -> int:
        row = self._first("SELECT COUNT(*) AS n FROM contexts")
        return int(row["n"]) if row else 0


class AudioRepository(BaseRepository):
    """Repository for audio record operations."""

    _COLUMNS = "uuid, name, context, hash"

    def add(self, record: AudioRecord) -> None:
        """Insert an audio record.

        Raises:
            StorageError: If the uuid or the (context, hash) pair already exists
        """
        self._db.insert("audio", record.to_dict())

    def upsert(self, record: AudioRecord) -> None:
        self._db.insert_or_replace("audio", record.to_dict())

    def get(self, uuid: str) -> AudioRecord | None:
        """Get an audio record by uuid.

        Args:
            uuid: Record uuid

        Returns:
            AudioRecord or None if not found
        """
        row = self._first(f"SELECT {self._COLUMNS} FROM audio WHERE uuid = ?", (uuid,))
        return AudioRecord.from_row(row) if row else None

    def get_by_hash(self, context: str, file_hash: str) -> AudioRecord | None:
        """Get the record holding *file_hash* in *context*, if any."""
        row = self._first(
            f"SELECT {self._COLUMNS} FROM audio WHERE context = ? AND hash = ?",
            (context, file_hash),
        )
        return AudioRecord.from_row(row) if row else None

    def get_all(self, context: str | None = None) -> list[AudioRecord]:
        """Get all audio records, optionally restricted to one context.

        Args:
            context: Optional context filter

        Returns:
            List of records ordered by context then name
        """
        if context is not None:
            cursor = self._db.query(
                f"SELECT {self._COLUMNS} FROM audio WHERE context = ? ORDER BY name, uuid",
                (context,),
            )
        else:
            cursor = self._db.query(
                f"SELECT {self._COLUMNS} FROM audio ORDER BY context, name, uuid"
            )
        return [AudioRecord.from_row(row) for row in cursor]

    def delete(self, uuid: str) -> bool:
        """Delete an audio record row (its frames are not touched).

        Returns:
            True if a row was deleted
        """
        return self._db.execute("DELETE FROM audio WHERE uuid = ?", (uuid,)) > 0

    def count(self, context: str | None = None) -> int:
        if context is not None:
            row = self._first("SELECT COUNT(*) AS n FROM audio WHERE context = ?", (context,))
        else:
            row = self._first("SELECT COUNT(*) AS n FROM audio")
        return int(row["n"]) if row else 0
