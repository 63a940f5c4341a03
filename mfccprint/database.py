"""Fingerprint frame storage and range lookups.

Frames live in the clipid catalog database, in a ``fingerprints`` table with
one REAL column per coefficient (``coef1`` .. ``coefK``). Matching votes are
accumulated in per-session TEMP tables.
"""

from __future__ import annotations

from collections.abc import Generator, Iterable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from clipid.core.constants import N_COEFS
from clipid.core.database import Database
from clipid.core.errors import InvalidArgument, StorageError
from clipid.core.repositories import AudioRecord

from .fingerprint import FingerprintFrame


class FingerprintDB:
    """Database interface for storing and querying fingerprint frames.

    Uses the clipid catalog database, adding a fingerprints table whose
    width is fixed by ``n_coefs``.
    """

    def __init__(self, database: Database, n_coefs: int = N_COEFS):
        """Initialize the store and make sure its table exists.

        Args:
            database: Connected catalog database
            n_coefs: Coefficients stored per frame

        Raises:
            StorageError: If an existing table was created with another width
        """
        if n_coefs < 1:
            raise InvalidArgument(f"n_coefs must be >= 1, got {n_coefs}")
        self._db = database
        self.n_coefs = n_coefs
        self._coef_columns = [f"coef{i}" for i in range(1, n_coefs + 1)]
        self._ensure_tables()

    def _ensure_tables(self) -> None:
        """Create the fingerprint table and its indexes if they don't exist."""
        existing = self._db.table_columns("fingerprints")
        if existing:
            width = sum(1 for name in existing if name.startswith("coef"))
            if width != self.n_coefs:
                raise StorageError(
                    f"Fingerprint table holds {width} coefficients, expected {self.n_coefs}"
                )
            return

        coef_defs = ",\n".join(f"{name} REAL NOT NULL" for name in self._coef_columns)
        with self._db.transaction():
            self._db.execute(f"""
                CREATE TABLE IF NOT EXISTS fingerprints (
                    context TEXT NOT NULL,
                    audio_uuid TEXT NOT NULL,
                    frame_idx INTEGER NOT NULL,
                    {coef_defs}
                )
            """)

            # Range lookups start from the first coefficient within one context
            self._db.execute(
                "CREATE INDEX IF NOT EXISTS idx_fingerprints_context_coef1 "
                "ON fingerprints(context, coef1)"
            )
            for name in self._coef_columns:
                self._db.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_fingerprints_{name} ON fingerprints({name})"
                )

            # Deletion by owning record
            self._db.execute(
                "CREATE INDEX IF NOT EXISTS idx_fingerprints_audio_uuid "
                "ON fingerprints(audio_uuid)"
            )

    # ========== Frames ==========

    def store_frames(
        self,
        context: str,
        audio_uuid: str,
        frames: Iterable[FingerprintFrame],
    ) -> int:
        """Bulk insert the frames of one audio record.

        Args:
            context: Owning context name
            audio_uuid: Owning record uuid
            frames: Frames to store

        Returns:
            Number of frames stored
        """
        records = []
        for frame in frames:
            if len(frame.coefs) != self.n_coefs:
                raise InvalidArgument(
                    f"Frame {frame.frame_idx} has {len(frame.coefs)} coefficients, "
                    f"expected {self.n_coefs}"
                )
            record: dict[str, Any] = {
                "context": context,
                "audio_uuid": audio_uuid,
                "frame_idx": frame.frame_idx,
            }
            record.update(zip(self._coef_columns, frame.coefs))
            records.append(record)

        return self._db.insert_many("fingerprints", records)

    def replace_frames(
        self,
        context: str,
        audio_uuid: str,
        frames: Iterable[FingerprintFrame],
    ) -> int:
        """Replace every stored frame of *audio_uuid* with *frames*."""
        with self._db.transaction():
            self.delete_by_audio(audio_uuid)
            return self.store_frames(context, audio_uuid, frames)

    def delete_by_audio(self, audio_uuid: str) -> int:
        """Delete all frames of one audio record. Returns rows deleted."""
        return self._db.execute("DELETE FROM fingerprints WHERE audio_uuid = ?", (audio_uuid,))

    def delete_by_context(self, context: str) -> int:
        """Delete all frames tagged with *context*. Returns rows deleted."""
        return self._db.execute("DELETE FROM fingerprints WHERE context = ?", (context,))

    def count_frames(self, audio_uuid: str | None = None) -> int:
        """Count stored frames, optionally for one audio record."""
        if audio_uuid is not None:
            cursor = self._db.query(
                "SELECT COUNT(*) AS n FROM fingerprints WHERE audio_uuid = ?", (audio_uuid,)
            )
        else:
            cursor = self._db.query("SELECT COUNT(*) AS n FROM fingerprints")
        row = self._db.get_next_row(cursor)
        return int(row["n"]) if row else 0

    def get_frames(self, audio_uuid: str) -> list[FingerprintFrame]:
        """Get the frames of one audio record in frame order."""
        cursor = self._db.query(
            f"SELECT frame_idx, {', '.join(self._coef_columns)} FROM fingerprints "
            "WHERE audio_uuid = ? ORDER BY frame_idx",
            (audio_uuid,),
        )
        return [self._to_frame(row) for row in cursor]

    def iter_frames(self) -> Iterator[dict[str, Any]]:
        """Yield every stored frame as ``{context, audio_uuid, frame_idx, coefs}``."""
        cursor = self._db.query(
            f"SELECT context, audio_uuid, frame_idx, {', '.join(self._coef_columns)} "
            "FROM fingerprints ORDER BY context, audio_uuid, frame_idx"
        )
        while (row := self._db.get_next_row(cursor)) is not None:
            yield {
                "context": row["context"],
                "audio_uuid": row["audio_uuid"],
                "frame_idx": row["frame_idx"],
                "coefs": [row[name] for name in self._coef_columns],
            }

    def _to_frame(self, row: dict[str, Any]) -> FingerprintFrame:
        return FingerprintFrame(
            frame_idx=row["frame_idx"],
            coefs=tuple(float(row[name]) for name in self._coef_columns),
        )

    # ========== Voting ==========

    @contextmanager
    def scratch_table(self) -> Generator[str, None, None]:
        """Create a vote table for one match session, dropped on exit."""
        with self._db.scratch_table("audio_uuid TEXT NOT NULL") as name:
            yield name

    def accumulate_votes(
        self,
        scratch: str,
        context: str,
        coefs: Sequence[float],
        tolerance: float,
    ) -> int:
        """Give one vote to every record with a frame inside the tolerance box.

        The box is ``[c - tolerance, c + tolerance]`` on each of the leading
        ``len(coefs)`` coefficients; all of them must hold.

        Returns:
            Number of records that received a vote
        """
        if not 1 <= len(coefs) <= self.n_coefs:
            raise InvalidArgument(
                f"Coefficient count must be in [1, {self.n_coefs}], got {len(coefs)}"
            )

        conditions = ["context = ?"]
        params: list[Any] = [context]
        for name, value in zip(self._coef_columns, coefs):
            conditions.append(f"{name} BETWEEN ? AND ?")
            params.extend((value - tolerance, value + tolerance))

        return self._db.execute(
            f"INSERT INTO temp.{scratch} (audio_uuid) "
            f"SELECT audio_uuid FROM fingerprints WHERE {' AND '.join(conditions)} "
            "GROUP BY audio_uuid",
            params,
        )

    def rank_candidates(self, scratch: str) -> list[tuple[str, int]]:
        """Rank voted records, most votes first.

        Equal vote counts are ordered by who received a vote first.

        Returns:
            List of (audio_uuid, votes)
        """
        cursor = self._db.query(
            f"""
            SELECT audio_uuid, COUNT(*) AS votes, MIN(rowid) AS first_vote
            FROM temp.{scratch}
            GROUP BY audio_uuid
            ORDER BY votes DESC, first_vote ASC
            """
        )
        return [(row["audio_uuid"], int(row["votes"])) for row in cursor]

    # ========== Catalog lookups ==========

    def get_audio_record(self, audio_uuid: str) -> AudioRecord | None:
        """Get the catalog record owning *audio_uuid*."""
        return self._db.audio.get(audio_uuid)

    def context_exists(self, context: str) -> bool:
        return self._db.contexts.exists(context)
