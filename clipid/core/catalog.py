"""Audio catalog: contexts, audio records and their fingerprint frames."""

from __future__ import annotations

import hashlib
import logging
import threading
import uuid
import weakref
from collections import defaultdict
from pathlib import Path
from typing import TYPE_CHECKING, Any

from clipid.core.constants import HASH_CHUNK_SIZE
from clipid.core.database import Database
from clipid.core.errors import (
    ClipidError,
    DecodeError,
    DuplicateContext,
    InvalidArgument,
    NotFound,
    StorageError,
)
from clipid.core.repositories import AudioRecord, Context
from mfccprint.fingerprint import FingerprintFrame

if TYPE_CHECKING:
    from mfccprint.database import FingerprintDB
    from mfccprint.fingerprint import Fingerprinter


def file_hash(filepath: Path | str) -> str:
    """Lowercase hex MD5 of the whole file.

    Raises:
        DecodeError: If the file cannot be read
    """
    digest = hashlib.md5()
    try:
        with open(filepath, "rb") as f:
            while chunk := f.read(HASH_CHUNK_SIZE):
                digest.update(chunk)
    except OSError as e:
        raise DecodeError(f"Cannot read {filepath}: {e}") from e
    return digest.hexdigest()


class AudioCatalog:
    """Catalog of fingerprinted reference clips, partitioned by context.

    Within one context a given file content (by MD5) is cataloged at most
    once. Mutations are serialised per context; the check-then-insert of
    ``add_audio`` runs inside a store transaction.
    """

    def __init__(
        self,
        database: Database,
        fingerprints: FingerprintDB,
        fingerprinter: Fingerprinter,
    ) -> None:
        """Initialize catalog.

        Args:
            database: Connected catalog database (schema initialized)
            fingerprints: Fingerprint store sharing that database
            fingerprinter: Extractor used to ingest files
        """
        self.db = database
        self.fingerprints = fingerprints
        self.fingerprinter = fingerprinter
        # Entries vanish once no thread holds the lock
        self._locks: weakref.WeakValueDictionary[str, Any] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _context_lock(self, name: str) -> Any:
        with self._locks_guard:
            lock = self._locks.get(name)
            if lock is None:
                lock = self._locks[name] = threading.RLock()
            return lock

    # ========== Contexts ==========

    def add_context(
        self, name: str, directory: Path | str | None = None, replace: bool = False
    ) -> Context:
        """Create a context, or replace its directory when *replace* is set.

        Replacing never touches the audio records of the context.

        Raises:
            InvalidArgument: If *name* is empty
            DuplicateContext: If the context exists and *replace* is False
        """
        if not name:
            raise InvalidArgument("Context name must not be empty")

        context = Context(name=name, directory=str(directory) if directory is not None else None)
        with self._context_lock(name):
            if replace:
                self.db.contexts.upsert(context)
            else:
                if self.db.contexts.exists(name):
                    raise DuplicateContext(name)
                self.db.contexts.add(context)

        logging.info(f"[Catalog] Context {name} {'set' if replace else 'created'}")
        return context

    def remove_context(self, name: str) -> int:
        """Delete a context with every audio record and frame it owns.

        Records are removed one at a time; a record that fails to delete is
        logged and skipped. Frames still tagged with the context are swept
        afterwards.

        Returns:
            Number of audio records removed

        Raises:
            NotFound: If the context does not exist
        """
        with self._context_lock(name):
            if not self.db.contexts.exists(name):
                raise NotFound(f"Context not found: {name}")

            removed = 0
            for record in self.db.audio.get_all(name):
                try:
                    self._delete_record(record)
                    removed += 1
                except ClipidError as e:
                    logging.error(f"[Catalog] Failed to remove {record.uuid} from {name}: {e}")

            swept = self.fingerprints.delete_by_context(name)
            if swept:
                logging.debug(f"[Catalog] Swept {swept} stray frames of {name}")
            self.db.contexts.delete(name)

        logging.info(f"[Catalog] Context {name} removed ({removed} records)")
        return removed

    def get_context(self, name: str) -> Context:
        """Raises NotFound if the context does not exist."""
        context = self.db.contexts.get(name)
        if context is None:
            raise NotFound(f"Context not found: {name}")
        return context

    def list_contexts(self) -> list[Context]:
        return self.db.contexts.get_all()

    # ========== Audio ==========

    def add_audio(self, context: str, filepath: Path | str) -> AudioRecord:
        """Fingerprint *filepath* into *context*, see ``ingest_audio``."""
        record, _created = self.ingest_audio(context, filepath)
        return record

    def ingest_audio(self, context: str, filepath: Path | str) -> tuple[AudioRecord, bool]:
        """Fingerprint *filepath* into *context*.

        If the same content is already cataloged in that context the existing
        record is returned and nothing is written.

        Args:
            context: Target context name
            filepath: Audio file to ingest

        Returns:
            (record, created): the new or existing AudioRecord, and whether
            this call created it

        Raises:
            NotFound: If the context does not exist
            DecodeError: If the file cannot be read or decoded
            OperationTimeout: If extraction exceeds its budget
            StorageError: If the record or its frames cannot be written
        """
        path = Path(filepath)
        if not self.db.contexts.exists(context):
            raise NotFound(f"Context not found: {context}")

        content_hash = file_hash(path)
        existing = self.db.audio.get_by_hash(context, content_hash)
        if existing is not None:
            logging.debug(f"[Catalog] {path.name} already in {context} as {existing.uuid}")
            return existing, False

        # Extraction runs before any lock is taken
        frames = self.fingerprinter.extract_all(path, deadline=self.fingerprinter.deadline_for(path))

        with self._context_lock(context), self.db.transaction():
            if not self.db.contexts.exists(context):
                raise NotFound(f"Context not found: {context}")
            existing = self.db.audio.get_by_hash(context, content_hash)
            if existing is not None:
                return existing, False

            record = AudioRecord(
                uuid=str(uuid.uuid4()), name=path.name, context=context, hash=content_hash
            )
            self.db.audio.add(record)
            self.fingerprints.store_frames(context, record.uuid, frames)

        logging.info(f"[Catalog] Added {record.name} to {context} ({len(frames)} frames)")
        return record, True

    def remove_audio(self, audio_uuid: str) -> AudioRecord:
        """Delete an audio record and all of its frames.

        Both deletes are attempted even if the first one fails.

        Returns:
            The removed record

        Raises:
            NotFound: If no record has this uuid
            StorageError: If either delete failed
        """
        record = self.get_audio(audio_uuid)
        with self._context_lock(record.context):
            self._delete_record(record)
        logging.info(f"[Catalog] Removed {record.name} ({record.uuid}) from {record.context}")
        return record

    def _delete_record(self, record: AudioRecord) -> None:
        failures = []
        try:
            self.db.audio.delete(record.uuid)
        except StorageError as e:
            logging.error(f"[Catalog] Failed to delete record {record.uuid}: {e}")
            failures.append(str(e))
        try:
            self.fingerprints.delete_by_audio(record.uuid)
        except StorageError as e:
            logging.error(f"[Catalog] Failed to delete frames of {record.uuid}: {e}")
            failures.append(str(e))

        if failures:
            raise StorageError(f"Incomplete removal of {record.uuid}: {'; '.join(failures)}")

    def get_audio(self, audio_uuid: str) -> AudioRecord:
        """Raises NotFound if no record has this uuid."""
        record = self.db.audio.get(audio_uuid)
        if record is None:
            raise NotFound(f"Audio record not found: {audio_uuid}")
        return record

    def list_audio(self, context: str | None = None) -> list[AudioRecord]:
        return self.db.audio.get_all(context)

    def get_stats(self) -> dict[str, Any]:
        """Get catalog statistics.

        Returns:
            Dict with context, audio record and frame counts
        """
        audio_count = self.db.audio.count()
        frame_count = self.fingerprints.count_frames()
        return {
            "contexts": self.db.contexts.count(),
            "audio": audio_count,
            "frames": frame_count,
            "avg_frames_per_audio": frame_count / audio_count if audio_count else 0,
        }

    # ========== Persistence hand-off ==========

    def export_rows(self) -> dict[str, Any]:
        """Dump the whole catalog as plain rows.

        Returns:
            Dict with ``n_coefs``, ``contexts``, ``audio`` and ``fingerprints``
        """
        return {
            "n_coefs": self.fingerprints.n_coefs,
            "contexts": [c.to_dict() for c in self.list_contexts()],
            "audio": [r.to_dict() for r in self.list_audio()],
            "fingerprints": list(self.fingerprints.iter_frames()),
        }

    def load_rows(self, rows: dict[str, Any]) -> dict[str, int]:
        """Merge rows produced by ``export_rows`` into the catalog.

        Contexts and records are inserted or replaced by key. A record whose
        content already exists in its context under another uuid is skipped,
        together with its frames. The frames of every loaded record replace
        the ones stored for it.

        Returns:
            Counts of loaded contexts, audio records, frames and skipped records

        Raises:
            InvalidArgument: If the rows are malformed or have another width
        """
        if rows.get("n_coefs") != self.fingerprints.n_coefs:
            raise InvalidArgument(
                f"Snapshot holds {rows.get('n_coefs')} coefficients per frame, "
                f"store expects {self.fingerprints.n_coefs}"
            )

        try:
            contexts = [Context(name=c["name"], directory=c.get("directory")) for c in rows["contexts"]]
            records = [AudioRecord.from_row(r) for r in rows["audio"]]
            frames: dict[str, list[FingerprintFrame]] = defaultdict(list)
            for f in rows["fingerprints"]:
                frames[f["audio_uuid"]].append(
                    FingerprintFrame(int(f["frame_idx"]), tuple(float(c) for c in f["coefs"]))
                )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise InvalidArgument(f"Malformed catalog rows: {e}") from e

        counts = {"contexts": 0, "audio": 0, "frames": 0, "skipped": 0}
        with self.db.transaction():
            for context in contexts:
                self.db.contexts.upsert(context)
                counts["contexts"] += 1

            for record in records:
                if not self.db.contexts.exists(record.context):
                    logging.warning(f"[Catalog] Skipping {record.uuid}: unknown context {record.context}")
                    counts["skipped"] += 1
                    continue
                clash = self.db.audio.get_by_hash(record.context, record.hash)
                if clash is not None and clash.uuid != record.uuid:
                    logging.warning(
                        f"[Catalog] Skipping {record.uuid}: content already cataloged as {clash.uuid}"
                    )
                    counts["skipped"] += 1
                    continue

                self.db.audio.upsert(record)
                counts["frames"] += self.fingerprints.replace_frames(
                    record.context, record.uuid, frames.get(record.uuid, [])
                )
                counts["audio"] += 1

        logging.info(
            f"[Catalog] Loaded {counts['contexts']} contexts, {counts['audio']} records, "
            f"{counts['frames']} frames ({counts['skipped']} skipped)"
        )
        return counts
