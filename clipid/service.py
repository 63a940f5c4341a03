"""Recognition service: owns the store for the lifetime of the process."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any

from clipid.core.catalog import AudioCatalog
from clipid.core.config import ClipidConfig
from clipid.core.database import Database
from clipid.core.errors import ClipidError
from clipid.core.repositories import AudioRecord, Context
from clipid.utils.logger import setup_logging
from clipid.utils.scanner import FileScanner, ScanSummary
from clipid.utils.snapshot import load_snapshot, save_snapshot
from mfccprint.database import FingerprintDB
from mfccprint.fingerprint import Fingerprinter
from mfccprint.matcher import Matcher, MatchResult


class RecognitionService:
    """Catalog and matcher wired to one store handle.

    ``start()`` opens the store and restores the snapshot, ``stop()`` writes
    the snapshot back and closes it. Also usable as a context manager:

        with RecognitionService(config) as service:
            service.add_audio("music", "song.wav")
            result = service.identify("music", "clip.wav")
    """

    def __init__(self, config: ClipidConfig | None = None, configure_logging: bool = True):
        """Initialize service.

        Args:
            config: Application configuration, defaults when None
            configure_logging: Set up root logging on start
        """
        self.config = config or ClipidConfig()
        self.configure_logging = configure_logging
        self.database: Database | None = None
        self.fingerprinter = Fingerprinter.from_config(self.config.extractor)
        self._catalog: AudioCatalog | None = None
        self._matcher: Matcher | None = None

    # ========== Lifecycle ==========

    @property
    def running(self) -> bool:
        return self.database is not None

    def start(self) -> None:
        """Open the store, restore the snapshot and seed configured contexts."""
        if self.running:
            return
        if self.configure_logging:
            setup_logging(self.config.logging)

        database = Database(self.config.database.path)
        database.connect()
        try:
            database.initialize_schema()
            fingerprints = FingerprintDB(database, n_coefs=self.config.extractor.n_coefs)
        except ClipidError:
            database.close()
            raise

        self.database = database
        self._catalog = AudioCatalog(database, fingerprints, self.fingerprinter)
        self._matcher = Matcher(
            fingerprints,
            self.fingerprinter,
            default_tolerance=self.config.matcher.tolerance,
            default_coefs=self.config.matcher.coefficients,
            timeout_sec=self.config.matcher.timeout_sec,
        )

        try:
            snapshot = self.config.database.snapshot_path
            if snapshot is not None and snapshot.exists():
                load_snapshot(self._catalog, snapshot)

            for context in self.config.catalog.contexts:
                self._catalog.add_context(context.name, context.directory, replace=True)
                if context.directory is not None:
                    self.sync_context(context.name, context.directory)
        except BaseException:
            # Never write a snapshot from a half-restored catalog
            self._close()
            raise

        logging.info(f"[Service] Started ({self.config.database.path})")

    def stop(self) -> None:
        """Write the snapshot (if configured) and close the store."""
        if not self.running:
            return
        try:
            snapshot = self.config.database.snapshot_path
            if snapshot is not None:
                save_snapshot(self.catalog, snapshot)
        finally:
            self._close()
        logging.info("[Service] Stopped")

    def _close(self) -> None:
        if self.database is not None:
            self.database.close()
        self.database = None
        self._catalog = None
        self._matcher = None

    def __enter__(self) -> RecognitionService:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    @property
    def catalog(self) -> AudioCatalog:
        if self._catalog is None:
            raise RuntimeError("Service not started")
        return self._catalog

    @property
    def matcher(self) -> Matcher:
        if self._matcher is None:
            raise RuntimeError("Service not started")
        return self._matcher

    # ========== Catalog ==========

    def add_context(
        self, name: str, directory: Path | str | None = None, replace: bool = False
    ) -> Context:
        return self.catalog.add_context(name, directory, replace=replace)

    def remove_context(self, name: str) -> int:
        return self.catalog.remove_context(name)

    def list_contexts(self) -> list[Context]:
        return self.catalog.list_contexts()

    def add_audio(self, context: str, filepath: Path | str) -> AudioRecord:
        return self.catalog.add_audio(context, filepath)

    def ingest_audio(self, context: str, filepath: Path | str) -> tuple[AudioRecord, bool]:
        """Like ``add_audio``, also telling whether the record was created."""
        return self.catalog.ingest_audio(context, filepath)

    def add_directory(
        self, context: str, directory: Path | str, workers: int | None = None
    ) -> ScanSummary:
        """Ingest every supported file of *directory* on worker threads."""
        scanner = FileScanner(self.catalog, self.config.catalog.supported_formats)
        return scanner.scan_directory(
            context, Path(directory), workers=workers or self.config.catalog.workers
        )

    def sync_context(self, name: str, directory: Path | str) -> ScanSummary | None:
        """Ingest a configured context directory; a missing directory is logged."""
        if not Path(directory).is_dir():
            logging.warning(f"[Service] Context {name}: directory {directory} not found")
            return None
        start = time.monotonic()
        summary = self.add_directory(name, directory)
        logging.info(
            f"[Service] Context {name} synced in {time.monotonic() - start:.1f}s "
            f"({summary.ingested} new, {len(summary.existing)} already cataloged)"
        )
        return summary

    def remove_audio(self, audio_uuid: str) -> AudioRecord:
        return self.catalog.remove_audio(audio_uuid)

    def list_audio(self, context: str | None = None) -> list[AudioRecord]:
        return self.catalog.list_audio(context)

    def get_stats(self) -> dict[str, Any]:
        return self.catalog.get_stats()

    # ========== Matching ==========

    def identify(
        self,
        context: str,
        filepath: Path | str,
        coefs: int | None = None,
        tolerance: float | None = None,
    ) -> MatchResult:
        """Identify a probe file within *context*.

        Args:
            context: Context to search
            filepath: Probe audio file
            coefs: Leading coefficients compared (configured default when None)
            tolerance: Acceptance half-width (configured default when None or negative)
        """
        return self.matcher.identify(context, filepath, coefs=coefs, tolerance=tolerance)

    # ========== Snapshots ==========

    def export_snapshot(self, path: Path | str) -> int:
        return save_snapshot(self.catalog, Path(path))

    def import_snapshot(self, path: Path | str) -> dict[str, int]:
        return load_snapshot(self.catalog, Path(path))
