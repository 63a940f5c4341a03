"""File scanner for audio directories."""

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path

from clipid.core.catalog import AudioCatalog
from clipid.core.errors import ClipidError, InvalidArgument
from clipid.core.repositories import AudioRecord


@dataclass
class ScanSummary:
    """Outcome of ingesting one directory."""

    total: int = 0
    records: list[AudioRecord] = field(default_factory=list)  # Created by this scan
    existing: list[AudioRecord] = field(default_factory=list)  # Content already cataloged
    failed: list[Path] = field(default_factory=list)

    @property
    def ingested(self) -> int:
        return len(self.records)


class FileScanner:
    """Scan directories for audio files and ingest them into a context."""

    def __init__(
        self,
        catalog: AudioCatalog,
        supported_formats: list[str],
        progress_callback: Callable[[int, int], None] | None = None,
    ):
        """Initialize scanner.

        Args:
            catalog: Catalog receiving the files
            supported_formats: List of supported file extensions
            progress_callback: Optional callback(current, total)
        """
        self.catalog = catalog
        self.supported_formats = [f".{fmt.lstrip('.')}" for fmt in supported_formats]
        self.progress_callback = progress_callback

    def scan_directory(
        self, context: str, directory: Path, recursive: bool = True, workers: int = 1
    ) -> ScanSummary:
        """Ingest every supported audio file of *directory* into *context*.

        Extraction of the files is spread over *workers* threads. A file that
        fails is logged and counted, the others are still ingested.

        Args:
            context: Target context name
            directory: Directory to scan
            recursive: Whether to scan recursively
            workers: Number of worker threads

        Returns:
            ScanSummary with new records, already cataloged ones and failures

        Raises:
            InvalidArgument: If directory doesn't exist
        """
        if not directory.is_dir():
            raise InvalidArgument(f"Directory does not exist: {directory}")

        files = self._find_audio_files(directory, recursive)
        summary = ScanSummary(total=len(files))
        if not files:
            logging.info(f"[Scanner] No audio files in {directory}")
            return summary

        with ThreadPoolExecutor(max_workers=max(1, workers)) as executor:
            futures = {
                executor.submit(self.catalog.ingest_audio, context, filepath): filepath
                for filepath in files
            }
            for done, future in enumerate(as_completed(futures), start=1):
                filepath = futures[future]
                try:
                    record, created = future.result()
                except ClipidError as e:
                    logging.warning(f"[Scanner] Skipping {filepath}: {e}")
                    summary.failed.append(filepath)
                else:
                    if created:
                        summary.records.append(record)
                    else:
                        summary.existing.append(record)

                if self.progress_callback:
                    self.progress_callback(done, summary.total)

        logging.info(
            f"[Scanner] {directory} -> {context}: {summary.ingested} new, "
            f"{len(summary.existing)} already cataloged, {len(summary.failed)} failed"
        )
        return summary

    def _find_audio_files(self, directory: Path, recursive: bool) -> list[Path]:
        """Find all audio files in directory.

        Args:
            directory: Directory to search
            recursive: Whether to search recursively

        Returns:
            List of audio file paths
        """
        files: list[Path] = []

        if recursive:
            for ext in self.supported_formats:
                files.extend(directory.rglob(f"*{ext}"))
        else:
            for ext in self.supported_formats:
                files.extend(directory.glob(f"*{ext}"))

        return sorted(files)
