"""JSON snapshots of the catalog.

A snapshot is a self-describing document::

    {"format": "clipid-snapshot", "version": 1, "n_coefs": 13,
     "contexts": [...], "audio": [...],
     "fingerprints": [{"context", "audio_uuid", "frame_idx", "coefs": [...]}]}

It carries an in-memory catalog across restarts.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from clipid.core.constants import SNAPSHOT_FORMAT, SNAPSHOT_VERSION
from clipid.core.errors import InvalidArgument, NotFound, StorageError

if TYPE_CHECKING:
    from clipid.core.catalog import AudioCatalog

logger = logging.getLogger(__name__)

_SECTIONS = ("contexts", "audio", "fingerprints")


def build_document(catalog: AudioCatalog) -> dict[str, Any]:
    """Wrap the catalog rows with the snapshot header."""
    rows = catalog.export_rows()
    return {"format": SNAPSHOT_FORMAT, "version": SNAPSHOT_VERSION, **rows}


def validate_document(document: Any) -> dict[str, Any]:
    """Check the snapshot header and section types.

    Raises:
        InvalidArgument: If the document is not a supported snapshot
    """
    if not isinstance(document, dict) or document.get("format") != SNAPSHOT_FORMAT:
        raise InvalidArgument("Not a clipid snapshot")
    if document.get("version") != SNAPSHOT_VERSION:
        raise InvalidArgument(f"Unsupported snapshot version: {document.get('version')}")
    if not isinstance(document.get("n_coefs"), int):
        raise InvalidArgument("Snapshot has no coefficient width")
    for section in _SECTIONS:
        if not isinstance(document.get(section), list):
            raise InvalidArgument(f"Snapshot section {section!r} must be a list")
    return document


def save_snapshot(catalog: AudioCatalog, path: Path) -> int:
    """Write the catalog to *path*, replacing it atomically.

    Returns:
        Number of audio records written

    Raises:
        StorageError: If the file cannot be written
    """
    document = build_document(catalog)
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(document, f)
        tmp_path.replace(path)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise StorageError(f"Could not write snapshot {path}: {e}") from e

    logger.info(
        "[Snapshot] Saved %d records (%d frames) to %s",
        len(document["audio"]),
        len(document["fingerprints"]),
        path,
    )
    return len(document["audio"])


def load_snapshot(catalog: AudioCatalog, path: Path) -> dict[str, int]:
    """Merge the snapshot at *path* into the catalog.

    Returns:
        Counts reported by ``AudioCatalog.load_rows``

    Raises:
        NotFound: If *path* does not exist
        InvalidArgument: If the file is not a valid snapshot for this store
    """
    if not path.exists():
        raise NotFound(f"Snapshot not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            document = json.load(f)
    except ValueError as e:
        raise InvalidArgument(f"Snapshot {path} is not valid JSON: {e}") from e
    except OSError as e:
        raise StorageError(f"Could not read snapshot {path}: {e}") from e

    counts = catalog.load_rows(validate_document(document))
    logger.info("[Snapshot] Loaded %s from %s", counts, path)
    return counts
