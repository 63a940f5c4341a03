"""Tests for file scanner."""

from pathlib import Path

import pytest

from clipid.core.catalog import AudioCatalog
from clipid.core.errors import InvalidArgument
from clipid.utils.scanner import FileScanner


class TestFileScanner:
    """Test suite for FileScanner."""

    def test_find_audio_files(self, catalog: AudioCatalog, tmp_path: Path) -> None:
        """Test finding audio files."""
        (tmp_path / "clip1.wav").touch()
        (tmp_path / "clip2.flac").touch()
        (tmp_path / "other.txt").touch()
        (tmp_path / "nested").mkdir()
        (tmp_path / "nested" / "clip3.wav").touch()

        scanner = FileScanner(catalog, ["wav", "flac"])

        flat = scanner._find_audio_files(tmp_path, recursive=False)
        deep = scanner._find_audio_files(tmp_path, recursive=True)

        assert [f.name for f in flat] == ["clip1.wav", "clip2.flac"]
        assert len(deep) == 3

    def test_scan_directory(self, catalog: AudioCatalog, make_wav, tmp_path: Path) -> None:
        """Test every supported file is ingested."""
        make_wav("library/a.wav", freq=300)
        make_wav("library/b.wav", freq=700)
        make_wav("library/sub/c.wav", kind="noise")

        progress: list[tuple[int, int]] = []
        scanner = FileScanner(catalog, ["wav"], progress_callback=lambda i, n: progress.append((i, n)))
        summary = scanner.scan_directory("music", tmp_path / "library", workers=3)

        assert summary.total == 3
        assert summary.ingested == 3
        assert summary.failed == []
        assert sorted(r.name for r in catalog.list_audio("music")) == ["a.wav", "b.wav", "c.wav"]
        assert progress[-1] == (3, 3)

    def test_scan_is_idempotent(self, catalog: AudioCatalog, make_wav, tmp_path: Path) -> None:
        make_wav("library/a.wav")
        scanner = FileScanner(catalog, ["wav"])

        first = scanner.scan_directory("music", tmp_path / "library")
        second = scanner.scan_directory("music", tmp_path / "library")

        assert second.records == []
        assert second.existing == first.records
        assert len(catalog.list_audio()) == 1

    def test_identical_files_counted_once(
        self, catalog: AudioCatalog, make_wav, tmp_path: Path
    ) -> None:
        """Test byte-identical files yield one new record and one existing."""
        original = make_wav("library/a.wav")
        (tmp_path / "library" / "a_copy.wav").write_bytes(original.read_bytes())
        scanner = FileScanner(catalog, ["wav"])

        summary = scanner.scan_directory("music", tmp_path / "library", workers=2)

        assert summary.total == 2
        assert summary.ingested == 1
        assert summary.existing == summary.records
        assert len(catalog.list_audio()) == 1

    def test_scan_skips_undecodable_files(
        self, catalog: AudioCatalog, make_wav, tmp_path: Path
    ) -> None:
        """Test that a bad file is counted and the others still ingested."""
        make_wav("library/valid.wav")
        (tmp_path / "library" / "broken.wav").write_bytes(b"garbage")

        scanner = FileScanner(catalog, ["wav"])
        summary = scanner.scan_directory("music", tmp_path / "library", workers=2)

        assert summary.ingested == 1
        assert [p.name for p in summary.failed] == ["broken.wav"]
        assert [r.name for r in catalog.list_audio()] == ["valid.wav"]

    def test_scan_nonexistent_directory(self, catalog: AudioCatalog, tmp_path: Path) -> None:
        """Test scanning non-existent directory raises error."""
        scanner = FileScanner(catalog, ["wav"])

        with pytest.raises(InvalidArgument):
            scanner.scan_directory("music", tmp_path / "nonexistent")

    def test_scan_empty_directory(self, catalog: AudioCatalog, tmp_path: Path) -> None:
        scanner = FileScanner(catalog, ["wav"])

        summary = scanner.scan_directory("music", tmp_path)

        assert summary.total == 0
        assert summary.ingested == 0
