"""Tests for mfccprint.database: frame storage and range votes."""

from __future__ import annotations

import pytest

from clipid.core.database import Database
from clipid.core.errors import InvalidArgument, StorageError
from clipid.core.repositories import AudioRecord, Context
from mfccprint.database import FingerprintDB
from mfccprint.fingerprint import FingerprintFrame


def _frames(*values: tuple[float, ...]) -> list[FingerprintFrame]:
    return [FingerprintFrame(i, tuple(v)) for i, v in enumerate(values)]


@pytest.fixture
def small_db(database: Database) -> FingerprintDB:
    """A three-coefficient store with contexts "music" and "prompts"."""
    database.contexts.add(Context("music"))
    database.contexts.add(Context("prompts"))
    return FingerprintDB(database, n_coefs=3)


class TestSchema:
    """Tests for table creation and width checks."""

    def test_columns(self, database: Database, fingerprints: FingerprintDB) -> None:
        columns = database.table_columns("fingerprints")

        assert columns[:3] == ["context", "audio_uuid", "frame_idx"]
        assert columns[3:] == [f"coef{i}" for i in range(1, 14)]

    def test_indexes(self, database: Database, fingerprints: FingerprintDB) -> None:
        cursor = database.query(
            "SELECT name FROM sqlite_master WHERE type = 'index' AND tbl_name = 'fingerprints'"
        )
        names = {row["name"] for row in cursor}

        assert "idx_fingerprints_context_coef1" in names
        assert "idx_fingerprints_audio_uuid" in names
        assert {f"idx_fingerprints_coef{i}" for i in range(1, 14)} <= names

    def test_reopen_same_width(self, database: Database, fingerprints: FingerprintDB) -> None:
        assert FingerprintDB(database).n_coefs == 13

    def test_width_mismatch(self, database: Database, fingerprints: FingerprintDB) -> None:
        with pytest.raises(StorageError):
            FingerprintDB(database, n_coefs=5)

    def test_invalid_width(self, database: Database) -> None:
        with pytest.raises(InvalidArgument):
            FingerprintDB(database, n_coefs=0)


class TestFrames:
    """Tests for storing, reading and deleting frames."""

    def test_store_and_read(self, small_db: FingerprintDB) -> None:
        frames = _frames((1.0, 2.0, 3.0), (4.0, 5.0, 6.0))

        assert small_db.store_frames("music", "u1", frames) == 2
        assert small_db.get_frames("u1") == frames
        assert small_db.count_frames("u1") == 2
        assert small_db.count_frames() == 2

    def test_wrong_width_rejected(self, small_db: FingerprintDB) -> None:
        with pytest.raises(InvalidArgument):
            small_db.store_frames("music", "u1", _frames((1.0, 2.0)))

    def test_empty_store(self, small_db: FingerprintDB) -> None:
        assert small_db.store_frames("music", "u1", []) == 0

    def test_delete_by_audio(self, small_db: FingerprintDB) -> None:
        small_db.store_frames("music", "u1", _frames((1.0, 2.0, 3.0)))
        small_db.store_frames("music", "u2", _frames((1.0, 2.0, 3.0)))

        assert small_db.delete_by_audio("u1") == 1
        assert small_db.count_frames("u1") == 0
        assert small_db.count_frames("u2") == 1

    def test_delete_by_context(self, small_db: FingerprintDB) -> None:
        small_db.store_frames("music", "u1", _frames((1.0, 2.0, 3.0), (1.0, 2.0, 3.0)))
        small_db.store_frames("prompts", "u2", _frames((1.0, 2.0, 3.0)))

        assert small_db.delete_by_context("music") == 2
        assert small_db.count_frames() == 1

    def test_replace_frames(self, small_db: FingerprintDB) -> None:
        small_db.store_frames("music", "u1", _frames((1.0, 2.0, 3.0), (4.0, 5.0, 6.0)))

        small_db.replace_frames("music", "u1", _frames((7.0, 8.0, 9.0)))

        assert small_db.get_frames("u1") == _frames((7.0, 8.0, 9.0))

    def test_iter_frames(self, small_db: FingerprintDB) -> None:
        small_db.store_frames("music", "u1", _frames((1.0, 2.0, 3.0)))

        assert list(small_db.iter_frames()) == [
            {"context": "music", "audio_uuid": "u1", "frame_idx": 0, "coefs": [1.0, 2.0, 3.0]}
        ]


class TestVoting:
    """Tests for tolerance-box votes and candidate ranking."""

    def test_box_on_leading_coefficients(self, small_db: FingerprintDB) -> None:
        """Only the first len(coefs) coefficients are constrained."""
        small_db.store_frames("music", "near", _frames((1.0, 2.0, 50.0)))
        small_db.store_frames("music", "far", _frames((1.0, 9.0, 3.0)))

        with small_db.scratch_table() as scratch:
            assert small_db.accumulate_votes(scratch, "music", (1.0, 2.05), 0.1) == 1
            assert small_db.rank_candidates(scratch) == [("near", 1)]

    def test_bounds_are_inclusive(self, small_db: FingerprintDB) -> None:
        small_db.store_frames("music", "u1", _frames((1.5, 0.0, 0.0)))

        with small_db.scratch_table() as scratch:
            small_db.accumulate_votes(scratch, "music", (1.0,), 0.5)
            assert small_db.rank_candidates(scratch) == [("u1", 1)]

    def test_one_vote_per_record_per_frame(self, small_db: FingerprintDB) -> None:
        small_db.store_frames("music", "u1", _frames((1.0, 0.0, 0.0), (1.0, 1.0, 1.0)))

        with small_db.scratch_table() as scratch:
            small_db.accumulate_votes(scratch, "music", (1.0,), 0.0)
            assert small_db.rank_candidates(scratch) == [("u1", 1)]

    def test_context_filter(self, small_db: FingerprintDB) -> None:
        small_db.store_frames("music", "m1", _frames((1.0, 0.0, 0.0)))
        small_db.store_frames("prompts", "p1", _frames((1.0, 0.0, 0.0)))

        with small_db.scratch_table() as scratch:
            small_db.accumulate_votes(scratch, "prompts", (1.0,), 0.001)
            assert small_db.rank_candidates(scratch) == [("p1", 1)]

    def test_ranking_by_votes(self, small_db: FingerprintDB) -> None:
        small_db.store_frames("music", "a", _frames((1.0, 0.0, 0.0)))
        small_db.store_frames("music", "b", _frames((1.0, 0.0, 0.0), (2.0, 0.0, 0.0)))

        with small_db.scratch_table() as scratch:
            for value in (1.0, 2.0):
                small_db.accumulate_votes(scratch, "music", (value,), 0.0)
            assert small_db.rank_candidates(scratch) == [("b", 2), ("a", 1)]

    def test_tie_goes_to_earliest_vote(self, small_db: FingerprintDB) -> None:
        """Equal vote counts rank by the probe frame of the first vote."""
        small_db.store_frames("music", "zzz-early", _frames((1.0, 0.0, 0.0), (3.0, 0.0, 0.0)))
        small_db.store_frames("music", "aaa-late", _frames((2.0, 0.0, 0.0), (4.0, 0.0, 0.0)))

        with small_db.scratch_table() as scratch:
            for value in (1.0, 2.0, 3.0, 4.0):
                small_db.accumulate_votes(scratch, "music", (value,), 0.0)
            assert small_db.rank_candidates(scratch) == [("zzz-early", 2), ("aaa-late", 2)]

    def test_concurrent_sessions_are_isolated(self, small_db: FingerprintDB) -> None:
        small_db.store_frames("music", "u1", _frames((1.0, 0.0, 0.0)))

        with small_db.scratch_table() as first, small_db.scratch_table() as second:
            small_db.accumulate_votes(first, "music", (1.0,), 0.0)
            assert small_db.rank_candidates(first) == [("u1", 1)]
            assert small_db.rank_candidates(second) == []

    def test_coefficient_count_checked(self, small_db: FingerprintDB) -> None:
        with small_db.scratch_table() as scratch:
            with pytest.raises(InvalidArgument):
                small_db.accumulate_votes(scratch, "music", (), 0.1)
            with pytest.raises(InvalidArgument):
                small_db.accumulate_votes(scratch, "music", (1.0, 2.0, 3.0, 4.0), 0.1)


class TestCatalogLookups:
    def test_record_and_context(self, database: Database, small_db: FingerprintDB) -> None:
        record = AudioRecord("u1", "a.wav", "music", "abc")
        database.audio.add(record)

        assert small_db.get_audio_record("u1") == record
        assert small_db.get_audio_record("u2") is None
        assert small_db.context_exists("music")
        assert not small_db.context_exists("other")
