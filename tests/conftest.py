"""Pytest configuration and fixtures."""

from pathlib import Path

import numpy as np
import pytest
import soundfile as sf

SAMPLE_RATE = 22050


def write_wav(path: Path, samples: np.ndarray, sample_rate: int = SAMPLE_RATE) -> Path:
    """Write float samples (frames x channels, or 1-D mono) to a WAV file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    sf.write(str(path), samples, sample_rate)
    return path


def tone(freq: float, duration_sec: float = 0.5, sr: int = SAMPLE_RATE) -> np.ndarray:
    """A sine tone with a few harmonics, as float64."""
    t = np.arange(int(sr * duration_sec)) / sr
    signal = sum(np.sin(2 * np.pi * freq * k * t) / k for k in (1, 2, 3))
    return 0.4 * signal / np.max(np.abs(signal))


def noise(duration_sec: float = 0.5, seed: int = 0, sr: int = SAMPLE_RATE) -> np.ndarray:
    """Reproducible white noise, as float64."""
    rng = np.random.default_rng(seed)
    return rng.uniform(-0.3, 0.3, int(sr * duration_sec))


@pytest.fixture
def make_wav(tmp_path: Path):
    """Factory writing synthetic clips: make_wav(name, kind="tone", freq=440, ...)."""

    def _make(
        name: str,
        kind: str = "tone",
        freq: float = 440,
        duration_sec: float = 0.5,
        channels: int = 1,
        seed: int = 0,
    ) -> Path:
        if kind == "tone":
            samples = tone(freq, duration_sec)
        elif kind == "noise":
            samples = noise(duration_sec, seed)
        else:
            raise ValueError(kind)
        if channels > 1:
            samples = np.column_stack([samples] * channels)
        return write_wav(tmp_path / name, samples)

    return _make


@pytest.fixture
def tone_wav(tmp_path: Path) -> Path:
    """A 440 Hz clip."""
    return write_wav(tmp_path / "tone_440.wav", tone(440))


@pytest.fixture
def other_tone_wav(tmp_path: Path) -> Path:
    """A 1250 Hz clip."""
    return write_wav(tmp_path / "tone_1250.wav", tone(1250))


@pytest.fixture
def noise_wav(tmp_path: Path) -> Path:
    """A white noise clip."""
    return write_wav(tmp_path / "noise.wav", noise())


@pytest.fixture
def corrupt_wav(tmp_path: Path) -> Path:
    """A file with an audio extension that is not audio."""
    path = tmp_path / "corrupt.wav"
    path.write_bytes(b"this is not a wav file at all")
    return path


@pytest.fixture
def test_config(tmp_path: Path):
    """Provide test configuration."""
    from clipid.core.config import ClipidConfig, DatabaseConfig, LoggingConfig

    return ClipidConfig(
        database=DatabaseConfig(path=":memory:", snapshot_path=tmp_path / "catalog.json"),
        logging=LoggingConfig(level="DEBUG"),
    )


@pytest.fixture
def database():
    """Provide a connected in-memory database with the catalog schema."""
    from clipid.core.database import Database

    db = Database(":memory:")
    db.connect()
    db.initialize_schema()
    yield db
    db.close()


@pytest.fixture
def fingerprints(database):
    """Provide a fingerprint store on the test database."""
    from mfccprint.database import FingerprintDB

    return FingerprintDB(database)


@pytest.fixture
def fingerprinter():
    from mfccprint.fingerprint import Fingerprinter

    return Fingerprinter()


@pytest.fixture
def catalog(database, fingerprints, fingerprinter):
    """Provide an AudioCatalog with an empty "music" context."""
    from clipid.core.catalog import AudioCatalog

    catalog = AudioCatalog(database, fingerprints, fingerprinter)
    catalog.add_context("music")
    return catalog


@pytest.fixture
def matcher(fingerprints, fingerprinter):
    from mfccprint.matcher import Matcher

    return Matcher(fingerprints, fingerprinter)
