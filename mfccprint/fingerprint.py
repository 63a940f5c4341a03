"""Spectral feature extraction (MFCC frames) from audio files.

Each analysis frame is reduced to a short vector of cepstral coefficients:

- Read the file hop by hop at its native sample rate, down-mixed to mono
- Slide every hop into a fixed window buffer (zero-filled at start)
- Hann window, zero-phase shift, real FFT -> magnitude spectrum
- Slaney mel filter bank -> log10 band energies -> orthonormal DCT-II
- Keep the first coefficients, each rescaled to ``10 * log10(|c|)``

The stream is lazy and single-pass so that matching can start before the
whole probe has been decoded.
"""

from __future__ import annotations

import logging
import math
import os
import time
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterator

import numpy as np
import soundfile as sf
from scipy.fft import dct
from scipy.signal import get_window

from clipid.core.constants import (
    BAND_ENERGY_FLOOR,
    COEF_MAGNITUDE_FLOOR,
    HOP_SIZE,
    N_COEFS,
    N_FILTERS,
    WINDOW_SIZE,
)
from clipid.core.errors import DecodeError, OperationTimeout

logger = logging.getLogger(__name__)

# libsndfile reports failures as RuntimeError (LibsndfileError), unsupported
# inputs as TypeError, filesystem problems as OSError
_DECODE_ERRORS = (RuntimeError, OSError, TypeError)


@dataclass(frozen=True, slots=True)
class FingerprintFrame:
    """One analysis window's feature vector.

    Attributes:
        frame_idx: 0-based position of the frame in its file
        coefs: The frame's cepstral coefficients, ``coefs[0]`` is coef1
    """
    frame_idx: int
    coefs: tuple[float, ...]


@lru_cache(maxsize=16)
def _mel_filters(samplerate: int, window_size: int, n_filters: int) -> np.ndarray:
    """Slaney-normalised mel filter bank, shape ``(n_filters, window_size // 2 + 1)``."""
    import librosa

    return librosa.filters.mel(
        sr=samplerate, n_fft=window_size, n_mels=n_filters, dtype=np.float64
    )


@lru_cache(maxsize=4)
def _hann(window_size: int) -> np.ndarray:
    return get_window("hann", window_size)


def compute_mfcc(
    window: np.ndarray,
    samplerate: int,
    n_filters: int = N_FILTERS,
    n_coefs: int = N_COEFS,
) -> np.ndarray:
    """Compute the rescaled cepstral coefficients of one window buffer.

    Args:
        window: Mono samples, length is the analysis window size
        samplerate: Sample rate of the samples in Hz
        n_filters: Number of mel bands
        n_coefs: Number of coefficients to keep

    Returns:
        Array of ``n_coefs`` finite floats
    """
    size = len(window)
    # Phase-vocoder style: center the window on sample 0 before the FFT
    shifted = np.roll(window * _hann(size), size // 2)
    magnitude = np.abs(np.fft.rfft(shifted))

    energies = _mel_filters(samplerate, size, n_filters) @ magnitude
    log_energies = np.log10(np.maximum(energies, BAND_ENERGY_FLOOR))
    cepstrum = dct(log_energies, type=2, norm="ortho")[:n_coefs]

    return 10.0 * np.log10(np.maximum(np.abs(cepstrum), COEF_MAGNITUDE_FLOOR))


class FrameStream:
    """Lazy, finite, non-restartable sequence of FingerprintFrames for one file.

    ``frame_count`` is known up front from the file header. Iterating past the
    last frame closes the underlying file. Use as a context manager to release
    the file early.
    """

    def __init__(
        self,
        path: Path | str,
        hop_size: int = HOP_SIZE,
        window_size: int = WINDOW_SIZE,
        n_filters: int = N_FILTERS,
        n_coefs: int = N_COEFS,
        deadline: float | None = None,
    ):
        self.path = Path(path)
        self.hop_size = hop_size
        self.window_size = window_size
        self.n_filters = n_filters
        self.n_coefs = n_coefs
        self.deadline = deadline

        try:
            self._file: sf.SoundFile | None = sf.SoundFile(str(self.path))
        except _DECODE_ERRORS as e:
            raise DecodeError(f"Cannot decode {self.path}: {e}") from e

        self.samplerate = self._file.samplerate
        self.frame_count = math.ceil(self._file.frames / hop_size)
        self._buffer = np.zeros(window_size, dtype=np.float64)
        self._next_idx = 0

    def __iter__(self) -> Iterator[FingerprintFrame]:
        return self

    def __next__(self) -> FingerprintFrame:
        if self._file is None:
            raise StopIteration

        if self.deadline is not None and time.monotonic() > self.deadline:
            self.close()
            raise OperationTimeout(f"Extraction of {self.path} timed out")

        try:
            block = self._file.read(self.hop_size, dtype="float64", always_2d=True)
        except _DECODE_ERRORS as e:
            self.close()
            raise DecodeError(f"Decode error in {self.path} at frame {self._next_idx}: {e}") from e

        if len(block) == 0:
            self.close()
            raise StopIteration

        hop = block.mean(axis=1)
        if len(hop) < self.hop_size:
            hop = np.pad(hop, (0, self.hop_size - len(hop)))

        self._buffer = np.concatenate((self._buffer[self.hop_size:], hop))
        coefs = compute_mfcc(self._buffer, self.samplerate, self.n_filters, self.n_coefs)

        frame = FingerprintFrame(self._next_idx, tuple(float(c) for c in coefs))
        self._next_idx += 1
        return frame

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> FrameStream:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class Fingerprinter:
    """Extract MFCC fingerprint frames from audio files.

    Extraction is pure and stateless apart from the cached filter banks, so
    one instance can be shared by worker threads.
    """

    def __init__(
        self,
        hop_size: int = HOP_SIZE,
        window_size: int = WINDOW_SIZE,
        n_filters: int = N_FILTERS,
        n_coefs: int = N_COEFS,
        timeout_base_sec: float = 30.0,
        timeout_per_mb_sec: float = 10.0,
    ):
        """Initialize fingerprinter.

        Args:
            hop_size: Samples advanced between frames
            window_size: Samples per analysis window
            n_filters: Number of mel bands
            n_coefs: Coefficients kept per frame
            timeout_base_sec: Fixed part of the extraction timeout
            timeout_per_mb_sec: Extraction timeout added per MB of file
        """
        self.hop_size = hop_size
        self.window_size = window_size
        self.n_filters = n_filters
        self.n_coefs = n_coefs
        self.timeout_base_sec = timeout_base_sec
        self.timeout_per_mb_sec = timeout_per_mb_sec

    @classmethod
    def from_config(cls, config) -> Fingerprinter:
        """Build a fingerprinter from an ``ExtractorConfig``."""
        return cls(
            hop_size=config.hop_size,
            window_size=config.window_size,
            n_filters=config.n_filters,
            n_coefs=config.n_coefs,
            timeout_base_sec=config.timeout_base_sec,
            timeout_per_mb_sec=config.timeout_per_mb_sec,
        )

    def open(self, path: Path | str, deadline: float | None = None) -> FrameStream:
        """Open a lazy frame stream over *path*.

        Raises:
            DecodeError: If the file cannot be opened as audio
        """
        return FrameStream(
            path,
            hop_size=self.hop_size,
            window_size=self.window_size,
            n_filters=self.n_filters,
            n_coefs=self.n_coefs,
            deadline=deadline,
        )

    def extract_all(self, path: Path | str, deadline: float | None = None) -> list[FingerprintFrame]:
        """Extract every frame of *path* into a list.

        Raises:
            DecodeError: If the file is unreadable or fails mid-stream
            OperationTimeout: If *deadline* passes before the end
        """
        with self.open(path, deadline=deadline) as stream:
            frames = list(stream)
        logger.debug("[Fingerprinter] %s: %d frames", Path(path).name, len(frames))
        return frames

    def extraction_timeout(self, path: Path | str) -> float:
        """Seconds allowed to extract *path*, scaled by its size."""
        try:
            size_mb = os.path.getsize(path) / (1024 * 1024)
        except OSError as e:
            raise DecodeError(f"Cannot read {path}: {e}") from e
        return self.timeout_base_sec + self.timeout_per_mb_sec * size_mb

    def deadline_for(self, path: Path | str) -> float:
        """Monotonic deadline for extracting *path* starting now."""
        return time.monotonic() + self.extraction_timeout(path)
