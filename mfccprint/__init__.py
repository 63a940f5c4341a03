"""mfccprint - MFCC fingerprints for short audio clip identification.

Each analysis frame of an audio file is reduced to a few cepstral
coefficients. A probe clip is identified by voting: every probe frame votes
for each cataloged recording that has a frame within a small tolerance of it
on the leading coefficients, and the recording with the most votes wins.

Built for short, repeatable clips (prompts, jingles, announcements) where
the probe and the reference come from the same source.
"""

__version__ = "0.1.0"

from .fingerprint import Fingerprinter, FingerprintFrame, FrameStream
from .database import FingerprintDB
from .matcher import Matcher, MatchResult

__all__ = [
    "Fingerprinter",
    "FingerprintFrame",
    "FrameStream",
    "FingerprintDB",
    "Matcher",
    "MatchResult",
]
