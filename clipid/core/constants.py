"""Shared constants for the clipid catalog."""

# Spectral analysis constants
HOP_SIZE = 256
"""Samples consumed per analysis frame."""

WINDOW_SIZE = 512
"""Length of the sliding analysis window (samples)."""

N_FILTERS = 40
"""Number of mel filters in the filter bank."""

N_COEFS = 13
"""Cepstral coefficients kept per frame (width of the fingerprint schema)."""

BAND_ENERGY_FLOOR = 1e-7
"""Lower bound applied to mel band energies before taking log10."""

COEF_MAGNITUDE_FLOOR = 1e-10
"""Lower bound applied to |coefficient| before decibel scaling (-100 dB)."""

# Matching constants
DEFAULT_TOLERANCE = 0.001
"""Half-width of the per-coefficient acceptance window."""

DEFAULT_MATCH_COEFS = 1
"""Leading coefficients compared when the caller does not choose."""

# Snapshot document
SNAPSHOT_FORMAT = "clipid-snapshot"
SNAPSHOT_VERSION = 1

HASH_CHUNK_SIZE = 64 * 1024
"""Read size used when hashing source files (bytes)."""
