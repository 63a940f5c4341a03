"""clipid - Catalog-based identification of short audio clips.

Reference recordings are fingerprinted into named contexts; an unknown clip
is identified by tolerance-window voting against the fingerprints of one
context. The fingerprint engine itself lives in the ``mfccprint`` package.
"""

__version__ = "0.1.0"
