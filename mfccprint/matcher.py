"""Match a probe clip against the fingerprints of one context.

Pipeline
--------
1. Extract frames from the probe (lazily, see ``Fingerprinter.open``)
2. For every probe frame, select the stored frames of the context whose
   leading ``C`` coefficients all lie within ``+/- tolerance`` of the probe's
3. Give one vote per distinct audio record found for that frame
4. The record with the most votes wins; on a tie the record that received
   its first vote earliest wins
"""

from __future__ import annotations

import logging
import math
import numbers
import time
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from clipid.core.constants import DEFAULT_MATCH_COEFS, DEFAULT_TOLERANCE
from clipid.core.errors import InvalidArgument, NotFound, OperationTimeout
from clipid.core.repositories import AudioRecord

from .database import FingerprintDB
from .fingerprint import Fingerprinter, FingerprintFrame

logger = logging.getLogger(__name__)


@dataclass
class MatchResult:
    """Outcome of one match session.

    ``record`` is None when no stored frame received a vote ("no match").
    """

    record: AudioRecord | None
    frame_count: int  # Frames in the probe
    match_count: int  # Votes of the winner (0 when no match)

    @property
    def found(self) -> bool:
        return self.record is not None

    def to_dict(self) -> dict[str, Any]:
        """Result record: ``{uuid, name, context, hash, frame_count, match_count}``."""
        data: dict[str, Any] = self.record.to_dict() if self.record else {}
        data["frame_count"] = self.frame_count
        data["match_count"] = self.match_count
        return data


class Matcher:
    """Identify probe clips with tolerance-window range votes.

    Usage:
        matcher = Matcher(fingerprint_db, fingerprinter)
        result = matcher.identify("music", "probe.wav", coefs=3)
        if result.found:
            print(result.record.name, result.match_count, result.frame_count)
    """

    def __init__(
        self,
        db: FingerprintDB,
        fingerprinter: Fingerprinter,
        default_tolerance: float = DEFAULT_TOLERANCE,
        default_coefs: int = DEFAULT_MATCH_COEFS,
        timeout_sec: float | None = None,
    ):
        """Initialize matcher.

        Args:
            db: Fingerprint store to match against
            fingerprinter: Extractor used for probe files
            default_tolerance: Tolerance used when none (or a negative one) is given
            default_coefs: Coefficients compared when the caller does not choose
            timeout_sec: Budget for one match session, None for unbounded
        """
        self.db = db
        self.fingerprinter = fingerprinter
        self.default_tolerance = default_tolerance
        self.default_coefs = default_coefs
        self.timeout_sec = timeout_sec

    def resolve_tolerance(self, tolerance: float | None) -> float:
        """Return *tolerance*, or the default when it is None, negative or not finite."""
        if tolerance is None:
            return self.default_tolerance
        if not math.isfinite(tolerance) or tolerance < 0:
            logger.warning(
                "[Matcher] Invalid tolerance %g replaced by default %g",
                tolerance,
                self.default_tolerance,
            )
            return self.default_tolerance
        return float(tolerance)

    def validate_coefs(self, coefs: int | None) -> int:
        """Return the coefficient count to compare.

        Raises:
            InvalidArgument: If *coefs* is outside ``[1, n_coefs]``
        """
        if coefs is None:
            coefs = self.default_coefs
        if isinstance(coefs, bool) or not isinstance(coefs, numbers.Integral):
            raise InvalidArgument(f"Coefficient count must be an integer, got {coefs!r}")
        if not 1 <= coefs <= self.db.n_coefs:
            raise InvalidArgument(
                f"Coefficient count must be in [1, {self.db.n_coefs}], got {coefs}"
            )
        return int(coefs)

    def match(
        self,
        context: str,
        frames: Iterable[FingerprintFrame],
        coefs: int | None = None,
        tolerance: float | None = None,
        deadline: float | None = None,
    ) -> MatchResult:
        """Match probe frames against the stored frames of *context*.

        Args:
            context: Context to search
            frames: Probe frames (consumed once)
            coefs: Leading coefficients compared, default ``default_coefs``
            tolerance: Half-width of the acceptance window per coefficient
            deadline: Monotonic time after which the session is abandoned

        Returns:
            MatchResult, with ``record`` None when nothing voted

        Raises:
            InvalidArgument: If *coefs* is out of range
            NotFound: If *context* does not exist
            OperationTimeout: If *deadline* passes mid-session
        """
        coefs = self.validate_coefs(coefs)
        tolerance = self.resolve_tolerance(tolerance)
        if not self.db.context_exists(context):
            raise NotFound(f"Context not found: {context}")

        if deadline is None and self.timeout_sec is not None:
            deadline = time.monotonic() + self.timeout_sec

        frame_count = 0
        with self.db.scratch_table() as scratch:
            for frame in frames:
                if deadline is not None and time.monotonic() > deadline:
                    raise OperationTimeout(
                        f"Match in context {context!r} timed out after {frame_count} frames"
                    )
                self.db.accumulate_votes(scratch, context, frame.coefs[:coefs], tolerance)
                frame_count += 1

            ranking = self.db.rank_candidates(scratch)

        logger.debug(
            "[Matcher] %s: %d probe frames, %d candidates (C=%d, tol=%g)",
            context,
            frame_count,
            len(ranking),
            coefs,
            tolerance,
        )

        if not ranking:
            return MatchResult(record=None, frame_count=frame_count, match_count=0)

        audio_uuid, votes = ranking[0]
        record = self.db.get_audio_record(audio_uuid)
        if record is None:
            # Removed between the vote and the lookup
            logger.warning("[Matcher] Winning record %s no longer exists", audio_uuid)
            return MatchResult(record=None, frame_count=frame_count, match_count=0)

        logger.info(
            "[Matcher] %s matched %s (%d/%d frames)", context, record.name, votes, frame_count
        )
        return MatchResult(record=record, frame_count=frame_count, match_count=votes)

    def identify(
        self,
        context: str,
        path: Path | str,
        coefs: int | None = None,
        tolerance: float | None = None,
    ) -> MatchResult:
        """Extract a probe file and match it against *context*.

        Arguments are validated before the file is opened.

        Raises:
            InvalidArgument: If *coefs* is out of range
            NotFound: If *context* does not exist
            DecodeError: If the probe cannot be decoded
            OperationTimeout: If extraction or matching exceeds its budget
        """
        coefs = self.validate_coefs(coefs)
        if not self.db.context_exists(context):
            raise NotFound(f"Context not found: {context}")

        deadline = self.fingerprinter.deadline_for(path)
        if self.timeout_sec is not None:
            deadline = max(deadline, time.monotonic() + self.timeout_sec)

        with self.fingerprinter.open(path, deadline=deadline) as stream:
            return self.match(context, stream, coefs=coefs, tolerance=tolerance, deadline=deadline)
