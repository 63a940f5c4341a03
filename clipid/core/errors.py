"""Exception hierarchy for catalog and matching operations.

Every error raised on purpose by clipid or mfccprint derives from
``ClipidError``. Some kinds also derive from the matching builtin so callers
can catch them by category (``ValueError``, ``LookupError``, ``TimeoutError``).
"""


class ClipidError(Exception):
    """Base class for all clipid errors."""


class InvalidArgument(ClipidError, ValueError):
    """A required input is missing or out of range."""


class DecodeError(ClipidError):
    """An audio source could not be read or decoded."""


class NotFound(ClipidError, LookupError):
    """The targeted context or audio record does not exist."""


class StorageError(ClipidError):
    """The storage collaborator failed a statement."""


class DuplicateContext(ClipidError):
    """A context with this name already exists and replace was not requested."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Context already exists: {name}")
        self.name = name


class OperationTimeout(ClipidError, TimeoutError):
    """Extraction or matching exceeded its time budget."""
