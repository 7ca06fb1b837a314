from __future__ import annotations

from typing import Optional


class OctaError(Exception):
    """Base class for every error raised by the ``octa`` package."""


class FormatError(OctaError, ValueError):
    """Malformed binary or text input.

    ``offset`` is the absolute byte position where decoding stopped making
    sense; ``expected``/``actual`` describe the mismatch.
    """

    def __init__(
        self,
        message: str,
        *,
        offset: Optional[int] = None,
        expected: object = None,
        actual: object = None,
    ) -> None:
        self.offset = offset
        self.expected = expected
        self.actual = actual
        detail = message
        if offset is not None:
            detail = f"{detail} @ 0x{offset:06X}"
        if expected is not None or actual is not None:
            detail = f"{detail} (expected {expected!r}, got {actual!r})"
        super().__init__(detail)


class ValidationError(OctaError, ValueError):
    """A value outside its closed numeric or enumerated domain."""


class ConflictError(OctaError):
    """Destination state that an operation refuses to overwrite."""


class CapacityError(OctaError):
    """No free destination sample slot of the required class."""


class StorageError(OctaError, OSError):
    """Filesystem failure while reading or writing project data."""
