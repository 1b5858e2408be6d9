"""
Exception hierarchy for rawlinear.

Only FatalConfigError aborts a run. Every other error is scoped to a single
image: the conversion job catches it, reports it and moves on.
"""

from pathlib import Path
from typing import Any, Optional, Union


class RawLinearError(Exception):
    """Base exception for rawlinear."""
    pass


class FatalConfigError(RawLinearError):
    """Raised for a missing external tool or an invalid option."""
    pass


class ImageError(RawLinearError):
    """Base class for failures scoped to one image."""

    def __init__(self, path: Union[str, Path, None], message: str):
        self.path = Path(path) if path is not None else None
        self.message = message
        super().__init__(f"{self.path.name if self.path else '<unknown>'}: {message}")


class SourceUnavailable(ImageError):
    """Raised when an input file is missing or unreadable."""
    pass


class DecodeFailure(ImageError):
    """Raised when the RAW decoder errors or produces no output."""
    pass


class MetadataToolError(ImageError):
    """Raised when exiftool fails to write or transfer tags."""
    pass


class MetadataRepairFailure(ImageError):
    """Raised when backfilling tags into the decoded TIFF fails."""
    pass


class GeometryComputationFailure(ImageError):
    """Raised when shave or crop geometry cannot be derived."""
    pass


class OrientationWarning(ImageError):
    """Carries an unrecognised orientation code and where it came from."""

    def __init__(self, path: Union[str, Path, None], code: Optional[Any]):
        self.code = code
        super().__init__(path, f"unsupported orientation code {code!r}, not rotating")


class MutationFailure(ImageError):
    """Raised when pixel mutation or output placement fails."""
    pass
