"""
XMP sidecar file support utilities.

A sidecar is matched to its RAW file purely by basename. When one exists,
its rating and orientation replace the values embedded in the RAW file, and
its crop is used whenever the RAW file has no active crop of its own.
"""

import os
import logging
from pathlib import Path
from typing import Callable, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

SIDECAR_EXTENSIONS = ('.xmp', '.XMP')

S = TypeVar('S')
V = TypeVar('V')


class XMPSidecar:
    """Locates the XMP sidecar belonging to an image file."""

    def __init__(self, image_path: Union[str, Path]):
        """Initialize with the path to the image file."""
        self.image_path = Path(image_path)
        self.sidecar_path = self._get_sidecar_path()

    def _get_sidecar_path(self) -> Path:
        """
        Get the path for the XMP sidecar file.

        An existing sidecar is preferred whatever the case of its extension;
        otherwise the lower-case name is returned.
        """
        base_path = os.path.splitext(str(self.image_path))[0]
        for extension in SIDECAR_EXTENSIONS:
            candidate = Path(f"{base_path}{extension}")
            if candidate.is_file():
                return candidate
        return Path(f"{base_path}{SIDECAR_EXTENSIONS[0]}")

    def exists(self) -> bool:
        """Check if XMP sidecar file exists."""
        return self.sidecar_path.is_file()

    def path_if_exists(self) -> Optional[Path]:
        return self.sidecar_path if self.exists() else None


def resolve_with_override(primary: Optional[S], sidecar: Optional[S],
                          selector: Callable[[S], V]) -> Optional[V]:
    """
    Read one field with sidecar precedence.

    The sidecar wins whenever it exists, even if the field is missing
    there; callers that need a different rule (crop) check the field
    themselves.

    Args:
        primary: Metadata read from the image file, None if unavailable
        sidecar: Metadata read from the sidecar, None if there is no sidecar
        selector: Picks the field from either metadata object

    Returns:
        The selected value, or None
    """
    if sidecar is not None:
        return selector(sidecar)
    if primary is not None:
        return selector(primary)
    return None
