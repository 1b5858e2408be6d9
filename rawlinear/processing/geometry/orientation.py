"""
EXIF orientation handling for rawlinear
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from rawlinear.errors import OrientationWarning

logger = logging.getLogger(__name__)


class Orientation(Enum):
    """Clockwise rotation needed to display the image upright"""
    NONE = 0
    ROTATE_90 = 90
    ROTATE_180 = 180
    ROTATE_270 = 270


# Mirrored codes (2, 4, 5, 7) never come out of a camera and are refused
EXIF_ORIENTATION = {
    1: Orientation.NONE,
    3: Orientation.ROTATE_180,
    6: Orientation.ROTATE_90,
    8: Orientation.ROTATE_270,
}


@dataclass(frozen=True)
class OrientationResult:
    orientation: Orientation
    warning: Optional[OrientationWarning] = None


def resolve_orientation(code: Any, source: Optional[Path] = None) -> OrientationResult:
    """
    Map an EXIF orientation code to a rotation.

    Args:
        code: Orientation tag value as read from the file
        source: File the code was read from, used in the warning

    Returns:
        OrientationResult; unknown or missing codes resolve to no rotation
        with a warning attached
    """
    try:
        orientation = EXIF_ORIENTATION.get(int(code)) if code is not None else None
    except (TypeError, ValueError):
        orientation = None

    if orientation is None:
        warning = OrientationWarning(source, code)
        logger.warning(str(warning))
        return OrientationResult(Orientation.NONE, warning)

    return OrientationResult(orientation)
