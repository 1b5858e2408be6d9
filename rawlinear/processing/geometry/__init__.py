"""
Geometry modules for rawlinear

Crop and shave derived from editor metadata and embedded previews, and
rotation derived from EXIF orientation.
"""

from .crop import (
    Shave, CropWindow, CropGeometry, GeometryPlan,
    compute_shave, compute_crop, select_crop_window, resolve_geometry
)
from .orientation import Orientation, OrientationResult, resolve_orientation

__all__ = [
    "Shave",
    "CropWindow",
    "CropGeometry",
    "GeometryPlan",
    "compute_shave",
    "compute_crop",
    "select_crop_window",
    "resolve_geometry",
    "Orientation",
    "OrientationResult",
    "resolve_orientation",
]
