"""
Shave and crop geometry for rawlinear

Reproduces the framing a photographer saw in their raw editor. Two sources
of geometry are reconciled here:

* the embedded preview, whose pixel size reflects the camera's own crop of
  the sensor area, and
* the editor's crop window, stored as fractions of the (already
  sensor-cropped) image in the RAW file or its XMP sidecar.

The shave assumes the sensor excess over the preview is centred, i.e. the
camera trims the same amount from opposite edges. That holds for the bodies
this was checked against but is a modelling assumption, not something the
file format guarantees.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from rawlinear.errors import GeometryComputationFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Shave:
    """Pixels to remove from each horizontal (dx) and vertical (dy) edge"""
    dx: float = 0.0
    dy: float = 0.0

    @property
    def is_empty(self) -> bool:
        return self.dx <= 0 and self.dy <= 0


@dataclass(frozen=True)
class CropWindow:
    """Crop settings as stored by the raw editor, fractions in [0, 1]"""
    active: bool
    top: Optional[float] = None
    bottom: Optional[float] = None
    left: Optional[float] = None
    right: Optional[float] = None

    @property
    def is_complete(self) -> bool:
        return None not in (self.top, self.bottom, self.left, self.right)


@dataclass(frozen=True)
class CropGeometry:
    """
    Crop rectangle in the addressing the mutation step uses: size as a
    percentage of the image, offset in pixels from the top-left corner.
    """
    width_percent: float
    height_percent: float
    offset_x: float
    offset_y: float

    def to_pixels(self, width: int, height: int) -> Tuple[int, int, int, int]:
        """
        Resolve to integer (x, y, w, h) inside a width x height image.

        Rounding can push the far edge one pixel past the border, so the
        rectangle is clamped rather than trusted.
        """
        x = min(max(int(round(self.offset_x)), 0), max(width - 1, 0))
        y = min(max(int(round(self.offset_y)), 0), max(height - 1, 0))
        w = int(round(width * self.width_percent / 100.0))
        h = int(round(height * self.height_percent / 100.0))
        w = max(1, min(w, width - x))
        h = max(1, min(h, height - y))
        return x, y, w, h


@dataclass(frozen=True)
class GeometryPlan:
    """Geometry to hand to the mutation step; either part may be absent"""
    shave: Shave
    crop: Optional[CropGeometry] = None
    crop_source: Optional[Path] = None


def compute_shave(decoded_width: int, decoded_height: int,
                  preview_width: Optional[int] = None,
                  preview_height: Optional[int] = None) -> Shave:
    """
    Compute the symmetric shave that brings decoded pixels to preview size.

    Args:
        decoded_width: Width of the decoded image
        decoded_height: Height of the decoded image
        preview_width: Width of the embedded preview, None if there is none
        preview_height: Height of the embedded preview, None if there is none

    Returns:
        Shave with half the size difference per edge, Shave(0, 0) when there
        is no usable preview or it is not smaller than the decoded image
    """
    if not preview_width or not preview_height:
        return Shave()

    # Previews are sometimes stored rotated relative to the sensor data
    if (preview_width > preview_height) != (decoded_width > decoded_height) \
            and preview_width != preview_height:
        preview_width, preview_height = preview_height, preview_width

    dx = round((decoded_width - preview_width) / 2, 1)
    dy = round((decoded_height - preview_height) / 2, 1)

    if dx < 0 or dy < 0:
        logger.debug(f"Preview {preview_width}x{preview_height} exceeds decoded "
                     f"{decoded_width}x{decoded_height}, clamping shave")
    return Shave(dx=max(dx, 0.0), dy=max(dy, 0.0))


def compute_crop(image_width: float, image_height: float,
                 crop_top: float, crop_bottom: float,
                 crop_left: float, crop_right: float) -> CropGeometry:
    """
    Convert fractional crop edges to percentage size plus pixel offset.

    Args:
        image_width: Width of the image the fractions refer to (after shave)
        image_height: Height of the image the fractions refer to (after shave)
        crop_top, crop_bottom, crop_left, crop_right: Edge positions in [0, 1]

    Returns:
        CropGeometry, rounded to one decimal

    Raises:
        GeometryComputationFailure: If an edge is outside [0, 1] or the
            window is empty
    """
    for name, value in (('top', crop_top), ('bottom', crop_bottom),
                        ('left', crop_left), ('right', crop_right)):
        if value is None or not 0.0 <= value <= 1.0:
            raise GeometryComputationFailure(None, f"crop {name} {value!r} is outside [0, 1]")
    if crop_right <= crop_left or crop_bottom <= crop_top:
        raise GeometryComputationFailure(
            None, f"empty crop window (top={crop_top}, bottom={crop_bottom}, "
                  f"left={crop_left}, right={crop_right})"
        )

    return CropGeometry(
        width_percent=round((crop_right - crop_left) * 100, 1),
        height_percent=round((crop_bottom - crop_top) * 100, 1),
        offset_x=round(image_width * crop_left, 1),
        offset_y=round(image_height * crop_top, 1),
    )


def select_crop_window(primary: Optional[CropWindow],
                       sidecar: Optional[CropWindow]) -> Optional[CropWindow]:
    """
    Pick the crop window to honour.

    The RAW file's own crop wins when active; otherwise an active sidecar
    crop is used. All four edges always come from the chosen source.
    """
    if primary is not None and primary.active:
        return primary
    if sidecar is not None and sidecar.active:
        return sidecar
    return None


def resolve_geometry(source: Path,
                     decoded_size: Optional[Tuple[Optional[int], Optional[int]]],
                     preview_size: Optional[Tuple[int, int]],
                     primary_crop: Optional[CropWindow],
                     sidecar_crop: Optional[CropWindow],
                     sidecar_path: Optional[Path] = None) -> GeometryPlan:
    """
    Work out shave and crop for one decoded image.

    Args:
        source: RAW file the geometry belongs to
        decoded_size: (width, height) of the decoded TIFF
        preview_size: (width, height) of the embedded preview, or None
        primary_crop: Crop window read from the RAW file
        sidecar_crop: Crop window read from the XMP sidecar
        sidecar_path: Path of the sidecar, recorded as crop source

    Returns:
        GeometryPlan

    Raises:
        GeometryComputationFailure: If the decoded dimensions are unknown or
            the chosen crop window is unusable
    """
    if not decoded_size or not all(decoded_size):
        raise GeometryComputationFailure(source, "decoded image dimensions are unreadable")

    width, height = int(decoded_size[0]), int(decoded_size[1])
    if preview_size:
        shave = compute_shave(width, height, preview_size[0], preview_size[1])
    else:
        shave = Shave()

    window = select_crop_window(primary_crop, sidecar_crop)
    if window is None:
        return GeometryPlan(shave=shave)
    if not window.is_complete:
        raise GeometryComputationFailure(source, "crop is flagged active but edges are missing")

    crop = compute_crop(
        width - 2 * shave.dx, height - 2 * shave.dy,
        window.top, window.bottom, window.left, window.right,
    )
    crop_source = sidecar_path if window is sidecar_crop and sidecar_path else source
    logger.debug(f"{source.name}: shave {shave}, crop {crop} from {crop_source.name}")
    return GeometryPlan(shave=shave, crop=crop, crop_source=crop_source)
