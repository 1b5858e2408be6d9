"""
Pixel mutation for rawlinear.

The conversion job describes what should happen to a decoded TIFF as an
ordered list of directives; ImageMutator executes them against the file in
place. Geometry that refers to sensor coordinates (shave, crop) has to run
before anything that moves pixels around (rotation, resize), so the order
is checked before any pixel is touched.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from rawlinear.config import JobOptions
from rawlinear.errors import MetadataToolError, MutationFailure
from rawlinear.processing.geometry.crop import CropGeometry, Shave
from rawlinear.processing.geometry.orientation import Orientation

logger = logging.getLogger(__name__)


class MirrorMode(Enum):
    """Mirror directions, named after ImageMagick's -flip and -flop"""
    FLIP = "flip"          # top-bottom
    FLOP = "flop"          # left-right
    FLIPFLOP = "flipflop"  # both

    @property
    def cv2_code(self) -> int:
        return {MirrorMode.FLIP: 0, MirrorMode.FLOP: 1, MirrorMode.FLIPFLOP: -1}[self]


# libtiff compression tags; all lossless
TIFF_COMPRESSION = {
    'none': 1,
    'lzw': 5,
    'deflate': 8,
}

_ROTATIONS = {
    Orientation.ROTATE_90: cv2.ROTATE_90_CLOCKWISE,
    Orientation.ROTATE_180: cv2.ROTATE_180,
    Orientation.ROTATE_270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}

# ITU-R BT.709 luma coefficients, valid for linear sRGB primaries
_LUMA_BGR = np.array([0.0722, 0.7152, 0.2126], dtype=np.float64)


@dataclass(frozen=True)
class MirrorDirective:
    mode: MirrorMode


@dataclass(frozen=True)
class ShaveDirective:
    shave: Shave


@dataclass(frozen=True)
class CropDirective:
    geometry: CropGeometry


@dataclass(frozen=True)
class RotateDirective:
    orientation: Orientation


@dataclass(frozen=True)
class ResizeDirective:
    max_side: int

    def __post_init__(self):
        if self.max_side < 1:
            raise ValueError(f"Resize target must be positive, got {self.max_side}")


@dataclass(frozen=True)
class ColorspaceDirective:
    grayscale: bool
    profile: Optional[Path] = None


@dataclass(frozen=True)
class CompressDirective:
    method: str = 'lzw'

    def __post_init__(self):
        if self.method not in TIFF_COMPRESSION:
            raise ValueError(f"Unknown compression {self.method!r}")


DIRECTIVE_ORDER = (
    MirrorDirective,
    ShaveDirective,
    CropDirective,
    RotateDirective,
    ResizeDirective,
    ColorspaceDirective,
    CompressDirective,
)


def build_directives(options: JobOptions,
                     shave: Optional[Shave] = None,
                     crop: Optional[CropGeometry] = None,
                     orientation: Orientation = Orientation.NONE,
                     profile: Optional[Path] = None) -> List[object]:
    """
    Assemble the directive list for one image in pipeline order

    Args:
        options: Conversion options (mirror, resize, desaturate, compression)
        shave: Margins from the preview comparison
        crop: Crop rectangle from editor metadata
        orientation: Rotation from orientation metadata
        profile: ICC profile to embed

    Returns:
        Ordered directives; steps with nothing to do are left out
    """
    directives = []
    if options.mirror:
        directives.append(MirrorDirective(MirrorMode(options.mirror)))
    if shave is not None and not shave.is_empty:
        directives.append(ShaveDirective(shave))
    if crop is not None:
        directives.append(CropDirective(crop))
    if orientation is not Orientation.NONE:
        directives.append(RotateDirective(orientation))
    if options.resize:
        directives.append(ResizeDirective(options.resize))
    directives.append(ColorspaceDirective(grayscale=options.desaturate, profile=profile))
    directives.append(CompressDirective(options.compression))
    return directives


def validate_order(directives: Sequence[object]):
    """Raise ValueError unless directives follow DIRECTIVE_ORDER, each at most once."""
    last = -1
    for directive in directives:
        try:
            position = DIRECTIVE_ORDER.index(type(directive))
        except ValueError:
            raise ValueError(f"Unknown directive {directive!r}")
        if position <= last:
            raise ValueError(f"{type(directive).__name__} is out of order")
        last = position


def mirror(image: np.ndarray, mode: MirrorMode) -> np.ndarray:
    return cv2.flip(image, mode.cv2_code)


def shave(image: np.ndarray, margins: Shave) -> np.ndarray:
    """Remove margins.dx columns from left and right and margins.dy rows from top and bottom."""
    height, width = image.shape[:2]
    dx = int(round(margins.dx))
    dy = int(round(margins.dy))
    if 2 * dx >= width or 2 * dy >= height:
        raise ValueError(f"Shave {dx}x{dy} leaves nothing of a {width}x{height} image")
    return image[dy:height - dy, dx:width - dx]


def crop(image: np.ndarray, geometry: CropGeometry) -> np.ndarray:
    height, width = image.shape[:2]
    x, y, w, h = geometry.to_pixels(width, height)
    return image[y:y + h, x:x + w]


def rotate(image: np.ndarray, orientation: Orientation) -> np.ndarray:
    if orientation is Orientation.NONE:
        return image
    return cv2.rotate(image, _ROTATIONS[orientation])


def resize(image: np.ndarray, max_side: int) -> np.ndarray:
    """Shrink so the longer side is max_side; never enlarges."""
    height, width = image.shape[:2]
    longest = max(width, height)
    if longest <= max_side:
        return image

    scale = max_side / float(longest)
    size = (max(1, int(round(width * scale))), max(1, int(round(height * scale))))
    return cv2.resize(image, size, interpolation=cv2.INTER_AREA)


def desaturate(image: np.ndarray) -> np.ndarray:
    """Collapse BGR to a single linear luminance channel, keeping the dtype."""
    if image.ndim == 2:
        return image
    luminance = image[:, :, :3].astype(np.float64) @ _LUMA_BGR
    limit = np.iinfo(image.dtype).max if np.issubdtype(image.dtype, np.integer) else 1.0
    return np.clip(np.rint(luminance), 0, limit).astype(image.dtype)


class ImageMutator:
    """Applies directives to a TIFF file in place"""

    def __init__(self, metadata_tool=None):
        """
        Args:
            metadata_tool: MetadataTool used to carry tags over and embed ICC
                profiles; without one, tags are not preserved
        """
        self.metadata_tool = metadata_tool

    def apply(self, image_path: Path, directives: Sequence[object]) -> Tuple[int, int]:
        """
        Execute directives against an image file

        Args:
            image_path: TIFF to modify
            directives: Directive objects in DIRECTIVE_ORDER

        Returns:
            (width, height) of the written image

        Raises:
            MutationFailure: On invalid directives, unreadable input or a
                failed write; the original file is left untouched
        """
        image_path = Path(image_path)
        try:
            validate_order(directives)
        except ValueError as e:
            raise MutationFailure(image_path, str(e)) from e

        image = cv2.imread(str(image_path), cv2.IMREAD_UNCHANGED)
        if image is None:
            raise MutationFailure(image_path, "could not read image")

        profile = None
        compression = TIFF_COMPRESSION['lzw']
        rotated = False

        try:
            for directive in directives:
                if isinstance(directive, MirrorDirective):
                    image = mirror(image, directive.mode)
                elif isinstance(directive, ShaveDirective):
                    image = shave(image, directive.shave)
                elif isinstance(directive, CropDirective):
                    image = crop(image, directive.geometry)
                elif isinstance(directive, RotateDirective):
                    image = rotate(image, directive.orientation)
                    rotated = True
                elif isinstance(directive, ResizeDirective):
                    image = resize(image, directive.max_side)
                elif isinstance(directive, ColorspaceDirective):
                    if directive.grayscale:
                        image = desaturate(image)
                    profile = directive.profile
                elif isinstance(directive, CompressDirective):
                    compression = TIFF_COMPRESSION[directive.method]
                logger.debug(f"{image_path.name}: applied {directive}")
        except (cv2.error, ValueError) as e:
            raise MutationFailure(image_path, f"pixel operation failed: {e}") from e

        self._write(image_path, np.ascontiguousarray(image), compression, profile, rotated)
        height, width = image.shape[:2]
        return width, height

    def _write(self, image_path: Path, image: np.ndarray, compression: int,
               profile: Optional[Path], rotated: bool):
        """Write next to the original, carry tags over, then swap into place."""
        temp_path = image_path.with_name(f"{image_path.stem}.partial{image_path.suffix}")
        try:
            try:
                written = cv2.imwrite(str(temp_path), image,
                                      [cv2.IMWRITE_TIFF_COMPRESSION, compression])
            except cv2.error as e:
                raise MutationFailure(image_path, f"could not write image: {e}") from e
            if not written:
                raise MutationFailure(image_path, "could not write image")

            if self.metadata_tool is not None:
                try:
                    self.metadata_tool.transfer_tags(image_path, temp_path, profile=profile,
                                                     reset_orientation=rotated)
                except MetadataToolError as e:
                    raise MutationFailure(image_path, e.message) from e
            elif profile is not None:
                logger.warning(f"{image_path.name}: no metadata tool, ICC profile not embedded")

            os.replace(temp_path, image_path)
        except OSError as e:
            raise MutationFailure(image_path, f"could not replace image: {e}") from e
        finally:
            if temp_path.exists():
                temp_path.unlink()
