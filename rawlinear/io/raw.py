"""
RAW decoding for rawlinear
Turns camera RAW files into linear, 16-bit TIFFs with LibRaw
"""

import io
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import cv2
import numpy as np
import rawpy
from PIL import Image

from rawlinear.config import JobOptions
from rawlinear.errors import DecodeFailure, SourceUnavailable
from rawlinear.processing.models import DecodedImage

logger = logging.getLogger(__name__)

# Suffix of the decoder's output, appended to the RAW file's stem
TIFF_SUFFIX = '.tiff'

# Index order matches dcraw's -q switch
DEMOSAIC_ALGORITHMS = (
    rawpy.DemosaicAlgorithm.LINEAR,
    rawpy.DemosaicAlgorithm.VNG,
    rawpy.DemosaicAlgorithm.PPG,
    rawpy.DemosaicAlgorithm.AHD,
)


def decoded_path_for(raw_path: Path, work_dir: Optional[Path] = None) -> Path:
    """Path the decoder writes for a given RAW file."""
    raw_path = Path(raw_path)
    return Path(work_dir or raw_path.parent) / f"{raw_path.stem}{TIFF_SUFFIX}"


class RawDecoder:
    """Decodes RAW files to linear TIFF and reports embedded preview sizes"""

    def __init__(self, options: JobOptions):
        """
        Initialize RAW decoder

        Args:
            options: Conversion options supplying the decoder flags
        """
        self.options = options

    def postprocess_params(self) -> Dict[str, Any]:
        """
        LibRaw parameters for a linear, unscaled, 16-bit rendering.

        Gamma 1.0 and no auto-brightening keep pixel values proportional to
        scene light, which is what negative inversion needs downstream.
        """
        return {
            'demosaic_algorithm': DEMOSAIC_ALGORITHMS[self.options.demosaic_algorithm],
            'highlight_mode': self.options.highlight_mode,
            'output_color': rawpy.ColorSpace(self.options.output_colorspace),
            'use_camera_wb': self.options.camera_white_balance,
            'use_auto_wb': False,
            'user_flip': self.options.decoder_flip,
            'gamma': (1, 1),
            'no_auto_bright': True,
            'output_bps': 16,
        }

    def decode(self, raw_path: Path, work_dir: Optional[Path] = None) -> DecodedImage:
        """
        Decode a RAW file into a 16-bit linear TIFF

        Args:
            raw_path: RAW file to decode
            work_dir: Directory for the TIFF, default next to the RAW file

        Returns:
            DecodedImage with the TIFF path and its pixel size

        Raises:
            SourceUnavailable: If the RAW file does not exist
            DecodeFailure: If LibRaw fails or no TIFF ends up on disk
        """
        raw_path = Path(raw_path)
        if not raw_path.is_file():
            raise SourceUnavailable(raw_path, "file does not exist")

        output_path = decoded_path_for(raw_path, work_dir)
        params = self.postprocess_params()
        logger.debug(f"Decoding {raw_path.name} with {params}")

        try:
            with rawpy.imread(str(raw_path)) as raw:
                rgb = raw.postprocess(**params)
        except (rawpy.LibRawError, OSError) as e:
            raise DecodeFailure(raw_path, f"LibRaw could not decode file: {e}") from e

        try:
            written = cv2.imwrite(str(output_path), cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR))
        except cv2.error as e:
            raise DecodeFailure(raw_path, f"could not write {output_path.name}: {e}") from e

        # imwrite reports failure by return value and can still leave nothing behind
        if not written or not output_path.is_file():
            raise DecodeFailure(raw_path, f"decoder produced no output at {output_path}")

        height, width = rgb.shape[:2]
        logger.debug(f"Decoded {raw_path.name} -> {output_path.name} ({width}x{height})")
        return DecodedImage(path=output_path, width=int(width), height=int(height))

    def preview_size(self, raw_path: Path) -> Optional[Tuple[int, int]]:
        """
        Get the pixel size of the largest embedded preview

        Args:
            raw_path: RAW file

        Returns:
            (width, height), or None if the file has no readable preview
        """
        try:
            with rawpy.imread(str(raw_path)) as raw:
                thumb = raw.extract_thumb()
        except (rawpy.LibRawNoThumbnailError, rawpy.LibRawUnsupportedThumbnailError):
            logger.debug(f"{Path(raw_path).name} has no usable embedded preview")
            return None
        except (rawpy.LibRawError, OSError) as e:
            logger.warning(f"Could not read preview from {Path(raw_path).name}: {e}")
            return None

        if thumb.format == rawpy.ThumbFormat.JPEG:
            try:
                with Image.open(io.BytesIO(thumb.data)) as preview:
                    return preview.size
            except OSError as e:
                logger.warning(f"Embedded preview of {Path(raw_path).name} is unreadable: {e}")
                return None

        data = np.asarray(thumb.data)
        return int(data.shape[1]), int(data.shape[0])
