"""
rawlinear: linear 16-bit TIFFs from camera RAW files

Converts RAW exposures (typically scans of film negatives made with a
digital camera) into gamma 1.0 TIFFs, framed and oriented the way they
were set up in a raw editor, ready for negative inversion.
"""

__version__ = "0.1.0"

from .config import load_config, JobOptions

__all__ = [
    "load_config",
    "JobOptions",
]
