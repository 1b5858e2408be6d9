"""
rawlinear utilities module.

Provides sidecar lookup and logging helpers.
"""

from .xmp_sidecar import XMPSidecar, resolve_with_override

__all__ = [
    'XMPSidecar',
    'resolve_with_override',
]
