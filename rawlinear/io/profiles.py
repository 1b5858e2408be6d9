"""
ICC profile lookup for rawlinear
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, Optional

from rawlinear.config import JobOptions

logger = logging.getLogger(__name__)


class ProfileKind(Enum):
    GRAY_LINEAR = "gray-linear"
    SRGB_LINEAR = "srgb-linear"


class ProfileResolver:
    """Finds linear ICC profiles by file name in a list of directories"""

    def __init__(self, search_dirs: Iterable[Path], names: Dict[ProfileKind, str]):
        self.search_dirs = [Path(d) for d in search_dirs]
        self.names = dict(names)
        self._cache: Dict[ProfileKind, Optional[Path]] = {}

    @classmethod
    def from_options(cls, options: JobOptions) -> 'ProfileResolver':
        return cls(options.profile_dirs, {
            ProfileKind.GRAY_LINEAR: options.gray_profile,
            ProfileKind.SRGB_LINEAR: options.color_profile,
        })

    def resolve(self, kind: ProfileKind) -> Optional[Path]:
        """
        Locate the profile file for a kind

        Args:
            kind: Which linear profile is needed

        Returns:
            Path of the first match, or None if no search directory has it
        """
        if kind in self._cache:
            return self._cache[kind]

        name = self.names.get(kind)
        found = None
        if name:
            candidate = Path(name).expanduser()
            if candidate.is_absolute():
                found = candidate if candidate.is_file() else None
            else:
                for directory in self.search_dirs:
                    if (directory / name).is_file():
                        found = directory / name
                        break

        if found is None:
            logger.warning(f"ICC profile {name!r} for {kind.value} not found in "
                           f"{', '.join(str(d) for d in self.search_dirs) or 'no search directories'}")
        else:
            logger.debug(f"Using {found} for {kind.value}")
        self._cache[kind] = found
        return found
