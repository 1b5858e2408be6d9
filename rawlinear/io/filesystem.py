"""
File system operations for rawlinear
Handles finding RAW files, pairing sidecars and placing finished TIFFs
"""

import shutil
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional, Union
import logging

from rawlinear.config import JobOptions
from rawlinear.errors import MutationFailure
from rawlinear.io.raw import TIFF_SUFFIX
from rawlinear.utils.xmp_sidecar import XMPSidecar

logger = logging.getLogger(__name__)


class FileManager:
    """Manages file operations for the conversion pipeline"""

    def __init__(self, options: JobOptions):
        """
        Initialize FileManager with conversion options

        Args:
            options: Supplies RAW extensions and the output directory
        """
        self.raw_extensions = {ext.lower() for ext in options.raw_extensions}
        self.output_dir = options.output_dir

    def is_raw_file(self, path: Path) -> bool:
        return path.suffix.lower() in self.raw_extensions

    def find_raw_files(self, search_root: Path) -> List[Path]:
        """
        Find RAW files directly inside a directory

        Subdirectories are not searched. Extensions match case-insensitively.

        Args:
            search_root: Directory to list

        Returns:
            Sorted list of RAW file paths
        """
        search_root = Path(search_root)
        if not search_root.is_dir():
            raise ValueError(f"Search root is not a directory: {search_root}")

        raw_files = sorted(
            entry for entry in search_root.iterdir()
            if entry.is_file() and self.is_raw_file(entry)
        )
        logger.info(f"Found {len(raw_files)} RAW files in {search_root}")

        for stem, paths in self.stem_collisions(raw_files).items():
            names = ', '.join(p.name for p in paths)
            logger.warning(f"RAW files share the name {stem!r} ({names}); "
                           f"outputs keep the full file name")
        return raw_files

    def stem_collisions(self, paths: List[Path]) -> Dict[str, List[Path]]:
        """Group RAW files of one directory whose stems differ only by extension."""
        groups = defaultdict(list)
        for path in paths:
            groups[(path.parent, path.stem.lower())].append(path)
        return {stem: group for (_, stem), group in groups.items() if len(group) > 1}

    def output_name(self, raw_file: Union[str, Path]) -> str:
        """
        Name of the finished TIFF for a RAW file

        Normally ``<stem>.tiff``. When another RAW file next to it has the same
        stem (``IMG_0001.CR2`` and ``IMG_0001.DNG``), the extension is kept,
        ``IMG_0001.CR2.tiff``, so the two outputs never replace each other.
        """
        raw_file = Path(raw_file)
        stem = raw_file.stem.lower()
        try:
            siblings = [
                entry for entry in raw_file.parent.iterdir()
                if entry.name != raw_file.name and entry.stem.lower() == stem
                and entry.is_file() and self.is_raw_file(entry)
            ]
        except OSError:
            siblings = []

        if siblings:
            return f"{raw_file.name}{TIFF_SUFFIX}"
        return f"{raw_file.stem}{TIFF_SUFFIX}"

    def get_sidecar_file(self, raw_file: Path) -> Optional[Path]:
        """
        Find the XMP sidecar associated with a RAW file

        Args:
            raw_file: Path to the RAW file

        Returns:
            Sidecar path, or None if there is none
        """
        return XMPSidecar(raw_file).path_if_exists()

    def place_output(self, image_path: Path, raw_file: Path) -> Path:
        """
        Move a finished image to its final location

        Args:
            image_path: Finished TIFF, usually in a job's work directory
            raw_file: RAW file it was converted from

        Returns:
            Final location: the output directory, or the RAW file's directory
            when none is configured, under output_name(raw_file)

        Raises:
            MutationFailure: If the move fails
        """
        image_path = Path(image_path)
        destination_dir = Path(self.output_dir) if self.output_dir is not None else Path(raw_file).parent
        destination = destination_dir / self.output_name(raw_file)
        if destination.resolve() == image_path.resolve():
            return image_path

        try:
            destination_dir.mkdir(parents=True, exist_ok=True)
            if destination.exists():
                logger.warning(f"Overwriting existing file: {destination}")
            shutil.move(str(image_path), str(destination))
        except OSError as e:
            raise MutationFailure(image_path, f"failed to move to {destination_dir}: {e}") from e

        logger.debug(f"Moved {image_path} to {destination}")
        return destination
