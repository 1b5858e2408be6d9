"""
Metadata access for rawlinear
Reads and writes tags through a persistent exiftool process
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import exiftool
from exiftool.exceptions import ExifToolException

from rawlinear.errors import MetadataToolError, SourceUnavailable
from rawlinear.processing.models import SourceMetadata

logger = logging.getLogger(__name__)

# Fields read from a RAW file or its sidecar
SOURCE_TAGS = (
    'Rating', 'Orientation',
    'HasCrop', 'CropTop', 'CropBottom', 'CropLeft', 'CropRight',
    'PreviewImage', 'JpgFromRaw',
)

DIMENSION_TAGS = ('ImageWidth', 'ImageHeight')

# Decoded TIFFs lose these; target tag <- source EXIF tag
REPAIR_TAGS = {
    'ImageDescription': 'ImageDescription',
    'XMP-dc:Description': 'ImageDescription',
    'Artist': 'Artist',
    'XMP-dc:Creator': 'Artist',
    'Make': 'Make',
    'Model': 'Model',
    'Software': 'Software',
}

_INT_TAGS = {'Rating', 'Orientation', 'ImageWidth', 'ImageHeight'}
_FLOAT_TAGS = {'CropTop', 'CropBottom', 'CropLeft', 'CropRight', 'CropAngle'}
_BOOL_TAGS = {'HasCrop'}


def _tag_key(field: str) -> str:
    """exiftool reports tags without their group when -G is not given."""
    return field.split(':')[-1]


def coerce_tag(field: str, value: Any) -> Any:
    """
    Convert a raw JSON tag value to the type the pipeline expects.

    Unparseable values are treated as absent rather than raising, the same
    as a missing tag.
    """
    if value is None or value == '':
        return None

    name = _tag_key(field)
    try:
        if name in _BOOL_TAGS:
            if isinstance(value, str):
                return value.strip().lower() in ('true', '1', 'yes')
            return bool(value)
        if name in _INT_TAGS:
            return int(float(value))
        if name in _FLOAT_TAGS:
            return float(value)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring unparseable {name} value {value!r}")
        return None
    return value


class MetadataTool:
    """Wraps exiftool for the read, write and tag-transfer calls the pipeline makes"""

    def __init__(self, executable: Optional[str] = None):
        """
        Initialize the metadata tool

        Args:
            executable: exiftool executable, default found on PATH
        """
        self.executable = executable
        self.exiftool = None

    def _helper_kwargs(self) -> Dict[str, Any]:
        kwargs = {'common_args': ['-n']}
        if self.executable:
            kwargs['executable'] = self.executable
        return kwargs

    def __enter__(self):
        """Context manager entry - start ExifTool process"""
        self.exiftool = exiftool.ExifToolHelper(**self._helper_kwargs())
        self.exiftool.run()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - terminate ExifTool process"""
        if self.exiftool:
            self.exiftool.terminate()
            self.exiftool = None

    def _get_tags(self, path: Path, tags: List[str]) -> Dict[str, Any]:
        if not self.exiftool:
            # Fallback to single-use ExifTool if not in context manager
            with exiftool.ExifToolHelper(**self._helper_kwargs()) as et:
                result = et.get_tags([str(path)], tags=tags)
        else:
            result = self.exiftool.get_tags([str(path)], tags=tags)
        return result[0] if result else {}

    def _execute(self, *params: str) -> str:
        if not self.exiftool:
            with exiftool.ExifToolHelper(**self._helper_kwargs()) as et:
                return et.execute(*params)
        return self.exiftool.execute(*params)

    def read_fields(self, path: Union[str, Path], fields: Iterable[str]) -> Dict[str, Any]:
        """
        Read several tags in one exiftool call

        Args:
            path: File to read
            fields: Tag names, optionally group-qualified

        Returns:
            Mapping of each requested field to its typed value, None if absent

        Raises:
            SourceUnavailable: If the file is missing or exiftool cannot read it
        """
        path = Path(path)
        fields = list(fields)
        if not path.is_file():
            raise SourceUnavailable(path, "file does not exist")

        try:
            tags = self._get_tags(path, fields)
        except ExifToolException as e:
            raise SourceUnavailable(path, f"exiftool could not read file: {e}") from e

        return {field: coerce_tag(field, tags.get(_tag_key(field))) for field in fields}

    def read_field(self, path: Union[str, Path], field: str) -> Any:
        """Read a single tag; None when the file has no such tag."""
        return self.read_fields(path, [field])[field]

    def read_source(self, path: Union[str, Path]) -> SourceMetadata:
        """Read rating, orientation, crop and preview presence from a RAW or XMP file."""
        tags = self.read_fields(path, SOURCE_TAGS)
        return SourceMetadata.from_tags(Path(path), tags)

    def read_dimensions(self, path: Union[str, Path]) -> tuple:
        tags = self.read_fields(path, DIMENSION_TAGS)
        return tags['ImageWidth'], tags['ImageHeight']

    def write_fields(self, path: Union[str, Path], fields: Dict[str, Any],
                     overwrite_original: bool = True, quiet: bool = True):
        """
        Write tags to a file

        Args:
            path: File to modify
            fields: Tag name to value
            overwrite_original: Do not keep exiftool's "_original" backup
            quiet: Suppress exiftool's informational output

        Raises:
            MetadataToolError: If exiftool reports a failure
        """
        params = []
        if overwrite_original:
            params.append('-overwrite_original')
        if quiet:
            params.append('-q')

        try:
            if not self.exiftool:
                with exiftool.ExifToolHelper(**self._helper_kwargs()) as et:
                    et.set_tags([str(path)], fields, params=params)
            else:
                self.exiftool.set_tags([str(path)], fields, params=params)
        except ExifToolException as e:
            raise MetadataToolError(path, f"failed to write {', '.join(fields)}: {e}") from e

    def repair(self, raw_path: Union[str, Path], tiff_path: Union[str, Path]) -> List[str]:
        """
        Copy descriptive EXIF fields from a RAW file into its decoded TIFF

        Returns:
            Names of the tags written
        """
        source = self.read_fields(raw_path, sorted(set(REPAIR_TAGS.values())))
        fields = {target: source[tag] for target, tag in REPAIR_TAGS.items()
                  if source.get(tag) is not None}
        if fields:
            self.write_fields(tiff_path, fields)
        return sorted(fields)

    def transfer_tags(self, source: Union[str, Path], target: Union[str, Path],
                      profile: Optional[Path] = None, reset_orientation: bool = False):
        """
        Copy all writable tags from source to target, optionally embedding an
        ICC profile and marking the pixels as upright.

        Raises:
            MetadataToolError: If exiftool reports a failure
        """
        params = ['-TagsFromFile', str(source), '-all:all']
        if profile is not None:
            params.append(f'-ICC_Profile<={profile}')
        if reset_orientation:
            params.append('-IFD0:Orientation=1')
        params.extend(['-overwrite_original', '-q', str(target)])

        try:
            self._execute(*params)
        except ExifToolException as e:
            raise MetadataToolError(target, f"failed to transfer tags from {Path(source).name}: {e}") from e
