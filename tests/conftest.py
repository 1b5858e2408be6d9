"""
Shared fixtures and fakes for the rawlinear tests.

The fakes stand in for exiftool, LibRaw and the pixel pipeline so jobs can
be driven through every state without external tools or RAW samples.
"""

from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import pytest

from rawlinear.config import JobOptions
from rawlinear.errors import DecodeFailure, MetadataToolError, MutationFailure, SourceUnavailable
from rawlinear.io.raw import decoded_path_for
from rawlinear.processing.models import DecodedImage, SourceMetadata
from rawlinear.utils.logging import StageReporter


class FakeMetadataTool:
    """Serves canned SourceMetadata per path and records writes."""

    def __init__(self, sources: Optional[Dict[Path, SourceMetadata]] = None,
                 dimensions: Tuple[int, int] = (4000, 3000),
                 unreadable: Optional[Set[str]] = None,
                 repair_fails: bool = False):
        self.sources = dict(sources or {})
        self.dimensions = dimensions
        self.unreadable = unreadable or set()
        self.repair_fails = repair_fails
        self.repaired: List[Path] = []

    def read_source(self, path):
        path = Path(path)
        if path.name in self.unreadable:
            raise SourceUnavailable(path, "exiftool could not read file")
        return self.sources.get(path, SourceMetadata(path=path))

    def read_dimensions(self, path):
        return self.dimensions

    def repair(self, raw_path, tiff_path):
        if self.repair_fails:
            raise MetadataToolError(tiff_path, "failed to write Make")
        self.repaired.append(Path(tiff_path))
        return ['Make', 'Model']


class FakeDecoder:
    """Writes a placeholder TIFF where RawDecoder would put it."""

    def __init__(self, failing: Optional[Set[str]] = None,
                 preview: Optional[Tuple[int, int]] = None,
                 size: Optional[Tuple[int, int]] = None):
        self.failing = failing or set()
        self.preview = preview
        self.size = size
        self.decoded: List[Path] = []

    def decode(self, raw_path, work_dir=None):
        raw_path = Path(raw_path)
        if raw_path.name in self.failing:
            raise DecodeFailure(raw_path, "LibRaw could not decode file")
        output = decoded_path_for(raw_path, work_dir)
        output.write_bytes(raw_path.name.encode())
        self.decoded.append(raw_path)
        width, height = self.size or (None, None)
        return DecodedImage(path=output, width=width, height=height)

    def preview_size(self, raw_path):
        return self.preview


class FakeMutator:
    """Records the directives it is given instead of touching pixels."""

    def __init__(self, size: Tuple[int, int] = (4000, 3000), fails: bool = False):
        self.size = size
        self.fails = fails
        self.calls: List[Tuple[Path, list]] = []

    def apply(self, image_path, directives):
        self.calls.append((Path(image_path), list(directives)))
        if self.fails:
            raise MutationFailure(image_path, "pixel operation failed")
        return self.size

    @property
    def last_directives(self) -> list:
        return self.calls[-1][1]


class FakeProfiles:
    def __init__(self, path: Optional[Path] = None):
        self.path = path
        self.requested = []

    def resolve(self, kind):
        self.requested.append(kind)
        return self.path


def quiet_reporter(name: str = 'test') -> StageReporter:
    return StageReporter(name, enabled=False)


@pytest.fixture
def options():
    return JobOptions()


@pytest.fixture
def raw_dir(tmp_path):
    """A directory holding a few placeholder RAW files."""
    directory = tmp_path / 'shoot'
    directory.mkdir()
    for name in ('DSC_0001.NEF', 'DSC_0002.nef', 'IMG_0003.CR2'):
        (directory / name).write_bytes(b'raw')
    return directory
