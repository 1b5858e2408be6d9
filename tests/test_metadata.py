"""
Tests for the exiftool wrapper.

A stand-in helper replaces the exiftool process so only the wrapper's
translation of tags, parameters and errors is exercised.
"""

import pytest
from pathlib import Path

from exiftool.exceptions import ExifToolException

from rawlinear.errors import MetadataToolError, SourceUnavailable
from rawlinear.io.metadata import MetadataTool, coerce_tag
from rawlinear.processing.geometry import CropWindow


class StubHelper:
    """Mimics the parts of ExifToolHelper the wrapper calls."""

    def __init__(self, tags=None, fail=False):
        self.tags = tags or {}
        self.fail = fail
        self.get_calls = []
        self.set_calls = []
        self.executed = []

    def get_tags(self, files, tags=None, params=None):
        if self.fail:
            raise ExifToolException("exiftool failed")
        self.get_calls.append((files, tags))
        return [dict(self.tags, SourceFile=files[0])]

    def set_tags(self, files, tags, params=None):
        if self.fail:
            raise ExifToolException("exiftool failed")
        self.set_calls.append((files, dict(tags), list(params or [])))

    def execute(self, *params):
        if self.fail:
            raise ExifToolException("exiftool failed")
        self.executed.append(params)
        return ""


def tool_with(helper):
    tool = MetadataTool()
    tool.exiftool = helper
    return tool


@pytest.fixture
def raw_file(tmp_path):
    path = tmp_path / 'DSC_0001.NEF'
    path.write_bytes(b'raw')
    return path


class TestCoerceTag:
    """Test typing of raw tag values."""

    @pytest.mark.parametrize("field, value, expected", [
        ('Rating', '3', 3),
        ('Rating', 4.0, 4),
        ('Orientation', 6, 6),
        ('HasCrop', 'True', True),
        ('HasCrop', 0, False),
        ('CropTop', '0.25', 0.25),
        ('ImageWidth', '6048', 6048),
        ('Make', 'NIKON CORPORATION', 'NIKON CORPORATION'),
        ('XMP-dc:Description', 'roll 12', 'roll 12'),
        ('Make', '', None),
        ('Rating', None, None),
        ('Rating', 'five', None),
    ])
    def test_coercion(self, field, value, expected):
        assert coerce_tag(field, value) == expected


class TestReading:
    """Test reads through the helper."""

    def test_read_source(self, raw_file):
        helper = StubHelper({
            'Rating': 4, 'Orientation': 8, 'HasCrop': 1,
            'CropTop': 0.1, 'CropBottom': 0.9, 'CropLeft': 0.05, 'CropRight': 0.95,
            'PreviewImage': '(Binary data 1234 bytes)',
        })
        source = tool_with(helper).read_source(raw_file)

        assert source.path == raw_file
        assert source.rating == 4
        assert source.orientation == 8
        assert source.crop == CropWindow(True, 0.1, 0.9, 0.05, 0.95)
        assert source.has_preview is True

    def test_missing_tags_are_none(self, raw_file):
        source = tool_with(StubHelper()).read_source(raw_file)

        assert source.rating is None
        assert source.orientation is None
        assert source.crop is None
        assert source.has_preview is False

    def test_read_field(self, raw_file):
        assert tool_with(StubHelper({'Rating': '2'})).read_field(raw_file, 'Rating') == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(SourceUnavailable):
            tool_with(StubHelper()).read_source(tmp_path / 'gone.NEF')

    def test_exiftool_error(self, raw_file):
        with pytest.raises(SourceUnavailable):
            tool_with(StubHelper(fail=True)).read_dimensions(raw_file)

    def test_read_dimensions(self, raw_file):
        helper = StubHelper({'ImageWidth': 6048, 'ImageHeight': 4024})
        assert tool_with(helper).read_dimensions(raw_file) == (6048, 4024)


class TestWriting:
    """Test writes and tag transfer."""

    def test_write_fields_params(self, raw_file):
        helper = StubHelper()
        tool_with(helper).write_fields(raw_file, {'Artist': 'A. Person'})

        files, tags, params = helper.set_calls[0]
        assert files == [str(raw_file)]
        assert tags == {'Artist': 'A. Person'}
        assert params == ['-overwrite_original', '-q']

    def test_write_failure(self, raw_file):
        with pytest.raises(MetadataToolError):
            tool_with(StubHelper(fail=True)).write_fields(raw_file, {'Artist': 'x'})

    def test_repair_copies_present_tags(self, raw_file, tmp_path):
        tiff = tmp_path / 'DSC_0001.tiff'
        helper = StubHelper({'Make': 'NIKON CORPORATION', 'Artist': 'A. Person'})
        written = tool_with(helper).repair(raw_file, tiff)

        assert written == ['Artist', 'Make', 'XMP-dc:Creator']
        files, tags, _ = helper.set_calls[0]
        assert files == [str(tiff)]
        assert tags['XMP-dc:Creator'] == 'A. Person'

    def test_repair_with_nothing_to_copy(self, raw_file, tmp_path):
        helper = StubHelper()
        assert tool_with(helper).repair(raw_file, tmp_path / 'DSC_0001.tiff') == []
        assert helper.set_calls == []

    def test_transfer_tags(self, tmp_path):
        helper = StubHelper()
        profile = Path('/profiles/sRGB-elle-V4-g10.icc')
        tool_with(helper).transfer_tags(tmp_path / 'a.tiff', tmp_path / 'a.partial.tiff',
                                        profile=profile, reset_orientation=True)

        params = helper.executed[0]
        assert params[:3] == ('-TagsFromFile', str(tmp_path / 'a.tiff'), '-all:all')
        assert f'-ICC_Profile<={profile}' in params
        assert '-IFD0:Orientation=1' in params
        assert params[-1] == str(tmp_path / 'a.partial.tiff')

    def test_transfer_failure(self, tmp_path):
        with pytest.raises(MetadataToolError):
            tool_with(StubHelper(fail=True)).transfer_tags(tmp_path / 'a.tiff', tmp_path / 'b.tiff')
