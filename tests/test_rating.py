"""
Tests for rating eligibility and sidecar precedence.
"""

import pytest
from pathlib import Path

from rawlinear.processing.models import RawFile, SourceMetadata
from rawlinear.processing.rating import RatingFilter, effective_rating, is_eligible
from rawlinear.utils.xmp_sidecar import XMPSidecar, resolve_with_override


class TestEligibility:
    """Test the threshold rule."""

    @pytest.mark.parametrize("rating, threshold, expected", [
        (3, 2, True),
        (2, 2, True),
        (1, 2, False),
        (-1, 0, False),
        (-1, -1, True),
        (None, -1, True),
        (None, 0, True),
        (None, 1, False),
        (5, 5, True),
    ])
    def test_is_eligible(self, rating, threshold, expected):
        assert is_eligible(rating, threshold) is expected

    def test_unrated_counts_as_zero(self):
        assert effective_rating(None) == 0
        assert effective_rating("4") == 4

    @pytest.mark.parametrize("threshold", [-2, 6])
    def test_threshold_out_of_range(self, threshold):
        with pytest.raises(ValueError):
            RatingFilter(threshold)


class TestSidecarOverride:
    """Test sidecar precedence for rating and orientation."""

    def test_sidecar_wins(self):
        raw_file = RawFile(
            path=Path('a.NEF'),
            primary=SourceMetadata(Path('a.NEF'), rating=1, orientation=1),
            sidecar=SourceMetadata(Path('a.xmp'), rating=4, orientation=8),
        )
        assert raw_file.rating == 4
        assert raw_file.orientation == 8
        assert raw_file.orientation_source == Path('a.xmp')
        assert RatingFilter(3).accepts(raw_file)

    def test_sidecar_without_field_still_wins(self):
        raw_file = RawFile(
            path=Path('a.NEF'),
            primary=SourceMetadata(Path('a.NEF'), rating=5),
            sidecar=SourceMetadata(Path('a.xmp')),
        )
        assert raw_file.rating is None
        assert not RatingFilter(1).accepts(raw_file)

    def test_no_sidecar_uses_primary(self):
        raw_file = RawFile(path=Path('a.NEF'), primary=SourceMetadata(Path('a.NEF'), rating=2))
        assert raw_file.rating == 2
        assert raw_file.orientation_source == Path('a.NEF')

    def test_resolve_with_override_nothing_known(self):
        assert resolve_with_override(None, None, lambda m: m.rating) is None


class TestXMPSidecar:
    """Test sidecar lookup by basename."""

    def test_missing_sidecar(self, tmp_path):
        raw = tmp_path / 'DSC_0001.NEF'
        raw.write_bytes(b'raw')
        sidecar = XMPSidecar(raw)

        assert not sidecar.exists()
        assert sidecar.path_if_exists() is None
        assert sidecar.sidecar_path == tmp_path / 'DSC_0001.xmp'

    def test_upper_case_extension(self, tmp_path):
        raw = tmp_path / 'DSC_0001.NEF'
        raw.write_bytes(b'raw')
        (tmp_path / 'DSC_0001.XMP').write_text('<x:xmpmeta/>')

        found = XMPSidecar(raw).path_if_exists()
        assert found is not None
        assert found.name.lower() == 'dsc_0001.xmp'
