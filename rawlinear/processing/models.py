"""
Data models for the conversion pipeline.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from rawlinear.processing.geometry.crop import CropWindow
from rawlinear.utils.xmp_sidecar import resolve_with_override


class JobState(Enum):
    """States a single image moves through."""
    PENDING = "pending"
    SKIPPED = "skipped"                        # Rating below threshold
    SOURCE_UNAVAILABLE = "source_unavailable"
    DECODING = "decoding"
    DECODED = "decoded"
    DECODE_FAILED = "decode_failed"
    METADATA_REPAIR = "metadata_repair"
    GEOMETRY_PREP = "geometry_prep"
    ORIENTATION_PREP = "orientation_prep"
    MUTATING = "mutating"
    MUTATION_FAILED = "mutation_failed"
    CRASHED = "crashed"                        # Worker died or could not start
    PLACED = "placed"
    DONE = "done"

    @property
    def is_failure(self) -> bool:
        return self in FAILED_STATES


FAILED_STATES = frozenset({
    JobState.SOURCE_UNAVAILABLE,
    JobState.DECODE_FAILED,
    JobState.MUTATION_FAILED,
    JobState.CRASHED,
})


@dataclass(frozen=True)
class SourceMetadata:
    """
    The fields the pipeline reads from one metadata source, either the RAW
    file itself or its XMP sidecar.
    """
    path: Path
    rating: Optional[int] = None
    orientation: Optional[int] = None
    crop: Optional[CropWindow] = None
    has_preview: bool = False

    @classmethod
    def from_tags(cls, path: Path, tags: Dict[str, Any]) -> 'SourceMetadata':
        """Build from a tag dictionary as returned by MetadataTool.read_fields()."""
        crop = None
        if tags.get('HasCrop') is not None:
            crop = CropWindow(
                active=bool(tags.get('HasCrop')),
                top=tags.get('CropTop'),
                bottom=tags.get('CropBottom'),
                left=tags.get('CropLeft'),
                right=tags.get('CropRight'),
            )
        return cls(
            path=Path(path),
            rating=tags.get('Rating'),
            orientation=tags.get('Orientation'),
            crop=crop,
            has_preview=bool(tags.get('PreviewImage') or tags.get('JpgFromRaw')),
        )


@dataclass(frozen=True)
class RawFile:
    """A RAW input and whatever metadata was read for it. Never mutated."""
    path: Path
    primary: Optional[SourceMetadata] = None
    sidecar: Optional[SourceMetadata] = None

    @property
    def basename(self) -> str:
        return self.path.name

    @property
    def extension(self) -> str:
        return self.path.suffix.lower()

    @property
    def sidecar_path(self) -> Optional[Path]:
        return self.sidecar.path if self.sidecar else None

    @property
    def rating(self) -> Optional[int]:
        return resolve_with_override(self.primary, self.sidecar, lambda m: m.rating)

    @property
    def orientation(self) -> Optional[int]:
        return resolve_with_override(self.primary, self.sidecar, lambda m: m.orientation)

    @property
    def orientation_source(self) -> Path:
        return self.sidecar.path if self.sidecar else self.path

    @property
    def has_preview(self) -> bool:
        return bool(self.primary and self.primary.has_preview)


@dataclass(frozen=True)
class DecodedImage:
    """The linear 16-bit TIFF written by the decoder."""
    path: Path
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass
class JobResult:
    """Outcome of one conversion job, sent back to the dispatcher."""
    source: Path
    state: JobState
    output_path: Optional[Path] = None
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    elapsed: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.state is JobState.DONE

    @property
    def attempted(self) -> bool:
        """Whether the image passed the rating filter (or could not be read)."""
        return self.state is not JobState.SKIPPED


@dataclass
class BatchSummary:
    """
    Aggregate counts for a run.

    processed_count covers every image that passed the rating filter,
    whether or not its conversion succeeded.
    """
    total_count: int = 0
    processed_count: int = 0
    succeeded_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    elapsed_time: float = 0.0
    results: List[JobResult] = field(default_factory=list)

    @classmethod
    def from_results(cls, results: List[JobResult], elapsed_time: float,
                     total_count: Optional[int] = None) -> 'BatchSummary':
        return cls(
            total_count=len(results) if total_count is None else total_count,
            processed_count=sum(1 for r in results if r.attempted),
            succeeded_count=sum(1 for r in results if r.succeeded),
            failed_count=sum(1 for r in results if r.state.is_failure),
            skipped_count=sum(1 for r in results if not r.attempted),
            elapsed_time=elapsed_time,
            results=list(results),
        )

    @property
    def images_per_second(self) -> float:
        return self.processed_count / self.elapsed_time if self.elapsed_time > 0 else 0.0

    @property
    def average_time_per_image(self) -> float:
        times = [r.elapsed for r in self.results if r.attempted and r.elapsed]
        return sum(times) / len(times) if times else 0.0

    @property
    def failures(self) -> List[JobResult]:
        return [r for r in self.results if r.state.is_failure]
