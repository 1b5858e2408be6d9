"""
Per-image conversion pipeline for rawlinear.

ConversionJob takes one RAW file through decode, metadata repair, geometry
and orientation preparation, pixel mutation and output placement. Each
failure is contained to the image: the job records a terminal state,
reports it and returns normally, so a batch can carry on with the next file.
"""

import logging
import shutil
import tempfile
import time
from pathlib import Path
from typing import List, Optional

from rawlinear.config import JobOptions
from rawlinear.errors import (
    DecodeFailure, GeometryComputationFailure, MetadataRepairFailure,
    MetadataToolError, MutationFailure, SourceUnavailable
)
from rawlinear.io.filesystem import FileManager
from rawlinear.io.metadata import MetadataTool
from rawlinear.io.profiles import ProfileKind, ProfileResolver
from rawlinear.io.raw import RawDecoder
from rawlinear.processing.geometry.crop import GeometryPlan, Shave, resolve_geometry
from rawlinear.processing.geometry.orientation import Orientation, resolve_orientation
from rawlinear.processing.models import DecodedImage, JobResult, JobState, RawFile
from rawlinear.processing.mutation import ImageMutator, build_directives
from rawlinear.processing.rating import RatingFilter
from rawlinear.utils.logging import StageReporter, StructuredLogger

logger = logging.getLogger(__name__)

# Legal moves of the state machine
TRANSITIONS = {
    JobState.PENDING: {JobState.DECODING, JobState.SKIPPED, JobState.SOURCE_UNAVAILABLE},
    JobState.DECODING: {JobState.DECODED, JobState.DECODE_FAILED, JobState.SOURCE_UNAVAILABLE},
    JobState.DECODED: {JobState.METADATA_REPAIR},
    JobState.METADATA_REPAIR: {JobState.GEOMETRY_PREP},
    JobState.GEOMETRY_PREP: {JobState.ORIENTATION_PREP},
    JobState.ORIENTATION_PREP: {JobState.MUTATING},
    JobState.MUTATING: {JobState.PLACED, JobState.MUTATION_FAILED},
    JobState.PLACED: {JobState.DONE, JobState.MUTATION_FAILED},
}


class ConversionJob:
    """
    Converts a single RAW file.

    Collaborators are injected so the pipeline can run against fakes; see
    run_job() for the production wiring.
    """

    def __init__(self, raw_path: Path, options: JobOptions,
                 metadata: MetadataTool,
                 decoder: Optional[RawDecoder] = None,
                 mutator: Optional[ImageMutator] = None,
                 profiles: Optional[ProfileResolver] = None,
                 file_manager: Optional[FileManager] = None,
                 reporter: Optional[StageReporter] = None,
                 work_root: Optional[Path] = None):
        self.raw_path = Path(raw_path)
        self.options = options
        self.metadata = metadata
        self.decoder = decoder or RawDecoder(options)
        self.mutator = mutator or ImageMutator(metadata)
        self.profiles = profiles or ProfileResolver.from_options(options)
        self.file_manager = file_manager or FileManager(options)
        self.reporter = reporter or StageReporter(self.raw_path.name)
        self.log = StructuredLogger(__name__, {'file': self.raw_path.name})
        self.work_root = Path(work_root) if work_root is not None else None
        self.work_dir: Optional[Path] = None

        self.state = JobState.PENDING
        self.history: List[JobState] = [JobState.PENDING]
        self.warnings: List[str] = []
        self.raw_file: Optional[RawFile] = None
        self.decoded: Optional[DecodedImage] = None
        self.geometry = GeometryPlan(shave=Shave())
        self.orientation = Orientation.NONE

    def _transition(self, state: JobState):
        if state not in TRANSITIONS.get(self.state, set()):
            raise RuntimeError(f"Illegal transition {self.state.value} -> {state.value}")
        self.log.debug(f"{self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def _warn(self, stage: str, error: Exception):
        message = getattr(error, 'message', str(error))
        self.warnings.append(f"{stage}: {message}")
        self.log.warning(f"{stage} failed, continuing without it", reason=message)
        self.reporter.warn(stage, message)

    def _finish(self, state: JobState, started: float, error: Optional[Exception] = None,
                output_path: Optional[Path] = None) -> JobResult:
        self._transition(state)
        message = getattr(error, 'message', str(error)) if error else None
        if state.is_failure:
            self.log.warning(f"Conversion stopped at {state.value}", reason=message)
        return JobResult(
            source=self.raw_path,
            state=state,
            output_path=output_path,
            warnings=list(self.warnings),
            error=message,
            elapsed=time.perf_counter() - started,
        )

    def load_raw_file(self) -> RawFile:
        """Read the RAW file's metadata and, if present, its sidecar's."""
        primary = self.metadata.read_source(self.raw_path)
        sidecar_path = self.file_manager.get_sidecar_file(self.raw_path)
        sidecar = self.metadata.read_source(sidecar_path) if sidecar_path else None
        return RawFile(path=self.raw_path, primary=primary, sidecar=sidecar)

    def run(self) -> JobResult:
        """
        Run the pipeline to a terminal state

        Returns:
            JobResult; never raises for per-image failures
        """
        started = time.perf_counter()

        try:
            self.raw_file = self.load_raw_file()
        except SourceUnavailable as e:
            self.reporter.fail("read", e.message)
            return self._finish(JobState.SOURCE_UNAVAILABLE, started, e)

        if not RatingFilter(self.options.rating_threshold).accepts(self.raw_file):
            self.reporter.skip("rating", f"below {self.options.rating_threshold}")
            return self._finish(JobState.SKIPPED, started)

        # Intermediate files live in a directory no other job writes to
        self.work_dir = Path(tempfile.mkdtemp(prefix='job-', dir=self.work_root))
        try:
            return self._convert(started)
        finally:
            shutil.rmtree(self.work_dir, ignore_errors=True)
            logger.debug(f"Removed work directory {self.work_dir}")

    def _convert(self, started: float) -> JobResult:
        # Decode
        self._transition(JobState.DECODING)
        try:
            self.decoded = self.decoder.decode(self.raw_path, self.work_dir)
        except SourceUnavailable as e:
            self.reporter.fail("decode", e.message)
            return self._finish(JobState.SOURCE_UNAVAILABLE, started, e)
        except DecodeFailure as e:
            self.reporter.fail("decode", e.message)
            return self._finish(JobState.DECODE_FAILED, started, e)
        self._transition(JobState.DECODED)
        tiff_path = self.decoded.path
        self.reporter.ok("decode", tiff_path.name)

        self._transition(JobState.METADATA_REPAIR)
        self.repair_metadata(tiff_path)

        self._transition(JobState.GEOMETRY_PREP)
        if self.options.crop:
            self.prepare_geometry(tiff_path)

        self._transition(JobState.ORIENTATION_PREP)
        if self.options.orientation:
            self.prepare_orientation()

        # Mutate
        self._transition(JobState.MUTATING)
        try:
            width, height = self.mutate(tiff_path)
        except MutationFailure as e:
            self.reporter.fail("mutate", e.message)
            return self._finish(JobState.MUTATION_FAILED, started, e)
        self.reporter.ok("mutate", f"{width}x{height}")

        # Place
        self._transition(JobState.PLACED)
        try:
            output_path = self.file_manager.place_output(tiff_path, self.raw_path)
        except MutationFailure as e:
            self.reporter.fail("place", e.message)
            return self._finish(JobState.MUTATION_FAILED, started, e)
        self.reporter.ok("done", str(output_path))
        return self._finish(JobState.DONE, started, output_path=output_path)

    def repair_metadata(self, tiff_path: Path):
        """Backfill descriptive tags; failures only warn."""
        try:
            written = self.metadata.repair(self.raw_path, tiff_path)
        except (MetadataToolError, SourceUnavailable) as e:
            self._warn("metadata", MetadataRepairFailure(tiff_path, e.message))
            return
        self.reporter.ok("metadata", ", ".join(written) or "nothing to copy")

    def decoded_size(self, tiff_path: Path):
        """Pixel size of the decoded TIFF, asking exiftool only if the decoder did not say."""
        if self.decoded is not None and self.decoded.width and self.decoded.height:
            return self.decoded.width, self.decoded.height
        return self.metadata.read_dimensions(tiff_path)

    def prepare_geometry(self, tiff_path: Path):
        """Derive shave and crop; failures only warn."""
        raw_file = self.raw_file
        try:
            decoded_size = self.decoded_size(tiff_path)
        except SourceUnavailable as e:
            self._warn("geometry", GeometryComputationFailure(tiff_path, e.message))
            return

        try:
            preview_size = self.decoder.preview_size(self.raw_path) if raw_file.has_preview else None
            self.geometry = resolve_geometry(
                self.raw_path,
                decoded_size,
                preview_size,
                raw_file.primary.crop if raw_file.primary else None,
                raw_file.sidecar.crop if raw_file.sidecar else None,
                raw_file.sidecar_path,
            )
        except GeometryComputationFailure as e:
            self._warn("geometry", e)
            return

        detail = []
        if not self.geometry.shave.is_empty:
            detail.append(f"shave {self.geometry.shave.dx}x{self.geometry.shave.dy}")
        if self.geometry.crop is not None:
            detail.append(f"crop from {self.geometry.crop_source.name}")
        self.reporter.ok("geometry", ", ".join(detail) or "nothing to crop")

    def prepare_orientation(self):
        result = resolve_orientation(self.raw_file.orientation, self.raw_file.orientation_source)
        self.orientation = result.orientation
        if result.warning is not None:
            self.warnings.append(f"orientation: {result.warning.message}")
            self.reporter.warn("orientation", result.warning.message)
        else:
            self.reporter.ok("orientation", self.orientation.name.lower())

    def mutate(self, tiff_path: Path):
        kind = ProfileKind.GRAY_LINEAR if self.options.desaturate else ProfileKind.SRGB_LINEAR
        profile = self.profiles.resolve(kind)
        if profile is None:
            self.warnings.append(f"profile: no {kind.value} ICC profile found")
            self.reporter.warn("profile", f"no {kind.value} ICC profile found")

        directives = build_directives(
            self.options,
            shave=self.geometry.shave,
            crop=self.geometry.crop,
            orientation=self.orientation,
            profile=profile,
        )
        return self.mutator.apply(tiff_path, directives)


def run_job(raw_path: Path, options: JobOptions, report: bool = True,
            work_root: Optional[Path] = None) -> JobResult:
    """
    Convert one RAW file with the production collaborators

    Args:
        raw_path: RAW file to convert
        options: Conversion options
        report: Print per-stage status markers
        work_root: Directory for the job's work directory, the system temp dir if None

    Returns:
        JobResult
    """
    with MetadataTool(options.exiftool_path) as metadata:
        job = ConversionJob(
            raw_path, options, metadata,
            reporter=StageReporter(Path(raw_path).name, enabled=report),
            work_root=work_root,
        )
        return job.run()
