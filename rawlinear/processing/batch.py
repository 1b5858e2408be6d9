"""
Batch dispatch for rawlinear.

Fans RAW files out over a pool of worker processes, one conversion job per
file. Workers share nothing but a work list written once into a per-run
temporary directory; each reads the single entry it was assigned. Results
come back through futures and are only aggregated into counts and timings.
"""

import logging
import os
import shutil
import tempfile
import time
from concurrent.futures import Executor, ProcessPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from tqdm import tqdm

from rawlinear.config import JobOptions
from rawlinear.io.filesystem import FileManager
from rawlinear.processing.job import run_job
from rawlinear.processing.models import BatchSummary, JobResult, JobState
from rawlinear.utils.logging import setup_console_logging

logger = logging.getLogger(__name__)

WORKLIST_NAME = 'worklist.txt'


def write_worklist(directory: Path, paths: Sequence[Path]) -> Path:
    """Write one absolute path per line and return the list's path."""
    worklist = Path(directory) / WORKLIST_NAME
    with open(worklist, 'w', encoding='utf-8') as f:
        for path in paths:
            f.write(f"{Path(path).resolve()}\n")
    return worklist


def read_worklist_entry(worklist: Path, index: int) -> Path:
    with open(worklist, 'r', encoding='utf-8') as f:
        for position, line in enumerate(f):
            if position == index:
                return Path(line.rstrip('\n'))
    raise IndexError(f"Work list {worklist} has no entry {index}")


def convert_worklist_entry(worklist: str, index: int, options: JobOptions) -> JobResult:
    """Worker entry point: convert the file at one position of the work list."""
    return run_job(read_worklist_entry(Path(worklist), index), options, work_root=Path(worklist).parent)


def _init_worker(level: str):
    setup_console_logging(level)


def _log_level(options: JobOptions) -> str:
    if options.debug:
        return 'DEBUG'
    if options.verbose:
        return 'INFO'
    return 'WARNING'


class BatchDispatcher:
    """
    Runs conversion jobs for many files on a process pool.

    Features:
    - pool sized to the CPU count unless told otherwise
    - per-image failure isolation, including crashed workers
    - temporary state removed on completion, error or Ctrl-C
    """

    def __init__(self, options: JobOptions,
                 max_workers: Optional[int] = None,
                 executor_factory: Optional[Callable[[int], Executor]] = None,
                 job_runner: Callable[[str, int, JobOptions], JobResult] = convert_worklist_entry,
                 show_progress: bool = True):
        """
        Initialize the dispatcher.

        Args:
            options: Conversion options shared by every job
            max_workers: Worker count (default: options.jobs, then CPU count)
            executor_factory: Builds the executor for a worker count
                (default: ProcessPoolExecutor)
            job_runner: Picklable callable run in the worker for each
                work-list entry
            show_progress: Show a progress bar while waiting
        """
        self.options = options
        self.max_workers = max_workers or options.jobs or os.cpu_count() or 1
        self.executor_factory = executor_factory or self._process_pool
        self.job_runner = job_runner
        self.show_progress = show_progress
        self.file_manager = FileManager(options)
        self.work_dir: Optional[Path] = None

    def _process_pool(self, workers: int) -> Executor:
        return ProcessPoolExecutor(
            max_workers=workers,
            initializer=_init_worker,
            initargs=(_log_level(self.options),),
        )

    def run(self, search_root: Path) -> BatchSummary:
        """
        Convert every RAW file directly inside a directory

        Args:
            search_root: Directory to scan (not recursive)

        Returns:
            BatchSummary for the run
        """
        return self.run_files(self.file_manager.find_raw_files(search_root))

    def run_files(self, paths: Sequence[Path]) -> BatchSummary:
        """
        Convert the given files on the worker pool

        Args:
            paths: RAW files to convert

        Returns:
            BatchSummary; per-image failures are counted, never raised
        """
        started = time.perf_counter()
        paths = list(paths)
        results: List[JobResult] = []

        if not paths:
            logger.warning("No RAW files to convert")
            return BatchSummary.from_results(results, time.perf_counter() - started, total_count=0)

        self.work_dir = Path(tempfile.mkdtemp(prefix='rawlinear-'))
        try:
            worklist = write_worklist(self.work_dir, paths)
            workers = min(self.max_workers, len(paths))
            logger.info(f"Converting {len(paths)} files with {workers} workers")

            executor = self.executor_factory(workers)
            interrupted = False
            try:
                futures = {
                    executor.submit(self.job_runner, str(worklist), index, self.options): path
                    for index, path in enumerate(paths)
                }
                completed = as_completed(futures)
                if self.show_progress:
                    completed = tqdm(completed, total=len(futures), desc="Converting", unit="image")

                for future in completed:
                    path = futures[future]
                    try:
                        results.append(future.result())
                    except Exception as e:
                        # A worker that dies takes only its own image down
                        logger.warning(f"{path.name}: worker failed: {e}")
                        results.append(JobResult(source=path, state=JobState.CRASHED,
                                                 error=f"worker failed: {e}"))
            except KeyboardInterrupt:
                interrupted = True
                logger.warning("Interrupted, cancelling pending conversions")
                raise
            finally:
                executor.shutdown(wait=not interrupted, cancel_futures=interrupted)
        finally:
            shutil.rmtree(self.work_dir, ignore_errors=True)
            logger.debug(f"Removed work directory {self.work_dir}")

        return BatchSummary.from_results(results, time.perf_counter() - started, total_count=len(paths))


def convert_files(paths: Sequence[Path], options: JobOptions) -> BatchSummary:
    """
    Convert files one after another in this process

    Used for files named on the command line.
    """
    started = time.perf_counter()
    paths = list(paths)
    results = []
    for path in paths:
        try:
            result = run_job(Path(path), options)
        except Exception as e:
            # exiftool failing to start is the usual cause; keep going with the rest
            logger.warning(f"{Path(path).name}: conversion failed: {e}")
            result = JobResult(source=Path(path), state=JobState.CRASHED, error=str(e))
        results.append(result)
    return BatchSummary.from_results(results, time.perf_counter() - started, total_count=len(paths))
