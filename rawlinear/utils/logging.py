"""
Logging utilities for rawlinear
Provides structured logging, per-stage status markers and run statistics
"""

import logging
import sys
from typing import Optional, Dict, Any, List
import json

import click
import colorlog

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class StructuredLogger:
    """Provides structured logging with metadata"""

    def __init__(self, name: str, metadata: Optional[Dict[str, Any]] = None):
        """
        Initialize structured logger

        Args:
            name: Logger name
            metadata: Default metadata to include in all logs
        """
        self.logger = logging.getLogger(name)
        self.metadata = metadata or {}

    def _format_message(self, message: str, **kwargs) -> str:
        """Format message with metadata"""
        data = {**self.metadata, **kwargs}
        if data:
            return f"{message} | {json.dumps(data, default=str)}"
        return message

    def debug(self, message: str, **kwargs):
        self.logger.debug(self._format_message(message, **kwargs))

    def warning(self, message: str, **kwargs):
        self.logger.warning(self._format_message(message, **kwargs))


class StageReporter:
    """Prints one coloured status line per pipeline stage of an image"""

    MARKERS = {
        'ok': ('✔', 'green'),
        'warn': ('!', 'yellow'),
        'fail': ('✘', 'red'),
        'skip': ('-', 'cyan'),
    }

    def __init__(self, image_name: str, enabled: bool = True):
        self.image_name = image_name
        self.enabled = enabled
        self.events: List[tuple] = []

    def _emit(self, kind: str, stage: str, detail: str = ''):
        self.events.append((kind, stage, detail))
        if not self.enabled:
            return
        marker, color = self.MARKERS[kind]
        line = f"[{marker}] {self.image_name}: {stage}"
        if detail:
            line += f" ({detail})"
        click.secho(line, fg=color, err=kind in ('warn', 'fail'))

    def ok(self, stage: str, detail: str = ''):
        self._emit('ok', stage, detail)

    def warn(self, stage: str, detail: str = ''):
        self._emit('warn', stage, detail)

    def fail(self, stage: str, detail: str = ''):
        self._emit('fail', stage, detail)

    def skip(self, stage: str, detail: str = ''):
        self._emit('skip', stage, detail)


def print_summary(summary):
    """
    Print a run summary to the console

    Args:
        summary: BatchSummary of the run
    """
    click.echo("\n" + "=" * 60)
    click.echo("CONVERSION SUMMARY")
    click.echo("=" * 60)
    click.echo(f"Found:            {summary.total_count}")
    click.echo(f"Processed:        {summary.processed_count}")
    click.echo(f"Converted:        {summary.succeeded_count}")
    click.echo(f"Below rating:     {summary.skipped_count}")
    click.echo(f"Errors:           {summary.failed_count}")
    click.echo(f"Elapsed time:     {summary.elapsed_time:.1f}s")
    click.echo(f"Avg time/file:    {summary.average_time_per_image:.2f}s")
    click.echo(f"Processing rate:  {summary.images_per_second:.2f} files/s")
    click.echo("=" * 60)

    failures = summary.failures
    if failures:
        click.secho("\nERRORS:", fg='red')
        for result in failures[:10]:  # Show first 10 errors
            click.echo(f"  - {result.source.name}: {result.error or result.state.value}")
        if len(failures) > 10:
            click.echo(f"  ... and {len(failures) - 10} more errors")


def setup_console_logging(level: str = "WARNING", color: bool = True):
    """
    Setup console logging with optional color support

    Safe to call more than once per process (worker processes call it on
    start-up); the handler is only installed once.

    Args:
        level: Logging level
        color: Whether to use colored output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, str(level).upper(), logging.WARNING))
    if any(getattr(h, '_rawlinear', False) for h in root_logger.handlers):
        return

    console_handler = logging.StreamHandler(sys.stderr)

    if color and sys.stderr.isatty():
        formatter = colorlog.ColoredFormatter(
            '%(log_color)s%(asctime)s - %(name)s - %(levelname)s%(reset)s - %(message)s',
            log_colors={
                'DEBUG': 'cyan',
                'INFO': 'green',
                'WARNING': 'yellow',
                'ERROR': 'red',
                'CRITICAL': 'red,bg_white',
            }
        )
    else:
        formatter = logging.Formatter(LOG_FORMAT)

    console_handler.setFormatter(formatter)
    console_handler._rawlinear = True
    root_logger.addHandler(console_handler)
