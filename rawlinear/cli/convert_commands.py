"""
rawlinear command line interface

Converts RAW files named on the command line, or with --batch every RAW
file in a directory, into linear 16-bit TIFFs.
"""

import os
import shutil
import sys
import click
import logging
from pathlib import Path
from typing import Optional, Tuple

from rawlinear.config import JobOptions, MIRROR_MODES, get_config_value, load_config
from rawlinear.errors import FatalConfigError
from rawlinear.processing.batch import BatchDispatcher, convert_files
from rawlinear.utils.logging import print_summary, setup_console_logging

logger = logging.getLogger(__name__)


def require_exiftool(executable: str):
    """
    Make sure exiftool can be started

    Raises:
        FatalConfigError: If the executable cannot be found
    """
    if os.path.sep in executable:
        found = Path(executable).is_file() and os.access(executable, os.X_OK)
    else:
        found = shutil.which(executable) is not None
    if not found:
        raise FatalConfigError(f"exiftool not found ({executable}); install it or set exiftool.executable")


@click.command(context_settings={'help_option_names': ['-h', '--help']})
@click.argument('files', nargs=-1,
                type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path))
@click.option('--batch', '-b', is_flag=True,
              help='Convert every RAW file in the search root (default: current directory)')
@click.option('--search-root', type=click.Path(exists=True, file_okay=False, path_type=Path),
              default='.', show_default=True, help='Directory scanned in batch mode')
@click.option('--crop', '-c', is_flag=True,
              help='Crop as set in the raw editor and shave to the embedded preview size')
@click.option('--desaturate', '-g', is_flag=True, help='Write grayscale output')
@click.option('--mirror', '-f', type=click.Choice(MIRROR_MODES), help='Mirror the output')
@click.option('--orientation', '-o', is_flag=True, help='Rotate according to orientation metadata')
@click.option('--output-dir', '-O', type=click.Path(file_okay=False, path_type=Path),
              help='Directory for finished TIFFs')
@click.option('--rating', '-r', type=click.IntRange(-1, 5),
              help='Minimum star rating: -1 all, 0 all but rejected, 1-5 stars')
@click.option('--resize', '-s', type=click.IntRange(min=1),
              help='Shrink so the longer side is at most this many pixels')
@click.option('--highlight', '-H', type=click.IntRange(0, 9),
              help='Highlight mode: 0 clip, 1 unclip, 2 blend, 3-9 rebuild')
@click.option('--demosaic', '-a', type=click.IntRange(0, 3),
              help='Demosaic algorithm: 0 linear, 1 VNG, 2 PPG, 3 AHD')
@click.option('--colorspace', '-C', type=click.IntRange(0, 6),
              help='Output colorspace: 0 raw, 1 sRGB, 2 Adobe, 3 Wide, 4 ProPhoto, 5 XYZ, 6 ACES')
@click.option('--no-camera-wb', '-w', is_flag=True, help='Do not apply the camera white balance')
@click.option('--jobs', '-j', type=click.IntRange(min=1), help='Worker processes (default: CPU count)')
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--debug', '-d', is_flag=True, help='Enable debug logging')
def main(files: Tuple[Path, ...], batch: bool, search_root: Path, crop: bool, desaturate: bool,
         mirror: Optional[str], orientation: bool, output_dir: Optional[Path],
         rating: Optional[int], resize: Optional[int], highlight: Optional[int],
         demosaic: Optional[int], colorspace: Optional[int], no_camera_wb: bool,
         jobs: Optional[int], config_path: Optional[Path], verbose: bool, debug: bool):
    """
    Convert camera RAW files to linear (gamma 1.0) 16-bit TIFFs.

    FILES: RAW files to convert; omit with --batch
    """
    if batch and files:
        raise click.UsageError("Give either --batch or FILES, not both")
    if not batch and not files:
        raise click.UsageError("No input: give FILES or use --batch")

    try:
        config = load_config(config_path)
        level = 'DEBUG' if debug else 'INFO' if verbose else get_config_value(config, 'logging.level', 'WARNING')
        setup_console_logging(level)

        options = JobOptions.from_config(
            config,
            crop=crop or None,
            orientation=orientation or None,
            desaturate=desaturate or None,
            mirror=mirror,
            output_dir=output_dir,
            rating_threshold=rating,
            resize=resize,
            highlight_mode=highlight,
            demosaic_algorithm=demosaic,
            output_colorspace=colorspace,
            camera_white_balance=False if no_camera_wb else None,
            jobs=jobs,
            verbose=verbose or None,
            debug=debug or None,
        )
        require_exiftool(options.exiftool_path)
        if options.output_dir is not None:
            try:
                options.output_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise FatalConfigError(f"Cannot create output directory {options.output_dir}: {e}") from e
    except FatalConfigError as e:
        click.secho(f"❌ {e}", fg='red', err=True)
        sys.exit(1)

    try:
        if batch:
            click.echo(f"🔍 Converting RAW files in: {search_root.resolve()}")
            dispatcher = BatchDispatcher(options, show_progress=not (verbose or debug))
            summary = dispatcher.run(search_root)
        else:
            summary = convert_files(files, options)
    except KeyboardInterrupt:
        click.secho("\nInterrupted", fg='yellow', err=True)
        sys.exit(130)

    print_summary(summary)


if __name__ == '__main__':
    main()
