"""
Configuration management for rawlinear

Settings come from a YAML file (the packaged config.yaml unless another is
given) and are folded together with command-line values into a single
immutable JobOptions that every component receives explicitly.
"""

import yaml
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, Optional, Tuple, Union
import logging

from rawlinear.errors import FatalConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"

DEFAULT_RAW_EXTENSIONS = (
    '.3fr', '.arw', '.cr2', '.cr3', '.crw', '.dng', '.erf', '.kdc', '.mrw',
    '.nef', '.nrw', '.orf', '.pef', '.raf', '.raw', '.rw2', '.sr2', '.srf',
    '.srw', '.x3f',
)

MIRROR_MODES = ('flip', 'flop', 'flipflop')
COMPRESSION_METHODS = ('none', 'lzw', 'deflate')


def _expand_env_vars(obj: Union[Dict, Any]) -> Union[Dict, Any]:
    """
    Recursively expand environment variables in config values.
    Supports ${VAR_NAME} syntax.
    """
    if isinstance(obj, dict):
        return {key: _expand_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        pattern = r'\$\{([^}]+)\}'
        def replace_var(match):
            var_name = match.group(1)
            return os.getenv(var_name, match.group(0))  # Return original if not found
        return re.sub(pattern, replace_var, obj)
    else:
        return obj


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge override into a copy of base, descending into nested dicts."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load configuration from YAML file

    Args:
        config_path: Path to config file. If None, uses the packaged config.yaml

    Returns:
        Configuration dictionary layered over the defaults

    Raises:
        FatalConfigError: If an explicitly requested file cannot be loaded
    """
    explicit = config_path is not None
    config_path = Path(config_path) if explicit else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        if explicit:
            raise FatalConfigError(f"Config file not found: {config_path}")
        logger.warning(f"Config file not found: {config_path}. Using defaults.")
        return get_default_config()

    try:
        with open(config_path, 'r') as f:
            loaded = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        if explicit:
            raise FatalConfigError(f"Failed to load config from {config_path}: {e}") from e
        logger.error(f"Failed to load config from {config_path}: {e}")
        return get_default_config()

    if not isinstance(loaded, dict):
        raise FatalConfigError(f"Config file {config_path} must contain a mapping")

    logger.debug(f"Loaded configuration from {config_path}")
    return _merge(get_default_config(), _expand_env_vars(loaded))


def get_default_config() -> Dict[str, Any]:
    """
    Get default configuration values

    Returns:
        Default configuration dictionary
    """
    return {
        'processing': {
            'raw_extensions': list(DEFAULT_RAW_EXTENSIONS),
            'jobs': None,  # CPU count
        },
        'decoder': {
            'demosaic_algorithm': 3,  # AHD
            'highlight_mode': 0,  # clip
            'output_colorspace': 1,  # sRGB
            'camera_white_balance': True,
            'flip': 0,
        },
        'output': {
            'directory': None,
            'compression': 'lzw',
        },
        'profiles': {
            'gray_linear': 'Gray-elle-V4-g10.icc',
            'srgb_linear': 'sRGB-elle-V4-g10.icc',
            'search_dirs': [
                '~/.local/share/color/icc',
                '/usr/local/share/color/icc',
                '/usr/share/color/icc',
                '/Library/ColorSync/Profiles',
            ],
        },
        'exiftool': {
            'executable': 'exiftool',
        },
        'logging': {
            'level': 'WARNING',
        },
    }


def get_config_value(config: Dict[str, Any], key_path: str, default: Any = None) -> Any:
    """
    Get a nested configuration value using dot notation

    Args:
        config: Configuration dictionary
        key_path: Dot-separated key path (e.g., 'decoder.highlight_mode')
        default: Default value if key not found

    Returns:
        Configuration value or default
    """
    keys = key_path.split('.')
    value = config

    try:
        for key in keys:
            value = value[key]
        return value
    except (KeyError, TypeError):
        return default


def _check_range(name: str, value: int, low: int, high: int):
    if not isinstance(value, int) or isinstance(value, bool) or not low <= value <= high:
        raise FatalConfigError(f"{name} must be an integer in {low}..{high}, got {value!r}")


@dataclass(frozen=True)
class JobOptions:
    """
    Per-invocation conversion settings.

    Built once at startup, validated on construction and passed to every
    component that needs it. Instances are picklable so they can travel to
    worker processes.
    """
    # Decoder
    demosaic_algorithm: int = 3
    highlight_mode: int = 0
    output_colorspace: int = 1
    camera_white_balance: bool = True
    decoder_flip: int = 0

    # Pipeline switches
    crop: bool = False
    orientation: bool = False
    desaturate: bool = False
    resize: Optional[int] = None
    mirror: Optional[str] = None
    rating_threshold: int = -1

    # Output
    output_dir: Optional[Path] = None
    compression: str = 'lzw'

    # Environment
    raw_extensions: Tuple[str, ...] = DEFAULT_RAW_EXTENSIONS
    gray_profile: str = 'Gray-elle-V4-g10.icc'
    color_profile: str = 'sRGB-elle-V4-g10.icc'
    profile_dirs: Tuple[Path, ...] = field(default_factory=tuple)
    exiftool_path: str = 'exiftool'
    jobs: Optional[int] = None
    verbose: bool = False
    debug: bool = False

    def __post_init__(self):
        _check_range('demosaic_algorithm', self.demosaic_algorithm, 0, 3)
        _check_range('highlight_mode', self.highlight_mode, 0, 9)
        _check_range('output_colorspace', self.output_colorspace, 0, 6)
        _check_range('rating_threshold', self.rating_threshold, -1, 5)
        _check_range('decoder_flip', self.decoder_flip, 0, 7)

        if self.resize is not None and (not isinstance(self.resize, int) or self.resize < 1):
            raise FatalConfigError(f"resize must be a positive pixel length, got {self.resize!r}")
        if self.mirror is not None and self.mirror not in MIRROR_MODES:
            raise FatalConfigError(f"mirror must be one of {', '.join(MIRROR_MODES)}, got {self.mirror!r}")
        if self.compression not in COMPRESSION_METHODS:
            raise FatalConfigError(
                f"compression must be one of {', '.join(COMPRESSION_METHODS)}, got {self.compression!r}"
            )
        if self.jobs is not None and self.jobs < 1:
            raise FatalConfigError(f"jobs must be at least 1, got {self.jobs!r}")
        if not self.raw_extensions:
            raise FatalConfigError("at least one RAW extension must be configured")

        # Normalise so equality and pickling do not depend on the caller's types
        object.__setattr__(
            self, 'raw_extensions',
            tuple(ext.lower() if ext.startswith('.') else f".{ext.lower()}" for ext in self.raw_extensions)
        )
        object.__setattr__(self, 'profile_dirs', tuple(Path(d) for d in self.profile_dirs))
        if self.output_dir is not None:
            object.__setattr__(self, 'output_dir', Path(self.output_dir))

    @classmethod
    def from_config(cls, config: Dict[str, Any], **overrides) -> 'JobOptions':
        """
        Build options from a configuration dictionary.

        Args:
            config: Configuration as returned by load_config()
            **overrides: Command-line values; None means "not given"

        Returns:
            Validated JobOptions
        """
        search_dirs = []
        for entry in get_config_value(config, 'profiles.search_dirs', []) or []:
            # Unset ${VARS} survive expansion verbatim and cannot name a directory
            if entry and '${' not in str(entry):
                search_dirs.append(Path(str(entry)).expanduser())

        output_dir = get_config_value(config, 'output.directory')
        values = {
            'demosaic_algorithm': get_config_value(config, 'decoder.demosaic_algorithm', 3),
            'highlight_mode': get_config_value(config, 'decoder.highlight_mode', 0),
            'output_colorspace': get_config_value(config, 'decoder.output_colorspace', 1),
            'camera_white_balance': bool(get_config_value(config, 'decoder.camera_white_balance', True)),
            'decoder_flip': get_config_value(config, 'decoder.flip', 0),
            'output_dir': Path(output_dir).expanduser() if output_dir else None,
            'compression': str(get_config_value(config, 'output.compression', 'lzw')).lower(),
            'raw_extensions': tuple(get_config_value(config, 'processing.raw_extensions', DEFAULT_RAW_EXTENSIONS)),
            'jobs': get_config_value(config, 'processing.jobs'),
            'gray_profile': get_config_value(config, 'profiles.gray_linear', 'Gray-elle-V4-g10.icc'),
            'color_profile': get_config_value(config, 'profiles.srgb_linear', 'sRGB-elle-V4-g10.icc'),
            'profile_dirs': tuple(search_dirs),
            'exiftool_path': get_config_value(config, 'exiftool.executable', 'exiftool'),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})

        try:
            return cls(**values)
        except TypeError as e:
            raise FatalConfigError(f"Invalid configuration: {e}") from e
