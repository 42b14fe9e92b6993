"""
Configuration defaults, loading and validation for blobnn runs.

The detection constants (area band, padding margin, cutoff) are calibrated to
one imaging resolution/magnification. They are kept here as overridable
defaults rather than derived from the image.

Usage:
    from blobnn.utils.config import load_config, validate_config

    # Defaults, deep-merged with <output_dir>/blobnn.json when present
    config = load_config('/path/to/output')

    result = validate_config(config)
    if not result['valid']:
        print(result['errors'])

Environment Variables:
    BLOBNN_MODEL_PATH: Default path to the TorchScript segmentation model
"""

import copy
import json
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional, List, Union, Tuple

from blobnn.errors import ConfigValidationError
from blobnn.utils.json_utils import atomic_json_dump
from blobnn.utils.logging import get_logger

logger = get_logger(__name__)


# Optional per-output-directory overrides, and the snapshot written after a run
CONFIG_FILENAME = "blobnn.json"
RUN_SNAPSHOT_FILENAME = "blobnn_run.json"

# Fixed layout of an output directory produced by the ROI extraction step
OUTPUT_LAYOUT = {
    "manifest": "rois.tsv",
    "raw_ledger": "raw.tsv",
    "stats_ledger": "stats.tsv",
    "sources_dir": "sources",
    "annots_dir": "annots",
    "masks_dir": "masks",
    "image_suffix": ".jpg",
}

DEFAULT_PATHS = {
    "model_path": os.getenv("BLOBNN_MODEL_PATH", ""),
}


def get_default_path(key: str) -> str:
    """
    Get a default path from environment or fallback.

    Args:
        key: Path key name (e.g., 'model_path')

    Returns:
        Path string, empty string if key not found
    """
    return DEFAULT_PATHS.get(key, "")


# Default configuration values
DEFAULT_CONFIG = {
    # Probability-map threshold (strictly greater than)
    "cutoff": 180,

    # Accepted contour area band in pixels, exclusive at both ends
    "min_area": 1000,
    "max_area": 50000,

    # Inset of the loose background rectangle, and erosion iterations
    # used to derive the strict background from it
    "padding": 5,

    # 3x3 dilation iterations applied to the foreground before measuring
    "foreground_dilation_iterations": 2,

    # Overlay rendering (colors are BGR)
    "overlay_alpha": 0.3,
    "loose_background_color": [255, 0, 0],
    "strict_background_color": [0, 255, 0],
    "foreground_color": [0, 0, 255],
    "rejected_contour_color": [0, 0, 0],
    "accepted_contour_thickness": 2,
    "rejected_contour_thickness": 1,
}

_COLOR_KEYS = (
    "loose_background_color",
    "strict_background_color",
    "foreground_color",
    "rejected_contour_color",
)

_VALIDATION_RULES: Dict[str, Dict[str, Any]] = {
    "cutoff": {"min": 0, "max": 255, "type": int},
    "min_area": {"min": 0, "max": 1e9, "type": float},
    "max_area": {"min": 0, "max": 1e9, "type": float},
    "padding": {"min": 0, "max": 4096, "type": int},
    "foreground_dilation_iterations": {"min": 0, "max": 100, "type": int},
    "overlay_alpha": {"min": 0.0, "max": 1.0, "type": float},
    "accepted_contour_thickness": {"min": 1, "max": 10, "type": int},
    "rejected_contour_thickness": {"min": 1, "max": 10, "type": int},
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    """
    Recursively merge override dict into base dict (in-place).

    Nested dicts are merged key by key; every other value (lists included)
    is deep-copied so base and override never share mutable state.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            base[key] = copy.deepcopy(value)


def load_config(
    output_dir: Optional[Union[str, Path]] = None,
    config_filename: str = CONFIG_FILENAME,
    **overrides
) -> Dict[str, Any]:
    """
    Build the effective configuration for a run.

    Starts from DEFAULT_CONFIG, deep-merges ``<output_dir>/<config_filename>``
    when it exists, then applies keyword overrides whose value is not None
    (command-line flags that were left unset do not mask the file).

    Args:
        output_dir: Output directory that may hold a config file
        config_filename: Name of the config file (default: blobnn.json)
        **overrides: Final overrides, typically from the command line

    Returns:
        Dict with merged configuration
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if output_dir is not None:
        config_path = Path(output_dir) / config_filename
        if config_path.exists():
            try:
                with open(config_path, 'r') as f:
                    file_config = json.load(f)
                _deep_merge(config, file_config)
                logger.info(f"Loaded configuration overrides from {config_path}")
            except (json.JSONDecodeError, IOError) as e:
                logger.warning(f"Could not load config from {config_path}: {e}")

    _deep_merge(config, {k: v for k, v in overrides.items() if v is not None})
    return config


def create_run_config(
    config: Dict[str, Any],
    model_path: Union[str, Path],
    device: str,
    start_id: int,
    end_id: Optional[int],
    **kwargs
) -> Dict[str, Any]:
    """
    Create the snapshot describing one processing run.

    Args:
        config: Effective detection configuration
        model_path: Path of the TorchScript model used
        device: Device the model ran on
        start_id: First uid of the processed range (inclusive)
        end_id: Last uid of the processed range (inclusive), None if unbounded
        **kwargs: Additional entries (e.g. run counters)

    Returns:
        Snapshot dict ready to save
    """
    run_config = {
        "run_timestamp": datetime.now().strftime('%Y%m%d_%H%M%S'),
        "model_path": str(model_path),
        "device": str(device),
        "start_id": start_id,
        "end_id": end_id,
        "detection": copy.deepcopy(config),
    }
    run_config.update(kwargs)
    return run_config


def save_config(
    output_dir: Union[str, Path],
    config: Dict[str, Any],
    config_filename: str = RUN_SNAPSHOT_FILENAME
) -> Path:
    """
    Atomically save a configuration snapshot into the output directory.

    Returns:
        Path to the saved file
    """
    config_path = Path(output_dir) / config_filename
    atomic_json_dump(config, config_path)
    return config_path


# =============================================================================
# CONFIGURATION VALIDATION
# =============================================================================

def _validate_range(
    value: Union[int, float],
    key: str,
    min_val: Union[int, float],
    max_val: Union[int, float],
    expected_type: Union[type, Tuple[type, ...]]
) -> List[str]:
    """
    Validate a single value is within expected range and type.

    Returns:
        List of error messages (empty if valid)
    """
    errors = []

    # bool is an int subclass but never a valid numeric setting
    if isinstance(value, bool):
        errors.append(f"{key}: expected numeric type, got bool")
        return errors

    if expected_type == float:
        if not isinstance(value, (int, float)):
            errors.append(f"{key}: expected numeric type, got {type(value).__name__}")
            return errors
    elif not isinstance(value, expected_type):
        errors.append(f"{key}: expected {expected_type.__name__}, got {type(value).__name__}")
        return errors

    if value < min_val or value > max_val:
        errors.append(f"{key}: value {value} out of range [{min_val}, {max_val}]")

    return errors


def _validate_bgr_color(color: Any, key: str) -> List[str]:
    """Validate a [B, G, R] color list."""
    errors = []
    if not isinstance(color, (list, tuple)):
        errors.append(f"{key}: expected list, got {type(color).__name__}")
        return errors
    if len(color) != 3:
        errors.append(f"{key}: expected 3 values [B, G, R], got {len(color)}")
        return errors
    for i, val in enumerate(color):
        if not isinstance(val, int) or isinstance(val, bool):
            errors.append(f"{key}[{i}]: expected int, got {type(val).__name__}")
        elif val < 0 or val > 255:
            errors.append(f"{key}[{i}]: value {val} out of range [0, 255]")
    return errors


def validate_config(
    config: Optional[Dict[str, Any]] = None,
    raise_on_error: bool = False
) -> Dict[str, Union[bool, List[str]]]:
    """
    Validate a detection configuration against expected types and ranges.

    Args:
        config: Config dict (like DEFAULT_CONFIG). If None, validates
            DEFAULT_CONFIG itself.
        raise_on_error: If True, raise ConfigValidationError on the first
            error instead of returning it.

    Returns:
        Dict with validation results:
            - 'valid': bool, True if all validations passed
            - 'errors': List of error message strings
            - 'warnings': List of warning message strings

    Raises:
        ConfigValidationError: If raise_on_error=True and validation fails

    Example:
        >>> result = validate_config({"min_area": 5000, "max_area": 100})
        >>> result['valid']
        False
    """
    errors: List[str] = []
    warnings: List[str] = []

    if config is None:
        config = DEFAULT_CONFIG

    for key, rule in _VALIDATION_RULES.items():
        if key in config:
            errors.extend(_validate_range(
                config[key], key,
                rule["min"], rule["max"], rule["type"]
            ))

    for key in _COLOR_KEYS:
        if key in config:
            errors.extend(_validate_bgr_color(config[key], key))

    min_area = config.get("min_area")
    max_area = config.get("max_area")
    if isinstance(min_area, (int, float)) and isinstance(max_area, (int, float)):
        if min_area >= max_area:
            errors.append(f"min_area ({min_area}) must be less than max_area ({max_area})")

    unknown = sorted(set(config) - set(DEFAULT_CONFIG))
    if unknown:
        warnings.append(f"Unknown configuration keys ignored: {unknown}")

    if config.get("cutoff") == 255:
        warnings.append("cutoff=255 can never be exceeded by an 8-bit map: no foreground will be found")

    result = {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
    }

    if raise_on_error and errors:
        raise ConfigValidationError(f"Configuration validation failed: {errors[0]}")

    return result


def validate_uid_range(start_id: int, end_id: Optional[int]) -> None:
    """
    Check an inclusive uid range.

    Raises:
        ConfigValidationError: If start_id < 1 or end_id < start_id
    """
    if start_id < 1:
        raise ConfigValidationError(f"start_id must be a positive uid, got {start_id}")
    if end_id is not None and end_id < start_id:
        raise ConfigValidationError(f"end_id ({end_id}) must not be less than start_id ({start_id})")
