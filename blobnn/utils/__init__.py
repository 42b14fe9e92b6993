"""
Utility modules for the blobnn pipeline.

Provides:
- Configuration defaults, loading and validation
- Logging utilities
- Manifest row schema (requires pydantic)
- JSON helpers with atomic writes
"""

from .config import (
    DEFAULT_CONFIG,
    DEFAULT_PATHS,
    OUTPUT_LAYOUT,
    CONFIG_FILENAME,
    RUN_SNAPSHOT_FILENAME,
    load_config,
    save_config,
    create_run_config,
    get_default_path,
    validate_config,
    validate_uid_range,
)

from .logging import (
    get_logger,
    setup_logging,
    log_parameters,
    log_processing_end,
    ProcessingTimer,
)

from .json_utils import (
    NumpyEncoder,
    sanitize_for_json,
    atomic_write_text,
    atomic_json_dump,
)

__all__ = [
    # Config
    'DEFAULT_CONFIG',
    'DEFAULT_PATHS',
    'OUTPUT_LAYOUT',
    'CONFIG_FILENAME',
    'RUN_SNAPSHOT_FILENAME',
    'load_config',
    'save_config',
    'create_run_config',
    'get_default_path',
    'validate_config',
    'validate_uid_range',
    # Logging
    'get_logger',
    'setup_logging',
    'log_parameters',
    'log_processing_end',
    'ProcessingTimer',
    # JSON
    'NumpyEncoder',
    'sanitize_for_json',
    'atomic_write_text',
    'atomic_json_dump',
]
