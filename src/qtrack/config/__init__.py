"""
qtrack.config - Configuration loading and defaults
"""

from qtrack.config.defaults import DEFAULT_CONFIG
from qtrack.config.loader import (
    CONFIG_FILENAME,
    _apply_env_overrides,
    _try_parse_env_value,
    find_config_file,
    load_config,
    merge_configs,
    parse_toml,
    parse_toml_document,
    validate_config,
)

__all__ = [
    "CONFIG_FILENAME",
    "DEFAULT_CONFIG",
    "find_config_file",
    "load_config",
    "merge_configs",
    "parse_toml",
    "parse_toml_document",
    "validate_config",
]
