"""
qtrack.config.loader - Configuration discovery, parsing and merging.

Configuration lives in ``.qtrack.toml`` and is parsed with tomlkit. The
loaded file is deep-merged over ``DEFAULT_CONFIG`` and environment
variables of the form ``QTRACK_<SECTION>_<KEY>`` are applied last.
"""

from __future__ import annotations

import copy
import json
import math
import os
from pathlib import Path
from typing import Any

import tomlkit
from tomlkit.exceptions import TOMLKitError

from qtrack.config.defaults import DEFAULT_CONFIG
from qtrack.exceptions import ConfigError

CONFIG_FILENAME = ".qtrack.toml"
ENV_PREFIX = "QTRACK_"


def parse_toml_document(content: str) -> tomlkit.TOMLDocument:
    """Parse TOML content into a tomlkit document (formatting preserved).

    Raises:
        ConfigError: If the content is not valid TOML.
    """
    try:
        return tomlkit.parse(content)
    except TOMLKitError as e:
        raise ConfigError(f"Invalid TOML: {e}", error_code="CONFIG_002") from e


def parse_toml(content: str) -> dict[str, Any]:
    """Parse TOML content into plain Python dicts and lists."""
    return parse_toml_document(content).unwrap()


def find_config_file(start_path: Path) -> Path | None:
    """Find ``.qtrack.toml`` in ``start_path`` or any parent directory."""
    current = Path(start_path).resolve()
    if current.is_file():
        current = current.parent
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.exists():
            return candidate
        if current.parent == current:
            return None
        current = current.parent


def merge_configs(defaults: dict[str, Any], user: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge ``user`` over ``defaults`` without mutating either."""
    merged = copy.deepcopy(defaults)
    for key, value in user.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _try_parse_env_value(value: str) -> Any:
    """Interpret an environment string as JSON, bool, number or plain string."""
    stripped = value.strip()
    if stripped.startswith(("[", "{")):
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            return value
    lowered = stripped.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    try:
        return int(stripped)
    except ValueError:
        pass
    try:
        return float(stripped)
    except ValueError:
        return value


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply ``QTRACK_<SECTION>_<KEY>`` overrides to ``config`` in place."""
    for name, raw in os.environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        rest = name[len(ENV_PREFIX) :].lower()
        if "_" not in rest:
            continue
        section, key = rest.split("_", 1)
        target = config.setdefault(section, {})
        if not isinstance(target, dict):
            continue
        target[key] = _try_parse_env_value(raw)
    return config


def validate_config(config: dict[str, Any]) -> None:
    """Check cross-field constraints that TOML syntax cannot express.

    Raises:
        ConfigError: If health weights do not sum to 1.0 or bounds are invalid.
    """
    weights = config.get("health", {}).get("weights", {})
    try:
        total = math.fsum(float(v) for v in weights.values())
    except (TypeError, ValueError) as e:
        raise ConfigError(
            f"Health weights must be numbers: {weights!r}", error_code="CONFIG_003"
        ) from e
    if weights and not math.isclose(total, 1.0, abs_tol=1e-9):
        raise ConfigError(
            f"Health weights must sum to 1.0 (got {total})",
            error_code="CONFIG_003",
            context={"weights": dict(weights)},
        )

    max_bytes = config.get("webhook", {}).get("max_xml_bytes", 0)
    if not isinstance(max_bytes, int) or max_bytes <= 0:
        raise ConfigError(
            f"webhook.max_xml_bytes must be a positive integer (got {max_bytes!r})",
            error_code="CONFIG_003",
        )


def load_config(config_path: Path | None = None, start_path: Path | None = None) -> dict[str, Any]:
    """Load configuration merged over defaults.

    Args:
        config_path: Explicit config file. Must exist when given.
        start_path: Directory to search upwards from when no explicit path
            is given. Defaults to the current directory.

    Returns:
        Merged configuration dict.

    Raises:
        ConfigError: If the explicit file is missing, unparseable or invalid.
    """
    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigError(
                f"Config file not found: {config_path}",
                error_code="CONFIG_001",
                context={"config_path": str(config_path)},
            )
    else:
        config_path = find_config_file(start_path or Path.cwd())

    user: dict[str, Any] = {}
    if config_path is not None:
        user = parse_toml(config_path.read_text(encoding="utf-8"))

    config = _apply_env_overrides(merge_configs(DEFAULT_CONFIG, user))
    validate_config(config)
    return config
