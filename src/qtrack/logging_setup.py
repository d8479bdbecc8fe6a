"""
qtrack.logging_setup - Loguru sink configuration.

Library modules log through ``loguru.logger`` directly. Only the CLI
entry point (``qtrack.cli.main``) calls :func:`configure_from_config` to
decide where those records go; ``create_app`` leaves the sinks to its host.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, TextIO

from loguru import logger

from qtrack.exceptions import ConfigError

VALID_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


def validate_log_level(level: str) -> str:
    """Normalize a level name, rejecting unknown levels."""
    normalized = str(level).upper()
    if normalized not in VALID_LEVELS:
        raise ConfigError(
            f"Invalid log level: {level!r} (expected one of {', '.join(VALID_LEVELS)})",
            error_code="CONFIG_003",
        )
    return normalized


def configure_logging(
    level: str = "INFO",
    log_file: str | Path | None = None,
    destination: TextIO | None = None,
    rotation: str = "10 MB",
    retention: str = "7 days",
) -> list[int]:
    """Replace loguru's sinks with a console sink and an optional file sink.

    Args:
        level: Minimum level for both sinks.
        log_file: Optional log file path; parent directories are created.
        destination: Console stream (defaults to stderr).
        rotation: Loguru rotation setting for the file sink.
        retention: Loguru retention setting for the file sink.

    Returns:
        Sink ids, console first.
    """
    validated = validate_log_level(level)
    logger.remove()

    stream = destination or sys.stderr
    sink_ids = [
        logger.add(
            stream,
            level=validated,
            format=CONSOLE_FORMAT,
            colorize=getattr(stream, "isatty", lambda: False)(),
        )
    ]

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        sink_ids.append(
            logger.add(
                str(path),
                level=validated,
                format=FILE_FORMAT,
                rotation=rotation,
                retention=retention,
                encoding="utf-8",
            )
        )

    logger.debug("Logging configured at {} (file: {})", validated, log_file or "none")
    return sink_ids


def configure_from_config(config: dict[str, Any], verbose: bool = False) -> list[int]:
    """Configure logging from the ``[logging]`` config section."""
    section = config.get("logging", {})
    level = "DEBUG" if verbose else section.get("level", "INFO")
    return configure_logging(level=level, log_file=section.get("file") or None)
