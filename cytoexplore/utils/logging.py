"""
Logging configuration for cytoexplore.

Console and optional per-run file logging through loguru. Notebooks call
``setup_logging`` once; the command-line scripts derive the level from
their ``--verbose``/``--quiet`` flags and write a log file next to their
outputs. Library modules only import ``logger``.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from loguru import logger

if TYPE_CHECKING:
    from loguru import Logger

logger.remove()

LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")

_configured = False


def _format_string(show_time: bool, show_level: bool, colour: bool) -> str:
    """Build a loguru format, with colour markup only for terminals."""

    def tag(text: str, name: str) -> str:
        return f"<{name}>{text}</{name}>" if colour else text

    parts = []
    if show_time:
        parts.append(tag("{time:YYYY-MM-DD HH:mm:ss}", "green"))
    if show_level:
        parts.append(tag("{level: <8}", "level"))
    parts.append(":".join(tag(f"{{{field}}}", "cyan") for field in ("name", "function", "line")))
    parts.append(tag("{message}", "level"))
    return " | ".join(parts)


def level_from_flags(verbose: bool = False, quiet: bool = False) -> str:
    """Map the scripts' ``--verbose``/``--quiet`` flags to a level name."""
    if verbose:
        return "DEBUG"
    return "WARNING" if quiet else "INFO"


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str | Path] = None,
    show_time: bool = True,
    show_level: bool = True,
    rich_traceback: bool = True,
) -> None:
    """
    Configure logging for cytoexplore.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to a log file; always written at DEBUG so a
            quiet console run still leaves a full record
        show_time: Whether to show timestamps
        show_level: Whether to show log levels
        rich_traceback: Whether to use loguru's extended tracebacks

    Example:
        >>> from cytoexplore.utils.logging import setup_logging, logger
        >>> setup_logging(level="DEBUG", log_file="outputs/default/default.log")
        >>> logger.info("Building manifest")
    """
    global _configured

    level = level.upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"Unknown log level: {level}. Use one of {LOG_LEVELS}")

    if _configured:
        logger.remove()

    logger.add(
        sys.stderr,
        format=_format_string(show_time, show_level, colour=True),
        level=level,
        colorize=True,
        backtrace=rich_traceback,
        diagnose=rich_traceback,
    )

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_path,
            format=_format_string(show_time, show_level, colour=False),
            level="DEBUG",
            rotation="10 MB",
            retention="1 week",
            compression="zip",
        )

    _configured = True
    logger.debug(f"Logging configured: level={level}, file={log_file}")


def get_logger(name: str = "cytoexplore") -> "Logger":
    """
    Get a logger bound to the given name.

    Example:
        >>> log = get_logger("cytoexplore.manifest")
        >>> log.info("Listing files...")
    """
    return logger.bind(name=name)


if not _configured:
    setup_logging(level="INFO")


__all__ = ["logger", "setup_logging", "get_logger", "level_from_flags", "LOG_LEVELS"]
