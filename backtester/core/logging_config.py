"""
Logging configuration.

The library only emits through loguru's global ``logger``; sinks are installed
by the application (CLI, service host) via ``setup_logging``.

Features:
- Human-readable console format or JSON lines (``serialize=True``)
- Optional rotating log file
"""

import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logging(
    log_level: str = "INFO",
    log_file: str | None = None,
    json_format: bool = False,
) -> list[int]:
    """
    Setup application logging.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (optional)
        json_format: Emit JSON records instead of formatted text

    Returns:
        Ids of the installed sinks
    """
    level = log_level.upper()
    logger.remove()

    sink_ids = [
        logger.add(
            sys.stderr,
            level=level,
            format=CONSOLE_FORMAT,
            serialize=json_format,
        )
    ]

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        sink_ids.append(
            logger.add(
                str(log_path),
                level=level,
                format=CONSOLE_FORMAT,
                serialize=json_format,
                rotation="10 MB",
                retention="7 days",
                encoding="utf-8",
            )
        )

    logger.debug(f"Logging configured: level={level}, file={log_file}, json={json_format}")
    return sink_ids
