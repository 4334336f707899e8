"""
Logging setup for the binstall CLI.

Handlers go on the ``binstall`` package logger, not the root logger,
so an embedding application keeps its own configuration.  Modules
log through ``logging.getLogger(__name__)`` as usual.

Console level: CLI flag, then BINSTALL_LOG_LEVEL, then WARNING.
BINSTALL_LOG_FILE appends a file log at BINSTALL_LOG_FILE_LEVEL
(the console level when unset).
"""

from __future__ import annotations

import logging
import sys

PACKAGE_LOGGER = "binstall"

ENV_LOG_LEVEL = "BINSTALL_LOG_LEVEL"
ENV_LOG_FILE = "BINSTALL_LOG_FILE"
ENV_LOG_FILE_LEVEL = "BINSTALL_LOG_FILE_LEVEL"

# Marks handlers this module installed, so a second call replaces them
_OWNED_ATTR = "_binstall_handler"


class _ComponentFormatter(logging.Formatter):
    """Adds ``%(component)s``: the last segment of the logger name.

    ``binstall.core.services.artifact_install.execution.fetch`` → ``fetch``.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.component = record.name.rsplit(".", 1)[-1]
        return super().format(record)


def _console_formatter(level: int) -> logging.Formatter:
    if level <= logging.DEBUG:
        return _ComponentFormatter(
            "%(asctime)s.%(msecs)03d %(levelname)-7s %(component)s:%(lineno)d  %(message)s",
            datefmt="%H:%M:%S",
        )
    if level <= logging.INFO:
        # one line per pipeline stage
        return _ComponentFormatter("%(asctime)s %(component)-12s %(message)s", datefmt="%H:%M:%S")
    return logging.Formatter("binstall: %(levelname)s: %(message)s")


def parse_level(value: str | int | None, default: int = logging.WARNING) -> int:
    """Level name or number → numeric level; ``default`` when unknown."""
    if value is None or value == "":
        return default
    if isinstance(value, int):
        return value
    text = value.strip()
    if text.isdigit():
        return int(text)
    level = logging.getLevelName(text.upper())
    return level if isinstance(level, int) else default


def setup_logging(
    level: str | int = "WARNING",
    log_file: str | None = None,
    log_file_level: str | int | None = None,
) -> logging.Logger:
    """Attach console (stderr) and optional file handlers.

    Safe to call more than once: handlers from an earlier call are
    closed and replaced, anything else on the logger is left alone.

    Returns:
        The configured ``binstall`` logger.
    """
    console_level = parse_level(level)
    logger = logging.getLogger(PACKAGE_LOGGER)

    for handler in [h for h in logger.handlers if getattr(h, _OWNED_ATTR, False)]:
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(_console_formatter(console_level))
    handlers: list[logging.Handler] = [console]

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8", delay=True)
        file_handler.setLevel(parse_level(log_file_level, default=console_level))
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-7s %(name)s: %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        ))
        handlers.append(file_handler)

    for handler in handlers:
        setattr(handler, _OWNED_ATTR, True)
        logger.addHandler(handler)
    logger.setLevel(min(h.level for h in handlers))
    return logger
