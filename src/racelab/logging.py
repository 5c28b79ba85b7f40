"""Logging setup for racelab.

Both sides of a verification log through the ``racelab`` namespace: the
parent driver (launch commands, verdicts) and the child program (harness
begin/end markers, scenario defects). Console output goes to stderr so that
it lands in the captured stream alongside the detector's own diagnostics.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TextIO

_LOGGER_NAME = "racelab"
_CONSOLE_FORMAT = "%(levelname)-8s %(message)s"
# Harness threads log defects, so the file log records which thread spoke.
_FILE_FORMAT = "%(asctime)s %(levelname)-8s %(threadName)s %(name)s: %(message)s"


def _console_level(verbose: bool, quiet: bool) -> int:
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return logging.INFO


def setup_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    log_file: Path | None = None,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Configure and return the root racelab logger.

    Args:
        verbose: Log DEBUG and up to the console.
        quiet: Log WARNING and up to the console. Ignored if *verbose* is set.
        log_file: Also log everything, at DEBUG, to this file.
        stream: Console stream. Defaults to the current ``sys.stderr``.

    Returns:
        The configured ``racelab`` logger.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    # Calling this twice (the CLI, then an in-process child) must not
    # duplicate every line.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(stream if stream is not None else sys.stderr)
    console.setLevel(_console_level(verbose, quiet))
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return the ``racelab.<name>`` logger."""
    return logging.getLogger(f"{_LOGGER_NAME}.{name}")
