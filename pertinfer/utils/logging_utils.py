"""Logging setup shared by the engine, the classifier path and the runners.

Every module fetches the same logger with ``logging.getLogger("pertinfer")``
and logs without touching handlers; only entry scripts (the benchmark runner
and its CLI) call ``setup_logging``.
"""

from __future__ import annotations

from pathlib import Path
import logging

LOGGER_NAME = "pertinfer"

_FORMAT = logging.Formatter(
    fmt="%(asctime)s %(levelname)s %(module)s:%(funcName)s:%(lineno)d - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def _attach(logger: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(_FORMAT)
    logger.addHandler(handler)


def setup_logging(log_file: str | Path | None = None, level: int = logging.INFO, to_stdout: bool = False) -> logging.Logger:
    """Configure and return the shared "pertinfer" logger.

    Parameters
    ----------
    log_file:
        Destination log file path. ``None`` configures console output only
        (when ``to_stdout`` is set).
    level:
        Logging level (default INFO).
    to_stdout:
        If True, also echo logs to stderr/console.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    if log_file is not None:
        # The benchmark calls this once per run directory; compare resolved
        # paths so a relative and an absolute spelling of one file share a handler
        log_path = str(Path(log_file).resolve())
        open_files = {
            getattr(h, "baseFilename", None) for h in logger.handlers if isinstance(h, logging.FileHandler)
        }
        if log_path not in open_files:
            _attach(logger, logging.FileHandler(log_path), level)

    # FileHandler subclasses StreamHandler, so match the console handler exactly
    if to_stdout and not any(type(h) is logging.StreamHandler for h in logger.handlers):
        _attach(logger, logging.StreamHandler(), level)

    # Keep records out of the root logger so pytest / notebooks don't print them twice
    logger.propagate = False
    return logger
