"""
Logging Configuration
Sets up the package logger and routes solver-side warnings through it.

Near the O2 -> 0 singularity numpy emits RuntimeWarnings (overflow, divide by
zero) from inside the right-hand side. With `capture_warnings` on, those go
to the 'py.warnings' logger and share the package handlers, so a failing
sweep leaves one consistent log instead of interleaved stderr noise.
"""
import logging
import sys
from typing import List, Optional

PACKAGE_LOGGER = "erythro_sim"
WARNINGS_LOGGER = "py.warnings"

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%H:%M:%S'


def _build_handlers(level: int, log_file: Optional[str]) -> List[logging.Handler]:
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    handlers: List[logging.Handler] = [console_handler]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode='w', encoding='utf-8'))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def _attach(logger: logging.Logger, level: int, handlers: List[logging.Handler]) -> None:
    logger.setLevel(level)
    # Replace, don't stack, when called more than once
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    for handler in handlers:
        logger.addHandler(handler)


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None,
                  capture_warnings: bool = False) -> logging.Logger:
    """
    Configures the logger for the 'erythro_sim' namespace.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Optional path to save logs to a file.
        capture_warnings: Send `warnings.warn` output, including numpy
            floating-point RuntimeWarnings, to the same handlers.

    Returns:
        The configured package logger.
    """
    handlers = _build_handlers(level, log_file)

    logger = logging.getLogger(PACKAGE_LOGGER)
    _attach(logger, level, handlers)

    logging.captureWarnings(capture_warnings)
    _attach(logging.getLogger(WARNINGS_LOGGER), level, handlers if capture_warnings else [])

    logger.debug(
        f"Logging initialized (level={logging.getLevelName(level)}, "
        f"file={log_file or '-'}, warnings={'captured' if capture_warnings else 'stderr'})"
    )
    return logger
