"""Logging for snapflow.

Snapshot events may be streamed to stdout, so every log line goes to stderr.
Modules log through ``get_logger(__name__)``; the CLI calls
``configure_logging`` once with its ``--verbose`` / ``--quiet`` flags.
"""

import logging
import sys

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Per-statement and per-connection chatter, shown only with --verbose
TECHNICAL_MODULES = (
    "snapflow.backends.duckdb_backend",
    "snapflow.backends.postgres_backend",
    "snapflow.connection",
    "snapflow.state.backends",
)

THIRD_PARTY_MODULES = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "duckdb",
)


def _stderr_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
    return handler


def get_logger(name: str) -> logging.Logger:
    """Return a logger with the specified name.

    The logger gets its own stderr handler the first time it is requested and
    does not propagate, so messages are never printed twice.

    Args:
        name: The name for the logger, typically __name__

    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.addHandler(_stderr_handler())
        logger.propagate = False
    return logger


def root_level_for(verbose: bool, quiet: bool) -> int:
    """Root level for the CLI flags; ``quiet`` wins over ``verbose``."""
    if quiet:
        return logging.WARNING
    if verbose:
        return logging.DEBUG
    return logging.INFO


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure logging from the command line flags.

    Args:
        verbose: Show debug output, including the technical modules
        quiet: Only show warnings and errors
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level_for(verbose, quiet))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.addHandler(_stderr_handler())

    technical_level = logging.DEBUG if verbose else logging.WARNING
    for module_name in TECHNICAL_MODULES:
        logging.getLogger(module_name).setLevel(technical_level)


def suppress_third_party_loggers() -> None:
    """Keep driver and engine loggers at WARNING."""
    for logger_name in THIRD_PARTY_MODULES:
        logging.getLogger(logger_name).setLevel(logging.WARNING)
