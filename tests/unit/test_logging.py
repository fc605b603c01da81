"""Tests for logging configuration."""

import logging
import sys

import pytest

from snapflow.logging import (
    TECHNICAL_MODULES,
    configure_logging,
    get_logger,
    root_level_for,
    suppress_third_party_loggers,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_get_logger_has_own_stderr_handler():
    logger = get_logger("snapflow.test_module")

    assert len(logger.handlers) == 1
    assert logger.handlers[0].stream is sys.stderr
    assert logger.propagate is False
    assert get_logger("snapflow.test_module") is logger
    assert len(logger.handlers) == 1


@pytest.mark.parametrize(
    "verbose,quiet,expected",
    [
        (False, False, logging.INFO),
        (True, False, logging.DEBUG),
        (False, True, logging.WARNING),
        (True, True, logging.WARNING),
    ],
)
def test_root_level_for_flags(verbose, quiet, expected):
    assert root_level_for(verbose, quiet) == expected


@pytest.mark.parametrize(
    "verbose,quiet,root_level,technical_level",
    [
        (False, False, logging.INFO, logging.WARNING),
        (True, False, logging.DEBUG, logging.DEBUG),
        (False, True, logging.WARNING, logging.WARNING),
    ],
)
def test_configure_logging_levels(verbose, quiet, root_level, technical_level):
    configure_logging(verbose=verbose, quiet=quiet)

    root = logging.getLogger()
    assert root.level == root_level
    assert len(root.handlers) == 1
    assert root.handlers[0].stream is sys.stderr
    for name in TECHNICAL_MODULES:
        assert logging.getLogger(name).level == technical_level


def test_suppress_third_party_loggers():
    suppress_third_party_loggers()
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
