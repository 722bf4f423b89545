"""Global test configuration."""

import logging

import pytest


@pytest.fixture(autouse=True)
def _restore_nixmorph_logging():
    # CLI tests call configure_logging(); undo it between tests
    logger = logging.getLogger("nixmorph")
    handlers = list(logger.handlers)
    level = logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
