import logging

import pytest


@pytest.fixture(autouse=True)
def reset_promboard_logger():
    # The CLI configures the "promboard" logger to not propagate, which would
    # hide records from caplog in later tests.
    logger = logging.getLogger("promboard")
    level, propagate = logger.level, logger.propagate
    yield
    logger.setLevel(level)
    logger.propagate = propagate
