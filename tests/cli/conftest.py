import functools
import logging

import click.testing
import pytest

from kubemirror.cli import main


@pytest.fixture(autouse=True)
def _restore_root_logger():
    # The commands configure the root logger for the duration of the process, not of the test.
    logger = logging.getLogger()
    handlers = list(logger.handlers)
    level = logger.level
    try:
        yield
    finally:
        logger.handlers[:] = handlers
        logger.setLevel(level)


@pytest.fixture()
def runner():
    runner = click.testing.CliRunner()
    return runner


@pytest.fixture()
def invoke(runner):
    return functools.partial(runner.invoke, main)
