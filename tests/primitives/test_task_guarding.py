import asyncio
import logging

import pytest

from kubemirror._cogs.aiokits.aiotasks import create_guarded_task


class SampleError(Exception):
    pass


async def failing() -> None:
    raise SampleError("boo!")


async def sleeping() -> None:
    await asyncio.sleep(1)


async def finishing() -> None:
    pass


@pytest.fixture()
def logger(caplog):
    caplog.set_level(0)
    return logging.getLogger('sample')


@pytest.mark.parametrize('finishable, expected', [
    (False, ["Sample task has finished unexpectedly."]),
    (True, []),
])
async def test_finishing(caplog, logger, finishable, expected):
    await create_guarded_task(finishing(), 'sample task', finishable=finishable, logger=logger)
    assert caplog.messages == expected


@pytest.mark.parametrize('cancellable, expected', [
    (False, ["Sample task is cancelled."]),
    (True, []),
])
async def test_cancelling(caplog, logger, cancellable, expected):
    task = create_guarded_task(sleeping(), 'sample task', cancellable=cancellable, logger=logger)
    await asyncio.sleep(0.01)  # let it start
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert caplog.messages == expected


@pytest.mark.parametrize('finishable', [False, True])
async def test_failing(caplog, logger, finishable):
    task = create_guarded_task(failing(), 'sample task', finishable=finishable, logger=logger)
    with pytest.raises(SampleError):
        await task
    assert caplog.messages == ["Sample task has failed: boo!"]
    assert caplog.records[0].levelno == logging.ERROR
    assert caplog.records[0].exc_info is not None


async def test_no_logging_without_a_logger(caplog):
    caplog.set_level(0)
    task = create_guarded_task(failing(), 'sample task')
    with pytest.raises(SampleError):
        await task
    assert not caplog.messages


async def test_tasks_are_named():
    task = create_guarded_task(finishing(), 'sample task', finishable=True)
    assert task.get_name() == 'sample task'
    await task
