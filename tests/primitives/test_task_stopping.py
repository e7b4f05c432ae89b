import asyncio
import logging

import async_timeout

from kubemirror._cogs.aiokits.aiotasks import cancel, wait


async def forever() -> None:
    await asyncio.Event().wait()


async def reluctant() -> None:
    try:
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        await asyncio.sleep(0.1)
        raise


async def test_waiting_for_nothing():
    done, pending = await wait([])
    assert done == set()
    assert pending == set()


async def test_waiting_with_a_timeout():
    slow = asyncio.create_task(forever())
    fast = asyncio.create_task(asyncio.sleep(0))
    done, pending = await wait([slow, fast], timeout=0.05)
    assert done == {fast}
    assert pending == {slow}
    slow.cancel()


async def test_cancelling_nothing(caplog):
    caplog.set_level(0)
    cancelled = await cancel([], title='sample', logger=logging.getLogger())
    assert cancelled == set()
    assert not caplog.messages


async def test_cancelling_the_tasks(caplog):
    caplog.set_level(0)
    task1 = asyncio.create_task(forever())
    task2 = asyncio.create_task(forever())
    async with async_timeout.timeout(1):
        cancelled = await cancel([task1, task2], title='sample', logger=logging.getLogger())
    assert cancelled == {task1, task2}
    assert task1.cancelled()
    assert task2.cancelled()
    assert not caplog.messages


async def test_cancelling_the_reluctant_tasks_silently(timer, caplog):
    caplog.set_level(0)
    task = asyncio.create_task(reluctant())
    await asyncio.sleep(0)  # let it start
    async with timer, async_timeout.timeout(1):
        await cancel([task], title='sample', logger=logging.getLogger())
    assert task.cancelled()
    assert timer.seconds >= 0.1
    assert not caplog.messages


async def test_cancelling_the_reluctant_tasks_with_reports(assert_logs, caplog):
    caplog.set_level(0)
    task = asyncio.create_task(reluctant())
    await asyncio.sleep(0)  # let it start
    async with async_timeout.timeout(1):
        await cancel([task], title='sample', logger=logging.getLogger(), interval=0.01)
    assert task.cancelled()
    assert_logs([r"Sample tasks are not stopped yet: "])
