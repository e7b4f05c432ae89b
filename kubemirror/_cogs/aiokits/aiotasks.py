"""
Helpers for the background tasks of the reflectors.

Only the tasks are supported, not arbitrary awaitables or futures:
the tasks are both awaited and cancelled here.
"""
import asyncio
from typing import TYPE_CHECKING, Any, Collection, Coroutine, Optional, Set, Tuple

from kubemirror._cogs.helpers import typedefs

# A workaround for a difference in tasks at runtime and type-checking time.
# Otherwise, at runtime: TypeError: 'type' object is not subscriptable.
if TYPE_CHECKING:
    Future = asyncio.Future[Any]
    Task = asyncio.Task[Any]
else:
    Future = asyncio.Future
    Task = asyncio.Task


def create_guarded_task(
        coro: Coroutine[Any, Any, Any],
        name: str,
        *,
        finishable: bool = False,
        cancellable: bool = False,
        logger: Optional[typedefs.Logger] = None,
) -> Task:
    """
    Start a background task that reports its own fate to the logs.

    The reflectors' tasks are started and then left alone until stopped.
    Without the guard, their failures would only be seen at the stopping time.

    The failures are always logged and re-raised for whoever awaits the task.
    The exits are logged unless the task is declared ``finishable``,
    the cancellations unless it is declared ``cancellable``.
    """
    guarded = _guarded(coro, name=name, finishable=finishable, cancellable=cancellable, logger=logger)
    return asyncio.create_task(guarded, name=name)


async def _guarded(
        coro: Coroutine[Any, Any, Any],
        *,
        name: str,
        finishable: bool,
        cancellable: bool,
        logger: Optional[typedefs.Logger],
) -> None:
    title = name[:1].upper() + name[1:]
    try:
        await coro
    except asyncio.CancelledError:
        if logger is not None and not cancellable:
            logger.debug(f"{title} is cancelled.")
        raise
    except Exception as e:
        if logger is not None:
            logger.exception(f"{title} has failed: {e}")
        raise
    if logger is not None and not finishable:
        logger.warning(f"{title} has finished unexpectedly.")


async def wait(
        tasks: Collection[Task],
        *,
        timeout: Optional[float] = None,
) -> Tuple[Set[Task], Set[Task]]:
    """ Same as `asyncio.wait`, but tolerates an empty collection of tasks. """
    if not tasks:
        return set(), set()
    done, pending = await asyncio.wait(tasks, timeout=timeout)
    return done, pending


async def cancel(
        tasks: Collection[Task],
        *,
        title: str,
        interval: Optional[float] = None,
        logger: Optional[typedefs.Logger] = None,
) -> Set[Task]:
    """
    Cancel the tasks and wait until they are all done, however long it takes.

    With the interval, the tasks that are still running after every interval
    are reported as stuck (e.g. if they suppress the cancellations).
    Without the interval, the waiting is silent and happens in one go.
    """
    for task in tasks:
        task.cancel()

    pending: Set[Task] = set(tasks)
    while pending:
        _, pending = await wait(pending, timeout=interval)
        if pending and logger is not None:
            logger.debug(f"{title[:1].upper()}{title[1:]} tasks are not stopped yet: {pending!r}")
    return set(tasks)
