"""
Interruptible sleeping for the backoffs.
"""
import asyncio
from typing import Optional


async def sleep(
        delay: Optional[float],
        wakeup: Optional[asyncio.Event] = None,
) -> bool:
    """
    Sleep for the delay, or until the wakeup event is set, whichever comes first.

    Returns ``True`` if woken up by the event, ``False`` if the delay is over.
    No delay or a non-positive one returns immediately, without switching
    to other coroutines: there is no need to sleep at all.
    """
    if delay is None or delay <= 0:
        return wakeup is not None and wakeup.is_set()

    if wakeup is None:
        await asyncio.sleep(delay)
        return False

    try:
        await asyncio.wait_for(wakeup.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return False
    else:
        return True
