import asyncio
from typing import Optional


class Toggle:
    """
    A two-state flag that can be awaited for either of its states.

    `asyncio.Event` can only be awaited until set, not until cleared.
    The reflectors expose their "synced" state this way: it turns on after
    every listing and off whenever the watch-stream is lost and the store
    is not updated anymore. The consumers can wait for either.

    The name is only used in the reprs, to tell many toggles apart.
    """

    def __init__(
            self,
            __state: bool = False,
            *,
            name: Optional[str] = None,
    ) -> None:
        super().__init__()
        self._on = asyncio.Event()
        self._off = asyncio.Event()
        self._name = name
        self._set(bool(__state))

    def __repr__(self) -> str:
        state = 'on' if self.is_on() else 'off'
        prefix = f'{self.__class__.__name__}: ' + (f'{self._name}: ' if self._name else '')
        return f'<{prefix}{state}>'

    def __bool__(self) -> bool:
        raise NotImplementedError  # ambiguous: use is_on()/is_off() explicitly.

    @property
    def name(self) -> Optional[str]:
        return self._name

    def is_on(self) -> bool:
        return self._on.is_set()

    def is_off(self) -> bool:
        return self._off.is_set()

    async def turn_to(self, __state: bool) -> None:
        self._set(bool(__state))

    async def wait_for(self, __state: bool) -> None:
        await (self._on if __state else self._off).wait()

    def _set(self, state: bool) -> None:
        (self._on if state else self._off).set()
        (self._off if state else self._on).clear()
