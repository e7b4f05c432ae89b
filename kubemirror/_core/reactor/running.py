"""
The consumer-facing functions to run the reflectors.

These are thin shortcuts over the `Reflector` class; the reflectors
can also be created, started and stopped directly. The functions exist
for the cases when the consumer does not need anything but the mirror::

    reflector = start_reflector(resource, context=context, selector=Selector(namespace='ns1'))
    await reflector.synced.wait_for(True)
    for body in current_snapshot(reflector):
        print(body.meta.name)
    await stop_reflector(reflector)
"""
from typing import Optional, Tuple

from kubemirror._cogs.clients import auth
from kubemirror._cogs.configs import configuration
from kubemirror._cogs.helpers import typedefs
from kubemirror._cogs.structs import bodies, references
from kubemirror._core.reactor import reflecting


def start_reflector(
        resource: references.Resource,
        *,
        context: auth.APIContext,
        selector: Optional[references.Selector] = None,
        settings: Optional[configuration.ClientSettings] = None,
) -> reflecting.Reflector:
    """
    Start mirroring a collection in the background (in the current event loop).
    """
    reflector = reflecting.Reflector(
        resource=resource,
        selector=selector,
        context=context,
        settings=settings,
    )
    reflector.start()
    return reflector


async def stop_reflector(reflector: reflecting.Reflector) -> None:
    await reflector.stop()


def current_snapshot(reflector: reflecting.Reflector) -> Tuple[bodies.Body, ...]:
    return reflector.snapshot()


def on_event(reflector: reflecting.Reflector, callback: typedefs.Callback) -> None:
    reflector.on_event(callback)


def on_error(reflector: reflecting.Reflector, callback: typedefs.Callback) -> None:
    reflector.on_error(callback)
