"""
Reflectors: the list-watch-relist loops keeping the stores in sync with the cluster.

A reflector mirrors one collection (a resource, optionally restricted
by a namespace and the label/field selectors) into its store.
It runs in its own asyncio task and goes through these phases::

    IDLE → LISTING → WATCHING → LISTING → WATCHING → ... → STOPPED

The listing always precedes the watching, and the watching always starts
from the resource version of that very listing: no events are lost in between.
When the watch-stream is over for any reason (the server's timeout,
a connection failure, a decoding failure, an ``ERROR`` event, "410 Gone"),
the collection is relisted from scratch: the watch-streams are never resumed,
since there is no guarantee that the resource version is still valid.

The errors never escape the reflector's task: they are logged and passed
to the error-observing callbacks, and the loop goes on after a backoff.
Only stopping the reflector ends the loop.
"""
import asyncio
import enum
import inspect
from typing import Iterable, List, Optional, Tuple

from kubemirror._cogs.aiokits import aiotasks, aiotime, aiotoggles
from kubemirror._cogs.clients import auth, errors, fetching, watching
from kubemirror._cogs.configs import configuration
from kubemirror._cogs.helpers import typedefs
from kubemirror._cogs.structs import bodies, references
from kubemirror._core.actions import loggers
from kubemirror._core.reactor import caching


class ReflectorPhase(enum.Enum):
    IDLE = 'idle'
    LISTING = 'listing'
    WATCHING = 'watching'
    STOPPED = 'stopped'


class Reflector:
    """
    A background mirror of one remote collection into a local store.
    """

    def __init__(
            self,
            *,
            resource: references.Resource,
            context: auth.APIContext,
            settings: Optional[configuration.ClientSettings] = None,
            selector: Optional[references.Selector] = None,
            store: Optional[caching.Store] = None,
    ) -> None:
        super().__init__()
        self.resource = resource
        self.context = context
        self.settings = settings if settings is not None else configuration.ClientSettings()
        self.selector = selector if selector is not None else references.Selector()
        self.store = store if store is not None else caching.Store()
        self.logger = loggers.ResourceLogger(resource=resource, selector=self.selector)
        self.synced = aiotoggles.Toggle(False, name=f'{resource!r} synced')
        self._phase = ReflectorPhase.IDLE
        self._event_callbacks: List[typedefs.Callback] = []
        self._error_callbacks: List[typedefs.Callback] = []
        self._stopping = False
        self._stop_event = asyncio.Event()
        self._stream: Optional[watching.WatchStream] = None
        self._task: Optional[aiotasks.Task] = None

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__} {self.resource!r} {self.selector}: {self._phase.value}>'

    @property
    def phase(self) -> ReflectorPhase:
        return self._phase

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_resource_version(self) -> Optional[str]:
        return self.store.resource_version

    def snapshot(self) -> Tuple[bodies.Body, ...]:
        return self.store.list()

    def on_event(self, callback: typedefs.Callback) -> None:
        """ Call the callback (sync or async) with every applied watch-event. """
        self._event_callbacks.append(callback)

    def on_error(self, callback: typedefs.Callback) -> None:
        """ Call the callback (sync or async) with every recovered error. """
        self._error_callbacks.append(callback)

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError(f"The reflector is already started: {self!r}")
        self._task = aiotasks.create_guarded_task(
            name=f"reflector for {self.resource!r} {self.selector}",
            coro=self._run(),
            finishable=True,
            cancellable=True,
            logger=self.logger,
        )

    async def wait(self) -> None:
        """ Wait until the reflector's task is over: either stopped or failed. """
        if self._task is not None:
            await aiotasks.wait([self._task])

    async def stop(self) -> None:
        """
        Stop the reflector and wait until it is stopped, but not for too long.

        The open watch-stream (if any) is closed immediately, so the reflector
        exits as soon as it notices that. If it does not exit in time
        (e.g. an API request is stuck), its task is cancelled.
        """
        self._stopping = True
        self._stop_event.set()
        if self._stream is not None:
            self._stream.finish()

        if self._task is not None:
            timeout = self.settings.reflecting.stop_timeout
            done, pending = await aiotasks.wait([self._task], timeout=timeout)
            if pending:
                self.logger.warning(f"The reflector did not stop in {timeout}s; cancelling it.")
                await aiotasks.cancel(pending, title="reflector", logger=self.logger)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    self.logger.debug(f"The reflector has exited with an error: {task.exception()!r}")

        self._phase = ReflectorPhase.STOPPED
        self.store.clear()
        await self.synced.turn_to(False)

    async def _run(self) -> None:
        self.logger.debug(f"Starting the reflector {self.selector}.")
        listing_failures = 0
        watching_failures = 0
        try:
            while not self._stopping:

                # List the collection and remember its resource version to watch from it.
                self._phase = ReflectorPhase.LISTING
                try:
                    entities = await fetching.list_all_objs(
                        context=self.context,
                        settings=self.settings,
                        resource=self.resource,
                        namespace=self.selector.namespace,
                        labels=self.selector.label_selector,
                        fields=self.selector.field_selector,
                        logger=self.logger,
                    )

                    # An unstorable object fails the listing as a whole, and the store stays intact.
                    self.store.replace_all(entities)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    listing_error = _wrap_listing_error(e)
                    delay = _pick_backoff(self.settings.listing.error_backoffs, listing_failures)
                    listing_failures += 1
                    self.logger.error(f"Listing has failed; will retry in {delay}s: {e!r}")
                    await self._notify(self._error_callbacks, listing_error)
                    await aiotime.sleep(delay, wakeup=self._stop_event)
                    continue

                listing_failures = 0
                await self.synced.turn_to(True)
                self.logger.debug(f"Listed {len(entities.items)} objects "
                                  f"at resource version {entities.resource_version!r}.")
                if self._stopping:
                    break

                # Watch the collection from the listed version, until the stream is over.
                self._phase = ReflectorPhase.WATCHING
                error, opened = await self._watch(since=entities.resource_version)
                await self.synced.turn_to(False)
                if opened:
                    watching_failures = 0
                if self._stopping:
                    break

                # Relist in any case, but with different pauses to not flood the API.
                if error is None:
                    self.logger.debug("The watch-stream is over; relisting.")
                    await aiotime.sleep(self.settings.watching.reconnect_backoff, wakeup=self._stop_event)
                elif isinstance(error, errors.SnapshotExpiredError):
                    self.logger.debug(f"The resource version has expired; relisting: {error}")
                    await self._notify(self._error_callbacks, error)
                    await aiotime.sleep(self.settings.watching.reconnect_backoff, wakeup=self._stop_event)
                else:
                    delay = _pick_backoff(self.settings.watching.error_backoffs, watching_failures)
                    watching_failures += 1
                    self.logger.warning(f"The watch-stream has failed; relisting in {delay}s: {error!r}")
                    await self._notify(self._error_callbacks, error)
                    await aiotime.sleep(delay, wakeup=self._stop_event)

        finally:
            self._phase = ReflectorPhase.STOPPED
            self._stream = None
            self.store.clear()
            self.logger.debug(f"Stopped the reflector {self.selector}.")

    async def _watch(self, *, since: Optional[str]) -> Tuple[Optional[Exception], bool]:
        """
        Apply the events of one watch-stream to the store until the stream is over.

        Returns the error that ended the stream (if any), and whether the stream
        was opened at all (for resetting the backoffs).
        """
        stream = await watching.watch_objs(
            context=self.context,
            settings=self.settings,
            resource=self.resource,
            namespace=self.selector.namespace,
            labels=self.selector.label_selector,
            fields=self.selector.field_selector,
            since=since,
        )
        assert stream is not None  # for type-checking: no callback means a stream.
        self._stream = stream

        # The periodic resync simply closes the stream, and the loop relists.
        loop = asyncio.get_running_loop()
        resync_interval = self.settings.reflecting.resync_interval
        resync_handle = loop.call_later(resync_interval, stream.finish) if resync_interval else None

        error: Optional[Exception] = None
        try:
            async with stream:
                async for event in stream:
                    if not self.store.apply(event):
                        error = _make_event_error(event)
                        break
                    await self._notify(self._event_callbacks, event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e if isinstance(e, errors.WatchingError) else _wrap_stream_error(e)
        finally:
            self._stream = None
            if resync_handle is not None:
                resync_handle.cancel()

        return error, stream.connection.opened

    async def _notify(self, callbacks: List[typedefs.Callback], arg: object) -> None:
        for callback in list(callbacks):
            try:
                result = callback(arg)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.exception(f"Callback {callback!r} has failed: {e!r}")


def _pick_backoff(backoffs: Iterable[float], attempt: int) -> float:
    # The last backoff repeats forever: the reflectors never give up on their own.
    values = list(backoffs)
    return values[min(attempt, len(values) - 1)] if values else 0


def _make_event_error(event: bodies.WatchEvent) -> errors.WatchingError:
    status = dict(event.object)
    if event.code == 410:
        return errors.SnapshotExpiredError(f"The resource version is too old: {status!r}")
    return errors.WatchEventError(f"Error in the watch-stream: {status!r}")


def _wrap_stream_error(e: Exception) -> errors.WatchingError:
    if isinstance(e, errors.APIGoneError):
        error: errors.WatchingError = errors.SnapshotExpiredError(str(e))
    else:
        error = errors.WatchConnectionError(f"The watch-stream has failed: {e!r}")
    error.__cause__ = e
    return error


def _wrap_listing_error(e: Exception) -> errors.ListingError:
    if isinstance(e, errors.ListingError):
        return e
    error = errors.ListingError(f"The listing has failed: {e!r}")
    error.__cause__ = e
    return error
