"""
Watching and streaming watch-events.

A watch is one long-lived HTTP request, which the server keeps open
and sends the changes of a collection as they happen, one JSON line per event.
The server can close it at any time (it usually does so every few minutes);
the client can close it at any time too, including when another coroutine
is blocked on reading from it.

The streams are lazy: the HTTP request is made only when the iteration starts.
The streams are forward-only and non-restartable: once the stream is over,
a new one must be opened (usually, after a relisting).

There are two ways of consuming a stream::

    stream = await watch_objs(context=context, settings=settings, resource=resource)
    async with stream:
        async for event in stream:
            ...

    await watch_objs(context=context, settings=settings, resource=resource, callback=fn)

In the callback mode, the stream is always finished on exit, be it the end
of the stream, an exception in the callback, or a stop signalled by a future.
"""
import asyncio
import inspect
import logging
from types import TracebackType
from typing import Any, AsyncIterator, Callable, Dict, Generic, Iterator, Mapping, \
                   Optional, Type, TypeVar

import aiohttp

from kubemirror._cogs.aiokits import aiotasks
from kubemirror._cogs.clients import api, auth, decoding, errors
from kubemirror._cogs.configs import configuration
from kubemirror._cogs.structs import bodies, references

logger = logging.getLogger(__name__)

_ItemT = TypeVar('_ItemT')


class WatchConnection:
    """
    One streaming HTTP request with its response open for reading.

    The connection holds at most one response. Cancelling it closes
    the response, so that any coroutine awaiting the next chunk is woken up
    with `aiohttp.ClientConnectionError` (which the streams treat as the end).
    """

    def __init__(
            self,
            *,
            url: str,
            context: auth.APIContext,
            settings: configuration.ClientSettings,
            params: Optional[Mapping[str, str]] = None,
    ) -> None:
        super().__init__()
        self.url = url
        self.params = dict(params or {})
        self._context = context
        self._settings = settings
        self._response: Optional[aiohttp.ClientResponse] = None
        self._cancelled = False

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__} {self.url}>'

    @property
    def opened(self) -> bool:
        return self._response is not None

    @property
    def closed(self) -> bool:
        return self._cancelled or (self._response is not None and self._response.closed)

    @property
    def content(self) -> aiohttp.StreamReader:
        if self._response is None:
            raise RuntimeError("The watch-connection is not opened yet.")
        return self._response.content

    async def open(self) -> None:
        """
        Make the request and keep the response open for streaming.

        The errors of the API are raised as is (e.g. `errors.APIGoneError`);
        the transport errors are wrapped into `errors.WatchConnectionError`.
        The request is not retried: the retries are the watcher's business.
        """
        if self._response is not None:
            raise RuntimeError("The watch-connection is already opened.")

        settings = self._settings
        connect_timeout = (
            settings.watching.connect_timeout if settings.watching.connect_timeout is not None else
            settings.networking.connect_timeout if settings.networking.connect_timeout is not None else
            settings.networking.request_timeout
        )
        try:
            response = await api.request(
                method='get',
                url=self.url,
                params=self.params,
                context=self._context,
                settings=settings,
                error_backoffs=(),
                timeout=aiohttp.ClientTimeout(
                    total=None,
                    sock_connect=connect_timeout,
                    sock_read=settings.watching.inactivity_timeout,
                ),
                logger=logger,
            )
        except (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError, asyncio.TimeoutError) as e:
            raise errors.WatchConnectionError(f"Failed to open the watch-stream: {e!r}") from e

        self._response = response

        # Cancelled while the request was in flight? Then do not keep it open.
        if self._cancelled:
            response.close()

    async def iter_chunks(self, chunk_size: Optional[int] = None) -> AsyncIterator[bytes]:
        chunk_size = chunk_size or self._settings.watching.chunk_size
        async for data in self.content.iter_chunked(chunk_size):
            yield data

    def cancel(self) -> None:
        """ Close the connection; safe to call many times and before opening. """
        self._cancelled = True
        if self._response is not None and not self._response.closed:
            self._response.close()


class ChunkedStream(Generic[_ItemT]):
    """
    A lazy, forward-only, non-restartable sequence of items from a connection.

    The descendant classes define how the chunks of bytes become the items.
    The stream can be iterated only once; the second iteration fails.
    The stream can be finished at any time from any coroutine (or a callback),
    which closes the underlying connection and ends the iteration cleanly.
    """

    def __init__(self, connection: WatchConnection) -> None:
        super().__init__()
        self.connection = connection
        self._iterated = False
        self._finished = False

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__} {self.connection.url}>'

    async def __aenter__(self) -> "ChunkedStream[_ItemT]":
        return self

    async def __aexit__(
            self,
            exc_type: Optional[Type[BaseException]],
            exc_val: Optional[BaseException],
            exc_tb: Optional[TracebackType],
    ) -> None:
        self.finish()

    def __aiter__(self) -> AsyncIterator[_ItemT]:
        if self._iterated:
            raise RuntimeError("The stream cannot be iterated twice; open a new one.")
        self._iterated = True
        return self._iterate()

    @property
    def finished(self) -> bool:
        return self._finished

    def finish(self) -> None:
        """ Stop the stream and release its connection. Safe to call many times. """
        self._finished = True
        self.connection.cancel()

    async def _iterate(self) -> AsyncIterator[_ItemT]:
        try:
            if not self._finished:
                await self.connection.open()
            if not self._finished:
                async for chunk in self.connection.iter_chunks():
                    for item in self._feed(chunk):
                        if self._finished:
                            return
                        yield item

            # The server has closed the stream; the remainder is the last line (if not finished).
            if not self._finished:
                for item in self._flush():
                    yield item
        except (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError, asyncio.TimeoutError) as e:
            if not self._finished:
                raise errors.WatchConnectionError(f"The stream has failed: {e!r}") from e
        finally:
            self.finish()

    def _feed(self, chunk: bytes) -> Iterator[_ItemT]:
        raise NotImplementedError

    def _flush(self) -> Iterator[_ItemT]:
        raise NotImplementedError


class WatchStream(ChunkedStream[bodies.WatchEvent]):
    """
    The watch-events of one watch-request, as decoded from the JSON lines.

    The ``ERROR`` events are yielded as any other events, not raised:
    it is the consumer's decision what to do with them. However, the "410 Gone"
    status of the request itself (not as an event) is raised as
    `errors.SnapshotExpiredError`, since there are no events to yield.
    """

    def __init__(
            self,
            connection: WatchConnection,
            *,
            decoder: Optional[decoding.EventDecoder] = None,
    ) -> None:
        super().__init__(connection)
        self.decoder = decoder if decoder is not None else decoding.EventDecoder()

    async def _iterate(self) -> AsyncIterator[bodies.WatchEvent]:
        try:
            async for event in super()._iterate():
                yield event
        except errors.APIGoneError as e:
            raise errors.SnapshotExpiredError(f"The resource version is too old: {e}") from e

    def _feed(self, chunk: bytes) -> Iterator[bodies.WatchEvent]:
        return self.decoder.feed(chunk)

    def _flush(self) -> Iterator[bodies.WatchEvent]:
        return self.decoder.flush()


class LogStream(ChunkedStream[str]):
    """ The lines of a followed log, as plain strings, without the line endings. """

    def __init__(
            self,
            connection: WatchConnection,
            *,
            max_line_size: Optional[int] = None,
    ) -> None:
        super().__init__(connection)
        self.lines = decoding.LineBuffer(max_line_size=max_line_size)

    def _feed(self, chunk: bytes) -> Iterator[str]:
        return (line.decode('utf-8', errors='replace') for line in self.lines.feed(chunk))

    def _flush(self) -> Iterator[str]:
        return (line.decode('utf-8', errors='replace') for line in self.lines.flush())


async def watch_objs(
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        resource: references.Resource,
        namespace: references.Namespace = None,
        name: Optional[str] = None,
        labels: Optional[str] = None,
        fields: Optional[str] = None,
        since: Optional[str] = None,
        callback: Optional[Callable[[bodies.WatchEvent], Any]] = None,
        stopper: Optional[aiotasks.Future] = None,
) -> Optional[WatchStream]:
    """
    Watch the objects of a specific resource type, or one object by its name.

    Without a callback, the stream is returned unopened: the request is made
    when the iteration begins. With a callback, the stream is consumed here,
    and the callback is called for every event (sync or async); the stream is
    finished on any exit, including the callback's exceptions.

    The stopper future, if passed, finishes the stream once it is done:
    the same way as calling `WatchStream.finish` directly.
    """
    params: Dict[str, str] = {}
    if labels:
        params['labelSelector'] = labels
    if fields:
        params['fieldSelector'] = fields
    if since is not None:
        params['resourceVersion'] = since
    if settings.watching.allow_bookmarks:
        params['allowWatchBookmarks'] = 'true'
    if settings.watching.server_timeout is not None:
        params['timeoutSeconds'] = str(int(settings.watching.server_timeout))

    connection = WatchConnection(
        url=resource.get_url(namespace=namespace, name=name, watch=True),
        params=params,
        context=context,
        settings=settings,
    )
    stream = WatchStream(
        connection,
        decoder=decoding.EventDecoder(max_line_size=settings.watching.max_line_size),
    )
    return await _return_or_consume(stream, callback=callback, stopper=stopper)


async def watch_pod_log(
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        name: str,
        namespace: references.Namespace,
        container: Optional[str] = None,
        callback: Optional[Callable[[str], Any]] = None,
        stopper: Optional[aiotasks.Future] = None,
) -> Optional[LogStream]:
    """
    Follow the log of a pod: the new lines are streamed as they are written.
    """
    params: Dict[str, str] = {'follow': 'true'}
    if container is not None:
        params['container'] = container

    resource = references.Resource('', 'v1', 'pods', kind='Pod', namespaced=True)
    connection = WatchConnection(
        url=resource.get_url(namespace=namespace, name=name, subresource='log'),
        params=params,
        context=context,
        settings=settings,
    )
    stream = LogStream(connection, max_line_size=settings.watching.max_line_size)
    return await _return_or_consume(stream, callback=callback, stopper=stopper)


async def _return_or_consume(
        stream: ChunkedStream[Any],
        *,
        callback: Optional[Callable[[Any], Any]],
        stopper: Optional[aiotasks.Future],
) -> Any:
    stopper_callback = lambda _: stream.finish()  # to remove the positional arg.
    if stopper is not None:
        if stopper.done():
            stream.finish()
        else:
            stopper.add_done_callback(stopper_callback)

    # Not our business to finish it: the consumer does this.
    if callback is None:
        return stream

    try:
        async with stream:
            async for item in stream:
                result = callback(item)
                if inspect.isawaitable(result):
                    await result
    finally:
        if stopper is not None:
            stopper.remove_done_callback(stopper_callback)
    return None
