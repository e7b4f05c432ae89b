import asyncio
import io
import json
import logging
import re
import time
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import async_timeout
import pytest

from kubemirror._cogs.clients.auth import APIContext
from kubemirror._cogs.configs.configuration import ClientSettings
from kubemirror._cogs.structs.credentials import ConnectionInfo
from kubemirror._cogs.structs.references import Resource
from kubemirror._core.actions.loggers import CollectionTextFormatter, OwnStreamHandler, configure


def _mirrors(namespaced):
    return Resource('kubemirror.dev', 'v1', 'mirrorexamples', kind='MirrorExample',
                    namespaced=namespaced)


@pytest.fixture()
def namespaced_resource():
    return _mirrors(namespaced=True)


@pytest.fixture()
def cluster_resource():
    return _mirrors(namespaced=False)


@pytest.fixture(params=[True, False], ids=['namespaced', 'cluster'])
def resource(request):
    return _mirrors(namespaced=request.param)


@pytest.fixture()
def namespace(resource):
    return 'ns' if resource.namespaced else None


@pytest.fixture()
def settings():
    return ClientSettings()


@pytest.fixture()
def logger():
    return logging.getLogger('kubemirror.tests')


#
# The API server is faked with `aresponses` on a fake host: no real calls are made.
# The HTTP clients above aiohttp are tested with real sessions, not mocked ones.
#

@pytest.fixture()
def hostname():
    return 'fake-host'


@pytest.fixture()
async def context(hostname):
    """ A real context with a real session, closed (with its responses) after the test. """
    info = ConnectionInfo(server=f'https://{hostname}')
    async with APIContext(info) as context:
        yield context


@pytest.fixture()
def resp_mocker(context, aresponses):
    """
    Make the `aresponses` handlers that remember their calls, as mocks do.

    The arguments are those of `MagicMock` (``return_value`` or ``side_effect``)
    and define the responses. The requests' bodies are stored as ``data``
    in the requests, decoded from JSON where possible::

        handler = resp_mocker(return_value=aiohttp.web.json_response({}))
        aresponses.add(hostname, '/path', 'post', handler)
        ...
        assert handler.call_args_list[0][0][0]['data'] == {'a': 'b'}
    """
    def resp_maker(*args, **kwargs):
        respond = MagicMock(*args, **kwargs)

        async def handle(request):
            text = await request.text()  # only readable in the handler.
            try:
                request['data'] = json.loads(text) if text else None
            except json.JSONDecodeError:
                request['data'] = text
            return respond()

        return AsyncMock(side_effect=handle)
    return resp_maker


class FakeConnection:
    """
    A connection-like object for the streams, with no network involved.

    The chunks are served as given; exceptions among them are raised instead.
    If blocking, the connection hangs after the last chunk until cancelled,
    as a real watch-connection does while the collection has no changes.
    """

    def __init__(self, *chunks, error=None, block=False, url='/fake'):
        super().__init__()
        self.url = url
        self.chunks = list(chunks)
        self.error = error
        self.block = block
        self.opened = False
        self.cancelled = False
        self._cancelled_event = asyncio.Event()

    @property
    def closed(self):
        return self.cancelled

    async def open(self):
        if self.error is not None:
            raise self.error
        self.opened = True

    async def iter_chunks(self, chunk_size=None):
        for chunk in self.chunks:
            await asyncio.sleep(0)
            if self.cancelled:
                raise aiohttp.ClientConnectionError("Connection closed.")
            if isinstance(chunk, BaseException):
                raise chunk
            yield chunk
        if self.block:
            await self._cancelled_event.wait()
            raise aiohttp.ClientConnectionError("Connection closed.")

    def cancel(self):
        self.cancelled = True
        self._cancelled_event.set()


@pytest.fixture()
def fake_connection():
    """ The class of fake connections, to be instantiated in the tests. """
    return FakeConnection


@pytest.fixture()
def encode():
    """ Render the watch-events as the server does: one JSON object per line. """
    def encode_fn(*events):
        return b''.join(json.dumps(event).encode('utf-8') + b'\n' for event in events)
    return encode_fn


#
# Timing & waiting.
#

class Timer:
    """
    Measure the duration of a block (sync or async)::

        with timer:
            ...
        assert timer.seconds < 0.5

    While the block runs, ``seconds`` is the time since its start.
    """

    def __init__(self):
        super().__init__()
        self.started = None
        self.stopped = None

    @property
    def seconds(self):
        if self.started is None:
            return None
        return (self.stopped or time.perf_counter()) - self.started

    def __enter__(self):
        self.started, self.stopped = time.perf_counter(), None
        return self

    def __exit__(self, *exc_info):
        self.stopped = time.perf_counter()

    async def __aenter__(self):
        return self.__enter__()

    async def __aexit__(self, *exc_info):
        self.__exit__(*exc_info)


@pytest.fixture()
def timer():
    return Timer()


@pytest.fixture()
def wait_until():
    """ Poll for the condition, but fail the test if it takes too long. """
    async def wait_until_fn(predicate, *, timeout=1.0):
        async with async_timeout.timeout(timeout):
            while not predicate():
                await asyncio.sleep(0.01)
    return wait_until_fn


#
# Logging.
#

@pytest.fixture()
def logstream(caplog):
    """
    Capture the final text output of the logs, with the collection prefixes.

    The prefixes are added by the formatters, so `caplog` does not see them.
    """
    root = logging.getLogger()
    original_handlers = list(root.handlers)

    configure(verbose=True)
    root.handlers[:] = [h for h in root.handlers if not isinstance(h, OwnStreamHandler)]

    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(CollectionTextFormatter('prefix %(message)s', prefixed=True))
    root.addHandler(handler)
    try:
        with caplog.at_level(logging.DEBUG):
            yield stream
    finally:
        root.handlers[:] = original_handlers


@pytest.fixture()
def assert_logs(caplog):
    """
    Check that the patterns are found in the log messages in the given order.

    Other messages in between are allowed. The prohibited patterns must
    not be found in any message at all.
    """
    def assert_logs_fn(patterns, prohibited=()):
        __traceback_hide__ = True
        messages = iter(caplog.messages)
        for pattern in patterns:
            if not any(re.search(pattern, message) for message in messages):
                raise AssertionError(f"Pattern not found in order: {pattern!r}")
        for message in caplog.messages:
            for pattern in prohibited:
                if re.search(pattern, message):
                    raise AssertionError(f"Prohibited log pattern found: {message!r} ~ {pattern!r}")
    return assert_logs_fn
