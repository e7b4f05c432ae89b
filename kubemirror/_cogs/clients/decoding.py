"""
Decoding of the watch-streams: from the bytes to the typed watch-events.

The watch-stream is a sequence of JSON objects, one per line, each having
the event's ``type`` and the ``object`` of that event. The lines arrive
in arbitrarily sized chunks: a chunk can contain many lines, a part of
one line, or the end of one line and the beginning of the next one.

The decoder has no knowledge of the network: it is fed with the chunks
as they arrive, and returns the events as soon as their lines are complete.

.. note::

    The aiohttp's own line iteration fails if the accumulated buffer length
    is above 2**17 bytes, i.e. 128 KB (`aiohttp.streams.DEFAULT_LIMIT`
    for the buffer's low-watermark, multiplied by 2 for the high-watermark).
    Kubernetes secrets and other fields can be much longer, up to MBs in length.
    Hence, the lines are split here, with our own limit (or with none).
"""
import collections.abc
import json
from typing import Any, Iterator, List, Optional

from kubemirror._cogs.clients import errors
from kubemirror._cogs.structs import bodies


class LineBuffer:
    """
    Accumulate the chunks of bytes and split them into the complete lines.

    Minimize the memory footprint by keeping at most 2 copies of a line
    in memory (in the buffer and as a returned value), and at most 1 copy
    of other lines (in the buffer).

    The chunks are buffered at once, but the lines are then iterated lazily:
    if the incomplete remainder is too long, the error is raised only after
    all the complete lines before it are yielded.
    """

    def __init__(self, *, max_line_size: Optional[int] = None) -> None:
        super().__init__()
        self._buffer = b''
        self._max_line_size = max_line_size

    def __len__(self) -> int:
        return len(self._buffer)

    def feed(self, chunk: bytes) -> Iterator[bytes]:
        self._buffer += chunk
        del chunk

        lines: List[bytes] = []
        start = 0
        index = self._buffer.find(b'\n', start)
        while index >= 0:
            line = self._buffer[start:index].rstrip(b'\r')
            if line.strip():
                lines.append(line)
            del line
            start = index + 1
            index = self._buffer.find(b'\n', start)

        if start > 0:
            self._buffer = self._buffer[start:]

        # The check is only for the incomplete remainder: complete lines are already processed.
        error: Optional[errors.DecodeError] = None
        if self._max_line_size is not None and len(self._buffer) > self._max_line_size:
            size, self._buffer = len(self._buffer), b''
            error = errors.DecodeError(f"The line is too long: {size} > {self._max_line_size} bytes.")

        return _iter_lines(lines, error)

    def flush(self) -> Iterator[bytes]:
        line, self._buffer = self._buffer.rstrip(b'\r'), b''
        return _iter_lines([line] if line.strip() else [], None)


def _iter_lines(lines: List[bytes], error: Optional[errors.DecodeError]) -> Iterator[bytes]:
    yield from lines
    if error is not None:
        raise error


class EventDecoder:
    """
    Turn the chunks of the watch-stream into the typed watch-events.

    Usage::

        decoder = EventDecoder()
        async for chunk in response.content.iter_any():
            for event in decoder.feed(chunk):
                ...
        for event in decoder.flush():
            ...

    Every complete non-empty line must be a valid watch-event, otherwise
    `DecodeError` is raised and the stream cannot be continued: the events
    are never silently skipped. For the same reason, an incomplete trailing
    line at the stream's end is decoded as if it were complete.

    The events are decoded one by one as they are iterated, so all the events
    before an invalid line are yielded before the error is raised.
    """

    def __init__(self, *, max_line_size: Optional[int] = None) -> None:
        super().__init__()
        self._lines = LineBuffer(max_line_size=max_line_size)

    @property
    def pending(self) -> int:
        """ The number of bytes buffered but not yet decoded. """
        return len(self._lines)

    def feed(self, chunk: bytes) -> Iterator[bodies.WatchEvent]:
        return map(parse_event, self._lines.feed(chunk))

    def flush(self) -> Iterator[bodies.WatchEvent]:
        return map(parse_event, self._lines.flush())


def parse_event(line: bytes) -> bodies.WatchEvent:
    """
    Parse one line of the watch-stream into a typed watch-event.
    """
    try:
        raw: Any = json.loads(line.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise errors.DecodeError(f"The watch-event is not a valid JSON: {_excerpt(line)}") from e

    if not isinstance(raw, collections.abc.Mapping):
        raise errors.DecodeError(f"The watch-event is not a JSON object: {_excerpt(line)}")
    if 'type' not in raw or 'object' not in raw:
        raise errors.DecodeError(f"The watch-event has no type or object: {_excerpt(line)}")
    if raw['type'] not in bodies.RAW_INPUT_TYPES:
        raise errors.DecodeError(f"The watch-event has an unknown type: {raw['type']!r}")
    if not isinstance(raw['object'], collections.abc.Mapping):
        raise errors.DecodeError(f"The watch-event's object is not a JSON object: {_excerpt(line)}")

    body = bodies.Body(raw['object'])
    return bodies.WatchEvent(
        type=raw['type'],
        object=body,
        resource_version=body.meta.resource_version,
    )


def _excerpt(line: bytes, limit: int = 200) -> str:
    text = line[:limit].decode('utf-8', errors='replace')
    return text + ('...' if len(line) > limit else '')
