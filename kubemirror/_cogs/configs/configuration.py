"""
All configuration flags, options, settings to fine-tune the client.

All settings are grouped semantically just for convenience
(instead of a flat mega-object with all the values in it).

Some of the settings are flags, some are scalars, some are optional,
some are not (but all of them have reasonable defaults).

The settings object is created once and then passed to all the clients
and reflectors explicitly. It is not a global state: different reflectors
in the same process can run with different settings.
"""
import dataclasses
from typing import Iterable, Optional


@dataclasses.dataclass
class NetworkingSettings:

    request_timeout: Optional[float] = 5 * 60  # == aiohttp.client.DEFAULT_TIMEOUT
    """
    A timeout for the ordinary request/response API calls (not for watching).
    """

    connect_timeout: Optional[float] = None
    """
    A timeout for the connection establishment, including the SSL handshake.
    If ``None``, then ``request_timeout`` applies to everything.
    """

    error_backoffs: Iterable[float] = (1, 1, 2, 3, 5, 8)
    """
    Backoff intervals in case of retryable API errors: connectivity or 5xx.

    The number of intervals is the number of retries; the last attempt
    escalates the error to the caller. To disable retries, set it to ``[]``.
    """


@dataclasses.dataclass
class WatchingSettings:

    server_timeout: Optional[float] = None
    """
    The maximum duration of one streaming request, as requested from the server.
    If ``None``, then obey the server-side timeouts (they seem to be random).
    """

    connect_timeout: Optional[float] = None
    """
    An HTTP/HTTPS connection timeout to use in watch requests.
    If ``None``, the networking settings apply.
    """

    inactivity_timeout: Optional[float] = None
    """
    How long can the watch-stream be silent before it is considered dead.

    By default, the watch-streams never time out on the client side:
    a quiet collection can legitimately send nothing for hours, and
    the server closes the idle streams on its own (see ``server_timeout``).
    If the server or a proxy in between can silently hang a connection,
    set this to a value higher than the expected bookmark interval
    (usually, ~1 minute), and the silent stream will be relisted.
    """

    reconnect_backoff: float = 0.1
    """
    How long should a pause be between watch requests (to prevent API flooding).
    """

    error_backoffs: Iterable[float] = (1, 1, 2, 3, 5, 8, 13, 21, 34, 55)
    """
    Backoff intervals after the watch-stream has failed with an error
    (except the "410 Gone", which is a normal relisting condition).

    Every consecutive error leads to the next, bigger delay; the last one
    repeats forever. Every successfully opened stream resets the backoff.
    """

    allow_bookmarks: bool = True
    """
    Whether to request the bookmark events from the server.
    """

    max_line_size: Optional[int] = 64 * 1024 * 1024
    """
    The upper limit of one line in the watch-stream, in bytes.

    A misbehaving server or a proxy can send a never-ending line, which would
    be buffered indefinitely. The stream fails when the line goes above this.
    Set to ``None`` to disable the limit (only the memory is the limit then).
    """

    chunk_size: int = 1024 * 1024
    """
    How much to read from the socket at once. Lines can be longer or shorter:
    they are split or accumulated regardless of the chunks.
    """


@dataclasses.dataclass
class ListingSettings:

    page_size: Optional[int] = None
    """
    How many objects to request per page when listing. If ``None``,
    everything is listed in one request (as the server decides).
    """

    error_backoffs: Iterable[float] = (1, 1, 2, 3, 5, 8, 13, 21, 34, 55)
    """
    Backoff intervals between the listing attempts if the listing fails.
    The last value repeats forever: the reflector never gives up on its own.
    """


@dataclasses.dataclass
class ReflectingSettings:

    resync_interval: Optional[float] = None
    """
    How often to relist the whole collection regardless of the watch-stream.

    The watch-streams are consistent on their own; this only bounds
    the staleness in case of undetected inconsistencies. ``None`` disables it.
    """

    stop_timeout: Optional[float] = 5.0
    """
    How long to wait for the reflector to exit gracefully when stopped,
    before its task is cancelled forcedly. ``None`` means waiting forever.
    """


@dataclasses.dataclass
class ClientSettings:
    networking: NetworkingSettings = dataclasses.field(default_factory=NetworkingSettings)
    watching: WatchingSettings = dataclasses.field(default_factory=WatchingSettings)
    listing: ListingSettings = dataclasses.field(default_factory=ListingSettings)
    reflecting: ReflectingSettings = dataclasses.field(default_factory=ReflectingSettings)
