"""
The errors of the API calls and of the watch-streams.

The HTTP errors are converted to our own hierarchy with the information
from the response bodies (the ``Status`` objects), so that the callers do not
depend on ``aiohttp`` and its exceptions. The original exceptions are chained
as the causes. The networking errors in the one-shot calls are not converted.

The watch-streams have their own family of errors (`WatchingError`).
They never escape the reflectors: they only make them relist.
"""
import collections.abc
import json
from typing import Any, Dict, Mapping, Optional, Type

import aiohttp


class APIError(Exception):
    """
    An HTTP error from the API, with the details of its ``Status`` body if any.

    ``status`` is the HTTP status of the response. ``code``, ``reason``,
    ``message``, and ``details`` are taken from the body and are ``None``
    if the body was not a ``Status`` object.
    """

    def __init__(self, payload: Optional[Mapping[str, Any]], *, status: int) -> None:
        super().__init__(payload.get('message') if payload else None, payload)
        self.status = status
        self.payload = payload

    def _field(self, name: str) -> Any:
        return None if self.payload is None else self.payload.get(name)

    @property
    def code(self) -> Optional[int]:
        return self._field('code')

    @property
    def reason(self) -> Optional[str]:
        return self._field('reason')

    @property
    def message(self) -> Optional[str]:
        return self._field('message')

    @property
    def details(self) -> Optional[Mapping[str, Any]]:
        return self._field('details')


class APIClientError(APIError):
    pass


class APIServerError(APIError):
    pass


class APIUnauthorizedError(APIClientError):
    pass


class APIForbiddenError(APIClientError):
    pass


class APINotFoundError(APIClientError):
    pass


class APIConflictError(APIClientError):
    pass


class APIAlreadyExistsError(APIConflictError):
    pass


class APIGoneError(APIClientError):
    pass


class WatchingError(Exception):
    """ The watch-stream cannot continue from its current position. """


class DecodeError(WatchingError):
    """ A line of the watch-stream is not a valid watch-event. """


class WatchConnectionError(WatchingError):
    """ The watch-stream's connection has failed while opening or reading. """


class SnapshotExpiredError(WatchingError):
    """ The resource version is too old to continue from ("410 Gone"). """


class WatchEventError(WatchingError):
    """ The server has sent an ``ERROR`` event other than "410 Gone". """


class ListingError(Exception):
    """ The full listing of a collection has failed; it will be retried. """


_CLIENT_ERRORS: Dict[int, Type[APIClientError]] = {
    401: APIUnauthorizedError,
    403: APIForbiddenError,
    404: APINotFoundError,
    409: APIConflictError,
    410: APIGoneError,
}


def _classify(status: int, reason: Optional[str]) -> Type[APIError]:
    if status == 409 and reason == 'AlreadyExists':
        return APIAlreadyExistsError
    elif status in _CLIENT_ERRORS:
        return _CLIENT_ERRORS[status]
    elif 400 <= status < 500:
        return APIClientError
    elif 500 <= status < 600:
        return APIServerError
    else:
        return APIError


async def check_response(response: aiohttp.ClientResponse) -> None:
    """
    Raise an `APIError` (or its descendant) if the response is an HTTP error.

    Only the ``Status`` bodies are kept in the errors: other bodies can contain
    anything, including the secrets, and they would be dumped to the logs.
    """
    if response.status < 400:
        return

    # Read it now: raise_for_status() below closes the response.
    payload: Optional[Mapping[str, Any]]
    try:
        payload = await response.json()
    except (json.JSONDecodeError, aiohttp.ContentTypeError, aiohttp.ClientConnectionError):
        payload = None
    if not isinstance(payload, collections.abc.Mapping) or payload.get('kind') != 'Status':
        payload = None

    cls = _classify(response.status, payload.get('reason') if payload else None)
    try:
        response.raise_for_status()
    except aiohttp.ClientResponseError as e:
        raise cls(payload, status=response.status) from e
