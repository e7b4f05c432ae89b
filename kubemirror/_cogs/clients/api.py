"""
The low-level HTTP calls to the API: one request with retries per call.

All higher-level clients (fetching, watching, creating, etc) go through
`request`, so that the URLs, timeouts, retries, and the status checking
are done the same way everywhere. The JSON verbs also read the response;
`request` itself leaves the body unread for the streaming consumers.
"""
import asyncio
import collections.abc
import itertools
from typing import Any, Iterable, Iterator, Mapping, Optional, Tuple

import aiohttp

from kubemirror._cogs.clients import auth, errors
from kubemirror._cogs.configs import configuration
from kubemirror._cogs.helpers import typedefs

RETRYABLE_ERRORS = (aiohttp.ClientConnectionError, errors.APIServerError, asyncio.TimeoutError)


async def request(
        method: str,
        url: str,  # either absolute, or relative to the server root.
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        payload: Optional[object] = None,
        params: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        error_backoffs: Optional[Iterable[float]] = None,
        logger: typedefs.Logger,
) -> aiohttp.ClientResponse:
    """
    Make a request to the API and check its status, but do not read the body.

    The connectivity errors and the server-side errors (HTTP 5xx) are retried
    with the backoffs from the settings (or as explicitly passed). The client
    errors (HTTP 4xx) are escalated immediately, since retrying them is useless.
    """
    url = url if '://' in url else f"{context.server.rstrip('/')}/{url.lstrip('/')}"
    what = f"{method.upper()} {url}"
    timeout = timeout if timeout is not None else aiohttp.ClientTimeout(
        total=settings.networking.request_timeout,
        sock_connect=settings.networking.connect_timeout,
    )

    backoffs = settings.networking.error_backoffs if error_backoffs is None else error_backoffs
    for retry, attempt, backoff in _attempts(backoffs):
        if retry:
            logger.debug(f"Request attempt {attempt}: {what}")
        try:
            response = await context.session.request(
                method=method,
                url=url,
                json=payload,
                params=params,
                headers=headers,
                timeout=timeout,
                proxy=context.proxy_url,
                max_redirects=context.max_redirects,
            )
            context.add_response(response)
            await errors.check_response(response)
        except RETRYABLE_ERRORS as e:
            if backoff is None:
                logger.error(f"Request attempt {attempt} failed; escalating: {what} -> {e!r}")
                raise
            logger.error(f"Request attempt {attempt} failed; will retry: {what} -> {e!r}")
            await asyncio.sleep(backoff)  # cancellable, but not awakable.
        else:
            if retry:
                logger.debug(f"Request attempt {attempt} succeeded: {what}")
            return response

    raise RuntimeError("The retrying has ended without a result or an error.")


def _attempts(backoffs: Any) -> Iterator[Tuple[bool, str, Optional[float]]]:
    """
    Label the attempts and pair them with the backoffs to sleep after them.

    The last attempt has no backoff: its failure is escalated. The backoffs
    can be a single number, a sized collection, or an endless iterable
    (then, the attempts are numbered without the total).
    """
    if not isinstance(backoffs, collections.abc.Iterable):
        backoffs = [backoffs]
    total = f"/{len(backoffs) + 1}" if isinstance(backoffs, collections.abc.Sized) else ""
    for idx, backoff in enumerate(itertools.chain(backoffs, [None]), start=1):
        yield idx > 1, f"#{idx}{total}", backoff


async def _read_json(method: str, url: str, **kwargs: Any) -> Any:
    response = await request(method, url, **kwargs)
    async with response:
        return await response.json()


async def get_text(url: str, **kwargs: Any) -> str:
    response = await request('get', url, **kwargs)
    async with response:
        return await response.text()


async def get(url: str, **kwargs: Any) -> Any:
    return await _read_json('get', url, **kwargs)


async def post(url: str, **kwargs: Any) -> Any:
    return await _read_json('post', url, **kwargs)


async def put(url: str, **kwargs: Any) -> Any:
    return await _read_json('put', url, **kwargs)


async def patch(url: str, **kwargs: Any) -> Any:
    return await _read_json('patch', url, **kwargs)


async def delete(url: str, **kwargs: Any) -> Any:
    return await _read_json('delete', url, **kwargs)
