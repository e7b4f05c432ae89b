"""
The API contexts: the HTTP sessions built from the connection infos.

One context is created per set of credentials and is then passed explicitly
to all API calls and all reflectors. The one-shot requests and the
watch-streams share its session, and so the TLS, proxy, and authorization.
"""
import base64
import contextlib
import ssl
import tempfile
from types import TracebackType
from typing import Dict, List, Optional, Type

import aiohttp

from kubemirror._cogs.helpers import versions
from kubemirror._cogs.structs import credentials


class APIContext:
    session: aiohttp.ClientSession
    server: str
    default_namespace: Optional[str]
    proxy_url: Optional[str]
    max_redirects: int

    # The streaming responses to be closed with the session.
    responses: List[aiohttp.ClientResponse]

    def __init__(self, info: credentials.ConnectionInfo) -> None:
        super().__init__()
        if not isinstance(info, credentials.ConnectionInfo):
            raise TypeError(f"Unsupported credentials type: {info!r}")

        self.server = info.server
        self.default_namespace = info.default_namespace
        self.proxy_url = info.proxy_url
        self.max_redirects = info.max_redirects
        self.responses = []
        self.session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=0, ssl=make_ssl_context(info)),
            headers=make_headers(info),
            auth=aiohttp.BasicAuth(info.username, info.password) if info.username else None,
        )

    async def __aenter__(self) -> "APIContext":
        return self

    async def __aexit__(
            self,
            exc_type: Optional[Type[BaseException]],
            exc_val: Optional[BaseException],
            exc_tb: Optional[TracebackType],
    ) -> None:
        await self.close()

    def add_response(self, response: aiohttp.ClientResponse) -> None:
        self.responses[:] = [other for other in self.responses if not other.closed]
        if not response.closed:
            self.responses.append(response)

    async def close(self) -> None:
        # The open watch-streams would otherwise keep the connector busy.
        while self.responses:
            self.responses.pop().close()
        await self.session.close()


def make_ssl_context(info: credentials.ConnectionInfo) -> ssl.SSLContext:
    """
    Build the TLS setup: the CA to verify the server, the client certificate.

    The certificate & key given as data are only loadable from files,
    so they are written to the temporary files for the time of loading.
    No files are created when there is no such data (e.g. on read-only disks).
    """
    context = ssl.create_default_context(
        purpose=ssl.Purpose.SERVER_AUTH,
        cafile=info.ca_path,
        cadata=decode_to_pem(info.ca_data) if info.ca_data is not None else None,
    )
    with contextlib.ExitStack() as stack:
        cert_path = info.certificate_path or _dump(stack, info.certificate_data)
        pkey_path = info.private_key_path or _dump(stack, info.private_key_data)
        if cert_path and pkey_path:
            context.load_cert_chain(certfile=cert_path, keyfile=pkey_path)
    if info.insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def _dump(stack: contextlib.ExitStack, data: Optional[bytes]) -> Optional[str]:
    if not data:
        return None
    file = stack.enter_context(tempfile.NamedTemporaryFile(buffering=0))
    file.write(decode_to_pem(data).encode('ascii'))
    return file.name


def make_headers(info: credentials.ConnectionInfo) -> Dict[str, str]:
    """
    Build the session's headers: the extra ones, the authorization, the agent.

    The token file is read once: the rotated tokens are not re-read.
    A scheme without a token is sent alone (e.g. for the custom schemes).
    """
    token = info.token
    if info.token_path:
        try:
            with open(info.token_path, encoding='utf-8') as f:
                token = f.read().strip()
        except OSError as e:
            raise credentials.LoginError(f"Token file cannot be read: {e}") from e

    headers: Dict[str, str] = dict(info.headers or {})
    authorization = ' '.join(filter(None, [info.scheme or ('Bearer' if token else None), token]))
    if authorization:
        headers['Authorization'] = authorization
    headers.setdefault('User-Agent', f'kubemirror/{versions.version or "unknown"}')
    return headers


def decode_to_pem(data: str | bytes) -> str:
    """ Accept the PEM data as is, or base64-encoded as in the kubeconfigs. """
    if isinstance(data, bytes):
        data = data.decode('ascii')
    if data.startswith('-----BEGIN '):
        return data
    return base64.b64decode(data).decode('ascii')
