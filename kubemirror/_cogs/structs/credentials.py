"""
The explicit credentials of one API server.

The credentials are not discovered or refreshed here: there is no parsing
of kubeconfigs, no exec-plugins, no cloud-specific token providers.
Only what a generic HTTP client needs: the server's URL, the TLS setup,
the authorization, the proxy, and the extra headers.
"""
import dataclasses
from typing import Mapping, Optional


class LoginError(Exception):
    """ The credentials are inconsistent, incomplete, or unreadable. """


@dataclasses.dataclass(frozen=True)
class ConnectionInfo:
    server: str  # e.g. "https://localhost:6443"

    # TLS: the server's verification and the client's certificate.
    ca_path: Optional[str] = None
    ca_data: Optional[bytes] = None
    insecure: Optional[bool] = None
    certificate_path: Optional[str] = None
    certificate_data: Optional[bytes] = None
    private_key_path: Optional[str] = None
    private_key_data: Optional[bytes] = None

    # HTTP authorization: either basic, or a token, or a token file; maybe with a custom scheme.
    username: Optional[str] = None
    password: Optional[str] = None
    token: Optional[str] = None
    token_path: Optional[str] = None
    scheme: Optional[str] = None

    proxy_url: Optional[str] = None
    headers: Optional[Mapping[str, str]] = None
    max_redirects: int = 10
    default_namespace: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.server:
            raise LoginError("The API server URL is required.")
        if sum(1 for method in [self.username, self.token, self.token_path] if method) > 1:
            raise LoginError("Specify only one of username/password, token, or token file.")
        if bool(self.username) != bool(self.password):
            raise LoginError("Basic auth requires both the username & the password.")
