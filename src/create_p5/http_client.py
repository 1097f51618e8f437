"""Shared httpx client construction.

All network access goes through a blocking ``httpx.Client`` built here so that
TLS verification (system trust store via truststore), timeouts and headers are
the same everywhere. Functions that talk to the network accept an optional
client; tests pass one backed by ``httpx.MockTransport``.
"""

import ssl
from contextlib import contextmanager
from typing import Iterator, Optional

import httpx
import truststore

ssl_context = truststore.SSLContext(ssl.PROTOCOL_TLS_CLIENT)

USER_AGENT = "create-p5"
DEFAULT_TIMEOUT = 30.0


def build_client(*, skip_tls: bool = False, timeout: float = DEFAULT_TIMEOUT) -> httpx.Client:
    """Return an ``httpx.Client`` with create-p5 defaults.

    Redirects are not followed automatically; callers that need bounded
    redirect handling do it themselves.
    """
    verify = False if skip_tls else ssl_context
    return httpx.Client(
        verify=verify,
        timeout=httpx.Timeout(timeout),
        headers={"User-Agent": USER_AGENT},
        follow_redirects=False,
    )


@contextmanager
def client_scope(client: Optional[httpx.Client] = None) -> Iterator[httpx.Client]:
    """Yield ``client`` as-is, or a fresh client that is closed on exit."""
    if client is not None:
        yield client
        return
    with build_client() as owned:
        yield owned
