"""
Extended-timeout HTTP transport shared by provider calls
"""

import httpx
from pydantic import BaseModel

from motionswap.config.constants import (
    TRANSPORT_CONNECT_TIMEOUT_S,
    TRANSPORT_MAX_CONNECTIONS,
    TRANSPORT_POOL_TIMEOUT_S,
    TRANSPORT_READ_TIMEOUT_S,
    TRANSPORT_WRITE_TIMEOUT_S,
)


class TransportConfig(BaseModel):
    """
    Timeouts and pooling for the provider HTTP client

    Read/write timeouts must exceed the worst-case provider latency
    (~14 minutes); a default 5 minute client timeout fails every slow run.
    """

    connect_timeout_s: float = TRANSPORT_CONNECT_TIMEOUT_S
    read_timeout_s: float = TRANSPORT_READ_TIMEOUT_S
    write_timeout_s: float = TRANSPORT_WRITE_TIMEOUT_S
    pool_timeout_s: float = TRANSPORT_POOL_TIMEOUT_S
    max_connections: int = TRANSPORT_MAX_CONNECTIONS

    def to_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self.connect_timeout_s,
            read=self.read_timeout_s,
            write=self.write_timeout_s,
            pool=self.pool_timeout_s,
        )

    def to_limits(self) -> httpx.Limits:
        return httpx.Limits(
            max_connections=self.max_connections,
            max_keepalive_connections=self.max_connections,
        )


def build_http_client(
    config: TransportConfig,
    base_url: str = "",
    headers: dict = None,
    transport: httpx.AsyncBaseTransport = None,
) -> httpx.AsyncClient:
    """
    Build the process-wide provider client

    The client holds no per-generation state and is safe to share between
    concurrently running generations.

    Args:
        config: Transport configuration
        base_url: Provider base URL
        headers: Default headers (auth)
        transport: Optional transport override (tests use httpx.MockTransport)

    Returns:
        httpx.AsyncClient
    """
    return httpx.AsyncClient(
        base_url=base_url,
        headers=headers or {},
        timeout=config.to_timeout(),
        limits=config.to_limits(),
        transport=transport,
        follow_redirects=True,
    )
