"""HTTP transport with connection pooling.

The executor owns retry and backoff, so the pooled session is built with
urllib3-level retries disabled.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import requests
from requests.adapters import HTTPAdapter

from rulewire.errors import TransportError, TransportTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class HTTPClientConfig:
    """Configuration for the pooled HTTP session.

    Attributes:
        pool_connections: Number of connection pools to cache
        pool_maxsize: Maximum connections per pool
        headers: Headers sent with every request
    """

    pool_connections: int = 10
    pool_maxsize: int = 20
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class TransportResponse:
    """Status, body text and headers of a completed HTTP call."""

    status_code: int
    body: str = ""
    headers: dict[str, str] = field(default_factory=dict)


class Transport(Protocol):
    """Anything that can send one HTTP request with a per-call timeout."""

    def send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        json_body: Any,
        timeout_seconds: float,
    ) -> TransportResponse: ...


def create_session(config: HTTPClientConfig | None = None) -> requests.Session:
    """Create a requests Session with connection pooling and no automatic retries."""
    cfg = config or HTTPClientConfig()
    session = requests.Session()

    adapter = HTTPAdapter(
        pool_connections=cfg.pool_connections,
        pool_maxsize=cfg.pool_maxsize,
        max_retries=0,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    if cfg.headers:
        session.headers.update(cfg.headers)

    logger.debug(
        f"Created HTTP session (pool_connections={cfg.pool_connections}, "
        f"pool_maxsize={cfg.pool_maxsize})"
    )
    return session


class RequestsTransport:
    """Transport backed by a pooled ``requests.Session``."""

    def __init__(
        self,
        session: requests.Session | None = None,
        config: HTTPClientConfig | None = None,
    ):
        self._session = session or create_session(config)

    def send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        json_body: Any,
        timeout_seconds: float,
    ) -> TransportResponse:
        try:
            response = self._session.request(
                method,
                url,
                headers=headers,
                json=json_body,
                timeout=timeout_seconds,
            )
        except requests.Timeout as e:
            raise TransportTimeoutError(f"Request timed out after {timeout_seconds}s: {e}") from e
        except requests.RequestException as e:
            raise TransportError(f"Request failed: {e}") from e

        return TransportResponse(
            status_code=response.status_code,
            body=response.text,
            headers=dict(response.headers),
        )

    def close(self) -> None:
        """Release pooled connections."""
        self._session.close()
