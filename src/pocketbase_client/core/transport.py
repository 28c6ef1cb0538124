"""HTTP transport boundary.

The transport is the only place the client touches the network. It takes a
fully built request (method, absolute URL, headers, and either body bytes
or multipart form values with file parts) and returns the raw status,
headers and body, or raises a ``NetworkError``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .network_error_handler import NetworkErrorHandler

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class TransportRequest:
    """A single outgoing HTTP request."""

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    # multipart form; when files is set, body is ignored
    form: Optional[Dict[str, Any]] = None
    files: Optional[List[Tuple[str, Tuple[str, bytes, str]]]] = None

    @property
    def is_multipart(self) -> bool:
        return bool(self.files)


@dataclass(frozen=True)
class TransportResponse:
    """Raw HTTP response as seen by the transport."""

    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300


class Transport:
    """Interface for sending requests over the wire."""

    async def send(self, request: TransportRequest) -> TransportResponse:
        raise NotImplementedError

    async def close(self) -> None:
        pass


class HttpxTransport(Transport):
    """Transport backed by a lazily created ``httpx.AsyncClient``."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        verify: bool = True,
        max_connections: int = 10,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout
        self.verify = verify
        self.max_connections = max_connections
        self._client = client
        self._owns_client = client is None
        self._error_handler = NetworkErrorHandler()

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            timeouts = httpx.Timeout(
                connect=min(10.0, self.timeout),
                read=self.timeout,
                write=self.timeout,
                pool=5.0,
            )
            limits = httpx.Limits(
                max_connections=self.max_connections,
                max_keepalive_connections=max(1, self.max_connections // 2),
                keepalive_expiry=30.0,
            )
            self._client = httpx.AsyncClient(
                timeout=timeouts,
                limits=limits,
                follow_redirects=True,
                verify=self.verify,
            )
            self._owns_client = True
        return self._client

    async def send(self, request: TransportRequest) -> TransportResponse:
        """Send a request and return the raw response.

        Raises:
            NetworkError: On any transport-level failure
        """
        if request.is_multipart:
            payload: Dict[str, Any] = {"data": request.form or {}, "files": request.files}
        else:
            payload = {"content": request.body}

        try:
            response = await self.client.request(
                request.method,
                request.url,
                headers=request.headers,
                **payload,
            )
        except httpx.RequestError as e:
            raise self._error_handler.classify(e) from e

        return TransportResponse(
            status=response.status_code,
            headers=dict(response.headers),
            body=response.content,
        )

    async def close(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
