"""
HTTP Transport Implementation for libSQL SDK.

Provides the stateless Hrana-over-HTTP transport: every call is one
``POST /v2/pipeline`` whose stream is closed in the same request.
"""

import logging
from typing import Self

import httpx

from ..config import DEFAULT_TIMEOUT, USER_AGENT, ConnectionContext
from ..exceptions import ConnectivityError
from ..protocol.hrana import PIPELINE_PATH, PipelineRequest, PipelineResponse
from ..translator import HTTPFailure, translate_http_failure, translate_transport_exception
from .base import BaseTransport

logger = logging.getLogger(__name__)


class HTTPTransport(BaseTransport):
    """
    HTTP-based transport to a remote libSQL server.

    This transport is stateless - each request is independent and carries
    its own credentials, so one instance may serve concurrent operations.
    """

    def __init__(
        self,
        url: str | ConnectionContext,
        auth_token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize HTTP transport.

        Args:
            url: Server URL (``libsql://``, ``https://`` or ``http://``) or a prepared context
            auth_token: Bearer token; omitted from requests when None or blank
            timeout: Request timeout in seconds
            transport: Custom httpx transport (e.g. ``httpx.MockTransport`` in tests)

        Raises:
            ConfigurationError: If the URL is malformed or uses an unsupported scheme
        """
        if isinstance(url, ConnectionContext):
            context = url
        else:
            context = ConnectionContext.create(url, auth_token, timeout)
        super().__init__(context)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def headers(self) -> dict[str, str]:
        """Build request headers."""
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
            **self.context.headers,
        }

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._closed:
            raise ConnectivityError("Transport is closed")
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.url,
                timeout=self.timeout,
                headers=self.headers,
                transport=self._transport,
            )
            self._connected = True
        return self._client

    async def connect(self) -> Self:
        """Create the HTTP client. Returns self for fluent API."""
        self._ensure_client()
        return self

    async def close(self) -> None:
        """Close HTTP client. Safe to call more than once."""
        if self._client:
            await self._client.aclose()
            self._client = None
        self._connected = False
        self._closed = True

    async def send(self, request: PipelineRequest) -> PipelineResponse:
        """
        Send a pipeline request via HTTP POST to ``/v2/pipeline``.

        Args:
            request: The pipeline request to send

        Returns:
            The validated pipeline response

        Raises:
            ConnectivityError: If the transport is closed, the server is unreachable or answers 5xx
            AuthenticationError: If the server rejects the credentials
            ProtocolViolationError: If the response is not a well-formed pipeline response
        """
        client = self._ensure_client()
        body = request.to_json()
        expected = len(request.requests)
        logger.debug(f"POST {self.url}{PIPELINE_PATH} with {expected} request(s)")

        try:
            response = await client.post(PIPELINE_PATH, content=body)
        except httpx.RequestError as e:
            raise translate_transport_exception(e, request_body=body) from e

        logger.debug(f"Response {response.status_code} from {self.url}{PIPELINE_PATH}")
        if not response.is_success:
            raise translate_http_failure(
                HTTPFailure(
                    status_code=response.status_code,
                    response_body=response.text,
                    request_body=body,
                    reason=response.reason_phrase,
                )
            )

        return PipelineResponse.from_json(response.content, expected)
