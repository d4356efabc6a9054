"""
Base Transport Interface for libSQL SDK.

Defines the abstract interface that all transports must implement.
"""

from abc import ABC, abstractmethod
from typing import Any, Self

from ..config import ConnectionContext
from ..protocol.hrana import PipelineRequest, PipelineResponse


class BaseTransport(ABC):
    """
    Abstract base class for libSQL transports.

    A transport owns its :class:`ConnectionContext` and turns one pipeline
    request into one parsed pipeline response.
    """

    def __init__(self, context: ConnectionContext):
        """
        Initialize transport parameters.

        Args:
            context: Normalized endpoint, auth token and timeout
        """
        self.context = context
        self._connected = False
        self._closed = False

    @property
    def url(self) -> str:
        """Normalized endpoint URL."""
        return self.context.base_url

    @property
    def timeout(self) -> float:
        return self.context.timeout

    @property
    def is_connected(self) -> bool:
        """Check if the underlying client is open."""
        return self._connected

    @property
    def is_closed(self) -> bool:
        """Check if the transport was closed; a closed transport cannot be reused."""
        return self._closed

    # Abstract methods that must be implemented

    @abstractmethod
    async def connect(self) -> Self:
        """Open the underlying client. Returns self for fluent API."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying client."""
        ...

    @abstractmethod
    async def send(self, request: PipelineRequest) -> PipelineResponse:
        """
        Send a pipeline request and receive the parsed response.

        Args:
            request: The pipeline request to send

        Returns:
            The validated pipeline response

        Raises:
            ConnectivityError: On network failures, 5xx responses or after close
            AuthenticationError: On 401/403 responses
            ProtocolViolationError: If the response breaks the protocol contract
        """
        ...

    # Context manager support

    async def __aenter__(self) -> Self:
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.url!r})"
