"""
libSQL SDK Connection Module.

Provides the HTTP transport implementation.
"""

from .base import BaseTransport
from .http import HTTPTransport

__all__ = [
    "BaseTransport",
    "HTTPTransport",
]
