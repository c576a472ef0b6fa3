"""Shared utilities used across services."""

from .http_client import AsyncHTTPClient, HTTPClientError

__all__ = [
    "AsyncHTTPClient",
    "HTTPClientError",
]
