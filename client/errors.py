"""Error types raised by the Eventbrite API client."""
from typing import Any, Optional


class ApiClientError(Exception):
    """Base class for all Eventbrite client failures."""


class UnconfiguredError(ApiClientError):
    """No bearer token is configured; no request was sent."""


class TransportError(ApiClientError):
    """The HTTP request itself failed (connection error, timeout, bad status)."""


class InvalidResponseError(ApiClientError):
    """The response body could not be parsed as JSON."""

    def __init__(self, url: str, body: str):
        super().__init__(f"Response from {url} is not valid JSON")
        self.url = url
        self.body = body


class ApiError(ApiClientError):
    """The API answered with a non-empty ``errors`` field."""

    def __init__(self, url: str, payload: Any, errors: Optional[Any] = None):
        super().__init__(f"Eventbrite API returned errors for {url}: {errors}")
        self.url = url
        self.payload = payload
        self.errors = errors
