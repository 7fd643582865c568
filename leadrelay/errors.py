"""Error taxonomy for relay endpoints.

Each error carries the HTTP status it maps to; the exception handlers in
``leadrelay.middleware.error_handler`` render them as structured JSON.
"""
from typing import Any


class RelayError(Exception):
    """Base class for errors surfaced to HTTP callers."""

    status_code: int = 500

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ConfigurationError(RelayError):
    """A required secret or identifier is not configured."""

    status_code = 500


class InvalidRequestError(RelayError):
    """Missing required fields or malformed input."""

    status_code = 400


class UpstreamError(RelayError):
    """A third-party endpoint answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int, details: Any = None):
        super().__init__(message, details)
        self.status_code = status_code


class DeliveryError(RelayError):
    """Delivery failed after every retry was exhausted."""

    status_code = 500
