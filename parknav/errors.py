"""
Custom exceptions and error handling utilities for the parknav MCP Server.

This module provides:
- Custom exception classes for each failure kind (validation, fetch,
  persistence, configuration)
- Standardized error response formatting
- Error code constants for consistent error handling

Usage:
    from parknav.errors import FetchError, handle_error

    try:
        payload = await fetch_overpass(lat, lon, radius)
    except Exception as e:
        return handle_error(e, {"operation": "fetch_overpass"})
"""

from enum import Enum
from typing import Any

import httpx
import psycopg2


class ErrorCode(str, Enum):
    """Standardized error codes for MCP responses."""

    # Input errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # Upstream errors
    FETCH_ERROR = "FETCH_ERROR"
    HTTP_ERROR = "HTTP_ERROR"
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"

    # Storage errors
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"

    # Generic errors
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ParknavError(Exception):
    """Base exception for parknav errors.

    Attributes:
        message: Human-readable error message
        code: ErrorCode for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a standardized error response dict."""
        result = {
            "error": self.message,
            "code": self.code.value,
        }
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(ParknavError):
    """Raised when tool input is rejected before any network or database call."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(
            message=message,
            code=ErrorCode.VALIDATION_ERROR,
            details=details,
        )
        self.field = field


class ConfigurationError(ParknavError):
    """Raised when a required setting (e.g. an API key) is missing."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.CONFIGURATION_ERROR,
            details=details,
        )


class FetchError(ParknavError):
    """Raised when an outbound HTTP request fails.

    Covers transport failures, timeouts, non-2xx responses and bodies
    that cannot be decoded.

    Attributes:
        status_code: HTTP status code (if a response was received)
        cause: The underlying exception (if any)
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        cause: Exception | None = None,
        response_text: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if status_code:
            details["status_code"] = status_code
        if response_text:
            # Truncate long response text
            details["response"] = response_text[:500]

        if code is None:
            if isinstance(cause, httpx.TimeoutException):
                code = ErrorCode.TIMEOUT
            elif status_code:
                code = ErrorCode.HTTP_ERROR
            elif isinstance(cause, httpx.TransportError):
                code = ErrorCode.NETWORK_ERROR
            else:
                code = ErrorCode.FETCH_ERROR

        super().__init__(message=message, code=code, details=details)
        self.status_code = status_code
        self.cause = cause


class PersistenceError(ParknavError):
    """Raised when a database statement or transaction fails.

    The transaction that raised it has already been rolled back.
    """

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            code=ErrorCode.PERSISTENCE_ERROR,
            details=details,
        )
        self.cause = cause


def handle_error(
    e: Exception,
    context: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Convert an exception to a standardized error response dict.

    Tools call this at the protocol boundary so that no exception ever
    escapes a tool call.

    Args:
        e: The exception to handle
        context: Additional context to include in the error response
            (e.g., {"neighborhood": "Mission", "operation": "save"})

    Returns:
        A dictionary with standardized error information:
        {
            "error": "Human-readable message",
            "code": "ERROR_CODE",
            "details": {...}  # Optional
        }
    """
    context = context or {}

    # Handle our custom exceptions
    if isinstance(e, ParknavError):
        result = e.to_dict()
        if context:
            result.setdefault("details", {}).update(context)
        return result

    # Handle httpx HTTP status errors
    if isinstance(e, httpx.HTTPStatusError):
        result = {
            "error": f"HTTP error: {e.response.status_code}",
            "code": ErrorCode.HTTP_ERROR.value,
            "status_code": e.response.status_code,
        }
    elif isinstance(e, httpx.TimeoutException):
        result = {
            "error": "Request timed out",
            "code": ErrorCode.TIMEOUT.value,
        }
    elif isinstance(e, httpx.HTTPError):
        result = {
            "error": f"Network error: {e}",
            "code": ErrorCode.NETWORK_ERROR.value,
        }
    elif isinstance(e, psycopg2.Error):
        result = {
            "error": f"Database error: {e}",
            "code": ErrorCode.PERSISTENCE_ERROR.value,
        }
    else:
        result = {
            "error": f"Unexpected error: {e}",
            "code": ErrorCode.UNKNOWN_ERROR.value,
            "exception_type": type(e).__name__,
        }

    if context:
        result.update(context)
    return result
