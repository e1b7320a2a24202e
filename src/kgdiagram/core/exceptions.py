"""
Custom exceptions for kgdiagram.
Provides a clear hierarchy of errors for the data acquisition layer.
"""

from typing import Any, Optional

import httpx


class KgDiagramError(Exception):
    """Base exception for all kgdiagram errors."""

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message} (caused by: {self.cause})"
        return self.message


class ValidationError(KgDiagramError):
    """Raised when a request is malformed, before any query is issued."""

    pass


class QueryExecutionError(KgDiagramError):
    """Raised when a SPARQL endpoint cannot answer a query."""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        response: Optional[httpx.Response] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details.update({
            "endpoint": endpoint,
            "status_code": status_code,
        })
        super().__init__(message, details=details, **kwargs)
        self.endpoint = endpoint
        self.status_code = status_code
        self.response = response


class ConfigurationError(KgDiagramError):
    """Raised when configuration is invalid or missing."""

    pass
