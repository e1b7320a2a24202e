"""Core exceptions and logging setup."""

from kgdiagram.core.exceptions import (
    ConfigurationError,
    KgDiagramError,
    QueryExecutionError,
    ValidationError,
)
from kgdiagram.core.logging import configure_logging

__all__ = [
    "KgDiagramError",
    "ConfigurationError",
    "QueryExecutionError",
    "ValidationError",
    "configure_logging",
]
