"""Federated provider over several named data providers."""

from kgdiagram.data.composite.merge import CompositeResponse
from kgdiagram.data.composite.provider import (
    CompositeDataProvider,
    DataProviderDefinition,
    MergeMode,
)

__all__ = [
    "CompositeDataProvider",
    "CompositeResponse",
    "DataProviderDefinition",
    "MergeMode",
]
