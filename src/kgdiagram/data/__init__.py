"""Diagram data model and the data provider contract."""

from kgdiagram.data.model import (
    ClassModel,
    ElementModel,
    FilterParams,
    IriProperty,
    LinkCount,
    LinkDirection,
    LinkModel,
    LinkType,
    LiteralProperty,
    LocalizedString,
    PropertyModel,
)
from kgdiagram.data.provider import DataProvider

__all__ = [
    "ClassModel",
    "DataProvider",
    "ElementModel",
    "FilterParams",
    "IriProperty",
    "LinkCount",
    "LinkDirection",
    "LinkModel",
    "LinkType",
    "LiteralProperty",
    "LocalizedString",
    "PropertyModel",
]
