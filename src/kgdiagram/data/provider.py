"""
Data provider contract shared by single-source and composite providers.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from kgdiagram.data.model import (
    ClassModel,
    ElementIri,
    ElementModel,
    ElementTypeIri,
    FilterParams,
    LinkCount,
    LinkDirection,
    LinkModel,
    LinkType,
    LinkTypeIri,
    PropertyModel,
    PropertyTypeIri,
)


class DataProvider(ABC):
    """
    Asynchronous source of diagram data.

    Missing entities are simply absent from the results; failures of the
    underlying source propagate as exceptions.
    """

    @abstractmethod
    async def class_tree(self) -> list[ClassModel]:
        """Return the class forest."""

    @abstractmethod
    async def class_info(self, class_ids: Sequence[ElementTypeIri]) -> list[ClassModel]:
        """Return labels and counts for the given classes."""

    @abstractmethod
    async def property_info(
        self, property_ids: Sequence[PropertyTypeIri]
    ) -> dict[PropertyTypeIri, PropertyModel]:
        """Return labels for the given property types."""

    @abstractmethod
    async def link_types(self) -> list[LinkType]:
        """Return all link types known to the source."""

    @abstractmethod
    async def link_types_info(self, link_type_ids: Sequence[LinkTypeIri]) -> list[LinkType]:
        """Return labels and counts for the given link types."""

    @abstractmethod
    async def element_info(
        self, element_ids: Sequence[ElementIri]
    ) -> dict[ElementIri, ElementModel]:
        """Return types, labels and properties of the given elements."""

    @abstractmethod
    async def links_info(
        self,
        element_ids: Sequence[ElementIri],
        link_type_ids: Sequence[LinkTypeIri],
    ) -> list[LinkModel]:
        """Return all links between the given elements."""

    @abstractmethod
    async def link_types_of(self, element_id: ElementIri) -> list[LinkCount]:
        """Return incoming and outgoing link statistics of one element."""

    @abstractmethod
    async def link_elements(
        self,
        element_id: ElementIri,
        link_id: LinkTypeIri,
        limit: Optional[int],
        offset: int,
        direction: Optional[LinkDirection] = None,
    ) -> dict[ElementIri, ElementModel]:
        """Return elements connected to ``element_id`` through ``link_id``."""

    @abstractmethod
    async def filter(self, params: FilterParams) -> dict[ElementIri, ElementModel]:
        """Search elements by type, text or connection to a reference element."""

    async def close(self) -> None:
        """Release network resources held by the provider."""
