"""
SPARQL provider that splits long id lists.

GET requests carry the query in the URL, which endpoints and proxies cap
in length. When the ids of one request would exceed ``max_chunk_length``
characters they are sent in several concurrent requests and the answers
are merged.
"""

import asyncio
from typing import Optional, Sequence

import structlog

from kgdiagram.data.composite.merge import (
    CompositeResponse,
    merge_class_info,
    merge_element_info,
    merge_link_types_info,
    merge_links_info,
    merge_property_info,
)
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
from kgdiagram.data.provider import DataProvider
from kgdiagram.data.sparql.provider import SparqlDataProvider

logger = structlog.get_logger(__name__)

MAX_QUERY_LENGTH = 1000


def break_by_length(ids: Sequence[str], max_length: int) -> list[list[str]]:
    """Split ids into runs whose comma-joined length stays within ``max_length``."""
    chunks: list[list[str]] = []
    current: list[str] = []
    length = 0
    for item in ids:
        added = len(item) + (1 if current else 0)
        if current and length + added > max_length:
            chunks.append(current)
            current = []
            length = 0
            added = len(item)
        current.append(item)
        length += added
    if current:
        chunks.append(current)
    return chunks


class ChunkedSparqlDataProvider(DataProvider):
    """Wraps a :class:`SparqlDataProvider`; only id-list requests are split."""

    def __init__(
        self,
        provider: SparqlDataProvider,
        max_chunk_length: int = MAX_QUERY_LENGTH,
    ):
        self.provider = provider
        self.max_chunk_length = max_chunk_length

    def break_by_chunks(self, ids: Sequence[str], many_to_many: bool = False) -> list[list[str]]:
        """
        Split ids for separate requests.

        With ``many_to_many`` the ids are cut into half-length chunks and
        every pair of chunks (including a chunk with itself) becomes one
        request, so relations across chunks are found too.
        """
        should_split = (
            self.provider.options.query_method == "GET"
            and len(",".join(ids)) > self.max_chunk_length
        )
        if not should_split:
            return [list(ids)]
        if not many_to_many:
            return break_by_length(ids, self.max_chunk_length)
        halves = break_by_length(ids, self.max_chunk_length // 2)
        return [
            halves[i] + halves[j] if i != j else halves[i]
            for i in range(len(halves))
            for j in range(i, len(halves))
        ]

    async def _gather(self, chunks: list[list[str]], request) -> list[CompositeResponse]:
        logger.debug("Splitting request", chunks=len(chunks))
        results = await asyncio.gather(*(request(chunk) for chunk in chunks))
        return [
            CompositeResponse(data_source_name=self.provider.options.endpoint_url, response=result)
            for result in results
        ]

    async def class_tree(self) -> list[ClassModel]:
        return await self.provider.class_tree()

    async def class_info(self, class_ids: Sequence[ElementTypeIri]) -> list[ClassModel]:
        chunks = self.break_by_chunks(class_ids)
        if len(chunks) == 1:
            return await self.provider.class_info(class_ids)
        return merge_class_info(await self._gather(chunks, self.provider.class_info))

    async def property_info(
        self, property_ids: Sequence[PropertyTypeIri]
    ) -> dict[PropertyTypeIri, PropertyModel]:
        chunks = self.break_by_chunks(property_ids)
        if len(chunks) == 1:
            return await self.provider.property_info(property_ids)
        return merge_property_info(await self._gather(chunks, self.provider.property_info))

    async def link_types(self) -> list[LinkType]:
        return await self.provider.link_types()

    async def link_types_info(self, link_type_ids: Sequence[LinkTypeIri]) -> list[LinkType]:
        chunks = self.break_by_chunks(link_type_ids)
        if len(chunks) == 1:
            return await self.provider.link_types_info(link_type_ids)
        return merge_link_types_info(await self._gather(chunks, self.provider.link_types_info))

    async def element_info(
        self, element_ids: Sequence[ElementIri]
    ) -> dict[ElementIri, ElementModel]:
        chunks = self.break_by_chunks(element_ids)
        if len(chunks) == 1:
            return await self.provider.element_info(element_ids)
        responses = await self._gather(chunks, self.provider.element_info)
        return merge_element_info(responses, tag_provenance=False)

    async def links_info(
        self,
        element_ids: Sequence[ElementIri],
        link_type_ids: Sequence[LinkTypeIri],
    ) -> list[LinkModel]:
        chunks = self.break_by_chunks(element_ids, many_to_many=True)
        if len(chunks) == 1:
            return await self.provider.links_info(element_ids, link_type_ids)
        responses = await self._gather(
            chunks, lambda chunk: self.provider.links_info(chunk, link_type_ids)
        )
        return merge_links_info(responses)

    async def link_types_of(self, element_id: ElementIri) -> list[LinkCount]:
        return await self.provider.link_types_of(element_id)

    async def link_elements(
        self,
        element_id: ElementIri,
        link_id: LinkTypeIri,
        limit: Optional[int],
        offset: int,
        direction: Optional[LinkDirection] = None,
    ) -> dict[ElementIri, ElementModel]:
        return await self.provider.link_elements(element_id, link_id, limit, offset, direction)

    async def filter(self, params: FilterParams) -> dict[ElementIri, ElementModel]:
        return await self.provider.filter(params)

    async def close(self) -> None:
        await self.provider.close()
