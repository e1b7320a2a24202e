"""
Federated data provider.

Sends every request to several named providers and merges the answers,
either by asking all of them at once or by asking them one after another
and only for what is still missing.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

import structlog

from kgdiagram.core.exceptions import ConfigurationError
from kgdiagram.data.composite import merge
from kgdiagram.data.composite.merge import CompositeResponse
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

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# returned by a narrowing function when no further source needs to be asked
STOP = object()

Request = Callable[[DataProvider, Any], Awaitable[T]]
Narrow = Callable[[Optional[T]], Any]
Merge = Callable[[Sequence[CompositeResponse[T]]], T]


class MergeMode(str, Enum):
    FETCH_ALL = "fetch-all"
    SEQUENTIAL = "sequential"


@dataclass(frozen=True)
class DataProviderDefinition:
    """A provider with the name used for provenance and error reporting."""

    name: str
    provider: DataProvider
    use_in_stats: bool = True


class CompositeDataProvider(DataProvider):
    """
    Data provider merging several sources.

    In ``FETCH_ALL`` mode a failing source yields an empty response instead
    of failing the whole request. In ``SEQUENTIAL`` mode a failing source is
    skipped and the next one is asked with the same narrowed request.
    """

    def __init__(
        self,
        providers: Sequence[DataProviderDefinition],
        merge_mode: MergeMode = MergeMode.FETCH_ALL,
    ):
        if not providers:
            raise ConfigurationError("CompositeDataProvider needs at least one provider")
        names = [definition.name for definition in providers]
        if len(set(names)) != len(names):
            raise ConfigurationError(
                "Data provider names must be unique",
                details={"names": names},
            )
        self.providers = list(providers)
        self.merge_mode = merge_mode

        logger.info(
            "CompositeDataProvider initialized",
            providers=names,
            merge_mode=merge_mode.value,
        )

    async def class_tree(self) -> list[ClassModel]:
        return await self._request(
            lambda provider, _: provider.class_tree(),
            merge.merge_class_tree,
            lambda merged: None,
        )

    async def class_info(self, class_ids: Sequence[ElementTypeIri]) -> list[ClassModel]:
        def narrow(merged: Optional[list[ClassModel]]):
            known = {model.id for model in merged or []}
            return [i for i in class_ids if i not in known] or STOP

        return await self._request(
            lambda provider, ids: provider.class_info(ids),
            merge.merge_class_info,
            narrow,
        )

    async def property_info(
        self, property_ids: Sequence[PropertyTypeIri]
    ) -> dict[PropertyTypeIri, PropertyModel]:
        def narrow(merged: Optional[dict[PropertyTypeIri, PropertyModel]]):
            return [i for i in property_ids if i not in (merged or {})] or STOP

        return await self._request(
            lambda provider, ids: provider.property_info(ids),
            merge.merge_property_info,
            narrow,
        )

    async def link_types(self) -> list[LinkType]:
        return await self._request(
            lambda provider, _: provider.link_types(),
            merge.merge_link_types,
            lambda merged: None,
        )

    async def link_types_info(self, link_type_ids: Sequence[LinkTypeIri]) -> list[LinkType]:
        def narrow(merged: Optional[list[LinkType]]):
            known = {model.id for model in merged or []}
            return [i for i in link_type_ids if i not in known] or STOP

        return await self._request(
            lambda provider, ids: provider.link_types_info(ids),
            merge.merge_link_types_info,
            narrow,
        )

    async def element_info(
        self, element_ids: Sequence[ElementIri]
    ) -> dict[ElementIri, ElementModel]:
        def narrow(merged: Optional[dict[ElementIri, ElementModel]]):
            return [i for i in element_ids if i not in (merged or {})] or STOP

        return await self._request(
            lambda provider, ids: provider.element_info(ids),
            merge.merge_element_info,
            narrow,
        )

    async def links_info(
        self,
        element_ids: Sequence[ElementIri],
        link_type_ids: Sequence[LinkTypeIri],
    ) -> list[LinkModel]:
        def narrow(merged: Optional[list[LinkModel]]):
            sources = {link.source_id for link in merged or []}
            return [i for i in element_ids if i not in sources] or STOP

        return await self._request(
            lambda provider, ids: provider.links_info(ids, link_type_ids),
            merge.merge_links_info,
            narrow,
        )

    async def link_types_of(self, element_id: ElementIri) -> list[LinkCount]:
        return await self._request(
            lambda provider, _: provider.link_types_of(element_id),
            merge.merge_link_types_of,
            _while_empty,
        )

    async def link_elements(
        self,
        element_id: ElementIri,
        link_id: LinkTypeIri,
        limit: Optional[int],
        offset: int,
        direction: Optional[LinkDirection] = None,
    ) -> dict[ElementIri, ElementModel]:
        return await self._request(
            lambda provider, _: provider.link_elements(
                element_id, link_id, limit, offset, direction
            ),
            merge.merge_link_elements,
            _while_empty,
        )

    async def filter(self, params: FilterParams) -> dict[ElementIri, ElementModel]:
        params.validate_references()
        return await self._request(
            lambda provider, _: provider.filter(params),
            merge.merge_filter,
            _while_empty,
        )

    async def close(self) -> None:
        await asyncio.gather(*(d.provider.close() for d in self.providers))

    async def fetch_all(self, request: Request) -> list[CompositeResponse]:
        """
        Run ``request`` against all sources concurrently.

        Returns:
            One response per source in provider order; failed sources carry
            ``response=None`` and the exception in ``error``
        """

        async def run(definition: DataProviderDefinition) -> CompositeResponse:
            try:
                response = await request(definition.provider, None)
            except Exception as e:
                logger.warning(
                    "Data provider request failed",
                    provider=definition.name,
                    error=str(e),
                )
                return CompositeResponse(
                    data_source_name=definition.name,
                    response=None,
                    use_in_stats=definition.use_in_stats,
                    error=e,
                )
            return CompositeResponse(
                data_source_name=definition.name,
                response=response,
                use_in_stats=definition.use_in_stats,
            )

        return list(await asyncio.gather(*(run(d) for d in self.providers)))

    async def fetch_sequentially(self, request: Request, merge_results: Merge, narrow: Narrow):
        """
        Ask the sources one at a time, in order.

        ``narrow`` receives the merged result so far (``None`` before the
        first answer) and returns the argument for the next request, or
        ``STOP`` when nothing is left to ask.
        """
        responses: list[CompositeResponse] = []
        merged = None
        for definition in self.providers:
            argument = narrow(merged)
            if argument is STOP:
                break
            try:
                response = await request(definition.provider, argument)
            except Exception as e:
                logger.warning(
                    "Data provider request failed, skipping",
                    provider=definition.name,
                    error=str(e),
                )
                continue
            responses.append(CompositeResponse(
                data_source_name=definition.name,
                response=response,
                use_in_stats=definition.use_in_stats,
            ))
            merged = merge_results(responses)
        return merged if merged is not None else merge_results([])

    async def _request(self, request: Request, merge_results: Merge, narrow: Narrow):
        if self.merge_mode == MergeMode.SEQUENTIAL:
            return await self.fetch_sequentially(request, merge_results, narrow)
        # every source gets the full request
        initial = narrow(None)
        if initial is STOP:
            return merge_results([])
        responses = await self.fetch_all(lambda provider, _: request(provider, initial))
        return merge_results(responses)


def _while_empty(merged) -> Any:
    return STOP if merged else None
