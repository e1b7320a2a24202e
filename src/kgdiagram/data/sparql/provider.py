"""
SPARQL data provider.

Builds queries from :class:`SparqlDataProviderSettings` templates, runs
them through a :class:`SparqlClient` and maps the answers with the
response handler. Anonymous nodes, when accepted, are answered from their
encoded ids without contacting the endpoint.
"""

import asyncio
from typing import Awaitable, Callable, Optional, Sequence

import structlog
from pydantic import BaseModel, ConfigDict, Field

from kgdiagram.config.settings import Settings
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
from kgdiagram.data.sparql import blank_nodes, response_handler
from kgdiagram.data.sparql.blank_nodes import is_encoded_blank
from kgdiagram.data.sparql.client import SparqlClient, SparqlQueryMethod
from kgdiagram.data.sparql.models import Binding, SparqlResponse, Triple
from kgdiagram.data.sparql.settings import (
    OWL_STATS_SETTINGS,
    LinkConfiguration,
    PropertyConfiguration,
    SparqlDataProviderSettings,
    get_preset,
)
from kgdiagram.data.sparql.templates import (
    direction_binding,
    escape_iri,
    escape_literal,
    extract_label_pattern,
    format_type_pattern,
    format_values,
    incoming_domain_parts,
    join_union,
    link_statistics_patterns,
    link_union,
    links_pattern,
    properties_pattern,
    resolve_template,
)

logger = structlog.get_logger(__name__)

DEFAULT_FILTER_LIMIT = 100

PrepareImages = Callable[[dict[ElementIri, ElementModel]], Awaitable[dict[ElementIri, str]]]


class SparqlDataProviderOptions(BaseModel):
    """Runtime options of a :class:`SparqlDataProvider`."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    endpoint_url: str
    query_method: SparqlQueryMethod = "GET"
    image_property_uris: list[str] = Field(default_factory=list)
    prepare_images: Optional[PrepareImages] = Field(
        None,
        description="Computes image URLs; takes precedence over image_property_uris",
    )
    accept_blank_nodes: bool = False


class SparqlDataProvider(DataProvider):
    """
    Data provider backed by one SPARQL endpoint.

    Features:
    - Query templates per dataset schema (see the presets in ``settings``)
    - Abstract links and properties with domain restrictions
    - Open-world or closed-world handling of unconfigured predicates
    - Anonymous node support through encoded ids
    """

    def __init__(
        self,
        options: SparqlDataProviderOptions,
        settings: SparqlDataProviderSettings = OWL_STATS_SETTINGS,
        client: Optional[SparqlClient] = None,
    ):
        """
        Initialize the provider.

        Args:
            options: Endpoint and image options
            settings: Query templates and configurations of the dataset
            client: SPARQL client to use (default: one for options.endpoint_url)
        """
        self.options = options
        self.settings = settings
        self.client = client or SparqlClient(options.endpoint_url, options.query_method)

        self.link_by_predicate: dict[str, list[LinkConfiguration]] = {}
        for link in settings.link_configurations:
            self.link_by_predicate.setdefault(link.predicate, []).append(link)
        self.property_by_predicate: dict[str, list[PropertyConfiguration]] = {}
        for prop in settings.property_configurations:
            self.property_by_predicate.setdefault(prop.predicate, []).append(prop)

        self.open_world_links = settings.open_world_links or not settings.link_configurations
        self.open_world_properties = (
            settings.open_world_properties or not settings.property_configurations
        )
        self._link_domains = any(link.domain for link in settings.link_configurations)
        self._property_domains = any(prop.domain for prop in settings.property_configurations)

        logger.info(
            "SparqlDataProvider initialized",
            endpoint=options.endpoint_url,
            method=options.query_method,
            link_configurations=len(settings.link_configurations),
            property_configurations=len(settings.property_configurations),
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        endpoint_url: Optional[str] = None,
    ) -> "SparqlDataProvider":
        """Create a provider from runtime settings."""
        options = SparqlDataProviderOptions(
            endpoint_url=endpoint_url or settings.endpoint_url,
            query_method=settings.query_method,
            accept_blank_nodes=settings.accept_blank_nodes,
        )
        client = SparqlClient(
            options.endpoint_url,
            options.query_method,
            timeout=settings.request_timeout,
            max_attempts=settings.max_query_attempts,
        )
        return cls(options, get_preset(settings.settings_preset), client)

    async def close(self) -> None:
        await self.client.close()

    async def class_tree(self) -> list[ClassModel]:
        if not self.settings.class_tree_query:
            return []
        query = resolve_template(self.settings.class_tree_query, {
            "schemaLabelProperty": self.settings.schema_label_property,
        })
        response = await self._select(query)
        return response_handler.get_class_tree(response)

    async def class_info(self, class_ids: Sequence[ElementTypeIri]) -> list[ClassModel]:
        if not class_ids:
            return []
        if not self.settings.class_info_query:
            return [ClassModel(id=class_id) for class_id in class_ids]
        query = resolve_template(self.settings.class_info_query, {
            "ids": format_values(class_ids),
            "schemaLabelProperty": self.settings.schema_label_property,
        })
        response = await self._select(query)
        return response_handler.get_class_info(response)

    async def property_info(
        self, property_ids: Sequence[PropertyTypeIri]
    ) -> dict[PropertyTypeIri, PropertyModel]:
        if not property_ids:
            return {}
        if not self.settings.property_info_query:
            return {prop_id: PropertyModel(id=prop_id) for prop_id in property_ids}
        query = resolve_template(self.settings.property_info_query, {
            "ids": format_values(property_ids),
            "schemaLabelProperty": self.settings.schema_label_property,
        })
        response = await self._select(query)
        return response_handler.get_property_info(response)

    async def link_types(self) -> list[LinkType]:
        if not self.settings.link_types_query or not self.settings.link_types_pattern:
            return []
        query = resolve_template(self.settings.link_types_query, {
            "linkTypesPattern": self.settings.link_types_pattern,
            "schemaLabelProperty": self.settings.schema_label_property,
        })
        response = await self._select(query)
        return response_handler.get_link_types(response)

    async def link_types_info(self, link_type_ids: Sequence[LinkTypeIri]) -> list[LinkType]:
        if not link_type_ids:
            return []
        if not self.settings.link_types_info_query:
            return [LinkType(id=link_id) for link_id in link_type_ids]
        query = resolve_template(self.settings.link_types_info_query, {
            "ids": format_values(link_type_ids),
            "schemaLabelProperty": self.settings.schema_label_property,
        })
        response = await self._select(query)
        return response_handler.get_link_types_info(response)

    async def element_info(
        self, element_ids: Sequence[ElementIri]
    ) -> dict[ElementIri, ElementModel]:
        iri_ids, blank_ids = self._split_ids(element_ids)
        bindings: list[Binding] = []
        if iri_ids:
            query = resolve_template(self.settings.element_info_query, {
                "ids": format_values(iri_ids),
                "dataLabelProperty": self.settings.data_label_property,
                "propertyConfigurations": properties_pattern(
                    self.settings.property_configurations,
                    open_world=self.open_world_properties,
                ),
            })
            triples = await self._construct(query)
            bindings.extend(response_handler.triples_to_element_bindings(triples))
        if blank_ids:
            bindings.extend(blank_nodes.element_bindings(blank_ids))

        types = await self._fetch_types(iri_ids) if self._property_domains else {}
        elements = response_handler.get_elements_info(
            bindings,
            types,
            self.property_by_predicate,
            self.open_world_properties,
        )
        return await self._attach_images(elements)

    async def links_info(
        self,
        element_ids: Sequence[ElementIri],
        link_type_ids: Sequence[LinkTypeIri],
    ) -> list[LinkModel]:
        """
        Return all links between the given elements.

        ``link_type_ids`` is accepted for contract compatibility; links of
        every type are returned.
        """
        iri_ids, blank_ids = self._split_ids(element_ids)
        bindings: list[Binding] = []
        if iri_ids:
            query = resolve_template(self.settings.links_info_query, {
                "ids": format_values(iri_ids),
                "linkConfigurations": links_pattern(
                    self.settings.link_configurations,
                    open_world=self.open_world_links,
                ),
            })
            response = await self._select(query)
            bindings.extend(response.bindings)
        if blank_ids:
            bindings.extend(blank_nodes.link_bindings(element_ids))

        types: dict[ElementIri, list[ElementTypeIri]] = {}
        if self._link_domains:
            types = await self._fetch_types(iri_ids)
            types.update(blank_nodes.element_types(blank_ids))
        return response_handler.get_links_info(
            bindings,
            types,
            self.link_by_predicate,
            self.open_world_links,
        )

    async def link_types_of(self, element_id: ElementIri) -> list[LinkCount]:
        if is_encoded_blank(element_id):
            if self.options.accept_blank_nodes:
                return blank_nodes.link_counts(element_id)
            return []

        element_iri = escape_iri(element_id)
        union = link_union(
            self.settings.link_configurations,
            element_id,
            open_world=self.open_world_links,
            out_variable="?outObject",
            in_variable="?inObject",
            bind_type=True,
            bind_direction=True,
        )
        parts = list(union.parts)
        if union.use_predicate_part:
            parts.append(
                f"{{ {element_iri} ?link ?outObject{direction_binding(LinkDirection.OUT)} }}"
            )
            parts.append(
                f"{{ ?inObject ?link {element_iri}{direction_binding(LinkDirection.IN)} }}"
            )
        parts.extend(incoming_domain_parts(
            self.settings.link_configurations,
            element_id,
            self.settings.filter_type_pattern,
        ))
        query = resolve_template(self.settings.link_types_of_query, {
            "elementIri": element_iri,
            "linkConfigurations": join_union(parts),
        })
        response = await self._select(query)

        element_types: list[ElementTypeIri] = []
        if self._link_domains:
            element_types = (await self._fetch_types([element_id])).get(element_id, [])
        link_ids = response_handler.get_link_type_ids(
            response.bindings,
            element_types,
            self.link_by_predicate,
            self.open_world_links,
        )

        statistics = await asyncio.gather(
            *(self._link_statistics(element_id, link_id) for link_id in link_ids)
        )
        return [count for count in statistics if count is not None]

    async def link_elements(
        self,
        element_id: ElementIri,
        link_id: LinkTypeIri,
        limit: Optional[int],
        offset: int,
        direction: Optional[LinkDirection] = None,
    ) -> dict[ElementIri, ElementModel]:
        return await self.filter(FilterParams(
            ref_element_id=element_id,
            ref_element_link_id=link_id,
            link_direction=direction,
            limit=limit,
            offset=offset,
        ))

    async def filter(self, params: FilterParams) -> dict[ElementIri, ElementModel]:
        params.validate_references()

        if self.options.accept_blank_nodes and params.ref_element_id and is_encoded_blank(
            params.ref_element_id
        ):
            local = blank_nodes.filter_bindings(params)
            if local:
                return response_handler.get_filtered_data(local)

        query = self.build_filter_query(params)
        response = await self._select(query)
        bindings = response.bindings
        if self.options.accept_blank_nodes:
            bindings = await blank_nodes.update_filter_results(bindings, self._select)
        return response_handler.get_filtered_data(bindings)

    def build_filter_query(self, params: FilterParams) -> str:
        """
        Lower search parameters into one SELECT query.

        The inner sub-select finds a page of matching ``?inst``; the outer
        pattern fetches types and labels of that page.
        """
        settings = self.settings
        limit = params.limit or DEFAULT_FILTER_LIMIT

        ref_part = ""
        if params.ref_element_id:
            ref_part = self._ref_query_part(
                params.ref_element_id,
                params.ref_element_link_id,
                params.link_direction,
            )

        type_part = ""
        if params.element_type_id:
            type_part = format_type_pattern(settings.filter_type_pattern, params.element_type_id)

        text_part = ""
        extract_label = ""
        if params.text:
            text_part = resolve_template(settings.full_text_search.query_pattern, {
                "text": escape_literal(params.text),
                "dataLabelProperty": settings.data_label_property,
            })
            if settings.full_text_search.extract_label:
                extract_label = extract_label_pattern("?inst", "?extractedLabel")

        score = " ?score" if text_part else ""
        order = "ORDER BY DESC(?score)" if text_part else ""
        blank_variables = ""
        blank_pattern = ""
        if self.options.accept_blank_nodes:
            blank_variables = " " + blank_nodes.BLANK_NODE_QUERY_VARIABLES
            blank_pattern = blank_nodes.BLANK_NODE_QUERY
        element_info = resolve_template(settings.filter_element_info_pattern, {
            "dataLabelProperty": settings.data_label_property,
        })

        return f"""{settings.full_text_search.prefix}
SELECT ?inst ?class ?label{blank_variables}
WHERE {{
    {{
        SELECT DISTINCT ?inst{score} WHERE {{
            {type_part}
            {ref_part}
            {text_part}
            {settings.filter_additional_restriction}
            {extract_label}
        }}
        {order}
        LIMIT {limit} OFFSET {params.offset}
    }}
    {element_info}
    {blank_pattern}
}} {order}
"""

    def _ref_query_part(
        self,
        element_id: ElementIri,
        link_id: Optional[LinkTypeIri],
        direction: Optional[LinkDirection],
    ) -> str:
        union = link_union(
            self.settings.link_configurations,
            element_id,
            open_world=self.open_world_links,
            link_id=link_id,
            direction=direction,
        )
        parts = list(union.parts)
        if union.use_predicate_part:
            element_iri = escape_iri(element_id)
            predicate = union.predicate(link_id)
            if direction in (None, LinkDirection.OUT):
                parts.append(f"{{ {element_iri} {predicate} ?inst }}")
            if direction in (None, LinkDirection.IN):
                parts.append(f"{{ ?inst {predicate} {element_iri} }}")

        if self.options.accept_blank_nodes:
            inst_filter = "FILTER (ISIRI(?inst) || ISBLANK(?inst))"
        else:
            inst_filter = "FILTER ISIRI(?inst)"
        result = f"{join_union(parts)}\n            {inst_filter}"
        if not link_id and self.settings.filter_ref_element_link_pattern:
            result += f"\n            {self.settings.filter_ref_element_link_pattern}"
        return result

    async def _link_statistics(
        self,
        element_id: ElementIri,
        link_id: LinkTypeIri,
    ) -> Optional[LinkCount]:
        if not self.settings.link_types_statistics_query:
            return LinkCount(id=link_id)
        out_pattern, in_pattern = link_statistics_patterns(
            self.settings.link_configurations,
            element_id,
            link_id,
            self.settings.filter_type_pattern,
        )
        if self.options.accept_blank_nodes:
            filter_out = "FILTER (ISIRI(?outObject) || ISBLANK(?outObject))"
            filter_in = "FILTER (ISIRI(?inObject) || ISBLANK(?inObject))"
        else:
            filter_out = "FILTER ISIRI(?outObject)"
            filter_in = "FILTER ISIRI(?inObject)"
        query = resolve_template(self.settings.link_types_statistics_query, {
            "linkId": escape_iri(link_id),
            "elementIri": escape_iri(element_id),
            "linkConfigurationOut": out_pattern,
            "linkConfigurationIn": in_pattern,
            "navigateElementFilterOut": filter_out,
            "navigateElementFilterIn": filter_in,
        })
        response = await self._select(query)
        return response_handler.get_link_statistics(response, link_id)

    async def _fetch_types(
        self, element_ids: Sequence[ElementIri]
    ) -> dict[ElementIri, list[ElementTypeIri]]:
        """Known types of the given elements, for domain matching."""
        if not element_ids or not self.settings.filter_type_pattern:
            return {}
        query = f"""
SELECT ?inst ?class
WHERE {{
    VALUES (?inst) {{{format_values(element_ids)}}}
    {self.settings.filter_type_pattern}
}}
"""
        response = await self._select(query)
        return response_handler.get_types_by_element(response)

    async def _attach_images(
        self, elements: dict[ElementIri, ElementModel]
    ) -> dict[ElementIri, ElementModel]:
        if not elements:
            return elements
        if self.options.prepare_images is not None:
            try:
                images = await self.options.prepare_images(elements)
            except Exception as e:
                logger.warning("Image preparation failed", error=str(e))
                return elements
            return response_handler.apply_images(elements, images)

        if not self.options.image_property_uris or not self.settings.image_query_pattern:
            return elements
        query = f"""
SELECT ?inst ?linkType ?image
WHERE {{
    VALUES (?inst) {{{format_values(elements)}}}
    VALUES (?linkType) {{{format_values(self.options.image_property_uris)}}}
    {self.settings.image_query_pattern}
}}
"""
        try:
            response = await self._select(query)
        except Exception as e:
            logger.warning(
                "Image query failed",
                endpoint=self.options.endpoint_url,
                error=str(e),
            )
            return elements
        return response_handler.get_enriched_elements_info(response, elements)

    def _split_ids(self, element_ids: Sequence[ElementIri]) -> tuple[list[str], list[str]]:
        iri_ids = [i for i in element_ids if not is_encoded_blank(i)]
        blank_ids: list[str] = []
        if self.options.accept_blank_nodes:
            blank_ids = [i for i in element_ids if is_encoded_blank(i)]
        return iri_ids, blank_ids

    async def _select(self, query: str) -> SparqlResponse:
        return await self.client.select(self.settings.default_prefix + query)

    async def _construct(self, query: str) -> list[Triple]:
        return await self.client.construct(self.settings.default_prefix + query)
