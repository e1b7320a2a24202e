"""
Mapping of raw SPARQL results to domain models.

Functions here never issue queries; everything they need (element types,
configuration indexes) is passed in by the provider.
"""

from typing import Iterable, Mapping, Optional, Sequence

from kgdiagram.data.model import (
    ClassModel,
    ElementIri,
    ElementModel,
    ElementTypeIri,
    IriProperty,
    LinkCount,
    LinkDirection,
    LinkModel,
    LinkType,
    LiteralProperty,
    LocalizedString,
    Property,
    PropertyModel,
    PropertyTypeIri,
    build_class_forest,
    merge_counts,
    merge_labels,
    merge_properties,
    merge_property,
)
from kgdiagram.data.sparql.models import Binding, RdfTerm, SparqlResponse, Triple
from kgdiagram.data.sparql.namespaces import RDF_TYPE, RDFS_LABEL
from kgdiagram.data.sparql.settings import LinkConfiguration, PropertyConfiguration

LinkIndex = Mapping[str, Sequence[LinkConfiguration]]
PropertyIndex = Mapping[str, Sequence[PropertyConfiguration]]


def to_localized_string(term: RdfTerm) -> LocalizedString:
    return LocalizedString(
        value=term.value,
        language=term.lang or "",
        datatype=term.datatype,
    )


def parse_count(term: Optional[RdfTerm]) -> Optional[int]:
    """Numeric value of a count binding; empty or non-numeric means unknown."""
    if term is None or not term.value:
        return None
    try:
        return int(float(term.value))
    except (ValueError, OverflowError):
        return None


def is_domain_match(
    domain: Optional[Iterable[ElementTypeIri]],
    types: Iterable[ElementTypeIri],
) -> bool:
    """A configuration without domain applies to any element."""
    if not domain:
        return True
    return not set(domain).isdisjoint(types)


def _collect_labelled(
    bindings: Iterable[Binding],
    id_variable: str,
) -> tuple[list[str], dict[str, list[LocalizedString]], dict[str, Optional[int]]]:
    order: list[str] = []
    labels: dict[str, list[LocalizedString]] = {}
    counts: dict[str, Optional[int]] = {}
    for binding in bindings:
        term = binding.get(id_variable)
        if term is None:
            continue
        key = term.value
        if key not in labels:
            order.append(key)
            labels[key] = []
            counts[key] = None
        if "label" in binding:
            labels[key] = merge_labels(labels[key], [to_localized_string(binding["label"])])
        if counts[key] is None:
            counts[key] = parse_count(binding.get("instcount"))
    return order, labels, counts


def get_class_tree(response: SparqlResponse) -> list[ClassModel]:
    """
    Build the class forest from ``?class ?label ?parent ?instcount`` rows.

    Rows repeat per label and parent; a class keeps the first count it is
    given and adds up the counts of its subtree.
    """
    _, labels, counts = _collect_labelled(response.bindings, "class")
    parents: dict[str, set[str]] = {}
    for binding in response.bindings:
        if "class" in binding and "parent" in binding:
            parents.setdefault(binding["class"].value, set()).add(binding["parent"].value)
    return build_class_forest(labels, counts, parents)


def get_class_info(response: SparqlResponse) -> list[ClassModel]:
    order, labels, counts = _collect_labelled(response.bindings, "class")
    return [ClassModel(id=key, label=labels[key], count=counts[key]) for key in order]


def get_link_types(response: SparqlResponse) -> list[LinkType]:
    order, labels, counts = _collect_labelled(response.bindings, "link")
    return [LinkType(id=key, label=labels[key], count=counts[key]) for key in order]


def get_link_types_info(response: SparqlResponse) -> list[LinkType]:
    return get_link_types(response)


def get_property_info(response: SparqlResponse) -> dict[PropertyTypeIri, PropertyModel]:
    order, labels, _ = _collect_labelled(response.bindings, "property")
    return {key: PropertyModel(id=key, label=labels[key]) for key in order}


def triples_to_element_bindings(triples: Iterable[Triple]) -> list[Binding]:
    """Rewrite constructed element triples into ``?inst`` rows."""
    bindings: list[Binding] = []
    for subject, predicate, obj in triples:
        if predicate.value == RDF_TYPE:
            bindings.append({"inst": subject, "class": obj})
        elif predicate.value == RDFS_LABEL:
            bindings.append({"inst": subject, "label": obj})
        else:
            bindings.append({"inst": subject, "propType": predicate, "propValue": obj})
    return bindings


def _to_property(values: Sequence[RdfTerm]) -> Property:
    # the first value decides the kind; values of the other kind are dropped
    if values[0].is_literal:
        return LiteralProperty(values=merge_labels(
            [], [to_localized_string(v) for v in values if v.is_literal]
        ))
    iris = [v.value for v in values if not v.is_literal]
    return IriProperty(values=list(dict.fromkeys(iris)))


class _ElementAccumulator:
    def __init__(self, element_id: ElementIri):
        self.id = element_id
        self.types: list[ElementTypeIri] = []
        self.labels: list[LocalizedString] = []
        self.properties: dict[str, list[RdfTerm]] = {}

    def add(self, binding: Binding) -> None:
        if "class" in binding and binding["class"].value not in self.types:
            self.types.append(binding["class"].value)
        if "label" in binding:
            self.labels = merge_labels(self.labels, [to_localized_string(binding["label"])])
        prop_type = binding.get("propType")
        prop_value = binding.get("propValue")
        if prop_type is not None and prop_value is not None and prop_type.value != RDFS_LABEL:
            values = self.properties.setdefault(prop_type.value, [])
            if prop_value not in values:
                values.append(prop_value)

    def raw_properties(self) -> dict[str, Property]:
        return {key: _to_property(values) for key, values in self.properties.items()}


def _accumulate(bindings: Iterable[Binding]) -> dict[ElementIri, _ElementAccumulator]:
    elements: dict[ElementIri, _ElementAccumulator] = {}
    for binding in bindings:
        inst = binding.get("inst")
        if inst is None or inst.is_literal:
            continue
        element = elements.get(inst.value)
        if element is None:
            element = elements[inst.value] = _ElementAccumulator(inst.value)
        element.add(binding)
    return elements


def _map_properties(
    raw: dict[str, Property],
    types: Sequence[ElementTypeIri],
    property_by_predicate: PropertyIndex,
    open_world: bool,
) -> dict[PropertyTypeIri, Property]:
    result: dict[PropertyTypeIri, Property] = {}
    for predicate, prop in raw.items():
        configurations = property_by_predicate.get(predicate)
        if configurations:
            for config in configurations:
                if is_domain_match(config.domain, types):
                    existing = result.get(config.id)
                    result[config.id] = merge_property(existing, prop) if existing else prop
        elif open_world:
            existing = result.get(predicate)
            result[predicate] = merge_property(existing, prop) if existing else prop
    return result


def get_elements_info(
    bindings: Iterable[Binding],
    types_by_element: Mapping[ElementIri, Sequence[ElementTypeIri]],
    property_by_predicate: PropertyIndex,
    open_world_properties: bool,
) -> dict[ElementIri, ElementModel]:
    """
    Build elements from ``?inst ?class ?label ?propType ?propValue`` rows.

    Args:
        bindings: Result rows, several per element
        types_by_element: Known (transitive) types, used for domain matching
        property_by_predicate: Property configurations by effective predicate
        open_world_properties: Keep predicates that no configuration mentions

    Returns:
        Elements by id; ids without rows are absent
    """
    remap = bool(property_by_predicate) or not open_world_properties
    result: dict[ElementIri, ElementModel] = {}
    for element_id, element in _accumulate(bindings).items():
        properties = element.raw_properties()
        if remap:
            types = list(dict.fromkeys([*element.types, *types_by_element.get(element_id, [])]))
            properties = _map_properties(
                properties, types, property_by_predicate, open_world_properties
            )
        result[element_id] = ElementModel(
            id=element_id,
            types=element.types,
            label=element.labels,
            properties=properties,
        )
    return result


def get_filtered_data(bindings: Iterable[Binding]) -> dict[ElementIri, ElementModel]:
    """Elements found by a search; literal ``?inst`` values are skipped."""
    return {
        element_id: ElementModel(
            id=element_id,
            types=element.types,
            label=element.labels,
        )
        for element_id, element in _accumulate(bindings).items()
    }


def _link_properties(binding: Binding) -> dict[PropertyTypeIri, Property]:
    prop_type = binding.get("propType")
    prop_value = binding.get("propValue")
    if prop_type is None or prop_value is None:
        return {}
    return {prop_type.value: _to_property([prop_value])}


def get_links_info(
    bindings: Iterable[Binding],
    types_by_element: Mapping[ElementIri, Sequence[ElementTypeIri]],
    link_by_predicate: LinkIndex,
    open_world_links: bool,
) -> list[LinkModel]:
    """
    Build links from ``?source ?type ?target`` rows.

    One row yields a link per configuration mapped to its predicate whose
    domain matches the source. Rows describing the same
    (type, source, target) collapse into one link with merged properties.
    """
    links: dict[tuple[str, str, str], LinkModel] = {}
    for binding in bindings:
        source = binding.get("source")
        link_type = binding.get("type")
        target = binding.get("target")
        if source is None or link_type is None or target is None:
            continue
        configurations = link_by_predicate.get(link_type.value)
        if configurations:
            source_types = types_by_element.get(source.value, [])
            type_ids = [
                config.id
                for config in configurations
                if is_domain_match(config.domain, source_types)
            ]
        elif open_world_links:
            type_ids = [link_type.value]
        else:
            type_ids = []

        properties = _link_properties(binding)
        for type_id in type_ids:
            key = (type_id, source.value, target.value)
            existing = links.get(key)
            if existing is None:
                links[key] = LinkModel(
                    link_type_id=type_id,
                    source_id=source.value,
                    target_id=target.value,
                    properties=properties,
                )
            elif properties:
                links[key] = existing.model_copy(update={
                    "properties": merge_properties(existing.properties, properties),
                })
    return list(links.values())


def get_link_type_ids(
    bindings: Iterable[Binding],
    element_types: Sequence[ElementTypeIri],
    link_by_predicate: LinkIndex,
    open_world_links: bool,
) -> list[str]:
    """
    Logical link type ids for the rows of a link-types-of query.

    A domain restricts the source of a link. Outgoing rows are matched
    against ``element_types``, the types of the element itself. Incoming
    rows only yield configurations without domain; the query checks the
    domain of incoming links on their source and reports the configuration
    that passed as ``?configuration``.
    """
    result: list[str] = []
    for binding in bindings:
        configuration = binding.get("configuration")
        link = binding.get("link")
        if configuration is not None:
            ids = [configuration.value]
        elif link is None:
            continue
        elif link_by_predicate.get(link.value):
            direction = binding.get("direction")
            if direction is not None and direction.value == LinkDirection.IN.value:
                ids = [c.id for c in link_by_predicate[link.value] if not c.domain]
            else:
                ids = [
                    c.id
                    for c in link_by_predicate[link.value]
                    if is_domain_match(c.domain, element_types)
                ]
        elif open_world_links:
            ids = [link.value]
        else:
            ids = []
        for link_id in ids:
            if link_id not in result:
                result.append(link_id)
    return result


def get_link_statistics(response: SparqlResponse, link_id: str) -> Optional[LinkCount]:
    """Counts of one link type around one element."""
    in_count: Optional[int] = None
    out_count: Optional[int] = None
    found = False
    for binding in response.bindings:
        found = True
        in_count = merge_counts(in_count, parse_count(binding.get("inCount")))
        out_count = merge_counts(out_count, parse_count(binding.get("outCount")))
    if not found:
        return None
    return LinkCount(id=link_id, in_count=in_count, out_count=out_count)


def get_types_by_element(response: SparqlResponse) -> dict[ElementIri, list[ElementTypeIri]]:
    result: dict[ElementIri, list[ElementTypeIri]] = {}
    for binding in response.bindings:
        if "inst" in binding and "class" in binding:
            types = result.setdefault(binding["inst"].value, [])
            if binding["class"].value not in types:
                types.append(binding["class"].value)
    return result


def get_enriched_elements_info(
    response: SparqlResponse,
    elements: dict[ElementIri, ElementModel],
) -> dict[ElementIri, ElementModel]:
    """Attach the first image found for each element."""
    images: dict[ElementIri, str] = {}
    for binding in response.bindings:
        inst = binding.get("inst")
        image = binding.get("image")
        if inst is not None and image is not None:
            images.setdefault(inst.value, image.value)
    return apply_images(elements, images)


def apply_images(
    elements: dict[ElementIri, ElementModel],
    images: Mapping[ElementIri, str],
) -> dict[ElementIri, ElementModel]:
    return {
        element_id: (
            element.model_copy(update={"image": images[element_id]})
            if element_id in images
            else element
        )
        for element_id, element in elements.items()
    }
