"""
Merge functions for results of several data providers.

Every function takes the per-source responses in provider order and
builds new model instances. Unions and count sums make the merges
independent of response order, except for the choice of the first
available image. Label lists, source names and data provider values are
returned sorted, so they compare equal whatever the order of the sources.
Other lists (element types, property values, models) keep provider order
and are equal as sets.
"""

from dataclasses import dataclass
from typing import Generic, Iterable, Optional, Sequence, TypeVar

from kgdiagram.data.model import (
    ClassModel,
    ElementIri,
    ElementModel,
    ElementTypeIri,
    LinkCount,
    LinkModel,
    LinkType,
    LinkTypeIri,
    LiteralProperty,
    LocalizedString,
    PropertyModel,
    PropertyTypeIri,
    build_class_forest,
    flatten_class_tree,
    merge_counts,
    merge_labels,
    merge_properties,
    merge_unique,
)
from kgdiagram.data.sparql.namespaces import DATA_PROVIDER_PROPERTY

T = TypeVar("T")


@dataclass
class CompositeResponse(Generic[T]):
    """Answer of one source; ``response`` is ``None`` when the source failed."""

    data_source_name: str
    response: Optional[T]
    use_in_stats: bool = True
    error: Optional[Exception] = None


def _answered(responses: Iterable[CompositeResponse[T]]) -> Iterable[CompositeResponse[T]]:
    return (r for r in responses if r.response is not None)


def canonical_labels(labels: Iterable[LocalizedString]) -> list[LocalizedString]:
    return sorted(labels, key=lambda label: (label.language, label.value))


def merge_class_tree(responses: Sequence[CompositeResponse[list[ClassModel]]]) -> list[ClassModel]:
    """
    Combine the class forests of all sources.

    Each forest is flattened; labels and counts are merged per class id and
    the forest is rebuilt from the union of parent links, so a class that
    is somebody's child never stays a root. Counts of sources that are not
    used in statistics are ignored.
    """
    labels: dict[ElementTypeIri, list[LocalizedString]] = {}
    counts: dict[ElementTypeIri, Optional[int]] = {}
    parents: dict[ElementTypeIri, set[ElementTypeIri]] = {}
    for response in _answered(responses):
        for node in flatten_class_tree(response.response):
            labels[node.id] = merge_labels(labels.get(node.id, []), node.label)
            count = node.count if response.use_in_stats else None
            counts[node.id] = merge_counts(counts.get(node.id), count)
            for child in node.children:
                parents.setdefault(child.id, set()).add(node.id)
    labels = {key: canonical_labels(values) for key, values in labels.items()}
    return build_class_forest(labels, counts, parents, aggregate_counts=False)


def _merge_class(a: ClassModel, b: ClassModel) -> ClassModel:
    children = {child.id: child for child in a.children}
    for child in b.children:
        children.setdefault(child.id, child)
    return ClassModel(
        id=a.id,
        label=merge_labels(a.label, b.label),
        count=merge_counts(a.count, b.count),
        children=list(children.values()),
    )


def merge_class_info(responses: Sequence[CompositeResponse[list[ClassModel]]]) -> list[ClassModel]:
    result: dict[ElementTypeIri, ClassModel] = {}
    for response in _answered(responses):
        for model in response.response:
            result[model.id] = _merge_class(result[model.id], model) if model.id in result else model
    return [
        model.model_copy(update={"label": canonical_labels(model.label)})
        for model in result.values()
    ]


def merge_property_info(
    responses: Sequence[CompositeResponse[dict[PropertyTypeIri, PropertyModel]]],
) -> dict[PropertyTypeIri, PropertyModel]:
    result: dict[PropertyTypeIri, PropertyModel] = {}
    for response in _answered(responses):
        for key, model in response.response.items():
            existing = result.get(key)
            if existing is None:
                result[key] = model
            else:
                result[key] = PropertyModel(id=key, label=merge_labels(existing.label, model.label))
    return {
        key: model.model_copy(update={"label": canonical_labels(model.label)})
        for key, model in result.items()
    }


def merge_link_types(responses: Sequence[CompositeResponse[list[LinkType]]]) -> list[LinkType]:
    result: dict[LinkTypeIri, LinkType] = {}
    for response in _answered(responses):
        for model in response.response:
            existing = result.get(model.id)
            if existing is None:
                result[model.id] = model
            else:
                result[model.id] = LinkType(
                    id=model.id,
                    label=merge_labels(existing.label, model.label),
                    count=merge_counts(existing.count, model.count),
                )
    return [
        model.model_copy(update={"label": canonical_labels(model.label)})
        for model in result.values()
    ]


def merge_link_types_info(responses: Sequence[CompositeResponse[list[LinkType]]]) -> list[LinkType]:
    return merge_link_types(responses)


def _tag_source(element: ElementModel, source: str) -> ElementModel:
    provider_property = LiteralProperty(values=[LocalizedString(value=source)])
    return element.model_copy(update={
        "sources": merge_unique(element.sources or [], [source]),
        "properties": merge_properties(
            element.properties, {DATA_PROVIDER_PROPERTY: provider_property}
        ),
    })


def merge_element(a: ElementModel, b: ElementModel) -> ElementModel:
    """Union of two descriptions of the same element; the first image wins."""
    sources = None
    if a.sources is not None or b.sources is not None:
        sources = merge_unique(a.sources or [], b.sources or [])
    return ElementModel(
        id=a.id,
        types=merge_unique(a.types, b.types),
        label=merge_labels(a.label, b.label),
        image=a.image or b.image,
        properties=merge_properties(a.properties, b.properties),
        sources=sources,
    )


def _canonical_element(element: ElementModel) -> ElementModel:
    update: dict = {"label": canonical_labels(element.label)}
    if element.sources is not None:
        update["sources"] = sorted(element.sources)
    provider_property = element.properties.get(DATA_PROVIDER_PROPERTY)
    if isinstance(provider_property, LiteralProperty):
        update["properties"] = {
            **element.properties,
            DATA_PROVIDER_PROPERTY: LiteralProperty(
                values=canonical_labels(provider_property.values)
            ),
        }
    return element.model_copy(update=update)


def merge_element_info(
    responses: Sequence[CompositeResponse[dict[ElementIri, ElementModel]]],
    tag_provenance: bool = True,
) -> dict[ElementIri, ElementModel]:
    """
    Merge elements by id.

    Args:
        responses: Per-source elements
        tag_provenance: Record the source name in ``sources`` and in the
            data provider property of every element

    Returns:
        Elements by id
    """
    result: dict[ElementIri, ElementModel] = {}
    for response in _answered(responses):
        for element_id, element in response.response.items():
            if tag_provenance:
                element = _tag_source(element, response.data_source_name)
            existing = result.get(element_id)
            result[element_id] = merge_element(existing, element) if existing else element
    return {element_id: _canonical_element(element) for element_id, element in result.items()}


def merge_links_info(responses: Sequence[CompositeResponse[list[LinkModel]]]) -> list[LinkModel]:
    result: dict[tuple[str, str, str], LinkModel] = {}
    for response in _answered(responses):
        for link in response.response:
            existing = result.get(link.key)
            if existing is None:
                result[link.key] = link
            else:
                result[link.key] = existing.model_copy(update={
                    "properties": merge_properties(existing.properties, link.properties),
                })
    return list(result.values())


def merge_link_types_of(responses: Sequence[CompositeResponse[list[LinkCount]]]) -> list[LinkCount]:
    result: dict[LinkTypeIri, LinkCount] = {}
    for response in _answered(responses):
        for count in response.response:
            existing = result.get(count.id)
            if existing is None:
                result[count.id] = count
            else:
                result[count.id] = LinkCount(
                    id=count.id,
                    in_count=merge_counts(existing.in_count, count.in_count),
                    out_count=merge_counts(existing.out_count, count.out_count),
                )
    return list(result.values())


def merge_link_elements(
    responses: Sequence[CompositeResponse[dict[ElementIri, ElementModel]]],
) -> dict[ElementIri, ElementModel]:
    return merge_element_info(responses)


def merge_filter(
    responses: Sequence[CompositeResponse[dict[ElementIri, ElementModel]]],
) -> dict[ElementIri, ElementModel]:
    return merge_element_info(responses)
