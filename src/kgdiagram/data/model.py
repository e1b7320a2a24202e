"""
Domain model for diagram data.

All records are created fresh per request. Value records are frozen, so
merging code builds new instances instead of mutating the inputs, which
may be shared by several concurrent merges.
"""

from enum import Enum
from typing import Annotated, Iterable, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from kgdiagram.core.exceptions import ValidationError

ElementIri = str
ElementTypeIri = str
LinkTypeIri = str
PropertyTypeIri = str


class LinkDirection(str, Enum):
    """Direction of a link relative to a reference element."""

    IN = "in"
    OUT = "out"


class LocalizedString(BaseModel):
    """
    A literal value with its language tag.

    Two localized strings are equal when value and language match; the
    datatype is carried along but is not part of identity.
    """

    model_config = ConfigDict(frozen=True)

    value: str
    language: str = ""
    datatype: Optional[str] = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LocalizedString):
            return NotImplemented
        return self.value == other.value and self.language == other.language

    def __hash__(self) -> int:
        return hash((self.value, self.language))


class IriProperty(BaseModel):
    """Property whose values are IRIs."""

    model_config = ConfigDict(frozen=True)

    type: Literal["uri"] = "uri"
    values: list[str] = Field(default_factory=list)


class LiteralProperty(BaseModel):
    """Property whose values are literals."""

    model_config = ConfigDict(frozen=True)

    type: Literal["literal"] = "literal"
    values: list[LocalizedString] = Field(default_factory=list)


Property = Annotated[Union[IriProperty, LiteralProperty], Field(discriminator="type")]


class ElementModel(BaseModel):
    """An entity shown as a diagram node."""

    model_config = ConfigDict(frozen=True)

    id: ElementIri
    types: list[ElementTypeIri] = Field(default_factory=list)
    label: list[LocalizedString] = Field(default_factory=list)
    image: Optional[str] = None
    properties: dict[PropertyTypeIri, Property] = Field(default_factory=dict)
    sources: Optional[list[str]] = Field(
        None,
        description="Names of the federated providers that contributed this record",
    )


class LinkModel(BaseModel):
    """A typed edge between two elements."""

    model_config = ConfigDict(frozen=True)

    link_type_id: LinkTypeIri
    source_id: ElementIri
    target_id: ElementIri
    properties: dict[PropertyTypeIri, Property] = Field(default_factory=dict)

    @property
    def key(self) -> tuple[LinkTypeIri, ElementIri, ElementIri]:
        """Identity used for de-duplication; properties are not part of it."""
        return (self.link_type_id, self.source_id, self.target_id)


class ClassModel(BaseModel):
    """A node of the class tree."""

    model_config = ConfigDict(frozen=True)

    id: ElementTypeIri
    label: list[LocalizedString] = Field(default_factory=list)
    count: Optional[int] = None
    children: list["ClassModel"] = Field(default_factory=list)


class LinkType(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: LinkTypeIri
    label: list[LocalizedString] = Field(default_factory=list)
    count: Optional[int] = None


class PropertyModel(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: PropertyTypeIri
    label: list[LocalizedString] = Field(default_factory=list)


class LinkCount(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: LinkTypeIri
    in_count: Optional[int] = None
    out_count: Optional[int] = None


class FilterParams(BaseModel):
    """Parameters of an element search."""

    model_config = ConfigDict(frozen=True)

    element_type_id: Optional[ElementTypeIri] = None
    text: Optional[str] = None
    ref_element_id: Optional[ElementIri] = None
    ref_element_link_id: Optional[LinkTypeIri] = None
    link_direction: Optional[LinkDirection] = None
    limit: Optional[int] = None
    offset: int = 0
    language_code: str = ""

    def validate_references(self) -> None:
        """Reject a link restriction that has no reference element to start from."""
        if self.ref_element_link_id and not self.ref_element_id:
            raise ValidationError(
                "Can't execute refElementLink filter without refElement",
                details={"ref_element_link_id": self.ref_element_link_id},
            )


def merge_labels(
    a: Iterable[LocalizedString],
    b: Iterable[LocalizedString],
) -> list[LocalizedString]:
    """Union of two label sets, keeping first-seen order."""
    result: list[LocalizedString] = []
    seen: set[LocalizedString] = set()
    for label in (*a, *b):
        if label not in seen:
            seen.add(label)
            result.append(label)
    return result


def merge_counts(a: Optional[int], b: Optional[int]) -> Optional[int]:
    """
    Sum two optional counts.

    ``None`` means "no information"; it becomes 0 only when the other side
    is known.
    """
    if a is None and b is None:
        return None
    return (a or 0) + (b or 0)


def merge_unique(a: Iterable[str], b: Iterable[str]) -> list[str]:
    result: list[str] = []
    for item in (*a, *b):
        if item not in result:
            result.append(item)
    return result


def merge_property(a: Property, b: Property) -> Property:
    """
    Union the values of two properties under the same key.

    Mixing IRI and literal values under one key is not representable; the
    first property wins in that case.
    """
    if a.type != b.type:
        return a
    if isinstance(a, IriProperty):
        return IriProperty(values=merge_unique(a.values, b.values))
    return LiteralProperty(values=merge_labels(a.values, b.values))


def merge_properties(
    a: dict[PropertyTypeIri, Property],
    b: dict[PropertyTypeIri, Property],
) -> dict[PropertyTypeIri, Property]:
    result = dict(a)
    for key, prop in b.items():
        result[key] = merge_property(result[key], prop) if key in result else prop
    return result


ClassModel.model_rebuild()


def build_class_forest(
    labels: Mapping[ElementTypeIri, list[LocalizedString]],
    counts: Mapping[ElementTypeIri, Optional[int]],
    parents: Mapping[ElementTypeIri, Iterable[ElementTypeIri]],
    aggregate_counts: bool = True,
) -> list[ClassModel]:
    """
    Build a class forest from flat per-class data.

    A class with several parents is attached to the smallest parent id
    only, so no class appears twice. Classes that are only reachable
    through a ``subClassOf`` cycle become roots, smallest id first.

    Args:
        labels: Labels per class id
        counts: Own instance count per class id
        parents: Parent ids per class id; unknown parents become classes
        aggregate_counts: Add the children's counts to each node's own count

    Returns:
        Root nodes ordered by id
    """
    class_ids = set(labels) | set(counts) | set(parents)
    parent_of: dict[ElementTypeIri, ElementTypeIri] = {}
    for child, child_parents in parents.items():
        candidates = {parent for parent in child_parents if parent != child}
        class_ids.update(candidates)
        if candidates:
            parent_of[child] = min(candidates)

    children: dict[ElementTypeIri, list[ElementTypeIri]] = {}
    for child in sorted(parent_of):
        children.setdefault(parent_of[child], []).append(child)

    built: dict[ElementTypeIri, ClassModel] = {}
    visiting: set[ElementTypeIri] = set()

    def build(class_id: ElementTypeIri) -> ClassModel:
        visiting.add(class_id)
        nodes = [
            build(child)
            for child in children.get(class_id, [])
            if child not in visiting and child not in built
        ]
        count = counts.get(class_id)
        if aggregate_counts:
            for node in nodes:
                count = merge_counts(count, node.count)
        built[class_id] = ClassModel(
            id=class_id,
            label=list(labels.get(class_id, [])),
            count=count,
            children=nodes,
        )
        return built[class_id]

    forest = [build(class_id) for class_id in sorted(class_ids - set(parent_of))]
    # whatever is left hangs off a cycle
    for class_id in sorted(class_ids):
        if class_id not in built:
            forest.append(build(class_id))
    return forest


def flatten_class_tree(tree: Iterable[ClassModel]) -> list[ClassModel]:
    """All nodes of a forest, parents before their children."""
    result: list[ClassModel] = []
    stack = list(reversed(list(tree)))
    while stack:
        node = stack.pop()
        result.append(node)
        stack.extend(reversed(node.children))
    return result
