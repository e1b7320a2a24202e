"""
Query template resolution and path-union builders.

Everything here is pure string manipulation so query construction can be
tested without an endpoint.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Sequence

from kgdiagram.data.model import LinkDirection
from kgdiagram.data.sparql.settings import LinkConfiguration, PropertyConfiguration

_SOURCE_VARIABLE = re.compile(r"[?$]source\b")
_TARGET_VARIABLE = re.compile(r"[?$]target\b")
_INST_VARIABLE = re.compile(r"[?$]inst\b")
_VALUE_VARIABLE = re.compile(r"[?$]value\b")
_CLASS_VARIABLE = re.compile(r"[?$]class\b")

NO_MATCH_PATTERN = "FILTER(false)"


def resolve_template(template: str, substitutions: Mapping[str, Optional[str]]) -> str:
    """
    Expand ``${name}`` placeholders.

    Only names mapped to a non-empty value are replaced; every other token
    stays in the text as-is. Surplus keys are ignored.

    Args:
        template: Query text with ``${name}`` placeholders
        substitutions: Placeholder values

    Returns:
        The resolved query text
    """
    result = template
    for name, value in substitutions.items():
        if value:
            result = result.replace("${" + name + "}", value)
    return result


def escape_iri(iri: str) -> str:
    return f"<{iri}>"


def escape_literal(text: str) -> str:
    """Escape text for use inside a double-quoted SPARQL string."""
    return (
        text.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )


def format_values(ids: Iterable[str]) -> str:
    """Row list for a ``VALUES (?var) {...}`` block."""
    return " ".join(f"({escape_iri(iri)})" for iri in ids)


def format_link_path(path: str, source: str, target: str) -> str:
    result = _SOURCE_VARIABLE.sub(lambda _: source, path)
    return _TARGET_VARIABLE.sub(lambda _: target, result)


def format_property_path(path: str, subject: str, value: str) -> str:
    result = _INST_VARIABLE.sub(lambda _: subject, path)
    return _VALUE_VARIABLE.sub(lambda _: value, result)


def format_type_pattern(pattern: str, type_iri: str) -> str:
    """Pin the ``?class`` variable of a type pattern to one class."""
    return _CLASS_VARIABLE.sub(lambda _: escape_iri(type_iri), pattern)


def domain_restriction(type_pattern: str, subject: str, domain: Sequence[str]) -> str:
    """
    Keep only solutions where ``subject`` is an instance of a ``domain`` class.

    ``type_pattern`` binds the types ``?class`` of ``?inst``, as the
    ``filter_type_pattern`` of the settings does. Without a type pattern no
    element can be shown to lie in the domain, so nothing matches.
    """
    if not type_pattern:
        return NO_MATCH_PATTERN
    pattern = _INST_VARIABLE.sub(lambda _: subject, type_pattern)
    pattern = _CLASS_VARIABLE.sub(lambda _: "?domainClass", pattern)
    return f"FILTER EXISTS {{ VALUES (?domainClass) {{{format_values(domain)}}} {pattern} }}"


def join_union(parts: Sequence[str]) -> str:
    if not parts:
        return NO_MATCH_PATTERN
    return "\n    UNION\n    ".join(parts)


def extract_label_pattern(subject: str, label: str) -> str:
    """Bind ``label`` to the local name of the IRI in ``subject``."""
    return f"""
    BIND ( str( {subject} ) as ?uriStr)
    BIND ( strafter(?uriStr, "#") as ?label3)
    BIND ( strafter(strafter(?uriStr, "//"), "/") as ?label6)
    BIND ( strafter(?label6, "/") as ?label5)
    BIND ( strafter(?label5, "/") as ?label4)
    BIND (if (?label3 != "", ?label3,
        if (?label4 != "", ?label4,
        if (?label5 != "", ?label5, ?label6))) as {label})"""


def direction_binding(direction: LinkDirection) -> str:
    return f' BIND("{direction.value}" as ?direction)'


@dataclass
class PathUnion:
    """
    Union clauses for path-based configurations.

    ``use_predicate_part`` tells whether the caller has to add a fallback
    clause matching an arbitrary predicate; ``direct_paths`` lists the
    direct predicates of the configurations that took part.
    """

    parts: list[str] = field(default_factory=list)
    use_predicate_part: bool = False
    direct_paths: list[str] = field(default_factory=list)
    open_world: bool = False

    def predicate(self, link_id: Optional[str], variable: str = "?link") -> str:
        """Predicate expression for the fallback clause."""
        if self.direct_paths and (link_id or not self.open_world):
            return "|".join(escape_iri(path) for path in self.direct_paths)
        if link_id:
            return escape_iri(link_id)
        return variable


def link_union(
    configurations: Sequence[LinkConfiguration],
    element_iri: str,
    *,
    open_world: bool,
    link_id: Optional[str] = None,
    direction: Optional[LinkDirection] = None,
    out_variable: str = "?inst",
    in_variable: str = "?inst",
    bind_type: bool = False,
    bind_direction: bool = False,
) -> PathUnion:
    """
    One clause per path-based configuration connecting ``element_iri``.

    Args:
        configurations: Link configurations
        element_iri: The fixed end of the link
        open_world: Whether unconfigured predicates are surfaced
        link_id: Restrict to configurations with this id
        direction: Restrict to outgoing or incoming links
        out_variable: Free variable on the target side of outgoing links
        in_variable: Free variable on the source side of incoming links
        bind_type: Bind ``?link`` to the configuration id in every clause
        bind_direction: Bind ``?direction`` to ``"out"`` or ``"in"``
    """
    fixed = escape_iri(element_iri)
    union = PathUnion(open_world=open_world)
    for link in configurations:
        if link_id and link.id != link_id:
            continue
        if link.is_direct:
            union.direct_paths.append(link.path)
            continue
        type_binding = f" BIND({escape_iri(link.id)} as ?link)" if bind_type else ""
        if direction in (None, LinkDirection.OUT):
            path = format_link_path(link.path, fixed, out_variable)
            marker = direction_binding(LinkDirection.OUT) if bind_direction else ""
            union.parts.append(f"{{ {path}{type_binding}{marker} }}")
        if direction in (None, LinkDirection.IN):
            path = format_link_path(link.path, in_variable, fixed)
            marker = direction_binding(LinkDirection.IN) if bind_direction else ""
            union.parts.append(f"{{ {path}{type_binding}{marker} }}")
    union.use_predicate_part = open_world or bool(union.direct_paths)
    return union


def links_pattern(
    configurations: Sequence[LinkConfiguration],
    *,
    open_world: bool,
) -> str:
    """Pattern binding ``?source ?type ?target`` for the links-info query."""
    parts = [
        f"{{ {format_link_path(link.path, '?source', '?target')} "
        f"BIND({escape_iri(link.id)} as ?type) }}"
        for link in configurations
        if not link.is_direct
    ]
    if open_world or any(link.is_direct for link in configurations):
        parts.append("{ ?source ?type ?target }")
    return join_union(parts)


def incoming_domain_parts(
    configurations: Sequence[LinkConfiguration],
    element_iri: str,
    type_pattern: str,
) -> list[str]:
    """
    Link-types-of clauses for incoming links of domain-restricted configurations.

    The domain applies to the source of a link, which for incoming links is
    the far end ``?inObject``. Each clause binds ``?configuration`` to the
    id of the configuration it checked.
    """
    fixed = escape_iri(element_iri)
    parts = []
    for link in configurations:
        if not link.domain:
            continue
        if link.is_direct:
            path = f"?inObject {escape_iri(link.path)} {fixed}"
        else:
            path = format_link_path(link.path, "?inObject", fixed)
        restriction = domain_restriction(type_pattern, "?inObject", link.domain)
        parts.append(
            f"{{ {path} {restriction} BIND({escape_iri(link.predicate)} as ?link)"
            f"{direction_binding(LinkDirection.IN)}"
            f" BIND({escape_iri(link.id)} as ?configuration) }}"
        )
    return parts


def link_statistics_patterns(
    configurations: Sequence[LinkConfiguration],
    element_iri: str,
    link_id: str,
    type_pattern: str = "",
) -> tuple[str, str]:
    """
    Outgoing and incoming patterns counting one logical link type.

    A configuration with a domain only counts outgoing links when the
    element lies in the domain, and incoming links whose source does.

    Returns:
        ``(out_pattern, in_pattern)`` binding ``?outObject`` and ``?inObject``
    """
    fixed = escape_iri(element_iri)
    matching = [link for link in configurations if link.id == link_id]
    if not matching:
        predicate = escape_iri(link_id)
        return (
            f"{fixed} {predicate} ?outObject",
            f"?inObject {predicate} {fixed}",
        )
    out_parts = []
    in_parts = []
    for link in matching:
        if link.is_direct:
            predicate = escape_iri(link.path)
            out_path = f"{fixed} {predicate} ?outObject"
            in_path = f"?inObject {predicate} {fixed}"
        else:
            out_path = format_link_path(link.path, fixed, "?outObject")
            in_path = format_link_path(link.path, "?inObject", fixed)
        if link.domain:
            out_path += " " + domain_restriction(type_pattern, fixed, link.domain)
            in_path += " " + domain_restriction(type_pattern, "?inObject", link.domain)
        out_parts.append(f"{{ {out_path} }}")
        in_parts.append(f"{{ {in_path} }}")
    return join_union(out_parts), join_union(in_parts)


def properties_pattern(
    configurations: Sequence[PropertyConfiguration],
    *,
    open_world: bool,
) -> str:
    """Pattern binding ``?propType ?propValue`` of ``?inst``."""
    parts = [
        f"{{ {format_property_path(prop.path, '?inst', '?propValue')} "
        f"BIND({escape_iri(prop.id)} as ?propType) }}"
        for prop in configurations
        if not prop.is_direct
    ]
    if open_world or any(prop.is_direct for prop in configurations):
        parts.append("{ ?inst ?propType ?propValue }")
    return join_union(parts)
