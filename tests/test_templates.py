"""Tests for query template resolution and union builders."""

from kgdiagram.data.model import LinkDirection
from kgdiagram.data.sparql.settings import LinkConfiguration, PropertyConfiguration
from kgdiagram.data.sparql.templates import (
    NO_MATCH_PATTERN,
    domain_restriction,
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

EX = "http://example.org/"
ALICE = EX + "Alice"
KNOWS = EX + "knows"


class TestResolveTemplate:
    def test_replaces_every_occurrence(self):
        result = resolve_template("${a} ${b} ${a}", {"a": "x", "b": "y"})
        assert result == "x y x"

    def test_unknown_tokens_stay_in_place(self):
        assert resolve_template("?s ${missing} ?o", {"other": "x"}) == "?s ${missing} ?o"

    def test_empty_values_are_not_substituted(self):
        assert resolve_template("${a}", {"a": ""}) == "${a}"
        assert resolve_template("${a}", {"a": None}) == "${a}"

    def test_no_substitutions(self):
        assert resolve_template("SELECT * WHERE {}", {}) == "SELECT * WHERE {}"


def test_escape_literal():
    assert escape_literal('say "hi"\\\n') == 'say \\"hi\\"\\\\\\n'


def test_format_values():
    assert format_values([ALICE, KNOWS]) == f"(<{ALICE}>) (<{KNOWS}>)"


def test_format_type_pattern_pins_class():
    pattern = format_type_pattern("?inst rdf:type ?class", EX + "Person")
    assert pattern == f"?inst rdf:type <{EX}Person>"


def test_join_union_of_nothing_matches_nothing():
    assert join_union([]) == NO_MATCH_PATTERN
    assert join_union(["{ a }", "{ b }"]) == "{ a }\n    UNION\n    { b }"


def test_extract_label_pattern_binds_label():
    pattern = extract_label_pattern("?inst", "?extractedLabel")
    assert "str( ?inst )" in pattern
    assert pattern.rstrip().endswith("as ?extractedLabel)")


class TestLinkUnion:
    def test_open_world_without_configurations_uses_the_link_id(self):
        union = link_union([], ALICE, open_world=True, link_id=KNOWS)
        assert union.parts == []
        assert union.use_predicate_part
        assert union.predicate(KNOWS) == f"<{KNOWS}>"

    def test_open_world_without_link_id_uses_the_variable(self):
        union = link_union([], ALICE, open_world=True)
        assert union.predicate(None) == "?link"

    def test_pattern_configuration_both_directions(self):
        config = LinkConfiguration(id=KNOWS, path="?source ex:friend/ex:of ?target")
        union = link_union([config], ALICE, open_world=False, link_id=KNOWS)
        assert union.parts == [
            f"{{ <{ALICE}> ex:friend/ex:of ?inst }}",
            f"{{ ?inst ex:friend/ex:of <{ALICE}> }}",
        ]
        assert not union.use_predicate_part

    def test_pattern_configuration_one_direction(self):
        config = LinkConfiguration(id=KNOWS, path="?source ex:friend ?target")
        union = link_union(
            [config], ALICE, open_world=False, direction=LinkDirection.IN
        )
        assert union.parts == [f"{{ ?inst ex:friend <{ALICE}> }}"]

    def test_bind_type_adds_configuration_id(self):
        config = LinkConfiguration(id=KNOWS, path="?source ex:friend ?target")
        union = link_union(
            [config],
            ALICE,
            open_world=False,
            out_variable="?outObject",
            in_variable="?inObject",
            bind_type=True,
        )
        assert union.parts[0] == f"{{ <{ALICE}> ex:friend ?outObject BIND(<{KNOWS}> as ?link) }}"

    def test_direct_configurations_form_an_alternative_path(self):
        configs = [
            LinkConfiguration(id=EX + "a", path=EX + "p"),
            LinkConfiguration(id=EX + "b", path=EX + "q"),
        ]
        union = link_union(configs, ALICE, open_world=False)
        assert union.parts == []
        assert union.use_predicate_part
        assert union.predicate(None) == f"<{EX}p>|<{EX}q>"

    def test_other_configurations_are_skipped_for_a_link_id(self):
        configs = [
            LinkConfiguration(id=EX + "a", path="?source ex:a ?target"),
            LinkConfiguration(id=EX + "b", path="?source ex:b ?target"),
        ]
        union = link_union(configs, ALICE, open_world=False, link_id=EX + "b")
        assert all("ex:b" in part for part in union.parts)
        assert len(union.parts) == 2


def test_links_pattern_closed_world_pattern_only():
    config = LinkConfiguration(id=KNOWS, path="?source ex:friend ?target")
    pattern = links_pattern([config], open_world=False)
    assert pattern == f"{{ ?source ex:friend ?target BIND(<{KNOWS}> as ?type) }}"


def test_links_pattern_open_world_adds_generic_branch():
    pattern = links_pattern([], open_world=True)
    assert pattern == "{ ?source ?type ?target }"


def test_links_pattern_closed_world_without_configurations():
    assert links_pattern([], open_world=False) == NO_MATCH_PATTERN


def test_properties_pattern_with_direct_configuration():
    configs = [
        PropertyConfiguration(id=EX + "name", path=EX + "name"),
        PropertyConfiguration(id=EX + "city", path="?inst ex:address/ex:city ?value"),
    ]
    pattern = properties_pattern(configs, open_world=False)
    assert f"{{ ?inst ex:address/ex:city ?propValue BIND(<{EX}city> as ?propType) }}" in pattern
    assert "{ ?inst ?propType ?propValue }" in pattern


def test_link_statistics_patterns_for_unconfigured_link():
    out_pattern, in_pattern = link_statistics_patterns([], ALICE, KNOWS)
    assert out_pattern == f"<{ALICE}> <{KNOWS}> ?outObject"
    assert in_pattern == f"?inObject <{KNOWS}> <{ALICE}>"


def test_link_statistics_patterns_for_configured_link():
    config = LinkConfiguration(id=KNOWS, path="?source ex:friend ?target")
    out_pattern, in_pattern = link_statistics_patterns([config], ALICE, KNOWS)
    assert out_pattern == f"{{ <{ALICE}> ex:friend ?outObject }}"
    assert in_pattern == f"{{ ?inObject ex:friend <{ALICE}> }}"


def test_link_statistics_patterns_restrict_the_link_source():
    config = LinkConfiguration(id=EX + "colleague", path=KNOWS, domain=[EX + "Employee"])
    out_pattern, in_pattern = link_statistics_patterns(
        [config], ALICE, EX + "colleague", "?inst rdf:type ?class"
    )
    restriction = f"VALUES (?domainClass) {{(<{EX}Employee>)}}"
    assert out_pattern == (
        f"{{ <{ALICE}> <{KNOWS}> ?outObject FILTER EXISTS {{ {restriction} "
        f"<{ALICE}> rdf:type ?domainClass }} }}"
    )
    assert in_pattern == (
        f"{{ ?inObject <{KNOWS}> <{ALICE}> FILTER EXISTS {{ {restriction} "
        f"?inObject rdf:type ?domainClass }} }}"
    )


def test_domain_restriction_without_type_pattern_matches_nothing():
    assert domain_restriction("", "?inObject", [EX + "Employee"]) == NO_MATCH_PATTERN


def test_domain_restriction_keeps_other_variables():
    pattern = "?inst a ?instType. ?instType rdfs:subClassOf* ?class"
    restriction = domain_restriction(pattern, "?inObject", [EX + "Employee"])
    assert "?inObject a ?instType. ?instType rdfs:subClassOf* ?domainClass" in restriction


def test_incoming_domain_parts_only_for_restricted_configurations():
    configs = [
        LinkConfiguration(id=EX + "acquaintance", path=KNOWS),
        LinkConfiguration(id=EX + "colleague", path=KNOWS, domain=[EX + "Employee"]),
    ]
    (part,) = incoming_domain_parts(configs, ALICE, "?inst rdf:type ?class")

    assert part.startswith(f"{{ ?inObject <{KNOWS}> <{ALICE}> FILTER EXISTS")
    assert f"BIND(<{KNOWS}> as ?link)" in part
    assert 'BIND("in" as ?direction)' in part
    assert f"BIND(<{EX}colleague> as ?configuration)" in part


def test_link_union_binds_direction():
    config = LinkConfiguration(id=KNOWS, path="?source ex:friend ?target")
    union = link_union([config], ALICE, open_world=False, bind_direction=True)
    assert union.parts == [
        f'{{ <{ALICE}> ex:friend ?inst BIND("out" as ?direction) }}',
        f'{{ ?inst ex:friend <{ALICE}> BIND("in" as ?direction) }}',
    ]
