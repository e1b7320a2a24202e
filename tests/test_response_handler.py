"""Tests for mapping SPARQL results to diagram models."""

from conftest import bnode, lit, terms, uri

from kgdiagram.data.model import IriProperty, LinkCount, LiteralProperty, LocalizedString
from kgdiagram.data.sparql import response_handler
from kgdiagram.data.sparql.models import SparqlResponse
from kgdiagram.data.sparql.settings import LinkConfiguration, PropertyConfiguration

EX = "http://example.org/"
ALICE = EX + "Alice"
BOB = EX + "Bob"
KNOWS = EX + "knows"
PERSON = EX + "Person"


def response(*rows: dict) -> SparqlResponse:
    return SparqlResponse.from_json({"head": {"vars": []}, "results": {"bindings": list(rows)}})


def index(*configs) -> dict:
    result: dict = {}
    for config in configs:
        result.setdefault(config.predicate, []).append(config)
    return result


class TestDomainMatch:
    def test_missing_domain_matches_everything(self):
        assert response_handler.is_domain_match(None, [])
        assert response_handler.is_domain_match([], [PERSON])

    def test_overlapping_types(self):
        assert response_handler.is_domain_match([PERSON, EX + "Agent"], [EX + "Agent"])

    def test_disjoint_types(self):
        assert not response_handler.is_domain_match([PERSON], [EX + "Robot"])
        assert not response_handler.is_domain_match([PERSON], [])


class TestClassTree:
    def test_counts_add_up_along_the_tree(self):
        tree = response_handler.get_class_tree(response(
            {"class": uri(EX + "A"), "label": lit("A", "en"), "instcount": lit("1")},
            {"class": uri(EX + "B"), "parent": uri(EX + "A"), "instcount": lit("2")},
            {"class": uri(EX + "C"), "parent": uri(EX + "A"), "instcount": lit("3")},
        ))

        assert [node.id for node in tree] == [EX + "A"]
        root = tree[0]
        assert root.count == 6
        assert root.label == [LocalizedString(value="A", language="en")]
        assert [child.id for child in root.children] == [EX + "B", EX + "C"]

    def test_cycle_is_broken(self):
        tree = response_handler.get_class_tree(response(
            {"class": uri(EX + "X"), "parent": uri(EX + "Y")},
            {"class": uri(EX + "Y"), "parent": uri(EX + "X")},
            {"class": uri(EX + "Z"), "parent": uri(EX + "Z")},
        ))

        assert [node.id for node in tree] == [EX + "Z", EX + "X"]
        assert tree[0].children == []
        assert [child.id for child in tree[1].children] == [EX + "Y"]
        assert tree[1].children[0].children == []

    def test_class_with_two_parents_appears_once(self):
        tree = response_handler.get_class_tree(response(
            {"class": uri(EX + "D"), "parent": uri(EX + "A")},
            {"class": uri(EX + "D"), "parent": uri(EX + "B")},
        ))

        assert [node.id for node in tree] == [EX + "A", EX + "B"]
        assert [child.id for child in tree[0].children] == [EX + "D"]
        assert tree[1].children == []

    def test_unparseable_count_is_unknown(self):
        tree = response_handler.get_class_tree(response(
            {"class": uri(EX + "A"), "instcount": lit("many")},
        ))
        assert tree[0].count is None

    def test_infinite_count_is_unknown(self):
        tree = response_handler.get_class_tree(response(
            {"class": uri(EX + "A"), "instcount": lit("INF")},
        ))
        assert tree[0].count is None


class TestElementsInfo:
    rows = [
        terms(inst=uri(ALICE), **{"class": uri(PERSON)}),
        terms(inst=uri(ALICE), label=lit("Alice", "en")),
        terms(inst=uri(ALICE), propType=uri(EX + "name"), propValue=lit("Alice Smith")),
        terms(inst=uri(ALICE), propType=uri(EX + "age"), propValue=lit("42")),
        terms(inst=uri(ALICE), propType=uri(EX + "homepage"), propValue=uri("http://alice.example")),
    ]

    def test_open_world_keeps_every_predicate(self):
        elements = response_handler.get_elements_info(self.rows, {}, {}, True)

        alice = elements[ALICE]
        assert alice.types == [PERSON]
        assert alice.label == [LocalizedString(value="Alice", language="en")]
        assert set(alice.properties) == {EX + "name", EX + "age", EX + "homepage"}
        assert alice.properties[EX + "homepage"] == IriProperty(values=["http://alice.example"])

    def test_closed_world_drops_unconfigured_predicates(self):
        # deliberate policy: data of predicates no configuration mentions is hidden
        configs = index(PropertyConfiguration(id=EX + "fullName", path=EX + "name"))
        elements = response_handler.get_elements_info(self.rows, {}, configs, False)

        assert elements[ALICE].properties == {
            EX + "fullName": LiteralProperty(values=[LocalizedString(value="Alice Smith")]),
        }

    def test_domain_uses_fetched_types(self):
        configs = index(
            PropertyConfiguration(id=EX + "age", path=EX + "age", domain=[EX + "Adult"]),
        )
        without_type = response_handler.get_elements_info(self.rows, {}, configs, False)
        with_type = response_handler.get_elements_info(
            self.rows, {ALICE: [EX + "Adult"]}, configs, False
        )

        assert without_type[ALICE].properties == {}
        assert EX + "age" in with_type[ALICE].properties
        # fetched types only drive matching
        assert with_type[ALICE].types == [PERSON]

    def test_rows_without_inst_are_ignored(self):
        elements = response_handler.get_elements_info(
            [terms(label=lit("orphan"))], {}, {}, True
        )
        assert elements == {}


class TestLinksInfo:
    def test_identical_links_collapse(self):
        rows = [
            terms(source=uri(ALICE), type=uri(KNOWS), target=uri(BOB),
                  propType=uri(EX + "since"), propValue=lit("2001")),
            terms(source=uri(ALICE), type=uri(KNOWS), target=uri(BOB),
                  propType=uri(EX + "via"), propValue=lit("school")),
        ]
        links = response_handler.get_links_info(rows, {}, {}, True)

        assert len(links) == 1
        assert links[0].key == (KNOWS, ALICE, BOB)
        assert set(links[0].properties) == {EX + "since", EX + "via"}

    def test_closed_world_drops_unconfigured_links(self):
        rows = [terms(source=uri(ALICE), type=uri(KNOWS), target=uri(BOB))]
        configs = index(LinkConfiguration(id=EX + "friend", path=EX + "friendOf"))
        assert response_handler.get_links_info(rows, {}, configs, False) == []

    def test_one_predicate_several_configurations(self):
        rows = [terms(source=uri(ALICE), type=uri(KNOWS), target=uri(BOB))]
        configs = index(
            LinkConfiguration(id=EX + "acquaintance", path=KNOWS),
            LinkConfiguration(id=EX + "colleague", path=KNOWS, domain=[EX + "Employee"]),
        )
        links = response_handler.get_links_info(rows, {ALICE: [PERSON]}, configs, False)
        assert [link.link_type_id for link in links] == [EX + "acquaintance"]

        links = response_handler.get_links_info(rows, {ALICE: [EX + "Employee"]}, configs, False)
        assert [link.link_type_id for link in links] == [EX + "acquaintance", EX + "colleague"]

    def test_pattern_configuration_matches_by_id(self):
        rows = [terms(source=uri(ALICE), type=uri(EX + "friend"), target=uri(BOB))]
        configs = index(LinkConfiguration(id=EX + "friend", path="?source ex:a/ex:b ?target"))
        links = response_handler.get_links_info(rows, {}, configs, False)
        assert [link.link_type_id for link in links] == [EX + "friend"]


class TestLinkTypeIds:
    COLLEAGUE = EX + "colleague"

    def configs(self) -> dict:
        return index(
            LinkConfiguration(id=EX + "acquaintance", path=KNOWS),
            LinkConfiguration(id=self.COLLEAGUE, path=KNOWS, domain=[EX + "Employee"]),
        )

    def test_outgoing_links_match_the_element_types(self):
        rows = [terms(link=uri(KNOWS), direction=lit("out"))]
        ids = response_handler.get_link_type_ids(rows, [EX + "Employee"], self.configs(), False)
        assert ids == [EX + "acquaintance", self.COLLEAGUE]

    def test_incoming_links_ignore_the_element_types(self):
        rows = [terms(link=uri(KNOWS), direction=lit("in"))]
        ids = response_handler.get_link_type_ids(rows, [EX + "Employee"], self.configs(), False)
        assert ids == [EX + "acquaintance"]

    def test_checked_configuration_is_taken_as_is(self):
        rows = [
            terms(link=uri(KNOWS), direction=lit("in")),
            terms(link=uri(KNOWS), direction=lit("in"), configuration=uri(self.COLLEAGUE)),
        ]
        ids = response_handler.get_link_type_ids(rows, [PERSON], self.configs(), False)
        assert ids == [EX + "acquaintance", self.COLLEAGUE]

    def test_unconfigured_predicate_in_open_world(self):
        rows = [terms(link=uri(EX + "likes"), direction=lit("in"))]
        assert response_handler.get_link_type_ids(rows, [], {}, True) == [EX + "likes"]
        assert response_handler.get_link_type_ids(rows, [], {}, False) == []

def test_link_statistics():
    count = response_handler.get_link_statistics(
        response({"link": uri(KNOWS), "inCount": lit("3"), "outCount": lit("0")}), KNOWS
    )
    assert count == LinkCount(id=KNOWS, in_count=3, out_count=0)
    assert response_handler.get_link_statistics(response(), KNOWS) is None


def test_filtered_data_skips_literal_instances():
    elements = response_handler.get_filtered_data([
        terms(inst=uri(ALICE), label=lit("Alice")),
        terms(inst=lit("not an element")),
        terms(inst=bnode("b0")),
    ])
    assert set(elements) == {ALICE, "b0"}


def test_enriched_elements_take_first_image():
    elements = response_handler.get_elements_info(
        [terms(inst=uri(ALICE), label=lit("Alice"))], {}, {}, True
    )
    enriched = response_handler.get_enriched_elements_info(response(
        {"inst": uri(ALICE), "image": uri("http://img/1.png")},
        {"inst": uri(ALICE), "image": uri("http://img/2.png")},
    ), elements)
    assert enriched[ALICE].image == "http://img/1.png"
