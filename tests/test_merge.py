"""Tests for merging the answers of several data providers."""

from kgdiagram.data.composite.merge import (
    CompositeResponse,
    merge_class_info,
    merge_class_tree,
    merge_element_info,
    merge_link_types,
    merge_link_types_of,
    merge_links_info,
    merge_property_info,
)
from kgdiagram.data.model import (
    ClassModel,
    ElementModel,
    IriProperty,
    LinkCount,
    LinkModel,
    LinkType,
    LiteralProperty,
    LocalizedString,
    PropertyModel,
)
from kgdiagram.data.sparql.namespaces import DATA_PROVIDER_PROPERTY

EX = "http://example.org/"
ALICE = EX + "Alice"
BOB = EX + "Bob"
KNOWS = EX + "knows"

ALICE_EN = LocalizedString(value="Alice", language="en")
ALICE_RU = LocalizedString(value="Алиса", language="ru")


def answer(name: str, response, use_in_stats: bool = True) -> CompositeResponse:
    return CompositeResponse(data_source_name=name, response=response, use_in_stats=use_in_stats)


def alice_from(name: str, label: LocalizedString, **fields) -> CompositeResponse:
    return answer(name, {ALICE: ElementModel(id=ALICE, label=[label], **fields)})


class TestMergeElementInfo:
    def test_labels_and_sources_are_combined(self):
        merged = merge_element_info([
            alice_from("A", ALICE_EN),
            alice_from("B", ALICE_RU),
        ])

        alice = merged[ALICE]
        assert alice.label == [ALICE_EN, ALICE_RU]
        assert alice.sources == ["A", "B"]
        provider_values = alice.properties[DATA_PROVIDER_PROPERTY].values
        assert [value.value for value in provider_values] == ["A", "B"]

    def test_order_does_not_matter(self):
        forward = merge_element_info([alice_from("A", ALICE_EN), alice_from("B", ALICE_RU)])
        backward = merge_element_info([alice_from("B", ALICE_RU), alice_from("A", ALICE_EN)])

        assert forward == backward

    def test_merging_a_response_with_itself(self):
        single = merge_element_info([alice_from("A", ALICE_EN)])
        twice = merge_element_info([alice_from("A", ALICE_EN), alice_from("A", ALICE_EN)])
        assert twice == single

    def test_failed_sources_are_ignored(self):
        merged = merge_element_info([
            alice_from("A", ALICE_EN),
            CompositeResponse(data_source_name="B", response=None, error=RuntimeError("down")),
        ])
        assert merged[ALICE].sources == ["A"]

    def test_types_and_properties_union(self):
        merged = merge_element_info([
            alice_from("A", ALICE_EN, types=[EX + "Person"], properties={
                EX + "knows": IriProperty(values=[BOB]),
            }),
            alice_from("B", ALICE_EN, types=[EX + "Agent"], properties={
                EX + "knows": IriProperty(values=[EX + "Carol"]),
            }),
        ])

        alice = merged[ALICE]
        assert alice.types == [EX + "Person", EX + "Agent"]
        assert alice.properties[EX + "knows"] == IriProperty(values=[BOB, EX + "Carol"])

    def test_first_image_wins(self):
        merged = merge_element_info([
            alice_from("A", ALICE_EN),
            alice_from("B", ALICE_EN, image="http://img/b.png"),
            alice_from("C", ALICE_EN, image="http://img/c.png"),
        ])
        assert merged[ALICE].image == "http://img/b.png"

    def test_without_provenance(self):
        merged = merge_element_info(
            [alice_from("A", ALICE_EN), alice_from("B", ALICE_RU)],
            tag_provenance=False,
        )
        assert merged[ALICE].sources is None
        assert DATA_PROVIDER_PROPERTY not in merged[ALICE].properties

    def test_inputs_are_not_modified(self):
        original = alice_from("A", ALICE_EN)
        merge_element_info([original, alice_from("B", ALICE_RU)])
        assert original.response[ALICE].label == [ALICE_EN]
        assert original.response[ALICE].sources is None


class TestMergeClassTree:
    def test_children_from_both_sources(self):
        merged = merge_class_tree([
            answer("1", [ClassModel(id=EX + "A", count=5, children=[ClassModel(id=EX + "B", count=2)])]),
            answer("2", [ClassModel(id=EX + "A", count=3, children=[ClassModel(id=EX + "C", count=1)])]),
        ])

        assert [node.id for node in merged] == [EX + "A"]
        root = merged[0]
        assert root.count == 8
        assert sorted(child.id for child in root.children) == [EX + "B", EX + "C"]

    def test_former_root_becomes_child(self):
        merged = merge_class_tree([
            answer("1", [ClassModel(id=EX + "A"), ClassModel(id=EX + "B")]),
            answer("2", [ClassModel(id=EX + "A", children=[ClassModel(id=EX + "B")])]),
        ])

        assert [node.id for node in merged] == [EX + "A"]
        assert [child.id for child in merged[0].children] == [EX + "B"]

    def test_counts_of_sources_outside_statistics_are_ignored(self):
        merged = merge_class_tree([
            answer("1", [ClassModel(id=EX + "A", count=5)]),
            answer("2", [ClassModel(id=EX + "A", count=100)], use_in_stats=False),
        ])
        assert merged[0].count == 5

    def test_labels_are_merged(self):
        merged = merge_class_tree([
            answer("1", [ClassModel(id=EX + "A", label=[ALICE_EN])]),
            answer("2", [ClassModel(id=EX + "A", label=[ALICE_RU, ALICE_EN])]),
        ])
        assert merged[0].label == [ALICE_EN, ALICE_RU]

    def test_labels_do_not_depend_on_source_order(self):
        trees = [
            answer("1", [ClassModel(id=EX + "A", label=[ALICE_RU])]),
            answer("2", [ClassModel(id=EX + "A", label=[ALICE_EN])]),
        ]
        assert merge_class_tree(trees) == merge_class_tree(trees[::-1])


def test_merge_class_info():
    merged = merge_class_info([
        answer("1", [ClassModel(id=EX + "A", count=1)]),
        answer("2", [ClassModel(id=EX + "A", count=2), ClassModel(id=EX + "B")]),
    ])
    assert [(model.id, model.count) for model in merged] == [(EX + "A", 3), (EX + "B", None)]


def test_merge_property_info():
    merged = merge_property_info([
        answer("1", {EX + "age": PropertyModel(id=EX + "age", label=[ALICE_EN])}),
        answer("2", {EX + "age": PropertyModel(id=EX + "age", label=[ALICE_RU])}),
    ])
    assert merged[EX + "age"].label == [ALICE_EN, ALICE_RU]


def test_merge_link_types_sums_counts():
    merged = merge_link_types([
        answer("1", [LinkType(id=KNOWS, count=2)]),
        answer("2", [LinkType(id=KNOWS), LinkType(id=EX + "likes", count=1)]),
    ])
    assert [(model.id, model.count) for model in merged] == [(KNOWS, 2), (EX + "likes", 1)]


def test_merge_links_info_deduplicates_across_sources():
    since = {EX + "since": LiteralProperty(values=[LocalizedString(value="2001")])}
    via = {EX + "via": LiteralProperty(values=[LocalizedString(value="school")])}
    merged = merge_links_info([
        answer("1", [LinkModel(link_type_id=KNOWS, source_id=ALICE, target_id=BOB, properties=since)]),
        answer("2", [
            LinkModel(link_type_id=KNOWS, source_id=ALICE, target_id=BOB, properties=via),
            LinkModel(link_type_id=KNOWS, source_id=BOB, target_id=ALICE),
        ]),
    ])

    assert [link.key for link in merged] == [(KNOWS, ALICE, BOB), (KNOWS, BOB, ALICE)]
    assert set(merged[0].properties) == {EX + "since", EX + "via"}


def test_merge_link_types_of_sums_counts():
    merged = merge_link_types_of([
        answer("1", [LinkCount(id=KNOWS, in_count=1, out_count=2)]),
        answer("2", [LinkCount(id=KNOWS, in_count=3)]),
    ])
    assert merged == [LinkCount(id=KNOWS, in_count=4, out_count=2)]


def test_merges_are_order_independent():
    trees = [
        answer("1", [ClassModel(id=EX + "A", count=5, children=[ClassModel(id=EX + "B", count=2)])]),
        answer("2", [ClassModel(id=EX + "B", count=1, children=[ClassModel(id=EX + "C")])]),
    ]
    assert merge_class_tree(trees) == merge_class_tree(trees[::-1])

    links = [
        answer("1", [LinkModel(link_type_id=KNOWS, source_id=ALICE, target_id=BOB)]),
        answer("2", [
            LinkModel(link_type_id=KNOWS, source_id=BOB, target_id=ALICE),
            LinkModel(link_type_id=KNOWS, source_id=ALICE, target_id=BOB),
        ]),
    ]
    assert {link.key for link in merge_links_info(links)} == {
        link.key for link in merge_links_info(links[::-1])
    }

    counts = [
        answer("1", [LinkCount(id=KNOWS, in_count=1)]),
        answer("2", [LinkCount(id=KNOWS, out_count=4), LinkCount(id=EX + "likes", in_count=2)]),
    ]
    assert sorted(merge_link_types_of(counts), key=lambda c: c.id) == sorted(
        merge_link_types_of(counts[::-1]), key=lambda c: c.id
    )
