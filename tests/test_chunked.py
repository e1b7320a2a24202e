"""Tests for splitting long id lists into several requests."""

import pytest

from kgdiagram.data.sparql.chunked import ChunkedSparqlDataProvider, break_by_length

EX = "http://example.org/"


def ids(count: int) -> list[str]:
    return [f"{EX}item{i:03d}" for i in range(count)]


def test_break_by_length():
    chunks = break_by_length(["aaa", "bbb", "ccc", "ddd"], 7)
    assert chunks == [["aaa", "bbb"], ["ccc", "ddd"]]


def test_break_by_length_keeps_oversized_items():
    assert break_by_length(["a" * 20, "b"], 5) == [["a" * 20], ["b"]]


def test_short_lists_are_not_split(make_provider):
    chunked = ChunkedSparqlDataProvider(make_provider(), max_chunk_length=1000)
    assert chunked.break_by_chunks(ids(3)) == [ids(3)]


def test_long_lists_are_split_for_get(make_provider):
    chunked = ChunkedSparqlDataProvider(make_provider(), max_chunk_length=100)
    chunks = chunked.break_by_chunks(ids(10))

    assert len(chunks) > 1
    assert [i for chunk in chunks for i in chunk] == ids(10)
    assert all(len(",".join(chunk)) <= 100 for chunk in chunks)


def test_post_requests_are_not_split(make_provider):
    chunked = ChunkedSparqlDataProvider(make_provider(query_method="POST"), max_chunk_length=100)
    assert chunked.break_by_chunks(ids(10)) == [ids(10)]


def test_many_to_many_pairs_every_chunk(make_provider):
    chunked = ChunkedSparqlDataProvider(make_provider(), max_chunk_length=60)
    # 26 characters per id, so half-length chunks hold one id each
    chunks = chunked.break_by_chunks(ids(3), many_to_many=True)

    assert len(chunks) == 6
    pairs = {frozenset(chunk) for chunk in chunks}
    for a in ids(3):
        for b in ids(3):
            assert any({a, b} <= pair for pair in pairs)


@pytest.mark.asyncio
async def test_element_info_merges_chunk_answers(endpoint, make_provider):
    def turtle(query):
        return "\n".join(
            f'<{element_id}> <http://www.w3.org/2000/01/rdf-schema#label> "{element_id[-3:]}" .'
            for element_id in ids(10)
            if f"<{element_id}>" in query
        )

    endpoint.turtle = turtle
    chunked = ChunkedSparqlDataProvider(make_provider(), max_chunk_length=100)
    elements = await chunked.element_info(ids(10))

    assert len(endpoint.queries) > 1
    assert set(elements) == set(ids(10))
    assert elements[ids(10)[7]].label[0].value == "007"
    assert elements[ids(10)[7]].sources is None
