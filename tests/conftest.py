"""Shared fixtures: an in-memory SPARQL endpoint served through httpx.MockTransport."""

from typing import Callable, Optional

import httpx
import pytest

from kgdiagram.data.sparql.client import SparqlClient
from kgdiagram.data.sparql.models import RdfTerm
from kgdiagram.data.sparql.provider import SparqlDataProvider, SparqlDataProviderOptions
from kgdiagram.data.sparql.settings import RDF_SETTINGS

ENDPOINT_URL = "http://sparql.test/query"
EX = "http://example.org/"


def uri(value: str) -> dict:
    return {"type": "uri", "value": value}


def lit(value: str, lang: Optional[str] = None) -> dict:
    term = {"type": "literal", "value": value}
    if lang:
        term["xml:lang"] = lang
    return term


def bnode(value: str) -> dict:
    return {"type": "bnode", "value": value}


def terms(**values: dict) -> dict[str, RdfTerm]:
    """A binding of parsed terms, for feeding mapping functions directly."""
    return {name: RdfTerm.model_validate(term) for name, term in values.items()}


class FakeEndpoint:
    """
    Records every query and answers from ``select`` / ``turtle`` callables.

    Both callables receive the query text.
    """

    def __init__(self):
        self.queries: list[str] = []
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.select: Callable[[str], list[dict]] = lambda query: []
        self.turtle: Callable[[str], str] = lambda query: ""

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            query = request.url.params.get("query", "")
        else:
            query = request.content.decode("utf-8")
        self.queries.append(query)
        self.requests.append(request)

        if self.status_code != 200:
            return httpx.Response(self.status_code, text="boom")
        if request.headers.get("accept") == "text/turtle":
            return httpx.Response(
                200,
                text=self.turtle(query),
                headers={"content-type": "text/turtle"},
            )
        return httpx.Response(200, json={
            "head": {"vars": []},
            "results": {"bindings": self.select(query)},
        })


@pytest.fixture
def endpoint() -> FakeEndpoint:
    return FakeEndpoint()


@pytest.fixture
def make_provider(endpoint: FakeEndpoint):
    """Factory for providers talking to the fake endpoint."""

    def factory(settings=RDF_SETTINGS, query_method="GET", **options) -> SparqlDataProvider:
        http = httpx.AsyncClient(transport=httpx.MockTransport(endpoint.handler))
        client = SparqlClient(ENDPOINT_URL, query_method, client=http, max_attempts=1)
        return SparqlDataProvider(
            SparqlDataProviderOptions(
                endpoint_url=ENDPOINT_URL,
                query_method=query_method,
                **options,
            ),
            settings,
            client,
        )

    return factory
