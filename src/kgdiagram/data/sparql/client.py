"""
Async SPARQL protocol client.

Sends SELECT and CONSTRUCT queries to a SPARQL endpoint over HTTP and
converts the answers into :class:`SparqlResponse` and triples.
"""

from typing import Callable, Literal, Optional

import httpx
import structlog
from rdflib import BNode, Graph, Literal as RdfLiteral, URIRef
from rdflib.term import Node
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from kgdiagram.core.exceptions import QueryExecutionError
from kgdiagram.data.sparql.models import RdfTerm, SparqlResponse, Triple

logger = structlog.get_logger(__name__)

SparqlQueryMethod = Literal["GET", "POST"]
TripleParser = Callable[[str, str], list[Triple]]

SELECT_ACCEPT = "application/sparql-results+json"
CONSTRUCT_ACCEPT = "text/turtle"

_RDF_FORMATS = {
    "text/turtle": "turtle",
    "application/x-turtle": "turtle",
    "application/n-triples": "nt",
    "text/plain": "nt",
    "application/rdf+xml": "xml",
    "application/ld+json": "json-ld",
    "text/n3": "n3",
}


def _to_term(node: Node) -> RdfTerm:
    if isinstance(node, URIRef):
        return RdfTerm.iri(str(node))
    if isinstance(node, BNode):
        return RdfTerm.blank(str(node))
    if isinstance(node, RdfLiteral):
        return RdfTerm.literal(
            str(node),
            lang=node.language,
            datatype=str(node.datatype) if node.datatype else None,
        )
    raise QueryExecutionError(f"Unsupported RDF term: {node!r}")


def parse_triples(body: str, content_type: str) -> list[Triple]:
    """
    Parse an RDF document into triples with rdflib.

    Args:
        body: Serialized graph
        content_type: Response media type; Turtle is assumed when unknown

    Returns:
        Triples in document order
    """
    media_type = content_type.split(";", 1)[0].strip().lower()
    rdf_format = _RDF_FORMATS.get(media_type, "turtle")
    graph = Graph()
    try:
        graph.parse(data=body, format=rdf_format)
    except Exception as e:
        raise QueryExecutionError(
            f"Malformed RDF document: {e}",
            details={"format": rdf_format},
            cause=e,
        ) from e
    return [Triple(_to_term(s), _to_term(p), _to_term(o)) for s, p, o in graph]


class SparqlClient:
    """
    HTTP client for one SPARQL endpoint.

    Transport failures are retried; an endpoint answering with a non-2xx
    status fails immediately with :class:`QueryExecutionError`.
    """

    def __init__(
        self,
        endpoint_url: str,
        query_method: SparqlQueryMethod = "GET",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        max_attempts: int = 3,
        triple_parser: TripleParser = parse_triples,
    ):
        """
        Initialize the client.

        Args:
            endpoint_url: SPARQL query endpoint
            query_method: GET sends ``?query=``, POST sends the raw query body
            client: HTTP client to use; one is created (and owned) when omitted
            timeout: Timeout for the owned client, in seconds
            max_attempts: Attempts per query on transport failures
            triple_parser: Converts CONSTRUCT answers into triples
        """
        self.endpoint_url = endpoint_url
        self.query_method = query_method
        self.max_attempts = max_attempts
        self.triple_parser = triple_parser
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def select(self, query: str) -> SparqlResponse:
        response = await self._execute(query, SELECT_ACCEPT)
        try:
            data = response.json()
        except ValueError as e:
            raise QueryExecutionError(
                "SPARQL endpoint returned invalid JSON",
                endpoint=self.endpoint_url,
                status_code=response.status_code,
                response=response,
                cause=e,
            ) from e
        return SparqlResponse.from_json(data)

    async def construct(self, query: str) -> list[Triple]:
        response = await self._execute(query, CONSTRUCT_ACCEPT)
        content_type = response.headers.get("content-type", CONSTRUCT_ACCEPT)
        return self.triple_parser(response.text, content_type)

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "SparqlClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _execute(self, query: str, accept: str) -> httpx.Response:
        logger.debug(
            "Executing SPARQL query",
            endpoint=self.endpoint_url,
            method=self.query_method,
            query=query,
        )
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(httpx.TransportError),
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=0.2, max=2),
                reraise=True,
            ):
                with attempt:
                    response = await self._send(query, accept)
        except httpx.TransportError as e:
            logger.error(
                "SPARQL request failed",
                endpoint=self.endpoint_url,
                error=str(e),
            )
            raise QueryExecutionError(
                f"SPARQL request failed: {e}",
                endpoint=self.endpoint_url,
                cause=e,
            ) from e

        if not response.is_success:
            logger.error(
                "SPARQL query rejected",
                endpoint=self.endpoint_url,
                status=response.status_code,
                response=response.text[:500],
            )
            raise QueryExecutionError(
                response.reason_phrase,
                endpoint=self.endpoint_url,
                status_code=response.status_code,
                response=response,
            )
        return response

    async def _send(self, query: str, accept: str) -> httpx.Response:
        if self.query_method == "GET":
            return await self.client.get(
                self.endpoint_url,
                params={"query": query},
                headers={"Accept": accept},
            )
        return await self.client.post(
            self.endpoint_url,
            content=query.encode("utf-8"),
            headers={
                "Accept": accept,
                "Content-Type": "application/sparql-query; charset=UTF-8",
            },
        )
