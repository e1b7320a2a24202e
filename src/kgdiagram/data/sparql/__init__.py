"""
SPARQL data provider package.

This package provides:
- Query presets for common dataset schemas
- The query template resolver
- Encoded ids for anonymous nodes
- The SPARQL data provider and its chunking wrapper

Note: The providers are imported lazily to avoid circular imports with
the composite merge functions. Direct imports work as well:
    from kgdiagram.data.sparql.provider import SparqlDataProvider
"""

from kgdiagram.data.sparql.settings import (
    DBPEDIA_SETTINGS,
    OWL_RDFS_SETTINGS,
    OWL_STATS_SETTINGS,
    RDF_SETTINGS,
    WIKIDATA_SETTINGS,
    FullTextSearchSettings,
    LinkConfiguration,
    PropertyConfiguration,
    SparqlDataProviderSettings,
    get_preset,
)
from kgdiagram.data.sparql.templates import resolve_template


def __getattr__(name: str):
    """Lazy import for the provider classes."""
    if name in ("SparqlDataProvider", "SparqlDataProviderOptions"):
        from kgdiagram.data.sparql import provider
        return getattr(provider, name)
    if name == "ChunkedSparqlDataProvider":
        from kgdiagram.data.sparql.chunked import ChunkedSparqlDataProvider
        return ChunkedSparqlDataProvider
    if name == "SparqlClient":
        from kgdiagram.data.sparql.client import SparqlClient
        return SparqlClient
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "DBPEDIA_SETTINGS",
    "OWL_RDFS_SETTINGS",
    "OWL_STATS_SETTINGS",
    "RDF_SETTINGS",
    "WIKIDATA_SETTINGS",
    "FullTextSearchSettings",
    "LinkConfiguration",
    "PropertyConfiguration",
    "SparqlDataProviderSettings",
    "get_preset",
    "resolve_template",
    "SparqlDataProvider",
    "SparqlDataProviderOptions",
    "ChunkedSparqlDataProvider",
    "SparqlClient",
]
