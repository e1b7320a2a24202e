"""
URI namespace utilities for SPARQL query construction.

Provides the well-known vocabularies used by the default query presets
and helpers to derive display names from IRIs.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Namespace:
    """RDF namespace with prefix and URI."""

    prefix: str
    uri: str

    def __getattr__(self, name: str) -> str:
        """Allow namespace.Property syntax for building URIs."""
        return f"{self.uri}{name}"

    def __getitem__(self, name: str) -> str:
        """Allow namespace['property'] syntax for building URIs."""
        return f"{self.uri}{name}"

    def term(self, name: str) -> str:
        """Build a URI for a term in this namespace."""
        return f"{self.uri}{name}"


# Standard namespaces
RDF = Namespace("rdf", "http://www.w3.org/1999/02/22-rdf-syntax-ns#")
RDFS = Namespace("rdfs", "http://www.w3.org/2000/01/rdf-schema#")
OWL = Namespace("owl", "http://www.w3.org/2002/07/owl#")
XSD = Namespace("xsd", "http://www.w3.org/2001/XMLSchema#")

# Wikidata
WD = Namespace("wd", "http://www.wikidata.org/entity/")
WDT = Namespace("wdt", "http://www.wikidata.org/prop/direct/")

# Terms minted by this library
KGDIAGRAM = Namespace("kgd", "http://kgdiagram.org/property/")

RDF_TYPE = RDF.term("type")
RDFS_LABEL = RDFS.term("label")
OWL_THING = OWL.term("Thing")
DATA_PROVIDER_PROPERTY = KGDIAGRAM.term("DataProvider")


def get_sparql_prefixes(*namespaces: Namespace) -> str:
    """
    Get SPARQL PREFIX declarations for the given namespaces.

    Args:
        namespaces: Namespaces to declare (rdf, rdfs and owl when omitted)

    Returns:
        String with one PREFIX declaration per line
    """
    selected = namespaces or (RDFS, RDF, OWL)
    return "".join(f"PREFIX {ns.prefix}: <{ns.uri}>\n" for ns in selected) + "\n"


def uri_to_name(uri: str) -> str:
    """
    Derive a human readable name from an IRI.

    Uses the fragment when present, otherwise the last non-empty path
    segment.
    """
    if "#" in uri:
        fragment = uri.rsplit("#", 1)[1]
        if fragment:
            return fragment
    segments = [s for s in uri.split("/") if s]
    return segments[-1] if segments else uri
