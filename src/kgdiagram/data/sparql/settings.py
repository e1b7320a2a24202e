"""
Dataset-schema specific settings for the SPARQL data provider.

Settings are immutable. Presets are module-level values derived from a
base with ``model_copy(update=...)``; callers customize them the same way.
Query templates use ``${name}`` placeholders, see
:func:`kgdiagram.data.sparql.templates.resolve_template`.
"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from kgdiagram.core.exceptions import ConfigurationError
from kgdiagram.data.sparql.namespaces import OWL, RDF, RDFS, WD, WDT, get_sparql_prefixes

# a configured path containing any SPARQL variable is a pattern, not a predicate
_VARIABLE_TOKEN = re.compile(r"[?$][a-zA-Z]+\b")


class LinkConfiguration(BaseModel):
    """
    Abstract link: exposes a predicate or a graph pattern as a diagram link.

    ``path`` is either a predicate IRI (direct configuration) or a pattern
    binding ``?source`` and ``?target``; a pattern may also bind
    ``?propType``/``?propValue`` to attach link properties.
    ``domain`` restricts the configuration to sources of those types.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    path: str
    domain: Optional[list[str]] = None

    @property
    def is_direct(self) -> bool:
        return _VARIABLE_TOKEN.search(self.path) is None

    @property
    def predicate(self) -> str:
        """Key under which raw query results are matched to this configuration."""
        return self.path if self.is_direct else self.id


class PropertyConfiguration(BaseModel):
    """
    Abstract property: a predicate or a pattern binding ``?inst`` and ``?value``.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    path: str
    domain: Optional[list[str]] = None

    @property
    def is_direct(self) -> bool:
        return _VARIABLE_TOKEN.search(self.path) is None

    @property
    def predicate(self) -> str:
        return self.path if self.is_direct else self.id


class FullTextSearchSettings(BaseModel):
    """
    Text search pattern.

    ``query_pattern`` receives ``${text}`` and ``${dataLabelProperty}`` and
    must bind ``?inst`` and a numeric ``?score``. With ``extract_label`` the
    IRI local name is available as ``?extractedLabel``.
    """

    model_config = ConfigDict(frozen=True)

    prefix: str = ""
    query_pattern: str = ""
    extract_label: bool = False


class SparqlDataProviderSettings(BaseModel):
    """Query templates and link/property abstractions of one dataset."""

    model_config = ConfigDict(frozen=True)

    default_prefix: str = ""
    schema_label_property: str = "rdfs:label"
    data_label_property: str = "rdfs:label"
    full_text_search: FullTextSearchSettings = Field(default_factory=FullTextSearchSettings)

    # SELECT ?class ?label ?parent ?instcount
    class_tree_query: str = ""
    # SELECT ?class ?label ?instcount; ${ids}
    class_info_query: str = ""
    # SELECT ?link ?label ?instcount; ${linkTypesPattern}
    link_types_query: str = ""
    link_types_pattern: str = ""
    # SELECT ?link ?label ?instcount; ${ids}
    link_types_info_query: str = ""
    # SELECT ?property ?label; ${ids}
    property_info_query: str = ""
    # CONSTRUCT; ${ids} ${dataLabelProperty} ${propertyConfigurations}
    element_info_query: str = ""
    # SELECT ?source ?type ?target ?propType ?propValue; ${ids} ${linkConfigurations}
    links_info_query: str = ""
    # binds ?image for ?inst and ?linkType
    image_query_pattern: str = ""
    # SELECT ?link ?direction ?configuration; ${elementIri} ${linkConfigurations}
    link_types_of_query: str = ""
    # SELECT ?link ?inCount ?outCount; ${linkId} ${elementIri}
    # ${linkConfigurationOut} ${linkConfigurationIn}
    # ${navigateElementFilterOut} ${navigateElementFilterIn}
    link_types_statistics_query: str = ""

    filter_ref_element_link_pattern: str = ""
    # binds the (transitive) types ?class of ?inst
    filter_type_pattern: str = "?inst rdf:type ?class"
    filter_element_info_pattern: str = ""
    filter_additional_restriction: str = ""

    link_configurations: list[LinkConfiguration] = Field(default_factory=list)
    open_world_links: bool = False
    property_configurations: list[PropertyConfiguration] = Field(default_factory=list)
    open_world_properties: bool = False


RDF_SETTINGS = SparqlDataProviderSettings(
    default_prefix=get_sparql_prefixes(RDFS, RDF, OWL),
    class_info_query="""
SELECT ?class ?label ?instcount WHERE {
    VALUES (?class) {${ids}}
    OPTIONAL { ?class ${schemaLabelProperty} ?label }
}""",
    link_types_query="""
SELECT DISTINCT ?link ?instcount ?label WHERE {
    ${linkTypesPattern}
    OPTIONAL { ?link ${schemaLabelProperty} ?label }
}""",
    link_types_info_query="""
SELECT ?link ?label WHERE {
    VALUES (?link) {${ids}}
    OPTIONAL { ?link ${schemaLabelProperty} ?label }
}""",
    property_info_query="""
SELECT ?property ?label WHERE {
    VALUES (?property) {${ids}}
    OPTIONAL { ?property ${schemaLabelProperty} ?label }
}""",
    element_info_query="""
CONSTRUCT {
    ?inst rdf:type ?class .
    ?inst rdfs:label ?label .
    ?inst ?propType ?propValue .
} WHERE {
    VALUES (?inst) {${ids}}
    OPTIONAL { ?inst a ?class }
    OPTIONAL { ?inst ${dataLabelProperty} ?label }
    OPTIONAL {
        ${propertyConfigurations}
        FILTER (isLiteral(?propValue))
    }
}""",
    links_info_query="""
SELECT ?source ?type ?target ?propType ?propValue
WHERE {
    VALUES (?source) {${ids}}
    VALUES (?target) {${ids}}
    ${linkConfigurations}
}""",
    image_query_pattern="""{ ?inst ?linkType ?image } UNION { [] ?linkType ?inst. BIND(?inst as ?image) }""",
    link_types_of_query="""
SELECT DISTINCT ?link ?direction ?configuration
WHERE {
    ${linkConfigurations}
}""",
    link_types_statistics_query="""
SELECT ?link ?outCount ?inCount
WHERE {
    {
        SELECT (${linkId} as ?link) (count(?outObject) as ?outCount) WHERE {
            ${linkConfigurationOut}
            ${navigateElementFilterOut}
        } LIMIT 101
    } {
        SELECT (${linkId} as ?link) (count(?inObject) as ?inCount) WHERE {
            ${linkConfigurationIn}
            ${navigateElementFilterIn}
        } LIMIT 101
    }
}""",
    filter_element_info_pattern="""
    OPTIONAL { ?inst rdf:type ?foundClass }
    BIND (coalesce(?foundClass, owl:Thing) as ?class)
    OPTIONAL { ?inst ${dataLabelProperty} ?label }""",
)


OWL_RDFS_SETTINGS = RDF_SETTINGS.model_copy(update={
    "full_text_search": FullTextSearchSettings(
        query_pattern="""
    OPTIONAL { ?inst ${dataLabelProperty} ?search1 }
    FILTER regex(COALESCE(str(?search1), str(?extractedLabel)), "${text}", "i")
    BIND(0 as ?score)""",
        extract_label=True,
    ),
    "class_tree_query": """
SELECT ?class ?label ?parent
WHERE {
    {
        ?class a rdfs:Class
    } UNION {
        ?class a owl:Class
    }
    FILTER ISIRI(?class)
    OPTIONAL { ?class ${schemaLabelProperty} ?label }
    OPTIONAL { ?class rdfs:subClassOf ?parent. FILTER ISIRI(?parent) }
}""",
    "link_types_pattern": """
    { ?link a rdf:Property } UNION { ?link a owl:ObjectProperty }""",
    "filter_type_pattern": "?inst a ?instType. ?instType rdfs:subClassOf* ?class",
})


OWL_STATS_SETTINGS = OWL_RDFS_SETTINGS.model_copy(update={
    "class_tree_query": """
SELECT ?class ?instcount ?label ?parent
WHERE {
    {
        SELECT ?class (count(?inst) as ?instcount)
        WHERE {
            ?inst rdf:type ?class.
            FILTER ISIRI(?class)
        } GROUP BY ?class
    } UNION {
        ?class rdf:type rdfs:Class
    } UNION {
        ?class rdf:type owl:Class
    }
    OPTIONAL { ?class ${schemaLabelProperty} ?label }
    OPTIONAL { ?class rdfs:subClassOf ?parent. FILTER ISIRI(?parent) }
}""",
})


DBPEDIA_SETTINGS = OWL_RDFS_SETTINGS.model_copy(update={
    "full_text_search": FullTextSearchSettings(
        prefix="PREFIX dbo: <http://dbpedia.org/ontology/>\n",
        query_pattern="""
    ?inst rdfs:label ?searchLabel.
    ?searchLabel bif:contains "${text}".
    ?inst dbo:wikiPageID ?origScore .
    BIND(0-?origScore as ?score)""",
    ),
    "class_tree_query": """
SELECT distinct ?class ?label ?parent WHERE {
    ?class rdfs:label ?label.
    OPTIONAL { ?class rdfs:subClassOf ?parent }
    ?root rdfs:subClassOf owl:Thing.
    ?class rdfs:subClassOf? | rdfs:subClassOf/rdfs:subClassOf ?root
}""",
    "element_info_query": """
CONSTRUCT {
    ?inst rdf:type ?class .
    ?inst rdfs:label ?label .
    ?inst ?propType ?propValue .
} WHERE {
    VALUES (?inst) {${ids}}
    ?inst a ?class .
    ?inst rdfs:label ?label .
    FILTER (!contains(str(?class), 'http://dbpedia.org/class/yago'))
    OPTIONAL {
        ${propertyConfigurations}
        FILTER (isLiteral(?propValue))
    }
}""",
    "filter_element_info_pattern": """
    OPTIONAL { ?inst rdf:type ?foundClass. FILTER (!contains(str(?foundClass), 'http://dbpedia.org/class/yago')) }
    BIND (coalesce(?foundClass, owl:Thing) as ?class)
    OPTIONAL { ?inst ${dataLabelProperty} ?label }""",
    "image_query_pattern": """{ ?inst ?linkType ?fullImage } UNION { [] ?linkType ?inst. BIND(?inst as ?fullImage) }
    BIND(CONCAT("https://commons.wikimedia.org/w/thumb.php?f=",
        STRAFTER(STR(?fullImage), "Special:FilePath/"), "&w=200") AS ?image)""",
})


WIKIDATA_SETTINGS = RDF_SETTINGS.model_copy(update={
    "default_prefix": get_sparql_prefixes(RDFS, RDF, WDT, WD, OWL),
    "full_text_search": FullTextSearchSettings(
        prefix="PREFIX bds: <http://www.bigdata.com/rdf/search#>\n",
        query_pattern="""
    ?inst rdfs:label ?searchLabel.
    SERVICE bds:search {
        ?searchLabel bds:search "${text}*" ;
                     bds:minRelevance '0.5' ;
                     bds:matchAllTerms 'true' .
    }
    BIND(STR(?inst) as ?strInst)
    BIND(IF(STRLEN(?strInst) > 33,
        0-<http://www.w3.org/2001/XMLSchema#integer>(SUBSTR(?strInst, 33)),
        -10000) as ?score)""",
    ),
    "class_tree_query": """
SELECT distinct ?class ?label ?parent WHERE {
    ?class rdfs:label ?label.
    { ?class wdt:P279 wd:Q35120. }
    UNION
    { ?parent wdt:P279 wd:Q35120.
      ?class wdt:P279 ?parent. }
    UNION
    { ?parent wdt:P279/wdt:P279 wd:Q35120.
      ?class wdt:P279 ?parent. }
}""",
    "link_types_pattern": """?link wdt:P279* wd:Q18616576.
    BIND(0 as ?instcount)""",
    "element_info_query": """
CONSTRUCT {
    ?inst rdf:type ?class .
    ?inst rdfs:label ?label .
    ?inst ?propType ?propValue .
} WHERE {
    VALUES (?inst) {${ids}}
    OPTIONAL { ?inst wdt:P31 ?class }
    OPTIONAL { ?inst rdfs:label ?label }
    OPTIONAL {
        ${propertyConfigurations}
        FILTER (isLiteral(?propValue))
    }
}""",
    "image_query_pattern": """{ ?inst ?linkType ?fullImage } UNION { ?inst wdt:P163/wdt:P18 ?fullImage }
    BIND(CONCAT("https://commons.wikimedia.org/w/thumb.php?f=",
        STRAFTER(STR(?fullImage), "Special:FilePath/"), "&w=200") AS ?image)""",
    "link_types_of_query": """
SELECT DISTINCT ?link ?direction ?configuration
WHERE {
    ${linkConfigurations}
    ?claim <http://wikiba.se/ontology#directClaim> ?link .
}""",
    "link_types_statistics_query": """
SELECT (${linkId} as ?link) (COUNT(?outObject) AS ?outCount) (COUNT(?inObject) AS ?inCount)
WHERE {
    {
        {
            SELECT DISTINCT ?outObject WHERE {
                ${linkConfigurationOut}
                FILTER(ISIRI(?outObject))
                ?outObject ?someprop ?someobj.
            }
            LIMIT 101
        }
    } UNION {
        {
            SELECT DISTINCT ?inObject WHERE {
                ${linkConfigurationIn}
                FILTER(ISIRI(?inObject))
                ?inObject ?someprop ?someobj.
            }
            LIMIT 101
        }
    }
}""",
    "filter_ref_element_link_pattern": "?claim <http://wikiba.se/ontology#directClaim> ?link .",
    "filter_type_pattern": "?inst wdt:P31 ?instType. ?instType wdt:P279* ?class",
    "filter_additional_restriction": """FILTER ISIRI(?inst)
    FILTER exists { ?inst ?someprop ?someobj }""",
    "filter_element_info_pattern": """
    OPTIONAL { ?inst wdt:P31 ?foundClass }
    BIND (coalesce(?foundClass, owl:Thing) as ?class)
    OPTIONAL { ?inst rdfs:label ?label }""",
})


PRESETS: dict[str, SparqlDataProviderSettings] = {
    "rdf": RDF_SETTINGS,
    "owl-rdfs": OWL_RDFS_SETTINGS,
    "owl-stats": OWL_STATS_SETTINGS,
    "dbpedia": DBPEDIA_SETTINGS,
    "wikidata": WIKIDATA_SETTINGS,
}


def get_preset(name: str) -> SparqlDataProviderSettings:
    """Look up a query preset by name."""
    try:
        return PRESETS[name.lower()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown settings preset: {name}",
            details={"available": sorted(PRESETS)},
        )
