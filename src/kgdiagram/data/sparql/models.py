"""
Raw SPARQL result shapes.

Terms follow the W3C SPARQL 1.1 JSON results format. A binding is one
result row, mapping variable names to terms.
"""

from enum import Enum
from typing import Any, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from kgdiagram.core.exceptions import QueryExecutionError


class RdfTerm(BaseModel):
    """An IRI, literal or blank node as returned by an endpoint."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: str
    value: str
    lang: Optional[str] = Field(None, alias="xml:lang")
    datatype: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        # SPARQL 1.0 JSON results use "typed-literal"
        if value == "typed-literal":
            return "literal"
        return value

    @property
    def is_iri(self) -> bool:
        return self.type == "uri"

    @property
    def is_blank(self) -> bool:
        return self.type == "bnode"

    @property
    def is_literal(self) -> bool:
        return self.type == "literal"

    @classmethod
    def iri(cls, value: str) -> "RdfTerm":
        return cls(type="uri", value=value)

    @classmethod
    def blank(cls, value: str) -> "RdfTerm":
        return cls(type="bnode", value=value)

    @classmethod
    def literal(
        cls,
        value: str,
        lang: Optional[str] = None,
        datatype: Optional[str] = None,
    ) -> "RdfTerm":
        return cls(type="literal", value=value, lang=lang, datatype=datatype)


Binding = dict[str, RdfTerm]


class Triple(NamedTuple):
    subject: RdfTerm
    predicate: RdfTerm
    object: RdfTerm


class SparqlResponse(BaseModel):
    """Parsed ``application/sparql-results+json`` document."""

    variables: list[str] = Field(default_factory=list)
    bindings: list[Binding] = Field(default_factory=list)
    boolean: Optional[bool] = None

    @classmethod
    def from_json(cls, data: Any) -> "SparqlResponse":
        if not isinstance(data, dict):
            raise QueryExecutionError("Malformed SPARQL results document")
        head = data.get("head") or {}
        results = data.get("results") or {}
        try:
            return cls(
                variables=head.get("vars", []),
                bindings=results.get("bindings", []),
                boolean=data.get("boolean"),
            )
        except ValueError as e:
            raise QueryExecutionError(
                f"Malformed SPARQL results document: {e}",
                cause=e,
            ) from e


class BlankNodeShape(str, Enum):
    """How an anonymous node is attached to the rest of the graph."""

    SIMPLE = "simple"
    LIST_HEAD = "list-head"


class BlankBinding(BaseModel):
    """
    One edge touching an anonymous node.

    ``inst`` is the per-call handle of the anonymous node; every other
    field is part of the node's structural identity.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    inst: RdfTerm
    class_: Optional[RdfTerm] = Field(None, alias="class")
    label: Optional[RdfTerm] = None
    blank_trg_prop: Optional[RdfTerm] = Field(None, alias="blankTrgProp")
    blank_trg: Optional[RdfTerm] = Field(None, alias="blankTrg")
    blank_src: Optional[RdfTerm] = Field(None, alias="blankSrc")
    blank_src_prop: Optional[RdfTerm] = Field(None, alias="blankSrcProp")
    blank_type: BlankNodeShape = Field(BlankNodeShape.SIMPLE, alias="blankType")

    @classmethod
    def from_binding(cls, binding: Binding) -> "BlankBinding":
        shape = binding.get("blankType")
        return cls(
            inst=binding["inst"],
            class_=binding.get("class"),
            label=binding.get("label"),
            blank_trg_prop=binding.get("blankTrgProp"),
            blank_trg=binding.get("blankTrg"),
            blank_src=binding.get("blankSrc"),
            blank_src_prop=binding.get("blankSrcProp"),
            blank_type=BlankNodeShape(shape.value) if shape else BlankNodeShape.SIMPLE,
        )

    def to_element_binding(self) -> Binding:
        binding: Binding = {"inst": self.inst}
        if self.class_ is not None:
            binding["class"] = self.class_
        if self.label is not None:
            binding["label"] = self.label
        return binding


def is_blank_binding(binding: Binding) -> bool:
    inst = binding.get("inst")
    return inst is not None and inst.is_blank
