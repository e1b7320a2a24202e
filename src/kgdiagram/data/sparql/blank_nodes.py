"""
Anonymous node support.

A blank node has no identifier that survives between queries, so the
diagram refers to it by the set of edges that define it: the structural
part of its bindings is serialized canonically and percent-escaped under
the ``sparql-blank:`` prefix. Decoding such an id gives the bindings back,
which lets element, link and search requests about anonymous nodes be
answered without touching the endpoint.

Nested anonymous targets (RDF lists, OWL restrictions) are resolved
before their parent is encoded, since the child's encoded id becomes part
of the parent's payload. Resolution goes at most ``MAX_RECURSION_DEPTH``
levels deep; deeper targets keep their raw reference.
"""

import asyncio
import json
from typing import Awaitable, Callable, Iterable, Optional, Sequence
from urllib.parse import quote, unquote

import structlog

from kgdiagram.data.model import (
    ElementIri,
    ElementTypeIri,
    FilterParams,
    LinkCount,
    LinkDirection,
)
from kgdiagram.data.sparql.models import (
    BlankBinding,
    BlankNodeShape,
    Binding,
    RdfTerm,
    SparqlResponse,
    is_blank_binding,
)
from kgdiagram.data.sparql.namespaces import uri_to_name

logger = structlog.get_logger(__name__)

ENCODED_PREFIX = "sparql-blank:"
MAX_RECURSION_DEPTH = 3

BLANK_NODE_QUERY_VARIABLES = "?blankTrgProp ?blankTrg ?blankSrc ?blankSrcProp ?blankType"

BLANK_NODE_QUERY = """
    OPTIONAL {
        FILTER (ISBLANK(?inst)).
        {
            ?inst ?blankTrgProp ?blankTrg.
            ?blankSrc ?blankSrcProp ?inst.
            FILTER NOT EXISTS { ?inst rdf:first _:smth1 }.
            BIND("simple" as ?blankType)
        } UNION {
            ?inst rdf:rest*/rdf:first ?blankTrg.
            ?blankSrc ?blankSrcProp ?inst.
            _:smth2 rdf:first ?blankTrg.
            BIND(?blankSrcProp as ?blankTrgProp)
            BIND("list-head" as ?blankType)
            FILTER NOT EXISTS { _:smth3 rdf:rest ?inst }.
        } UNION {
            ?listHead rdf:rest* ?inst.
            FILTER NOT EXISTS { _:smth4 rdf:rest ?listHead }.

            ?listHead rdf:rest*/rdf:first ?blankTrg.
            ?blankSrc ?blankSrcProp ?listHead.
            _:smth5 rdf:first ?blankTrg.
            BIND(?blankSrcProp as ?blankTrgProp)
            BIND("list-head" as ?blankType)
        }
    }
"""

BlankQueryFunction = Callable[[str], Awaitable[SparqlResponse]]


def is_encoded_blank(element_id: str) -> bool:
    return element_id.startswith(ENCODED_PREFIX)


def _canonical(binding: BlankBinding) -> str:
    payload = binding.model_dump(
        mode="json",
        by_alias=True,
        exclude_none=True,
        exclude={"inst"},
    )
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def encode_id(bindings: Iterable[BlankBinding]) -> str:
    """
    Encode the defining bindings of one anonymous node.

    Structurally identical bindings collapse and the result does not
    depend on input order.
    """
    canonical = sorted({_canonical(binding) for binding in bindings})
    payload = "[" + ",".join(canonical) + "]"
    return ENCODED_PREFIX + quote(payload, safe="")


def decode_id(element_id: str) -> Optional[list[BlankBinding]]:
    """
    Decode an id produced by :func:`encode_id`.

    Every binding gets ``element_id`` back as its instance handle.

    Returns:
        The bindings, or ``None`` if ``element_id`` is not an encoded blank id
    """
    if not is_encoded_blank(element_id):
        return None
    try:
        items = json.loads(unquote(element_id[len(ENCODED_PREFIX):]))
        if not isinstance(items, list):
            raise ValueError("encoded payload is not a list")
        inst = RdfTerm.iri(element_id)
        return [BlankBinding.model_validate({**item, "inst": inst}) for item in items]
    except (ValueError, TypeError) as e:
        logger.warning("Undecodable blank node id", element_id=element_id, error=str(e))
        return None


def create_label_for_blank_binding(binding: BlankBinding) -> RdfTerm:
    if binding.blank_type == BlankNodeShape.LIST_HEAD:
        return RdfTerm.literal("RDFList", lang="")
    name = uri_to_name(binding.class_.value) if binding.class_ else "anonymous"
    return RdfTerm.literal(name, lang="")


class QueryExecutor:
    """
    De-duplicates identical queries that are in flight at the same time.

    A query is forgotten as soon as it settles, so later calls always
    reach the endpoint again.
    """

    def __init__(self, query_function: BlankQueryFunction):
        self.query_function = query_function
        self._in_flight: dict[str, asyncio.Future] = {}

    async def execute(self, query: str) -> SparqlResponse:
        execution = self._in_flight.get(query)
        if execution is None:
            execution = asyncio.ensure_future(self.query_function(query))
            self._in_flight[query] = execution
            execution.add_done_callback(lambda _, key=query: self._in_flight.pop(key, None))
        return await execution


def _group_by_inst(bindings: Iterable[BlankBinding]) -> dict[str, list[BlankBinding]]:
    groups: dict[str, list[BlankBinding]] = {}
    for binding in bindings:
        groups.setdefault(binding.inst.value, []).append(binding)
    return groups


def _with_resolved_target(
    binding: BlankBinding,
    encoded_ids: dict[str, str],
    relabel: bool,
) -> BlankBinding:
    update: dict = {}
    if relabel or binding.label is None:
        update["label"] = create_label_for_blank_binding(binding)
    if binding.blank_trg is not None and binding.blank_trg.value in encoded_ids:
        update["blank_trg"] = RdfTerm.blank(encoded_ids[binding.blank_trg.value])
    return binding.model_copy(update=update) if update else binding


def _is_resolvable_chain_head(binding: BlankBinding) -> bool:
    return (
        binding.blank_trg is not None
        and binding.blank_trg.is_blank
        and binding.blank_trg_prop is not None
        and binding.blank_src is not None
        and binding.blank_src.is_iri
        and binding.blank_src_prop is not None
    )


async def process_blank_bindings(
    bindings: Sequence[BlankBinding],
    query_function: BlankQueryFunction,
) -> list[BlankBinding]:
    """
    Replace per-query blank node handles with encoded ids.

    Args:
        bindings: Raw bindings whose ``inst`` is a blank node
        query_function: Runs a SELECT query for nested anonymous targets

    Returns:
        The same edges with labels filled in, nested targets resolved and
        ``inst`` set to the encoded id of the node
    """
    chains = [[binding] for binding in bindings if _is_resolvable_chain_head(binding)]
    executor = QueryExecutor(query_function)
    loaded = await load_related_blank_nodes(chains, executor)
    encoded_ids = {raw_id: encode_id(group) for raw_id, group in loaded.items()}

    result: list[BlankBinding] = []
    for group in _group_by_inst(bindings).values():
        resolved = [_with_resolved_target(binding, encoded_ids, relabel=False) for binding in group]
        inst = RdfTerm.iri(encode_id(resolved))
        result.extend(binding.model_copy(update={"inst": inst}) for binding in resolved)
    return result


async def load_related_blank_nodes(
    chains: Sequence[list[BlankBinding]],
    executor: QueryExecutor,
    depth: int = 1,
) -> dict[str, list[BlankBinding]]:
    """
    Fetch the defining bindings of the nodes at the end of ``chains``.

    All queries of one depth run concurrently; the next depth starts once
    the whole wave has settled.

    Returns:
        Resolved bindings grouped by the raw blank node handle
    """
    if depth > MAX_RECURSION_DEPTH or not chains:
        return {}

    responses = await asyncio.gather(
        *(executor.execute(query_for_chain(chain)) for chain in chains)
    )

    waves = []
    for chain, response in zip(chains, responses):
        loaded = [BlankBinding.from_binding(row) for row in response.bindings if "inst" in row]
        if loaded:
            nested = [chain + [binding] for binding in loaded if binding.blank_trg and binding.blank_trg.is_blank]
            waves.append((loaded, nested))

    nested_results = await asyncio.gather(
        *(load_related_blank_nodes(nested, executor, depth + 1) for _, nested in waves)
    )

    result: dict[str, list[BlankBinding]] = {}
    for (loaded, _), nested_loaded in zip(waves, nested_results):
        encoded_ids = {raw_id: encode_id(group) for raw_id, group in nested_loaded.items()}
        resolved = [_with_resolved_target(binding, encoded_ids, relabel=True) for binding in loaded]
        result.update(_group_by_inst(resolved))
    if depth == MAX_RECURSION_DEPTH:
        logger.debug("Blank node recursion limit reached", depth=depth)
    return result


def query_for_chain(chain: Sequence[BlankBinding]) -> str:
    """
    SELECT query for the anonymous node at the end of a chain of edges.

    The chain starts at an IRI; every following step walks from the
    previous anonymous node along its recorded outgoing predicate.
    """
    last = len(chain) - 1
    blocks = [_chain_block(binding, index, last) for index, binding in enumerate(chain)]
    body = "\n".join(blocks)
    return f"""SELECT ?inst ?class ?label ?blankTrgProp ?blankTrg ?blankType
        WHERE {{
           {body}
        }}
    """


def _chain_block(binding: BlankBinding, index: int, last: int) -> str:
    # list heads carry a synthetic target predicate that cannot be walked
    trusted = index == 0 or binding.blank_type != BlankNodeShape.LIST_HEAD
    if index > 0:
        source = f"?inst{index - 1}"
        source_prop = f"?blankTrgProp{index - 1}" if trusted else f"?anyType{index}"
    else:
        source = f"<{binding.blank_src.value}>"
        source_prop = f"<{binding.blank_src_prop.value}>"
    suffix = "" if index == last else str(index)
    target_prop = f"<{binding.blank_trg_prop.value}>" if trusted else f"?anyType0{index}"

    if index == 0 and binding.blank_type == BlankNodeShape.LIST_HEAD:
        first_relation = f"?blankSrc{index} rdf:rest*/rdf:first ?inst{suffix}."
    else:
        first_relation = f"?blankSrc{index} {target_prop} ?inst{suffix}."

    return f"""
            # step {index}
            {source} {source_prop} ?blankSrc{index}.
            {first_relation}
            BIND (<{binding.blank_trg_prop.value}> as ?blankSrcProp{index}).
            FILTER (ISBLANK(?inst{suffix})).
            {{
                ?inst{suffix} ?blankTrgProp{suffix} ?blankTrg{suffix}.
                BIND("simple" as ?blankType{suffix}).
                FILTER NOT EXISTS {{ ?inst{suffix} rdf:first _:smth1{index} }}.
            }} UNION {{
                ?inst{suffix} rdf:rest*/rdf:first ?blankTrg{suffix}.
                ?blankSrc{index} ?blankSrcProp{index} ?inst{suffix}.
                _:smth2{index} rdf:first ?blankTrg{suffix}.
                BIND(?blankSrcProp{index} as ?blankTrgProp{suffix})
                BIND("list-head" as ?blankType{suffix})
                FILTER NOT EXISTS {{ _:smth3{index} rdf:rest ?inst{suffix} }}.
            }}
            OPTIONAL {{
                ?inst{suffix} rdf:type ?class{suffix}.
            }}
        """


async def update_filter_results(
    bindings: Sequence[Binding],
    query_function: BlankQueryFunction,
) -> list[Binding]:
    """Resolve the anonymous rows of a search result into encoded elements."""
    complete: list[Binding] = []
    blank: list[BlankBinding] = []
    for binding in bindings:
        if is_blank_binding(binding):
            blank.append(BlankBinding.from_binding(binding))
        else:
            complete.append(binding)
    if not blank:
        return complete
    processed = await process_blank_bindings(blank, query_function)
    return complete + [binding.to_element_binding() for binding in processed]


def _decode_all(ids: Iterable[str]) -> list[BlankBinding]:
    result: list[BlankBinding] = []
    for element_id in ids:
        result.extend(decode_id(element_id) or [])
    return result


def _element_bindings_of(term: RdfTerm) -> list[Binding]:
    if term.is_iri and not is_encoded_blank(term.value):
        return [{"inst": term}]
    decoded = decode_id(term.value)
    if decoded:
        return [binding.to_element_binding() for binding in decoded]
    return [{"inst": term}]


def element_bindings(element_ids: Sequence[ElementIri]) -> list[Binding]:
    """Element rows for the encoded anonymous nodes among ``element_ids``."""
    ids = {element_id for element_id in element_ids if is_encoded_blank(element_id)}
    return [
        binding.to_element_binding()
        for binding in _decode_all(ids)
        if binding.inst.value in ids
    ]


def element_types(element_ids: Sequence[ElementIri]) -> dict[ElementIri, list[ElementTypeIri]]:
    """Types recorded in the encoded ids among ``element_ids``."""
    ids = {element_id for element_id in element_ids if is_encoded_blank(element_id)}
    result: dict[ElementIri, list[ElementTypeIri]] = {}
    for binding in _decode_all(ids):
        if binding.class_ is not None and binding.inst.value in ids:
            types = result.setdefault(binding.inst.value, [])
            if binding.class_.value not in types:
                types.append(binding.class_.value)
    return result


def link_bindings(element_ids: Sequence[ElementIri]) -> list[Binding]:
    """Link rows between anonymous nodes and the other ``element_ids``."""
    ids = set(element_ids)
    rows: list[Binding] = []
    for binding in _decode_all(i for i in ids if is_encoded_blank(i)):
        if (
            binding.blank_src is not None
            and binding.blank_src_prop is not None
            and binding.blank_src_prop.is_iri
            and binding.blank_src.value in ids
        ):
            rows.append({
                "source": binding.blank_src,
                "type": binding.blank_src_prop,
                "target": binding.inst,
            })
        if (
            binding.blank_trg is not None
            and binding.blank_trg_prop is not None
            and binding.blank_trg_prop.is_iri
            and binding.blank_trg.value in ids
        ):
            rows.append({
                "source": binding.inst,
                "type": binding.blank_trg_prop,
                "target": binding.blank_trg,
            })
    return rows


def link_counts(element_id: ElementIri) -> list[LinkCount]:
    """Incoming and outgoing edge counts of one anonymous node."""
    incoming: dict[str, set[str]] = {}
    outgoing: dict[str, set[str]] = {}
    for binding in decode_id(element_id) or []:
        if binding.blank_src is not None and binding.blank_src_prop is not None:
            incoming.setdefault(binding.blank_src_prop.value, set()).add(binding.blank_src.value)
        if binding.blank_trg is not None and binding.blank_trg_prop is not None:
            outgoing.setdefault(binding.blank_trg_prop.value, set()).add(binding.blank_trg.value)
    return [
        LinkCount(
            id=link_id,
            in_count=len(incoming.get(link_id, ())),
            out_count=len(outgoing.get(link_id, ())),
        )
        for link_id in sorted(set(incoming) | set(outgoing))
    ]


def filter_bindings(params: FilterParams) -> list[Binding]:
    """
    Search among the neighbours of an anonymous reference element.

    Type restrictions never match anonymous nodes; a text restriction is
    applied to the element ids.
    """
    if params.element_type_id or not params.ref_element_id:
        return []
    rows: list[Binding] = []
    for binding in decode_id(params.ref_element_id) or []:
        link_id = params.ref_element_link_id
        if params.link_direction in (None, LinkDirection.IN) and binding.blank_src is not None:
            if not link_id or (binding.blank_src_prop and binding.blank_src_prop.value == link_id):
                rows.extend(_element_bindings_of(binding.blank_src))
        if params.link_direction in (None, LinkDirection.OUT) and binding.blank_trg is not None:
            if not link_id or (binding.blank_trg_prop and binding.blank_trg_prop.value == link_id):
                rows.extend(_element_bindings_of(binding.blank_trg))
    if params.text:
        text = params.text.lower()
        rows = [row for row in rows if text in row["inst"].value.lower()]
    return rows
