"""
CLI commands for kgdiagram.
"""

import asyncio
import sys
from dataclasses import dataclass, field
from typing import Iterable, Optional

import click
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from kgdiagram import __version__

console = Console()


def run_async(coro):
    """Run an async function in sync context."""
    return asyncio.run(coro)


@dataclass
class CliContext:
    endpoints: list[tuple[str, str]] = field(default_factory=list)
    preset: Optional[str] = None
    merge_mode: str = "fetch-all"
    blank_nodes: Optional[bool] = None


def parse_endpoint(value: str) -> tuple[str, str]:
    """Split ``NAME=URL``; a bare URL is named after itself."""
    name, sep, url = value.partition("=")
    if not sep or "://" in name or not name:
        return value, value
    return name, url


def build_provider(ctx: CliContext):
    """Create a single or federated provider from CLI options and settings."""
    from kgdiagram.config.settings import get_settings
    from kgdiagram.data.composite import (
        CompositeDataProvider,
        DataProviderDefinition,
        MergeMode,
    )
    from kgdiagram.data.sparql.chunked import ChunkedSparqlDataProvider
    from kgdiagram.data.sparql.provider import SparqlDataProvider

    settings = get_settings()
    update = {}
    if ctx.preset:
        update["settings_preset"] = ctx.preset
    if ctx.blank_nodes is not None:
        update["accept_blank_nodes"] = ctx.blank_nodes
    if update:
        settings = settings.model_copy(update=update)

    def single(url: Optional[str]) -> ChunkedSparqlDataProvider:
        provider = SparqlDataProvider.from_settings(settings, endpoint_url=url)
        return ChunkedSparqlDataProvider(provider, settings.max_chunk_length)

    if len(ctx.endpoints) <= 1:
        url = ctx.endpoints[0][1] if ctx.endpoints else None
        return single(url)
    return CompositeDataProvider(
        [DataProviderDefinition(name=name, provider=single(url)) for name, url in ctx.endpoints],
        merge_mode=MergeMode(ctx.merge_mode),
    )


def display_label(labels: Iterable, fallback: str) -> str:
    labels = list(labels)
    for label in labels:
        if label.language in ("", "en"):
            return label.value
    return labels[0].value if labels else fallback


def run_with_provider(ctx: CliContext, action):
    """Run ``action(provider)`` and report library errors on the console."""
    from kgdiagram.core.exceptions import KgDiagramError

    async def _run():
        provider = build_provider(ctx)
        try:
            return await action(provider)
        finally:
            await provider.close()

    try:
        return run_async(_run())
    except KgDiagramError as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="kgdiagram")
@click.option(
    "--endpoint", "-e", "endpoints", multiple=True,
    help="SPARQL endpoint as NAME=URL; repeat to federate several endpoints",
)
@click.option("--preset", "-p", help="Query preset (rdf, owl-rdfs, owl-stats, dbpedia, wikidata)")
@click.option(
    "--merge-mode",
    type=click.Choice(["fetch-all", "sequential"]),
    default="fetch-all",
    help="How several endpoints are combined",
)
@click.option("--blank-nodes/--no-blank-nodes", default=None, help="Show anonymous nodes")
@click.pass_context
def cli(
    ctx: click.Context,
    endpoints: tuple[str, ...],
    preset: Optional[str],
    merge_mode: str,
    blank_nodes: Optional[bool],
):
    """
    kgdiagram CLI.

    Browse the classes, elements and links of SPARQL endpoints.
    """
    from kgdiagram.config.settings import get_settings
    from kgdiagram.core.logging import configure_logging

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    ctx.obj = CliContext(
        endpoints=[parse_endpoint(value) for value in endpoints],
        preset=preset,
        merge_mode=merge_mode,
        blank_nodes=blank_nodes,
    )


@cli.command("class-tree")
@click.pass_obj
def class_tree(ctx: CliContext):
    """
    Show the class hierarchy.

    Examples:

        kgdiagram -e http://localhost:3030/ds/sparql class-tree
    """
    forest = run_with_provider(ctx, lambda provider: provider.class_tree())
    if not forest:
        console.print("[yellow]No classes found.[/yellow]")
        return

    root = Tree("[bold]Classes[/bold]")

    def add(branch: Tree, node) -> None:
        count = f" [dim]({node.count})[/dim]" if node.count is not None else ""
        child = branch.add(f"[cyan]{display_label(node.label, node.id)}[/cyan]{count}")
        for sub in node.children:
            add(child, sub)

    for node in forest:
        add(root, node)
    console.print(root)


@cli.command("element-info")
@click.argument("iris", nargs=-1, required=True)
@click.pass_obj
def element_info(ctx: CliContext, iris: tuple[str, ...]):
    """
    Show types, labels and properties of elements.

    Examples:

        kgdiagram element-info http://example.org/Alice
    """
    elements = run_with_provider(ctx, lambda provider: provider.element_info(list(iris)))
    if not elements:
        console.print("[yellow]No elements found.[/yellow]")
        return

    table = Table(title="Elements")
    table.add_column("IRI", style="dim")
    table.add_column("Label", style="green")
    table.add_column("Types", style="cyan")
    table.add_column("Properties", style="blue")
    table.add_column("Sources")
    for element in elements.values():
        table.add_row(
            element.id,
            display_label(element.label, ""),
            "\n".join(element.types),
            str(len(element.properties)),
            ", ".join(element.sources or []),
        )
    console.print(table)


@cli.command()
@click.argument("iris", nargs=-1, required=True)
@click.pass_obj
def links(ctx: CliContext, iris: tuple[str, ...]):
    """
    Show the links between elements.

    Examples:

        kgdiagram links http://example.org/Alice http://example.org/Bob
    """
    found = run_with_provider(ctx, lambda provider: provider.links_info(list(iris), []))
    if not found:
        console.print("[yellow]No links found.[/yellow]")
        return

    table = Table(title="Links")
    table.add_column("Source", style="green")
    table.add_column("Type", style="cyan")
    table.add_column("Target", style="green")
    for link in found:
        table.add_row(link.source_id, link.link_type_id, link.target_id)
    console.print(table)


@cli.command("link-types-of")
@click.argument("iri")
@click.pass_obj
def link_types_of(ctx: CliContext, iri: str):
    """
    Count the incoming and outgoing links of an element per link type.
    """
    counts = run_with_provider(ctx, lambda provider: provider.link_types_of(iri))
    if not counts:
        console.print("[yellow]No links found.[/yellow]")
        return

    table = Table(title=f"Link types of {iri}")
    table.add_column("Link type", style="cyan")
    table.add_column("In", justify="right")
    table.add_column("Out", justify="right")
    for count in counts:
        table.add_row(
            count.id,
            "" if count.in_count is None else str(count.in_count),
            "" if count.out_count is None else str(count.out_count),
        )
    console.print(table)


@cli.command()
@click.option("--text", "-t", help="Full text search")
@click.option("--type", "element_type", help="Restrict to instances of a class")
@click.option("--ref", help="Reference element")
@click.option("--link", help="Link type connecting results to the reference element")
@click.option("--direction", type=click.Choice(["in", "out"]), help="Link direction")
@click.option("--limit", "-n", default=100, help="Number of results")
@click.option("--offset", default=0, help="Results to skip")
@click.pass_obj
def search(
    ctx: CliContext,
    text: Optional[str],
    element_type: Optional[str],
    ref: Optional[str],
    link: Optional[str],
    direction: Optional[str],
    limit: int,
    offset: int,
):
    """
    Search elements.

    Examples:

        kgdiagram search --text alice

        kgdiagram search --ref http://example.org/Alice --link http://xmlns.com/foaf/0.1/knows
    """
    from kgdiagram.data.model import FilterParams, LinkDirection

    params = FilterParams(
        text=text,
        element_type_id=element_type,
        ref_element_id=ref,
        ref_element_link_id=link,
        link_direction=LinkDirection(direction) if direction else None,
        limit=limit,
        offset=offset,
    )
    elements = run_with_provider(ctx, lambda provider: provider.filter(params))
    if not elements:
        console.print("[yellow]No results found.[/yellow]")
        return

    console.print(f"\n[green]Found {len(elements)} elements:[/green]\n")
    table = Table()
    table.add_column("IRI", style="dim")
    table.add_column("Label", style="green")
    table.add_column("Types", style="cyan")
    for element in elements.values():
        table.add_row(element.id, display_label(element.label, ""), "\n".join(element.types))
    console.print(table)


if __name__ == "__main__":
    cli()
