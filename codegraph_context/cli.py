"""Typer-based CLI for codegraph-context graph analysis and retrieval."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .builder import PRESETS, Builder, preset_config
from .cli_groups import config_grp, graph_grp
from .config import DEFAULT_BUDGET, DEFAULT_LIMIT
from .config_manager import (
    build_retrieval_config,
    clear_embedding_config,
    get_ollama_models,
    load_full_config,
    load_retrieval_config,
    save_embedding_config,
    save_retrieval_config,
    save_storage_config,
    validate_ollama_connection,
)
from .dependency_graph import DependencyGraph, build_graph
from .embeddings import DEFAULT_OLLAMA_HOST, EMBEDDING_MODELS
from .formatting import FORMATTERS
from .graph_analyzer import GraphAnalyzer
from .graph_export import analysis_report_json, export_dot, export_html
from .models import Unit, type_name
from .query_classifier import QueryClassifier
from .search_executor import select_strategy

console = Console()

app = typer.Typer(
    help="🧠 codegraph-context — dependency graph intelligence and token-budgeted retrieval.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(graph_grp, name="graph")
app.add_typer(config_grp, name="config")


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"codegraph-context v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    """codegraph-context: graph analysis and context retrieval over extracted code units."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _load_units(path: Path) -> List[Unit]:
    """Read extracted units from a JSON list or a ``{"units": [...]}`` object."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"'{path}' is not valid JSON: {exc}")
    if isinstance(data, dict):
        data = data.get("units", [])
    if not isinstance(data, list):
        raise typer.BadParameter(f"'{path}' must contain a list of units.")

    units = []
    for index, item in enumerate(data):
        if not isinstance(item, dict) or not item.get("identifier"):
            raise typer.BadParameter(f"'{path}': unit #{index} has no identifier: {item!r:.80}")
        units.append(Unit.from_dict(item))
    return units


def _load_graph(path: Path) -> DependencyGraph:
    try:
        return DependencyGraph.load(path)
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"'{path}' is not a valid graph file: {exc}")


# ------------------------------------------------------------------
# cgc graph ...
# ------------------------------------------------------------------

@graph_grp.command("build")
def graph_build(
    units_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Extracted units JSON."),
    output: Path = typer.Option(Path("graph.json"), "--output", "-o", help="Where to write the graph."),
):
    """Build a dependency graph from extracted units."""
    graph = build_graph(_load_units(units_file))
    graph.save(output)

    stats = graph.to_dict()["stats"]
    typer.echo(f"Built graph with {stats['node_count']} units and {stats['edge_count']} edges.")
    typer.echo(f"Saved to {output}")


@graph_grp.command("analyze")
def graph_analyze(
    graph_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Graph JSON file."),
    as_json: bool = typer.Option(False, "--json", help="Print the full report as JSON."),
    limit: int = typer.Option(10, min=1, max=100, help="Rows per table."),
):
    """Report orphans, dead ends, hubs, cycles, and bridges."""
    report = GraphAnalyzer(_load_graph(graph_file)).analyze()

    if as_json:
        typer.echo(analysis_report_json(report))
        return

    stats = report["stats"]
    console.print(
        Panel.fit(
            f"[bold]{stats['node_count']}[/bold] units · "
            f"{stats['orphan_count']} orphans · {stats['dead_end_count']} dead ends · "
            f"{stats['cycle_count']} cycles",
            title="[bold]Graph Analysis[/bold]",
            border_style="cyan",
        )
    )

    hubs = Table(title="Hubs", show_lines=False)
    hubs.add_column("Unit", style="cyan")
    hubs.add_column("Type", style="magenta")
    hubs.add_column("Dependents", justify="right", style="green")
    for hub in report["hubs"][:limit]:
        hubs.add_row(hub["identifier"], type_name(hub["type"]), str(hub["dependent_count"]))
    console.print(hubs)

    if report["bridges"]:
        bridges = Table(title="Bridges", show_lines=False)
        bridges.add_column("Unit", style="cyan")
        bridges.add_column("Type", style="magenta")
        bridges.add_column("Paths", justify="right", style="green")
        for bridge in report["bridges"][:limit]:
            bridges.add_row(bridge["identifier"], type_name(bridge["type"]), str(bridge["score"]))
        console.print(bridges)

    if report["cycles"]:
        console.print("\n[bold yellow]⚠️  Dependency cycles[/bold yellow]")
        for cycle in report["cycles"][:limit]:
            console.print(f"  • {' → '.join(cycle)}")


@graph_grp.command("affected")
def graph_affected(
    graph_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Graph JSON file."),
    changed_files: List[str] = typer.Argument(..., help="Changed file paths."),
    depth: Optional[int] = typer.Option(None, "--depth", "-d", min=0, help="Maximum hops (default unlimited)."),
):
    """List units transitively affected by changed files (blast radius)."""
    affected = _load_graph(graph_file).affected_by(changed_files, max_depth=depth)
    if not affected:
        typer.echo("No affected units.")
        raise typer.Exit(code=0)
    for identifier in affected:
        typer.echo(identifier)


@graph_grp.command("pagerank")
def graph_pagerank(
    graph_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Graph JSON file."),
    top: int = typer.Option(10, "--top", "-n", min=1, help="Number of units to show."),
    as_json: bool = typer.Option(False, "--json", help="Print scores as JSON."),
):
    """Rank units by PageRank importance."""
    scores = _load_graph(graph_file).pagerank()
    ranked = sorted(scores.items(), key=lambda item: -item[1])[:top]

    if as_json:
        typer.echo(json.dumps(dict(ranked), indent=2))
        return

    table = Table(title="PageRank", show_lines=False)
    table.add_column("#", style="dim", width=4)
    table.add_column("Unit", style="cyan")
    table.add_column("Score", justify="right", style="green")
    for i, (identifier, score) in enumerate(ranked, 1):
        table.add_row(str(i), identifier, f"{score:.4f}")
    console.print(table)


@graph_grp.command("export")
def graph_export(
    graph_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Graph JSON file."),
    output: Path = typer.Option(..., "--output", "-o", help="Output file path."),
    fmt: str = typer.Option("dot", "--format", "-f", help="Export format: dot or html."),
    focus: str = typer.Option("", "--focus", help="Only units whose identifier contains this, plus neighbours."),
):
    """Export the graph to Graphviz DOT or standalone HTML."""
    fmt = fmt.lower()
    if fmt not in {"dot", "html"}:
        raise typer.BadParameter("Format must be one of: dot, html")

    graph = _load_graph(graph_file)
    if fmt == "dot":
        export_dot(graph, output, focus=focus)
    else:
        export_html(graph, output, focus=focus)
    typer.echo(f"Exported graph to {output}")


# ------------------------------------------------------------------
# Retrieval
# ------------------------------------------------------------------

@app.command("classify")
def classify(query: str = typer.Argument(..., help="Natural-language question.")):
    """Show how a query is classified and which strategy it selects."""
    classification = QueryClassifier().classify(query)
    payload = classification.to_dict()
    payload["strategy"] = select_strategy(classification).value
    typer.echo(json.dumps(payload, indent=2))


@app.command("retrieve")
def retrieve(
    units_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Extracted units JSON."),
    query: str = typer.Argument(..., help="Natural-language question."),
    budget: Optional[int] = typer.Option(None, "--budget", "-b", min=1, help="Token budget."),
    preset: Optional[str] = typer.Option(
        None, "--preset", "-p", help=f"Storage preset: {', '.join(PRESETS)} (default from config).",
    ),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", min=1, help="Candidates per strategy."),
    fmt: Optional[str] = typer.Option(
        None, "--format", "-f", help=f"Output formatter: {', '.join(FORMATTERS)} (default raw).",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the retrieval result as JSON."),
):
    """Index units and retrieve token-budgeted context for a query."""
    try:
        if preset:
            cfg = preset_config(preset)
            retrieval = load_retrieval_config()
            cfg.budget, cfg.limit, cfg.formatter = retrieval["budget"], retrieval["limit"], retrieval["format"]
        else:
            cfg = build_retrieval_config()
    except ValueError as exc:
        raise typer.BadParameter(str(exc))
    if fmt is not None:
        if fmt not in FORMATTERS:
            raise typer.BadParameter(f"Unknown formatter: '{fmt}'. Available: {', '.join(FORMATTERS)}")
        cfg.formatter = fmt
    if limit is not None:
        cfg.limit = limit

    retriever = Builder(cfg).build_indexed_retriever(_load_units(units_file))
    result = retriever.retrieve(query, budget=budget or cfg.budget)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return

    typer.echo(result.context or "(no context found)")
    table = Table(title="Sources", show_lines=False)
    table.add_column("Unit", style="cyan")
    table.add_column("Type", style="magenta")
    table.add_column("Score", justify="right", style="green")
    table.add_column("File")
    for source in result.sources:
        table.add_row(source.identifier, source.type, f"{source.score:.3f}", source.file_path or "")
    console.print(table)
    console.print(
        f"[dim]strategy={result.strategy.value} · {result.tokens_used}/{result.budget} tokens[/dim]"
    )


# ------------------------------------------------------------------
# cgc config ...
# ------------------------------------------------------------------

@config_grp.command("show")
def config_show():
    """Print the effective configuration."""
    cfg = build_retrieval_config()
    table = Table(title="Configuration", show_header=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key in ("vector_store", "metadata_store", "graph_store", "embedding_provider", "budget", "limit"):
        table.add_row(key, str(getattr(cfg, key)))
    table.add_row("format", cfg.formatter or "raw")
    console.print(table)
    if not load_full_config():
        console.print("[dim]No config.toml found; showing defaults.[/dim]")


@config_grp.command("set-preset")
def config_set_preset(preset: str = typer.Argument(..., help=f"One of: {', '.join(PRESETS)}")):
    """Choose the storage preset."""
    if preset not in PRESETS:
        raise typer.BadParameter(f"Unknown preset: '{preset}'. Available: {', '.join(PRESETS)}")
    if not save_storage_config(preset):
        typer.echo("Failed to write config.", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Storage preset set to '{preset}'.")


@config_grp.command("set-embedding")
def config_set_embedding(
    model: str = typer.Argument(..., help=f"One of: {', '.join(EMBEDDING_MODELS)}"),
    host: str = typer.Option(DEFAULT_OLLAMA_HOST, "--host", help="Ollama host for Ollama models."),
):
    """Choose the embedding model."""
    if model not in EMBEDDING_MODELS:
        raise typer.BadParameter(
            f"Unknown embedding model: '{model}'. Available: {', '.join(EMBEDDING_MODELS)}"
        )
    is_ollama = EMBEDDING_MODELS[model]["backend"] == "ollama"
    if not save_embedding_config(model, host=host if is_ollama else ""):
        typer.echo("Failed to write config.", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Embedding model set to '{model}'.")
    if not is_ollama:
        return
    if not validate_ollama_connection(host):
        typer.echo(f"⚠️  Ollama is not reachable at {host}; retrieval will fail until it is.", err=True)
        return
    pulled = get_ollama_models(host)
    if model not in {name.split(":")[0] for name in pulled}:
        typer.echo(
            f"⚠️  '{model}' is not pulled on {host}. Run: ollama pull {model}\n"
            f"   Available: {', '.join(pulled) or '(none)'}",
            err=True,
        )


@config_grp.command("reset-embedding")
def config_reset_embedding():
    """Forget the embedding model and fall back to the preset's provider."""
    if not clear_embedding_config():
        typer.echo("Failed to write config.", err=True)
        raise typer.Exit(code=1)
    typer.echo("Embedding configuration cleared.")


@config_grp.command("set-retrieval")
def config_set_retrieval(
    budget: int = typer.Option(DEFAULT_BUDGET, "--budget", "-b", min=1, help="Default token budget."),
    limit: int = typer.Option(DEFAULT_LIMIT, "--limit", "-l", min=1, help="Candidates per strategy."),
    fmt: Optional[str] = typer.Option(
        None, "--format", "-f", help=f"Output formatter: {', '.join(FORMATTERS)} (default raw).",
    ),
):
    """Set the default budget, candidate limit and output formatter."""
    if fmt is not None and fmt not in FORMATTERS:
        raise typer.BadParameter(f"Unknown formatter: '{fmt}'. Available: {', '.join(FORMATTERS)}")
    if not save_retrieval_config(budget, limit, formatter=fmt):
        typer.echo("Failed to write config.", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Retrieval defaults set: budget={budget}, limit={limit}, format={fmt or 'raw'}.")


if __name__ == "__main__":
    app()
