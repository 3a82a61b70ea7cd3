"""uimap CLI: index Swift sources and map accessibility snapshots onto them."""
from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from ..audit.diagnostics import explain_node, format_metrics
from ..audit.validator import (
    AuditReport,
    audit_hierarchy,
    flatten,
    hierarchy_to_dict,
    load_hierarchy,
    write_artifacts,
)
from ..config import Settings, load_mapping_config, load_settings
from ..errors import UimapError
from ..indexer.service import IndexerService
from ..matching.matcher import match_snapshot
from ..matching.snapshot import load_snapshot
from ..matching.tracer import trace_interaction
from ..registry.identifier_registry import RegistryStore
from ..storage import atomic_write_json

console = Console()
err_console = Console(stderr=True)
app = typer.Typer(add_completion=False, no_args_is_help=True)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Map live UI elements to the Swift source that produced them."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@contextmanager
def _handle_errors() -> Iterator[None]:
    try:
        yield
    except UimapError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1)


def _resolve_settings(
    config_path: Optional[Path],
    root: Optional[Path] = None,
    registry_path: Optional[Path] = None,
    output_dir: Optional[Path] = None,
) -> Settings:
    return load_settings(
        config_path,
        project_root=root,
        registry_path=registry_path,
        output_dir=output_dir,
    )


def _print_report(report: AuditReport) -> None:
    console.print(format_metrics(report.metrics))
    if not report.rule_outcomes:
        return
    table = Table(title="Critical mappings")
    table.add_column("Pattern", style="cyan")
    table.add_column("Min")
    table.add_column("Best")
    table.add_column("Result")
    for outcome in report.rule_outcomes:
        table.add_row(
            outcome.pattern,
            f"{outcome.min_confidence:.2f}",
            f"{outcome.best_confidence:.2f}",
            "[green]pass[/green]" if outcome.passed else f"[red]fail[/red] {outcome.reason}",
        )
    console.print(table)


@app.command()
def index(
    root: Path = typer.Argument(..., help="Source root to index"),
    as_json: bool = typer.Option(False, "--json", help="Print the full index as JSON"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to settings YAML"),
):
    """Index declarations, identifiers and labels under ROOT."""
    with _handle_errors():
        settings = _resolve_settings(config, root)
        source_index = IndexerService(settings).build_index()

    if as_json:
        typer.echo(json.dumps(source_index.to_dict(), indent=2, sort_keys=True))
        return

    summary = source_index.summary()
    table = Table(title=f"Source index ({summary['strategy']})")
    table.add_column("Module", style="cyan")
    table.add_column("Product")
    table.add_column("Files")
    for name, entry in sorted(source_index.modules.items()):
        table.add_row(name, entry.product or "", str(len(entry.sources)))
    console.print(table)
    console.print(
        f"Declarations: {summary['declarations']}  Identifiers: {summary['identifiers']}  "
        f"Labels: {summary['labels']}  Warnings: {summary['warnings']}"
    )
    for warning in source_index.warnings:
        console.print(f"[yellow]Skipped[/yellow] {warning.file}: {warning.reason}")


@app.command()
def registry(
    root: Path = typer.Argument(..., help="Source root"),
    rebuild: bool = typer.Option(False, "--rebuild", help="Rebuild even if sources are unchanged"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Registry file location"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to settings YAML"),
):
    """Build or reuse the persisted identifier registry for ROOT."""
    with _handle_errors():
        settings = _resolve_settings(config, root, registry_path=out)
        store = RegistryStore(settings)
        result = store.ensure(lambda: IndexerService(settings).build_index(), rebuild=rebuild)

    stats = store.get_stats()
    table = Table(title="Identifier registry")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Path", str(store.path))
    table.add_row("Status", "reused" if stats["hit_count"] else f"built ({stats['last_reason']})")
    table.add_row("Generated", result.generated_at)
    for key, value in sorted(result.summary.items()):
        table.add_row(key, str(value))
    console.print(table)


@app.command()
def match(
    root: Path = typer.Argument(..., help="Source root"),
    snapshot: Path = typer.Argument(..., help="Accessibility snapshot JSON (AXe or normalized)"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Write enriched hierarchy here"),
    validate: bool = typer.Option(False, "--validate", help="Audit critical mappings afterwards"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to settings YAML"),
):
    """Map every element of SNAPSHOT onto sources under ROOT."""
    with _handle_errors():
        settings = _resolve_settings(config, root)
        mapping_config = load_mapping_config(settings)
        roots = load_snapshot(snapshot)
        source_index = IndexerService(settings).build_index()
        registry_data = RegistryStore(settings).ensure(lambda: source_index)
        nodes = match_snapshot(
            roots,
            source_index,
            mapping_config,
            registry=registry_data,
            max_alternatives=settings.max_alternatives,
            signal_weights=settings.signal_weights,
        )
        payload = hierarchy_to_dict(nodes, root=source_index.root)
        if out is not None:
            atomic_write_json(out, payload)
            err_console.print(f"Wrote enriched hierarchy to {out}")
        else:
            typer.echo(json.dumps(payload, indent=2, sort_keys=True))

        if not validate:
            return
        report = audit_hierarchy(nodes, mapping_config)

    _print_report(report)
    if not report.passed:
        raise typer.Exit(1)


@app.command()
def audit(
    hierarchy: Path = typer.Argument(..., help="Enriched hierarchy JSON written by `match`"),
    root: Path = typer.Option(..., "--root", "-r", help="Source root the hierarchy maps onto"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Artifact directory"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to settings YAML"),
):
    """Check critical mappings and write mapping-report.json and failures.json."""
    with _handle_errors():
        settings = _resolve_settings(config, root, output_dir=out)
        mapping_config = load_mapping_config(settings)
        nodes = load_hierarchy(hierarchy)
        report = audit_hierarchy(nodes, mapping_config)
        paths = write_artifacts(report, settings.resolved_output_dir)

    _print_report(report)
    console.print(f"Report: {paths['report']}")
    console.print(f"Failures: {paths['failures']}")
    if not report.passed:
        raise typer.Exit(1)


@app.command()
def explain(
    hierarchy: Path = typer.Argument(..., help="Enriched hierarchy JSON written by `match`"),
    element_id: Optional[str] = typer.Option(None, "--id", help="Only explain this element"),
):
    """Explain why each element mapped where it did."""
    with _handle_errors():
        nodes = flatten(load_hierarchy(hierarchy))

    if element_id:
        nodes = [
            node
            for node in nodes
            if element_id in (node.element.element_id, node.element.identifier)
        ]
        if not nodes:
            console.print(f"[yellow]No element with id '{element_id}'[/yellow]")
            raise typer.Exit(1)
    for node in nodes:
        console.print(explain_node(node), markup=False, highlight=False)
        console.print()


@app.command()
def trace(
    hierarchy: Path = typer.Argument(..., help="Enriched hierarchy JSON written by `match`"),
    element_id: str = typer.Option(..., "--id", help="Element to trace"),
    root: Path = typer.Option(..., "--root", "-r", help="Source root the hierarchy maps onto"),
    context: int = typer.Option(24, "--context", help="Lines of source around the mapped line"),
    as_json: bool = typer.Option(False, "--json", help="Print the trace as JSON"),
):
    """Show how the source behind an element wires it to handlers."""
    with _handle_errors():
        nodes = [
            node
            for node in flatten(load_hierarchy(hierarchy))
            if element_id in (node.element.element_id, node.element.identifier)
        ]
        if not nodes:
            console.print(f"[yellow]No element with id '{element_id}'[/yellow]")
            raise typer.Exit(1)
        result = trace_interaction(nodes[0], root.expanduser().resolve(), context_lines=context)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2, sort_keys=True))
        return

    console.print(f"{result.element_id}: {result.file}:{result.focus_line}")
    console.print(f"Verdict: [bold]{result.status}[/bold] ({escape(result.reason)})")
    if result.signals:
        table = Table(title="Interaction signals")
        table.add_column("Line")
        table.add_column("Kind", style="cyan")
        table.add_column("Handler")
        table.add_column("Source")
        for signal in result.signals:
            table.add_row(str(signal.line), signal.kind, signal.handler or "", escape(signal.text))
        console.print(table)
    for handler in result.handlers:
        calls = ", ".join(handler.calls) or "-"
        console.print(f"Handler {handler.name} (line {handler.line}) calls: {calls}")


if __name__ == "__main__":
    app()
