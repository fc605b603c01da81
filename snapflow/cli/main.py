#!/usr/bin/env python3
"""snapflow CLI.

Runs a single snapshot from a YAML connector configuration and writes the
resulting event stream as JSON lines or Parquet files.
"""

import signal
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table as RichTable

from snapflow.backends import create_backend
from snapflow.core.cancellation import ChangeEventSourceContext
from snapflow.core.config import SnapshotConfig
from snapflow.core.errors import SnapflowError, SnapshotCancelledError
from snapflow.logging import configure_logging, get_logger, suppress_third_party_loggers
from snapflow.pipeline.dispatcher import EventDispatcher
from snapflow.pipeline.listener import SnapshotMetrics
from snapflow.pipeline.sinks import ArrowBatchSink, EventSink, JsonLinesSink
from snapflow.snapshot.context import SnapshotResultStatus
from snapflow.snapshot.source import SnapshotSource
from snapflow.state.backends import DuckDBStateBackend
from snapflow.state.offset_manager import OffsetManager
from snapflow.state.schema_history import DuckDBSchemaHistory

logger = get_logger(__name__)

# Event streams may go to stdout, so everything else goes to stderr
console = Console(stderr=True)

app = typer.Typer(
    name="snapflow",
    help="snapflow CLI - initial snapshots for change data capture",
    add_completion=False,
)
offsets_app = typer.Typer(help="Inspect and reset committed offsets")
app.add_typer(offsets_app, name="offsets")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version and exit"),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose output"
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Only show warnings and errors"
    ),
) -> None:
    """snapflow CLI - initial snapshots for change data capture."""
    if version:
        from snapflow import __version__

        console.print(f"snapflow v{__version__}")
        raise typer.Exit()

    configure_logging(verbose=verbose, quiet=quiet)
    suppress_third_party_loggers()

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _create_sink(output: str, output_format: str) -> EventSink:
    if output_format == "jsonl":
        return JsonLinesSink(sys.stdout if output == "-" else output)
    if output_format == "parquet":
        if output == "-":
            raise typer.BadParameter("Parquet output needs a directory", param_hint="--output")
        return ArrowBatchSink()
    raise typer.BadParameter(
        f"Unknown format '{output_format}'; expected 'jsonl' or 'parquet'",
        param_hint="--format",
    )


def _display_summary(metrics: SnapshotMetrics) -> None:
    summary = metrics.summary()
    table = RichTable(title=f"Snapshot {summary['status']}")
    table.add_column("Table", style="cyan")
    table.add_column("Rows", justify="right")
    for table_name, rows in summary["tables"].items():
        table.add_row(table_name, str(rows))
    table.add_row("[bold]total[/bold]", f"[bold]{summary['total_rows']}[/bold]")
    console.print(table)
    if summary["duration_seconds"] is not None:
        console.print(f"Duration: {summary['duration_seconds']:.1f}s")


@app.command()
def snapshot(
    config_path: str = typer.Argument(..., help="Connector configuration (YAML)"),
    output: str = typer.Option(
        "-", "--output", "-o", help="File (jsonl) or directory (parquet); '-' for stdout"
    ),
    output_format: str = typer.Option("jsonl", "--format", "-f", help="jsonl or parquet"),
    offsets: Optional[str] = typer.Option(
        None, "--offsets", help="DuckDB file holding committed offsets"
    ),
    schema_history: Optional[str] = typer.Option(
        None, "--schema-history", help="DuckDB file recording captured table structures"
    ),
) -> None:
    """Take a snapshot of the configured database."""
    try:
        config = SnapshotConfig.from_yaml(config_path)
        backend = create_backend(config)
    except SnapflowError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {e.message}")
        raise typer.Exit(2)

    sink = _create_sink(output, output_format)
    offset_manager = OffsetManager(DuckDBStateBackend(path=offsets)) if offsets else None
    history = DuckDBSchemaHistory(config.name, path=schema_history) if schema_history else None
    metrics = SnapshotMetrics()
    context = ChangeEventSourceContext()

    def _stop(signum, frame):
        console.print("[yellow]Stopping snapshot...[/yellow]")
        context.stop()

    previous_handler = signal.signal(signal.SIGINT, _stop)
    try:
        stored = offset_manager.load_offset(config.name) if offset_manager else None
        previous_offset = backend.load_offset(stored) if stored else None

        source = SnapshotSource(
            config,
            previous_offset,
            backend.connection,
            backend,
            EventDispatcher(config.name, sink),
            progress_listener=metrics,
            schema_history=history,
        )
        result = source.execute(context)

        if result.status == SnapshotResultStatus.SKIPPED:
            console.print("[yellow]Snapshot skipped:[/yellow] nothing to capture for this mode and offset")
            return

        if isinstance(sink, ArrowBatchSink):
            sink.write_parquet(output)
        if offset_manager is not None:
            offset_manager.commit_offset(config.name, result.offset.get_offset())
        _display_summary(metrics)

    except SnapshotCancelledError:
        console.print("[yellow]Snapshot cancelled[/yellow]")
        raise typer.Exit(130)
    except SnapflowError as e:
        logger.error(f"Snapshot failed: {e.message}")
        console.print(f"[bold red]Snapshot failed:[/bold red] {e.message}")
        raise typer.Exit(1)
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        sink.close()
        backend.connection.close()
        if history is not None:
            history.close()
        if offset_manager is not None:
            offset_manager.close()


@app.command()
def version() -> None:
    """Show snapflow version information."""
    import duckdb

    from snapflow import __version__

    console.print("[bold blue]snapflow Version Information[/bold blue]")
    console.print(f"Version: [cyan]{__version__}[/cyan]")
    console.print(f"Python: [cyan]{sys.version.split()[0]}[/cyan]")
    console.print(f"DuckDB: [dim]{duckdb.__version__}[/dim]")


@offsets_app.command("list")
def list_offsets(
    offsets: str = typer.Option(..., "--offsets", help="DuckDB file holding committed offsets"),
) -> None:
    """Show the committed offset of every connector."""
    manager = OffsetManager(DuckDBStateBackend(path=offsets))
    try:
        table = RichTable(title="Committed offsets")
        table.add_column("Connector", style="cyan")
        table.add_column("Offset")
        for name in manager.list_connectors():
            table.add_row(name, str(manager.load_offset(name)))
        console.print(table)
    finally:
        manager.close()


@offsets_app.command("reset")
def reset_offset(
    name: str = typer.Argument(..., help="Connector name"),
    offsets: str = typer.Option(..., "--offsets", help="DuckDB file holding committed offsets"),
) -> None:
    """Forget a connector's offset so the next run snapshots again."""
    manager = OffsetManager(DuckDBStateBackend(path=offsets))
    try:
        if manager.reset_offset(name):
            console.print(f"[green]Offset of '{name}' reset[/green]")
        else:
            console.print(f"[yellow]No offset stored for '{name}'[/yellow]")
    finally:
        manager.close()


if __name__ == "__main__":
    app()
