"""
CLI entry point for cmdhistory.

This module provides the Typer-based command-line interface for browsing
a history database. Recording happens programmatically through
cmdhistory.store.HistoryDB; the CLI only reads.

Commands:
    list-commands   List all recorded commands
    show-output     Show the accumulated output of a command's invocations
"""

import json
from pathlib import Path
from typing import Annotated, Optional

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from cmdhistory import __version__
from cmdhistory.errors import CmdHistoryError
from cmdhistory.schema import HistoricalCommand, HistoryConfig, load_config
from cmdhistory.store import HistoryDB

# Initialize Typer app with metadata
app = typer.Typer(
    name="cmdhistory",
    help="Browse the local history of remotely-executed commands.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console()

_SUCCESS_STATUSES = {"success"}
_FAILED_STATUSES = {"failed", "cancelled", "timedout", "undeliverable", "terminated"}

DbOption = Annotated[
    Optional[Path],
    typer.Option(
        "--db",
        help="Path to the SQLite history database. Overrides --config.",
        resolve_path=True,
    ),
]

ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help="Path to a YAML config file with db_path and timeout_seconds.",
        exists=True,
        readable=True,
        resolve_path=True,
    ),
]

JsonOption = Annotated[
    bool,
    typer.Option(
        "--json",
        help="Output results in JSON format.",
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]cmdhistory[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    cmdhistory - Local history of remotely-executed commands.

    Inspect recorded commands and the output their invocations streamed,
    without contacting the remote execution service.
    """
    pass


def _resolve_config(db: Path | None, config_path: Path | None) -> HistoryConfig:
    """Build the effective config from --config and --db."""
    try:
        config = load_config(config_path) if config_path else HistoryConfig()
    except (ValidationError, yaml.YAMLError) as e:
        console.print(f"[red]Invalid config {config_path}:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)
    if db is not None:
        config = config.model_copy(update={"db_path": str(db)})
    return config


def _status_display(status: str | None) -> str:
    if not status:
        return "[dim]unknown[/dim]"
    lowered = status.lower()
    if lowered in _SUCCESS_STATUSES:
        return f"[green]{escape(status)}[/green]"
    if lowered in _FAILED_STATUSES:
        return f"[red]{escape(status)}[/red]"
    return f"[yellow]{escape(status)}[/yellow]"


def _output_json_error(error: CmdHistoryError) -> None:
    """Output an error in JSON format."""
    output = {"error": True, **error.to_dict()}
    print(json.dumps(output, indent=2, default=str))


@app.command("list-commands")
def list_commands(
    db: DbOption = None,
    config_path: ConfigOption = None,
    json_output: JsonOption = False,
) -> None:
    """
    List all recorded commands.

    Shows a table of commands with their document and status, how many
    invocations were recorded, and how many instances each targeted.

    Example:
        $ cmdhistory list-commands --db history.db
    """
    config = _resolve_config(db, config_path)
    db_path = Path(config.db_path)

    if not db_path.exists():
        console.print(f"[yellow]No database found at {escape(str(db_path))}[/yellow]")
        raise typer.Exit(code=0)

    try:
        with HistoryDB.from_config(config) as history:
            commands = sorted(history.list_commands(), key=lambda c: c.command_id)
    except CmdHistoryError as e:
        if json_output:
            _output_json_error(e)
        else:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1)

    if json_output:
        print(json.dumps([_command_to_dict(c) for c in commands], indent=2, default=str))
        return

    if not commands:
        console.print("[dim]No commands found.[/dim]")
        raise typer.Exit(code=0)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Command ID", style="cyan", no_wrap=True)
    table.add_column("Document")
    table.add_column("Status")
    table.add_column("Invocations", justify="right")
    table.add_column("Instances", justify="right")

    for c in commands:
        command = c.command
        table.add_row(
            escape(c.command_id),
            escape(command.document_name or "") if command else "",
            _status_display(command.status if command else None),
            str(len(c.invocations)),
            str(len(command.instance_ids)) if command else "",
        )

    console.print(table)


def _command_to_dict(c: HistoricalCommand) -> dict:
    return {
        "command_id": c.command_id,
        "command": c.command.model_dump(mode="json", by_alias=True, exclude_unset=True)
        if c.command
        else None,
        "invocations": [
            inv.model_dump(mode="json", by_alias=True, exclude_unset=True)
            for inv in c.invocations
        ],
    }


@app.command("show-output")
def show_output(
    command_id: Annotated[
        str,
        typer.Argument(help="The command ID to show output for."),
    ],
    db: DbOption = None,
    config_path: ConfigOption = None,
    instance: Annotated[
        Optional[str],
        typer.Option(
            "--instance",
            "-i",
            help="Only show output from this instance.",
        ),
    ] = None,
    json_output: JsonOption = False,
) -> None:
    """
    Show the accumulated output of a command.

    Prints stdout and stderr for every invocation of the command, as
    recorded so far. Output of a still-running command is shown up to
    the last stored chunk.

    Example:
        $ cmdhistory show-output 7f3c-... --db history.db --instance i-0abc
    """
    config = _resolve_config(db, config_path)
    db_path = Path(config.db_path)

    if not db_path.exists():
        console.print(f"[red]Database not found: {escape(str(db_path))}[/red]")
        raise typer.Exit(code=1)

    try:
        with HistoryDB.from_config(config) as history:
            outputs = history.get_outputs(command_id)
    except CmdHistoryError as e:
        if json_output:
            _output_json_error(e)
        else:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1)

    if instance is not None:
        outputs = [o for o in outputs if o.instance_id == instance]
    outputs.sort(key=lambda o: o.instance_id)

    if json_output:
        print(json.dumps([o.model_dump() for o in outputs], indent=2))
        return

    if not outputs:
        console.print(f"[dim]No output recorded for {escape(command_id)}.[/dim]")
        raise typer.Exit(code=0)

    for output in outputs:
        console.print(f"[bold]Instance {escape(output.instance_id)}[/bold]")
        if output.stdout:
            console.print(Text(output.stdout))
        if output.stderr:
            console.print("[bold red]stderr:[/bold red]")
            console.print(Text(output.stderr, style="red"))
        if not output.stdout and not output.stderr:
            console.print("[dim]  (no output)[/dim]")
        console.print()


if __name__ == "__main__":
    app()
