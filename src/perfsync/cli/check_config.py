"""
perfsync CLI - Check-config command.

Validate a buildbot sync configuration and list the syncers it defines.
"""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from perfsync.core.buildbot import ArgumentKind, PropertyArgument, load_syncers_file
from perfsync.core.exceptions import BuildbotConfigError

console = Console()


def _describe_argument(argument: PropertyArgument) -> str:
    if argument.kind == ArgumentKind.LITERAL:
        return repr(argument.value)
    if argument.kind == ArgumentKind.ROOT:
        return f"root of {argument.repository}"
    return f"roots excluding {', '.join(argument.excluded) or 'nothing'}"


def check_config(
    path: Annotated[
        Path,
        typer.Argument(help="Path to the sync configuration", exists=True, dir_okay=False),
    ],
    url: Annotated[
        str | None,
        typer.Option("--url", help="Buildbot base URL (overrides buildbotUrl)"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show the properties of each syncer"),
    ] = False,
) -> None:
    """
    Validate a buildbot sync configuration.

    Exits with status 1 if the configuration is invalid.

    Examples:
        perfsync check-config buildbot.json
        perfsync check-config buildbot.json --url http://localhost:8010 -v
    """
    try:
        syncers = load_syncers_file(path, url)
    except BuildbotConfigError as e:
        console.print(f"[red]✗[/red] {path}: {e}")
        raise typer.Exit(1)

    table = Table(title=f"{len(syncers)} syncers in {path}")
    table.add_column("Builder")
    table.add_column("Platform")
    table.add_column("Test")
    table.add_column("Request property")
    if verbose:
        table.add_column("Properties")

    for syncer in syncers:
        row = [
            syncer.builder_name,
            syncer.platform_name,
            " ∋ ".join(syncer.test_path),
            syncer.build_request_argument,
        ]
        if verbose:
            row.append(
                "\n".join(
                    f"{name}: {_describe_argument(argument)}"
                    for name, argument in syncer.properties_template.items()
                )
            )
        table.add_row(*row)

    console.print(table)
    console.print(f"[green]✓[/green] {path} is valid")
