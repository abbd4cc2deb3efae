#!/usr/bin/env python3
"""poolsmith CLI - Declarative ZFS pool management."""

import typer
from rich.console import Console

from poolsmith.cli_pool_commands import register_pool_commands

app = typer.Typer(
    name="poolsmith",
    help="""poolsmith - Declarative ZFS pool management

Declare pools, their vdev layout and properties in poolsmith.yml.

Quick start:
  poolsmith plan                  # See what will change
  poolsmith apply                 # Make it happen
  poolsmith import tank tank      # Adopt an existing pool
  poolsmith drift                 # Compare config with reality
""",
    add_completion=False,
)

console = Console()

register_pool_commands(app, console)

if __name__ == "__main__":
    app()
