"""Shared utilities for poolsmith CLI modules."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Optional, Tuple

import typer
from rich.console import Console

from poolsmith.core.config import get_config
from poolsmith.core.controller import PoolController
from poolsmith.core.properties import parse_property_blocks
from poolsmith.core.state_store import StateStore
from poolsmith.core.topology import layout_from_blocks
from poolsmith.core.zpool_manager import ZpoolCommandLayer
from poolsmith.models.pool import Pool, Property, PropertySource
from poolsmith.models.resource import PoolResource

# Default config search paths (ordered by proximity to current run)
CONFIG_PATHS = [
    "./poolsmith.yml",
    str(Path.home() / "poolsmith" / "poolsmith.yml"),
    "/etc/poolsmith/poolsmith.yml",
]


def find_config(config_path: Optional[str] = None) -> str:
    """Locate the active configuration file."""
    if config_path:
        return config_path

    if env_config := os.environ.get("POOLSMITH_CONFIG"):
        return env_config

    for path in CONFIG_PATHS:
        if Path(path).exists():
            return path

    return "poolsmith.yml"


def is_mock() -> bool:
    """Return True when the CLI runs in mock mode."""
    return os.environ.get("POOLSMITH_MOCK") == "1"


def setup_file_logging(log_file: Optional[str] = None, verbose: bool = False) -> None:
    from poolsmith.core.logger import setup_file_logging as _setup_file_logging
    _setup_file_logging(log_file=log_file, verbose=verbose)


def build_controller() -> Tuple[PoolController, StateStore]:
    """Create the controller and state store from runtime config.

    In mock mode the simulated subsystem is seeded with the recorded pools,
    so state survives between CLI runs.
    """
    config = get_config()
    store = StateStore(Path(config.state_file))
    commands = ZpoolCommandLayer(mock=is_mock())
    if commands.mock:
        for resource in store.get_all().values():
            commands.seed_mock_pool(pool_from_resource(resource))
    return PoolController(commands, config), store


def pool_from_resource(resource: PoolResource) -> Pool:
    """Rebuild an observed pool from recorded resource state."""
    declared = parse_property_blocks(resource.property)
    properties = {
        name: Property(
            value=value,
            raw_value=resource.raw_properties.get(name, value),
            source=PropertySource.LOCAL if name in declared else PropertySource.DEFAULT,
        )
        for name, value in resource.properties.items()
    }
    return Pool(
        guid=resource.id,
        name=resource.name,
        layout=layout_from_blocks(resource.device, resource.mirror),
        properties=properties,
    )


def refresh_recorded(
    controller: PoolController,
    store: StateStore,
    console: Console,
) -> Dict[str, PoolResource]:
    """Read every recorded pool back from the subsystem.

    Pools destroyed outside poolsmith are dropped from state.
    """
    refreshed: Dict[str, PoolResource] = {}
    for address, resource in store.get_all().items():
        previous_name = resource.name
        resource = controller.read(resource)
        if not resource.id:
            print_warning(console, f"{address}: pool {previous_name} no longer exists, forgetting it")
            store.remove_pool(address)
            continue
        if resource.name != previous_name:
            print_info(console, f"{address}: pool was renamed {previous_name} -> {resource.name}")
        store.set_pool(address, resource)
        refreshed[address] = resource
    return refreshed


def require_recorded(store: StateStore, address: str, console: Console) -> PoolResource:
    """Return the recorded resource or exit with an error."""
    resource = store.get_pool(address)
    if resource is None:
        print_error(console, f"No pool recorded for '{address}'")
        known = store.get_addresses()
        if known:
            print_info(console, f"Recorded pools: {', '.join(known)}")
        raise typer.Exit(1)
    return resource


def confirm_action(message: str, yes_flag: bool = False, mock: bool = False) -> bool:
    """Prompt for confirmation unless --yes or mock mode."""
    if yes_flag or mock:
        return True
    return typer.confirm(message)


def handle_cli_error(
    e: Exception,
    console: Console,
    verbose: bool = False,
    exit_code: int = 1
) -> None:
    """Print an error consistently and exit.

    Args:
        e: Exception to handle
        console: Rich console for output
        verbose: Show exception traceback if True
        exit_code: Exit code to use
    """
    console.print(f"[red]Error:[/red] {e}")
    if verbose:
        console.print_exception()
    raise typer.Exit(exit_code)


def print_success(console: Console, message: str, prefix: str = "✓") -> None:
    console.print(f"[green]{prefix}[/green] {message}")


def print_error(console: Console, message: str, prefix: str = "✗") -> None:
    console.print(f"[red]{prefix}[/red] {message}")


def print_warning(console: Console, message: str, prefix: str = "⚠") -> None:
    console.print(f"[yellow]{prefix}[/yellow] {message}")


def print_info(console: Console, message: str, prefix: str = "ℹ") -> None:
    console.print(f"[cyan]{prefix}[/cyan] {message}")

