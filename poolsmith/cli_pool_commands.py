"""Pool lifecycle CLI commands."""
from pathlib import Path
from typing import Dict, Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from poolsmith.cli_support import (
    build_controller,
    confirm_action,
    find_config,
    handle_cli_error,
    is_mock,
    print_error,
    print_info,
    print_success,
    print_warning,
    refresh_recorded,
    require_recorded,
    setup_file_logging,
)
from poolsmith.config.loader import ConfigLoader
from poolsmith.core.config import get_config
from poolsmith.core.controller import PoolController
from poolsmith.core.drift_engine import DriftEngine, DriftSeverity
from poolsmith.core.lock import LockError, apply_lock, check_lock_status
from poolsmith.core.planner import ChangeType, PoolPlanner
from poolsmith.models.errors import PoolError, PoolMutationError, PoolNotFoundError
from poolsmith.models.resource import PoolResource

# Module-level console instance (will be set by register function)
console: Console = Console()


def _load_desired(config: Optional[str]) -> Dict[str, PoolResource]:
    loader = ConfigLoader(find_config(config))
    return loader.get_resources()


def _apply_pool(
    controller: PoolController,
    want: PoolResource,
    have: Optional[PoolResource],
    change_types: set,
) -> PoolResource:
    """Run the lifecycle operation a pool's planned changes call for."""
    if ChangeType.CREATE in change_types:
        return controller.create(want)
    if ChangeType.REPLACE in change_types:
        controller.delete(have)
        return controller.create(want)
    return controller.update(have, want)


def plan(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Config file path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show what apply would change."""
    try:
        desired = _load_desired(config)
        controller, store = build_controller()
        recorded = refresh_recorded(controller, store, console)
        planner = PoolPlanner(desired, recorded)
        planner.calculate()
        console.print(planner.format_plan())
    except (PoolError, FileNotFoundError) as e:
        handle_cli_error(e, console, verbose)


def apply(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Config file path"),
    replace: bool = typer.Option(False, "--replace", help="Allow destroying and recreating pools whose layout changed"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Path to log file"),
):
    """Create, rename and reconfigure pools to match poolsmith.yml.

    Examples:
        poolsmith apply                # Apply with confirmation
        poolsmith apply --yes          # No prompt
        poolsmith apply --replace      # Allow layout changes (destroys data)
    """
    setup_file_logging(log_file=log_file, verbose=verbose)

    try:
        desired = _load_desired(config)
        controller, store = build_controller()

        with apply_lock(lock_file=Path(get_config().lock_file)):
            recorded = refresh_recorded(controller, store, console)
            planner = PoolPlanner(desired, recorded)
            changes = planner.calculate()
            console.print(planner.format_plan())

            if not changes:
                return

            replacements = [c.address for c in changes if c.change_type == ChangeType.REPLACE]
            if replacements and not replace:
                print_error(console, f"Layout changed for: {', '.join(replacements)}")
                print_info(console, "Pool layout is immutable. Re-run with --replace to destroy and recreate.")
                raise typer.Exit(1)

            if not confirm_action("Apply these changes?", yes, is_mock()):
                print_warning(console, "Cancelled")
                return

            failed = 0
            for address, want in desired.items():
                change_types = {c.change_type for c in changes if c.address == address}
                if not change_types:
                    continue
                try:
                    result = _apply_pool(controller, want, recorded.get(address), change_types)
                except PoolMutationError as e:
                    failed += 1
                    print_error(console, f"{address}: {len(e.failures)} operation(s) failed")
                    for failure in e.failures:
                        console.print(f"    {failure}")
                    continue
                except PoolError as e:
                    failed += 1
                    print_error(console, f"{address}: {e}")
                    continue

                store.set_pool(address, result)
                print_success(console, f"{address}: pool {result.name} ({result.id})")

            if failed:
                raise typer.Exit(1)
            print_success(console, "Apply complete")

    except (PoolError, LockError, FileNotFoundError) as e:
        handle_cli_error(e, console, verbose)


def show(
    address: str = typer.Argument(..., help="Pool address from poolsmith.yml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show the observed layout and properties of a managed pool."""
    try:
        controller, store = build_controller()
        resource = controller.read(require_recorded(store, address, console))
        if not resource.id:
            print_warning(console, f"{address}: pool no longer exists")
            store.remove_pool(address)
            raise typer.Exit(1)
        store.set_pool(address, resource)

        console.print(f"[bold]{resource.name}[/bold] guid={resource.id} mode={resource.property_mode}")
        for device in resource.device:
            console.print(f"  {device['path']}")
        for index, mirror in enumerate(resource.mirror):
            console.print(f"  mirror-{index}")
            for device in mirror['device']:
                console.print(f"    {device['path']}")

        table = Table(title="Properties", show_header=True, header_style="bold cyan")
        table.add_column("Property")
        table.add_column("Value")
        table.add_column("Raw")
        for name in sorted(resource.properties):
            table.add_row(name, resource.properties[name], resource.raw_properties.get(name, ""))
        console.print(table)
    except PoolError as e:
        handle_cli_error(e, console, verbose)


def drift(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Config file path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Report differences between poolsmith.yml and the live pools."""
    try:
        desired = _load_desired(config)
        controller, store = build_controller()

        dirty = False
        for address, want in desired.items():
            have = store.get_pool(address)
            observed = None
            if have is not None and have.id:
                probe = PoolResource(
                    name=want.name,
                    id=have.id,
                    property=want.property,
                    property_mode=want.property_mode,
                )
                try:
                    observed = controller.observe(probe)
                except PoolNotFoundError:
                    observed = None

            report = DriftEngine(want, observed).run()
            if report.is_clean():
                print_success(console, f"{address}: no drift")
                continue

            dirty = True
            table = Table(title=f"Drift: {address}", show_header=True, header_style="bold cyan")
            table.add_column("Severity")
            table.add_column("Field")
            table.add_column("Desired")
            table.add_column("Actual")
            for item in report.items:
                style = {"dangerous": "red", "auto-merge": "yellow"}.get(item.severity, "cyan")
                table.add_row(
                    f"[{style}]{item.severity}[/{style}]",
                    item.field,
                    "" if item.desired is None else str(item.desired),
                    "" if item.reality is None else str(item.reality),
                )
            console.print(table)
            counts = report.summary()
            if counts.get(DriftSeverity.AUTO_MERGE):
                print_info(console, "Run 'poolsmith apply' to converge auto-merge drift")
            if report.needs_recreate():
                print_warning(console, "Layout differs: only 'poolsmith apply --replace' (destroys data) can converge it")

        if dirty:
            raise typer.Exit(2)
    except (PoolError, FileNotFoundError) as e:
        handle_cli_error(e, console, verbose)


def destroy(
    address: str = typer.Argument(..., help="Pool address from poolsmith.yml"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Destroy a managed pool and forget it. ALL DATA IN THE POOL IS LOST."""
    try:
        controller, store = build_controller()
        resource = require_recorded(store, address, console)

        if not confirm_action(f"Destroy pool {resource.name} and all its data?", yes, is_mock()):
            print_warning(console, "Cancelled")
            return

        with apply_lock(lock_file=Path(get_config().lock_file), command="destroy"):
            controller.delete(resource)
            store.remove_pool(address)
        print_success(console, f"Destroyed {address} ({resource.name})")
    except (PoolError, LockError) as e:
        handle_cli_error(e, console, verbose)


def import_cmd(
    address: str = typer.Argument(..., help="Address to record the pool under"),
    identifier: str = typer.Argument(..., help="Pool guid or current name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Adopt an existing pool into poolsmith state.

    Prints a poolsmith.yml snippet describing the pool as observed.
    """
    try:
        controller, store = build_controller()
        if store.get_pool(address) is not None:
            print_error(console, f"'{address}' is already recorded")
            raise typer.Exit(1)

        resource = controller.import_pool(identifier)
        existing = store.find_by_guid(resource.id)
        if existing:
            print_error(console, f"Pool {resource.name} is already managed as '{existing}'")
            raise typer.Exit(1)

        store.set_pool(address, resource)
        print_success(console, f"Imported {resource.name} (guid {resource.id}) as '{address}'")

        snippet = {'pools': {address: {
            'name': resource.name,
            'device': resource.device,
            'mirror': resource.mirror,
            'property_mode': resource.property_mode,
        }}}
        console.print("\nAdd this to poolsmith.yml:\n")
        console.print(yaml.safe_dump(snippet, sort_keys=False), markup=False)
    except PoolNotFoundError:
        print_error(console, f"No pool matches '{identifier}'")
        raise typer.Exit(1)
    except PoolError as e:
        handle_cli_error(e, console, verbose)


def status(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List imported pools and which of them poolsmith manages."""
    try:
        controller, store = build_controller()
        pools = controller.commands.list_pools(controller.context)
    except PoolError as e:
        handle_cli_error(e, console, verbose)
        return

    table = Table(title="Pools", show_header=True, header_style="bold cyan")
    table.add_column("Name")
    table.add_column("GUID")
    table.add_column("Managed as")
    for name, guid in pools:
        table.add_row(name, guid, store.find_by_guid(guid) or "-")
    console.print(table)

    lock = check_lock_status(Path(get_config().lock_file))
    if lock:
        print_warning(console, f"{lock['command']} in progress (PID {lock['pid']} since {lock['time']})")


def register_pool_commands(app: typer.Typer, shared_console: Console):
    """Register pool commands with the main Typer app.

    Args:
        app: Main Typer application
        shared_console: Shared Rich console instance
    """
    global console
    console = shared_console

    app.command()(plan)
    app.command()(apply)
    app.command()(show)
    app.command()(drift)
    app.command()(destroy)
    app.command(name="import")(import_cmd)
    app.command()(status)
