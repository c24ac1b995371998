"""Command-line interface for tfe-workspace-sync."""

import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import structlog
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from tfe_sync.clients.exceptions import SSHKeyLinkError, WorkspaceError
from tfe_sync.clients.tfe import TFEClient
from tfe_sync.config.loader import ConfigLoader, ConfigurationError, find_config_file
from tfe_sync.config.models import SyncConfig, WorkspaceConfig
from tfe_sync.core.state import StateManager, WorkspaceState
from tfe_sync.resources.workspace import PlannedAction, WorkspaceResource
from tfe_sync.version import __version__

app = typer.Typer(
    name="tfe-sync",
    help="Declarative workspace management for Terraform Cloud / Enterprise",
    add_completion=False,
)

console = Console()


def setup_logging(log_level: str = "INFO", log_format: str = "text") -> None:
    """Setup structured logging.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_format: Log format (json or text).
    """
    logging.basicConfig(level=log_level.upper(), format="%(message)s")

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format.lower() == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"tfe-sync {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """TFE Workspace Sync - keep workspaces in line with their declarations."""
    pass


def _load(config_path: Optional[Path]) -> SyncConfig:
    """Locate, load and validate the configuration, exiting on failure."""
    if config_path is None:
        config_path = find_config_file()
        if config_path is None:
            console.print("[red]Error: No configuration file found[/red]")
            console.print("Please create tfe-sync.yaml or specify one with --config")
            raise typer.Exit(1)

    loader = ConfigLoader()
    try:
        sync_config = loader.load_config(config_path)
    except ConfigurationError as e:
        console.print(f"[red]✗[/red] Configuration validation failed: {escape(str(e))}")
        missing_vars = loader.get_missing_env_vars(config_path)
        if missing_vars:
            console.print(f"  Missing environment variables: {', '.join(missing_vars)}")
        raise typer.Exit(1)

    setup_logging(sync_config.logging.level.value, sync_config.logging.format.value)
    return sync_config


def _build_client(sync_config: SyncConfig) -> TFEClient:
    tfe = sync_config.tfe
    return TFEClient(
        token=tfe.token,
        hostname=tfe.hostname,
        timeout_seconds=tfe.timeout_seconds,
        rate_limit_per_minute=tfe.rate_limit_per_minute,
        max_retries=tfe.max_retries,
        retry_delay_seconds=tfe.retry_delay_seconds,
        page_size=tfe.page_size,
    )


ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to configuration file",
    exists=True,
    file_okay=True,
    dir_okay=False,
)


@app.command()
def validate(config: Optional[Path] = ConfigOption) -> None:
    """Validate configuration and API connectivity."""
    sync_config = _load(config)
    console.print("[green]✓[/green] Configuration is valid")
    console.print(f"  {len(sync_config.workspaces)} workspace(s) declared")

    async def _check() -> bool:
        async with _build_client(sync_config) as client:
            return await client.health_check()

    if asyncio.run(_check()):
        console.print(f"[green]✓[/green] Connected to {sync_config.tfe.hostname}")
    else:
        console.print(f"[red]✗[/red] Could not reach {sync_config.tfe.hostname}")
        raise typer.Exit(1)


async def apply_workspace(
    resource: WorkspaceResource,
    store: StateManager,
    workspace_config: WorkspaceConfig,
    dry_run: bool = False,
) -> PlannedAction:
    """Refresh, plan and apply a single declared workspace.

    The record is only written after each remote step succeeds, and a dry
    run never touches it.
    """
    address = workspace_config.address
    state = store.get(address)

    if state is not None:
        state = await resource.read(state)
        if not dry_run:
            if state is None:
                store.remove(address)
            else:
                store.put(address, state)

    action = resource.plan(workspace_config, state)
    if dry_run or action == PlannedAction.NOOP:
        return action

    if action == PlannedAction.REPLACE:
        await resource.delete(state)
        store.remove(address)
        state = None

    try:
        if state is None:
            new_state = await resource.create(workspace_config)
        else:
            new_state = await resource.update(state, workspace_config)
    except SSHKeyLinkError as e:
        if e.state is not None:
            store.put(address, e.state)
        raise

    if new_state is None:
        store.remove(address)
    else:
        store.put(address, new_state)
    return action


@app.command()
def apply(
    config: Optional[Path] = ConfigOption,
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show what would change without making changes",
    ),
) -> None:
    """Create or update every declared workspace."""
    sync_config = _load(config)
    store = StateManager(sync_config.state_dir)

    async def _apply() -> Tuple[List[Tuple[str, str]], Dict[str, str]]:
        results: List[Tuple[str, str]] = []
        errors: Dict[str, str] = {}
        async with _build_client(sync_config) as client:
            resource = WorkspaceResource(client)
            for workspace_config in sync_config.workspaces:
                try:
                    action = await apply_workspace(resource, store, workspace_config, dry_run)
                    results.append((workspace_config.address, action.value))
                except WorkspaceError as e:
                    errors[workspace_config.address] = str(e)
            structlog.get_logger(__name__).debug("Client statistics", **client.get_stats())
        return results, errors

    results, errors = asyncio.run(_apply())

    table = Table(title="Planned changes" if dry_run else "Applied changes")
    table.add_column("Workspace", style="cyan")
    table.add_column("Action")
    for address, action in results:
        table.add_row(address, action)
    for address, error in errors.items():
        table.add_row(address, f"[red]error: {escape(error)}[/red]")
    console.print(table)

    if errors:
        raise typer.Exit(1)


@app.command()
def refresh(config: Optional[Path] = ConfigOption) -> None:
    """Reconcile every recorded workspace with the remote API."""
    sync_config = _load(config)
    store = StateManager(sync_config.state_dir)

    async def _refresh() -> int:
        failures = 0
        async with _build_client(sync_config) as client:
            resource = WorkspaceResource(client)
            for address in store.addresses():
                record = store.get(address)
                try:
                    refreshed = await resource.read(record)
                except WorkspaceError as e:
                    console.print(f"[red]✗[/red] {address}: {escape(str(e))}")
                    failures += 1
                    continue
                if refreshed is None:
                    store.remove(address)
                    console.print(f"[yellow]-[/yellow] {address}: no longer exists")
                else:
                    store.put(address, refreshed)
                    console.print(f"[green]✓[/green] {address}: {refreshed.id}")
        return failures

    if asyncio.run(_refresh()):
        raise typer.Exit(1)


@app.command()
def destroy(
    config: Optional[Path] = ConfigOption,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete every recorded workspace."""
    sync_config = _load(config)
    store = StateManager(sync_config.state_dir)
    addresses = store.addresses()

    if not addresses:
        console.print("No workspaces recorded")
        return
    if not yes:
        typer.confirm(f"Delete {len(addresses)} workspace(s)?", abort=True)

    async def _destroy() -> int:
        failures = 0
        async with _build_client(sync_config) as client:
            resource = WorkspaceResource(client)
            for address in addresses:
                try:
                    await resource.delete(store.get(address))
                except WorkspaceError as e:
                    console.print(f"[red]✗[/red] {address}: {escape(str(e))}")
                    failures += 1
                    continue
                store.remove(address)
                console.print(f"[green]✓[/green] {address}: deleted")
        return failures

    if asyncio.run(_destroy()):
        raise typer.Exit(1)


@app.command(name="import")
def import_workspace(
    address: str = typer.Argument(..., help="Address to record the workspace under"),
    identifier: str = typer.Argument(..., help="Workspace ID: <ORGANIZATION>/<WORKSPACE>"),
    config: Optional[Path] = ConfigOption,
) -> None:
    """Import an existing workspace into the state store."""
    sync_config = _load(config)
    store = StateManager(sync_config.state_dir)

    async def _import() -> Optional[WorkspaceState]:
        async with _build_client(sync_config) as client:
            return await WorkspaceResource(client).import_state(identifier)

    try:
        state = asyncio.run(_import())
    except WorkspaceError as e:
        console.print(f"[red]✗[/red] Import failed: {escape(str(e))}")
        raise typer.Exit(1)

    if state is None:
        console.print(f"[red]✗[/red] Workspace {identifier} does not exist")
        raise typer.Exit(1)

    store.put(address, state)
    console.print(f"[green]✓[/green] Imported {state.id} as {address}")


@app.command()
def show(config: Optional[Path] = ConfigOption) -> None:
    """Show recorded workspaces."""
    sync_config = _load(config)
    store = StateManager(sync_config.state_dir)

    table = Table(title="Recorded workspaces")
    table.add_column("Address", style="cyan")
    table.add_column("ID")
    table.add_column("External ID")
    table.add_column("SSH key")
    table.add_column("Refreshed")
    for address in store.addresses():
        record = store.get(address)
        table.add_row(
            address,
            record.id,
            record.external_id,
            record.ssh_key_id or "-",
            record.refreshed_at.isoformat() if record.refreshed_at else "-",
        )
    console.print(table)


if __name__ == "__main__":
    app()
