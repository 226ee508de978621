"""CLI: init, serve, status, list, backups, restore, delete."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from devflow.config import Config
from devflow.errors import DevFlowError
from devflow.storage.json_store import JsonProjectStore

_dir_option = click.option(
    "--dir",
    "projects_dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Projects directory (default: $DEVFLOW_PROJECTS_DIR or ~/.devflow)",
)


def _setup_logging(level: str) -> None:
    """Send devflow logs to stderr; stdout belongs to the stdio transport."""
    logger = logging.getLogger("devflow")
    logger.setLevel(level.upper())
    logger.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    logger.addHandler(handler)


def _load_config(projects_dir: str | None) -> Config:
    path = Path(projects_dir).expanduser().resolve() if projects_dir else None
    config = Config.load(path)
    _setup_logging(config.log_level)
    return config


async def _open_store(config: Config) -> JsonProjectStore:
    store = JsonProjectStore.from_config(config)
    await store.initialize()
    return store


def _fail(e: DevFlowError) -> None:
    click.echo(f"Error [{e.code}]: {e.message}", err=True)
    sys.exit(1)


@click.group()
@click.version_option(package_name="devflow-mcp")
def main() -> None:
    """devflow: phase-driven development workflow server."""


@main.command()
@click.argument("path", type=click.Path(file_okay=False), default="~/.devflow")
def init(path: str) -> None:
    """Initialize a projects directory."""
    config = _load_config(path)

    async def _init() -> int:
        store = await _open_store(config)
        return store.count()

    try:
        count = asyncio.run(_init())
    except DevFlowError as e:
        _fail(e)
    config.save()
    click.echo(f"Initialized projects directory at {config.projects_dir}")
    click.echo(f"State: {config.state_dir} ({count} projects)")
    click.echo("Add to Claude Desktop config:")
    click.echo(
        f'  "devflow": {{"command": "devflow", "args": ["serve", "--dir", "{config.projects_dir}"]}}'
    )


@main.command()
@_dir_option
@click.option("--transport", type=click.Choice(["stdio"]), default="stdio")
def serve(projects_dir: str | None, transport: str) -> None:
    """Start the MCP server."""
    config = _load_config(projects_dir)

    from devflow.server import create_server

    server = create_server(config)
    server.run(transport=transport)  # type: ignore[arg-type]


@main.command()
@_dir_option
def status(projects_dir: str | None) -> None:
    """Show store status: project count per phase and recent projects."""
    config = _load_config(projects_dir)

    async def _status() -> dict:
        store = await _open_store(config)
        return await store.stats()

    try:
        stats = asyncio.run(_status())
    except DevFlowError as e:
        _fail(e)

    console = Console()
    phases = "\n".join(f"{phase}: {n}" for phase, n in sorted(stats["by_phase"].items()))
    console.print(
        Panel(
            f"[bold]Projects:[/bold] {stats['total']}\n{phases}",
            title=f"devflow: {config.projects_dir}",
            border_style="cyan",
        )
    )
    if stats["recent"]:
        table = Table(title="Recently updated")
        table.add_column("ID", style="dim")
        table.add_column("Name")
        table.add_column("Phase", style="green")
        table.add_column("Updated")
        for record in stats["recent"]:
            table.add_row(record.id, record.name, str(record.phase), record.updated_at)
        console.print(table)


@main.command(name="list")
@_dir_option
@click.option("--phase", default=None, help="Only projects in this phase")
def list_projects(projects_dir: str | None, phase: str | None) -> None:
    """List stored projects, most recently updated first."""
    config = _load_config(projects_dir)

    async def _list() -> list:
        store = await _open_store(config)
        if phase:
            return await store.find(phase=phase)
        return await store.list_all()

    try:
        records = asyncio.run(_list())
    except DevFlowError as e:
        _fail(e)

    if not records:
        click.echo("No projects found.")
        return

    table = Table(title=f"Projects ({len(records)})")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Phase", style="green")
    table.add_column("Tasks", justify="right")
    table.add_column("Updated")
    for r in records:
        done = len(r.finished_tasks())
        table.add_row(r.id, r.name, str(r.phase), f"{done}/{len(r.tasks)}", r.updated_at)
    Console().print(table)


@main.command()
@click.argument("project_id")
@_dir_option
def backups(project_id: str, projects_dir: str | None) -> None:
    """List backup timestamps for a project, newest first."""
    config = _load_config(projects_dir)

    async def _backups() -> list[str]:
        store = await _open_store(config)
        return await store.list_backups(project_id)

    stamps = asyncio.run(_backups())
    if not stamps:
        click.echo(f"No backups for {project_id}.")
        return
    for stamp in stamps:
        click.echo(stamp)


@main.command()
@click.argument("project_id")
@click.option("--timestamp", default=None, help="Backup timestamp (default: latest)")
@_dir_option
def restore(project_id: str, timestamp: str | None, projects_dir: str | None) -> None:
    """Restore a project from a backup."""
    config = _load_config(projects_dir)

    async def _restore():
        store = await _open_store(config)
        return await store.restore(project_id, timestamp)

    try:
        record = asyncio.run(_restore())
    except DevFlowError as e:
        _fail(e)
    click.echo(f"Restored {record.id} ({record.name}) to phase {record.phase}")


@main.command()
@click.argument("project_id")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@_dir_option
def delete(project_id: str, yes: bool, projects_dir: str | None) -> None:
    """Delete a project (a backup is taken first when auto-backup is on)."""
    config = _load_config(projects_dir)
    if not yes:
        click.confirm(f"Delete project {project_id}?", abort=True)

    async def _delete() -> bool:
        store = await _open_store(config)
        return await store.delete(project_id)

    try:
        deleted = asyncio.run(_delete())
    except DevFlowError as e:
        _fail(e)
    if not deleted:
        click.echo(f"Error: Project does not exist: {project_id}", err=True)
        sys.exit(1)
    click.echo(f"Deleted {project_id}")
