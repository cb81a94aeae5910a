"""CLI entry point for schemax.

Commands:
    schemax init                    scaffold schemax.config.json and the database
    schemax new NAME                create an empty diagram
    schemax list                    list diagrams, newest first
    schemax export DIAGRAM_ID       print a diagram as schema text
    schemax apply DIAGRAM_ID FILE   reconcile schema text from FILE into a diagram
    schemax serve                   start the API server
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from schemax.config import CONFIG_FILENAME, DEFAULTS, ConfigError, load_config
from schemax.data_types import DatabaseType

if TYPE_CHECKING:
    from db.storage import SQLiteStorage

DEFAULT_CONFIG = {
    "db_path": "~/.schemax/schemax.db",
    **DEFAULTS,
}


def _load_config_or_exit() -> dict[str, Any]:
    try:
        config = load_config()
    except ConfigError as e:
        click.echo(f"Config error: {e}", err=True)
        sys.exit(1)
    logging.basicConfig(
        level=config["log_level"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return config


async def _open_storage(config: dict[str, Any]) -> "SQLiteStorage":
    from db.storage import SQLiteStorage

    storage = SQLiteStorage(config["db_path"])
    await storage.migrate()
    return storage


@click.group()
def main() -> None:
    """schemax: edit database schema diagrams as text or visually."""


@main.command()
def init() -> None:
    """Create a starter schemax.config.json and initialize the database."""
    config_path = Path.cwd() / CONFIG_FILENAME

    if config_path.exists():
        click.echo(f"Config already exists: {config_path}")
    else:
        config_path.write_text(json.dumps(DEFAULT_CONFIG, indent=2) + "\n")
        click.echo(f"Created {config_path}")

    config = _load_config_or_exit()
    Path(config["db_path"]).parent.mkdir(parents=True, exist_ok=True)

    from db.migrations import init_db

    init_db(config["db_path"]).close()
    click.echo(f"Database ready at {config['db_path']}")


@main.command()
@click.argument("name")
@click.option(
    "--database-type",
    type=click.Choice([t.value for t in DatabaseType]),
    default=None,
    help="Target SQL dialect. Defaults to the configured database_type.",
)
def new(name: str, database_type: str | None) -> None:
    """Create an empty diagram."""
    config = _load_config_or_exit()
    from schemax.diagram import DiagramSession

    async def run() -> str:
        storage = await _open_storage(config)
        session = await DiagramSession.create(
            storage, name, database_type or config["database_type"]
        )
        return session.diagram_id

    click.echo(asyncio.run(run()))


@main.command("list")
def list_cmd() -> None:
    """List diagrams, newest first."""
    config = _load_config_or_exit()

    async def run():
        storage = await _open_storage(config)
        return await storage.list_diagrams()

    for diagram in asyncio.run(run()):
        click.echo(
            f"{diagram.id}  {diagram.name}  {diagram.database_type.value}  {diagram.updated_at}"
        )


@main.command()
@click.argument("diagram_id")
def export(diagram_id: str) -> None:
    """Print a diagram as schema text."""
    config = _load_config_or_exit()
    from schemax.code.generator import generate_dbml
    from schemax.diagram import DiagramNotFoundError, DiagramSession

    async def run() -> str:
        session = await DiagramSession.open(await _open_storage(config), diagram_id)
        return generate_dbml(session.tables, session.relationships)

    try:
        click.echo(asyncio.run(run()))
    except DiagramNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("diagram_id")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def apply(diagram_id: str, file: Path) -> None:
    """Reconcile schema text from FILE into a diagram."""
    config = _load_config_or_exit()
    from schemax.code.reconcile import apply_code
    from schemax.diagram import DiagramNotFoundError, DiagramSession

    async def run():
        session = await DiagramSession.open(await _open_storage(config), diagram_id)
        return await apply_code(session, file.read_text())

    try:
        report = asyncio.run(run())
    except DiagramNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not report.changed:
        click.echo("No changes.")
        return
    for label, names in (
        ("created", report.created_tables),
        ("updated", report.updated_tables),
        ("removed", report.removed_tables),
    ):
        for table_name in names:
            click.echo(f"  table {label}: {table_name}")
    for old_name, new_name in report.renamed_tables:
        click.echo(f"  table renamed: {old_name} -> {new_name}")
    for label, names in (
        ("created", report.created_relationships),
        ("updated", report.updated_relationships),
        ("removed", report.removed_relationships),
        ("skipped", report.skipped_relationships),
    ):
        for rel_name in names:
            click.echo(f"  relationship {label}: {rel_name}")


@main.command()
@click.option("--host", default=None, help="Bind address. Defaults to the configured host.")
@click.option("--port", default=None, type=int, help="Port. Defaults to the configured port.")
def serve(host: str | None, port: int | None) -> None:
    """Start the schemax API server."""
    config = _load_config_or_exit()

    import uvicorn

    from api.app import create_app

    app = create_app(config["db_path"], config)
    uvicorn.run(
        app,
        host=host or config["host"],
        port=port or config["port"],
        log_level=config["log_level"].lower(),
    )
