"""Maintenance CLI: bring a database up to date and inspect its message tables."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from pathlib import Path

import click

from chatstore.config import StorageConfig, load_config
from chatstore.errors import ChatStoreError
from chatstore.lib.log import configure_logging
from chatstore.storage import SQLStorageProvider


@dataclass
class AppEnv:
    config_path: Path | None = None

    def load(self) -> StorageConfig:
        return load_config(self.config_path)


def _provider(config: StorageConfig) -> SQLStorageProvider:
    return SQLStorageProvider(config.account_id, config.kind, config.connect_options())


async def _migrate(config: StorageConfig) -> int | None:
    async with _provider(config) as store:
        return await store.schema_version()


async def _tables(config: StorageConfig) -> list[str]:
    async with _provider(config) as store:
        return await store.message_tables()


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Config file (default: $CHATSTORE_CONFIG or ~/.config/chatstore/config.json)",
)
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool, json_logs: bool) -> None:
    """Manage chatstore databases."""
    configure_logging(verbose=verbose, json_logs=json_logs)
    ctx.obj = AppEnv(config_path=config_path)


@cli.command("migrate")
@click.pass_obj
def migrate_command(env: AppEnv) -> None:
    """Connect, provision tables and apply pending schema upgrades."""
    try:
        version = asyncio.run(_migrate(env.load()))
    except ChatStoreError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Schema version: {version}")


@cli.command("tables")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_obj
def tables_command(env: AppEnv, json_output: bool) -> None:
    """List the registered per-conversation message tables."""
    try:
        names = asyncio.run(_tables(env.load()))
    except ChatStoreError as exc:
        raise click.ClickException(str(exc)) from exc
    if json_output:
        click.echo(json.dumps(names, indent=2))
        return
    for name in names:
        click.echo(name)
    click.echo(f"{len(names)} message tables")


def main() -> None:
    """Main entry point."""
    cli()


__all__ = ["cli", "main"]
