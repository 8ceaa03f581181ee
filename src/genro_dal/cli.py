# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""CLI entry point for genro-dal (genro-dal command).

Thin operational commands over the configured data sources.

Commands:
    list: Show the data sources of the configuration document
    ping: Open and close a connection on one data source
    run: Batch-execute a SQL file and report one outcome per statement

The configuration file is taken from --config, then $GENRO_DAL_CONFIG,
then ./dal/dal.json.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import DalConfig, load_config
from .errors import DalError, is_fault
from .registry import Registry

console = Console()


def _load(config_file: str | None) -> DalConfig:
    try:
        return load_config(config_file)
    except DalError as e:
        raise click.ClickException(str(e)) from e


async def _ping(registry: Registry, identifier: str, schema: str | None) -> float:
    try:
        conn = await registry.connect(identifier, schema)
        await conn.query_scalar("SELECT 1")
        elapsed = conn.elapsed
        await conn.close()
        return elapsed
    finally:
        await registry.shutdown()


async def _run(registry: Registry, identifier: str, schema: str | None, sql: str) -> list:
    try:
        ds = registry.get(identifier, schema)
        return await ds.batch_execute(sql)
    finally:
        await registry.shutdown()


# ============================================================================
# CLI Commands
# ============================================================================


@click.group()
@click.version_option(package_name="genro-dal")
@click.option("--config", "-c", "config_file", default=None, help="Path of the configuration document.")
@click.option("--verbose", "-v", is_flag=True, help="Log connection lifecycle to stderr.")
@click.pass_context
def main(ctx: click.Context, config_file: str | None, verbose: bool) -> None:
    """genro-dal - data sources, connections and SQL batches."""
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config_file
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


@main.command("list")
@click.pass_context
def list_cmd(ctx: click.Context) -> None:
    """List configured data sources."""
    config = _load(ctx.obj["config_file"])

    table = Table(title=f"Data Sources ({config.source})")
    table.add_column("ID", style="cyan")
    table.add_column("Provider")
    table.add_column("Schemas")
    table.add_column("Pool")
    table.add_column("Timeout (ms)", justify="right")

    for ds in config.datasources:
        table.add_row(
            ds.id or "[dim]generated[/dim]",
            ds.provider or "",
            ", ".join(ds.schemas) if ds.schemas else "[dim]-[/dim]",
            "[green]yes[/green]" if ds.use_pool else "[dim]no[/dim]",
            str(ds.pool_timeout),
        )

    console.print(table)


@main.command("ping")
@click.argument("identifier")
@click.option("--schema", "-s", default=None, help="Schema of the data source.")
@click.pass_context
def ping_cmd(ctx: click.Context, identifier: str, schema: str | None) -> None:
    """Open and close a connection on IDENTIFIER."""
    registry = Registry(_load(ctx.obj["config_file"]))
    try:
        elapsed = asyncio.run(_ping(registry, identifier, schema))
    except DalError as e:
        console.print(f"[red]failed[/red] {escape(str(e))}")
        raise SystemExit(1) from e
    console.print(f"[green]ok[/green] {identifier} ({elapsed * 1000:.1f} ms)")


@main.command("run")
@click.argument("identifier")
@click.argument("sql_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--schema", "-s", default=None, help="Schema of the data source.")
@click.pass_context
def run_cmd(ctx: click.Context, identifier: str, sql_file: Path, schema: str | None) -> None:
    """Batch-execute SQL_FILE on IDENTIFIER, one line per statement."""
    registry = Registry(_load(ctx.obj["config_file"]))
    sql = sql_file.read_text(encoding="utf-8")
    try:
        results = asyncio.run(_run(registry, identifier, schema, sql))
    except DalError as e:
        console.print(f"[red]failed[/red] {escape(str(e))}")
        raise SystemExit(1) from e
    if is_fault(results):
        console.print(f"[red]failed[/red] {escape(str(results))}")
        raise SystemExit(1)

    failed = 0
    for index, outcome in enumerate(results, start=1):
        if is_fault(outcome):
            failed += 1
            console.print(f"{index:>4} [red]error[/red] {escape(outcome.message)}")
        else:
            console.print(
                f"{index:>4} [green]ok[/green] affected={outcome.affected_rows} insert_id={outcome.insert_id}"
            )

    summary = f"{len(results)} statement(s), {failed} failed"
    console.print(f"\n[red]{summary}[/red]" if failed else f"\n[green]{summary}[/green]")
    if failed:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
