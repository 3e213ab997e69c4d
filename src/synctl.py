#!/usr/bin/env python3
"""
CLI tool for the pod sync controller.

Inspects what the controller would do, runs a single cycle by hand and lists
gateway assets. Configuration comes from the same environment variables as
the controller.
"""

import asyncio
import json
import logging
from dataclasses import asdict

import click
import yaml
from tabulate import tabulate

from config import Config
from controller import Controller
from main import LOG_FORMAT, build_gateway, build_source
from reconciler import Reconciler


def _load_config(**overrides) -> Config:
    try:
        return Config.from_env(overrides)
    except ValueError as e:
        raise click.UsageError(str(e))


def _build_controller(config: Config, dry_run: bool = True) -> Controller:
    try:
        source = build_source(config)
    except ValueError as e:
        raise click.UsageError(str(e))
    gateway = build_gateway(config)
    reconciler = Reconciler(
        gateway,
        bind_principal=config.gateway.bind_principal,
        max_concurrent_operations=config.controller.max_concurrent_operations,
        dry_run=dry_run,
    )
    return Controller(
        source=source,
        gateway=gateway,
        reconciler=reconciler,
        cluster=config.cluster,
        sync_interval=config.controller.sync_interval,
    )


async def _close(controller: Controller) -> None:
    await controller.gateway.close()
    await controller.source.close()


def _echo(data, output: str, headers) -> None:
    if output == "json":
        click.echo(json.dumps(data, indent=2))
    elif output == "yaml":
        click.echo(yaml.dump(data, default_flow_style=False))
    elif data:
        click.echo(tabulate([[row[h] for h in headers] for row in data], headers=headers))
    else:
        click.echo("Nothing to show")


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Show controller logs")
def cli(verbose):
    """Pod sync CLI - inspect and drive JumpServer asset synchronization"""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING, format=LOG_FORMAT
    )


@cli.command()
@click.option(
    "--output", "-o", type=click.Choice(["table", "json", "yaml"]), default="table"
)
def plan(output):
    """Show the assets that would be created and deleted"""
    controller = _build_controller(_load_config())

    async def _plan():
        try:
            return await controller.plan()
        finally:
            await _close(controller)

    try:
        result = asyncio.run(_plan())
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    rows = [
        {
            "action": "create",
            "identity": a.identity,
            "address": a.address,
            "port": a.port,
            "detail": a.workload,
        }
        for a in result.to_create
    ]
    rows.extend(
        {
            "action": "delete",
            "identity": a.identity,
            "address": a.address,
            "port": a.port,
            "detail": a.asset_id,
        }
        for a in result.to_delete
    )
    rows.extend(
        {"action": "skip", "identity": s.identity, "address": "", "port": "", "detail": s.reason}
        for s in result.skipped
    )
    _echo(rows, output, ["action", "identity", "address", "port", "detail"])
    if output == "table":
        click.echo(
            f"\n{len(result.to_create)} to create, {len(result.to_delete)} to delete, "
            f"{len(result.stable)} unchanged, {len(result.skipped)} skipped"
        )


@cli.command()
@click.option("--dry-run", is_flag=True, help="Only log the planned actions")
def sync(dry_run):
    """Run one reconciliation cycle"""
    controller = _build_controller(_load_config(), dry_run=dry_run)

    async def _sync():
        try:
            return await controller.run_once()
        finally:
            await _close(controller)

    try:
        report = asyncio.run(_sync())
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    click.echo(report.summary())
    for failure in report.failures:
        click.echo(f"  {failure.action} {failure.identity}: {failure.error}", err=True)
    if not report.success:
        raise SystemExit(1)


@cli.command()
@click.option(
    "--output", "-o", type=click.Choice(["table", "json", "yaml"]), default="table"
)
def assets(output):
    """List the assets registered in the gateway"""
    gateway = build_gateway(_load_config())

    async def _list():
        try:
            return await gateway.list_actual_assets()
        finally:
            await gateway.close()

    try:
        result = asyncio.run(_list())
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    rows = [asdict(a) for a in sorted(result, key=lambda a: a.identity)]
    _echo(rows, output, ["identity", "asset_id", "address", "port"])


if __name__ == "__main__":
    cli()
