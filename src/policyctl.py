#!/usr/bin/env python3
"""
CLI tool for the repository policy controller.
Provides a plan/apply interface for managing repository policies.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import AsyncIterator, Dict

import click
import yaml
from tabulate import tabulate

from config import Config, get_config
from controller import Controller, PlanAction, build_reconciler
from errors import ManifestError
from manifest import load_manifest
from plugins.base import OperationResult
from plugins.registry import get_registry, register_builtin_plugins
from state import StateFile

logger = logging.getLogger(__name__)

PLAN_SYMBOLS = {
    PlanAction.CREATE: "+",
    PlanAction.UPDATE: "~",
    PlanAction.REPLACE: "-/+",
    PlanAction.DELETE: "-",
    PlanAction.NOOP: " ",
    PlanAction.ERROR: "!",
}


@asynccontextmanager
async def open_controller(config: Config) -> AsyncIterator[Controller]:
    """Build a controller for one CLI command and release the store after."""
    register_builtin_plugins()
    reconciler = await build_reconciler(config)
    try:
        yield Controller(
            reconciler=reconciler,
            state=StateFile(config.controller.state_file),
            config=config.controller,
        )
    finally:
        await get_registry().close()


def _load_specs(filename: str):
    try:
        return load_manifest(filename).policies
    except ManifestError as e:
        raise click.ClickException(e.message)


def _run(coro):
    """Run a controller coroutine, reporting manifest and state errors."""
    try:
        return asyncio.run(coro)
    except ManifestError as e:
        raise click.ClickException(e.message)


def _report(results: Dict[str, OperationResult]) -> bool:
    """Print per-policy results; return True if all succeeded."""
    rows = []
    for name, result in sorted(results.items()):
        rows.append(
            [
                name,
                result.instance.repository_name or "-",
                "✓" if result.ok else "✗",
                result.status.value,
                result.message,
            ]
        )
    if rows:
        click.echo(
            tabulate(
                rows,
                headers=["Name", "Repository", "OK", "Status", "Message"],
                tablefmt="grid",
            )
        )
    return all(result.ok for result in results.values())


@click.group()
@click.option("--state", "state_file", help="Path to the state file")
@click.option("--store", "store_plugin", help="Store plugin name")
@click.option("--endpoint", help="Store API endpoint")
@click.option("--log-level", help="Logging level")
@click.pass_context
def cli(ctx, state_file, store_plugin, endpoint, log_level):
    """Repository policy controller CLI"""
    config = get_config()
    if state_file:
        config = replace(
            config, controller=replace(config.controller, state_file=state_file)
        )
    if store_plugin or endpoint:
        config = replace(
            config,
            store=replace(
                config.store,
                plugin=store_plugin or config.store.plugin,
                endpoint=endpoint or config.store.endpoint,
            ),
        )

    logging.basicConfig(
        level=(log_level or config.logging.level).upper(),
        format=config.logging.format,
    )
    ctx.obj = config


@cli.command()
@click.option("--filename", "-f", required=True, type=click.Path(exists=True))
@click.option("--prune", is_flag=True, help="Also delete policies not in the file")
@click.pass_obj
def plan(config, filename, prune):
    """Show the changes apply would make"""
    specs = _load_specs(filename)

    async def run():
        async with open_controller(config) as controller:
            return await controller.plan(specs, prune=prune)

    changes = _run(run())

    pending = 0
    for change in changes:
        if change.action not in (PlanAction.NOOP, PlanAction.ERROR):
            pending += 1
        line = f"{PLAN_SYMBOLS[change.action]:>3} {change.name} ({change.action.value})"
        if change.message:
            line += f": {change.message}"
        click.echo(line)

    click.echo(f"\nPlan: {pending} to change, {len(changes) - pending} unchanged.")
    if any(change.action is PlanAction.ERROR for change in changes):
        raise click.ClickException("Plan could not read every policy")


@cli.command()
@click.option("--filename", "-f", required=True, type=click.Path(exists=True))
@click.option("--prune", is_flag=True, help="Also delete policies not in the file")
@click.pass_obj
def apply(config, filename, prune):
    """Apply the policies in a YAML/JSON manifest"""
    specs = _load_specs(filename)

    async def run():
        async with open_controller(config) as controller:
            return await controller.apply(specs, prune=prune)

    if not _report(_run(run())):
        raise click.ClickException("Some policies failed to apply")


@cli.command(name="import")
@click.argument("name")
@click.argument("repository")
@click.pass_obj
def import_(config, name, repository):
    """Import an existing repository policy under NAME"""

    async def run():
        async with open_controller(config) as controller:
            return await controller.import_policy(name, repository)

    result = _run(run())
    if not result.ok:
        raise click.ClickException(result.message)
    click.echo(f"Imported {repository} as {name}")


@cli.command()
@click.pass_obj
def refresh(config):
    """Re-read every managed policy from the store"""

    async def run():
        async with open_controller(config) as controller:
            return await controller.refresh()

    if not _report(_run(run())):
        raise click.ClickException("Some policies could not be refreshed")


@cli.command()
@click.argument("name")
@click.confirmation_option(prompt="Are you sure you want to delete this policy?")
@click.pass_obj
def destroy(config, name):
    """Delete a managed repository policy"""

    async def run():
        async with open_controller(config) as controller:
            return await controller.destroy(name)

    result = _run(run())
    if not result.ok:
        raise click.ClickException(result.message)
    click.echo(f"Policy {name} deleted")


@cli.command()
@click.option(
    "--output", "-o", type=click.Choice(["table", "json", "yaml"]), default="table"
)
@click.pass_obj
def get(config, output):
    """List managed policies from the state file"""
    state = _open_state(config)
    instances = {name: state.get(name).to_dict() for name in state.names()}

    if output == "json":
        click.echo(json.dumps(instances, indent=2))
    elif output == "yaml":
        click.echo(yaml.dump(instances, default_flow_style=False))
    else:
        rows = [
            [name, data["repository_name"], data["registry_id"] or "-", data["key"]]
            for name, data in instances.items()
        ]
        click.echo(
            tabulate(
                rows, headers=["Name", "Repository", "Registry", "Key"], tablefmt="grid"
            )
        )


@cli.command()
@click.argument("name")
@click.option("--output", "-o", type=click.Choice(["json", "yaml"]), default="json")
@click.pass_obj
def show(config, name, output):
    """Show one managed policy"""
    state = _open_state(config)
    if name not in state:
        raise click.ClickException(f"Policy {name} is not managed")

    data = state.get(name).to_dict()
    try:
        data["policy"] = json.loads(data.pop("policy_text"))
    except ValueError:
        data["policy"] = state.get(name).policy_text

    if output == "yaml":
        click.echo(yaml.dump(data, default_flow_style=False))
    else:
        click.echo(json.dumps(data, indent=2))


def _open_state(config: Config) -> StateFile:
    try:
        return StateFile(config.controller.state_file).load()
    except ManifestError as e:
        raise click.ClickException(e.message)


if __name__ == "__main__":
    cli()
