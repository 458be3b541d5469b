"""``graphmem tools``: inspect the tools the server exposes."""

from __future__ import annotations

import json
import sys

import click

from graphmem.cli_commands._output import console, print_tools_table
from graphmem.protocol.registry import ToolRegistry


def _registry() -> ToolRegistry:
    from graphmem.config import ServerSettings
    from graphmem.memory import InMemoryGraphStore, build_registry

    settings = ServerSettings()
    store = InMemoryGraphStore(settings.contexts, settings.default_context)
    return build_registry(store, settings)


@click.group()
def tools() -> None:
    """Inspect registered tools."""


@tools.command("list")
@click.option("--json", "as_json", is_flag=True, help="Print the tools/list payload as JSON.")
def list_tools(as_json: bool) -> None:
    """List every tool with its title and description."""
    descriptors = _registry().list()
    if as_json:
        click.echo(json.dumps({"tools": [d.to_wire() for d in descriptors]}, indent=2))
        return
    print_tools_table(descriptors)


@tools.command("show")
@click.argument("name")
def show(name: str) -> None:
    """Print the descriptor of tool NAME as JSON."""
    registry = _registry()
    if name not in registry:
        console.print(f"[red]Unknown tool:[/red] {name}")
        sys.exit(1)
    click.echo(json.dumps(registry.resolve(name).descriptor.to_wire(), indent=2))
