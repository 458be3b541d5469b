"""graphmem CLI entrypoint."""

from __future__ import annotations

import click

from graphmem import __version__


@click.group()
@click.version_option(version=__version__, prog_name="graphmem")
def main() -> None:
    """graphmem: knowledge-graph memory tools over MCP stdio."""


# Register subcommands
from graphmem.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
