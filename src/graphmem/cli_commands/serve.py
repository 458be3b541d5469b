"""``graphmem serve``: run the MCP server on stdin/stdout."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click

from graphmem.cli_commands._output import err_console


@click.command()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML settings file (defaults to $GRAPHMEM_CONFIG).",
)
@click.option("--log-level", default=None, help="Logging level (DEBUG, INFO, ...).")
@click.option(
    "--require-initialize",
    is_flag=True,
    default=None,
    help="Reject requests until the client completes 'initialize'.",
)
@click.option("--telemetry", is_flag=True, help="Export spans to stderr.")
@click.option("--otlp-endpoint", default=None, help="Export spans via OTLP/gRPC.")
def serve(
    config_path: Path | None,
    log_level: str | None,
    require_initialize: bool | None,
    telemetry: bool,
    otlp_endpoint: str | None,
) -> None:
    """Serve the memory tools over newline-delimited JSON-RPC on stdio."""
    from graphmem.config import ConfigError, load_settings
    from graphmem.memory import InMemoryGraphStore, build_registry
    from graphmem.protocol.server import run_stdio

    try:
        settings = load_settings(
            config_path,
            log_level=log_level,
            require_initialize=require_initialize,
        )
    except ConfigError as exc:
        err_console.print(f"[red]Configuration error:[/red] {exc}")
        sys.exit(1)

    logging.basicConfig(
        stream=sys.stderr,
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if telemetry or otlp_endpoint or settings.telemetry.enabled:
        from graphmem.utils.telemetry import configure_telemetry

        configure_telemetry(
            service_name=settings.name,
            export_to_console=telemetry,
            otlp_endpoint=otlp_endpoint or settings.telemetry.otlp_endpoint,
        )

    store = InMemoryGraphStore(settings.contexts, settings.default_context)
    registry = build_registry(store, settings)

    try:
        asyncio.run(run_stdio(settings, registry))
    except KeyboardInterrupt:
        pass
