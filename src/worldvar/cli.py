"""Root CLI group for worldvar with global flags and command registration."""

from __future__ import annotations

import click

from worldvar import __version__
from worldvar.commands import register_commands
from worldvar.commands._context import AppContext
from worldvar.config.settings import WorldVarSettings


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="worldvar")
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.option("-q", "--quiet", is_flag=True, help="Minimal output.")
@click.option("-v", "--verbose", is_flag=True, help="Detailed output with debug info.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option("-c", "--config", "config_path", default=None, help="Override config file path.")
@click.option("--sync", "sync_dispatch", is_flag=True, help="Run plugin hooks inline.")
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    quiet: bool,
    verbose: bool,
    log_json: bool,
    config_path: str | None,
    sync_dispatch: bool,
) -> None:
    """worldvar — parse and reconcile world-variable updates."""
    ctx.ensure_object(dict)
    settings = WorldVarSettings.from_cli(
        config_path=config_path,
        json_output=json_output,
        quiet=quiet,
        verbose=verbose,
        log_json=log_json,
        sync_dispatch=sync_dispatch,
    )
    ctx.obj = AppContext(settings)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)
