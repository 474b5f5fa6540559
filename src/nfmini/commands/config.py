"""Configuration commands: show the effective settings, write defaults."""

from typing import Annotated

import typer
from rich.markup import escape
from rich.syntax import Syntax

from nfmini.core import NFError
from nfmini.core.config import init_config
from nfmini.commands import common
from nfmini.commands.common import ConfigOption, NoColorOption, VerboseOption


app = typer.Typer(
    name="config",
    help="Show or initialize the nfmini configuration file.",
    no_args_is_help=True,
)


@app.command("show")
def config_show(
    config: ConfigOption = None,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
) -> None:
    """Show the effective configuration (file values over defaults)."""
    ctx = common.build_context(verbose=verbose, no_color=no_color, config=config)

    try:
        app_config = ctx.config

        ctx.console.print(f"[bold]Configuration file:[/bold] {escape(str(ctx.config_path))}")
        ctx.console.print(f"[bold]File exists:[/bold] {ctx.config_path.exists()}")
        ctx.console.print(f"[bold]IFACE:[/bold] {escape(app_config.iface_override or 'not set')}")
        ctx.console.print()
        ctx.console.print(Syntax(app_config.config.to_yaml(), "yaml", theme="ansi_dark"))

    except NFError as e:
        common.handle_error(e, "config show")


@app.command("init")
def config_init(
    config: ConfigOption = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing file."),
    ] = False,
    no_color: NoColorOption = False,
) -> None:
    """Write a configuration file with every setting at its default."""
    ctx = common.build_context(no_color=no_color, config=config)

    try:
        init_config(ctx.config_path, force=force)
        ctx.console.success(f"Configuration file created: {ctx.config_path}")

    except NFError as e:
        common.handle_error(e, "config init")
