"""Main CLI entry point using Typer.

This module defines the root CLI application. Commands are
implemented in nfmini.commands and registered here.
"""

from typing import Annotated

import typer

from nfmini import __version__
from nfmini.core import console
from nfmini.commands.config import app as config_app
from nfmini.commands.hop import app as hop_app
from nfmini.commands.ports import add_command, del_command
from nfmini.commands.status import status_command


# Create the main Typer app
app = typer.Typer(
    name="nfmini",
    help="Minimal iptables/ip6tables manager: open ports and redirect port ranges.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)

app.command("add")(add_command)
app.command("del")(del_command)
app.command("status")(status_command)
app.add_typer(hop_app, name="hop")
app.add_typer(config_app, name="config")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"nfmini version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """nfmini - minimal iptables/ip6tables manager.

    Opens ports on a default-deny INPUT chain and redirects port ranges
    to a local port with NAT, for IPv4 and IPv6 together.

    [bold]Spec format:[/bold] PORT[-PORT]\\[/tcp|udp]\\[/4|6]

    [bold]Examples:[/bold]
        nfmini add 22/tcp 51010-51111/udp/4
        nfmini del 22/tcp
        nfmini hop add 51010 51011-51111
        nfmini status
    """
    pass


# Entry point
if __name__ == "__main__":
    app()
