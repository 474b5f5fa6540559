"""Port hopping commands.

Redirect a port or range arriving on an interface to one local port
with nat PREROUTING REDIRECT rules on both stacks.
"""

from typing import Annotated, Optional

import typer

from nfmini.core import NFError, AuditEventType, ExecutionContext
from nfmini.commands import common
from nfmini.commands.common import (
    ConfigOption,
    DryRunOption,
    NoColorOption,
    QuietOption,
    SPEC_FORMAT_HELP,
    VerboseOption,
    YesOption,
)
from nfmini.services.filter import Stack
from nfmini.services.hop import PortHopManager


app = typer.Typer(
    name="hop",
    help="Manage NAT port hopping (PREROUTING REDIRECT).",
    no_args_is_help=True,
)


STACK_TITLES = {
    Stack.V4: "IPv4 nat PREROUTING",
    Stack.V6: "IPv6 nat PREROUTING",
}


def show_hop_status(ctx: ExecutionContext, hops: PortHopManager) -> None:
    """Print one table of redirects per stack."""
    for stack in (Stack.V4, Stack.V6):
        rows = [
            [
                str(i),
                r.iface or "any",
                r.protocol or "all",
                r.ports,
                r.to_ports or "-",
            ]
            for i, r in enumerate(hops.list_redirects(stack), start=1)
        ]
        ctx.console.table(
            STACK_TITLES[stack],
            ["#", "Iface", "Proto", "Ports", "To"],
            rows,
            empty="no redirects",
        )


@app.command("add")
def hop_add(
    to_port: Annotated[
        str,
        typer.Argument(help="Local port traffic is redirected to."),
    ],
    from_spec: Annotated[
        str,
        typer.Argument(
            metavar="FROMSPEC",
            help=f"{SPEC_FORMAT_HELP} to redirect.",
        ),
    ],
    iface: Annotated[
        Optional[str],
        typer.Argument(help="Inbound interface. Default: $IFACE or the default route's."),
    ] = None,
    dry_run: DryRunOption = False,
    yes: YesOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Redirect FROMSPEC to TO_PORT.

    [bold]Examples:[/bold]

        nfmini hop add 51010 51011-51111          # tcp+udp, v4+v6
        nfmini hop add 51010 51011/udp            # udp only
        nfmini hop add 51010 51011-51111/udp/4    # udp, IPv4 only
        IFACE=eth0 nfmini hop add 51010 51011/udp/6
    """
    ctx = common.build_context(dry_run, yes, verbose, quiet, no_color, config)
    params = {"to_port": to_port, "from_spec": from_spec, "iface": iface}

    try:
        common.check_preconditions(ctx)
        services = common.get_services(ctx)
        with common.mutation_lock(ctx):
            hop = services.hops.hop_add(to_port, from_spec, iface)
        common.persist(services)
        common.record(ctx, AuditEventType.HOP_ADD, str(hop), params)

    except NFError as e:
        common.record(ctx, AuditEventType.HOP_ADD, from_spec, params, error=e)
        common.handle_error(e, "hop add")


@app.command("del")
def hop_del(
    to_port: Annotated[
        Optional[str],
        typer.Argument(help="Local port the redirect points to."),
    ] = None,
    from_spec: Annotated[
        Optional[str],
        typer.Argument(metavar="FROMSPEC", help=f"{SPEC_FORMAT_HELP}."),
    ] = None,
    iface: Annotated[
        Optional[str],
        typer.Argument(help="Inbound interface. Default: $IFACE or the default route's."),
    ] = None,
    dry_run: DryRunOption = False,
    yes: YesOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Remove a redirect, or every redirect when called without arguments.

    [bold]Examples:[/bold]

        nfmini hop del 51010 51011-51111
        nfmini hop del                # flush nat PREROUTING (v4+v6)
    """
    ctx = common.build_context(dry_run, yes, verbose, quiet, no_color, config)
    flush = to_port is None and from_spec is None
    event = AuditEventType.HOP_FLUSH if flush else AuditEventType.HOP_REMOVE
    params = {"to_port": to_port, "from_spec": from_spec, "iface": iface}

    try:
        common.check_preconditions(ctx)

        if flush and not common.confirm(
            ctx, "Remove ALL nat PREROUTING rules on IPv4 and IPv6?"
        ):
            ctx.console.info("Cancelled")
            return

        services = common.get_services(ctx)
        with common.mutation_lock(ctx):
            hop = services.hops.hop_del(to_port, from_spec, iface)
        common.persist(services)
        common.record(ctx, event, str(hop) if hop else "nat PREROUTING", params)

    except NFError as e:
        common.record(ctx, event, from_spec or "nat PREROUTING", params, error=e)
        common.handle_error(e, "hop del")


@app.command("status")
def hop_status(
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Show REDIRECT rules in nat PREROUTING for both stacks."""
    ctx = common.build_context(verbose=verbose, no_color=no_color, config=config)

    try:
        common.check_preconditions(ctx)
        services = common.get_services(ctx)
        show_hop_status(ctx, services.hops)

    except NFError as e:
        common.handle_error(e, "hop status")
