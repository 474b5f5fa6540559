"""Open and close inbound ports.

    nfmini add 50101              # tcp+udp, v4+v6
    nfmini add 50101/tcp/6        # tcp, v6 only
    nfmini del 51010-51111/udp/4
    nfmini del                    # reset: allow everything
"""

from typing import Annotated, Optional

import typer

from nfmini.core import NFError, AuditEventType
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


SpecsArgument = Annotated[
    Optional[list[str]],
    typer.Argument(
        metavar="[SPEC]...",
        help=SPEC_FORMAT_HELP,
        show_default=False,
    ),
]


def add_command(
    specs: SpecsArgument = None,
    dry_run: DryRunOption = False,
    yes: YesOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Open ports on INPUT, setting up a default-deny baseline first if needed.

    Without SPECs, prompts for a comma or space separated list.

    [bold]Examples:[/bold]

        nfmini add 50101
        nfmini add 50101/tcp
        nfmini add 50101/tcp/6
        nfmini add 51010-51111/udp/4
    """
    ctx = common.build_context(dry_run, yes, verbose, quiet, no_color, config)
    specs = list(specs or [])

    try:
        common.check_preconditions(ctx)

        if not specs:
            specs = common.prompt_specs(ctx)

        services = common.get_services(ctx)
        with common.mutation_lock(ctx):
            services.reconciler.add_ports(specs)
        common.persist(services)
        common.record(ctx, AuditEventType.FIREWALL_RULE_ADD, "INPUT", {"specs": specs})

    except NFError as e:
        common.record(ctx, AuditEventType.FIREWALL_RULE_ADD, "INPUT", {"specs": specs}, error=e)
        common.handle_error(e, "add")


def del_command(
    specs: SpecsArgument = None,
    dry_run: DryRunOption = False,
    yes: YesOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Close ports on INPUT.

    Without SPECs, flushes INPUT/OUTPUT and sets every policy to ACCEPT
    on IPv4 and IPv6 (asks for confirmation unless --yes).

    [bold]Examples:[/bold]

        nfmini del 50101/tcp
        nfmini del 51010-51111/udp/4
        nfmini del --yes
    """
    ctx = common.build_context(dry_run, yes, verbose, quiet, no_color, config)
    specs = list(specs or [])
    event = AuditEventType.FIREWALL_RULE_REMOVE if specs else AuditEventType.FIREWALL_RESET

    try:
        common.check_preconditions(ctx)

        if not specs and not common.confirm(
            ctx, "Reset the firewall and allow ALL inbound traffic on IPv4 and IPv6?"
        ):
            ctx.console.info("Cancelled")
            return

        services = common.get_services(ctx)
        with common.mutation_lock(ctx):
            services.reconciler.del_ports(specs)
        common.persist(services)
        common.record(ctx, event, "INPUT", {"specs": specs})

    except NFError as e:
        common.record(ctx, event, "INPUT", {"specs": specs}, error=e)
        common.handle_error(e, "del")
