"""Firewall status: policies and INPUT rules per stack, then redirects."""

from nfmini.core import NFError, ExecutionContext
from nfmini.commands import common
from nfmini.commands.common import ConfigOption, NoColorOption, VerboseOption
from nfmini.commands.hop import show_hop_status
from nfmini.services.filter import Chain, FilterController, Stack


STACK_TITLES = {
    Stack.V4: "IPv4 filter INPUT",
    Stack.V6: "IPv6 filter INPUT",
}


def show_filter_status(ctx: ExecutionContext, stack: Stack, controller: FilterController) -> None:
    policies = "  ".join(
        f"{chain.value}={controller.get_policy(chain) or '?'}"
        for chain in (Chain.INPUT, Chain.FORWARD, Chain.OUTPUT)
    )
    rows = [
        # Drop the "-A INPUT " prefix
        [str(i), rule.split(" ", 2)[2] if rule.count(" ") >= 2 else rule]
        for i, rule in enumerate(controller.list_rules(Chain.INPUT), start=1)
    ]
    ctx.console.table(
        STACK_TITLES[stack], ["#", "Rule"], rows, empty="no rules", caption=f"Policies: {policies}"
    )


def status_command(
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Show filter policies, INPUT rules and redirects for IPv4 and IPv6."""
    ctx = common.build_context(verbose=verbose, no_color=no_color, config=config)

    try:
        common.check_preconditions(ctx)
        services = common.get_services(ctx)

        for stack in (Stack.V4, Stack.V6):
            show_filter_status(ctx, stack, services.controllers[stack])
            ctx.console.print()

        show_hop_status(ctx, services.hops)

    except NFError as e:
        common.handle_error(e, "status")
