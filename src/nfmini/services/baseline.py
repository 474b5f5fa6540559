"""Default-deny baseline for the INPUT chain.

The baseline drops inbound and forwarded traffic by default and keeps
the minimum always-allow exceptions: loopback, established/related
connections and the stack's ICMP protocol (plus DHCP when configured).
"""

from typing import Mapping, Optional

from nfmini.core.config import BaselineConfig
from nfmini.core.context import ExecutionContext
from nfmini.services.filter import (
    Chain,
    FilterController,
    FilterRule,
    Policy,
    Stack,
    dhcp_client_rule,
    dhcp_server_rule,
    established_rule,
    icmp_rule,
    loopback_rule,
)
from nfmini.services.inspector import ChainStateInspector


class BaselineInitializer:
    """Establishes the default-deny INPUT policy on both stacks."""

    def __init__(
        self,
        ctx: ExecutionContext,
        controllers: Mapping[Stack, FilterController],
        inspector: ChainStateInspector,
        config: Optional[BaselineConfig] = None,
    ) -> None:
        self.ctx = ctx
        self.controllers = controllers
        self.inspector = inspector
        self.config = config or BaselineConfig()

    def baseline_rules(self, stack: Stack) -> list[FilterRule]:
        """Always-allow rules for ``stack`` in insertion order."""
        rules = [loopback_rule(stack), established_rule(stack), icmp_rule(stack)]
        if self.config.allow_dhcp_client:
            rules.append(dhcp_client_rule(stack))
        if self.config.allow_dhcp_server:
            rules.append(dhcp_server_rule(stack))
        return rules

    def ensure_baseline(self) -> bool:
        """Apply the baseline unless IPv4 INPUT already has rules.

        IPv4 is the only signal: when it is initialized, IPv6 is left as
        it is. When it is not, both stacks are (re)initialized, v4 first.
        A v6 failure leaves v4 applied.

        Returns:
            True if the baseline was applied, False if already present

        Raises:
            MutationError: If the kernel rejects a change
        """
        if self.inspector.has_baseline(Stack.V4):
            return False

        self.ctx.console.step(
            "No existing INPUT rules detected; initializing baseline "
            "(DROP INPUT/FORWARD, ACCEPT OUTPUT, allow lo+established+icmp)"
        )
        for stack in (Stack.V4, Stack.V6):
            self._init_stack(stack)
        return True

    def _init_stack(self, stack: Stack) -> None:
        controller = self.controllers[stack]

        controller.flush_chain(Chain.INPUT)
        controller.flush_chain(Chain.OUTPUT)

        controller.set_policy(Chain.INPUT, Policy.DROP)
        controller.set_policy(Chain.FORWARD, Policy.DROP)
        controller.set_policy(Chain.OUTPUT, Policy.ACCEPT)

        for rule in self.baseline_rules(stack):
            if not self.inspector.rule_exists(stack, rule):
                controller.insert_rule(rule)
