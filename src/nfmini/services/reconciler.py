"""Open and close INPUT ports across both stacks.

Every mutation is check-then-act: a rule is appended only when ``-C``
says it is missing, and deleted until ``-C`` says it is gone. Running
the same command twice leaves the filter unchanged the second time.
"""

from typing import Mapping, Sequence

from nfmini.core.context import ExecutionContext
from nfmini.core.exceptions import MutationError
from nfmini.services.baseline import BaselineInitializer
from nfmini.services.filter import (
    Chain,
    FilterController,
    FilterRule,
    Policy,
    Stack,
    port_accept_rule,
)
from nfmini.services.inspector import ChainStateInspector
from nfmini.services.spec import PortSpec, parse_spec


# Upper bound on deletions of one rule; manual edits rarely leave more than a few copies
MAX_DUPLICATE_DELETES = 256


def delete_until_absent(
    ctx: ExecutionContext,
    controller: FilterController,
    inspector: ChainStateInspector,
    rule: FilterRule,
) -> int:
    """Delete ``rule`` from ``controller``'s stack until it no longer matches.

    Returns:
        Number of deletions issued

    Raises:
        MutationError: If a delete fails or the rule keeps matching
    """
    removed = 0
    while inspector.rule_exists(controller.stack, rule):
        if removed >= MAX_DUPLICATE_DELETES:
            raise MutationError(
                f"Rule still present after {removed} deletions: {rule}",
                stack=controller.stack.value,
                hint="Inspect the chain manually with iptables -S",
            )
        controller.delete_rule(rule)
        removed += 1
        # Nothing changes in dry-run, one announcement is enough
        if ctx.dry_run:
            break
    return removed


class RuleReconciler:
    """Adds and removes inbound accept rules for port specs."""

    def __init__(
        self,
        ctx: ExecutionContext,
        controllers: Mapping[Stack, FilterController],
        inspector: ChainStateInspector,
        baseline: BaselineInitializer,
    ) -> None:
        self.ctx = ctx
        self.controllers = controllers
        self.inspector = inspector
        self.baseline = baseline

    def _rules_for(self, spec: PortSpec) -> list[FilterRule]:
        """Accept rules implied by ``spec``, protocols before families, v4 before v6."""
        rules = []
        for protocol in spec.ordered_protocols:
            for family in spec.ordered_families:
                rules.append(port_accept_rule(Stack.for_family(family), protocol, spec))
        return rules

    def add_ports(self, specs: Sequence[str]) -> list[PortSpec]:
        """Open each spec's ports on INPUT, initializing the baseline first.

        All specs are parsed before anything is changed, so one malformed
        spec aborts the whole batch.

        Args:
            specs: Raw spec strings

        Returns:
            Parsed specs, in input order

        Raises:
            SpecParseError: If any spec is malformed
            MutationError: If the kernel rejects a change
        """
        parsed = [parse_spec(raw) for raw in specs]

        self.baseline.ensure_baseline()

        for spec in parsed:
            for rule in self._rules_for(spec):
                if self.inspector.rule_exists(rule.stack, rule):
                    self.ctx.console.debug(f"{rule.stack.value}: already present: {rule}")
                    continue
                self.controllers[rule.stack].insert_rule(rule)
            self.ctx.console.success(f"opened: {spec.raw}  ({spec.describe()})")

        return parsed

    def del_ports(self, specs: Sequence[str]) -> list[PortSpec]:
        """Close each spec's ports; with no specs, reset both stacks to allow-all.

        Args:
            specs: Raw spec strings (empty means full reset)

        Returns:
            Parsed specs, in input order (empty for a reset)

        Raises:
            SpecParseError: If any spec is malformed
            MutationError: If the kernel rejects a change
        """
        if not specs:
            self.reset()
            return []

        parsed = [parse_spec(raw) for raw in specs]

        for spec in parsed:
            for rule in self._rules_for(spec):
                delete_until_absent(self.ctx, self.controllers[rule.stack], self.inspector, rule)
            self.ctx.console.success(f"removed: {spec.raw}  ({spec.describe()})")

        return parsed

    def reset(self) -> None:
        """Flush INPUT/OUTPUT and set every filter policy to ACCEPT on both stacks."""
        self.ctx.console.step(
            "Clearing INPUT/OUTPUT and allowing all inbound/outbound (policies ACCEPT) for v4+v6"
        )
        for stack in (Stack.V4, Stack.V6):
            controller = self.controllers[stack]
            controller.flush_chain(Chain.INPUT)
            controller.flush_chain(Chain.OUTPUT)
            controller.set_policy(Chain.INPUT, Policy.ACCEPT)
            controller.set_policy(Chain.OUTPUT, Policy.ACCEPT)
            controller.set_policy(Chain.FORWARD, Policy.ACCEPT)
        self.ctx.console.success("Firewall reset: all traffic allowed")
