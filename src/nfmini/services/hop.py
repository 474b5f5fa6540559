"""Port hopping via nat PREROUTING REDIRECT rules.

A hop sends inbound traffic for a port or range on one interface to a
single local port. IPv4 is authoritative: its failures abort the
command. IPv6 NAT is optional on many kernels, so v6 failures are
reported as warnings and skipped.
"""

import shlex
from dataclasses import dataclass
from typing import Mapping, Optional

from nfmini.core.config import DEFAULT_FALLBACK_INTERFACE
from nfmini.core.context import ExecutionContext
from nfmini.core.exceptions import MutationError, ValidationError
from nfmini.services.filter import (
    Chain,
    FilterController,
    FilterRule,
    Stack,
    Table,
    redirect_rule,
)
from nfmini.services.inspector import ChainStateInspector
from nfmini.services.network import resolve_interface
from nfmini.services.reconciler import delete_until_absent
from nfmini.services.spec import HopRule, parse_hop_rule


@dataclass
class Redirect:
    """A REDIRECT rule found in nat PREROUTING."""
    iface: Optional[str]
    protocol: Optional[str]
    dport: Optional[str]
    to_ports: Optional[str]

    @property
    def ports(self) -> str:
        """Matched ports in spec notation (``100-200``)."""
        return self.dport.replace(":", "-") if self.dport else "any"


def parse_redirect(line: str) -> Optional[Redirect]:
    """Parse one ``-S`` line; None unless it is a REDIRECT rule."""
    try:
        parts = shlex.split(line)
    except ValueError:
        return None

    values: dict[str, str] = {}
    for i, part in enumerate(parts[:-1]):
        if part in ("-i", "-p", "--dport", "-j", "--to-ports"):
            values[part] = parts[i + 1]

    if values.get("-j") != "REDIRECT":
        return None

    return Redirect(
        iface=values.get("-i"),
        protocol=values.get("-p"),
        dport=values.get("--dport"),
        to_ports=values.get("--to-ports"),
    )


class PortHopManager:
    """Adds, removes and lists NAT redirections on both stacks."""

    def __init__(
        self,
        ctx: ExecutionContext,
        controllers: Mapping[Stack, FilterController],
        inspector: ChainStateInspector,
        *,
        iface_override: Optional[str] = None,
        fallback_interface: str = DEFAULT_FALLBACK_INTERFACE,
    ) -> None:
        """Initialize manager.

        Args:
            ctx: Execution context
            controllers: One controller per stack
            inspector: Existence checks
            iface_override: Interface from the IFACE environment variable
            fallback_interface: Used when no interface can be detected
        """
        self.ctx = ctx
        self.controllers = controllers
        self.inspector = inspector
        self.iface_override = iface_override
        self.fallback_interface = fallback_interface

    def _hop_rule(self, to_port: str, from_spec: str, iface: Optional[str]) -> HopRule:
        hop = parse_hop_rule(to_port, from_spec, iface="")
        resolved = resolve_interface(iface, self.iface_override, self.fallback_interface)
        return HopRule(to_port=hop.to_port, from_spec=hop.from_spec, iface=resolved)

    def _rules_for(self, hop: HopRule) -> list[FilterRule]:
        spec = hop.from_spec
        rules = []
        for protocol in spec.ordered_protocols:
            for family in spec.ordered_families:
                stack = Stack.for_family(family)
                rules.append(redirect_rule(stack, hop.iface, protocol, spec, hop.to_port))
        return rules

    def _warn_v6(self, action: str, rule: FilterRule, error: MutationError) -> None:
        self.ctx.console.warn(f"v6: {action} skipped ({error.message}): {rule}")
        for detail in error.details:
            self.ctx.console.debug(detail)

    def hop_add(self, to_port: str, from_spec: str, iface: Optional[str] = None) -> HopRule:
        """Redirect ``from_spec`` on ``iface`` to local ``to_port``.

        Raises:
            SpecParseError: If ``to_port`` or ``from_spec`` is invalid
            MutationError: If an IPv4 change is rejected
        """
        hop = self._hop_rule(to_port, from_spec, iface)

        for rule in self._rules_for(hop):
            if self.inspector.rule_exists(rule.stack, rule):
                self.ctx.console.debug(f"{rule.stack.value}: already present: {rule}")
                continue
            try:
                self.controllers[rule.stack].insert_rule(rule)
            except MutationError as e:
                if rule.stack == Stack.V4:
                    raise
                self._warn_v6("add", rule, e)

        self.ctx.console.success(f"hop add: {hop}")
        return hop

    def hop_del(
        self,
        to_port: Optional[str] = None,
        from_spec: Optional[str] = None,
        iface: Optional[str] = None,
    ) -> Optional[HopRule]:
        """Remove a redirection, or flush all of them when called without arguments.

        Returns:
            The removed HopRule, or None after a flush

        Raises:
            ValidationError: If only one of ``to_port``/``from_spec`` is given
            MutationError: If an IPv4 change is rejected
        """
        if to_port is None and from_spec is None:
            self.flush()
            return None
        if to_port is None or from_spec is None:
            raise ValidationError(
                "hop del needs both TO_PORT and FROMSPEC, or neither",
                hint="Usage: nfmini hop del [TO_PORT FROMSPEC [IFACE]]",
            )

        hop = self._hop_rule(to_port, from_spec, iface)

        for rule in self._rules_for(hop):
            self._delete_all(rule)

        self.ctx.console.success(f"hop del: {hop}")
        return hop

    def _delete_all(self, rule: FilterRule) -> None:
        try:
            delete_until_absent(self.ctx, self.controllers[rule.stack], self.inspector, rule)
        except MutationError as e:
            if rule.stack == Stack.V4:
                raise
            self._warn_v6("delete", rule, e)

    def flush(self) -> None:
        """Flush nat PREROUTING on both stacks."""
        self.ctx.console.step("Flushing nat PREROUTING on v4+v6")
        for stack in (Stack.V4, Stack.V6):
            try:
                self.controllers[stack].flush_chain(Chain.PREROUTING, Table.NAT)
            except MutationError as e:
                if stack == Stack.V4:
                    raise
                self.ctx.console.warn(f"v6: nat flush skipped ({e.message})")
        self.ctx.console.success("hop del: all redirections removed")

    def list_redirects(self, stack: Stack) -> list[Redirect]:
        """REDIRECT rules currently in ``stack``'s nat PREROUTING chain."""
        redirects = []
        for line in self.controllers[stack].list_rules(Chain.PREROUTING, Table.NAT):
            redirect = parse_redirect(line)
            if redirect is not None:
                redirects.append(redirect)
        return redirects
