"""Packet filter access for one address-family stack.

Everything nfmini knows about the kernel filter goes through a
FilterController: one instance for iptables (v4), one for ip6tables (v6).
The engine never shells out directly, so tests can swap in an in-memory
controller.

Provides:
- FilterRule descriptors and builders for every rule nfmini manages
- The FilterController interface
- IptablesController, the iptables/ip6tables implementation
"""

import shlex
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from nfmini.core.context import ExecutionContext
from nfmini.core.executor import CommandExecutor
from nfmini.core.exceptions import MutationError
from nfmini.services.spec import Family, PortSpec, Protocol


class Stack(str, Enum):
    """One address-family-specific instance of the packet filter."""
    V4 = "v4"
    V6 = "v6"

    @classmethod
    def for_family(cls, family: Family) -> "Stack":
        return cls.V4 if family == Family.V4 else cls.V6


class Table(str, Enum):
    FILTER = "filter"
    NAT = "nat"


class Chain(str, Enum):
    INPUT = "INPUT"
    OUTPUT = "OUTPUT"
    FORWARD = "FORWARD"
    PREROUTING = "PREROUTING"


class Policy(str, Enum):
    ACCEPT = "ACCEPT"
    DROP = "DROP"


ICMP_PROTOCOLS = {
    Stack.V4: "icmp",
    Stack.V6: "ipv6-icmp",
}

# (server port, client port)
DHCP_PORTS = {
    Stack.V4: (67, 68),
    Stack.V6: (547, 546),
}


@dataclass(frozen=True)
class FilterRule:
    """Identity of a single rule: table, chain, match predicate and action.

    ``stack`` records which filter the rule was built for but is not part
    of equality; rules are never compared across stacks.
    """
    chain: Chain
    match: tuple[str, ...]
    target: tuple[str, ...]
    table: Table = Table.FILTER
    stack: Optional[Stack] = field(default=None, compare=False)

    def to_args(self) -> list[str]:
        """Rule specification as passed after ``-A CHAIN``."""
        return [*self.match, "-j", *self.target]

    def __str__(self) -> str:
        prefix = f"-t {self.table.value} " if self.table != Table.FILTER else ""
        return f"{prefix}{self.chain.value} {shlex.join(self.to_args())}"


def loopback_rule(stack: Stack) -> FilterRule:
    return FilterRule(Chain.INPUT, ("-i", "lo"), ("ACCEPT",), stack=stack)


def established_rule(stack: Stack) -> FilterRule:
    return FilterRule(
        Chain.INPUT,
        ("-m", "conntrack", "--ctstate", "ESTABLISHED,RELATED"),
        ("ACCEPT",),
        stack=stack,
    )


def icmp_rule(stack: Stack) -> FilterRule:
    return FilterRule(Chain.INPUT, ("-p", ICMP_PROTOCOLS[stack]), ("ACCEPT",), stack=stack)


def dhcp_client_rule(stack: Stack) -> FilterRule:
    """Replies from a DHCP server to this host's client port."""
    server, client = DHCP_PORTS[stack]
    return FilterRule(
        Chain.INPUT,
        ("-p", "udp", "-m", "udp", "--sport", str(server), "--dport", str(client)),
        ("ACCEPT",),
        stack=stack,
    )


def dhcp_server_rule(stack: Stack) -> FilterRule:
    """Requests to a DHCP server running on this host."""
    server, _ = DHCP_PORTS[stack]
    return FilterRule(
        Chain.INPUT,
        ("-p", "udp", "-m", "udp", "--dport", str(server)),
        ("ACCEPT",),
        stack=stack,
    )


def port_accept_rule(stack: Stack, protocol: Protocol, spec: PortSpec) -> FilterRule:
    """INPUT accept rule for new connections to ``spec``'s ports."""
    proto = protocol.value
    return FilterRule(
        Chain.INPUT,
        ("-p", proto, "-m", "conntrack", "--ctstate", "NEW", "-m", proto, "--dport", spec.dport),
        ("ACCEPT",),
        stack=stack,
    )


def redirect_rule(
    stack: Stack,
    iface: str,
    protocol: Protocol,
    spec: PortSpec,
    to_port: int,
) -> FilterRule:
    """nat PREROUTING redirect of ``spec``'s ports on ``iface`` to ``to_port``."""
    proto = protocol.value
    return FilterRule(
        Chain.PREROUTING,
        ("-i", iface, "-p", proto, "-m", proto, "--dport", spec.dport),
        ("REDIRECT", "--to-ports", str(to_port)),
        table=Table.NAT,
        stack=stack,
    )


class FilterController(ABC):
    """Query and mutate capability for one stack's packet filter."""

    stack: Stack

    @abstractmethod
    def list_rules(self, chain: Chain, table: Table = Table.FILTER) -> list[str]:
        """Appended rules of ``chain`` in ``-S`` form; empty if it doesn't exist."""
        ...

    @abstractmethod
    def get_policy(self, chain: Chain) -> Optional[str]:
        """Default policy of a built-in filter chain, or None if unknown."""
        ...

    @abstractmethod
    def rule_exists(self, rule: FilterRule) -> bool:
        """Whether ``rule`` is present. Never raises for a missing chain/table."""
        ...

    @abstractmethod
    def insert_rule(self, rule: FilterRule) -> None:
        """Append ``rule`` to its chain."""
        ...

    @abstractmethod
    def delete_rule(self, rule: FilterRule) -> None:
        """Delete the first occurrence of ``rule``."""
        ...

    @abstractmethod
    def set_policy(self, chain: Chain, policy: Policy) -> None:
        ...

    @abstractmethod
    def flush_chain(self, chain: Chain, table: Table = Table.FILTER) -> None:
        ...


class IptablesController(FilterController):
    """FilterController backed by the iptables or ip6tables binary.

    Queries run even in dry-run mode (they are read-only); mutations are
    only announced.
    """

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        stack: Stack,
        command: str,
        *,
        wait: bool = True,
    ) -> None:
        """Initialize controller.

        Args:
            ctx: Execution context
            executor: Command executor
            stack: Stack this binary manages
            command: iptables or ip6tables executable
            wait: Pass -w to wait for the xtables lock
        """
        self.ctx = ctx
        self.executor = executor
        self.stack = stack
        self.command = command
        self.wait = wait

    def _base(self, table: Table) -> list[str]:
        cmd = [self.command]
        if self.wait:
            cmd.append("-w")
        # -t must come before -A/-C/-D
        if table != Table.FILTER:
            cmd.extend(["-t", table.value])
        return cmd

    def _query(self, table: Table, args: list[str]):
        return self.executor.run(self._base(table) + args, check=False)

    def _mutate(self, table: Table, args: list[str]) -> None:
        cmd = self._base(table) + args
        display = shlex.join(cmd)

        if self.ctx.dry_run:
            self.ctx.console.dry_run_msg(display)
            return

        self.ctx.console.verbose(f"{self.stack.value}: {display}")
        result = self.executor.run(cmd, check=False)
        if not result.success:
            raise MutationError(
                f"{self.command} rejected: {shlex.join(args)}",
                stack=self.stack.value,
                command=display,
                stderr=result.stderr,
            )

    def list_rules(self, chain: Chain, table: Table = Table.FILTER) -> list[str]:
        result = self._query(table, ["-S", chain.value])
        if not result.success:
            return []
        return [line for line in result.lines if line.startswith("-A ")]

    def get_policy(self, chain: Chain) -> Optional[str]:
        result = self._query(Table.FILTER, ["-S", chain.value])
        if not result.success:
            return None
        for line in result.lines:
            parts = line.split()
            if len(parts) >= 3 and parts[0] == "-P" and parts[1] == chain.value:
                return parts[2]
        return None

    def rule_exists(self, rule: FilterRule) -> bool:
        result = self._query(rule.table, ["-C", rule.chain.value] + rule.to_args())
        return result.success

    def insert_rule(self, rule: FilterRule) -> None:
        self._mutate(rule.table, ["-A", rule.chain.value] + rule.to_args())

    def delete_rule(self, rule: FilterRule) -> None:
        self._mutate(rule.table, ["-D", rule.chain.value] + rule.to_args())

    def set_policy(self, chain: Chain, policy: Policy) -> None:
        self._mutate(Table.FILTER, ["-P", chain.value, policy.value])

    def flush_chain(self, chain: Chain, table: Table = Table.FILTER) -> None:
        self._mutate(table, ["-F", chain.value])
