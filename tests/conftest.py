"""Shared fixtures: an in-memory packet filter and wired services."""

import shlex
from collections import defaultdict
from pathlib import Path
from typing import Optional

import pytest

from nfmini.core.audit import AuditLogger
from nfmini.core.config import AppConfig, EnvOverrides, NfminiConfig
from nfmini.core.context import ExecutionContext
from nfmini.core.exceptions import MutationError
from nfmini.services.baseline import BaselineInitializer
from nfmini.services.filter import (
    Chain,
    FilterController,
    FilterRule,
    Policy,
    Stack,
    Table,
)
from nfmini.services.hop import PortHopManager
from nfmini.services.inspector import ChainStateInspector
from nfmini.services.reconciler import RuleReconciler


class FakeController(FilterController):
    """In-memory FilterController for one stack.

    Rules are stored per (table, chain) in insertion order. ``fail_ops``
    names operations ("insert", "delete", "policy", "flush") that raise
    MutationError; ``nat_supported=False`` makes every nat mutation fail
    and every nat query come back empty, like a kernel without ip6 NAT.
    """

    def __init__(self, stack: Stack, *, nat_supported: bool = True) -> None:
        self.stack = stack
        self.nat_supported = nat_supported
        self.rules: dict[tuple[Table, Chain], list[FilterRule]] = defaultdict(list)
        self.policies = {
            Chain.INPUT: Policy.ACCEPT,
            Chain.FORWARD: Policy.ACCEPT,
            Chain.OUTPUT: Policy.ACCEPT,
        }
        self.fail_ops: set[str] = set()
        self.calls: list[tuple] = []

    def chain(self, chain: Chain, table: Table = Table.FILTER) -> list[FilterRule]:
        return self.rules[(table, chain)]

    def _fail(self, op: str, table: Table) -> None:
        if op in self.fail_ops or (table == Table.NAT and not self.nat_supported):
            raise MutationError(
                f"{op} failed",
                stack=self.stack.value,
                stderr="iptables: No chain/target/match by that name.",
            )

    def list_rules(self, chain: Chain, table: Table = Table.FILTER) -> list[str]:
        if table == Table.NAT and not self.nat_supported:
            return []
        return [
            f"-A {chain.value} {shlex.join(rule.to_args())}"
            for rule in self.rules[(table, chain)]
        ]

    def get_policy(self, chain: Chain) -> Optional[str]:
        policy = self.policies.get(chain)
        return policy.value if policy else None

    def rule_exists(self, rule: FilterRule) -> bool:
        if rule.table == Table.NAT and not self.nat_supported:
            return False
        return rule in self.rules[(rule.table, rule.chain)]

    def insert_rule(self, rule: FilterRule) -> None:
        self._fail("insert", rule.table)
        self.calls.append(("insert", rule))
        self.rules[(rule.table, rule.chain)].append(rule)

    def delete_rule(self, rule: FilterRule) -> None:
        self._fail("delete", rule.table)
        self.calls.append(("delete", rule))
        self.rules[(rule.table, rule.chain)].remove(rule)

    def set_policy(self, chain: Chain, policy: Policy) -> None:
        self._fail("policy", Table.FILTER)
        self.calls.append(("policy", chain, policy))
        self.policies[chain] = policy

    def flush_chain(self, chain: Chain, table: Table = Table.FILTER) -> None:
        self._fail("flush", table)
        self.calls.append(("flush", table, chain))
        self.rules[(table, chain)].clear()


def make_context(tmp_path: Path, *, dry_run: bool = False, **config) -> ExecutionContext:
    """ExecutionContext with in-memory configuration rooted in ``tmp_path``."""
    data = {
        "lock": {"path": str(tmp_path / "nfmini.lock")},
        "audit": {"log_path": str(tmp_path / "audit.log")},
        "persistence": {"enabled": False},
    }
    data.update(config)
    app_config = AppConfig(
        config_path=tmp_path / "config.yaml",
        config=NfminiConfig(**data),
        env=EnvOverrides(),
    )
    return ExecutionContext(dry_run=dry_run, verbosity=1, _config=app_config)


@pytest.fixture
def isolated_audit_log(tmp_path: Path) -> AuditLogger:
    """Audit logger at the path test contexts and config files point to."""
    return AuditLogger(log_path=tmp_path / "audit.log")


@pytest.fixture
def ctx(tmp_path: Path) -> ExecutionContext:
    return make_context(tmp_path)


@pytest.fixture
def dry_run_ctx(tmp_path: Path) -> ExecutionContext:
    return make_context(tmp_path, dry_run=True)


@pytest.fixture
def controllers() -> dict[Stack, FakeController]:
    return {Stack.V4: FakeController(Stack.V4), Stack.V6: FakeController(Stack.V6)}


@pytest.fixture
def inspector(controllers) -> ChainStateInspector:
    return ChainStateInspector(controllers)


@pytest.fixture
def baseline(ctx, controllers, inspector) -> BaselineInitializer:
    return BaselineInitializer(ctx, controllers, inspector)


@pytest.fixture
def reconciler(ctx, controllers, inspector, baseline) -> RuleReconciler:
    return RuleReconciler(ctx, controllers, inspector, baseline)


@pytest.fixture
def hops(ctx, controllers, inspector) -> PortHopManager:
    return PortHopManager(ctx, controllers, inspector, fallback_interface="eth0")


@pytest.fixture
def no_v6_nat_controllers() -> dict[Stack, FakeController]:
    """Controllers for a host whose ip6tables has no nat table."""
    return {
        Stack.V4: FakeController(Stack.V4),
        Stack.V6: FakeController(Stack.V6, nat_supported=False),
    }


@pytest.fixture
def context_factory(tmp_path: Path):
    """Build contexts with configuration overrides, e.g. ``lock={"enabled": False}``."""
    def factory(*, dry_run: bool = False, **config) -> ExecutionContext:
        return make_context(tmp_path, dry_run=dry_run, **config)
    return factory
