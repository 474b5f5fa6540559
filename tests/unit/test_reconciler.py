"""Unit tests for the rule reconciler."""

import pytest

from nfmini.core.exceptions import MutationError, SpecParseError
from nfmini.services.filter import Chain, Policy, Stack, port_accept_rule
from nfmini.services.reconciler import MAX_DUPLICATE_DELETES, delete_until_absent
from nfmini.services.spec import Protocol, parse_spec


def _port_rules(controller):
    return [r for r in controller.chain(Chain.INPUT) if "--dport" in r.match]


class TestAddPorts:
    """Tests for RuleReconciler.add_ports."""

    def test_initializes_baseline(self, reconciler, controllers):
        reconciler.add_ports(["22/tcp"])
        assert controllers[Stack.V4].policies[Chain.INPUT] == Policy.DROP
        assert len(controllers[Stack.V4].chain(Chain.INPUT)) == 4

    def test_default_expansion(self, reconciler, controllers):
        """A bare port opens tcp and udp on both stacks."""
        reconciler.add_ports(["50101"])
        spec = parse_spec("50101")

        for stack in (Stack.V4, Stack.V6):
            assert _port_rules(controllers[stack]) == [
                port_accept_rule(stack, Protocol.TCP, spec),
                port_accept_rule(stack, Protocol.UDP, spec),
            ]

    def test_family_restriction(self, reconciler, controllers):
        reconciler.add_ports(["50101/tcp/6"])
        assert _port_rules(controllers[Stack.V4]) == []
        assert len(_port_rules(controllers[Stack.V6])) == 1

    def test_range_rule(self, reconciler, controllers):
        reconciler.add_ports(["51010-51111/udp/4"])
        (rule,) = _port_rules(controllers[Stack.V4])
        assert rule.match[-1] == "51010:51111"
        assert "udp" in rule.match

    def test_idempotent(self, reconciler, controllers):
        """A second add leaves the rule set unchanged."""
        reconciler.add_ports(["22/tcp", "53"])
        before = {s: list(c.chain(Chain.INPUT)) for s, c in controllers.items()}

        reconciler.add_ports(["22/tcp", "53"])

        for stack, controller in controllers.items():
            assert controller.chain(Chain.INPUT) == before[stack]

    def test_parse_error_aborts_before_mutation(self, reconciler, controllers):
        """A bad spec anywhere in the batch changes nothing."""
        with pytest.raises(SpecParseError):
            reconciler.add_ports(["22/tcp", "70000"])

        assert controllers[Stack.V4].calls == []
        assert controllers[Stack.V6].calls == []

    def test_returns_parsed_specs(self, reconciler):
        assert reconciler.add_ports(["22/tcp"]) == [parse_spec("22/tcp")]

    def test_v6_failure_is_fatal(self, reconciler, controllers):
        reconciler.baseline.ensure_baseline()
        controllers[Stack.V6].fail_ops.add("insert")

        with pytest.raises(MutationError):
            reconciler.add_ports(["22/tcp/6"])


class TestDelPorts:
    """Tests for RuleReconciler.del_ports."""

    def test_round_trip_returns_to_baseline(self, reconciler, controllers, baseline):
        baseline.ensure_baseline()
        baseline_only = {s: list(c.chain(Chain.INPUT)) for s, c in controllers.items()}

        reconciler.add_ports(["50101", "51010-51111/udp/4"])
        reconciler.del_ports(["50101", "51010-51111/udp/4"])

        for stack, controller in controllers.items():
            assert controller.chain(Chain.INPUT) == baseline_only[stack]

    def test_removes_duplicates(self, reconciler, controllers):
        """Every copy of a rule is removed, not just the first."""
        rule = port_accept_rule(Stack.V4, Protocol.TCP, parse_spec("22"))
        controllers[Stack.V4].chain(Chain.INPUT).extend([rule, rule, rule])

        reconciler.del_ports(["22/tcp/4"])

        assert rule not in controllers[Stack.V4].chain(Chain.INPUT)

    def test_absent_rule_is_noop(self, reconciler, controllers):
        reconciler.del_ports(["8080"])
        assert controllers[Stack.V4].calls == []

    def test_does_not_touch_baseline(self, reconciler, controllers):
        reconciler.del_ports(["22/tcp"])
        assert controllers[Stack.V4].policies[Chain.INPUT] == Policy.ACCEPT

    def test_parse_error_aborts_before_mutation(self, reconciler, controllers):
        rule = port_accept_rule(Stack.V4, Protocol.TCP, parse_spec("22"))
        controllers[Stack.V4].chain(Chain.INPUT).append(rule)

        with pytest.raises(SpecParseError):
            reconciler.del_ports(["22/tcp/4", "22/sctp"])

        assert rule in controllers[Stack.V4].chain(Chain.INPUT)


class TestReset:
    """Tests for the full reset (del with no specs)."""

    def test_empty_del_resets(self, reconciler, controllers):
        reconciler.add_ports(["22/tcp"])

        assert reconciler.del_ports([]) == []

        for controller in controllers.values():
            assert controller.chain(Chain.INPUT) == []
            assert controller.chain(Chain.OUTPUT) == []
            assert all(p == Policy.ACCEPT for p in controller.policies.values())

    def test_reset_failure_is_fatal(self, reconciler, controllers):
        controllers[Stack.V6].fail_ops.add("flush")
        with pytest.raises(MutationError):
            reconciler.reset()


class TestDeleteUntilAbsent:
    """Tests for the bounded delete loop."""

    def test_counts_deletions(self, ctx, controllers, inspector):
        rule = port_accept_rule(Stack.V4, Protocol.UDP, parse_spec("53"))
        controllers[Stack.V4].chain(Chain.INPUT).extend([rule, rule])

        assert delete_until_absent(ctx, controllers[Stack.V4], inspector, rule) == 2

    def test_non_converging_delete_raises(self, ctx, controllers, inspector):
        """A delete that never takes effect stops at the bound."""
        controller = controllers[Stack.V4]
        rule = port_accept_rule(Stack.V4, Protocol.UDP, parse_spec("53"))
        controller.chain(Chain.INPUT).append(rule)
        controller.delete_rule = lambda r: None

        with pytest.raises(MutationError) as exc:
            delete_until_absent(ctx, controller, inspector, rule)
        assert str(MAX_DUPLICATE_DELETES) in exc.value.message

    def test_dry_run_stops_after_one(self, dry_run_ctx, controllers, inspector):
        controller = controllers[Stack.V4]
        rule = port_accept_rule(Stack.V4, Protocol.UDP, parse_spec("53"))
        controller.chain(Chain.INPUT).append(rule)
        controller.delete_rule = lambda r: None

        assert delete_until_absent(dry_run_ctx, controller, inspector, rule) == 1
