"""Unit tests for the port hop manager."""

import pytest
from unittest.mock import patch

from nfmini.core.exceptions import MutationError, SpecParseError, ValidationError
from nfmini.services.filter import Chain, Stack, Table, redirect_rule
from nfmini.services.hop import PortHopManager, Redirect, parse_redirect
from nfmini.services.inspector import ChainStateInspector
from nfmini.services.spec import Protocol, parse_spec


def _nat(controller):
    return controller.chain(Chain.PREROUTING, Table.NAT)


class TestHopAdd:
    """Tests for PortHopManager.hop_add."""

    def test_scenario_add_then_delete(self, hops, controllers):
        """Adding then deleting the same hop leaves no matching rule on v4."""
        rule = redirect_rule(Stack.V4, "eth0", Protocol.UDP, parse_spec("9100-9199"), 9000)

        hops.hop_add("9000", "9100-9199/udp/4", "eth0")
        assert _nat(controllers[Stack.V4]) == [rule]

        hops.hop_del("9000", "9100-9199/udp/4", "eth0")
        assert rule not in _nat(controllers[Stack.V4])

    def test_fans_out_to_both_stacks_and_protocols(self, hops, controllers):
        hops.hop_add("51010", "51011-51111", "eth0")
        assert len(_nat(controllers[Stack.V4])) == 2
        assert len(_nat(controllers[Stack.V6])) == 2

    def test_idempotent(self, hops, controllers):
        """Present -> hop_add -> Present."""
        hops.hop_add("51010", "51011/udp", "eth0")
        hops.hop_add("51010", "51011/udp", "eth0")
        assert len(_nat(controllers[Stack.V4])) == 1

    def test_returns_hop_rule(self, hops):
        hop = hops.hop_add("51010", "51011/udp/4", "ens3")
        assert hop.to_port == 51010
        assert hop.iface == "ens3"
        assert hop.from_spec == parse_spec("51011/udp/4")

    def test_does_not_touch_filter(self, hops, controllers):
        hops.hop_add("51010", "51011", "eth0")
        assert controllers[Stack.V4].chain(Chain.INPUT) == []

    def test_invalid_to_port(self, hops, controllers):
        with pytest.raises(SpecParseError):
            hops.hop_add("0", "51011", "eth0")
        assert controllers[Stack.V4].calls == []

    def test_invalid_from_spec(self, hops, controllers):
        with pytest.raises(SpecParseError):
            hops.hop_add("51010", "51011/icmp", "eth0")
        assert controllers[Stack.V4].calls == []

    def test_v4_failure_is_fatal(self, hops, controllers):
        controllers[Stack.V4].fail_ops.add("insert")
        with pytest.raises(MutationError):
            hops.hop_add("51010", "51011/udp", "eth0")

    def test_v6_failure_is_warning(self, ctx, no_v6_nat_controllers):
        """An ip6 kernel without NAT does not fail the command."""
        controllers = no_v6_nat_controllers
        hops = PortHopManager(ctx, controllers, ChainStateInspector(controllers))

        hop = hops.hop_add("51010", "51011", "eth0")

        assert hop.to_port == 51010
        assert len(_nat(controllers[Stack.V4])) == 2
        assert _nat(controllers[Stack.V6]) == []


class TestInterfaceResolution:
    """Tests for which interface a hop applies to."""

    def test_explicit_wins(self, ctx, controllers, inspector):
        hops = PortHopManager(ctx, controllers, inspector, iface_override="wg0")
        assert hops.hop_add("51010", "51011/udp/4", "eth1").iface == "eth1"

    def test_override_beats_detection(self, ctx, controllers, inspector):
        hops = PortHopManager(ctx, controllers, inspector, iface_override="wg0")
        with patch("nfmini.services.network.default_route_interface", return_value="eth0"):
            assert hops.hop_add("51010", "51011/udp/4").iface == "wg0"

    def test_detected_interface(self, hops):
        with patch("nfmini.services.network.default_route_interface", return_value="ens5"):
            assert hops.hop_add("51010", "51011/udp/4").iface == "ens5"

    def test_fallback(self, ctx, controllers, inspector):
        hops = PortHopManager(ctx, controllers, inspector, fallback_interface="eth9")
        with patch("nfmini.services.network.default_route_interface", return_value=None), \
                patch("nfmini.services.network.first_link_interface", return_value=None):
            assert hops.hop_add("51010", "51011/udp/4").iface == "eth9"


class TestHopDel:
    """Tests for PortHopManager.hop_del."""

    def test_removes_duplicates(self, hops, controllers):
        rule = redirect_rule(Stack.V4, "eth0", Protocol.TCP, parse_spec("80"), 8080)
        _nat(controllers[Stack.V4]).extend([rule, rule])

        hops.hop_del("8080", "80/tcp/4", "eth0")

        assert _nat(controllers[Stack.V4]) == []

    def test_other_hops_untouched(self, hops, controllers):
        hops.hop_add("8080", "80/tcp/4", "eth0")
        hops.hop_add("8443", "443/tcp/4", "eth0")

        hops.hop_del("8080", "80/tcp/4", "eth0")

        assert _nat(controllers[Stack.V4]) == [
            redirect_rule(Stack.V4, "eth0", Protocol.TCP, parse_spec("443"), 8443)
        ]

    def test_different_iface_is_different_hop(self, hops, controllers):
        hops.hop_add("8080", "80/tcp/4", "eth0")
        hops.hop_del("8080", "80/tcp/4", "eth1")
        assert len(_nat(controllers[Stack.V4])) == 1

    def test_v4_delete_failure_is_fatal(self, hops, controllers):
        hops.hop_add("8080", "80/tcp/4", "eth0")
        controllers[Stack.V4].fail_ops.add("delete")
        with pytest.raises(MutationError):
            hops.hop_del("8080", "80/tcp/4", "eth0")

    def test_v6_delete_failure_is_warning(self, hops, controllers):
        hops.hop_add("8080", "80/tcp", "eth0")
        controllers[Stack.V6].fail_ops.add("delete")

        hops.hop_del("8080", "80/tcp", "eth0")

        assert _nat(controllers[Stack.V4]) == []
        assert len(_nat(controllers[Stack.V6])) == 1

    def test_partial_arguments_rejected(self, hops):
        with pytest.raises(ValidationError):
            hops.hop_del("8080")

    def test_no_arguments_flushes(self, hops, controllers):
        hops.hop_add("8080", "80", "eth0")
        hops.hop_add("8443", "443", "eth1")

        assert hops.hop_del() is None

        assert _nat(controllers[Stack.V4]) == []
        assert _nat(controllers[Stack.V6]) == []

    def test_flush_v6_failure_is_warning(self, hops, controllers):
        hops.hop_add("8080", "80/tcp/4", "eth0")
        controllers[Stack.V6].fail_ops.add("flush")

        hops.flush()

        assert _nat(controllers[Stack.V4]) == []

    def test_flush_v4_failure_is_fatal(self, hops, controllers):
        controllers[Stack.V4].fail_ops.add("flush")
        with pytest.raises(MutationError):
            hops.flush()


class TestListRedirects:
    """Tests for redirect listing."""

    def test_lists_added_hops(self, hops):
        hops.hop_add("51010", "51011-51111/udp/4", "eth0")

        assert hops.list_redirects(Stack.V4) == [
            Redirect(iface="eth0", protocol="udp", dport="51011:51111", to_ports="51010")
        ]
        assert hops.list_redirects(Stack.V6) == []

    def test_unsupported_nat_lists_nothing(self, ctx, no_v6_nat_controllers):
        controllers = no_v6_nat_controllers
        hops = PortHopManager(ctx, controllers, ChainStateInspector(controllers))
        assert hops.list_redirects(Stack.V6) == []


class TestParseRedirect:
    """Tests for parse_redirect."""

    def test_parses_redirect(self):
        redirect = parse_redirect(
            "-A PREROUTING -i eth0 -p tcp -m tcp --dport 100:200 -j REDIRECT --to-ports 8443"
        )
        assert redirect == Redirect("eth0", "tcp", "100:200", "8443")
        assert redirect.ports == "100-200"

    def test_ignores_other_targets(self):
        assert parse_redirect("-A PREROUTING -p tcp --dport 80 -j DNAT --to-destination 10.0.0.2") is None

    def test_missing_fields(self):
        redirect = parse_redirect("-A PREROUTING -j REDIRECT")
        assert redirect == Redirect(None, None, None, None)
        assert redirect.ports == "any"
