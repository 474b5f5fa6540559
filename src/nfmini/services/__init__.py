"""Firewall engine: spec parsing, filter access and reconciliation."""

from nfmini.services.spec import PortSpec, HopRule, parse_spec, parse_port, parse_hop_rule
from nfmini.services.filter import FilterController, FilterRule, IptablesController, Stack
from nfmini.services.inspector import ChainStateInspector
from nfmini.services.baseline import BaselineInitializer
from nfmini.services.reconciler import RuleReconciler
from nfmini.services.hop import PortHopManager, Redirect
from nfmini.services.persistence import PersistenceService

__all__ = [
    "PortSpec",
    "HopRule",
    "parse_spec",
    "parse_port",
    "parse_hop_rule",
    "FilterController",
    "FilterRule",
    "IptablesController",
    "Stack",
    "ChainStateInspector",
    "BaselineInitializer",
    "RuleReconciler",
    "PortHopManager",
    "Redirect",
    "PersistenceService",
]
