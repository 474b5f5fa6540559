"""Read-only view of live filter state across both stacks."""

from typing import Mapping

from nfmini.services.filter import Chain, FilterController, FilterRule, Stack


class ChainStateInspector:
    """Answers "is the baseline there?" and "is this rule there?" per stack."""

    def __init__(self, controllers: Mapping[Stack, FilterController]) -> None:
        self.controllers = controllers

    def has_baseline(self, stack: Stack) -> bool:
        """True iff the stack's INPUT chain holds at least one rule."""
        return bool(self.controllers[stack].list_rules(Chain.INPUT))

    def rule_exists(self, stack: Stack, rule: FilterRule) -> bool:
        """True iff ``rule`` is present on ``stack``; False for missing chains/tables."""
        return self.controllers[stack].rule_exists(rule)
