"""Plugin activation rules.

A rule is one of:

- a bool, returned as-is
- a predicate ``(global_data) -> truthy``
- a rule object, either ``TestRule`` or a mapping ``{"test": ..., "rule": ...}``,
  whose nested rule only applies when ``test`` is unset/false or test mode
  is active

Rules are evaluated fresh on every call and never cached, since global data
may differ between the initial activation pass and a later ``add_plugin``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Union

from datalayer.errors import RuleEvaluationError

Predicate = Callable[[dict], Any]


@dataclass(frozen=True)
class TestRule:
    """Rule object that can be restricted to test mode."""

    __test__ = False  # keep pytest from collecting this class

    rule: Union[bool, Predicate]
    test: bool = False


Rule = Union[bool, Predicate, TestRule, Mapping]

_MISSING = object()


def _unpack(rule: Any) -> tuple[Any, Any]:
    """Return (nested_rule, test_flag) for a rule object."""
    if isinstance(rule, TestRule):
        return rule.rule, rule.test
    if isinstance(rule, Mapping):
        return rule.get("rule", _MISSING), rule.get("test", False)
    return _MISSING, False


def evaluate_rule(
    rule: Any,
    global_data: dict,
    test_mode_active: bool,
    plugin_id: str | None = None,
) -> bool:
    """Decide whether ``rule`` selects a plugin for ``global_data``.

    Raises:
        RuleEvaluationError: If a predicate raises.
    """
    if rule is True or rule is False:
        return rule

    if isinstance(rule, (TestRule, Mapping)):
        nested, test = _unpack(rule)
        if nested is _MISSING:
            return False
        # Only a literal True gates on test mode; any other non-false flag never selects
        if test is None or test is False or (test is True and test_mode_active):
            return evaluate_rule(nested, global_data, test_mode_active, plugin_id)
        return False

    if callable(rule):
        try:
            return bool(rule(global_data))
        except Exception as e:
            raise RuleEvaluationError(plugin_id, e) from e

    return False


class RuleEvaluator:
    """Evaluates activation rules against a fixed test-mode flag."""

    def __init__(self, test_mode_active: bool = False) -> None:
        self.test_mode_active = test_mode_active

    def evaluate(self, rule: Any, global_data: dict, plugin_id: str | None = None) -> bool:
        return evaluate_rule(rule, global_data, self.test_mode_active, plugin_id)
