"""Unit tests for activation rule evaluation."""
from __future__ import annotations

import pytest

from datalayer.errors import RuleEvaluationError
from datalayer.rules import RuleEvaluator, TestRule, evaluate_rule

DATA = {"page": {"type": "home", "name": "N"}, "site": {"id": "S"}, "user": {}}


@pytest.mark.unit
class TestLiteralAndPredicateRules:

    def test_true_always_selects(self):
        """True selects in and out of test mode."""
        assert evaluate_rule(True, DATA, False) is True
        assert evaluate_rule(True, DATA, True) is True

    def test_false_never_selects(self):
        """False never selects."""
        assert evaluate_rule(False, DATA, True) is False

    def test_predicate_false_never_selects(self):
        """A falsy predicate never selects."""
        assert evaluate_rule(lambda d: False, DATA, True) is False

    def test_predicate_receives_global_data(self):
        """Predicates are called with the global data."""
        assert evaluate_rule(lambda d: d["page"]["type"] == "home", DATA, False) is True
        assert evaluate_rule(lambda d: d["page"]["type"] == "cart", DATA, False) is False

    def test_predicate_result_coerced_to_bool(self):
        """Predicate results are coerced to bool."""
        assert evaluate_rule(lambda d: "yes", DATA, False) is True
        assert evaluate_rule(lambda d: 0, DATA, False) is False
        assert evaluate_rule(lambda d: None, DATA, False) is False

    def test_predicate_exception_wrapped(self):
        """Predicate errors become RuleEvaluationError."""
        def broken(d):
            raise KeyError("missing")

        with pytest.raises(RuleEvaluationError, match="plugin 'p1'") as exc:
            evaluate_rule(broken, DATA, False, plugin_id="p1")
        assert exc.value.plugin_id == "p1"
        assert isinstance(exc.value.__cause__, KeyError)

    def test_unknown_rule_type_is_false(self):
        """Unsupported rule values select nothing."""
        assert evaluate_rule(42, DATA, True) is False
        assert evaluate_rule(None, DATA, True) is False


@pytest.mark.unit
class TestRuleObjects:

    def test_test_rule_selects_only_in_test_mode(self):
        """A test-gated mapping only selects in test mode."""
        rule = {"test": True, "rule": lambda d: True}
        assert evaluate_rule(rule, DATA, True) is True
        assert evaluate_rule(rule, DATA, False) is False

    def test_dataclass_form(self):
        """TestRule behaves like the mapping form."""
        rule = TestRule(rule=lambda d: True, test=True)
        assert evaluate_rule(rule, DATA, True) is True
        assert evaluate_rule(rule, DATA, False) is False

    def test_unset_test_flag_behaves_like_predicate(self):
        """Without a test flag the nested rule decides."""
        assert evaluate_rule({"rule": lambda d: True}, DATA, False) is True
        assert evaluate_rule({"test": False, "rule": lambda d: True}, DATA, False) is True

    @pytest.mark.parametrize("flag", [1, "yes", "true", [True]])
    def test_non_boolean_test_flag_never_selects(self, flag):
        """Only a literal True flag is honoured; other truthy values stay closed."""
        rule = {"test": flag, "rule": lambda d: True}
        assert evaluate_rule(rule, DATA, False) is False
        assert evaluate_rule(rule, DATA, True) is False

    def test_none_test_flag_behaves_like_unset(self):
        """test=None is treated like an absent flag."""
        assert evaluate_rule({"test": None, "rule": True}, DATA, False) is True

    def test_object_without_rule_is_false(self):
        """A rule object without a nested rule selects nothing."""
        assert evaluate_rule({"test": True}, DATA, True) is False
        assert evaluate_rule({}, DATA, True) is False

    def test_nested_boolean_rule(self):
        """Nested booleans respect the test gate."""
        assert evaluate_rule({"test": True, "rule": True}, DATA, True) is True
        assert evaluate_rule({"test": True, "rule": True}, DATA, False) is False

    def test_nested_predicate_exception_wrapped(self):
        """Nested predicate errors are wrapped too."""
        rule = {"rule": lambda d: d["missing"]}
        with pytest.raises(RuleEvaluationError):
            evaluate_rule(rule, DATA, False)

    def test_reentrant(self):
        """Rules are evaluated fresh on every call."""
        calls = []
        rule = {"rule": lambda d: calls.append(1) or True}
        assert evaluate_rule(rule, DATA, False)
        assert evaluate_rule(rule, DATA, False)
        assert len(calls) == 2


@pytest.mark.unit
class TestRuleEvaluator:

    def test_uses_its_test_mode_flag(self):
        """RuleEvaluator applies its own test-mode flag."""
        rule = TestRule(rule=True, test=True)
        assert RuleEvaluator(test_mode_active=True).evaluate(rule, DATA) is True
        assert RuleEvaluator(test_mode_active=False).evaluate(rule, DATA) is False
