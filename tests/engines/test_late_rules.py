"""
Tests for causation_engines.late_rules.
"""

from datetime import date
from decimal import Decimal

from causation_engines.late_rules import LateRule, pick_late_rule, rules_in_force


def _rule(rule_id, days_from, days_to, factor="30", priority=0, **kw):
    return LateRule(
        rule_id=rule_id,
        credit_product_id=1,
        category_code="A",
        days_from=days_from,
        days_to=days_to,
        late_factor=Decimal(factor),
        priority=priority,
        **kw,
    )


class TestPickLateRule:
    def test_band_contains_days(self):
        rules = [_rule(1, 1, 30), _rule(2, 31, 60), _rule(3, 61, None)]
        assert pick_late_rule(rules, 1).rule_id == 1
        assert pick_late_rule(rules, 30).rule_id == 1
        assert pick_late_rule(rules, 31).rule_id == 2
        assert pick_late_rule(rules, 400).rule_id == 3

    def test_no_band(self):
        assert pick_late_rule([_rule(1, 1, 30)], 31) is None
        assert pick_late_rule([], 5) is None

    def test_priority_then_latest_days_from(self):
        rules = [
            _rule(1, 1, None, priority=0),
            _rule(2, 10, None, priority=0),
            _rule(3, 1, 5, priority=1),
        ]
        assert pick_late_rule(rules, 3).rule_id == 3
        assert pick_late_rule(rules, 20).rule_id == 2

    def test_id_breaks_full_ties(self):
        rules = [_rule(4, 1, None), _rule(7, 1, None)]
        assert pick_late_rule(rules, 3).rule_id == 7


class TestRulesInForce:
    def test_filters_inactive_and_out_of_date(self):
        as_of = date(2024, 6, 10)
        rules = [
            _rule(1, 1, None),
            _rule(2, 1, None, is_active=False),
            _rule(3, 1, None, effective_from=date(2024, 6, 11)),
            _rule(4, 1, None, effective_to=date(2024, 6, 9)),
            _rule(5, 1, None, effective_from=date(2024, 6, 10), effective_to=date(2024, 6, 10)),
        ]
        assert [r.rule_id for r in rules_in_force(rules, as_of)] == [5, 1]

    def test_pick_order(self):
        rules = [_rule(1, 1, None), _rule(2, 31, None), _rule(3, 1, None, priority=2)]
        assert [r.rule_id for r in rules_in_force(rules, date(2024, 6, 10))] == [3, 2, 1]
