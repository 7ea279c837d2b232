"""
Tests for causation_engines.billing.

Covers:
- round_by_mode (NEAREST / UP / DOWN, decimals clamped to 0..6)
- Fixed, percentage and tiered calc methods with base selection
- Min / max clamps (only when positive)
- Tier selection by range metric, priority and effective dates
"""

from datetime import date
from decimal import Decimal

import pytest

from causation_kernel.domain.terms import (
    BaseAmountKind,
    CalcMethod,
    RangeMetric,
    RoundingMode,
)
from causation_engines.billing import (
    PricingTerms,
    TierRule,
    calculate_concept_amount,
    round_by_mode,
    select_tier,
)

BASES = {
    BaseAmountKind.DISBURSED_AMOUNT: Decimal("1000000"),
    BaseAmountKind.PRINCIPAL: Decimal("1000000"),
    BaseAmountKind.OUTSTANDING_BALANCE: Decimal("400000"),
    BaseAmountKind.INSTALLMENT_AMOUNT: Decimal("95000"),
}


class TestRoundByMode:
    @pytest.mark.parametrize(
        "mode, expected",
        [
            (RoundingMode.NEAREST, Decimal("12.35")),
            (RoundingMode.UP, Decimal("12.35")),
            (RoundingMode.DOWN, Decimal("12.34")),
        ],
    )
    def test_modes(self, mode, expected):
        assert round_by_mode(Decimal("12.345"), mode, 2) == expected

    def test_up_rounds_any_fraction(self):
        assert round_by_mode(Decimal("12.341"), RoundingMode.UP, 2) == Decimal("12.35")

    def test_zero_decimals(self):
        assert round_by_mode(Decimal("1234.5"), RoundingMode.NEAREST, 0) == Decimal("1235")

    def test_decimals_clamped(self):
        assert round_by_mode(Decimal("1.123456789"), RoundingMode.DOWN, 9) == Decimal("1.123456")
        assert round_by_mode(Decimal("7.6"), RoundingMode.DOWN, -3) == Decimal("7")

    def test_stored_string_mode(self):
        assert round_by_mode(Decimal("2.005"), "NEAREST", 2) == Decimal("2.01")


class TestCalculateConceptAmount:
    def test_fixed_amount(self):
        terms = PricingTerms(calc_method=CalcMethod.FIXED_AMOUNT, amount=Decimal("5000"))
        assert calculate_concept_amount(terms, BASES) == Decimal("5000.00")

    @pytest.mark.parametrize(
        "base, expected",
        [
            (BaseAmountKind.PRINCIPAL, Decimal("5000.00")),
            (BaseAmountKind.OUTSTANDING_BALANCE, Decimal("2000.00")),
            (BaseAmountKind.INSTALLMENT_AMOUNT, Decimal("475.00")),
        ],
    )
    def test_percentage_of_selected_base(self, base, expected):
        terms = PricingTerms(
            calc_method=CalcMethod.PERCENTAGE, base_amount=base, rate=Decimal("0.5")
        )
        assert calculate_concept_amount(terms, BASES) == expected

    def test_percentage_without_base_is_zero(self):
        terms = PricingTerms(calc_method=CalcMethod.PERCENTAGE, rate=Decimal("1"))
        assert calculate_concept_amount(terms, BASES) == Decimal("0.00")

    def test_min_clamp(self):
        terms = PricingTerms(
            calc_method=CalcMethod.PERCENTAGE,
            base_amount=BaseAmountKind.INSTALLMENT_AMOUNT,
            rate=Decimal("0.1"),
            min_amount=Decimal("150"),
        )
        assert calculate_concept_amount(terms, BASES) == Decimal("150.00")

    def test_max_clamp(self):
        terms = PricingTerms(
            calc_method=CalcMethod.PERCENTAGE,
            base_amount=BaseAmountKind.PRINCIPAL,
            rate=Decimal("1"),
            max_amount=Decimal("7500"),
        )
        assert calculate_concept_amount(terms, BASES) == Decimal("7500.00")

    def test_zero_clamps_are_ignored(self):
        terms = PricingTerms(
            calc_method=CalcMethod.FIXED_AMOUNT,
            amount=Decimal("10"),
            min_amount=Decimal("0"),
            max_amount=Decimal("0"),
        )
        assert calculate_concept_amount(terms, BASES) == Decimal("10.00")

    def test_concept_rounding_applies_before_money_rounding(self):
        terms = PricingTerms(
            calc_method=CalcMethod.PERCENTAGE,
            base_amount=BaseAmountKind.INSTALLMENT_AMOUNT,
            rate=Decimal("0.333"),
            rounding_mode=RoundingMode.UP,
            rounding_decimals=0,
        )
        # 95000 * 0.333% = 316.35 -> 317
        assert calculate_concept_amount(terms, BASES) == Decimal("317.00")


def _tier(rule_id, amount, metric=None, value_from=None, value_to=None, priority=0, **kw):
    return TierRule(
        rule_id=rule_id,
        terms=PricingTerms(calc_method=CalcMethod.TIERED_FIXED_AMOUNT, amount=Decimal(amount)),
        range_metric=metric,
        value_from=Decimal(value_from) if value_from is not None else None,
        value_to=Decimal(value_to) if value_to is not None else None,
        priority=priority,
        **kw,
    )


class TestSelectTier:
    METRICS = {
        RangeMetric.INSTALLMENT_COUNT: Decimal("24"),
        RangeMetric.CREDIT_AMOUNT: Decimal("1000000"),
    }
    AS_OF = date(2024, 6, 30)

    def test_band_containing_metric(self):
        rules = [
            _tier(1, "100", RangeMetric.INSTALLMENT_COUNT, "1", "12"),
            _tier(2, "200", RangeMetric.INSTALLMENT_COUNT, "13", "36"),
            _tier(3, "300", RangeMetric.INSTALLMENT_COUNT, "37", None),
        ]
        assert select_tier(rules, self.METRICS, self.AS_OF).rule_id == 2

    def test_bounds_are_inclusive(self):
        rules = [_tier(1, "100", RangeMetric.CREDIT_AMOUNT, "500000", "1000000")]
        assert select_tier(rules, self.METRICS, self.AS_OF).rule_id == 1

    def test_priority_wins(self):
        rules = [
            _tier(1, "100", RangeMetric.INSTALLMENT_COUNT, "1", "60", priority=1),
            _tier(2, "200", RangeMetric.CREDIT_AMOUNT, "0", None, priority=5),
        ]
        assert select_tier(rules, self.METRICS, self.AS_OF).rule_id == 2

    def test_inactive_and_out_of_date_rules_are_ignored(self):
        rules = [
            _tier(1, "100", RangeMetric.INSTALLMENT_COUNT, "1", "60", is_active=False),
            _tier(
                2, "200", RangeMetric.INSTALLMENT_COUNT, "1", "60",
                effective_from=date(2024, 7, 1),
            ),
            _tier(
                3, "300", RangeMetric.INSTALLMENT_COUNT, "1", "60",
                effective_to=date(2024, 6, 29),
            ),
        ]
        assert select_tier(rules, self.METRICS, self.AS_OF) is None

    def test_no_match(self):
        rules = [_tier(1, "100", RangeMetric.INSTALLMENT_COUNT, "48", "60")]
        assert select_tier(rules, self.METRICS, self.AS_OF) is None

    def test_rule_without_metric_matches_anything(self):
        assert select_tier([_tier(9, "50")], self.METRICS, self.AS_OF).rule_id == 9
