"""
Tests for causation_engines.allocation.

Covers:
- Percentage split with the remainder on the last weighted line
- Normalisation of percentages that do not sum to 100
- Zero totals, empty line sets, zero weights
- Weighted split (late-interest re-split)
- Property: allocations always sum to the total
"""

from decimal import Decimal

import pytest
from hypothesis import assume, given, settings
from hypothesis import strategies as st

from causation_engines.allocation import (
    PercentageLine,
    allocate_by_percentage,
    allocate_by_weight,
)


def _lines(*percentages):
    return [PercentageLine(key=i, percentage=Decimal(p)) for i, p in enumerate(percentages)]


class TestAllocateByPercentage:
    def test_thirds_sum_exactly(self):
        result = allocate_by_percentage(Decimal("100.00"), _lines("33.33", "33.33", "33.34"))
        assert result == {0: Decimal("33.33"), 1: Decimal("33.33"), 2: Decimal("33.34")}
        assert sum(result.values()) == Decimal("100.00")

    def test_remainder_goes_to_last_line(self):
        result = allocate_by_percentage(Decimal("0.10"), _lines("33.33", "33.33", "33.34"))
        assert result[0] == Decimal("0.03")
        assert result[1] == Decimal("0.03")
        assert result[2] == Decimal("0.04")

    def test_single_line_takes_all(self):
        assert allocate_by_percentage(Decimal("1234.56"), _lines("100")) == {
            0: Decimal("1234.56")
        }

    def test_percentages_not_summing_to_100_are_normalised(self):
        result = allocate_by_percentage(Decimal("800.00"), _lines("50", "30"))
        assert result == {0: Decimal("500.00"), 1: Decimal("300.00")}

    def test_trailing_zero_line_gets_nothing(self):
        result = allocate_by_percentage(Decimal("10.00"), _lines("60", "40", "0"))
        assert result == {0: Decimal("6.00"), 1: Decimal("4.00"), 2: Decimal("0")}

    def test_zero_total(self):
        result = allocate_by_percentage(Decimal("0"), _lines("50", "50"))
        assert set(result.values()) == {Decimal("0")}

    def test_all_zero_percentages(self):
        result = allocate_by_percentage(Decimal("10.00"), _lines("0", "0"))
        assert set(result.values()) == {Decimal("0")}

    def test_no_lines(self):
        assert allocate_by_percentage(Decimal("10.00"), []) == {}

    def test_negative_percentage_rejected(self):
        with pytest.raises(ValueError):
            allocate_by_percentage(Decimal("10.00"), _lines("110", "-10"))

    def test_duplicate_key_rejected(self):
        lines = [
            PercentageLine(key="a", percentage=Decimal("50")),
            PercentageLine(key="a", percentage=Decimal("50")),
        ]
        with pytest.raises(ValueError):
            allocate_by_percentage(Decimal("10.00"), lines)

    def test_deterministic(self):
        lines = _lines("12.5", "37.5", "50")
        assert allocate_by_percentage(Decimal("99.99"), lines) == allocate_by_percentage(
            Decimal("99.99"), lines
        )

    @settings(max_examples=300, deadline=None)
    @given(
        total=st.decimals(min_value=Decimal("0.01"), max_value=Decimal("1000000000"), places=2),
        percentages=st.lists(
            st.decimals(min_value=Decimal("0"), max_value=Decimal("100"), places=2),
            min_size=1,
            max_size=8,
        ),
    )
    def test_sum_is_exact(self, total, percentages):
        assume(any(p > 0 for p in percentages))
        result = allocate_by_percentage(total, _lines(*percentages))
        assert sum(result.values()) == total
        for index, pct in enumerate(percentages):
            if pct == 0:
                assert result[index] == Decimal("0")


class TestAllocateByWeight:
    def test_late_interest_resplit(self):
        """1,500 over balances 100,000 / 50,000 -> 1,000 / 500."""
        items = [("inst-1", Decimal("100000")), ("inst-2", Decimal("50000"))]
        result = allocate_by_weight(Decimal("1500"), items, lambda item: item[1])
        assert [(item[0], amount) for item, amount in result] == [
            ("inst-1", Decimal("1000.00")),
            ("inst-2", Decimal("500.00")),
        ]

    def test_preserves_input_order(self):
        items = ["c", "a", "b"]
        result = allocate_by_weight(Decimal("3.00"), items, lambda _: Decimal("1"))
        assert [item for item, _ in result] == items
        assert [amount for _, amount in result] == [
            Decimal("1.00"),
            Decimal("1.00"),
            Decimal("1.00"),
        ]

    def test_all_zero_weights(self):
        result = allocate_by_weight(Decimal("5.00"), ["a", "b"], lambda _: Decimal("0"))
        assert [amount for _, amount in result] == [Decimal("0"), Decimal("0")]

    def test_negative_weight_rejected(self):
        with pytest.raises(ValueError):
            allocate_by_weight(Decimal("5.00"), [1, -1], lambda w: Decimal(w))

    @settings(max_examples=300, deadline=None)
    @given(
        total=st.decimals(min_value=Decimal("0.01"), max_value=Decimal("100000000"), places=2),
        weights=st.lists(
            st.decimals(min_value=Decimal("0"), max_value=Decimal("10000000"), places=2),
            min_size=1,
            max_size=12,
        ),
    )
    def test_sum_is_exact(self, total, weights):
        assume(any(w > 0 for w in weights))
        result = allocate_by_weight(total, weights, lambda w: w)
        assert sum(amount for _, amount in result) == total
