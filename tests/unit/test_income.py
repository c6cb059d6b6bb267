"""
test_income.py - Unit tests for the pure income model
"""

import pytest
from decimal import Decimal

from clicker import (
    Yields, compute_yields, correct_steps, step_reward,
    Difficulty, Upgrade, build_catalog,
    UnknownUpgrade, InvalidAmount,
)


class TestComputeYields:
    """Tests for compute_yields()."""

    def test_no_upgrades(self):
        y = compute_yields({})
        assert y == Yields()
        assert y.per_click == Decimal("1")
        assert y.per_second == Decimal("0")
        assert y.mini_game_multiplier == Decimal("1")

    def test_one_chromebook(self):
        assert compute_yields({"chromebook": 1}).per_second == Decimal("1")

    def test_mixed_upgrades(self):
        y = compute_yields({"chromebook": 2, "desktop": 1, "mouse": 3, "bonus_25": 1})
        assert y.per_second == Decimal("7")
        assert y.per_click == Decimal("4")
        assert y.mini_game_multiplier == Decimal("1.25")

    def test_zero_quantity_ignored(self):
        assert compute_yields({"server": 0}).per_second == Decimal("0")

    def test_unknown_id(self):
        with pytest.raises(UnknownUpgrade):
            compute_yields({"flux_capacitor": 1})

    def test_negative_quantity(self):
        with pytest.raises(InvalidAmount):
            compute_yields({"chromebook": -1})

    def test_difficulty_scales_production_only(self):
        y = compute_yields({"desktop": 2, "mouse": 1, "bonus_5": 1}, difficulty=Difficulty.HARD)
        assert y.per_second == Decimal("8.50")
        assert y.per_click == Decimal("1.85")
        assert y.mini_game_multiplier == Decimal("1.05")

    def test_custom_catalog(self):
        catalog = build_catalog([Upgrade("tap", Decimal("1"), per_click_delta=Decimal("0.5"))])
        assert compute_yields({"tap": 4}, catalog).per_click == Decimal("3")

    def test_deterministic(self):
        q = {"server": 3, "chromebook": 5, "keyboard": 1}
        assert compute_yields(q) == compute_yields(dict(reversed(list(q.items()))))


class TestCorrectSteps:
    """Round-half-even of raw steps x correction factor."""

    def test_default_factor(self):
        assert correct_steps(Decimal("100"), Decimal("0.6")) == 60

    def test_rounds_half_to_even(self):
        assert correct_steps(Decimal("5"), Decimal("0.5")) == 2    # 2.5 -> 2
        assert correct_steps(Decimal("7"), Decimal("0.5")) == 4    # 3.5 -> 4

    def test_fractional_steps(self):
        assert correct_steps(Decimal("10.9"), Decimal("0.6")) == 7  # 6.54

    def test_negative_rejected(self):
        with pytest.raises(InvalidAmount):
            correct_steps(Decimal("-1"), Decimal("0.6"))


class TestStepReward:

    def test_reward(self):
        assert step_reward(60, Decimal("0.01")) == Decimal("0.60")

    def test_zero(self):
        assert step_reward(0, Decimal("0.01")) == Decimal("0")
