"""
test_achievements.py - Unit tests for achievement evaluation
"""

import pytest
from decimal import Decimal

from clicker import (
    Ledger, Achievement, ACHIEVEMENTS, build_achievements, evaluate_achievements,
    UPGRADES, EXCHANGE_TIERS, Yields,
)
from clicker.achievements import progress_map

from tests.helpers import fund


class TestAchievementDefinitions:

    def test_one_per_tier_and_upgrade(self):
        names = {a.name for a in ACHIEVEMENTS}
        assert "Mining Coins" in names
        assert "Exchanged Gold" in names
        assert "Chromebook Ownership" in names
        assert len(ACHIEVEMENTS) == 5 + len(UPGRADES) + len(EXCHANGE_TIERS)

    def test_tiers_must_ascend(self):
        with pytest.raises(ValueError):
            Achievement("x", "", (10, 5), lambda s: 0)

    def test_tiers_reached(self):
        a = Achievement("x", "", (1, 10, 100), lambda s: 0)
        assert a.tiers_reached(0) == 0
        assert a.tiers_reached(10) == 2
        assert a.tiers_reached(1000) == 3


class TestEvaluation:

    def test_fresh_ledger(self):
        results = evaluate_achievements(Ledger("x", verbose=False).snapshot())
        mining = results["Mining Coins"]
        assert mining.progress == 0
        assert mining.tiers_reached == 0
        assert mining.next_tier == 10
        assert results["Coins Per Click"].progress == 1

    def test_progress_from_snapshot(self):
        ledger = fund(Ledger("x", verbose=False), "5000.9")
        ledger.add_upgrade("chromebook", 3)
        ledger.add_exchange("bronze", 2)
        ledger.apply_yields(Yields(per_second=Decimal("250")))
        results = evaluate_achievements(ledger.snapshot())
        assert results["Mining Coins"].progress == 5000
        assert results["Mining Coins"].tiers_reached == 2
        assert results["Coins Per Second"].tiers_reached == 2
        assert results["Chromebook Ownership"].progress == 3
        assert results["Exchanged Bronze"].progress == 2
        assert results["Total Power-Ups Owned"].progress == 3

    def test_progress_never_decreases(self):
        ledger = fund(Ledger("x", verbose=False), 20000)
        before = progress_map(evaluate_achievements(ledger.snapshot()))
        ledger.reset()
        after = evaluate_achievements(ledger.snapshot(), before)
        assert after["Mining Coins"].progress == 20000
        assert after["Mining Coins"].next_tier == 100000

    def test_all_tiers_reached(self):
        ledger = fund(Ledger("x", verbose=False), 100000)
        mining = evaluate_achievements(ledger.snapshot())["Mining Coins"]
        assert mining.tiers_reached == 3
        assert mining.next_tier is None

    def test_custom_catalog(self):
        achievements = build_achievements(upgrades={}, exchange_tiers={})
        results = evaluate_achievements(Ledger("x", verbose=False).snapshot(), achievements=achievements)
        assert len(results) == 5
