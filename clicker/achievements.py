"""
achievements.py - Tiered milestones derived from ledger snapshots

Achievements never touch the ledger. evaluate_achievements() reads a
LedgerSnapshot and returns per-achievement progress, taking the max with the
previous progress so a reset or a merge never takes a milestone away.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from .core import LedgerSnapshot
from .catalog import UPGRADES, EXCHANGE_TIERS, Upgrade, ExchangeTier


@dataclass(frozen=True, slots=True)
class Achievement:
    """
    A milestone ladder.

    Attributes:
        name: Display name and progress key.
        description: Display text.
        tiers: Ascending thresholds.
        measure: Reads the current value from a snapshot.
    """
    name: str
    description: str
    tiers: Tuple[int, ...]
    measure: Callable[[LedgerSnapshot], int]

    def __post_init__(self):
        if not self.tiers or list(self.tiers) != sorted(self.tiers):
            raise ValueError(f"Achievement {self.name}: tiers must be non-empty and ascending")

    def tiers_reached(self, progress: int) -> int:
        return sum(1 for t in self.tiers if progress >= t)


@dataclass(frozen=True, slots=True)
class AchievementProgress:
    name: str
    progress: int
    tiers_reached: int
    next_tier: Optional[int]


def build_achievements(
    upgrades: Mapping[str, Upgrade] = UPGRADES,
    exchange_tiers: Mapping[str, ExchangeTier] = EXCHANGE_TIERS,
) -> List[Achievement]:
    """The achievement list for a catalog: fixed milestones plus one per tier and upgrade."""
    achievements = [
        Achievement("Mining Coins", "Mine coins to achieve these milestones.",
                    (10, 5000, 100000), lambda s: int(s.total_ever_earned)),
        Achievement("Coins Per Second", "Earn coins per second to reach these levels.",
                    (5, 250, 10000), lambda s: int(s.per_second_yield)),
        Achievement("Coins Per Click", "Increase coins earned per click to these values.",
                    (2, 100, 7500), lambda s: int(s.per_click_yield)),
    ]
    for tier in exchange_tiers.values():
        achievements.append(Achievement(
            f"Exchanged {tier.name}", f"Exchange {tier.name} to achieve milestones.",
            (1, 200, 5000), lambda s, tid=tier.id: s.exchanged_counts.get(tid, 0),
        ))
    for upgrade in upgrades.values():
        achievements.append(Achievement(
            f"{upgrade.name} Ownership", f"Own {upgrade.name} to reach these levels.",
            (1, 200, 5000), lambda s, uid=upgrade.id: s.upgrade_quantities.get(uid, 0),
        ))
    achievements.append(Achievement(
        "Total Exchanged Coins", "Exchange coins to achieve these totals.",
        (100, 10000, 100000), lambda s: s.total_exchanged,
    ))
    achievements.append(Achievement(
        "Total Power-Ups Owned", "Own power-ups to achieve these totals.",
        (100, 10000, 100000), lambda s: s.total_upgrades_owned,
    ))
    return achievements


ACHIEVEMENTS: List[Achievement] = build_achievements()


def evaluate_achievements(
    snapshot: LedgerSnapshot,
    previous_progress: Optional[Mapping[str, int]] = None,
    achievements: Optional[List[Achievement]] = None,
) -> Dict[str, AchievementProgress]:
    """
    Compute progress for every achievement.

    Progress is max(previous, current), so it never decreases.
    """
    previous = previous_progress or {}
    result = {}
    for achievement in achievements if achievements is not None else ACHIEVEMENTS:
        value = max(previous.get(achievement.name, 0), achievement.measure(snapshot))
        reached = achievement.tiers_reached(value)
        result[achievement.name] = AchievementProgress(
            name=achievement.name,
            progress=value,
            tiers_reached=reached,
            next_tier=achievement.tiers[reached] if reached < len(achievement.tiers) else None,
        )
    return result


def progress_map(results: Mapping[str, AchievementProgress]) -> Dict[str, int]:
    """Flatten evaluate_achievements() output into name -> progress for storage."""
    return {name: p.progress for name, p in results.items()}
