"""
income.py - Pure income model

compute_yields() derives per-click, per-second and mini-game yields from owned
upgrade quantities. It is a pure function: no ledger access, no side effects.
The Ledger stores the result only through Ledger.apply_yields(), and every
caller that changes upgrade quantities (purchase, merge, reset, load) must
recompute and apply.

    per_click            = 1 + production x SUM(q * per_click_delta)
    per_second           =     production x SUM(q * per_second_delta)
    mini_game_multiplier = 1 + SUM(q * mini_game_bonus_pct) / 100
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_EVEN
from typing import Mapping

from .core import ZERO, BASE_PER_CLICK_YIELD, InvalidAmount, require_amount
from .catalog import UPGRADES, Upgrade, Difficulty, get_upgrade


@dataclass(frozen=True, slots=True)
class Yields:
    """Derived income rates for one upgrade state."""
    per_click: Decimal = BASE_PER_CLICK_YIELD
    per_second: Decimal = ZERO
    mini_game_multiplier: Decimal = Decimal("1")


def compute_yields(
    upgrade_quantities: Mapping[str, int],
    catalog: Mapping[str, Upgrade] = UPGRADES,
    difficulty: Difficulty = Difficulty.NORMAL,
) -> Yields:
    """
    Compute yields from owned upgrade quantities.

    Args:
        upgrade_quantities: upgrade id -> owned count
        catalog: Upgrade table to price deltas against
        difficulty: Scales the per-click and per-second upgrade contributions

    Returns:
        Yields with per_click >= 1, per_second >= 0, mini_game_multiplier >= 1

    Raises:
        UnknownUpgrade: If a quantity refers to an id not in the catalog
        InvalidAmount: If a quantity is negative
    """
    click_sum = ZERO
    second_sum = ZERO
    bonus_pct = ZERO
    for upgrade_id, quantity in sorted(upgrade_quantities.items()):
        if quantity < 0:
            raise InvalidAmount(f"Negative quantity for {upgrade_id}: {quantity}")
        if quantity == 0:
            continue
        upgrade = get_upgrade(upgrade_id, catalog)
        click_sum += upgrade.per_click_delta * quantity
        second_sum += upgrade.per_second_delta * quantity
        bonus_pct += upgrade.mini_game_bonus_pct * quantity

    production = difficulty.production_multiplier
    return Yields(
        per_click=BASE_PER_CLICK_YIELD + click_sum * production,
        per_second=second_sum * production,
        mini_game_multiplier=Decimal("1") + bonus_pct / Decimal("100"),
    )


def correct_steps(step_value, correction_factor) -> int:
    """Corrected step count: round-half-even of step_value x correction_factor."""
    raw = require_amount(step_value, "step_value") * require_amount(correction_factor, "correction_factor")
    return int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_EVEN))


def step_reward(steps: int, per_step_yield: Decimal) -> Decimal:
    """Currency earned for `steps` awarded steps."""
    return require_amount(steps, "steps") * require_amount(per_step_yield, "per_step_yield")
