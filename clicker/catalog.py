"""
catalog.py - Closed static catalogs for upgrades, exchange tiers and mini-games

Catalog entries are immutable reference data. Each table is a mapping from id to
a frozen record, built and validated once at import time by build_catalog().
Lookups go through get_upgrade() / get_exchange_tier() / get_mini_game(), which
raise the matching Unknown* error instead of returning None.

Default tables:
    UPGRADES        - power-ups that raise per-second, per-click or mini-game yield
    EXCHANGE_TIERS  - bronze / silver / gold coin exchanges (pure currency sinks)
    MINI_GAMES      - unlockable chance games producing a scalar reward

Difficulty scales production and prices:
    EASY    production x1.15, costs x0.85
    NORMAL  production x1.00, costs x1.00
    HARD    production x0.85, costs x1.15
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, TypeVar

from .core import (
    ZERO, to_decimal,
    UnknownUpgrade, UnknownExchangeTier, UnknownMiniGame,
)


# ============================================================================
# CATALOG RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Upgrade:
    """
    Purchasable upgrade.

    Attributes:
        id: Catalog key.
        cost: Price of one unit at normal difficulty.
        per_second_delta: Idle income added per unit owned.
        per_click_delta: Tap income added per unit owned.
        mini_game_bonus_pct: Mini-game payout bonus (percent) per unit owned.
        name: Display name.
        description: Display text.
    """
    id: str
    cost: Decimal
    per_second_delta: Decimal = ZERO
    per_click_delta: Decimal = ZERO
    mini_game_bonus_pct: Decimal = ZERO
    name: str = ""
    description: str = ""

    def __post_init__(self):
        if not self.id or not self.id.strip():
            raise ValueError("Upgrade id cannot be empty")
        for attr in ('cost', 'per_second_delta', 'per_click_delta', 'mini_game_bonus_pct'):
            value = to_decimal(getattr(self, attr))
            if value.is_nan() or value.is_infinite() or value < ZERO:
                raise ValueError(f"Upgrade {self.id}: {attr} must be finite and >= 0, got {value}")
            object.__setattr__(self, attr, value)
        if not self.name:
            object.__setattr__(self, 'name', self.id)


@dataclass(frozen=True, slots=True)
class ExchangeTier:
    """Coin exchange: spends `cost` and bumps the tier's exchanged count."""
    id: str
    cost: Decimal
    name: str = ""

    def __post_init__(self):
        if not self.id or not self.id.strip():
            raise ValueError("ExchangeTier id cannot be empty")
        cost = to_decimal(self.cost)
        if cost.is_nan() or cost.is_infinite() or cost <= ZERO:
            raise ValueError(f"ExchangeTier {self.id}: cost must be finite and > 0, got {cost}")
        object.__setattr__(self, 'cost', cost)
        if not self.name:
            object.__setattr__(self, 'name', self.id)


@dataclass(frozen=True, slots=True)
class MiniGame:
    """Chance game unlocked once for `unlock_cost`."""
    id: str
    unlock_cost: Decimal
    name: str = ""

    def __post_init__(self):
        if not self.id or not self.id.strip():
            raise ValueError("MiniGame id cannot be empty")
        cost = to_decimal(self.unlock_cost)
        if cost.is_nan() or cost.is_infinite() or cost < ZERO:
            raise ValueError(f"MiniGame {self.id}: unlock_cost must be finite and >= 0, got {cost}")
        object.__setattr__(self, 'unlock_cost', cost)
        if not self.name:
            object.__setattr__(self, 'name', self.id)


T = TypeVar('T', Upgrade, ExchangeTier, MiniGame)


def build_catalog(entries: Iterable[T]) -> Mapping[str, T]:
    """
    Build a read-only id -> record table.

    Raises:
        ValueError: If two entries share an id.
    """
    table = {}
    for entry in entries:
        if entry.id in table:
            raise ValueError(f"Duplicate catalog id: {entry.id}")
        table[entry.id] = entry
    return MappingProxyType(table)


# ============================================================================
# DIFFICULTY
# ============================================================================

class Difficulty(Enum):
    """Game difficulty; value is the config key."""
    EASY = "easy"
    NORMAL = "normal"
    HARD = "hard"

    @property
    def production_multiplier(self) -> Decimal:
        return _PRODUCTION_MULTIPLIERS[self]

    @property
    def cost_multiplier(self) -> Decimal:
        return _COST_MULTIPLIERS[self]

    @classmethod
    def parse(cls, value) -> 'Difficulty':
        """Accept a Difficulty or its case-insensitive name. Raises ValueError otherwise."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown difficulty {value!r}; expected one of "
                f"{', '.join(d.value for d in cls)}"
            ) from None


_PRODUCTION_MULTIPLIERS = {
    Difficulty.EASY: Decimal("1.15"),
    Difficulty.NORMAL: Decimal("1"),
    Difficulty.HARD: Decimal("0.85"),
}

_COST_MULTIPLIERS = {
    Difficulty.EASY: Decimal("0.85"),
    Difficulty.NORMAL: Decimal("1"),
    Difficulty.HARD: Decimal("1.15"),
}


# ============================================================================
# DEFAULT TABLES
# ============================================================================

UPGRADES: Mapping[str, Upgrade] = build_catalog([
    Upgrade("chromebook", Decimal("50"), per_second_delta=Decimal("1"),
            name="Chromebook", description="+1 coin per second"),
    Upgrade("desktop", Decimal("200"), per_second_delta=Decimal("5"),
            name="Desktop", description="+5 coins per second"),
    Upgrade("server", Decimal("1000"), per_second_delta=Decimal("10"),
            name="Server", description="+10 coins per second"),
    Upgrade("mine_center", Decimal("10000"), per_second_delta=Decimal("100"),
            name="Mine Center", description="+100 coins per second"),
    Upgrade("mouse", Decimal("100"), per_click_delta=Decimal("1"),
            name="Gaming Mouse", description="+1 coin per click"),
    Upgrade("keyboard", Decimal("2500"), per_click_delta=Decimal("10"),
            name="Mechanical Keyboard", description="+10 coins per click"),
    Upgrade("bonus_5", Decimal("500"), mini_game_bonus_pct=Decimal("5"),
            name="5% Bonus Reward", description="+5% mini-game rewards"),
    Upgrade("bonus_25", Decimal("5000"), mini_game_bonus_pct=Decimal("25"),
            name="25% Bonus Reward", description="+25% mini-game rewards"),
    Upgrade("bonus_100", Decimal("50000"), mini_game_bonus_pct=Decimal("100"),
            name="100% Bonus Reward", description="+100% mini-game rewards"),
])

EXCHANGE_TIERS: Mapping[str, ExchangeTier] = build_catalog([
    ExchangeTier("bronze", Decimal("250"), name="Bronze"),
    ExchangeTier("silver", Decimal("10000"), name="Silver"),
    ExchangeTier("gold", Decimal("1000000"), name="Gold"),
])

MINI_GAMES: Mapping[str, MiniGame] = build_catalog([
    MiniGame("blackjack", Decimal("1000"), name="Blackjack"),
    MiniGame("tetris", Decimal("8000"), name="Tetris"),
])


# ============================================================================
# LOOKUPS
# ============================================================================

def get_upgrade(upgrade_id: str, catalog: Mapping[str, Upgrade] = UPGRADES) -> Upgrade:
    try:
        return catalog[upgrade_id]
    except KeyError:
        raise UnknownUpgrade(f"Unknown upgrade: {upgrade_id}") from None


def get_exchange_tier(tier_id: str, catalog: Mapping[str, ExchangeTier] = EXCHANGE_TIERS) -> ExchangeTier:
    try:
        return catalog[tier_id]
    except KeyError:
        raise UnknownExchangeTier(f"Unknown exchange tier: {tier_id}") from None


def get_mini_game(game_id: str, catalog: Mapping[str, MiniGame] = MINI_GAMES) -> MiniGame:
    try:
        return catalog[game_id]
    except KeyError:
        raise UnknownMiniGame(f"Unknown mini-game: {game_id}") from None
