"""
gateway.py - Transaction gateway for priced actions

Every operation validates first, then applies inside Ledger.transaction(), so
either every field changes or none does. Failures raise; the device node turns
them into rejected intents.

Operations:
    purchase(upgrade_id, quantity)          debit cost, add upgrades, recompute yields
    exchange(tier_id)                        debit tier cost, bump exchanged count
    apply_mini_game_reward(raw, multiplier)  credit raw x multiplier as minigame income
    unlock_mini_game(game_id)                debit unlock cost once
"""

from __future__ import annotations
from decimal import Decimal
from typing import Any, Mapping, Optional

from .core import (
    IncomeSource,
    InvalidAmount, InsufficientFunds,
    require_amount, normalize_decimal,
)
from .catalog import (
    UPGRADES, EXCHANGE_TIERS, MINI_GAMES,
    Upgrade, ExchangeTier, MiniGame, Difficulty,
    get_upgrade, get_exchange_tier, get_mini_game,
)
from .income import compute_yields
from .ledger import Ledger


class TransactionGateway:
    """
    Applies discrete priced intents to one ledger.

    Example:
        gateway = TransactionGateway(ledger)
        gateway.purchase("chromebook", 1)
        gateway.exchange("bronze")
        gateway.apply_mini_game_reward(Decimal("100"), Decimal("1.25"))
    """

    def __init__(
        self,
        ledger: Ledger,
        upgrades: Mapping[str, Upgrade] = UPGRADES,
        exchange_tiers: Mapping[str, ExchangeTier] = EXCHANGE_TIERS,
        mini_games: Mapping[str, MiniGame] = MINI_GAMES,
        difficulty: Difficulty = Difficulty.NORMAL,
        verbose: bool = True,
    ):
        self.ledger = ledger
        self.upgrades = upgrades
        self.exchange_tiers = exchange_tiers
        self.mini_games = mini_games
        self.difficulty = difficulty
        self.verbose = verbose

    def purchase_cost(self, upgrade_id: str, quantity: int = 1) -> Decimal:
        """Total price of `quantity` units at the current difficulty."""
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidAmount(f"Quantity must be a positive int, got {quantity!r}")
        upgrade = get_upgrade(upgrade_id, self.upgrades)
        return upgrade.cost * quantity * self.difficulty.cost_multiplier

    def purchase(self, upgrade_id: str, quantity: int = 1) -> int:
        """
        Buy `quantity` units of an upgrade.

        Returns:
            The new owned count

        Raises:
            InvalidAmount: quantity < 1
            UnknownUpgrade: id not in the catalog
            InsufficientFunds: total cost exceeds the balance (no partial purchase)
        """
        total = self.purchase_cost(upgrade_id, quantity)
        with self.ledger.transaction():
            self._require_funds(total, f"{quantity} x {upgrade_id}")
            self.ledger.debit(total, detail=upgrade_id)
            owned = self.ledger.add_upgrade(upgrade_id, quantity)
            self.recompute_yields()
        if self.verbose:
            print(f"[Gateway] ✓ purchased {quantity} x {upgrade_id} for {normalize_decimal(total)}")
        return owned

    def exchange(self, tier_id: str) -> int:
        """
        Exchange coins at a tier.

        Returns:
            The new exchanged count for the tier

        Raises:
            UnknownExchangeTier: id not in the catalog
            InsufficientFunds: balance below the tier cost
        """
        tier = get_exchange_tier(tier_id, self.exchange_tiers)
        with self.ledger.transaction():
            self._require_funds(tier.cost, f"{tier_id} exchange")
            self.ledger.debit(tier.cost, detail=tier_id)
            count = self.ledger.add_exchange(tier_id)
        if self.verbose:
            print(f"[Gateway] ✓ exchanged {tier_id} for {normalize_decimal(tier.cost)}")
        return count

    def apply_mini_game_reward(self, raw_reward: Any, multiplier: Optional[Any] = None) -> Decimal:
        """
        Credit a mini-game payout.

        Args:
            raw_reward: Scalar reward from the game engine
            multiplier: Payout multiplier (default: the ledger's derived mini-game multiplier)

        Returns:
            The credited amount

        Raises:
            InvalidAmount: Negative or non-finite reward or multiplier
        """
        reward = require_amount(raw_reward, "mini-game reward")
        with self.ledger.transaction():
            if multiplier is None:
                factor = self.ledger.mini_game_multiplier
            else:
                factor = require_amount(multiplier, "mini-game multiplier")
            amount = reward * factor
            self.ledger.credit(amount, IncomeSource.MINIGAME)
        if self.verbose:
            print(f"[Gateway] ✓ mini-game reward {normalize_decimal(reward)} x "
                  f"{normalize_decimal(factor)} = {normalize_decimal(amount)}")
        return amount

    def unlock_mini_game(self, game_id: str) -> bool:
        """
        Pay the unlock cost of a mini-game.

        Returns:
            True if newly unlocked, False if it was already unlocked (nothing charged)

        Raises:
            UnknownMiniGame: id not in the catalog
            InsufficientFunds: balance below the unlock cost
        """
        game = get_mini_game(game_id, self.mini_games)
        with self.ledger.transaction():
            if self.ledger.is_unlocked(game_id):
                return False
            self._require_funds(game.unlock_cost, f"{game_id} unlock")
            self.ledger.debit(game.unlock_cost, detail=game_id)
            self.ledger.unlock(game_id)
        if self.verbose:
            print(f"[Gateway] ✓ unlocked {game_id}")
        return True

    def recompute_yields(self) -> None:
        """Recompute and store yields from the ledger's upgrade quantities."""
        with self.ledger.lock:
            self.ledger.apply_yields(
                compute_yields(self.ledger.upgrade_quantities, self.upgrades, self.difficulty)
            )

    def _require_funds(self, cost: Decimal, what: str) -> None:
        if cost > self.ledger.balance:
            if self.verbose:
                print(f"[Gateway] ✗ REJECTED {what}: costs {normalize_decimal(cost)}, "
                      f"balance {normalize_decimal(self.ledger.balance)}")
            raise InsufficientFunds(
                f"{what} costs {normalize_decimal(cost)}, balance is {normalize_decimal(self.ledger.balance)}"
            )
