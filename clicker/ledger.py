"""
ledger.py - Authoritative currency ledger

The Ledger class owns every piece of mutable economic state on one device.
Other components (gateway, clock, deduplicator, reconciler) receive the same
Ledger instance at construction and mutate it only through the methods below.

Key responsibilities:
    - credit/debit with source attribution and validation
    - Single-writer discipline: one re-entrant lock guards every mutation
    - transaction(): all-or-nothing block with rollback on exception
    - Snapshots (frozen copies) and state-dict round-trip for persistence
    - Bounded audit log of every mutation
    - reset(): zero everything atomically and start a new epoch

Invariant maintained after every public call:
    balance == total_ever_earned - total_spent >= 0
"""

from __future__ import annotations
from collections import deque
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Deque, Dict, Iterator, List, Optional, Set
import threading

from .core import (
    # Types
    IncomeSource, LedgerSnapshot, RemoteSnapshot, Entry,
    # Constants
    ZERO, DEFAULT_PER_STEP_YIELD,
    # Exceptions
    InsufficientFunds, InvalidAmount,
    # Helpers
    require_amount, normalize_decimal, to_decimal, _freeze_counts,
)
from .income import Yields


_BUCKET_ATTRS = {
    IncomeSource.CLICK: '_earned_from_clicks',
    IncomeSource.IDLE: '_earned_from_idle',
    IncomeSource.STEP: '_earned_from_steps',
    IncomeSource.MINIGAME: '_earned_from_mini_games',
}

# Fields copied by transaction rollback and clone().
_STATE_ATTRS = (
    '_total_ever_earned', '_total_spent', '_total_steps',
    '_earned_from_clicks', '_earned_from_idle', '_earned_from_steps', '_earned_from_mini_games',
    '_yields', '_per_step_yield', '_epoch', '_sequence',
)


class Ledger:
    """
    Currency ledger for one device.

    balance is derived from the two monotonic totals, so it cannot drift from
    them. Yields are derived from upgrade quantities by the income model and
    stored only through apply_yields().

    Thread Safety:
        Every mutator and transaction() acquire the ledger's RLock. Readers get
        consistent values through snapshot().

    Example:
        ledger = Ledger("phone", verbose=False)
        ledger.credit(Decimal("150"), IncomeSource.CLICK)
        with ledger.transaction():
            ledger.debit(Decimal("100"))
            ledger.add_upgrade("chromebook", 1)
    """

    DEFAULT_AUDIT_LIMIT = 1000

    def __init__(
        self,
        name: str = "ledger",
        per_step_yield: Decimal = DEFAULT_PER_STEP_YIELD,
        verbose: bool = True,
        audit_limit: int = DEFAULT_AUDIT_LIMIT,
        now: Callable[[], datetime] = datetime.now,
    ):
        """
        Create an empty ledger.

        Args:
            name: Ledger identifier (usually the device name)
            per_step_yield: Currency per awarded step
            verbose: Enable debug output (default: True)
            audit_limit: Maximum number of audit entries retained
            now: Wall-clock source for audit timestamps
        """
        self.name = name
        self.verbose = verbose
        self._now = now
        self._lock = threading.RLock()
        self._log: Deque[Entry] = deque(maxlen=audit_limit)
        self._total_ever_earned = ZERO
        self._total_spent = ZERO
        self._total_steps = 0
        self._earned_from_clicks = ZERO
        self._earned_from_idle = ZERO
        self._earned_from_steps = ZERO
        self._earned_from_mini_games = ZERO
        self._upgrade_quantities: Dict[str, int] = {}
        self._exchanged_counts: Dict[str, int] = {}
        self._unlocked: Set[str] = set()
        self._yields = Yields()
        self._per_step_yield = require_amount(per_step_yield, "per_step_yield")
        self._epoch = 0
        # Logical clock: bumped on every mutation, sent with remote snapshots
        self._sequence = 0

    # ========================================================================
    # READ-ONLY ACCESS
    # ========================================================================

    @property
    def lock(self) -> threading.RLock:
        """The single-writer lock. Hold it to read several fields consistently."""
        return self._lock

    @property
    def balance(self) -> Decimal:
        return self._total_ever_earned - self._total_spent

    @property
    def total_ever_earned(self) -> Decimal:
        return self._total_ever_earned

    @property
    def total_spent(self) -> Decimal:
        return self._total_spent

    @property
    def total_steps(self) -> int:
        return self._total_steps

    @property
    def per_click_yield(self) -> Decimal:
        return self._yields.per_click

    @property
    def per_second_yield(self) -> Decimal:
        return self._yields.per_second

    @property
    def mini_game_multiplier(self) -> Decimal:
        return self._yields.mini_game_multiplier

    @property
    def per_step_yield(self) -> Decimal:
        return self._per_step_yield

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def sequence(self) -> int:
        return self._sequence

    def earned_from(self, source: IncomeSource) -> Decimal:
        return getattr(self, _BUCKET_ATTRS[source])

    @property
    def upgrade_quantities(self) -> Dict[str, int]:
        """Copy of upgrade id -> owned count."""
        with self._lock:
            return dict(self._upgrade_quantities)

    @property
    def exchanged_counts(self) -> Dict[str, int]:
        """Copy of exchange tier id -> times exchanged."""
        with self._lock:
            return dict(self._exchanged_counts)

    @property
    def unlocked_mini_games(self) -> Set[str]:
        with self._lock:
            return set(self._unlocked)

    def is_unlocked(self, game_id: str) -> bool:
        return game_id in self._unlocked

    @property
    def entries(self) -> List[Entry]:
        """Audit log, oldest first (bounded)."""
        with self._lock:
            return list(self._log)

    def snapshot(self) -> LedgerSnapshot:
        """Return a frozen copy of the full ledger state."""
        with self._lock:
            return LedgerSnapshot(
                balance=self.balance,
                total_ever_earned=self._total_ever_earned,
                total_spent=self._total_spent,
                per_click_yield=self._yields.per_click,
                per_second_yield=self._yields.per_second,
                per_step_yield=self._per_step_yield,
                mini_game_multiplier=self._yields.mini_game_multiplier,
                total_steps=self._total_steps,
                earned_from_clicks=self._earned_from_clicks,
                earned_from_idle=self._earned_from_idle,
                earned_from_steps=self._earned_from_steps,
                earned_from_mini_games=self._earned_from_mini_games,
                epoch=self._epoch,
                sequence=self._sequence,
                _upgrades=_freeze_counts(self._upgrade_quantities),
                _exchanged=_freeze_counts(self._exchanged_counts),
                _unlocked=frozenset(self._unlocked),
            )

    def to_remote(self) -> RemoteSnapshot:
        """Snapshot projected onto the fields exchanged with the peer device."""
        return self.snapshot().to_remote(sender=self.name)

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def credit(self, amount: Any, source: IncomeSource) -> Decimal:
        """
        Add income to balance, total_ever_earned and the bucket for `source`.

        Zero is accepted and changes nothing.

        Returns:
            The credited amount as a Decimal

        Raises:
            InvalidAmount: If amount is negative, NaN, infinite or not a number
        """
        if not isinstance(source, IncomeSource):
            raise InvalidAmount(f"Unknown income source: {source!r}")
        value = require_amount(amount, "credit amount")
        if value == ZERO:
            return value
        with self._lock:
            attr = _BUCKET_ATTRS[source]
            setattr(self, attr, getattr(self, attr) + value)
            self._total_ever_earned += value
            self._record("credit", value, source=source)
        return value

    def debit(self, amount: Any, detail: str = "") -> Decimal:
        """
        Spend currency: subtract from balance and add to total_spent.

        Raises:
            InvalidAmount: If amount is negative, NaN, infinite or not a number
            InsufficientFunds: If amount exceeds the balance (state unchanged)
        """
        value = require_amount(amount, "debit amount")
        with self._lock:
            if value > self.balance:
                if self.verbose:
                    print(f"[Ledger] ✗ REJECTED debit {value}: balance {self.balance}")
                raise InsufficientFunds(
                    f"Cannot spend {normalize_decimal(value)}: "
                    f"balance is {normalize_decimal(self.balance)}"
                )
            if value == ZERO:
                return value
            self._total_spent += value
            self._record("debit", value, detail=detail)
        return value

    def record_steps(self, count: int) -> None:
        """Increase total_steps by an awarded (corrected) step count."""
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise InvalidAmount(f"Step count must be a non-negative int, got {count!r}")
        if count == 0:
            return
        with self._lock:
            self._total_steps += count
            self._record("steps", Decimal(count))

    def add_upgrade(self, upgrade_id: str, quantity: int) -> int:
        """Increase the owned count of an upgrade. Returns the new count."""
        self._require_count(quantity)
        with self._lock:
            new = self._upgrade_quantities.get(upgrade_id, 0) + quantity
            self._upgrade_quantities[upgrade_id] = new
            self._record("upgrade", Decimal(quantity), detail=upgrade_id)
            return new

    def add_exchange(self, tier_id: str, count: int = 1) -> int:
        """Increase the exchanged count of a tier. Returns the new count."""
        self._require_count(count)
        with self._lock:
            new = self._exchanged_counts.get(tier_id, 0) + count
            self._exchanged_counts[tier_id] = new
            self._record("exchange", Decimal(count), detail=tier_id)
            return new

    def unlock(self, game_id: str) -> bool:
        """Mark a mini-game unlocked. Returns False if it already was."""
        with self._lock:
            if game_id in self._unlocked:
                return False
            self._unlocked.add(game_id)
            self._record("unlock", ZERO, detail=game_id)
            return True

    def apply_yields(self, yields: Yields) -> None:
        """Store yields computed by the income model."""
        if yields.per_click < Decimal("1") or yields.per_second < ZERO or yields.mini_game_multiplier < Decimal("1"):
            raise InvalidAmount(f"Yields out of range: {yields}")
        with self._lock:
            self._yields = yields

    def apply_merged(self, merged: RemoteSnapshot) -> bool:
        """
        Overwrite the replicated fields with the result of a snapshot merge.

        Fields that are None in `merged` keep their local value. Yields are not
        touched; the caller recomputes them from the new upgrade quantities.

        Returns:
            True if any replicated field changed
        """
        with self._lock:
            before = self._replicated_state()
            if merged.epoch is not None:
                self._epoch = merged.epoch
            for attr, value in (
                ('_total_ever_earned', merged.total_ever_earned),
                ('_total_spent', merged.total_spent),
                ('_earned_from_clicks', merged.earned_from_clicks),
                ('_earned_from_idle', merged.earned_from_idle),
                ('_earned_from_steps', merged.earned_from_steps),
                ('_earned_from_mini_games', merged.earned_from_mini_games),
            ):
                if value is not None:
                    setattr(self, attr, value)
            if merged.total_steps is not None:
                self._total_steps = merged.total_steps
            self._upgrade_quantities = dict(merged.upgrade_quantities)
            self._exchanged_counts = dict(merged.exchanged_counts)
            self._unlocked = set(merged.unlocked_mini_games)
            if self._total_spent > self._total_ever_earned:
                self._total_spent = self._total_ever_earned
            changed = self._replicated_state() != before
            if changed:
                self._record("merge", self.balance, detail=merged.sender)
                if self.verbose:
                    print(f"[Ledger] merged state from {merged.sender or 'peer'}: "
                          f"balance {normalize_decimal(self.balance)}")
            return changed

    def reset(self) -> int:
        """
        Zero every field atomically and start a new epoch.

        Returns:
            The new epoch number
        """
        with self._lock:
            epoch = self._epoch + 1
            self._total_ever_earned = ZERO
            self._total_spent = ZERO
            self._total_steps = 0
            for attr in _BUCKET_ATTRS.values():
                setattr(self, attr, ZERO)
            self._upgrade_quantities = {}
            self._exchanged_counts = {}
            self._unlocked = set()
            self._yields = Yields()
            self._epoch = epoch
            self._record("reset", Decimal(epoch))
            if self.verbose:
                print(f"[Ledger] reset {self.name}: epoch {epoch}")
            return epoch

    @contextmanager
    def transaction(self) -> Iterator['Ledger']:
        """
        All-or-nothing block.

        Holds the ledger lock for the whole block. If the block raises, every
        field (and the audit log) is restored to its state on entry and the
        exception propagates.
        """
        with self._lock:
            saved = self._capture()
            try:
                yield self
            except BaseException:
                self._restore(saved)
                raise

    # ========================================================================
    # VERIFICATION
    # ========================================================================

    def verify_invariants(self) -> Dict[str, Any]:
        """
        Check the ledger's accounting invariants.

        Returns:
            Dict with keys:
            - 'valid': bool - True if every invariant holds
            - 'balance': Decimal - current balance
            - 'bucket_sum': Decimal - sum of the four earned_from buckets
            - 'violations': List[str] - description of each failed check

        Example:
            result = ledger.verify_invariants()
            assert result['valid'], result['violations']
        """
        with self._lock:
            violations = []
            balance = self.balance
            bucket_sum = sum((getattr(self, a) for a in _BUCKET_ATTRS.values()), ZERO)
            if balance < ZERO:
                violations.append(f"negative balance {balance}")
            if bucket_sum != self._total_ever_earned:
                violations.append(
                    f"earned buckets sum to {bucket_sum}, total_ever_earned is {self._total_ever_earned}"
                )
            for attr in ('_total_spent', *_BUCKET_ATTRS.values()):
                if getattr(self, attr) < ZERO:
                    violations.append(f"{attr.lstrip('_')} is negative")
            if self._total_steps < 0:
                violations.append("total_steps is negative")
            for label, counts in (("upgrade", self._upgrade_quantities), ("exchange", self._exchanged_counts)):
                for key, count in counts.items():
                    if count < 0:
                        violations.append(f"{label} count {key} is negative: {count}")
            if self._yields.per_click < Decimal("1"):
                violations.append(f"per_click_yield below 1: {self._yields.per_click}")
            return {
                'valid': not violations,
                'balance': balance,
                'bucket_sum': bucket_sum,
                'violations': violations,
            }

    # ========================================================================
    # SERIALIZATION
    # ========================================================================

    def to_state_dict(self) -> Dict[str, Any]:
        """
        Serialize the persisted state. Decimals become canonical strings.

        Yields are omitted: they are recomputed from upgrade quantities on load.
        """
        with self._lock:
            return {
                'name': self.name,
                'epoch': self._epoch,
                'sequence': self._sequence,
                'total_ever_earned': normalize_decimal(self._total_ever_earned),
                'total_spent': normalize_decimal(self._total_spent),
                'total_steps': self._total_steps,
                'earned_from_clicks': normalize_decimal(self._earned_from_clicks),
                'earned_from_idle': normalize_decimal(self._earned_from_idle),
                'earned_from_steps': normalize_decimal(self._earned_from_steps),
                'earned_from_mini_games': normalize_decimal(self._earned_from_mini_games),
                'per_step_yield': normalize_decimal(self._per_step_yield),
                'upgrade_quantities': dict(sorted(self._upgrade_quantities.items())),
                'exchanged_counts': dict(sorted(self._exchanged_counts.items())),
                'unlocked_mini_games': sorted(self._unlocked),
            }

    @classmethod
    def from_state_dict(cls, data: Dict[str, Any], verbose: bool = True, **kwargs) -> 'Ledger':
        """
        Rebuild a ledger from to_state_dict() output.

        Raises:
            InvalidAmount: If a numeric field is malformed or negative
            ValueError: If the totals are inconsistent (spent > earned)
        """
        ledger = cls(
            name=data.get('name', 'ledger'),
            per_step_yield=to_decimal(data.get('per_step_yield', DEFAULT_PER_STEP_YIELD)),
            verbose=verbose,
            **kwargs,
        )
        for key in ('total_ever_earned', 'total_spent', 'earned_from_clicks',
                    'earned_from_idle', 'earned_from_steps', 'earned_from_mini_games'):
            setattr(ledger, '_' + key, require_amount(data.get(key, "0"), key))
        ledger._total_steps = cls._load_count(data.get('total_steps', 0), 'total_steps')
        ledger._epoch = cls._load_count(data.get('epoch', 0), 'epoch')
        ledger._sequence = cls._load_count(data.get('sequence', 0), 'sequence')
        ledger._upgrade_quantities = {
            str(k): cls._load_count(v, k) for k, v in (data.get('upgrade_quantities') or {}).items()
        }
        ledger._exchanged_counts = {
            str(k): cls._load_count(v, k) for k, v in (data.get('exchanged_counts') or {}).items()
        }
        ledger._unlocked = {str(g) for g in data.get('unlocked_mini_games') or ()}
        if ledger._total_spent > ledger._total_ever_earned:
            raise ValueError(
                f"total_spent {ledger._total_spent} exceeds total_ever_earned {ledger._total_ever_earned}"
            )
        return ledger

    def clone(self) -> 'Ledger':
        """
        Create an independent copy (state, yields, audit log, configuration).
        """
        with self._lock:
            cloned = Ledger(
                name=self.name,
                per_step_yield=self._per_step_yield,
                verbose=self.verbose,
                audit_limit=self._log.maxlen,
                now=self._now,
            )
            cloned._restore(self._capture())
            return cloned

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _record(self, kind: str, amount: Decimal, source: Optional[IncomeSource] = None,
                detail: str = "") -> None:
        self._sequence += 1
        self._log.append(Entry(
            sequence=self._sequence,
            kind=kind,
            amount=amount,
            timestamp=self._now(),
            source=source,
            detail=detail,
        ))

    def _capture(self) -> tuple:
        return (
            tuple(getattr(self, attr) for attr in _STATE_ATTRS),
            dict(self._upgrade_quantities),
            dict(self._exchanged_counts),
            set(self._unlocked),
            list(self._log),
        )

    def _restore(self, saved: tuple) -> None:
        values, upgrades, exchanged, unlocked, log = saved
        for attr, value in zip(_STATE_ATTRS, values):
            setattr(self, attr, value)
        self._upgrade_quantities = dict(upgrades)
        self._exchanged_counts = dict(exchanged)
        self._unlocked = set(unlocked)
        self._log.clear()
        self._log.extend(log)

    def _replicated_state(self) -> tuple:
        return (
            self._epoch, self._total_ever_earned, self._total_spent, self._total_steps,
            self._earned_from_clicks, self._earned_from_idle,
            self._earned_from_steps, self._earned_from_mini_games,
            _freeze_counts(self._upgrade_quantities),
            _freeze_counts(self._exchanged_counts),
            frozenset(self._unlocked),
        )

    @staticmethod
    def _require_count(count: int) -> None:
        if isinstance(count, bool) or not isinstance(count, int) or count < 1:
            raise InvalidAmount(f"Count must be a positive int, got {count!r}")

    @staticmethod
    def _load_count(value: Any, what: str) -> int:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InvalidAmount(f"{what} must be a non-negative int, got {value!r}")
        return value

    def __repr__(self) -> str:
        return (f"Ledger({self.name!r}, balance={normalize_decimal(self.balance)}, "
                f"epoch={self._epoch}, seq={self._sequence})")
