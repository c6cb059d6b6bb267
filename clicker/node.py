"""
node.py - Device process: wiring, Intent API and lifecycle

A node owns one Ledger and the components that mutate it:

    TransactionGateway   priced intents (primary only)
    MotionDeduplicator   step income
    IdleAccrualClock     idle income
    Reconciler           peer sync
    SnapshotStore        durable snapshot

ClickerNode is the primary device (full Intent API). CompanionNode is the
wrist device: it taps and records steps, applying them to its own replica
immediately and queueing each one as a delta for the primary.

Intents never raise validation errors. Each returns an IntentResult carrying
the new snapshot, or the error with the unchanged snapshot.

Lifecycle:
    node = open_node(config, transport=...)   # load snapshot (or fall back to fresh)
    node.start()                              # resume idle clock, start tick + sync tasks
    node.suspend() / node.resume()            # app backgrounded / foregrounded
    node.shutdown()                           # cancel tasks, final save
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple
import threading

from .core import (
    IncomeSource, IntentResult, IntentStatus, LedgerSnapshot, MotionSample,
    ROLE_PRIMARY, ROLE_COMPANION,
    ClickerError, InsufficientFunds, InvalidAmount,
    UnknownUpgrade, UnknownExchangeTier, UnknownMiniGame,
    PersistenceFailure,
)
from .catalog import UPGRADES, EXCHANGE_TIERS, MINI_GAMES, Upgrade, ExchangeTier, MiniGame
from .config import ClickerConfig, companion_config
from .ledger import Ledger
from .gateway import TransactionGateway
from .motion import MotionDeduplicator, MotionSampler, MotionSource, Advisory
from .clock import IdleAccrualClock
from .reconcile import Reconciler, Outbox, PeerTransport, LoopbackTransport
from .persistence import SnapshotStore
from .scheduling import PeriodicTask
from .achievements import evaluate_achievements, progress_map, AchievementProgress


# Errors turned into REJECTED intents
_REJECTABLE = (InsufficientFunds, InvalidAmount, UnknownUpgrade, UnknownExchangeTier, UnknownMiniGame)


class BaseNode:
    """
    Shared wiring and lifecycle for both device roles.

    Subclasses set `role` and add their intents.
    """

    role = ROLE_PRIMARY
    accrues_idle = True

    def __init__(
        self,
        config: Optional[ClickerConfig] = None,
        transport: Optional[PeerTransport] = None,
        motion_source: Optional[MotionSource] = None,
        store: Optional[SnapshotStore] = None,
        now: Callable[[], datetime] = datetime.now,
        upgrades: Mapping[str, Upgrade] = UPGRADES,
        exchange_tiers: Mapping[str, ExchangeTier] = EXCHANGE_TIERS,
        mini_games: Mapping[str, MiniGame] = MINI_GAMES,
    ):
        self.config = config or self.default_config()
        self.name = self.config.device.name
        self.verbose = self.config.device.verbose
        self.now = now
        self.upgrades = upgrades
        self.exchange_tiers = exchange_tiers
        self.mini_games = mini_games
        self.transport = transport
        self.motion_source = motion_source
        if store is None and self.config.device.snapshot_path:
            store = SnapshotStore(self.config.device.snapshot_path)
        self.store = store
        self.outbox: Optional[Outbox] = Outbox() if self.role == ROLE_COMPANION else None
        self.achievement_progress: Dict[str, int] = {}
        self.dirty = False
        self.load_error: Optional[PersistenceFailure] = None
        self._tick_task: Optional[PeriodicTask] = None
        self._sync_task: Optional[PeriodicTask] = None
        self._ticks = 0
        self._save_lock = threading.Lock()
        self._wire(Ledger(
            name=self.name,
            per_step_yield=self.config.economy.per_step_yield,
            verbose=self.verbose,
            now=now,
        ))

    @classmethod
    def default_config(cls) -> ClickerConfig:
        return ClickerConfig()

    def _wire(self, ledger: Ledger) -> None:
        economy = self.config.economy
        self.ledger = ledger
        self.gateway = TransactionGateway(
            ledger, self.upgrades, self.exchange_tiers, self.mini_games,
            difficulty=economy.difficulty, verbose=self.verbose,
        )
        self.deduplicator = MotionDeduplicator(ledger, economy.step_correction_factor, verbose=self.verbose)
        self.clock = IdleAccrualClock(ledger, now=self.now, verbose=self.verbose)
        self.reconciler = Reconciler(
            ledger, self.transport, name=self.name, outbox=self.outbox,
            upgrades=self.upgrades, difficulty=economy.difficulty, verbose=self.verbose,
            exchange_tiers=self.exchange_tiers, mini_games=self.mini_games,
        )
        self.sampler = (
            MotionSampler(self.motion_source, self.deduplicator, verbose=self.verbose)
            if self.motion_source is not None else None
        )
        self.gateway.recompute_yields()

    # ========================================================================
    # SNAPSHOT QUERY API
    # ========================================================================

    def snapshot(self) -> LedgerSnapshot:
        return self.ledger.snapshot()

    @property
    def advisory(self) -> Optional[Advisory]:
        """Pending sensor advisory, if any."""
        return self.sampler.advisory if self.sampler is not None else None

    def achievements(self) -> Dict[str, AchievementProgress]:
        """Evaluate achievements against the current snapshot; progress never decreases."""
        results = evaluate_achievements(self.snapshot(), self.achievement_progress)
        progress = progress_map(results)
        if progress != self.achievement_progress:
            # persisted with the next tick
            self.achievement_progress = progress
            self.dirty = True
        return results

    # ========================================================================
    # INTENTS
    # ========================================================================

    def tap(self) -> IntentResult:
        """Credit one tap at the current per-click yield."""
        return self._intent(self._tap)

    def record_motion_samples(self, samples: Iterable[MotionSample]) -> IntentResult:
        """Feed sensor samples through the deduplicator. value = awarded steps."""
        return self._intent(self.deduplicator.process, list(samples))

    def _tap(self) -> Decimal:
        with self.ledger.transaction():
            return self.ledger.credit(self.ledger.per_click_yield, IncomeSource.CLICK)

    def _intent(self, action: Callable[..., Any], *args: Any) -> IntentResult:
        try:
            value = action(*args)
        except _REJECTABLE as e:
            if self.verbose:
                print(f"[Node] ✗ REJECTED {getattr(action, '__name__', 'intent')}: {e}")
            return IntentResult(IntentStatus.REJECTED, self.snapshot(), error=e)
        self.save()
        return IntentResult(IntentStatus.APPLIED, self.snapshot(), value=value)

    # ========================================================================
    # PERIODIC WORK
    # ========================================================================

    def tick(self, now: Optional[datetime] = None) -> None:
        """One foreground tick: idle accrual, sensor poll, periodic save."""
        if self.accrues_idle:
            self.clock.tick(now)
        if self.sampler is not None:
            self.sampler.poll()
        self._ticks += 1
        if self.dirty or self._ticks % self.config.timing.save_every_ticks == 0:
            self.save()

    def sync(self, force: bool = False) -> bool:
        """One sync attempt with the peer. Saves after a completed exchange."""
        synced = self.reconciler.sync(force=force)
        if synced:
            self.save()
        return synced

    def handle_message(self, message: Mapping[str, str]) -> Optional[Dict[str, str]]:
        """Receiver side of the peer link: merge, persist, reply."""
        reply = self.reconciler.handle_message(message)
        self.save()
        return reply

    def connect(self, transport: Optional[PeerTransport]) -> None:
        self.transport = transport
        self.reconciler.transport = transport

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    def open(self) -> 'BaseNode':
        """
        Load the durable snapshot, if any.

        Raises:
            PersistenceFailure: If the snapshot exists but cannot be read
        """
        if self.store is None:
            return self
        data = self.store.load()
        if data is None:
            if self.verbose:
                print(f"[Node] {self.name}: no snapshot, starting fresh")
            return self
        self._load(data)
        if self.verbose:
            print(f"[Node] {self.name}: loaded snapshot, balance {self.ledger.balance}")
        return self

    def start(self, run_tasks: bool = True) -> None:
        """Resume idle accrual and start the tick and sync tasks."""
        if self.accrues_idle:
            self.clock.resume()
        if run_tasks:
            self._start_tasks()

    def resume(self, now: Optional[datetime] = None, run_tasks: bool = True) -> Decimal:
        """App returned to the foreground: credit the idle gap, restart tasks, try a sync."""
        credited = self.clock.resume(now) if self.accrues_idle else Decimal("0")
        if run_tasks:
            self._start_tasks()
        self.sync()
        self.save()
        return credited

    def suspend(self, now: Optional[datetime] = None) -> None:
        """App going to the background: stop tasks, accrue up to now, save."""
        self._cancel_tasks()
        if self.accrues_idle:
            self.clock.suspend(now)
        self.save()

    def shutdown(self) -> None:
        self.suspend()
        if self.verbose:
            print(f"[Node] {self.name}: shut down")

    @property
    def running(self) -> bool:
        return self._tick_task is not None and self._tick_task.is_alive()

    def _start_tasks(self) -> None:
        self._cancel_tasks()
        timing = self.config.timing
        self._tick_task = PeriodicTask(f"{self.name}-tick", timing.tick_interval, self.tick, verbose=self.verbose)
        self._sync_task = PeriodicTask(f"{self.name}-sync", timing.sync_interval, self.sync, verbose=self.verbose)
        self._tick_task.start()
        self._sync_task.start()

    def _cancel_tasks(self) -> None:
        for task in (self._tick_task, self._sync_task):
            if task is not None:
                task.cancel()
        self._tick_task = None
        self._sync_task = None

    # ========================================================================
    # PERSISTENCE
    # ========================================================================

    def state_document(self) -> Dict[str, Any]:
        """The durable snapshot document, read under the ledger lock."""
        with self.ledger.lock:
            return {
                'ledger': self.ledger.to_state_dict(),
                'motion': self.deduplicator.to_state_dict(),
                'outbox': self.outbox.to_list() if self.outbox is not None else [],
                'seen_deltas': self.reconciler.seen_delta_ids,
                'clock': self.clock.to_state_dict(),
                'achievements': dict(self.achievement_progress),
            }

    def save(self) -> bool:
        """
        Write the durable snapshot.

        Saves from the intent, tick and sync threads are serialized: each
        document is built and written under the save lock, so a newer document
        is never overwritten by an older one.

        A write failure keeps the in-memory state authoritative, marks the node
        dirty and is retried on the next batch. Returns True if written.
        """
        if self.store is None:
            return True
        with self._save_lock:
            try:
                self.store.save(self.state_document())
            except PersistenceFailure as e:
                self.dirty = True
                if self.verbose:
                    print(f"[Node] ⚠️  save failed, will retry: {e}")
                return False
            self.dirty = False
        return True

    def _load(self, data: Mapping[str, Any]) -> None:
        try:
            ledger = Ledger.from_state_dict(
                data['ledger'], verbose=self.verbose, now=self.now,
            )
            outbox = Outbox.from_list(data.get('outbox') or []) if self.role == ROLE_COMPANION else None
            progress = {str(k): int(v) for k, v in (data.get('achievements') or {}).items()}
            seen = [str(d) for d in data.get('seen_deltas') or ()]
        except PersistenceFailure:
            raise
        except (KeyError, TypeError, ValueError, AttributeError, ClickerError) as e:
            raise PersistenceFailure(f"Corrupt snapshot: {e!r}") from e

        previous_ledger, previous_outbox = self.ledger, self.outbox
        try:
            self.outbox = outbox
            self._wire(ledger)
            self.deduplicator.load_state_dict(data.get('motion') or {})
            self.clock.load_state_dict(data.get('clock') or {})
        except (PersistenceFailure, UnknownUpgrade) as e:
            self.outbox = previous_outbox
            self._wire(previous_ledger)
            if isinstance(e, PersistenceFailure):
                raise
            raise PersistenceFailure(f"Corrupt snapshot: {e}") from e
        self.reconciler.load_seen_deltas(seen)
        self.achievement_progress = progress


class ClickerNode(BaseNode):
    """
    Primary device.

    Example:
        node = ClickerNode(ClickerConfig(device=DeviceConfig(name="phone")))
        node.tap()
        result = node.purchase("chromebook", 1)
        if not result.ok:
            print(result.error)
    """

    role = ROLE_PRIMARY

    def purchase(self, upgrade_id: str, quantity: int = 1) -> IntentResult:
        return self._intent(self.gateway.purchase, upgrade_id, quantity)

    def exchange(self, tier_id: str) -> IntentResult:
        return self._intent(self.gateway.exchange, tier_id)

    def record_mini_game_result(self, reward: Any, multiplier: Optional[Any] = None) -> IntentResult:
        """Credit a mini-game payout; the multiplier defaults to the derived bonus multiplier."""
        return self._intent(self.gateway.apply_mini_game_reward, reward, multiplier)

    def unlock_mini_game(self, game_id: str) -> IntentResult:
        return self._intent(self.gateway.unlock_mini_game, game_id)

    def reset(self) -> IntentResult:
        """Zero the ledger and start a new epoch; the peer adopts it on next sync."""
        return self._intent(self._reset)

    def _reset(self) -> int:
        with self.ledger.transaction():
            epoch = self.ledger.reset()
            self.gateway.recompute_yields()
            self.clock.rebase()
        return epoch


class CompanionNode(BaseNode):
    """
    Companion (wrist) device.

    Taps and steps are applied to the local replica at once and queued as
    deltas; sync() flushes the queue in order when the primary is reachable.
    """

    role = ROLE_COMPANION
    # Idle income is accrued by the primary only
    accrues_idle = False

    @classmethod
    def default_config(cls) -> ClickerConfig:
        return companion_config()

    def _wire(self, ledger: Ledger) -> None:
        super()._wire(ledger)
        self.deduplicator.on_award = self._queue_steps

    def _tap(self) -> Decimal:
        with self.ledger.transaction():
            amount = self.ledger.credit(self.ledger.per_click_yield, IncomeSource.CLICK)
            self.outbox.enqueue(IncomeSource.CLICK, amount, epoch=self.ledger.epoch)
        return amount

    def _queue_steps(self, steps: int, amount: Decimal) -> None:
        self.outbox.enqueue(IncomeSource.STEP, amount, steps=steps, epoch=self.ledger.epoch)

    @property
    def pending_deltas(self) -> int:
        return len(self.outbox)


def open_node(
    config: Optional[ClickerConfig] = None,
    fallback_to_default: bool = True,
    **kwargs: Any,
) -> BaseNode:
    """
    Build the node for config.device.role and load its snapshot.

    Args:
        config: Device configuration (default: a primary device)
        fallback_to_default: On a corrupt snapshot, start with a fresh ledger
                             instead of raising; the error is kept in node.load_error
        **kwargs: Passed to the node constructor (transport, motion_source, store, now)

    Raises:
        PersistenceFailure: Corrupt snapshot and fallback_to_default is False
    """
    config = config or ClickerConfig()
    cls = CompanionNode if config.device.role == ROLE_COMPANION else ClickerNode
    node = cls(config, **kwargs)
    try:
        node.open()
    except PersistenceFailure as e:
        if not fallback_to_default:
            raise
        node.load_error = e
        if node.verbose:
            print(f"[Node] ⚠️  {e}; starting with a fresh ledger")
    return node


def pair_nodes(a: BaseNode, b: BaseNode) -> Tuple[LoopbackTransport, LoopbackTransport]:
    """Connect two in-process nodes. Returns (a's transport to b, b's transport to a)."""
    to_b = LoopbackTransport(b.handle_message)
    to_a = LoopbackTransport(a.handle_message)
    a.connect(to_b)
    b.connect(to_a)
    return to_b, to_a
