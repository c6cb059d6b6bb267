"""
reconcile.py - Cross-device reconciliation

Two replicas of the same ledger (primary and companion) mutate independently
and converge by exchanging snapshots over an unreliable point-to-point link.

Merge policy (merge_snapshots):
    - Equal epochs: field-wise max of every monotonic total and every
      count-map entry (union of keys); unlocked games are unioned.
    - Different epochs: the higher epoch wins wholesale, so a reset is never
      undone by a stale peer.
    - balance = total_ever_earned - total_spent; yields are not merged, each
      side recomputes them from the merged upgrade quantities.
    The merge is commutative, associative and idempotent.

Max-merge alone would lose concurrent increments (both sides tapping from the
same base). The companion therefore sends its own taps and steps as deltas
with unique ids; the primary applies each delta once. Until acknowledged, a
delta's contribution is subtracted from every snapshot the companion shares,
so the primary never counts it twice.

Wire format (schema version 1): flat Dict[str, str].
    v, kind (snapshot | delta | reply), sender, sequence, epoch,
    balance, totalEverEarned, totalSpent, perClickYield, perSecondYield,
    perStepYield, totalSteps, earnedFromClicks, earnedFromIdle,
    earnedFromSteps, earnedFromMiniGames,
    upgrade.<id>, exchanged.<id>, unlocked.<id>
    delta only: deltaId, deltaKind, amount, steps
    reply only: ack (the acknowledged deltaId)
Unknown keys are ignored. Missing keys decode to None ("no information").
"""

from __future__ import annotations
from collections import OrderedDict
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import (
    Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol,
    Tuple, runtime_checkable,
)
import threading
import uuid

from .core import (
    IncomeSource, RemoteSnapshot,
    ZERO,
    ClickerError, InvalidAmount, PeerUnreachable, PersistenceFailure,
    normalize_decimal, require_amount, _freeze_counts,
)
from .catalog import (
    UPGRADES, EXCHANGE_TIERS, MINI_GAMES, Upgrade, ExchangeTier, MiniGame, Difficulty,
)
from .income import compute_yields
from .ledger import Ledger


SCHEMA_VERSION = 1

KIND_SNAPSHOT = "snapshot"
KIND_DELTA = "delta"
KIND_REPLY = "reply"

# RemoteSnapshot attribute -> wire key
_DECIMAL_KEYS = (
    ('balance', 'balance'),
    ('total_ever_earned', 'totalEverEarned'),
    ('total_spent', 'totalSpent'),
    ('per_click_yield', 'perClickYield'),
    ('per_second_yield', 'perSecondYield'),
    ('per_step_yield', 'perStepYield'),
    ('earned_from_clicks', 'earnedFromClicks'),
    ('earned_from_idle', 'earnedFromIdle'),
    ('earned_from_steps', 'earnedFromSteps'),
    ('earned_from_mini_games', 'earnedFromMiniGames'),
)

# Monotonic decimal fields merged by max
_MONOTONIC_DECIMALS = (
    'total_ever_earned', 'total_spent',
    'earned_from_clicks', 'earned_from_idle', 'earned_from_steps', 'earned_from_mini_games',
)

_BUCKET_FIELDS = {
    IncomeSource.CLICK: 'earned_from_clicks',
    IncomeSource.IDLE: 'earned_from_idle',
    IncomeSource.STEP: 'earned_from_steps',
    IncomeSource.MINIGAME: 'earned_from_mini_games',
}

_UPGRADE_PREFIX = "upgrade."
_EXCHANGED_PREFIX = "exchanged."
_UNLOCKED_PREFIX = "unlocked."

# Upper bound for counts, sequences and epochs on the wire
MAX_WIRE_COUNT = 10 ** 18


# ============================================================================
# WIRE CODEC
# ============================================================================

def _parse_int(value: str, key: str) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise InvalidAmount(f"Wire field {key} is not an integer: {value!r}") from None
    if parsed < 0:
        raise InvalidAmount(f"Wire field {key} is negative: {parsed}")
    if parsed > MAX_WIRE_COUNT:
        raise InvalidAmount(f"Wire field {key} is out of range: {parsed}")
    return parsed


def encode_snapshot(snapshot: RemoteSnapshot, kind: str = KIND_SNAPSHOT) -> Dict[str, str]:
    """Encode a snapshot as a flat string map. None fields are omitted."""
    message = {
        'v': str(SCHEMA_VERSION),
        'kind': kind,
        'sender': snapshot.sender,
        'sequence': str(snapshot.sequence),
    }
    if snapshot.epoch is not None:
        message['epoch'] = str(snapshot.epoch)
    for attr, key in _DECIMAL_KEYS:
        value = getattr(snapshot, attr)
        if value is not None:
            message[key] = normalize_decimal(value)
    if snapshot.total_steps is not None:
        message['totalSteps'] = str(snapshot.total_steps)
    for upgrade_id, count in snapshot._upgrades:
        message[_UPGRADE_PREFIX + upgrade_id] = str(count)
    for tier_id, count in snapshot._exchanged:
        message[_EXCHANGED_PREFIX + tier_id] = str(count)
    for game_id in sorted(snapshot.unlocked_mini_games):
        message[_UNLOCKED_PREFIX + game_id] = "1"
    return message


def decode_snapshot(message: Mapping[str, str]) -> RemoteSnapshot:
    """
    Decode a snapshot (or the snapshot part of a delta/reply).

    Missing keys become None; unknown keys are ignored.

    Raises:
        InvalidAmount: If a present field is malformed or negative
    """
    fields: Dict[str, Any] = {}
    for attr, key in _DECIMAL_KEYS:
        if key in message:
            fields[attr] = require_amount(message[key], key)
    if 'totalSteps' in message:
        fields['total_steps'] = _parse_int(message['totalSteps'], 'totalSteps')
    if 'epoch' in message:
        fields['epoch'] = _parse_int(message['epoch'], 'epoch')

    upgrades: Dict[str, int] = {}
    exchanged: Dict[str, int] = {}
    unlocked = set()
    for key, value in message.items():
        if key.startswith(_UPGRADE_PREFIX) and len(key) > len(_UPGRADE_PREFIX):
            upgrades[key[len(_UPGRADE_PREFIX):]] = _parse_int(value, key)
        elif key.startswith(_EXCHANGED_PREFIX) and len(key) > len(_EXCHANGED_PREFIX):
            exchanged[key[len(_EXCHANGED_PREFIX):]] = _parse_int(value, key)
        elif key.startswith(_UNLOCKED_PREFIX) and len(key) > len(_UNLOCKED_PREFIX):
            if value not in ("0", ""):
                unlocked.add(key[len(_UNLOCKED_PREFIX):])

    return RemoteSnapshot(
        sender=message.get('sender', ""),
        sequence=_parse_int(message['sequence'], 'sequence') if 'sequence' in message else 0,
        _upgrades=_freeze_counts(upgrades),
        _exchanged=_freeze_counts(exchanged),
        _unlocked=frozenset(unlocked),
        **fields,
    )


@dataclass(frozen=True, slots=True)
class PendingDelta:
    """
    Companion-originated increment waiting for acknowledgement.

    Attributes:
        delta_id: Unique id; the receiver applies each id at most once.
        source: Income bucket credited.
        amount: Currency credited.
        steps: Awarded steps (step deltas only).
        epoch: Reset generation the delta was produced in.
    """
    delta_id: str
    source: IncomeSource
    amount: Decimal
    steps: int = 0
    epoch: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'delta_id': self.delta_id,
            'source': self.source.value,
            'amount': normalize_decimal(self.amount),
            'steps': self.steps,
            'epoch': self.epoch,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'PendingDelta':
        return cls(
            delta_id=str(data['delta_id']),
            source=IncomeSource(data['source']),
            amount=require_amount(data['amount'], 'amount'),
            steps=int(data.get('steps', 0)),
            epoch=int(data.get('epoch', 0)),
        )


def encode_delta(delta: PendingDelta, sender: str = "", sequence: int = 0) -> Dict[str, str]:
    return {
        'v': str(SCHEMA_VERSION),
        'kind': KIND_DELTA,
        'sender': sender,
        'sequence': str(sequence),
        'epoch': str(delta.epoch),
        'deltaId': delta.delta_id,
        'deltaKind': delta.source.value,
        'amount': normalize_decimal(delta.amount),
        'steps': str(delta.steps),
    }


def decode_delta(message: Mapping[str, str]) -> PendingDelta:
    """
    Raises:
        InvalidAmount: If a required delta field is missing or malformed
    """
    try:
        delta_id = message['deltaId']
        source = IncomeSource(message['deltaKind'])
        amount = require_amount(message['amount'], 'amount')
    except KeyError as e:
        raise InvalidAmount(f"Delta message missing {e.args[0]}") from None
    except ValueError:
        raise InvalidAmount(f"Unknown deltaKind {message.get('deltaKind')!r}") from None
    return PendingDelta(
        delta_id=delta_id,
        source=source,
        amount=amount,
        steps=_parse_int(message.get('steps', "0"), 'steps'),
        epoch=_parse_int(message.get('epoch', "0"), 'epoch'),
    )


# ============================================================================
# MERGE
# ============================================================================

def _max_opt(a, b):
    if a is None:
        return b
    if b is None:
        return a
    return a if a >= b else b


def _merge_counts(a: Tuple[Tuple[str, int], ...], b: Tuple[Tuple[str, int], ...]) -> Tuple[Tuple[str, int], ...]:
    merged = dict(a)
    for key, count in b:
        if count > merged.get(key, -1):
            merged[key] = count
    return _freeze_counts(merged)


def _normalized(s: RemoteSnapshot) -> RemoteSnapshot:
    """Strip per-sender and derived fields; recompute balance."""
    balance = None
    if s.total_ever_earned is not None and s.total_spent is not None:
        balance = max(s.total_ever_earned - s.total_spent, ZERO)
    return replace(
        s, sender="", balance=balance,
        per_click_yield=None, per_second_yield=None, per_step_yield=None,
    )


def merge_snapshots(a: RemoteSnapshot, b: RemoteSnapshot) -> RemoteSnapshot:
    """
    Join two snapshots of the same logical ledger.

    Missing epochs compare as 0. total_ever_earned is at least the sum of the
    merged buckets. The result carries no sender and no yields.
    """
    epoch_a = a.epoch or 0
    epoch_b = b.epoch or 0
    if epoch_a != epoch_b:
        winner = a if epoch_a > epoch_b else b
        return _normalized(replace(winner, sequence=max(a.sequence, b.sequence)))

    fields = {name: _max_opt(getattr(a, name), getattr(b, name)) for name in _MONOTONIC_DECIMALS}
    buckets = [fields[attr] for attr in _BUCKET_FIELDS.values()]
    if fields['total_ever_earned'] is not None and None not in buckets:
        # total must cover its buckets after they are maxed independently
        fields['total_ever_earned'] = max(fields['total_ever_earned'], sum(buckets, ZERO))
    merged = RemoteSnapshot(
        sender="",
        sequence=max(a.sequence, b.sequence),
        epoch=_max_opt(a.epoch, b.epoch),
        total_steps=_max_opt(a.total_steps, b.total_steps),
        _upgrades=_merge_counts(a._upgrades, b._upgrades),
        _exchanged=_merge_counts(a._exchanged, b._exchanged),
        _unlocked=a._unlocked | b._unlocked,
        **fields,
    )
    return _normalized(merged)


# ============================================================================
# TRANSPORT
# ============================================================================

@runtime_checkable
class PeerTransport(Protocol):
    """
    Point-to-point link to the peer device.

    send() delivers one message and returns the peer's reply (or None). It
    raises PeerUnreachable when the peer cannot be reached.
    """

    def is_reachable(self) -> bool:
        ...

    def send(self, message: Dict[str, str]) -> Optional[Dict[str, str]]:
        ...


class LoopbackTransport:
    """
    In-process transport delivering to a handler (usually the peer's
    Reconciler.handle_message).

    Attributes:
        reachable: Toggle to simulate connectivity loss.
        drop_replies: Deliver messages but lose the reply (raises PeerUnreachable
                      after delivery), simulating a lost acknowledgement.
        sent: Every message delivered to the peer, in order.
    """

    def __init__(self, handler: Optional[Callable[[Dict[str, str]], Optional[Dict[str, str]]]] = None,
                 reachable: bool = True):
        self.handler = handler
        self.reachable = reachable
        self.drop_replies = False
        self.sent: List[Dict[str, str]] = []

    def connect(self, handler: Callable[[Dict[str, str]], Optional[Dict[str, str]]]) -> None:
        self.handler = handler

    def is_reachable(self) -> bool:
        return self.reachable and self.handler is not None

    def send(self, message: Dict[str, str]) -> Optional[Dict[str, str]]:
        if not self.is_reachable():
            raise PeerUnreachable("Peer is not reachable")
        delivered = dict(message)
        self.sent.append(delivered)
        reply = self.handler(delivered)
        if self.drop_replies:
            raise PeerUnreachable("Reply lost")
        return dict(reply) if reply is not None else None


def loopback_pair(a: 'Reconciler', b: 'Reconciler') -> Tuple[LoopbackTransport, LoopbackTransport]:
    """Wire two reconcilers to each other. Returns (a's transport, b's transport)."""
    to_b = LoopbackTransport(b.handle_message)
    to_a = LoopbackTransport(a.handle_message)
    a.transport = to_b
    b.transport = to_a
    return to_b, to_a


# ============================================================================
# OUTBOX
# ============================================================================

class Outbox:
    """
    Ordered queue of companion deltas awaiting acknowledgement.

    Entries leave the queue only through acknowledge() or discard_before_epoch().
    Every access holds the outbox lock: acknowledge() runs on the sync thread
    while totals() may run on the peer's handler thread.
    """

    def __init__(self, deltas: Optional[Iterable[PendingDelta]] = None):
        self._lock = threading.Lock()
        self._deltas: "OrderedDict[str, PendingDelta]" = OrderedDict(
            (d.delta_id, d) for d in deltas or ()
        )

    def enqueue(self, source: IncomeSource, amount: Decimal, steps: int = 0, epoch: int = 0) -> PendingDelta:
        delta = PendingDelta(
            delta_id=uuid.uuid4().hex,
            source=source,
            amount=amount,
            steps=steps,
            epoch=epoch,
        )
        with self._lock:
            self._deltas[delta.delta_id] = delta
        return delta

    def pending(self) -> List[PendingDelta]:
        with self._lock:
            return list(self._deltas.values())

    def acknowledge(self, delta_id: str) -> bool:
        with self._lock:
            return self._deltas.pop(delta_id, None) is not None

    def discard_before_epoch(self, epoch: int) -> int:
        """Drop deltas from reset generations older than `epoch`."""
        with self._lock:
            stale = [d.delta_id for d in self._deltas.values() if d.epoch < epoch]
            for delta_id in stale:
                del self._deltas[delta_id]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._deltas.clear()

    def totals(self) -> Tuple[Dict[IncomeSource, Decimal], int]:
        """Sum of pending amounts per source, and pending steps."""
        amounts: Dict[IncomeSource, Decimal] = {}
        steps = 0
        for delta in self.pending():
            amounts[delta.source] = amounts.get(delta.source, ZERO) + delta.amount
            steps += delta.steps
        return amounts, steps

    def to_list(self) -> List[Dict[str, Any]]:
        return [d.to_dict() for d in self.pending()]

    @classmethod
    def from_list(cls, items: Iterable[Mapping[str, Any]]) -> 'Outbox':
        try:
            return cls(PendingDelta.from_dict(item) for item in items)
        except (KeyError, TypeError, ValueError, ClickerError) as e:
            raise PersistenceFailure(f"Corrupt outbox: {e}") from e

    def __len__(self) -> int:
        return len(self._deltas)

    def __bool__(self) -> bool:
        return bool(self._deltas)


# ============================================================================
# RECONCILER
# ============================================================================

class Reconciler:
    """
    Keeps one device's ledger converged with its peer.

    Sender side: sync() flushes queued deltas, then sends the local snapshot and
    merges the reply. Receiver side: handle_message() merges snapshots, applies
    deltas once, and replies with the merged snapshot.

    Network sends never hold the ledger lock: the outgoing snapshot is read
    under the lock, and replies are merged under the lock.

    Example:
        phone = Reconciler(phone_ledger, name="phone", verbose=False)
        watch = Reconciler(watch_ledger, name="watch", outbox=Outbox(), verbose=False)
        loopback_pair(phone, watch)
        watch.sync()
    """

    SEEN_DELTA_LIMIT = 10000

    def __init__(
        self,
        ledger: Ledger,
        transport: Optional[PeerTransport] = None,
        name: Optional[str] = None,
        outbox: Optional[Outbox] = None,
        upgrades: Mapping[str, Upgrade] = UPGRADES,
        difficulty: Difficulty = Difficulty.NORMAL,
        verbose: bool = True,
        exchange_tiers: Mapping[str, ExchangeTier] = EXCHANGE_TIERS,
        mini_games: Mapping[str, MiniGame] = MINI_GAMES,
    ):
        self.ledger = ledger
        self.transport = transport
        self.name = name or ledger.name
        self.outbox = outbox
        self.upgrades = upgrades
        self.exchange_tiers = exchange_tiers
        self.mini_games = mini_games
        self.difficulty = difficulty
        self.verbose = verbose
        self.consecutive_failures = 0
        self.last_synced_sequence: Optional[int] = None
        self._seen_deltas: "OrderedDict[str, None]" = OrderedDict()

    # ------------------------------------------------------------------
    # Local state
    # ------------------------------------------------------------------

    def local_snapshot(self) -> RemoteSnapshot:
        """
        Snapshot to share with the peer.

        Contributions of unacknowledged deltas are subtracted so the peer
        cannot count them both from the snapshot and from the delta.
        """
        with self.ledger.lock:
            snap = self.ledger.to_remote()
            if not self.outbox:
                return replace(snap, sender=self.name)
            amounts, steps = self.outbox.totals()
        pending_total = sum(amounts.values(), ZERO)
        fields = {}
        for source, attr in _BUCKET_FIELDS.items():
            fields[attr] = max(getattr(snap, attr) - amounts.get(source, ZERO), ZERO)
        earned = max(snap.total_ever_earned - pending_total, ZERO)
        spent = min(snap.total_spent, earned)
        return replace(
            snap,
            sender=self.name,
            total_ever_earned=earned,
            total_spent=spent,
            balance=earned - spent,
            total_steps=max(snap.total_steps - steps, 0),
            **fields,
        )

    def has_local_changes(self) -> bool:
        return self.ledger.sequence != self.last_synced_sequence or bool(self.outbox)

    @property
    def seen_delta_ids(self) -> List[str]:
        return list(self._seen_deltas)

    def load_seen_deltas(self, delta_ids: Iterable[str]) -> None:
        for delta_id in delta_ids:
            self._remember_delta(str(delta_id))

    # ------------------------------------------------------------------
    # Merge / apply
    # ------------------------------------------------------------------

    def apply_remote(self, remote: RemoteSnapshot) -> bool:
        """
        Merge a peer snapshot into the local ledger and recompute yields.

        Upgrade, exchange-tier and mini-game ids missing from the local
        catalogs are ignored.

        Returns:
            True if the local ledger changed
        """
        remote = self._known_ids_only(remote)
        with self.ledger.transaction():
            local = self.ledger.to_remote()
            merged = merge_snapshots(local, remote)
            if self.outbox and (merged.epoch or 0) > self.ledger.epoch:
                dropped = self.outbox.discard_before_epoch(merged.epoch)
                if dropped and self.verbose:
                    print(f"[Reconciler] dropped {dropped} deltas from before reset")
            changed = self.ledger.apply_merged(merged)
            if changed:
                self.ledger.apply_yields(
                    compute_yields(self.ledger.upgrade_quantities, self.upgrades, self.difficulty)
                )
        return changed

    def apply_delta(self, delta: PendingDelta) -> bool:
        """
        Apply a peer delta at most once.

        Deltas from an older epoch than the local ledger are acknowledged but
        not applied. Returns True if the delta was applied now.
        """
        with self.ledger.transaction():
            if delta.delta_id in self._seen_deltas:
                if self.verbose:
                    print(f"[Reconciler] ALREADY_APPLIED delta {delta.delta_id}")
                return False
            if delta.epoch < self.ledger.epoch:
                self._remember_delta(delta.delta_id)
                if self.verbose:
                    print(f"[Reconciler] discarded stale delta {delta.delta_id} (epoch {delta.epoch})")
                return False
            if delta.steps:
                self.ledger.record_steps(delta.steps)
            self.ledger.credit(delta.amount, delta.source)
            self._remember_delta(delta.delta_id)
        return True

    def _known_ids_only(self, remote: RemoteSnapshot) -> RemoteSnapshot:
        unknown = (
            [uid for uid, _ in remote._upgrades if uid not in self.upgrades]
            + [tid for tid, _ in remote._exchanged if tid not in self.exchange_tiers]
            + sorted(gid for gid in remote._unlocked if gid not in self.mini_games)
        )
        if not unknown:
            return remote
        if self.verbose:
            print(f"[Reconciler] ⚠️  ignoring unknown ids from {remote.sender or 'peer'}: {unknown}")
        return replace(
            remote,
            _upgrades=tuple((uid, q) for uid, q in remote._upgrades if uid in self.upgrades),
            _exchanged=tuple((tid, n) for tid, n in remote._exchanged if tid in self.exchange_tiers),
            _unlocked=frozenset(gid for gid in remote._unlocked if gid in self.mini_games),
        )

    def handle_message(self, message: Mapping[str, str]) -> Optional[Dict[str, str]]:
        """
        Receiver entry point. Returns the reply message, or None for replies
        and unknown kinds.
        """
        kind = message.get('kind', KIND_SNAPSHOT)
        try:
            if kind == KIND_DELTA:
                delta = decode_delta(message)
                self.apply_delta(delta)
                reply = self._reply()
                reply['ack'] = delta.delta_id
                return reply
            if kind == KIND_SNAPSHOT:
                self.apply_remote(decode_snapshot(message))
                return self._reply()
            if kind == KIND_REPLY:
                self.apply_remote(decode_snapshot(message))
                return None
        except InvalidAmount as e:
            if self.verbose:
                print(f"[Reconciler] ✗ dropped malformed {kind} message: {e}")
            return None
        if self.verbose:
            print(f"[Reconciler] ignoring message of unknown kind {kind!r}")
        return None

    # ------------------------------------------------------------------
    # Sender side
    # ------------------------------------------------------------------

    def sync(self, force: bool = False) -> bool:
        """
        Push local changes to the peer and merge its reply.

        PeerUnreachable, or a reply that cannot be decoded, defers the sync to
        the next call and increments consecutive_failures.

        Returns:
            True if a full exchange completed
        """
        if self.transport is None:
            return False
        if not force and not self.has_local_changes():
            return False
        try:
            if not self.transport.is_reachable():
                raise PeerUnreachable("Peer is not reachable")
            if self.outbox:
                for delta in self.outbox.pending():
                    reply = self.transport.send(
                        encode_delta(delta, sender=self.name, sequence=self.ledger.sequence)
                    )
                    self._merge_reply(reply)
                    if reply is not None and reply.get('ack') == delta.delta_id:
                        self.outbox.acknowledge(delta.delta_id)
            with self.ledger.lock:
                outgoing = self.local_snapshot()
                sent_sequence = self.ledger.sequence
            reply = self.transport.send(encode_snapshot(outgoing, kind=KIND_SNAPSHOT))
            with self.ledger.lock:
                # local mutations after the send are still unsynced
                untouched = self.ledger.sequence == sent_sequence
                self._merge_reply(reply)
                synced_sequence = self.ledger.sequence if untouched else sent_sequence
        except PeerUnreachable as e:
            self.consecutive_failures += 1
            if self.verbose:
                print(f"[Reconciler] sync deferred ({e}); failures={self.consecutive_failures}")
            return False
        self.consecutive_failures = 0
        self.last_synced_sequence = synced_sequence
        if self.verbose:
            print(f"[Reconciler] synced {self.name}: balance {normalize_decimal(self.ledger.balance)}")
        return True

    def _merge_reply(self, reply: Optional[Mapping[str, str]]) -> None:
        """
        Raises:
            PeerUnreachable: If the reply cannot be decoded
        """
        if reply is None:
            return
        try:
            remote = decode_snapshot(reply)
        except InvalidAmount as e:
            if self.verbose:
                print(f"[Reconciler] ✗ dropped malformed reply: {e}")
            raise PeerUnreachable(f"Malformed reply: {e}") from e
        self.apply_remote(remote)

    def _reply(self) -> Dict[str, str]:
        return encode_snapshot(self.local_snapshot(), kind=KIND_REPLY)

    def _remember_delta(self, delta_id: str) -> None:
        self._seen_deltas[delta_id] = None
        while len(self._seen_deltas) > self.SEEN_DELTA_LIMIT:
            self._seen_deltas.popitem(last=False)
