"""
Core types and pure helpers for the clicker ledger system.

This module provides the foundational data structures shared by every component:
1. Decimal context configuration and economic constants
2. Exceptions: ClickerError and the domain-specific error types
3. Enums: IncomeSource (credit attribution), IntentStatus (intent outcomes)
4. Immutable data structures: MotionSample, LedgerSnapshot, RemoteSnapshot, Entry
5. Decimal helpers: to_decimal, require_amount, normalize_decimal

Nothing in this module mutates ledger state. The Ledger class (ledger.py) is the
only owner of mutable economic state.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN, getcontext
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple, Any, Mapping, Protocol, runtime_checkable


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Currency arithmetic must be deterministic on both devices so that merged
# totals compare equal. The global context is configured once at import time.
#
# PRECONDITION: No other code should modify the global Decimal context.
#
_CLICKER_DECIMAL_CONTEXT = getcontext()
_CLICKER_DECIMAL_CONTEXT.prec = 50
_CLICKER_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

ZERO = Decimal("0")

# Every device earns at least this much per tap, before upgrades.
BASE_PER_CLICK_YIELD = Decimal("1")

# Currency awarded per awarded step (100 steps per coin).
DEFAULT_PER_STEP_YIELD = Decimal("0.01")

# Empirical compensation for motion-sensor overcounting.
DEFAULT_STEP_CORRECTION_FACTOR = Decimal("0.6")

# Largest accepted order of magnitude for an amount. Sums and products of
# accepted amounts stay far inside the context exponent range.
MAX_AMOUNT_EXPONENT = 1000

# Device roles.
ROLE_PRIMARY = "primary"
ROLE_COMPANION = "companion"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class ClickerError(Exception):
    """Base exception for all clicker-core errors."""
    pass


class InsufficientFunds(ClickerError):
    """Raised when a debit would take the balance below zero."""
    pass


class InvalidAmount(ClickerError):
    """Raised for negative, NaN, infinite or non-numeric amounts. Indicates a calling bug."""
    pass


class UnknownUpgrade(ClickerError):
    """Raised when an upgrade id is not in the catalog."""
    pass


class UnknownExchangeTier(ClickerError):
    """Raised when an exchange tier id is not in the catalog."""
    pass


class UnknownMiniGame(ClickerError):
    """Raised when a mini-game id is not in the catalog."""
    pass


class SensorError(ClickerError):
    """Base class for motion-sensor failures. Always recoverable."""

    guidance = "Step tracking is temporarily unavailable."


class SensorUnavailable(SensorError):
    """Raised by a motion source when the sensor cannot be queried."""

    guidance = "Failed to retrieve new step samples. Step income will resume automatically."


class SensorAuthDenied(SensorError):
    """Raised by a motion source when the user has not granted motion access."""

    guidance = "Please enable motion access for Step Count in Settings."


class PeerUnreachable(ClickerError):
    """Raised by a transport when the peer device cannot be reached. Sync is deferred."""
    pass


class PersistenceFailure(ClickerError):
    """Raised when the durable snapshot cannot be read or written."""
    pass


# ============================================================================
# ENUMS
# ============================================================================

class IncomeSource(Enum):
    """
    Attribution bucket for a credit.

    Every credit lands in exactly one bucket; the buckets sum to total_ever_earned.
    """
    CLICK = "click"
    IDLE = "idle"
    STEP = "step"
    MINIGAME = "minigame"


class IntentStatus(Enum):
    """
    Outcome of a UI intent.

    APPLIED: The intent was validated and applied to the ledger.
    REJECTED: The intent failed validation; the ledger is unchanged.
    """
    APPLIED = "applied"
    REJECTED = "rejected"


# ============================================================================
# DECIMAL HELPERS
# ============================================================================

def to_decimal(value: Any) -> Decimal:
    """
    Convert a numeric value to Decimal without binary-float artifacts.

    Floats go through repr() so that 1.25 becomes Decimal("1.25"), not
    Decimal("1.25000000000000000000001...").

    Raises:
        InvalidAmount: If the value is a bool, an unsupported type, or an
                       unparseable string.
    """
    if isinstance(value, bool):
        raise InvalidAmount(f"Expected a number, got bool {value!r}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(repr(value))
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            raise InvalidAmount(f"Not a decimal number: {value!r}") from None
    raise InvalidAmount(f"Expected a number, got {type(value).__name__}")


def require_amount(value: Any, what: str = "amount") -> Decimal:
    """
    Convert and validate a non-negative, finite amount.

    Raises:
        InvalidAmount: If the value is negative, NaN, infinite, not a number,
                       or of an order of magnitude above MAX_AMOUNT_EXPONENT.
    """
    amount = to_decimal(value)
    if amount.is_nan() or amount.is_infinite():
        raise InvalidAmount(f"{what} must be finite, got {amount}")
    if amount and amount.adjusted() > MAX_AMOUNT_EXPONENT:
        raise InvalidAmount(f"{what} is out of range: {amount}")
    if amount < ZERO:
        raise InvalidAmount(f"{what} must not be negative, got {amount}")
    return amount


def normalize_decimal(d: Decimal) -> str:
    """
    Normalize a Decimal to a canonical string representation.

    Semantically equal values produce identical strings:
    Decimal("1.0") and Decimal("1.00") both become "1".
    """
    normalized = d.normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, 'f')


def _freeze_counts(counts: Optional[Mapping[str, int]]) -> Tuple[Tuple[str, int], ...]:
    """Convert a count map to a sorted tuple of (key, count) pairs."""
    if not counts:
        return ()
    return tuple(sorted((k, int(v)) for k, v in counts.items()))


# ============================================================================
# MOTION SAMPLES
# ============================================================================

@dataclass(frozen=True, slots=True)
class MotionSample:
    """
    One sensor-reported step-count observation.

    The same physical steps may be reported again under the same sample_id
    with a later end_time; the deduplicator awards each extension once.

    Attributes:
        sample_id: Unique identifier assigned by the sensor.
        start_time: Start of the observed interval.
        end_time: End of the observed interval (>= start_time).
        step_value: Raw step count reported for the interval.
    """
    sample_id: str
    start_time: datetime
    end_time: datetime
    step_value: Decimal

    def __post_init__(self):
        if not self.sample_id or not self.sample_id.strip():
            raise ValueError("MotionSample sample_id cannot be empty")
        if self.end_time < self.start_time:
            raise ValueError(
                f"MotionSample {self.sample_id}: end_time {self.end_time} "
                f"precedes start_time {self.start_time}"
            )
        value = to_decimal(self.step_value)
        if value.is_nan() or value.is_infinite() or value < ZERO:
            raise ValueError(f"MotionSample step_value must be finite and >= 0, got {value}")
        object.__setattr__(self, 'step_value', value)


# ============================================================================
# SNAPSHOTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class LedgerSnapshot:
    """
    Read-only copy of the full ledger state at a point in time.

    Returned by the Snapshot Query API and by every intent. Count maps are
    stored frozen; use the properties for dict access.
    """
    balance: Decimal
    total_ever_earned: Decimal
    total_spent: Decimal
    per_click_yield: Decimal
    per_second_yield: Decimal
    per_step_yield: Decimal
    mini_game_multiplier: Decimal
    total_steps: int
    earned_from_clicks: Decimal
    earned_from_idle: Decimal
    earned_from_steps: Decimal
    earned_from_mini_games: Decimal
    epoch: int = 0
    sequence: int = 0
    _upgrades: Tuple[Tuple[str, int], ...] = ()
    _exchanged: Tuple[Tuple[str, int], ...] = ()
    _unlocked: FrozenSet[str] = frozenset()

    @property
    def upgrade_quantities(self) -> Dict[str, int]:
        return dict(self._upgrades)

    @property
    def exchanged_counts(self) -> Dict[str, int]:
        return dict(self._exchanged)

    @property
    def unlocked_mini_games(self) -> FrozenSet[str]:
        return self._unlocked

    @property
    def total_upgrades_owned(self) -> int:
        return sum(q for _, q in self._upgrades)

    @property
    def total_exchanged(self) -> int:
        return sum(c for _, c in self._exchanged)

    def to_remote(self, sender: str = "") -> 'RemoteSnapshot':
        """Project this snapshot onto the fields exchanged between devices."""
        return RemoteSnapshot(
            sender=sender,
            sequence=self.sequence,
            epoch=self.epoch,
            balance=self.balance,
            total_ever_earned=self.total_ever_earned,
            total_spent=self.total_spent,
            per_click_yield=self.per_click_yield,
            per_second_yield=self.per_second_yield,
            per_step_yield=self.per_step_yield,
            total_steps=self.total_steps,
            earned_from_clicks=self.earned_from_clicks,
            earned_from_idle=self.earned_from_idle,
            earned_from_steps=self.earned_from_steps,
            earned_from_mini_games=self.earned_from_mini_games,
            _upgrades=self._upgrades,
            _exchanged=self._exchanged,
            _unlocked=self._unlocked,
        )


@dataclass(frozen=True, slots=True)
class RemoteSnapshot:
    """
    Point-in-time subset of ledger fields exchanged between devices.

    Every economic field is Optional: None means "no information" and is never
    read as zero. balance and the yields are carried as display hints only;
    receivers derive them locally.

    Attributes:
        sender: Device name of the originator.
        sequence: Sender's logical clock at capture time.
        epoch: Sender's reset generation.
    """
    sender: str = ""
    sequence: int = 0
    epoch: Optional[int] = None
    balance: Optional[Decimal] = None
    total_ever_earned: Optional[Decimal] = None
    total_spent: Optional[Decimal] = None
    per_click_yield: Optional[Decimal] = None
    per_second_yield: Optional[Decimal] = None
    per_step_yield: Optional[Decimal] = None
    total_steps: Optional[int] = None
    earned_from_clicks: Optional[Decimal] = None
    earned_from_idle: Optional[Decimal] = None
    earned_from_steps: Optional[Decimal] = None
    earned_from_mini_games: Optional[Decimal] = None
    _upgrades: Tuple[Tuple[str, int], ...] = ()
    _exchanged: Tuple[Tuple[str, int], ...] = ()
    _unlocked: FrozenSet[str] = frozenset()

    @property
    def upgrade_quantities(self) -> Dict[str, int]:
        return dict(self._upgrades)

    @property
    def exchanged_counts(self) -> Dict[str, int]:
        return dict(self._exchanged)

    @property
    def unlocked_mini_games(self) -> FrozenSet[str]:
        return self._unlocked

    def state_key(self) -> Tuple:
        """Identity of the merged economic state, ignoring sender/sequence/display hints."""
        return (
            self.epoch, self.total_ever_earned, self.total_spent, self.total_steps,
            self.earned_from_clicks, self.earned_from_idle,
            self.earned_from_steps, self.earned_from_mini_games,
            self._upgrades, self._exchanged, self._unlocked,
        )


def remote_snapshot(
    sender: str = "",
    sequence: int = 0,
    upgrade_quantities: Optional[Mapping[str, int]] = None,
    exchanged_counts: Optional[Mapping[str, int]] = None,
    unlocked_mini_games: Optional[FrozenSet[str]] = None,
    **fields: Any,
) -> RemoteSnapshot:
    """
    Build a RemoteSnapshot from plain dicts.

    Numeric fields are converted with to_decimal(); total_steps and epoch stay ints.

    Example:
        remote = remote_snapshot(
            sender="watch",
            total_ever_earned=120,
            total_spent=50,
            upgrade_quantities={"chromebook": 1},
        )
    """
    converted: Dict[str, Any] = {}
    for name, value in fields.items():
        if value is None or name in ('total_steps', 'epoch'):
            converted[name] = value
        else:
            converted[name] = to_decimal(value)
    return RemoteSnapshot(
        sender=sender,
        sequence=sequence,
        _upgrades=_freeze_counts(upgrade_quantities),
        _exchanged=_freeze_counts(exchanged_counts),
        _unlocked=frozenset(unlocked_mini_games or ()),
        **converted,
    )


# ============================================================================
# AUDIT ENTRIES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Entry:
    """
    Audit record of one ledger mutation.

    Attributes:
        sequence: Monotonic sequence within the ledger.
        kind: "credit", "debit", "steps", "upgrade", "exchange", "unlock", "merge" or "reset".
        amount: Currency (or count) involved.
        timestamp: Wall-clock time of the mutation.
        source: Income bucket for credits.
        detail: Free-form reference (upgrade id, tier id, peer name).
    """
    sequence: int
    kind: str
    amount: Decimal
    timestamp: datetime
    source: Optional[IncomeSource] = None
    detail: str = ""

    def __repr__(self) -> str:
        src = f" {self.source.value}" if self.source else ""
        ref = f" ({self.detail})" if self.detail else ""
        return f"Entry(#{self.sequence} {self.kind}{src} {self.amount}{ref})"


# ============================================================================
# READ-ONLY VIEW PROTOCOL
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Components that only need to observe the economy (achievements, the sync
    sender, display code) accept a LedgerView. The Ledger class implements this
    protocol but also provides mutation methods.
    """

    @property
    def balance(self) -> Decimal:
        ...

    @property
    def per_second_yield(self) -> Decimal:
        ...

    def snapshot(self) -> LedgerSnapshot:
        """Return a frozen copy of the full ledger state."""
        ...


@dataclass(frozen=True, slots=True)
class IntentResult:
    """
    Outcome of a UI intent: the updated read-only snapshot or a typed failure.

    Attributes:
        status: APPLIED or REJECTED.
        snapshot: Ledger snapshot after the intent (unchanged state if rejected).
        error: The validation error for rejected intents.
        value: Intent-specific payload (e.g. awarded steps, credited amount).
    """
    status: IntentStatus
    snapshot: LedgerSnapshot
    error: Optional[ClickerError] = None
    value: Any = field(default=None, compare=False)

    @property
    def ok(self) -> bool:
        return self.status is IntentStatus.APPLIED
