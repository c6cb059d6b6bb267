"""
motion.py - Motion-sample deduplication and step income

The sensor reports step counts as samples that may overlap earlier ones: the
same physical steps can arrive again under the same sample id with a later
end_time, or under a new id after a device change. MotionDeduplicator turns
that stream into a monotonic awarded-step count with no double counting.

Per sample, in batch order:
    (a) sample_progress[id] >= end_time        -> discard (already awarded)
    (b) end_time <= last_processed_end         -> discard (behind the watermark)
    (c) otherwise award round_half_even(step_value * correction_factor),
        set sample_progress[id] = end_time, track the batch maximum end_time

After the batch the watermark advances to the batch maximum (never backward)
and progress entries older than the watermark are pruned. The batch is
evaluated on a copy of the dedup state and committed only after the ledger
credit succeeds, so a failure leaves the watermark untouched.

MotionSampler polls a MotionSource and converts sensor failures into a
one-time Advisory with user guidance instead of raising.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, runtime_checkable

from .core import (
    IncomeSource, MotionSample,
    DEFAULT_STEP_CORRECTION_FACTOR,
    SensorError, SensorAuthDenied, PersistenceFailure,
    require_amount,
)
from .income import correct_steps, step_reward
from .ledger import Ledger


@dataclass(frozen=True, slots=True)
class BatchPlan:
    """
    Outcome of evaluating one batch against a copy of the dedup state.

    Attributes:
        awarded_steps: Corrected steps to credit.
        accepted: Sample ids that were awarded (in batch order).
        discarded: Sample ids skipped by rule (a) or (b).
        sample_progress: Progress map after the batch (before pruning).
        last_processed_end: Watermark after the batch.
    """
    awarded_steps: int
    accepted: tuple
    discarded: tuple
    sample_progress: Dict[str, datetime] = field(compare=False)
    last_processed_end: Optional[datetime] = None


class MotionDeduplicator:
    """
    Watermark plus per-sample progress deduplication feeding step income.

    Example:
        dedup = MotionDeduplicator(ledger, verbose=False)
        dedup.process([MotionSample("s1", t0, t1, Decimal("100"))])   # 60 steps
        dedup.process([MotionSample("s1", t0, t1, Decimal("100"))])   # 0, replay
    """

    def __init__(
        self,
        ledger: Ledger,
        correction_factor: Decimal = DEFAULT_STEP_CORRECTION_FACTOR,
        verbose: bool = True,
    ):
        self.ledger = ledger
        self.correction_factor = require_amount(correction_factor, "correction_factor")
        self.verbose = verbose
        self.last_processed_end: Optional[datetime] = None
        self.sample_progress: Dict[str, datetime] = {}
        # Called as on_award(steps, amount) inside the crediting transaction
        self.on_award: Optional[Callable[[int, Decimal], None]] = None

    def plan(self, samples: Iterable[MotionSample]) -> BatchPlan:
        """Evaluate a batch without changing any state."""
        progress = dict(self.sample_progress)
        watermark = self.last_processed_end
        newest: Optional[datetime] = None
        awarded = 0
        accepted: List[str] = []
        discarded: List[str] = []

        for sample in samples:
            seen = progress.get(sample.sample_id)
            if seen is not None and seen >= sample.end_time:
                discarded.append(sample.sample_id)
                continue
            if watermark is not None and sample.end_time <= watermark:
                discarded.append(sample.sample_id)
                continue
            awarded += correct_steps(sample.step_value, self.correction_factor)
            progress[sample.sample_id] = sample.end_time
            accepted.append(sample.sample_id)
            if newest is None or sample.end_time > newest:
                newest = sample.end_time

        if newest is not None and (watermark is None or newest > watermark):
            watermark = newest
        return BatchPlan(
            awarded_steps=awarded,
            accepted=tuple(accepted),
            discarded=tuple(discarded),
            sample_progress=progress,
            last_processed_end=watermark,
        )

    def process(self, samples: Iterable[MotionSample]) -> int:
        """
        Deduplicate a batch, credit awarded steps and commit the dedup state.

        Returns:
            Corrected steps awarded by this batch (0 if everything was a replay)
        """
        batch = list(samples)
        with self.ledger.transaction():
            plan = self.plan(batch)
            if plan.awarded_steps > 0:
                amount = step_reward(plan.awarded_steps, self.ledger.per_step_yield)
                self.ledger.record_steps(plan.awarded_steps)
                self.ledger.credit(amount, IncomeSource.STEP)
                if self.on_award is not None:
                    self.on_award(plan.awarded_steps, amount)
            self.sample_progress = plan.sample_progress
            self.last_processed_end = plan.last_processed_end
            self.prune()

        if self.verbose and batch:
            print(f"[Motion] batch of {len(batch)}: awarded {plan.awarded_steps} steps, "
                  f"discarded {len(plan.discarded)}")
        return plan.awarded_steps

    def prune(self) -> int:
        """Drop progress entries whose end_time is older than the watermark."""
        if self.last_processed_end is None:
            return 0
        stale = [sid for sid, end in self.sample_progress.items() if end < self.last_processed_end]
        for sid in stale:
            del self.sample_progress[sid]
        return len(stale)

    def reset(self) -> None:
        self.last_processed_end = None
        self.sample_progress = {}

    # ========================================================================
    # SERIALIZATION
    # ========================================================================

    def to_state_dict(self) -> Dict[str, Any]:
        return {
            'last_processed_end': self.last_processed_end.isoformat() if self.last_processed_end else None,
            'sample_progress': {
                sid: end.isoformat() for sid, end in sorted(self.sample_progress.items())
            },
        }

    def load_state_dict(self, data: Dict[str, Any]) -> None:
        """
        Restore dedup state written by to_state_dict().

        Raises:
            PersistenceFailure: If a timestamp cannot be parsed
        """
        try:
            end = data.get('last_processed_end')
            watermark = datetime.fromisoformat(end) if end else None
            progress = {
                str(sid): datetime.fromisoformat(ts)
                for sid, ts in (data.get('sample_progress') or {}).items()
            }
        except (TypeError, ValueError) as e:
            raise PersistenceFailure(f"Corrupt motion state: {e}") from e
        self.last_processed_end = watermark
        self.sample_progress = progress


# ============================================================================
# SENSOR SOURCE AND ADVISORIES
# ============================================================================

@runtime_checkable
class MotionSource(Protocol):
    """
    Step-sample provider (the device's motion sensor).

    query_samples() may raise SensorAuthDenied or SensorUnavailable.
    """

    def query_samples(self, since: Optional[datetime]) -> List[MotionSample]:
        """Return samples whose end_time is after `since` (all samples if None)."""
        ...


class StaticMotionSource:
    """
    In-memory MotionSource backed by a list of samples.

    Used by tests and demos. Set `error` to an exception instance to make the
    next queries fail with it.
    """

    def __init__(self, samples: Optional[Iterable[MotionSample]] = None):
        self.samples: List[MotionSample] = list(samples or ())
        self.error: Optional[SensorError] = None

    def add(self, *samples: MotionSample) -> None:
        self.samples.extend(samples)

    def query_samples(self, since: Optional[datetime]) -> List[MotionSample]:
        if self.error is not None:
            raise self.error
        if since is None:
            return list(self.samples)
        return [s for s in self.samples if s.end_time > since]


@dataclass(frozen=True, slots=True)
class Advisory:
    """Recoverable failure surfaced to the user once, with guidance text."""
    error: SensorError
    guidance: str

    @classmethod
    def from_error(cls, error: SensorError) -> 'Advisory':
        return cls(error=error, guidance=error.guidance)


class MotionSampler:
    """
    Polls a MotionSource and feeds the deduplicator.

    Sensor errors never propagate: they are stored as `advisory` (one advisory
    per distinct error type until acknowledged) and leave the dedup state
    untouched. SensorAuthDenied also disables step income until enable().
    """

    def __init__(self, source: MotionSource, deduplicator: MotionDeduplicator, verbose: bool = True):
        self.source = source
        self.deduplicator = deduplicator
        self.verbose = verbose
        self.enabled = True
        self.advisory: Optional[Advisory] = None

    def poll(self) -> int:
        """Query new samples and award steps. Returns awarded steps (0 on error)."""
        if not self.enabled:
            return 0
        try:
            samples = self.source.query_samples(self.deduplicator.last_processed_end)
        except SensorError as e:
            self._advise(e)
            if isinstance(e, SensorAuthDenied):
                self.enabled = False
            return 0
        return self.deduplicator.process(samples)

    def enable(self) -> None:
        """Re-enable step income after the user fixed the sensor permission."""
        self.enabled = True
        self.advisory = None

    def acknowledge_advisory(self) -> Optional[Advisory]:
        """Return and clear the pending advisory."""
        advisory, self.advisory = self.advisory, None
        return advisory

    def _advise(self, error: SensorError) -> None:
        if self.advisory is not None and type(self.advisory.error) is type(error):
            return
        self.advisory = Advisory.from_error(error)
        if self.verbose:
            print(f"[Motion] ⚠️  {type(error).__name__}: {self.advisory.guidance}")
