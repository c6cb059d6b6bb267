"""
clock.py - Idle-accrual clock

Credits per_second_yield x elapsed wall-clock seconds with source=idle.

resume(), tick() and suspend() all measure from one watermark,
last_accrued_at, and move it forward to `now` after crediting. An interval
is therefore credited exactly once whether it was covered by foreground
ticks or by the resume gap. A negative gap (system clock moved backward)
credits zero and rebases the watermark to `now`.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from .core import IncomeSource, ZERO, PersistenceFailure, to_decimal
from .ledger import Ledger


class IdleAccrualClock:
    """
    Converts elapsed time into idle income on one ledger.

    Example:
        clock = IdleAccrualClock(ledger, now=fake_now, verbose=False)
        clock.resume()      # credits the gap since the last suspend
        clock.tick()        # credits the time since resume
        clock.suspend()     # credits up to now and stops ticking
    """

    def __init__(
        self,
        ledger: Ledger,
        now: Callable[[], datetime] = datetime.now,
        verbose: bool = True,
    ):
        self.ledger = ledger
        self.now = now
        self.verbose = verbose
        self.last_accrued_at: Optional[datetime] = None
        self.running = False

    def resume(self, now: Optional[datetime] = None) -> Decimal:
        """
        Credit the gap since the last recorded tick/suspend and start ticking.

        On first run (no watermark) nothing is credited.
        """
        credited = self._accrue(now)
        self.running = True
        return credited

    def tick(self, now: Optional[datetime] = None) -> Decimal:
        """Credit the time since the last accrual. No-op while suspended."""
        if not self.running:
            return ZERO
        return self._accrue(now)

    def suspend(self, now: Optional[datetime] = None) -> Decimal:
        """Credit up to `now` and stop ticking."""
        credited = self._accrue(now) if self.running else ZERO
        self.running = False
        return credited

    def rebase(self, now: Optional[datetime] = None) -> None:
        """Move the watermark to `now` without crediting (used after reset)."""
        self.last_accrued_at = now or self.now()

    def _accrue(self, now: Optional[datetime]) -> Decimal:
        with self.ledger.lock:
            return self._accrue_locked(now or self.now())

    def _accrue_locked(self, now: datetime) -> Decimal:
        last = self.last_accrued_at
        self.last_accrued_at = now
        if last is None:
            return ZERO
        elapsed = to_decimal((now - last).total_seconds())
        if elapsed <= ZERO:
            if elapsed < ZERO and self.verbose:
                print(f"[Clock] clock moved backward by {-elapsed}s; rebased without credit")
            return ZERO
        amount = self.ledger.per_second_yield * elapsed
        if amount == ZERO:
            return ZERO
        self.ledger.credit(amount, IncomeSource.IDLE)
        if self.verbose:
            print(f"[Clock] credited {amount} idle for {elapsed}s")
        return amount

    # ========================================================================
    # SERIALIZATION
    # ========================================================================

    def to_state_dict(self) -> Dict[str, Any]:
        return {
            'last_accrued_at': self.last_accrued_at.isoformat() if self.last_accrued_at else None,
        }

    def load_state_dict(self, data: Dict[str, Any]) -> None:
        value = data.get('last_accrued_at')
        try:
            self.last_accrued_at = datetime.fromisoformat(value) if value else None
        except (TypeError, ValueError) as e:
            raise PersistenceFailure(f"Corrupt clock state: {e}") from e
