"""
helpers.py - Test helpers shared by unit, conformance and functional tests

- FakeClock: manually advanced wall clock
- make_sample: MotionSample builder relative to T0
- fund / set_yields: put a ledger into a known state without the gateway
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict

from clicker import Ledger, IncomeSource, MotionSample, compute_yields


T0 = datetime(2025, 1, 1, 12, 0, 0)


class FakeClock:
    """Manually advanced wall clock, usable wherever a `now` callable is accepted."""

    def __init__(self, start: datetime = T0):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current = self.current + timedelta(seconds=seconds)
        return self.current


def make_sample(sample_id: str, start_s: float, end_s: float, steps, base: datetime = T0) -> MotionSample:
    """Sample covering [base + start_s, base + end_s] seconds."""
    return MotionSample(
        sample_id=sample_id,
        start_time=base + timedelta(seconds=start_s),
        end_time=base + timedelta(seconds=end_s),
        step_value=Decimal(str(steps)),
    )


def fund(ledger: Ledger, amount, source: IncomeSource = IncomeSource.CLICK) -> Ledger:
    ledger.credit(Decimal(str(amount)), source)
    return ledger


def set_yields(ledger: Ledger, quantities: Dict[str, int], catalog=None) -> None:
    """Give the ledger upgrades and matching yields without going through the gateway."""
    for upgrade_id, qty in quantities.items():
        ledger.add_upgrade(upgrade_id, qty)
    if catalog is None:
        ledger.apply_yields(compute_yields(ledger.upgrade_quantities))
    else:
        ledger.apply_yields(compute_yields(ledger.upgrade_quantities, catalog))
