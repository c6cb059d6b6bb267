"""
test_clock.py - Unit tests for IdleAccrualClock
"""

import pytest
from datetime import timedelta
from decimal import Decimal
from unittest import mock

from clicker import IdleAccrualClock, IncomeSource, Yields, PersistenceFailure

from tests.helpers import T0


def _ten_per_second(ledger):
    ledger.apply_yields(Yields(per_second=Decimal("10")))


class TestResume:
    """Crediting the gap on resume."""

    def test_resume_credits_gap_once(self, idle_clock, empty_ledger):
        """10/s over a 5 s gap credits exactly 50 idle, in one credit call."""
        _ten_per_second(empty_ledger)
        idle_clock.last_accrued_at = T0
        with mock.patch.object(empty_ledger, 'credit', wraps=empty_ledger.credit) as credit:
            credited = idle_clock.resume(T0 + timedelta(seconds=5))
        assert credited == Decimal("50")
        credit.assert_called_once_with(Decimal("50"), IncomeSource.IDLE)
        assert empty_ledger.earned_from(IncomeSource.IDLE) == Decimal("50")
        assert idle_clock.running

    def test_first_resume_credits_nothing(self, idle_clock, empty_ledger):
        _ten_per_second(empty_ledger)
        assert idle_clock.resume() == Decimal("0")
        assert idle_clock.last_accrued_at == T0

    def test_backward_clock_credits_zero_and_rebases(self, idle_clock, empty_ledger):
        _ten_per_second(empty_ledger)
        idle_clock.last_accrued_at = T0
        earlier = T0 - timedelta(seconds=2)
        assert idle_clock.resume(earlier) == Decimal("0")
        assert idle_clock.last_accrued_at == earlier
        assert empty_ledger.balance == Decimal("0")

    def test_no_yield_no_credit(self, idle_clock, empty_ledger):
        idle_clock.last_accrued_at = T0
        idle_clock.resume(T0 + timedelta(hours=1))
        assert empty_ledger.sequence == 0

    def test_fractional_seconds(self, idle_clock, empty_ledger):
        _ten_per_second(empty_ledger)
        idle_clock.last_accrued_at = T0
        assert idle_clock.resume(T0 + timedelta(milliseconds=250)) == Decimal("2.5")


class TestTickAndSuspend:

    def test_intervals_credited_exactly_once(self, idle_clock, empty_ledger, fake_clock):
        """Ticks, suspend and resume share one watermark: 3 + 2 + 10 seconds = 150."""
        _ten_per_second(empty_ledger)
        idle_clock.resume()
        fake_clock.advance(3)
        idle_clock.tick()
        fake_clock.advance(2)
        idle_clock.suspend()
        fake_clock.advance(10)
        idle_clock.resume()
        assert empty_ledger.earned_from(IncomeSource.IDLE) == Decimal("150")

    def test_tick_while_suspended_is_noop(self, idle_clock, empty_ledger, fake_clock):
        _ten_per_second(empty_ledger)
        idle_clock.resume()
        idle_clock.suspend()
        fake_clock.advance(5)
        assert idle_clock.tick() == Decimal("0")
        assert idle_clock.last_accrued_at == T0

    def test_suspend_when_not_running(self, idle_clock):
        assert idle_clock.suspend() == Decimal("0")
        assert not idle_clock.running

    def test_rebase_skips_interval(self, idle_clock, empty_ledger, fake_clock):
        _ten_per_second(empty_ledger)
        idle_clock.resume()
        fake_clock.advance(100)
        idle_clock.rebase()
        fake_clock.advance(1)
        assert idle_clock.tick() == Decimal("10")


class TestSerialization:

    def test_round_trip(self, idle_clock, empty_ledger, fake_clock):
        idle_clock.resume()
        data = idle_clock.to_state_dict()
        assert data == {'last_accrued_at': T0.isoformat()}

        restored = IdleAccrualClock(empty_ledger, now=fake_clock, verbose=False)
        restored.load_state_dict(data)
        assert restored.last_accrued_at == T0

    def test_missing_watermark(self, idle_clock):
        idle_clock.load_state_dict({})
        assert idle_clock.last_accrued_at is None

    def test_corrupt(self, idle_clock):
        with pytest.raises(PersistenceFailure):
            idle_clock.load_state_dict({'last_accrued_at': "not a time"})
