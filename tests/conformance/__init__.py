"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the clicker core.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_ledger_invariant.py - balance == total_ever_earned - total_spent, monotonic totals
2. test_atomicity.py - All-or-nothing gateway operations
3. test_merge.py - Commutative, associative, idempotent snapshot merge
4. test_dedup.py - Motion samples awarded at most once
5. test_idle_accrual.py - Idle intervals credited exactly once
6. test_single_writer.py - Concurrent intents, ticks and rewards each applied once

These tests use hypothesis for property-based testing.
"""
