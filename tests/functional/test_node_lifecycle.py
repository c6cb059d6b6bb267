"""
Node Lifecycle Tests

End-to-end device lifecycle with a durable snapshot on disk:
- Intents (applied and rejected) through the node API
- Save / reopen round trip for both roles
- Idle gap credited on resume after a restart
- Corrupt snapshot: fallback to a fresh ledger, or a raised PersistenceFailure
- Write failure: in-memory state stays authoritative and the save is retried
- Concurrent saves land on disk in the order they were taken
- A malformed peer reply defers the sync without unwinding resume
- Background tick and sync tasks
- Sensor advisories surfaced through the node
"""

import json
import threading
import time
from decimal import Decimal
from unittest import mock

import pytest

from clicker import (
    ClickerNode, CompanionNode, open_node, pair_nodes, companion_config,
    IntentStatus, InsufficientFunds, UnknownUpgrade, InvalidAmount,
    PersistenceFailure, SensorUnavailable, StaticMotionSource, SnapshotStore,
    LoopbackTransport,
)

from tests.helpers import fund, make_sample


class TestIntents:
    """Intent API on the primary node."""

    def test_tap(self, phone):
        result = phone.tap()
        assert result.status is IntentStatus.APPLIED
        assert result.value == Decimal("1")
        assert result.snapshot.balance == Decimal("1")

    def test_purchase_rejected_then_applied(self, phone):
        rejected = phone.purchase("chromebook")
        assert rejected.status is IntentStatus.REJECTED
        assert isinstance(rejected.error, InsufficientFunds)
        assert rejected.snapshot.balance == Decimal("0")

        fund(phone.ledger, 50)
        applied = phone.purchase("chromebook")
        assert applied.ok
        assert applied.value == 1
        assert applied.snapshot.per_second_yield == Decimal("1")

    def test_unknown_ids_rejected(self, phone):
        assert isinstance(phone.purchase("warp_drive").error, UnknownUpgrade)
        assert not phone.exchange("platinum").ok
        assert not phone.unlock_mini_game("poker").ok

    def test_mini_game_reward(self, phone):
        result = phone.record_mini_game_result(Decimal("100"), Decimal("1.25"))
        assert result.value == Decimal("125")
        assert result.snapshot.earned_from_mini_games == Decimal("125")

    def test_negative_reward_rejected(self, phone):
        result = phone.record_mini_game_result(-5)
        assert isinstance(result.error, InvalidAmount)

    def test_achievements(self, phone):
        fund(phone.ledger, 6000)
        progress = phone.achievements()
        assert progress["Mining Coins"].tiers_reached == 2
        phone.reset()
        assert phone.achievements()["Mining Coins"].progress == 6000


class TestPersistence:
    """Save and reopen."""

    def test_primary_round_trip(self, node_config, fake_clock):
        node = open_node(node_config, now=fake_clock)
        for _ in range(60):
            node.tap()
        node.purchase("chromebook")
        node.record_motion_samples([make_sample("s1", 0, 60, 100)])
        node.achievements()
        assert node.dirty
        node.tick()
        before = node.snapshot()

        reopened = open_node(node_config, now=fake_clock)
        assert reopened.load_error is None
        after = reopened.snapshot()
        assert after == before
        assert reopened.record_motion_samples([make_sample("s1", 0, 60, 100)]).value == 0
        assert reopened.achievement_progress == node.achievement_progress

    def test_snapshot_document_layout(self, node_config, fake_clock):
        node = open_node(node_config, now=fake_clock)
        node.tap()
        with open(node_config.device.snapshot_path) as f:
            document = json.load(f)
        assert document['format'] == 1
        assert set(document) >= {'ledger', 'motion', 'outbox', 'seen_deltas', 'clock', 'achievements'}
        assert document['ledger']['earned_from_clicks'] == "1"

    def test_companion_outbox_survives_restart(self, tmp_path, fake_clock, phone):
        config = companion_config("watch", snapshot_path=str(tmp_path / "watch.json"))
        watch = open_node(config, now=fake_clock)
        assert isinstance(watch, CompanionNode)
        watch.tap()
        watch.tap()

        restarted = open_node(config, now=fake_clock)
        assert restarted.pending_deltas == 2
        pair_nodes(phone, restarted)
        assert restarted.sync() is True
        assert phone.snapshot().balance == Decimal("2")
        assert SnapshotStore(config.device.snapshot_path).load()['outbox'] == []

    def test_seen_deltas_survive_primary_restart(self, node_config, fake_clock, watch):
        phone = open_node(node_config, now=fake_clock)
        _, to_phone = pair_nodes(phone, watch)
        watch.tap()
        to_phone.drop_replies = True
        assert watch.sync() is False

        restarted = open_node(node_config, now=fake_clock)
        assert restarted.snapshot().balance == Decimal("1")
        pair_nodes(restarted, watch)
        assert watch.sync() is True
        assert restarted.snapshot().balance == Decimal("1")


class TestIdleGap:

    def test_idle_gap_credited_on_restart(self, node_config, fake_clock):
        node = open_node(node_config, now=fake_clock)
        fund(node.ledger, 50)
        node.purchase("chromebook")
        node.start(run_tasks=False)
        fake_clock.advance(30)
        node.suspend()
        assert node.snapshot().earned_from_idle == Decimal("30")

        fake_clock.advance(100)
        restarted = open_node(node_config, now=fake_clock)
        credited = restarted.resume(run_tasks=False)
        assert credited == Decimal("100")
        assert restarted.snapshot().earned_from_idle == Decimal("130")

    def test_ticks_accrue_idle(self, phone, fake_clock):
        fund(phone.ledger, 200)
        phone.purchase("desktop")
        phone.start(run_tasks=False)
        fake_clock.advance(2)
        phone.tick()
        fake_clock.advance(3)
        phone.tick()
        assert phone.snapshot().earned_from_idle == Decimal("25")

    def test_companion_does_not_accrue_idle(self, paired, fake_clock):
        phone, watch, to_watch, to_phone = paired
        fund(phone.ledger, 50)
        phone.purchase("chromebook")
        phone.sync()
        watch.start(run_tasks=False)
        fake_clock.advance(60)
        watch.tick()
        assert watch.resume(run_tasks=False) == Decimal("0")
        assert watch.snapshot().earned_from_idle == Decimal("0")

    def test_reset_rebases_clock(self, phone, fake_clock):
        fund(phone.ledger, 50)
        phone.purchase("chromebook")
        phone.start(run_tasks=False)
        fake_clock.advance(10)
        phone.reset()
        fund(phone.ledger, 50)
        phone.purchase("chromebook")
        fake_clock.advance(1)
        phone.tick()
        assert phone.snapshot().earned_from_idle == Decimal("1")


class TestCorruptSnapshot:

    def test_garbage_falls_back_to_fresh(self, node_config, fake_clock):
        with open(node_config.device.snapshot_path, "w") as f:
            f.write("{definitely not json")
        node = open_node(node_config, now=fake_clock)
        assert isinstance(node.load_error, PersistenceFailure)
        assert node.snapshot().balance == Decimal("0")
        assert node.tap().ok

    def test_garbage_raises_without_fallback(self, node_config, fake_clock):
        with open(node_config.device.snapshot_path, "w") as f:
            f.write("[]")
        with pytest.raises(PersistenceFailure):
            open_node(node_config, fallback_to_default=False, now=fake_clock)

    def test_inconsistent_ledger_rejected(self, node_config, fake_clock):
        SnapshotStore(node_config.device.snapshot_path).save({
            'ledger': {'total_ever_earned': "1", 'total_spent': "5"},
        })
        with pytest.raises(PersistenceFailure):
            open_node(node_config, fallback_to_default=False, now=fake_clock)

    def test_unknown_upgrade_rolls_back(self, node_config, fake_clock):
        SnapshotStore(node_config.device.snapshot_path).save({
            'ledger': {'total_ever_earned': "10", 'earned_from_clicks': "10",
                       'upgrade_quantities': {"warp_drive": 1}},
        })
        node = open_node(node_config, now=fake_clock)
        assert node.load_error is not None
        assert node.snapshot().upgrade_quantities == {}
        assert node.gateway.ledger is node.ledger
        assert node.clock.ledger is node.ledger

    def test_corrupt_motion_state(self, node_config, fake_clock):
        SnapshotStore(node_config.device.snapshot_path).save({
            'ledger': {}, 'motion': {'last_processed_end': "whenever"},
        })
        with pytest.raises(PersistenceFailure):
            open_node(node_config, fallback_to_default=False, now=fake_clock)


class TestWriteFailure:

    def test_failed_save_marks_dirty_and_retries(self, node_config, fake_clock):
        node = open_node(node_config, now=fake_clock)
        with mock.patch.object(node.store, 'save', side_effect=PersistenceFailure("disk full")):
            result = node.tap()
        assert result.ok
        assert node.dirty
        assert node.snapshot().balance == Decimal("1")

        node.tick()
        assert not node.dirty
        reopened = open_node(node_config, now=fake_clock)
        assert reopened.snapshot().balance == Decimal("1")


class TestConcurrentSaves:

    def test_concurrent_saves_written_in_order(self, node_config, fake_clock):
        node = open_node(node_config, now=fake_clock)

        def tap():
            for _ in range(25):
                node.tap()

        with mock.patch.object(node.store, 'save', wraps=node.store.save) as save:
            workers = [threading.Thread(target=tap) for _ in range(4)]
            for worker in workers:
                worker.start()
            for worker in workers:
                worker.join(timeout=30)

        sequences = [c.args[0]['ledger']['sequence'] for c in save.call_args_list]
        assert len(sequences) == 100
        assert sequences == sorted(sequences)
        reopened = open_node(node_config, now=fake_clock)
        assert reopened.snapshot() == node.snapshot()
        assert reopened.snapshot().balance == Decimal("100")


class TestMalformedPeer:

    def test_bad_reply_does_not_unwind_resume(self, node_config, fake_clock):
        node = open_node(node_config, now=fake_clock)
        node.connect(LoopbackTransport(lambda m: {'kind': "reply", 'totalSpent': "-1"}))
        fund(node.ledger, 50)
        node.purchase("chromebook")
        node.start(run_tasks=False)
        fake_clock.advance(10)
        node.suspend()

        fake_clock.advance(20)
        node.tap()
        assert node.resume(run_tasks=False) == Decimal("20")
        assert node.reconciler.consecutive_failures == 1
        assert not node.dirty

        reopened = open_node(node_config, now=fake_clock)
        assert reopened.snapshot().earned_from_idle == Decimal("30")


class TestBackgroundTasks:

    def test_start_and_shutdown(self, node_config, fake_clock):
        node = open_node(node_config, now=fake_clock)
        node.start()
        assert node.running
        deadline = time.monotonic() + 2.0
        while node._tick_task.runs == 0 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert node._tick_task.runs > 0
        node.shutdown()
        assert not node.running
        assert node.store.exists()

    def test_sync_task_delivers_companion_taps(self, phone, fake_clock):
        watch = CompanionNode(companion_config("watch"), now=fake_clock)
        watch.config.timing.sync_interval = 0.01
        pair_nodes(phone, watch)
        watch.tap()
        watch.start()
        try:
            deadline = time.monotonic() + 2.0
            while watch.pending_deltas and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            watch.shutdown()
        assert watch.pending_deltas == 0
        assert phone.snapshot().balance == Decimal("1")


class TestSensorAdvisory:

    def test_advisory_surfaced_and_recovered(self, fake_clock):
        source = StaticMotionSource([make_sample("s1", 0, 60, 100)])
        source.error = SensorUnavailable("timeout")
        node = ClickerNode(motion_source=source, now=fake_clock)
        node.tick()
        assert node.advisory is not None
        assert "resume automatically" in node.advisory.guidance
        assert node.snapshot().total_steps == 0

        source.error = None
        node.tick()
        assert node.snapshot().total_steps == 60
