"""
conftest.py - Shared pytest fixtures for clicker tests

Provides common fixtures used across unit, conformance and functional tests:
- Ledgers (empty, funded)
- A controllable wall clock
- Small custom catalogs
- Paired primary/companion nodes over a loopback transport
"""

import pytest
from decimal import Decimal

from clicker import (
    Ledger, Upgrade, build_catalog,
    TransactionGateway, IdleAccrualClock, MotionDeduplicator,
    ClickerConfig, DeviceConfig, TimingConfig,
    ClickerNode, CompanionNode, companion_config, pair_nodes,
)

from tests.helpers import FakeClock, fund


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def empty_ledger():
    """Ledger with no income."""
    return Ledger("test", verbose=False)


@pytest.fixture
def funded_ledger():
    """Ledger with 150 coins earned from clicks."""
    return fund(Ledger("test", verbose=False), 150)


@pytest.fixture
def chromebook_catalog():
    """Single-upgrade catalog: chromebook costs 100 and yields +1/s."""
    return build_catalog([
        Upgrade("chromebook", Decimal("100"), per_second_delta=Decimal("1"), per_click_delta=Decimal("0")),
    ])


@pytest.fixture
def gateway(funded_ledger, chromebook_catalog):
    return TransactionGateway(funded_ledger, upgrades=chromebook_catalog, verbose=False)


@pytest.fixture
def dedup(empty_ledger):
    return MotionDeduplicator(empty_ledger, verbose=False)


@pytest.fixture
def idle_clock(empty_ledger, fake_clock):
    return IdleAccrualClock(empty_ledger, now=fake_clock, verbose=False)


@pytest.fixture
def phone(fake_clock):
    """Primary node with no persistence."""
    return ClickerNode(ClickerConfig(device=DeviceConfig(name="phone")), now=fake_clock)


@pytest.fixture
def watch(fake_clock):
    """Companion node with no persistence."""
    return CompanionNode(companion_config("watch"), now=fake_clock)


@pytest.fixture
def paired(phone, watch):
    """(phone, watch, phone->watch transport, watch->phone transport)."""
    to_watch, to_phone = pair_nodes(phone, watch)
    return phone, watch, to_watch, to_phone


@pytest.fixture
def node_config(tmp_path):
    """Primary config persisting under tmp_path."""
    return ClickerConfig(
        device=DeviceConfig(name="phone", snapshot_path=str(tmp_path / "phone.json")),
        timing=TimingConfig(tick_interval=0.01, sync_interval=0.01, save_every_ticks=2),
    )
