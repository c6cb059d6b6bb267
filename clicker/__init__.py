"""
clicker - Two-device idle/clicker game core

A currency ledger fed by taps, idle time, motion-sensor steps and mini-game
payouts, kept consistent between a primary device and a companion device that
sync over an intermittent link.

Usage:
    from clicker import ClickerNode, CompanionNode, pair_nodes

    phone = ClickerNode()
    watch = CompanionNode()
    pair_nodes(phone, watch)

    watch.tap()                       # applied locally, queued as a delta
    watch.sync()                      # delta applied on the phone, reply merged
    phone.purchase("chromebook", 1)   # IntentResult(APPLIED | REJECTED, snapshot, error)
"""

# Core types
from .core import (
    LedgerView,
    IncomeSource,
    IntentStatus,
    IntentResult,
    MotionSample,
    LedgerSnapshot,
    RemoteSnapshot,
    remote_snapshot,
    Entry,
    ClickerError,
    InsufficientFunds,
    InvalidAmount,
    UnknownUpgrade,
    UnknownExchangeTier,
    UnknownMiniGame,
    SensorError,
    SensorUnavailable,
    SensorAuthDenied,
    PeerUnreachable,
    PersistenceFailure,
    to_decimal,
    normalize_decimal,
    BASE_PER_CLICK_YIELD,
    DEFAULT_PER_STEP_YIELD,
    DEFAULT_STEP_CORRECTION_FACTOR,
    MAX_AMOUNT_EXPONENT,
    ROLE_PRIMARY,
    ROLE_COMPANION,
)

# Catalogs
from .catalog import (
    Upgrade,
    ExchangeTier,
    MiniGame,
    Difficulty,
    build_catalog,
    UPGRADES,
    EXCHANGE_TIERS,
    MINI_GAMES,
    get_upgrade,
    get_exchange_tier,
    get_mini_game,
)

# Ledger and income model
from .ledger import Ledger
from .income import Yields, compute_yields, correct_steps, step_reward

# Components
from .gateway import TransactionGateway
from .motion import (
    MotionDeduplicator,
    MotionSource,
    StaticMotionSource,
    MotionSampler,
    Advisory,
    BatchPlan,
)
from .clock import IdleAccrualClock
from .reconcile import (
    SCHEMA_VERSION,
    encode_snapshot,
    decode_snapshot,
    encode_delta,
    decode_delta,
    merge_snapshots,
    PendingDelta,
    Outbox,
    PeerTransport,
    LoopbackTransport,
    loopback_pair,
    Reconciler,
)
from .scheduling import PeriodicTask
from .persistence import SnapshotStore, SNAPSHOT_FORMAT
from .achievements import (
    Achievement,
    AchievementProgress,
    ACHIEVEMENTS,
    build_achievements,
    evaluate_achievements,
)

# Configuration and device nodes
from .config import (
    ClickerConfig,
    DeviceConfig,
    EconomyConfig,
    TimingConfig,
    load_config,
    companion_config,
)
from .node import BaseNode, ClickerNode, CompanionNode, open_node, pair_nodes


__all__ = [
    # Core
    'LedgerView', 'IncomeSource', 'IntentStatus', 'IntentResult',
    'MotionSample', 'LedgerSnapshot', 'RemoteSnapshot', 'remote_snapshot', 'Entry',
    'ClickerError', 'InsufficientFunds', 'InvalidAmount',
    'UnknownUpgrade', 'UnknownExchangeTier', 'UnknownMiniGame',
    'SensorError', 'SensorUnavailable', 'SensorAuthDenied',
    'PeerUnreachable', 'PersistenceFailure',
    'to_decimal', 'normalize_decimal',
    'BASE_PER_CLICK_YIELD', 'DEFAULT_PER_STEP_YIELD', 'DEFAULT_STEP_CORRECTION_FACTOR',
    'MAX_AMOUNT_EXPONENT',
    'ROLE_PRIMARY', 'ROLE_COMPANION',
    # Catalogs
    'Upgrade', 'ExchangeTier', 'MiniGame', 'Difficulty', 'build_catalog',
    'UPGRADES', 'EXCHANGE_TIERS', 'MINI_GAMES',
    'get_upgrade', 'get_exchange_tier', 'get_mini_game',
    # Ledger / income
    'Ledger', 'Yields', 'compute_yields', 'correct_steps', 'step_reward',
    # Components
    'TransactionGateway',
    'MotionDeduplicator', 'MotionSource', 'StaticMotionSource', 'MotionSampler', 'Advisory', 'BatchPlan',
    'IdleAccrualClock',
    'SCHEMA_VERSION', 'encode_snapshot', 'decode_snapshot', 'encode_delta', 'decode_delta',
    'merge_snapshots', 'PendingDelta', 'Outbox', 'PeerTransport', 'LoopbackTransport',
    'loopback_pair', 'Reconciler',
    'PeriodicTask',
    'SnapshotStore', 'SNAPSHOT_FORMAT',
    'Achievement', 'AchievementProgress', 'ACHIEVEMENTS', 'build_achievements', 'evaluate_achievements',
    # Config / nodes
    'ClickerConfig', 'DeviceConfig', 'EconomyConfig', 'TimingConfig', 'load_config', 'companion_config',
    'BaseNode', 'ClickerNode', 'CompanionNode', 'open_node', 'pair_nodes',
]

__version__ = '1.0.0'
