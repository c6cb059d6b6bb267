"""Config loader: YAML to dataclasses."""

from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Optional

import yaml

from .core import (
    DEFAULT_PER_STEP_YIELD, DEFAULT_STEP_CORRECTION_FACTOR,
    ROLE_PRIMARY, ROLE_COMPANION,
    to_decimal,
)
from .catalog import Difficulty


@dataclass
class DeviceConfig:
    name: str = "phone"
    role: str = ROLE_PRIMARY  # "primary" | "companion"
    snapshot_path: Optional[str] = None
    verbose: bool = False

    def __post_init__(self):
        if self.role not in (ROLE_PRIMARY, ROLE_COMPANION):
            raise ValueError(f"Unknown device role {self.role!r}")


@dataclass
class EconomyConfig:
    per_step_yield: Decimal = DEFAULT_PER_STEP_YIELD
    step_correction_factor: Decimal = DEFAULT_STEP_CORRECTION_FACTOR
    difficulty: Difficulty = Difficulty.NORMAL

    def __post_init__(self):
        self.per_step_yield = to_decimal(self.per_step_yield)
        self.step_correction_factor = to_decimal(self.step_correction_factor)
        self.difficulty = Difficulty.parse(self.difficulty)


@dataclass
class TimingConfig:
    tick_interval: float = 1.0
    sync_interval: float = 5.0
    save_every_ticks: int = 10

    def __post_init__(self):
        if self.tick_interval <= 0 or self.sync_interval <= 0:
            raise ValueError("tick_interval and sync_interval must be > 0")
        if self.save_every_ticks < 1:
            raise ValueError("save_every_ticks must be >= 1")


@dataclass
class ClickerConfig:
    device: DeviceConfig = field(default_factory=DeviceConfig)
    economy: EconomyConfig = field(default_factory=EconomyConfig)
    timing: TimingConfig = field(default_factory=TimingConfig)


def companion_config(name: str = "watch", **device) -> ClickerConfig:
    """Default config for a companion device (1 s sync, as on the wrist)."""
    return ClickerConfig(
        device=DeviceConfig(name=name, role=ROLE_COMPANION, **device),
        timing=TimingConfig(sync_interval=1.0),
    )


def load_config(path: Path) -> ClickerConfig:
    """Load config from YAML file."""
    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    device = DeviceConfig(**{k: v for k, v in (raw.get("device") or {}).items()})
    economy = EconomyConfig(**{k: v for k, v in (raw.get("economy") or {}).items()})
    timing = TimingConfig(**{k: v for k, v in (raw.get("timing") or {}).items()})

    return ClickerConfig(device=device, economy=economy, timing=timing)
