from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from ..types.modes import AverageWindow, ColorMode, PhaseMode, SpawnMode, SteeringMode, TargetMode
from ..utils.math2d import BoundingBox
from .errors import ConfigurationError


@dataclass
class NoiseConfig:
    # None draws the first seed from the simulation rng.
    seed: int | None = None
    # Divides spatial coordinates before sampling; larger values give a smoother field.
    scale: float = 400.0
    phase_mode: PhaseMode = PhaseMode.COUNTER
    phase_increment: float = 0.02
    time_damping: float = 25.0


@dataclass
class MotionConfig:
    steering: SteeringMode = SteeringMode.NOISE
    step_size: float = 6.0
    acceleration: float = 0.03
    wander_jitter: float = 0.2
    look_ahead: float = 20.0
    track_previous: bool = False


@dataclass
class RepulsionConfig:
    enabled: bool = False
    agent_scalar: float = 10.0
    boundary_scalar: float = 50.0
    workers: int = 1


@dataclass
class SpawnConfig:
    mode: SpawnMode = SpawnMode.ORIGIN
    respawn_mode: SpawnMode = SpawnMode.OVERSCAN
    overscan: float = 1.1
    pad: float = 50.0
    ttl_enabled: bool = False
    ttl_min: float = 2.0
    ttl_max: float = 10.0
    phase_offset_max: float = 4.0


@dataclass
class TargetConfig:
    mode: TargetMode = TargetMode.CIRCLE
    radius: float = 300.0
    angular_speed: float = -math.pi
    drift_step: float = 4.0
    damping_power: float = 0.98
    average_window: AverageWindow = AverageWindow.ALL


@dataclass
class HistoryConfig:
    capacity: int = 30


@dataclass
class TessellationConfig:
    enabled: bool = True


@dataclass
class SimulationConfig:
    agent_count: int = 40
    width: float = 1000.0
    height: float = 1000.0
    time_step: float = 1.0 / 60.0
    seed: int = 42
    color_mode: ColorMode = ColorMode.MONO
    config_version: str = "v1"
    noise: NoiseConfig = field(default_factory=NoiseConfig)
    motion: MotionConfig = field(default_factory=MotionConfig)
    repulsion: RepulsionConfig = field(default_factory=RepulsionConfig)
    spawn: SpawnConfig = field(default_factory=SpawnConfig)
    target: TargetConfig = field(default_factory=TargetConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    tessellation: TessellationConfig = field(default_factory=TessellationConfig)

    @property
    def bounds(self) -> BoundingBox:
        return BoundingBox(float(self.width), float(self.height))

    def validate(self) -> "SimulationConfig":
        if self.agent_count <= 0:
            raise ConfigurationError(f"agent_count must be positive, got {self.agent_count}")
        if not self.bounds.is_valid():
            raise ConfigurationError(f"bounds must be positive, got {self.width}x{self.height}")
        if self.history.capacity <= 0:
            raise ConfigurationError(f"history capacity must be positive, got {self.history.capacity}")
        if not self.noise.scale > 0.0:
            raise ConfigurationError(f"noise scale must be positive, got {self.noise.scale}")
        if self.noise.phase_mode == PhaseMode.GLOBAL_TIME and not self.noise.time_damping > 0.0:
            raise ConfigurationError("time_damping must be positive for global_time phase")
        spawn = self.spawn
        if spawn.ttl_enabled and not (0.0 < spawn.ttl_min <= spawn.ttl_max):
            raise ConfigurationError(f"invalid ttl range [{spawn.ttl_min}, {spawn.ttl_max}]")
        if self.repulsion.workers < 1:
            raise ConfigurationError(f"repulsion workers must be >= 1, got {self.repulsion.workers}")
        return self

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_config(data)


def _build_section(cls: type, raw: dict[str, Any] | None, section: str) -> Any:
    raw = dict(raw or {})
    known = {f.name: f for f in fields(cls)}
    unknown = sorted(set(raw) - set(known))
    if unknown:
        raise ConfigurationError(f"unknown keys in {section}: {', '.join(unknown)}")
    values: dict[str, Any] = {}
    defaults = cls()
    for name, value in raw.items():
        default = getattr(defaults, name)
        if isinstance(default, Enum):
            try:
                value = type(default)(value)
            except ValueError as exc:
                raise ConfigurationError(f"invalid {section}.{name}: {value!r}") from exc
        values[name] = value
    return cls(**values)


_SECTIONS = {
    "noise": NoiseConfig,
    "motion": MotionConfig,
    "repulsion": RepulsionConfig,
    "spawn": SpawnConfig,
    "target": TargetConfig,
    "history": HistoryConfig,
    "tessellation": TessellationConfig,
}


def load_config(raw: dict) -> SimulationConfig:
    sections = {name: _build_section(cls, raw.get(name), name) for name, cls in _SECTIONS.items()}
    top_level = {k: v for k, v in raw.items() if k not in _SECTIONS}
    config = _build_section(SimulationConfig, top_level, "simulation")
    for name, section in sections.items():
        setattr(config, name, section)
    return config.validate()
