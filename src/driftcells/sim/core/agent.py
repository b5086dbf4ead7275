from __future__ import annotations

from dataclasses import dataclass

from ..utils.math2d import Position


@dataclass(slots=True)
class Agent:
    position: Position
    step_size: float
    phase_offset: float = 0.0
    phase: float = 0.0
    angle: float = 0.0
    ttl: float | None = None
    prev_position: Position | None = None
    respawns: int = 0

    @property
    def expired(self) -> bool:
        return self.ttl is not None and self.ttl <= 0.0
