from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class TickMetrics:
    tick: int
    elapsed: float
    population: int
    respawns: int
    mean_step: float
    max_step: float
    target_x: float
    target_y: float
    cells: int
    tessellation_ok: bool
    degenerate_failures: int
    tick_duration_ms: float = 0.0
