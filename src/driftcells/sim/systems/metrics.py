from __future__ import annotations

from typing import Sequence

from ..types.metrics import TickMetrics
from ..utils.math2d import Position


def step_lengths(before: Sequence[Position], after: Sequence[Position]) -> tuple[float, float]:
    """Mean and max distance moved between two position snapshots of equal length."""
    if not before:
        return 0.0, 0.0
    total = 0.0
    largest = 0.0
    for start, end in zip(before, after):
        moved = (end - start).magnitude()
        total += moved
        if moved > largest:
            largest = moved
    return total / len(before), largest


def create_metrics(
    tick: int,
    elapsed: float,
    population: int,
    respawns: int,
    steps: tuple[float, float],
    target: Position,
    cells: int,
    tessellation_ok: bool,
    degenerate_failures: int,
    duration_ms: float,
) -> TickMetrics:
    mean_step, max_step = steps
    return TickMetrics(
        tick=tick,
        elapsed=elapsed,
        population=population,
        respawns=respawns,
        mean_step=mean_step,
        max_step=max_step,
        target_x=target.x,
        target_y=target.y,
        cells=cells,
        tessellation_ok=tessellation_ok,
        degenerate_failures=degenerate_failures,
        tick_duration_ms=duration_ms,
    )
