from __future__ import annotations

import math
from concurrent.futures import Executor
from typing import Sequence

from ..core.agent import Agent
from ..core.config import NoiseConfig
from ..types.modes import PhaseMode
from ..utils.math2d import BoundingBox, Position
from .noise import NoiseField


def phase_term(agent: Agent, noise_config: NoiseConfig, elapsed: float) -> float | None:
    mode = noise_config.phase_mode
    if mode == PhaseMode.STATIC:
        return agent.phase_offset
    if mode == PhaseMode.COUNTER:
        return agent.phase_offset + agent.phase
    if mode == PhaseMode.GLOBAL_TIME:
        return elapsed / noise_config.time_damping
    return None


def noise_step(position: Position, step_size: float, noise: NoiseField, phase: float | None) -> Position:
    if step_size == 0.0:
        return position
    angle = noise.steering_angle(position.x, position.y, phase)
    return Position(position.x + math.cos(angle) * step_size, position.y + math.sin(angle) * step_size)


def wander_step(
    position: Position,
    angle: float,
    step_size: float,
    jitter: float,
    bounds: BoundingBox,
    look_ahead: float,
) -> tuple[Position, float]:
    """Random-walk heading with a bounce when the look-ahead point leaves the bounds.

    ``jitter`` is the already-drawn heading change for this tick.
    """
    angle += jitter
    x = position.x + math.cos(angle) * step_size
    y = position.y + math.sin(angle) * step_size
    reach = step_size * look_ahead
    ahead_x = x + math.cos(angle) * reach
    if ahead_x < bounds.left or ahead_x > bounds.right:
        angle = math.pi - angle
    ahead_y = y + math.sin(angle) * reach
    if ahead_y < bounds.bottom or ahead_y > bounds.top:
        angle = -angle
    return Position(x, y), math.remainder(angle, 2.0 * math.pi)


def seek(position: Position, target: Position, acceleration: float) -> Position:
    dx = target.x - position.x
    dy = target.y - position.y
    if dx == 0.0 and dy == 0.0:
        return position
    return Position(position.x + dx * acceleration, position.y + dy * acceleration)


def _inverse_square_push(origin: Position, source_x: float, source_y: float, scalar: float) -> tuple[float, float]:
    dx = source_x - origin.x
    dy = source_y - origin.y
    dist_sq = dx * dx + dy * dy
    if dist_sq == 0.0:
        return 0.0, 0.0
    # |d|^-2 scales the raw offset, so the push falls off as 1/|d|.
    factor = scalar / dist_sq
    push_x = -dx * factor
    push_y = -dy * factor
    if not (math.isfinite(push_x) and math.isfinite(push_y)):
        return 0.0, 0.0
    return push_x, push_y


def repulsion_displacement(
    index: int,
    positions: Sequence[Position],
    bounds: BoundingBox,
    agent_scalar: float,
    boundary_scalar: float,
) -> Position:
    """Displacement for agent ``index`` from every other site and the four edges.

    Reads only ``positions`` (the previous tick's snapshot) and writes nothing,
    so agents can be evaluated in any order or concurrently.
    """
    origin = positions[index]
    total_x = 0.0
    total_y = 0.0
    if agent_scalar != 0.0:
        for site in positions:
            push_x, push_y = _inverse_square_push(origin, site.x, site.y, agent_scalar)
            total_x += push_x
            total_y += push_y
    if boundary_scalar != 0.0:
        for source_x, source_y in (
            (bounds.left, origin.y),
            (bounds.right, origin.y),
            (origin.x, bounds.top),
            (origin.x, bounds.bottom),
        ):
            push_x, push_y = _inverse_square_push(origin, source_x, source_y, boundary_scalar)
            total_x += push_x
            total_y += push_y
    if not (math.isfinite(total_x) and math.isfinite(total_y)):
        return Position(0.0, 0.0)
    return Position(total_x, total_y)


def _repulsion_chunk(
    start: int,
    stop: int,
    positions: Sequence[Position],
    bounds: BoundingBox,
    agent_scalar: float,
    boundary_scalar: float,
) -> list[Position]:
    return [
        repulsion_displacement(index, positions, bounds, agent_scalar, boundary_scalar)
        for index in range(start, stop)
    ]


def compute_repulsion(
    positions: Sequence[Position],
    bounds: BoundingBox,
    agent_scalar: float,
    boundary_scalar: float,
    executor: Executor | None = None,
    chunks: int = 1,
) -> list[Position]:
    count = len(positions)
    if executor is None or chunks <= 1 or count < 2:
        return _repulsion_chunk(0, count, positions, bounds, agent_scalar, boundary_scalar)
    size = max(1, math.ceil(count / chunks))
    futures = [
        executor.submit(
            _repulsion_chunk, start, min(count, start + size), positions, bounds, agent_scalar, boundary_scalar
        )
        for start in range(0, count, size)
    ]
    displacements: list[Position] = []
    for future in futures:
        displacements.extend(future.result())
    return displacements


def finite_or(candidate: Position, fallback: Position) -> Position:
    return candidate if candidate.is_finite() else fallback
