from __future__ import annotations

import logging
from concurrent.futures import Executor
from typing import Iterator, List

from ..systems import steering
from ..systems.noise import NoiseField
from ..types.modes import SpawnMode, SteeringMode
from ..utils.math2d import ORIGIN, BoundingBox, Position
from .agent import Agent
from .config import SimulationConfig
from .errors import ConfigurationError
from .rng import DeterministicRng

logger = logging.getLogger(__name__)


class AgentPopulation:
    """Fixed-length, ordered set of agents plus the per-tick motion rules."""

    def __init__(self, config: SimulationConfig, rng: DeterministicRng, bounds: BoundingBox):
        if config.agent_count <= 0:
            raise ConfigurationError(f"agent_count must be positive, got {config.agent_count}")
        self._config = config
        self._rng = rng
        self._agents: List[Agent] = []
        self.populate(bounds)

    @property
    def agents(self) -> List[Agent]:
        return self._agents

    def __len__(self) -> int:
        return len(self._agents)

    def __iter__(self) -> Iterator[Agent]:
        return iter(self._agents)

    def positions(self) -> tuple[Position, ...]:
        return tuple(agent.position for agent in self._agents)

    def populate(self, bounds: BoundingBox) -> None:
        spawn = self._config.spawn
        self._agents = [self.spawn_agent(bounds, spawn.mode) for _ in range(self._config.agent_count)]

    def spawn_agent(self, bounds: BoundingBox, mode: SpawnMode) -> Agent:
        spawn = self._config.spawn
        rng = self._rng
        position = self._spawn_position(bounds, mode)
        ttl = rng.next_range(spawn.ttl_min, spawn.ttl_max) if spawn.ttl_enabled else None
        return Agent(
            position=position,
            step_size=self._config.motion.step_size,
            phase_offset=rng.next_range(0.0, spawn.phase_offset_max),
            angle=rng.next_angle(),
            ttl=ttl,
        )

    def _spawn_position(self, bounds: BoundingBox, mode: SpawnMode) -> Position:
        spawn = self._config.spawn
        if mode == SpawnMode.ORIGIN:
            return ORIGIN
        if mode == SpawnMode.OVERSCAN:
            return self._rng.next_position(bounds.scaled(spawn.overscan))
        if mode == SpawnMode.PADDED:
            return self._rng.next_position(bounds.inset(spawn.pad))
        return self._rng.next_position(bounds)

    def respawn(self, index: int, bounds: BoundingBox) -> Agent:
        previous = self._agents[index]
        fresh = self.spawn_agent(bounds, self._config.spawn.respawn_mode)
        fresh.respawns = previous.respawns + 1
        self._agents[index] = fresh
        return fresh

    def update(
        self,
        delta_time: float,
        noise: NoiseField,
        target: Position,
        bounds: BoundingBox,
        elapsed: float = 0.0,
        executor: Executor | None = None,
    ) -> int:
        """Advance every agent by one tick and return the number of respawns."""
        if delta_time <= 0.0:
            return 0
        config = self._config
        motion = config.motion
        repulsion = config.repulsion
        noise_config = config.noise

        previous = self.positions()
        displacements = None
        if repulsion.enabled:
            displacements = steering.compute_repulsion(
                previous,
                bounds,
                repulsion.agent_scalar,
                repulsion.boundary_scalar,
                executor=executor,
                chunks=repulsion.workers,
            )

        respawned = 0
        for index, agent in enumerate(self._agents):
            if agent.expired:
                self.respawn(index, bounds)
                respawned += 1
                continue

            start = agent.position
            position = start
            if motion.steering == SteeringMode.NOISE:
                phase = steering.phase_term(agent, noise_config, elapsed)
                position = steering.noise_step(position, agent.step_size, noise, phase)
            elif motion.steering == SteeringMode.WANDER:
                jitter = motion.wander_jitter * self._rng.next_range(-1.0, 1.0)
                position, agent.angle = steering.wander_step(
                    position, agent.angle, agent.step_size, jitter, bounds, motion.look_ahead
                )
            position = steering.seek(position, target, motion.acceleration)
            if displacements is not None:
                position = position + displacements[index]

            agent.position = steering.finite_or(position, start)
            if motion.track_previous:
                agent.prev_position = start
            agent.phase += noise_config.phase_increment
            if agent.ttl is not None:
                agent.ttl -= delta_time

        if respawned:
            logger.debug("respawned %d agents", respawned)
        return respawned
