from __future__ import annotations

import copy
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Dict, List

from ..systems import metrics as metrics_system
from ..systems.history import HistoryBuffer
from ..systems.noise import NoiseField
from ..systems.targets import TargetStrategy
from ..systems.tessellation import Tessellation, TessellationEngine
from ..types.metrics import TickMetrics
from ..types.modes import ColorMode, SteeringMode, TargetMode
from ..types.snapshot import Snapshot, SnapshotMetadata, SnapshotWorld
from ..utils.math2d import ORIGIN, BoundingBox, Position
from .config import SimulationConfig
from .errors import ConfigurationError, DegenerateInputError
from .population import AgentPopulation
from .rng import DeterministicRng, derive_stream_seed

logger = logging.getLogger(__name__)

_NOISE_RNG_SALT = 0x5EEDF1E1D0C0FFEE
# Reseeding draws from [0, 10000) like the interactive sketches did.
_RESEED_RANGE = 10_000


@dataclass(slots=True)
class TickOutput:
    agent_positions: tuple[Position, ...]
    trail: HistoryBuffer | None
    tessellation: Tessellation | None
    target: Position
    tessellation_error: DegenerateInputError | None = None
    metrics: TickMetrics | None = None


class Simulation:
    """Owns the population, history and tessellation and advances them one tick at a time."""

    def __init__(self, config: SimulationConfig):
        # Own copy; set_steering_mode writes into it.
        config = copy.deepcopy(config).validate()
        self._config = config
        self._bounds = config.bounds
        self._rng = DeterministicRng(config.seed)
        self._noise_rng = DeterministicRng(derive_stream_seed(config.seed, _NOISE_RNG_SALT))
        noise_seed = config.noise.seed if config.noise.seed is not None else self._noise_rng.next_u32()
        self._noise = NoiseField(noise_seed, config.noise.scale)
        self._population = AgentPopulation(config, self._rng, self._bounds)
        self._history = HistoryBuffer(config.history.capacity)
        self._targets = TargetStrategy(config.target)
        self._tessellator = TessellationEngine()
        self._tessellation: Tessellation | None = None
        self._color_mode = config.color_mode
        self._executor: ThreadPoolExecutor | None = None
        self._target = ORIGIN
        self._elapsed = 0.0
        self._tick = 0
        self._degenerate_failures = 0
        self._metrics: TickMetrics | None = None
        logger.info(
            "simulation ready: %d agents, %gx%g bounds, noise seed %d",
            config.agent_count,
            self._bounds.width,
            self._bounds.height,
            noise_seed,
        )

    def __enter__(self) -> "Simulation":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def population(self) -> AgentPopulation:
        return self._population

    @property
    def history(self) -> HistoryBuffer:
        return self._history

    @property
    def noise(self) -> NoiseField:
        return self._noise

    @property
    def bounds(self) -> BoundingBox:
        return self._bounds

    @property
    def tessellation(self) -> Tessellation | None:
        return self._tessellation

    @property
    def target(self) -> Position:
        return self._target

    @property
    def target_mode(self) -> TargetMode:
        return self._targets.mode

    @property
    def color_mode(self) -> ColorMode:
        return self._color_mode

    @property
    def steering_mode(self) -> SteeringMode:
        return self._config.motion.steering

    @property
    def elapsed(self) -> float:
        return self._elapsed

    @property
    def tick_count(self) -> int:
        return self._tick

    @property
    def metrics(self) -> TickMetrics | None:
        return self._metrics

    def set_target_mode(self, mode: TargetMode | str) -> TargetMode:
        selected = self._targets.set_mode(mode)
        logger.info("target mode -> %s", selected.value)
        return selected

    def cycle_target_mode(self) -> TargetMode:
        selected = self._targets.cycle()
        logger.info("target mode -> %s", selected.value)
        return selected

    def set_color_mode(self, mode: ColorMode | str) -> ColorMode:
        self._color_mode = ColorMode(mode)
        return self._color_mode

    def set_steering_mode(self, mode: SteeringMode | str) -> SteeringMode:
        self._config.motion.steering = SteeringMode(mode)
        logger.info("steering mode -> %s", self._config.motion.steering.value)
        return self._config.motion.steering

    def reseed_noise(self, seed: int | None = None) -> int:
        if seed is None:
            seed = self._noise_rng.next_int(_RESEED_RANGE)
        self._noise.reseed(seed)
        logger.info("noise reseeded with %d", self._noise.seed)
        return self._noise.seed

    def reset(self, bounds: BoundingBox | None = None) -> None:
        if bounds is not None:
            if not bounds.is_valid():
                raise ConfigurationError(f"bounds must be positive, got {bounds.width}x{bounds.height}")
            self._bounds = bounds
        self._population.populate(self._bounds)
        self._history.clear()
        self._targets.reset()
        self._tessellator.clear()
        self._tessellation = None
        logger.info("population reset inside %gx%g", self._bounds.width, self._bounds.height)

    def tick(
        self,
        delta_time: float,
        bounds: BoundingBox | None = None,
        pointer: Position | None = None,
    ) -> TickOutput:
        if bounds is not None and bounds != self._bounds:
            if bounds.is_valid():
                self._bounds = bounds
            else:
                logger.warning("ignoring invalid bounds %sx%s", bounds.width, bounds.height)

        if not math.isfinite(delta_time) or delta_time <= 0.0:
            return self._output(None)

        start = perf_counter()
        config = self._config
        self._target = self._targets.compute(self._elapsed, self._history, self._noise, pointer)

        before = self._population.positions()
        respawns = self._population.update(
            delta_time,
            self._noise,
            self._target,
            self._bounds,
            elapsed=self._elapsed,
            executor=self._repulsion_executor(),
        )
        after = self._population.positions()
        self._history.push(after)
        self._elapsed += delta_time

        error: DegenerateInputError | None = None
        built = False
        if config.tessellation.enabled:
            try:
                self._tessellation = self._tessellator.build(after, self._bounds)
                built = True
            except DegenerateInputError as exc:
                # Keep the previous frame's cells; sites usually separate on the next tick.
                self._degenerate_failures += 1
                error = exc
                logger.debug("tessellation skipped at tick %d (%d sites): %s", self._tick, exc.site_count, exc)

        duration_ms = (perf_counter() - start) * 1000.0
        self._metrics = metrics_system.create_metrics(
            tick=self._tick,
            elapsed=self._elapsed,
            population=len(after),
            respawns=respawns,
            steps=metrics_system.step_lengths(before, after),
            target=self._target,
            cells=len(self._tessellation) if self._tessellation is not None else 0,
            tessellation_ok=built,
            degenerate_failures=self._degenerate_failures,
            duration_ms=duration_ms,
        )
        self._tick += 1
        return self._output(error)

    def _output(self, error: DegenerateInputError | None) -> TickOutput:
        return TickOutput(
            agent_positions=self._population.positions(),
            trail=self._history,
            tessellation=self._tessellation,
            target=self._target,
            tessellation_error=error,
            metrics=self._metrics,
        )

    def _repulsion_executor(self) -> ThreadPoolExecutor | None:
        repulsion = self._config.repulsion
        if not repulsion.enabled or repulsion.workers <= 1:
            return None
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=repulsion.workers, thread_name_prefix="repulsion")
        return self._executor

    def snapshot(self) -> Snapshot:
        config = self._config
        agents: List[Dict[str, Any]] = []
        for index, agent in enumerate(self._population):
            payload: Dict[str, Any] = {
                "id": index,
                "x": agent.position.x,
                "y": agent.position.y,
                "ttl": agent.ttl,
                "respawns": agent.respawns,
            }
            if agent.prev_position is not None:
                payload["prev_x"] = agent.prev_position.x
                payload["prev_y"] = agent.prev_position.y
            agents.append(payload)
        cells = []
        if self._tessellation is not None:
            cells = [[[vertex.x, vertex.y] for vertex in cell.vertices] for cell in self._tessellation.cells]
        return Snapshot(
            tick=self._tick,
            metrics=self._metrics,
            agents=agents,
            cells=cells,
            target=[self._target.x, self._target.y],
            world=SnapshotWorld(width=self._bounds.width, height=self._bounds.height),
            metadata=SnapshotMetadata(
                sim_dt=config.time_step,
                tick_rate=1.0 / config.time_step if config.time_step > 0 else 0.0,
                seed=config.seed,
                noise_seed=self._noise.seed,
                target_mode=self._targets.mode.value,
                color_mode=self._color_mode.value,
                steering_mode=config.motion.steering.value,
                config_version=config.config_version,
            ),
        )
