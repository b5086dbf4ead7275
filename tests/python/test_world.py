from __future__ import annotations

import math

import pytest
from pytest import approx

from driftcells.sim.core.config import (
    MotionConfig,
    NoiseConfig,
    RepulsionConfig,
    SimulationConfig,
    SpawnConfig,
    TargetConfig,
)
from driftcells.sim.core.errors import ConfigurationError, DegenerateInputError
from driftcells.sim.core.world import Simulation
from driftcells.sim.types.modes import ColorMode, SpawnMode, SteeringMode, TargetMode
from driftcells.sim.utils.math2d import BoundingBox, Position


def _config(**overrides) -> SimulationConfig:
    values = dict(agent_count=30, seed=1234, spawn=SpawnConfig(mode=SpawnMode.UNIFORM))
    values.update(overrides)
    return SimulationConfig(**values)


def run_steps(config: SimulationConfig, steps: int) -> list[tuple[Position, ...]]:
    with Simulation(config) as simulation:
        return [simulation.tick(config.time_step).agent_positions for _ in range(steps)]


def test_deterministic_steps():
    result_a = run_steps(_config(), 40)
    # recreate config to ensure RNG resets
    result_b = run_steps(_config(), 40)

    assert result_a == result_b


def test_different_seed_changes_run():
    assert run_steps(_config(seed=1), 5) != run_steps(_config(seed=2), 5)


def test_tick_builds_one_cell_per_agent():
    simulation = Simulation(_config())

    output = simulation.tick(1.0 / 60.0)

    assert output.tessellation_error is None
    assert len(output.tessellation) == 30
    assert output.tessellation.total_area == approx(simulation.bounds.area)
    assert output.metrics.cells == 30
    assert output.metrics.tessellation_ok
    assert len(simulation.history) == 1
    assert simulation.tick_count == 1


def test_degenerate_sites_keep_previous_tessellation():
    config = _config(motion=MotionConfig(steering=SteeringMode.NONE, acceleration=0.0))
    simulation = Simulation(config)
    first = simulation.tick(0.1).tessellation
    for agent in simulation.population:
        agent.position = Position(5.0, 5.0)

    output = simulation.tick(0.1)

    assert isinstance(output.tessellation_error, DegenerateInputError)
    assert output.tessellation_error.site_count == 30
    assert output.tessellation is first
    assert output.metrics.degenerate_failures == 1
    assert not output.metrics.tessellation_ok
    assert simulation.tick_count == 2


def test_agents_starting_at_origin_do_not_abort_the_run():
    config = SimulationConfig(
        agent_count=10,
        spawn=SpawnConfig(mode=SpawnMode.ORIGIN),
        motion=MotionConfig(steering=SteeringMode.NONE, acceleration=0.0),
    )
    simulation = Simulation(config)

    output = simulation.tick(0.1)

    assert output.tessellation is None
    assert output.tessellation_error is not None
    assert output.metrics.cells == 0


@pytest.mark.parametrize("delta_time", [0.0, -1.0, float("nan")])
def test_non_positive_delta_time_changes_nothing(delta_time: float):
    simulation = Simulation(_config())
    simulation.tick(0.1)
    before = simulation.population.positions()

    output = simulation.tick(delta_time)

    assert output.agent_positions == before
    assert simulation.tick_count == 1
    assert len(simulation.history) == 1
    assert simulation.elapsed == approx(0.1)


def test_circle_target_starts_on_positive_x_axis():
    config = _config(target=TargetConfig(mode=TargetMode.CIRCLE, radius=300.0, angular_speed=-0.2 * math.pi))
    simulation = Simulation(config)

    first = simulation.tick(1.0).target
    second = simulation.tick(1.0).target

    assert first.x == approx(300.0)
    assert first.y == approx(0.0)
    assert second.x == approx(300.0 * math.cos(-0.2 * math.pi))
    assert second.y == approx(300.0 * math.sin(-0.2 * math.pi))


def test_pointer_target_follows_last_pointer():
    simulation = Simulation(_config(target=TargetConfig(mode=TargetMode.POINTER)))

    assert simulation.tick(0.1, pointer=Position(40.0, -20.0)).target == Position(40.0, -20.0)
    assert simulation.tick(0.1).target == Position(40.0, -20.0)


def test_color_mode_does_not_affect_motion():
    plain = Simulation(_config())
    colored = Simulation(_config(color_mode=ColorMode.CELLS))
    colored.set_color_mode("fade")

    for _ in range(10):
        assert plain.tick(0.05).agent_positions == colored.tick(0.05).agent_positions


def test_repulsion_workers_do_not_change_results():
    def repelling(workers: int) -> SimulationConfig:
        return _config(
            motion=MotionConfig(steering=SteeringMode.WANDER, step_size=0.3, acceleration=0.0),
            repulsion=RepulsionConfig(enabled=True, workers=workers),
        )

    assert run_steps(repelling(1), 15) == run_steps(repelling(4), 15)


def test_reset_repopulates_and_clears_history():
    simulation = Simulation(_config())
    for _ in range(5):
        simulation.tick(0.1)

    simulation.reset(BoundingBox(400.0, 300.0))

    assert len(simulation.history) == 0
    assert simulation.tessellation is None
    assert simulation.bounds == BoundingBox(400.0, 300.0)
    assert all(simulation.bounds.contains(position) for position in simulation.population.positions())
    with pytest.raises(ConfigurationError):
        simulation.reset(BoundingBox(-1.0, 300.0))


def test_reseed_changes_noise_seed():
    simulation = Simulation(_config(noise=NoiseConfig(seed=17)))

    assert simulation.noise.seed == 17
    assert simulation.reseed_noise(99) == 99
    drawn = simulation.reseed_noise()
    assert 0 <= drawn < 10_000
    assert simulation.noise.seed == drawn


def test_invalid_bounds_during_tick_are_ignored():
    simulation = Simulation(_config())

    simulation.tick(0.1, bounds=BoundingBox(0.0, 0.0))
    assert simulation.bounds == BoundingBox(1000.0, 1000.0)

    simulation.tick(0.1, bounds=BoundingBox(640.0, 480.0))
    assert simulation.bounds == BoundingBox(640.0, 480.0)


@pytest.mark.parametrize(
    "config",
    [
        SimulationConfig(agent_count=0),
        SimulationConfig(width=0.0),
        SimulationConfig(height=-5.0),
        SimulationConfig(noise=NoiseConfig(scale=0.0)),
        SimulationConfig(repulsion=RepulsionConfig(workers=0)),
        SimulationConfig(spawn=SpawnConfig(ttl_enabled=True, ttl_min=5.0, ttl_max=1.0)),
    ],
)
def test_invalid_configuration_is_rejected(config: SimulationConfig):
    with pytest.raises(ConfigurationError):
        Simulation(config)


def test_mode_switches():
    simulation = Simulation(_config())

    assert simulation.cycle_target_mode() == TargetMode.FIGURE_EIGHT
    assert simulation.set_target_mode("average") == TargetMode.AVERAGE
    assert simulation.set_steering_mode(SteeringMode.WANDER) == SteeringMode.WANDER
    assert simulation.config.motion.steering == SteeringMode.WANDER
    with pytest.raises(ValueError):
        simulation.set_color_mode("plaid")


def test_snapshot_contains_metadata_and_cells():
    config = _config(time_step=0.5, motion=MotionConfig(track_previous=True))
    simulation = Simulation(config)
    simulation.tick(0.5)

    snapshot = simulation.snapshot()

    assert snapshot.tick == 1
    assert snapshot.world.width == approx(1000.0)
    assert snapshot.metadata.sim_dt == approx(0.5)
    assert snapshot.metadata.tick_rate == approx(2.0)
    assert snapshot.metadata.seed == 1234
    assert snapshot.metadata.noise_seed == simulation.noise.seed
    assert snapshot.metadata.target_mode == "circle"
    assert snapshot.metrics.population == 30
    assert len(snapshot.cells) == 30
    payload = snapshot.agents[0]
    for key in ["id", "x", "y", "ttl", "respawns", "prev_x", "prev_y"]:
        assert key in payload


def test_simulations_sharing_a_config_stay_independent():
    config = _config()
    first = Simulation(config)
    second = Simulation(config)

    first.set_steering_mode(SteeringMode.WANDER)

    assert first.steering_mode == SteeringMode.WANDER
    assert second.steering_mode == SteeringMode.NOISE
    assert config.motion.steering == SteeringMode.NOISE
    assert run_steps(config, 5) == run_steps(_config(), 5)
