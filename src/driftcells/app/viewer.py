"""pygame window driving a :class:`Simulation` in real time.

Keys: D cycles the target mode, C the color mode, M the steering mode,
T toggles the target marker, Space reseeds the noise, R resets the agents,
Esc quits.
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

import pygame

from ..sim.core.config import SimulationConfig
from ..sim.core.world import Simulation, TickOutput
from ..sim.types.modes import ColorMode, cycle_mode
from ..sim.utils.math2d import BoundingBox, Position, _clamp_value

logger = logging.getLogger(__name__)

WINDOW_TITLE = "Drifting Cells"
BACKGROUND = (0, 0, 0)
FOREGROUND = (255, 255, 255)
TARGET_COLOR = (220, 40, 40)
AGENT_RADIUS = 1
MAX_FRAME_SECONDS = 0.1


class Command(str, Enum):
    CYCLE_TARGET = "cycle_target"
    CYCLE_COLOR = "cycle_color"
    CYCLE_STEERING = "cycle_steering"
    TOGGLE_TARGET = "toggle_target"
    RESEED = "reseed"
    RESET = "reset"
    QUIT = "quit"


KEY_COMMANDS = {
    pygame.K_d: Command.CYCLE_TARGET,
    pygame.K_c: Command.CYCLE_COLOR,
    pygame.K_m: Command.CYCLE_STEERING,
    pygame.K_t: Command.TOGGLE_TARGET,
    pygame.K_SPACE: Command.RESEED,
    pygame.K_r: Command.RESET,
    pygame.K_ESCAPE: Command.QUIT,
}


@dataclass
class ViewerState:
    show_target: bool = False
    running: bool = True


def apply_command(simulation: Simulation, command: Command, state: ViewerState) -> None:
    if command == Command.CYCLE_TARGET:
        simulation.cycle_target_mode()
    elif command == Command.CYCLE_COLOR:
        simulation.set_color_mode(cycle_mode(simulation.color_mode))
    elif command == Command.CYCLE_STEERING:
        simulation.set_steering_mode(cycle_mode(simulation.steering_mode))
    elif command == Command.TOGGLE_TARGET:
        state.show_target = not state.show_target
    elif command == Command.RESEED:
        simulation.reseed_noise()
    elif command == Command.RESET:
        simulation.reset()
    elif command == Command.QUIT:
        state.running = False


def world_to_screen(position: Position, size: tuple[int, int]) -> tuple[int, int]:
    """Origin-centred, y-up world coordinates to pygame pixel coordinates."""
    width, height = size
    return int(round(width / 2.0 + position.x)), int(round(height / 2.0 - position.y))


def screen_to_world(pixel: tuple[int, int], size: tuple[int, int]) -> Position:
    width, height = size
    return Position(pixel[0] - width / 2.0, height / 2.0 - pixel[1])


def _fade_color(age: int, capacity: int) -> tuple[int, int, int]:
    level = int(_clamp_value(255 * (1.0 - age / max(1, capacity)), 24, 255))
    return (level, level, level)


def _cell_color(index: int, count: int) -> pygame.Color:
    color = pygame.Color(0)
    color.hsva = ((index * 360.0 / max(1, count)) % 360.0, 55, 45, 100)
    return color


def render_frame(
    surface: pygame.Surface,
    output: TickOutput,
    color_mode: ColorMode,
    show_target: bool = False,
) -> None:
    size = surface.get_size()
    surface.fill(BACKGROUND)
    tessellation = output.tessellation

    if tessellation is not None:
        count = len(tessellation.cells)
        for index, cell in enumerate(tessellation.cells):
            if cell.is_empty():
                continue
            points = [world_to_screen(vertex, size) for vertex in cell.vertices]
            if color_mode == ColorMode.CELLS:
                pygame.draw.polygon(surface, _cell_color(index, count), points)
            pygame.draw.polygon(surface, FOREGROUND, points, width=1)

    if color_mode == ColorMode.FADE and output.trail is not None:
        capacity = output.trail.capacity
        # Oldest first so the freshest snapshot ends up on top.
        snapshots = list(output.trail.newest_first())
        for age in range(len(snapshots) - 1, -1, -1):
            color = _fade_color(age, capacity)
            for position in snapshots[age]:
                pygame.draw.circle(surface, color, world_to_screen(position, size), AGENT_RADIUS)
    else:
        for position in output.agent_positions:
            pygame.draw.circle(surface, FOREGROUND, world_to_screen(position, size), AGENT_RADIUS)

    if show_target:
        pygame.draw.circle(surface, TARGET_COLOR, world_to_screen(output.target, size), 3)


def run_viewer(config: SimulationConfig, fps: int = 60) -> None:
    pygame.init()
    try:
        screen = pygame.display.set_mode((int(config.width), int(config.height)), pygame.RESIZABLE)
        pygame.display.set_caption(WINDOW_TITLE)
        clock = pygame.time.Clock()
        state = ViewerState()
        with Simulation(config) as simulation:
            logger.info("viewer started at %dx%d", int(config.width), int(config.height))
            while state.running:
                delta_time = min(clock.tick(fps) / 1000.0, MAX_FRAME_SECONDS)
                for event in pygame.event.get():
                    if event.type == pygame.QUIT:
                        state.running = False
                    elif event.type == pygame.KEYUP and event.key in KEY_COMMANDS:
                        apply_command(simulation, KEY_COMMANDS[event.key], state)
                size = screen.get_size()
                pointer = screen_to_world(pygame.mouse.get_pos(), size)
                output = simulation.tick(delta_time, bounds=BoundingBox(*size), pointer=pointer)
                render_frame(screen, output, simulation.color_mode, state.show_target)
                pygame.display.flip()
    finally:
        pygame.quit()


def main() -> None:
    parser = argparse.ArgumentParser(description="Interactive drifting-cells viewer")
    parser.add_argument("--config", type=Path, default=None, help="YAML simulation config")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--fps", type=int, default=60)
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    config: Optional[SimulationConfig] = SimulationConfig.from_yaml(args.config) if args.config else SimulationConfig()
    if args.seed is not None:
        config.seed = args.seed
    run_viewer(config, fps=args.fps)


if __name__ == "__main__":
    main()
