from __future__ import annotations

import math
from typing import Sequence

from ..core.config import TargetConfig
from ..types.modes import AverageWindow, TargetMode, cycle_mode
from ..utils.math2d import ORIGIN, Position
from .history import HistoryBuffer
from .noise import NoiseField


def circle_target(elapsed: float, radius: float, angular_speed: float) -> Position:
    theta = elapsed * angular_speed
    return Position(radius * math.cos(theta), radius * math.sin(theta))


def figure_eight_target(elapsed: float, radius: float, angular_speed: float) -> Position:
    # Vertical figure eight, twice as tall as wide.
    theta = elapsed * angular_speed
    return Position(-(radius / 2.0) * math.sin(2.0 * theta), radius * math.sin(theta))


def mean_position(positions: Sequence[Position]) -> Position:
    if not positions:
        return ORIGIN
    total_x = 0.0
    total_y = 0.0
    for position in positions:
        total_x += position.x
        total_y += position.y
    count = len(positions)
    return Position(total_x / count, total_y / count)


def history_average(history: HistoryBuffer, window: AverageWindow) -> Position:
    if not history:
        return ORIGIN
    if window == AverageWindow.LATEST:
        return mean_position(history.latest() or ())
    means = [mean_position(snapshot) for snapshot in history.oldest_first()]
    return mean_position(means)


class TargetStrategy:
    """Computes the single attractor point agents seek each tick.

    Switching modes only happens through :meth:`set_mode`; the computed target
    never depends on agent state other than what the history buffer holds.
    """

    def __init__(self, config: TargetConfig):
        self._config = config
        self._mode = config.mode
        self._drift = ORIGIN
        self._pointer = ORIGIN

    @property
    def mode(self) -> TargetMode:
        return self._mode

    def set_mode(self, mode: TargetMode | str) -> TargetMode:
        self._mode = TargetMode(mode)
        if self._mode == TargetMode.NOISE_DRIFT:
            self._drift = ORIGIN
        return self._mode

    def cycle(self) -> TargetMode:
        return self.set_mode(cycle_mode(self._mode))

    def reset(self) -> None:
        self._drift = ORIGIN

    def compute(
        self,
        elapsed: float,
        history: HistoryBuffer,
        noise: NoiseField,
        pointer: Position | None = None,
    ) -> Position:
        config = self._config
        mode = self._mode
        if pointer is not None and pointer.is_finite():
            self._pointer = pointer

        if mode == TargetMode.CIRCLE:
            return circle_target(elapsed, config.radius, config.angular_speed)
        if mode == TargetMode.FIGURE_EIGHT:
            return figure_eight_target(elapsed, config.radius, config.angular_speed)
        if mode == TargetMode.NOISE_DRIFT:
            return self._noise_drift(elapsed, noise)
        if mode == TargetMode.AVERAGE:
            return history_average(history, config.average_window).signed_pow(config.damping_power)
        return self._pointer

    def _noise_drift(self, elapsed: float, noise: NoiseField) -> Position:
        config = self._config
        previous = self._drift
        angle = noise.steering_angle(previous.x, previous.y, elapsed)
        nudged = Position(
            previous.x + math.cos(angle) * config.drift_step,
            previous.y + math.sin(angle) * config.drift_step,
        )
        self._drift = nudged.signed_pow(config.damping_power)
        return self._drift
