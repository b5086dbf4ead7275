from __future__ import annotations

from enum import Enum


class TargetMode(str, Enum):
    CIRCLE = "circle"
    FIGURE_EIGHT = "figure_eight"
    NOISE_DRIFT = "noise_drift"
    AVERAGE = "average"
    POINTER = "pointer"


class SteeringMode(str, Enum):
    NOISE = "noise"
    WANDER = "wander"
    NONE = "none"


class PhaseMode(str, Enum):
    STATIC = "static"
    COUNTER = "counter"
    GLOBAL_TIME = "global_time"
    NONE = "none"


class SpawnMode(str, Enum):
    ORIGIN = "origin"
    UNIFORM = "uniform"
    OVERSCAN = "overscan"
    PADDED = "padded"


class AverageWindow(str, Enum):
    LATEST = "latest"
    ALL = "all"


class ColorMode(str, Enum):
    MONO = "mono"
    FADE = "fade"
    CELLS = "cells"


def cycle_mode(mode: Enum) -> Enum:
    members = list(type(mode))
    return members[(members.index(mode) + 1) % len(members)]
