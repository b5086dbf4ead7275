from __future__ import annotations

import math
import random

from ..utils.math2d import BoundingBox, Position


def derive_stream_seed(seed: int, salt: int) -> int:
    return (int(seed) ^ int(salt)) & 0xFFFFFFFFFFFFFFFF


class DeterministicRng:
    def __init__(self, seed: int):
        self._seed = seed
        self._random = random.Random(seed)

    @property
    def seed(self) -> int:
        return self._seed

    def next_range(self, low: float, high: float) -> float:
        return self._random.uniform(low, high)

    def next_int(self, max_value: int) -> int:
        return self._random.randrange(max_value)

    def next_u32(self) -> int:
        return self._random.getrandbits(32)

    def next_angle(self) -> float:
        return self._random.uniform(-math.pi, math.pi)

    def next_position(self, bounds: BoundingBox) -> Position:
        return Position(
            self._random.uniform(bounds.left, bounds.right),
            self._random.uniform(bounds.bottom, bounds.top),
        )
