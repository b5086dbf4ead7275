"""Seeded coherent noise used to steer agents.

Classic improved gradient noise over a 256-entry permutation table. The table
is shuffled by a ``random.Random`` seeded with the field seed, so a given seed
produces the same field on every platform. The third coordinate is optional:
``sample(x, y)`` reads the ``z = 0`` slice.
"""

from __future__ import annotations

import math
import random

_TABLE_SIZE = 256
_SEED_MASK = 0xFFFFFFFF
TWO_PI = 2.0 * math.pi

_GRADIENTS = (
    (1.0, 1.0, 0.0), (-1.0, 1.0, 0.0), (1.0, -1.0, 0.0), (-1.0, -1.0, 0.0),
    (1.0, 0.0, 1.0), (-1.0, 0.0, 1.0), (1.0, 0.0, -1.0), (-1.0, 0.0, -1.0),
    (0.0, 1.0, 1.0), (0.0, -1.0, 1.0), (0.0, 1.0, -1.0), (0.0, -1.0, -1.0),
    (1.0, 1.0, 0.0), (0.0, -1.0, 1.0), (-1.0, 1.0, 0.0), (0.0, -1.0, -1.0),
)


def _fade(t: float) -> float:
    return t * t * t * (t * (t * 6.0 - 15.0) + 10.0)


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def _grad(hash_value: int, x: float, y: float, z: float) -> float:
    gx, gy, gz = _GRADIENTS[hash_value & 15]
    return gx * x + gy * y + gz * z


def _build_permutation(seed: int) -> list[int]:
    table = list(range(_TABLE_SIZE))
    random.Random(seed & _SEED_MASK).shuffle(table)
    return table + table


class NoiseField:
    def __init__(self, seed: int = 0, scale: float = 1.0):
        self._scale = float(scale)
        self._seed = 0
        self._perm: list[int] = []
        self.reseed(seed)

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def scale(self) -> float:
        return self._scale

    def reseed(self, seed: int) -> None:
        self._seed = int(seed) & _SEED_MASK
        self._perm = _build_permutation(self._seed)

    def sample(self, x: float, y: float, z: float | None = None) -> float:
        """Noise value in ``[-1, 1]`` at the raw (unscaled) coordinate."""
        if z is None:
            z = 0.0
        perm = self._perm
        fx = math.floor(x)
        fy = math.floor(y)
        fz = math.floor(z)
        xi = int(fx) & 255
        yi = int(fy) & 255
        zi = int(fz) & 255
        x -= fx
        y -= fy
        z -= fz
        u = _fade(x)
        v = _fade(y)
        w = _fade(z)

        a = perm[xi] + yi
        aa = perm[a] + zi
        ab = perm[a + 1] + zi
        b = perm[xi + 1] + yi
        ba = perm[b] + zi
        bb = perm[b + 1] + zi

        value = _lerp(
            _lerp(
                _lerp(_grad(perm[aa], x, y, z), _grad(perm[ba], x - 1.0, y, z), u),
                _lerp(_grad(perm[ab], x, y - 1.0, z), _grad(perm[bb], x - 1.0, y - 1.0, z), u),
                v,
            ),
            _lerp(
                _lerp(_grad(perm[aa + 1], x, y, z - 1.0), _grad(perm[ba + 1], x - 1.0, y, z - 1.0), u),
                _lerp(
                    _grad(perm[ab + 1], x, y - 1.0, z - 1.0),
                    _grad(perm[bb + 1], x - 1.0, y - 1.0, z - 1.0),
                    u,
                ),
                v,
            ),
            w,
        )
        return max(-1.0, min(1.0, value))

    def steering_angle(self, x: float, y: float, phase: float | None = None) -> float:
        """Full-turn angle (radians) for a world position; ``x`` and ``y`` are divided by ``scale``."""
        return self.sample(x / self._scale, y / self._scale, phase) * TWO_PI
