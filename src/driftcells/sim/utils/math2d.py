from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Position:
    x: float
    y: float

    def magnitude_squared(self) -> float:
        return self.x * self.x + self.y * self.y

    def magnitude(self) -> float:
        return math.sqrt(self.magnitude_squared())

    def signed_pow(self, power: float) -> "Position":
        """Element-wise ``sign(v) * |v| ** power``; keeps each component's sign."""
        return Position(
            math.copysign(abs(self.x) ** power, self.x),
            math.copysign(abs(self.y) ** power, self.y),
        )

    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y)

    def __add__(self, other: "Position") -> "Position":
        return Position(self.x + other.x, self.y + other.y)

    def __sub__(self, other: "Position") -> "Position":
        return Position(self.x - other.x, self.y - other.y)

    def __mul__(self, scalar: float) -> "Position":
        return Position(self.x * scalar, self.y * scalar)

    def __truediv__(self, scalar: float) -> "Position":
        return Position(self.x / scalar, self.y / scalar)


ORIGIN = Position(0.0, 0.0)


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """Axis-aligned rectangle centred on the origin."""

    width: float
    height: float

    @property
    def left(self) -> float:
        return -self.width / 2.0

    @property
    def right(self) -> float:
        return self.width / 2.0

    @property
    def bottom(self) -> float:
        return -self.height / 2.0

    @property
    def top(self) -> float:
        return self.height / 2.0

    @property
    def area(self) -> float:
        return self.width * self.height

    def is_valid(self) -> bool:
        return (
            math.isfinite(self.width)
            and math.isfinite(self.height)
            and self.width > 0.0
            and self.height > 0.0
        )

    def contains(self, point: Position) -> bool:
        return self.left <= point.x <= self.right and self.bottom <= point.y <= self.top

    def scaled(self, factor: float) -> "BoundingBox":
        return BoundingBox(self.width * factor, self.height * factor)

    def inset(self, pad: float) -> "BoundingBox":
        # Never collapse below a sliver; padding larger than the box keeps the centre line.
        return BoundingBox(max(self.width - 2.0 * pad, 1e-9), max(self.height - 2.0 * pad, 1e-9))

    def corners(self) -> list[Position]:
        """Counter-clockwise starting at the bottom-left corner."""
        return [
            Position(self.left, self.bottom),
            Position(self.right, self.bottom),
            Position(self.right, self.top),
            Position(self.left, self.top),
        ]


def polygon_area(vertices: list[Position] | tuple[Position, ...]) -> float:
    """Signed shoelace area; positive for counter-clockwise winding."""
    count = len(vertices)
    if count < 3:
        return 0.0
    total = 0.0
    for index in range(count):
        a = vertices[index]
        b = vertices[(index + 1) % count]
        total += a.x * b.y - b.x * a.y
    return total * 0.5


def _clamp_value(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(max_value, value))
