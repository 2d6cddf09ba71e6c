from dataclasses import dataclass, field

import numpy as np


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class Rect:
    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @property
    def center(self) -> Point:
        return Point((self.left + self.right) / 2, (self.top + self.bottom) / 2)

    def contains(self, x: float, y: float) -> bool:
        """Half-open containment: left/top edges inside, right/bottom edges outside."""
        return self.left < self.right and self.top < self.bottom \
            and self.left <= x < self.right and self.top <= y < self.bottom

    def contains_mask(self, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
        if self.left >= self.right or self.top >= self.bottom:
            return np.zeros(np.shape(xs), dtype=bool)
        return (xs >= self.left) & (xs < self.right) & (ys >= self.top) & (ys < self.bottom)

    @classmethod
    def around(cls, center: Point, half_width: float) -> "Rect":
        return cls(center.x - half_width, center.y - half_width,
                   center.x + half_width, center.y + half_width)


@dataclass(frozen=True)
class Circle:
    center: Point
    radius: float

    def bounds(self) -> Rect:
        return Rect.around(self.center, self.radius)


Region = Circle | Rect


@dataclass
class Frame:
    """Decoded RGB8 frame, already rotated upright."""
    pixels: np.ndarray
    timestamp_ms: float

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]


@dataclass
class IrisGeometry:
    """Normalized ([0, 1]) iris ring points keyed by landmark id ("left", "right")."""
    points: dict[str, list[tuple[float, float]]] = field(default_factory=dict)


@dataclass
class DocumentGeometry:
    """Document bounding box as seen in the live preview, plus the preview size."""
    box: Rect
    preview_width: float
    preview_height: float
