from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True, slots=True)
class Rect:
    """Origin-centred visible region given by its half extents."""

    half_width: float
    half_height: float

    @classmethod
    def from_size(cls, width: float, height: float) -> "Rect":
        return cls(width * 0.5, height * 0.5)

    def contains(self, x: float, y: float) -> bool:
        return -self.half_width <= x <= self.half_width and -self.half_height <= y <= self.half_height


@dataclass(frozen=True, slots=True)
class TickInput:
    """Per-tick frame from the input provider."""

    target: Optional[Tuple[float, float]] = None
    bounds: Optional[Rect] = None
