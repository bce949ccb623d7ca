from __future__ import annotations

from dataclasses import dataclass, field

from pygame.math import Vector2


@dataclass(slots=True)
class Agent:
    id: int
    position: Vector2 = field(default_factory=Vector2)
    velocity: Vector2 = field(default_factory=Vector2)
    # None until the agent has had a nonzero velocity.
    heading: float | None = None

    @property
    def orientation(self) -> float:
        return 0.0 if self.heading is None else self.heading
