from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, Optional, Tuple

from pygame.math import Vector2

from ..core.agent import Agent


@dataclass(frozen=True, slots=True)
class AgentSample:
    """Immutable per-tick copy of an agent, safe to share across worker threads."""

    id: int
    x: float
    y: float
    vx: float
    vy: float
    heading: float | None = None

    @classmethod
    def of(cls, agent: Agent) -> "AgentSample":
        return cls(
            agent.id,
            agent.position.x,
            agent.position.y,
            agent.velocity.x,
            agent.velocity.y,
            agent.heading,
        )


class FlockSnapshot:
    """Read-only view of the flock taken at the start of a tick."""

    __slots__ = ("_samples", "_index_of")

    def __init__(self, samples: Iterable[AgentSample]):
        self._samples: Tuple[AgentSample, ...] = tuple(samples)
        self._index_of: Dict[int, int] = {sample.id: i for i, sample in enumerate(self._samples)}

    @classmethod
    def capture(cls, agents: Iterable[Agent]) -> "FlockSnapshot":
        return cls(AgentSample.of(agent) for agent in agents)

    @property
    def samples(self) -> Tuple[AgentSample, ...]:
        return self._samples

    def resolve(self, agent_id: int) -> Optional[AgentSample]:
        index = self._index_of.get(agent_id)
        if index is None:
            return None
        return self._samples[index]

    def entries(self) -> Iterator[Tuple[int, float, float]]:
        for sample in self._samples:
            yield sample.id, sample.x, sample.y

    def __len__(self) -> int:
        return len(self._samples)


@dataclass(frozen=True, slots=True)
class VelocityDelta:
    agent_id: int
    dx: float
    dy: float

    @property
    def vector(self) -> Vector2:
        return Vector2(self.dx, self.dy)
