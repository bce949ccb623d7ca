from __future__ import annotations

import random
from typing import Iterator, Tuple


class DeterministicRng:
    def __init__(self, seed: int):
        self._seed = seed
        self._random = random.Random(seed)

    def reset(self) -> None:
        self._random.seed(self._seed)

    def next_range(self, low: float, high: float) -> float:
        return self._random.uniform(low, high)


def halton(index: int, base: int) -> float:
    """Radical inverse of ``index`` in ``base``; element ``index`` of the Halton sequence."""
    result = 0.0
    fraction = 1.0 / base
    while index > 0:
        index, digit = divmod(index, base)
        result += digit * fraction
        fraction /= base
    return result


def halton_2d(count: int, start: int = 1) -> Iterator[Tuple[float, float]]:
    """Low-discrepancy points in the unit square using bases 2 and 3."""
    for index in range(start, start + count):
        yield halton(index, 2), halton(index, 3)
